# src/hybrid_search/backend/db/models/types.py

from __future__ import annotations

from sqlalchemy import JSON


# JSON array of floats; SQL NULL (not JSON 'null') marks an absent embedding.
EmbeddingVector = JSON(none_as_null=True)
