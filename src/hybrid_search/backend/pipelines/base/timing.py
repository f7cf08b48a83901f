# src/hybrid_search/backend/pipelines/base/timing.py

"""
[职责] 阶段计时：为检索编排收集 embed/vector/keyword/fusion 各阶段耗时（ms）。
[边界] 不做分布式 tracing；不写日志；仅产出可序列化的 timing_ms dict。
[上游关系] pipelines/search/pipeline.py 用 stage(...) 包裹各阶段。
[下游关系] SearchResponse.timing_ms 与结构化日志字段。
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Iterator


def _now_ms() -> float:
    """perf_counter in milliseconds; only meaningful for differences."""
    return time.perf_counter() * 1000.0


@dataclass
class TimingCollector:
    """
    [职责] 单请求内的阶段耗时收集器。
    [边界] 不保证线程安全；同一事件循环内的并发协程可各自写入不同 stage。
    [上游关系] orchestrator 每个请求新建一个实例。
    [下游关系] to_dict() 输出 timing_ms；total_ms() 输出 latency。
    """

    _stages_ms: Dict[str, float] = field(default_factory=dict)
    _start_ms: float = field(default_factory=_now_ms)

    def add_ms(self, key: str, ms: float, *, accumulate: bool = True) -> None:
        """
        [职责] 写入某阶段耗时（ms）。
        [边界] 空 key 忽略；负数截断为 0。
        [上游关系] stage() 退出时调用。
        [下游关系] to_dict() 输出。
        """
        k = str(key).strip()
        if not k:
            return
        v = max(0.0, float(ms))
        if accumulate:
            self._stages_ms[k] = self._stages_ms.get(k, 0.0) + v
        else:
            self._stages_ms[k] = v

    @contextmanager
    def stage(self, key: str, *, accumulate: bool = False) -> Iterator[None]:
        """
        [职责] with timing.stage("vector"): ... 形式的阶段计时。
        [边界] 异常/取消时同样记录已耗时。
        [上游关系] orchestrator 各阶段。
        [下游关系] timing_ms。
        """
        start = _now_ms()
        try:
            yield
        finally:
            self.add_ms(key, _now_ms() - start, accumulate=accumulate)

    def total_ms(self) -> float:
        return _now_ms() - self._start_ms

    def to_dict(self, *, include_total: bool = True, total_key: str = "total") -> Dict[str, float]:
        """Export stage timings, rounded to 3 decimals, plus the running total."""
        out = {k: round(v, 3) for k, v in self._stages_ms.items()}
        if include_total:
            out[total_key] = round(float(self.total_ms()), 3)
        return out
