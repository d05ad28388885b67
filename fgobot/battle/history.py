"""决策记录与历史。

每次决策生成一条 ``DecisionRecord``，写入固定容量的环形缓冲区
（满时淘汰最旧记录），用于日志输出与事后分析。决策逻辑本身从不读取历史。

使用方式::

    history = DecisionHistory(capacity=1000)
    history.add(DecisionRecord(
        timestamp=time.time(),
        battle_state=BattleState.COMMAND_SELECTION,
        decision=CardSelection((0, 1, 2)),
        processing_time_ms=3.2,
        battle_count=1,
    ))
"""

from __future__ import annotations

import threading
from collections import deque
from collections.abc import Iterator
from dataclasses import dataclass

from fgobot.battle.decision import Decision, describe
from fgobot.types import BattleState

DEFAULT_CAPACITY = 1000


@dataclass(frozen=True, slots=True)
class DecisionRecord:
    """单条决策记录。

    Attributes
    ----------
    timestamp:
        决策时间 (epoch 秒)。
    battle_state:
        决策时的画面状态。
    decision:
        决策结果。
    processing_time_ms:
        决策耗时 (毫秒)。
    battle_count:
        决策时已完成的战斗场数。
    """

    timestamp: float
    battle_state: BattleState
    decision: Decision
    processing_time_ms: float
    battle_count: int

    def __str__(self) -> str:
        return (
            f"[{self.battle_state.value}] {describe(self.decision)} "
            f"| 耗时={self.processing_time_ms:.1f}ms | 场次={self.battle_count}"
        )


@dataclass(frozen=True, slots=True)
class DecisionStat:
    """按决策类型汇总的统计。"""

    count: int
    average_processing_ms: float


class DecisionHistory:
    """固定容量的决策历史。"""

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError(f"容量必须为正整数: {capacity}")
        self._records: deque[DecisionRecord] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._records.maxlen or 0

    def add(self, record: DecisionRecord) -> None:
        """追加一条记录，满时自动淘汰最旧的一条。"""
        with self._lock:
            self._records.append(record)

    def reset(self) -> None:
        with self._lock:
            self._records.clear()

    def snapshot(self) -> list[DecisionRecord]:
        """按时间顺序返回副本。"""
        with self._lock:
            return list(self._records)

    def stats(self) -> dict[str, DecisionStat]:
        """按决策类型名汇总次数与平均耗时。"""
        totals: dict[str, list[float]] = {}
        for record in self.snapshot():
            totals.setdefault(type(record.decision).__name__, []).append(
                record.processing_time_ms
            )
        return {
            name: DecisionStat(count=len(times), average_processing_ms=sum(times) / len(times))
            for name, times in totals.items()
        }

    def __iter__(self) -> Iterator[DecisionRecord]:
        return iter(self.snapshot())

    def __str__(self) -> str:
        return "\n".join(str(r) for r in self.snapshot())

    def __repr__(self) -> str:
        return f"DecisionHistory({len(self._records)}/{self.capacity} records)"

    def __len__(self) -> int:
        return len(self._records)
