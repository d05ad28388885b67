"""会话统计与状态快照。

``AutomationStats`` 为不可变值，控制器在锁内用 :func:`dataclasses.replace`
整体替换，读取方拿到的总是一致的快照。计数器只增不减，仅在会话开始时归零。
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field, replace

import numpy as np

from fgobot.automation.team import Team
from fgobot.types import AutomationState


@dataclass(frozen=True, slots=True)
class AutomationStats:
    """单次会话的统计。

    Attributes
    ----------
    battles_completed:
        已结束的战斗场数 (= 胜 + 负)。
    battles_won, battles_lost:
        胜负场数。
    screenshots_taken:
        成功截图次数。
    decisions_executed:
        成功执行的决策数。
    errors_encountered:
        会话内累计失败次数。
    started_at:
        会话开始时间 (epoch 秒)，未开始为 ``None``。
    ended_at:
        会话结束时间，运行中为 ``None``。
    """

    battles_completed: int = 0
    battles_won: int = 0
    battles_lost: int = 0
    screenshots_taken: int = 0
    decisions_executed: int = 0
    errors_encountered: int = 0
    started_at: float | None = None
    ended_at: float | None = None

    @classmethod
    def start(cls, now: float | None = None) -> AutomationStats:
        return cls(started_at=time.time() if now is None else now)

    @property
    def total_runtime_ms(self) -> float:
        if self.started_at is None:
            return 0.0
        end = self.ended_at if self.ended_at is not None else time.time()
        return max(0.0, (end - self.started_at) * 1000)

    @property
    def average_battle_time_ms(self) -> float:
        if self.battles_completed == 0:
            return 0.0
        return self.total_runtime_ms / self.battles_completed

    @property
    def win_rate(self) -> float:
        if self.battles_completed == 0:
            return 0.0
        return self.battles_won / self.battles_completed

    def with_battle(self, victory: bool) -> AutomationStats:
        return replace(
            self,
            battles_completed=self.battles_completed + 1,
            battles_won=self.battles_won + int(victory),
            battles_lost=self.battles_lost + int(not victory),
        )

    def with_screenshot(self) -> AutomationStats:
        return replace(self, screenshots_taken=self.screenshots_taken + 1)

    def with_decision(self) -> AutomationStats:
        return replace(self, decisions_executed=self.decisions_executed + 1)

    def with_error(self) -> AutomationStats:
        return replace(self, errors_encountered=self.errors_encountered + 1)

    def finished(self, now: float | None = None) -> AutomationStats:
        if self.ended_at is not None or self.started_at is None:
            return self
        return replace(self, ended_at=time.time() if now is None else now)

    def summary(self) -> str:
        return (
            f"战斗 {self.battles_completed} 场 (胜 {self.battles_won} / 负 {self.battles_lost})"
            f" | 截图 {self.screenshots_taken} | 决策 {self.decisions_executed}"
            f" | 错误 {self.errors_encountered} | 运行 {self.total_runtime_ms / 1000:.1f}s"
        )


@dataclass(frozen=True, slots=True)
class AutomationStatus:
    """控制器状态快照（只读）。"""

    state: AutomationState
    is_initialized: bool
    current_team: Team | None
    runtime_ms: float
    stats: AutomationStats
    last_frame: np.ndarray | None = field(default=None, repr=False)
    consecutive_errors: int = 0
    last_error: str | None = None

    @property
    def is_running(self) -> bool:
        return self.state == AutomationState.RUNNING
