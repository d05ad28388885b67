"""决策执行 — 将 Decision 映射为触控操作。

映射关系::

    CardSelection  → 依次点击 3 张卡 (间隔 300ms)，随后等待 2000ms
    SkillUsage     → 点击技能 (等待 1500ms)，有目标时再点击目标 (等待 500ms)
    NPUsage        → 点击宝具卡 (等待 1000ms)
    Wait           → 等待指定时长
    ErrorRecovery  → 按名称执行恢复例程 (各自固定等待)
    NoAction       → 无操作

点击位置来自 :class:`~fgobot.infra.config.LayoutConfig`。开启拟人模式时，
点击坐标加入小幅偏移、等待时长加入 ±10% 抖动；决策层本身不含随机性。
"""

from __future__ import annotations

import random
from typing import assert_never

from loguru import logger

from fgobot.automation.ports import ActuationPort
from fgobot.battle.decision import (
    CardSelection,
    Decision,
    ErrorRecovery,
    NoAction,
    NPUsage,
    SkillUsage,
    Wait,
)
from fgobot.infra.config import LayoutConfig, Position
from fgobot.infra.exceptions import ActionExecutionFailure
from fgobot.types import RecoveryAction

CARD_TAP_INTERVAL_MS = 300
AFTER_CARDS_MS = 2000
AFTER_SKILL_MS = 1500
AFTER_TARGET_MS = 500
AFTER_NP_MS = 1000

RECOVERY_DELAYS_MS: dict[RecoveryAction, int] = {
    RecoveryAction.HANDLE_AP_RECOVERY: 5000,
    RecoveryAction.RESTART_BATTLE: 3000,
    RecoveryAction.SCREENSHOT_ANALYSIS: 1000,
}

TIMING_VARIATION = 0.1
"""拟人等待的相对抖动幅度。"""


class ActionExecutor:
    """通过操作端口执行决策。

    Parameters
    ----------
    actuation:
        触控端口。
    layout:
        点击位置配置。
    human_like:
        是否启用拟人抖动。
    enable_recovery:
        为 ``False`` 时跳过 ErrorRecovery 决策。
    rng:
        随机数源，测试时可传入固定种子。
    """

    def __init__(
        self,
        actuation: ActuationPort,
        layout: LayoutConfig | None = None,
        *,
        human_like: bool = True,
        enable_recovery: bool = True,
        rng: random.Random | None = None,
    ) -> None:
        self._actuation = actuation
        self._layout = layout or LayoutConfig()
        self._human_like = human_like
        self._enable_recovery = enable_recovery
        self._rng = rng or random.Random()

    # ── 公共接口 ──

    def execute(self, decision: Decision) -> None:
        """执行一个决策。

        Raises
        ------
        ActionExecutionFailure
            操作端口返回失败或参数越界。
        """
        match decision:
            case CardSelection(indices=indices):
                self._select_cards(indices)
            case SkillUsage():
                self._use_skill(decision)
            case NPUsage(servant_index=servant_index):
                self._tap("宝具", self._slot(self._layout.noble_phantasms, servant_index, "宝具"))
                self._delay(AFTER_NP_MS, "宝具")
            case Wait(duration_ms=duration_ms):
                self._delay(duration_ms, "等待")
            case ErrorRecovery(action=action):
                self._recover(action)
            case NoAction():
                pass
            case _:
                assert_never(decision)

    def wait(self, duration_ms: int, name: str = "等待") -> None:
        """固定时长等待（非战术画面使用）。"""
        self._delay(duration_ms, name)

    def dismiss(self) -> None:
        """点击通用关闭位置（结算 / 弹窗）。"""
        self._tap("关闭", self._layout.dismiss)

    # ── 各类操作 ──

    def _select_cards(self, indices: tuple[int, ...]) -> None:
        points = [self._jittered(self._slot(self._layout.cards, i, "指令卡")) for i in indices]
        logger.debug("[操作] 出卡 {}", list(indices))
        if not self._actuation.tap_sequence(points, self._vary(CARD_TAP_INTERVAL_MS)):
            raise ActionExecutionFailure("出卡", f"点击序列失败: {list(indices)}")
        self._delay(AFTER_CARDS_MS, "出卡")

    def _use_skill(self, usage: SkillUsage) -> None:
        if usage.is_master:
            position = self._slot(self._layout.master_skills, usage.skill_index, "御主技能")
        else:
            position = self._slot(
                self._layout.skills, usage.servant_index * 3 + usage.skill_index, "技能"
            )
        self._tap("技能", position)
        self._delay(AFTER_SKILL_MS, "技能")
        if usage.target_index is not None and usage.target_index >= 0:
            self._tap("技能目标", self._slot(self._layout.targets, usage.target_index, "技能目标"))
            self._delay(AFTER_TARGET_MS, "技能目标")

    def _recover(self, action: str) -> None:
        if not self._enable_recovery:
            logger.info("[操作] 恢复已禁用，跳过 {}", action)
            return
        try:
            routine = RecoveryAction(action)
        except ValueError as e:
            raise ActionExecutionFailure("恢复", f"未知恢复例程: {action}") from e
        logger.info("[操作] 执行恢复例程: {}", routine.value)
        self._delay(RECOVERY_DELAYS_MS[routine], routine.value)

    # ── 底层 ──

    def _slot(self, positions: list[Position], index: int, name: str) -> Position:
        if not 0 <= index < len(positions):
            raise ActionExecutionFailure(name, f"位置编号越界: {index}")
        return positions[index]

    def _tap(self, name: str, position: Position) -> None:
        x, y = self._jittered(position)
        if not self._actuation.tap(x, y):
            raise ActionExecutionFailure(name, f"点击 ({x:.3f}, {y:.3f}) 失败")

    def _delay(self, ms: int, name: str) -> None:
        if ms <= 0:
            return
        if not self._actuation.delay(self._vary(ms)):
            raise ActionExecutionFailure(name, f"等待 {ms}ms 失败")

    def _vary(self, ms: int) -> int:
        if not self._human_like:
            return ms
        return max(0, round(ms * self._rng.uniform(1 - TIMING_VARIATION, 1 + TIMING_VARIATION)))

    def _jittered(self, position: Position) -> Position:
        if not self._human_like or self._layout.jitter == 0:
            return position
        j = self._layout.jitter
        x, y = position
        return (
            min(1.0, max(0.0, x + self._rng.uniform(-j, j))),
            min(1.0, max(0.0, y + self._rng.uniform(-j, j))),
        )
