"""决策引擎 — 由画面状态与战斗上下文产生单个决策。

``DecisionEngine`` 是战斗系统的决策核心::

    画面状态 + BattleContext + 指令卡 + 技能 → Decision

决策本身是纯计算：不访问设备、不读取历史、不使用随机数，
相同输入总是产生相同输出。引擎仅维护计数器与决策历史，供日志和统计使用。

模块拆分::

    scoring.py   — 指令卡组合评分
    priority.py  — 技能 / 宝具优先级
    plan.py      — 作战计划 (YAML 规则)
    history.py   — 决策记录
    engine.py    — 状态分派与记录 (本文件)

使用方式::

    engine = DecisionEngine(plan=BattlePlan.builtin("3_turn_farming"))
    decision = engine.decide(BattleState.COMMAND_SELECTION, context, cards, skills)
"""

from __future__ import annotations

import time
from collections.abc import Sequence

from loguru import logger

from fgobot.battle.context import BattleContext, CardInfo, SkillInfo
from fgobot.battle.decision import (
    NO_ACTION,
    CardSelection,
    Decision,
    ErrorRecovery,
    NoAction,
    NPUsage,
    SkillUsage,
    Wait,
    describe,
)
from fgobot.battle.history import DecisionHistory, DecisionRecord, DecisionStat
from fgobot.battle.plan import BattlePlan
from fgobot.battle.priority import rank_noble_phantasms, rank_skills
from fgobot.battle.scoring import CHAIN_SIZE, build_reasoning, select_best
from fgobot.infra.config import DecisionConfig
from fgobot.infra.exceptions import DecisionFailure
from fgobot.types import BattleState, RecoveryAction

# 各画面的固定等待 (毫秒)
CARD_WAIT_MS = 500
SUPPORT_WAIT_MS = 1000
BATTLE_START_WAIT_MS = 2000
RESULT_WAIT_MS = 2000
QUEST_WAIT_MS = 1500

DEFAULT_DECISION_TIMEOUT_MS = 10000


class DecisionEngine:
    """按画面状态分派的决策引擎。

    Parameters
    ----------
    config:
        决策配置，为 ``None`` 时使用默认值。
    plan:
        作战计划，为 ``None`` 时仅使用情境规则。
    enable_learning:
        是否记录决策历史。
    decision_timeout_ms:
        单次决策耗时超过该值时输出警告。
    """

    def __init__(
        self,
        config: DecisionConfig | None = None,
        plan: BattlePlan | None = None,
        *,
        enable_learning: bool = True,
        decision_timeout_ms: int = DEFAULT_DECISION_TIMEOUT_MS,
    ) -> None:
        self._config = config or DecisionConfig()
        self._plan = plan or BattlePlan()
        self._enable_learning = enable_learning
        self._decision_timeout_ms = decision_timeout_ms
        self._history = DecisionHistory(self._config.history_size)
        self._turn_count = 0
        self._battle_count = 0

    # ═══════════════════════════════════════════════════════════════════════════
    # 属性
    # ═══════════════════════════════════════════════════════════════════════════

    @property
    def config(self) -> DecisionConfig:
        return self._config

    @property
    def plan(self) -> BattlePlan:
        return self._plan

    @property
    def history(self) -> DecisionHistory:
        return self._history

    @property
    def turn_count(self) -> int:
        """已做出的出卡决策次数。"""
        return self._turn_count

    @property
    def battle_count(self) -> int:
        """已结束的战斗场数。"""
        return self._battle_count

    def set_plan(self, plan: BattlePlan) -> None:
        self._plan = plan
        logger.info("[决策] 切换作战计划: {}", plan.name or "<空计划>")

    # ═══════════════════════════════════════════════════════════════════════════
    # 公共接口
    # ═══════════════════════════════════════════════════════════════════════════

    def decide(
        self,
        state: BattleState,
        context: BattleContext,
        cards: Sequence[CardInfo] = (),
        skills: Sequence[SkillInfo] = (),
    ) -> Decision:
        """根据画面状态产生一个决策。

        决策过程中的任何异常都会被记录并转换为
        ``ErrorRecovery("restart_battle")``，本方法不会抛出异常。
        """
        start = time.perf_counter()
        try:
            decision = self._dispatch(state, context, cards, skills)
        except Exception as e:
            logger.opt(exception=True).error("[决策] 决策计算异常: {}", e)
            decision = ErrorRecovery(
                RecoveryAction.RESTART_BATTLE.value, f"决策异常: {e}"
            )
        self._finish(state, decision, start)
        return decision

    def plan_turn(
        self,
        context: BattleContext,
        cards: Sequence[CardInfo] = (),
        skills: Sequence[SkillInfo] = (),
    ) -> list[Decision]:
        """指令卡阶段的完整回合: [最优技能?, 最优宝具?, 出卡]。

        仅在 ``DecisionConfig.use_pre_turn_actions`` 开启时生效，
        关闭时等价于 ``[decide(COMMAND_SELECTION, ...)]``。
        """
        if not self._config.use_pre_turn_actions:
            return [self.decide(BattleState.COMMAND_SELECTION, context, cards, skills)]

        start = time.perf_counter()
        try:
            decisions: list[Decision] = []
            skill = self._decide_skill(context, skills)
            if not isinstance(skill, NoAction):
                decisions.append(skill)
            np = self._decide_noble_phantasm(context)
            if not isinstance(np, NoAction):
                decisions.append(np)
            decisions.append(self._decide_cards(context, cards))
        except Exception as e:
            logger.opt(exception=True).error("[决策] 回合规划异常: {}", e)
            decisions = [
                ErrorRecovery(RecoveryAction.RESTART_BATTLE.value, f"决策异常: {e}")
            ]
        for decision in decisions:
            self._finish(BattleState.COMMAND_SELECTION, decision, start)
        return decisions

    def note_battle_finished(self) -> None:
        """一场战斗结束 (由控制器在结算画面调用)。"""
        self._battle_count += 1

    def decision_stats(self) -> dict[str, DecisionStat]:
        """按决策类型统计次数与平均耗时。"""
        return self._history.stats()

    def reset(self) -> None:
        """清空计数器与决策历史。"""
        self._turn_count = 0
        self._battle_count = 0
        self._history.reset()
        logger.debug("[决策] 引擎已重置")

    # ═══════════════════════════════════════════════════════════════════════════
    # 状态分派
    # ═══════════════════════════════════════════════════════════════════════════

    def _dispatch(
        self,
        state: BattleState,
        context: BattleContext,
        cards: Sequence[CardInfo],
        skills: Sequence[SkillInfo],
    ) -> Decision:
        match state:
            case BattleState.COMMAND_SELECTION:
                return self._decide_cards(context, cards)
            case BattleState.SKILL_SELECTION:
                return self._decide_skill(context, skills)
            case BattleState.NP_SELECTION:
                return self._decide_noble_phantasm(context)
            case BattleState.SUPPORT_SELECTION:
                return Wait(SUPPORT_WAIT_MS, "等待助战列表")
            case BattleState.BATTLE_START:
                return Wait(BATTLE_START_WAIT_MS, "等待战斗开始")
            case BattleState.BATTLE_RESULT:
                return Wait(RESULT_WAIT_MS, "等待结算")
            case BattleState.QUEST_SELECTION:
                return Wait(QUEST_WAIT_MS, "等待关卡选择")
            case BattleState.AP_RECOVERY:
                return ErrorRecovery(RecoveryAction.HANDLE_AP_RECOVERY.value, "体力不足")
            case BattleState.ERROR:
                return ErrorRecovery(RecoveryAction.SCREENSHOT_ANALYSIS.value, "错误画面")
            case _:
                return NO_ACTION

    def _decide_cards(self, context: BattleContext, cards: Sequence[CardInfo]) -> Decision:
        if len(cards) < CHAIN_SIZE:
            return Wait(CARD_WAIT_MS, f"指令卡不足 ({len(cards)} 张)")
        indices = [c.index for c in cards]
        if len(set(indices)) != len(indices):
            raise DecisionFailure(f"指令卡编号重复: {indices}")
        best = select_best(cards, context.objective)
        if best is None:
            return Wait(CARD_WAIT_MS, "无可用组合")
        self._turn_count += 1
        return CardSelection(best.indices, build_reasoning(best))

    def _decide_skill(self, context: BattleContext, skills: Sequence[SkillInfo]) -> Decision:
        ranked = rank_skills(skills, context, self._plan)
        if not ranked:
            return NO_ACTION
        top = ranked[0]
        return SkillUsage(
            servant_index=top.servant_index,
            skill_index=top.skill_index,
            target_index=top.target_index,
            reasoning=f"{top.skill_name}: {top.reason} ({top.priority:.2f})",
        )

    def _decide_noble_phantasm(self, context: BattleContext) -> Decision:
        ranked = rank_noble_phantasms(context)
        if not ranked:
            return NO_ACTION
        top = ranked[0]
        return NPUsage(
            servant_index=top.servant_index,
            reasoning=f"从者{top.servant_index + 1}宝具: {top.reason} ({top.priority:.2f})",
        )

    # ═══════════════════════════════════════════════════════════════════════════
    # 记录
    # ═══════════════════════════════════════════════════════════════════════════

    def _finish(self, state: BattleState, decision: Decision, start: float) -> None:
        elapsed_ms = (time.perf_counter() - start) * 1000
        if elapsed_ms > self._decision_timeout_ms:
            logger.warning(
                "[决策] 决策耗时 {:.0f}ms 超过阈值 {}ms ({})",
                elapsed_ms, self._decision_timeout_ms, state.value,
            )
        logger.debug("[决策] [{}] {} ({:.1f}ms)", state.value, describe(decision), elapsed_ms)
        if self._enable_learning:
            self._history.add(DecisionRecord(
                timestamp=time.time(),
                battle_state=state,
                decision=decision,
                processing_time_ms=elapsed_ms,
                battle_count=self._battle_count,
            ))
