"""技能与宝具的优先级规则。

技能优先级按以下顺序判定，先命中者生效::

    (a) 作战计划中的波次/回合规则      → 0.95
    (b) 第 1 回合的从者一技能          → 0.8
    (c) 敌人数 > 2 时的从者二技能       → 0.7
    (d) 第 3 回合起的从者三技能        → 0.9
    (e) 御主技能按槽位                 → 0.6 / 0.4 / 0.3
    (f) 其他                          → 0.5

宝具优先级（宝具槽满且存活的从者）::

    血量 < 30%   → 1.0 (紧急)
    敌人数 ≥ 3   → 0.9 (全体)
    回合 ≥ 3     → 0.8
    刷本目标     → 0.7
    其他         → 0.6

低于阈值（技能 ≤0.3，宝具 ≤0.5）的候选被丢弃，其余按优先级降序排列，
同优先级保持输入顺序。
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from fgobot.battle.context import BattleContext, SkillInfo
from fgobot.battle.plan import BattlePlan
from fgobot.types import BattleObjective

RULE_PRIORITY = 0.95
MASTER_SLOT_PRIORITY = (0.6, 0.4, 0.3)
DEFAULT_SKILL_PRIORITY = 0.5
SKILL_THRESHOLD = 0.3

LOW_HEALTH = 0.3
AOE_ENEMY_COUNT = 3
NP_THRESHOLD = 0.5


@dataclass(frozen=True, slots=True)
class SkillPriority:
    servant_index: int
    skill_index: int
    skill_name: str
    target_index: int | None
    priority: float
    reason: str


@dataclass(frozen=True, slots=True)
class NPTiming:
    servant_index: int
    priority: float
    reason: str


def evaluate_skill(
    skill: SkillInfo,
    context: BattleContext,
    plan: BattlePlan | None = None,
) -> SkillPriority:
    """计算单个技能的优先级（不检查冷却）。"""
    target: int | None = None

    rule = plan.find_rule(skill, context.turn, context.phase) if plan is not None else None
    if rule is not None:
        priority = RULE_PRIORITY
        target = rule.target
        reason = f"计划规则: {rule.description or f'第{rule.battle}波第{rule.turn}回合'}"
    elif skill.is_master:
        priority = MASTER_SLOT_PRIORITY[skill.skill_index]
        reason = f"御主技能槽位 {skill.skill_index + 1}"
    elif context.turn == 1 and skill.skill_index == 0:
        priority, reason = 0.8, "首回合增益"
    elif context.enemy_count > 2 and skill.skill_index == 1:
        priority, reason = 0.7, f"敌人较多 ({context.enemy_count})"
    elif context.turn >= 3 and skill.skill_index == 2:
        priority, reason = 0.9, "后期爆发"
    else:
        priority, reason = DEFAULT_SKILL_PRIORITY, "常规释放"

    return SkillPriority(
        servant_index=skill.servant_index,
        skill_index=skill.skill_index,
        skill_name=skill.display_name,
        target_index=target,
        priority=priority,
        reason=reason,
    )


def rank_skills(
    skills: Sequence[SkillInfo],
    context: BattleContext,
    plan: BattlePlan | None = None,
) -> list[SkillPriority]:
    """对可用技能排序。冷却中或所属从者阵亡的技能不参与。"""
    ranked: list[SkillPriority] = []
    for skill in skills:
        if context.is_on_cooldown(skill):
            continue
        if not skill.is_master:
            servant = context.servant(skill.servant_index)
            if servant is not None and not servant.is_alive:
                continue
        entry = evaluate_skill(skill, context, plan)
        if entry.priority > SKILL_THRESHOLD:
            ranked.append(entry)
    # sorted 为稳定排序
    return sorted(ranked, key=lambda p: p.priority, reverse=True)


def rank_noble_phantasms(context: BattleContext) -> list[NPTiming]:
    """对宝具槽已满的从者排序。"""
    ranked: list[NPTiming] = []
    for servant in context.servant_states:
        if not servant.is_alive or context.np_gauge(servant.index) < 100:
            continue
        if servant.health_percentage < LOW_HEALTH:
            priority, reason = 1.0, "紧急 (血量过低)"
        elif context.enemy_count >= AOE_ENEMY_COUNT:
            priority, reason = 0.9, f"全体清场 (敌人 {context.enemy_count})"
        elif context.turn >= 3:
            priority, reason = 0.8, "后期收尾"
        elif context.objective == BattleObjective.FARMING:
            priority, reason = 0.7, "刷本加速"
        else:
            priority, reason = 0.6, "宝具就绪"
        if priority > NP_THRESHOLD:
            ranked.append(NPTiming(servant_index=servant.index, priority=priority, reason=reason))
    return sorted(ranked, key=lambda t: t.priority, reverse=True)
