"""战斗决策 — 与设备无关的纯决策层。

模块组成::

    battle/
    ├── context.py     # 战斗上下文快照（从者 / 指令卡 / 技能）
    ├── decision.py    # 决策结果联合类型
    ├── scoring.py     # 指令卡组合评分
    ├── plan.py        # 作战计划（YAML 配置驱动）
    ├── priority.py    # 技能 / 宝具优先级
    ├── history.py     # 决策记录
    └── engine.py      # 决策引擎（状态分派）

典型使用::

    from fgobot.battle import BattleContext, DecisionEngine

    engine = DecisionEngine()
    decision = engine.decide(state, context, cards, skills)
"""

from .context import BattleContext, BattleInfo, CardInfo, ServantState, SkillInfo
from .decision import (
    NO_ACTION,
    CardSelection,
    Decision,
    ErrorRecovery,
    NoAction,
    NPUsage,
    SkillUsage,
    Wait,
)
from .plan import BattlePlan, SkillRule
from .history import DecisionHistory, DecisionRecord, DecisionStat
from .engine import DecisionEngine

__all__ = [
    "BattleContext",
    "BattleInfo",
    "CardInfo",
    "ServantState",
    "SkillInfo",
    "Decision",
    "CardSelection",
    "SkillUsage",
    "NPUsage",
    "Wait",
    "ErrorRecovery",
    "NoAction",
    "NO_ACTION",
    "BattlePlan",
    "SkillRule",
    "DecisionHistory",
    "DecisionRecord",
    "DecisionStat",
    "DecisionEngine",
]
