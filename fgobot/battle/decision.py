"""决策结果 — 封闭的标签联合类型。

每次决策恰好产生以下变体之一，生成后不可变::

    CardSelection | SkillUsage | NPUsage | Wait | ErrorRecovery | NoAction

消费方使用 ``match`` 穷举所有变体，并以 ``assert_never`` 结尾，
新增变体时类型检查会在所有消费方报错。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TypeAlias


@dataclass(frozen=True, slots=True)
class CardSelection:
    """按顺序点击 3 张指令卡。"""

    indices: tuple[int, int, int]
    reasoning: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "indices", tuple(self.indices))
        if len(self.indices) != 3:
            raise ValueError(f"出卡必须为 3 张，实际 {len(self.indices)} 张")


@dataclass(frozen=True, slots=True)
class SkillUsage:
    """释放技能，``servant_index == -1`` 表示御主技能。"""

    servant_index: int
    skill_index: int
    target_index: int | None = None
    reasoning: str = ""

    @property
    def is_master(self) -> bool:
        return self.servant_index < 0


@dataclass(frozen=True, slots=True)
class NPUsage:
    """释放宝具。"""

    servant_index: int
    reasoning: str = ""


@dataclass(frozen=True, slots=True)
class Wait:
    """等待指定毫秒数。"""

    duration_ms: int
    reasoning: str = ""


@dataclass(frozen=True, slots=True)
class ErrorRecovery:
    """执行指定的恢复例程。"""

    action: str
    reasoning: str = ""


@dataclass(frozen=True, slots=True)
class NoAction:
    """不执行任何操作。"""

    reasoning: str = ""


NO_ACTION = NoAction()

Decision: TypeAlias = CardSelection | SkillUsage | NPUsage | Wait | ErrorRecovery | NoAction


def describe(decision: Decision) -> str:
    """单行描述，用于日志。"""
    name = type(decision).__name__
    reasoning = getattr(decision, "reasoning", "")
    return f"{name}({reasoning})" if reasoning else name
