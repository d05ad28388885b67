"""全局枚举类型定义。

所有与游戏语义相关的枚举集中于此，供各层引用。
"""

from __future__ import annotations

from enum import Enum


# ── 枚举基类 ──


class BaseEnum(Enum):
    """提供更友好的中文报错信息。"""

    @classmethod
    def _missing_(cls, value: object) -> None:
        supported = ", ".join(str(m.value) for m in cls)
        raise ValueError(f'"{value}" 不是合法的 {cls.__name__} 取值。 支持: [{supported}]')


class StrEnum(str, BaseEnum):
    """字符串枚举基类。"""


# ── 画面状态 ──


class BattleState(StrEnum):
    """当前画面的分类结果。

    由感知端口每轮给出，生命周期不超过一轮循环。
    """

    QUEST_SELECTION = "quest_selection"
    SUPPORT_SELECTION = "support_selection"
    BATTLE_START = "battle_start"
    COMMAND_SELECTION = "command_selection"
    SKILL_SELECTION = "skill_selection"
    NP_SELECTION = "np_selection"
    BATTLE_RESULT = "battle_result"
    AP_RECOVERY = "ap_recovery"
    ERROR = "error"
    UNKNOWN = "unknown"


# ── 战斗 ──


class CardType(StrEnum):
    """指令卡类型。"""

    BUSTER = "Buster"
    ARTS = "Arts"
    QUICK = "Quick"
    NP = "NP"

    @property
    def chain_bonus(self) -> float:
        """同色链加成。"""
        match self:
            case CardType.BUSTER:
                return 1.3
            case CardType.ARTS:
                return 1.5
            case CardType.QUICK:
                return 1.2
            case CardType.NP:
                return 2.0


class BattleObjective(StrEnum):
    """本次会话的战术目标，影响出卡倾向。"""

    FARMING = "farming"
    CHALLENGE = "challenge"
    STORY = "story"
    EVENT = "event"
    DAILY = "daily"


# ── 自动化 ──


class AutomationState(StrEnum):
    """自动化会话状态。

    状态转移图::

        IDLE --initialize(成功)--> IDLE
        IDLE --initialize(失败)--> ERROR
        IDLE --start--> RUNNING
        RUNNING --pause--> PAUSED --resume--> RUNNING
        RUNNING/PAUSED --stop--> STOPPING --> IDLE
        RUNNING --连续失败 3 次--> ERROR
        RUNNING --AP 耗尽--> COMPLETED
    """

    IDLE = "idle"
    INITIALIZING = "initializing"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPING = "stopping"
    ERROR = "error"
    COMPLETED = "completed"

    @property
    def is_active(self) -> bool:
        """循环线程是否应继续运行。"""
        return self in (AutomationState.RUNNING, AutomationState.PAUSED)


class RecoveryAction(StrEnum):
    """错误恢复例程名称。"""

    HANDLE_AP_RECOVERY = "handle_ap_recovery"
    RESTART_BATTLE = "restart_battle"
    SCREENSHOT_ANALYSIS = "screenshot_analysis"
