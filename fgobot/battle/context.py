"""战斗上下文 — 每轮循环重新构建的不可变快照。

``BattleContext`` 由控制器根据感知端口的输出在每轮构建，
传给决策引擎后不会被修改；下一轮重新构建新的实例。
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType

from fgobot.types import BattleObjective, CardType

SERVANT_SLOTS = 3
"""前排从者数量。"""

SKILLS_PER_SERVANT = 3

MAX_CARDS = 5
"""每回合最多可见指令卡数量。"""

MASTER_SERVANT_INDEX = -1
"""御主技能使用的 ``servant_index``。"""


@dataclass(frozen=True, slots=True)
class ServantState:
    """单个前排从者的状态。

    Attributes
    ----------
    index:
        站位 (0–2)。
    is_alive:
        是否存活。
    health_percentage:
        剩余血量比例 (0.0–1.0)。
    np_gauge:
        宝具槽 (0–100)。
    buffs, debuffs:
        状态名称列表。
    skills_available:
        3 个技能是否可用。
    """

    index: int
    is_alive: bool = True
    health_percentage: float = 1.0
    np_gauge: int = 0
    buffs: tuple[str, ...] = ()
    debuffs: tuple[str, ...] = ()
    skills_available: tuple[bool, bool, bool] = (True, True, True)

    def __post_init__(self) -> None:
        if not 0 <= self.index < SERVANT_SLOTS:
            raise ValueError(f"从者站位越界: {self.index}")
        if not 0.0 <= self.health_percentage <= 1.0:
            raise ValueError(f"血量比例越界: {self.health_percentage}")
        if not 0 <= self.np_gauge <= 100:
            raise ValueError(f"宝具槽越界: {self.np_gauge}")
        if len(self.skills_available) != SKILLS_PER_SERVANT:
            raise ValueError("skills_available 长度必须为 3")
        object.__setattr__(self, "buffs", tuple(self.buffs))
        object.__setattr__(self, "debuffs", tuple(self.debuffs))
        object.__setattr__(self, "skills_available", tuple(self.skills_available))


@dataclass(frozen=True, slots=True)
class CardInfo:
    """一张已识别的指令卡。

    ``index`` 为识别顺序，同一轮内唯一；出卡时按该值点击对应位置。
    """

    index: int
    type: CardType
    servant_index: int
    effectiveness: float = 1.0

    def __post_init__(self) -> None:
        if not 0 <= self.servant_index < SERVANT_SLOTS:
            raise ValueError(f"卡牌所属从者越界: {self.servant_index}")
        if self.effectiveness <= 0:
            raise ValueError(f"卡牌效果系数必须为正: {self.effectiveness}")


@dataclass(frozen=True, slots=True)
class SkillInfo:
    """一个已识别的技能按钮。

    御主技能的 ``servant_index`` 为 :data:`MASTER_SERVANT_INDEX`。
    """

    servant_index: int
    skill_index: int
    skill_name: str = ""
    is_available: bool = True
    cooldown: int = 0
    is_master: bool = False

    def __post_init__(self) -> None:
        if not 0 <= self.skill_index < SKILLS_PER_SERVANT:
            raise ValueError(f"技能编号越界: {self.skill_index}")
        if self.is_master:
            object.__setattr__(self, "servant_index", MASTER_SERVANT_INDEX)
        elif not 0 <= self.servant_index < SERVANT_SLOTS:
            raise ValueError(f"技能所属从者越界: {self.servant_index}")

    @property
    def key(self) -> str:
        """冷却表中的键，如 ``"0-2"``、``"master-1"``。"""
        owner = "master" if self.is_master else str(self.servant_index)
        return f"{owner}-{self.skill_index}"

    @property
    def display_name(self) -> str:
        if self.skill_name:
            return self.skill_name
        if self.is_master:
            return f"御主技能{self.skill_index + 1}"
        return f"从者{self.servant_index + 1}技能{self.skill_index + 1}"


@dataclass(frozen=True, slots=True)
class BattleInfo:
    """感知端口给出的回合信息。"""

    turn: int = 1
    phase: int = 1
    enemy_count: int = 0


def _default_servants() -> tuple[ServantState, ...]:
    return tuple(ServantState(index=i) for i in range(SERVANT_SLOTS))


@dataclass(frozen=True, slots=True)
class BattleContext:
    """单轮战斗上下文快照。

    Attributes
    ----------
    turn:
        当前回合 (≥1)。
    phase:
        当前波次 (≥1)。
    enemy_count:
        场上敌人数量 (≥0)。
    servant_states:
        3 名前排从者状态。
    available_cards:
        本轮识别到的指令卡 (0–5 张)。
    np_gauges:
        3 名从者的宝具槽。
    skill_cooldowns:
        技能剩余冷却，键见 :attr:`SkillInfo.key`。
    objective:
        会话战术目标。
    """

    turn: int = 1
    phase: int = 1
    enemy_count: int = 0
    servant_states: tuple[ServantState, ...] = field(default_factory=_default_servants)
    available_cards: tuple[CardInfo, ...] = ()
    np_gauges: tuple[int, ...] = (0, 0, 0)
    skill_cooldowns: Mapping[str, int] = field(default_factory=dict)
    objective: BattleObjective = BattleObjective.FARMING

    def __post_init__(self) -> None:
        if self.turn < 1:
            raise ValueError(f"回合数必须 ≥1: {self.turn}")
        if self.phase < 1:
            raise ValueError(f"波次必须 ≥1: {self.phase}")
        if self.enemy_count < 0:
            raise ValueError(f"敌人数量不能为负: {self.enemy_count}")
        if len(self.servant_states) != SERVANT_SLOTS:
            raise ValueError(f"servant_states 长度必须为 3，实际 {len(self.servant_states)}")
        if len(self.np_gauges) != SERVANT_SLOTS:
            raise ValueError(f"np_gauges 长度必须为 3，实际 {len(self.np_gauges)}")
        if any(not 0 <= g <= 100 for g in self.np_gauges):
            raise ValueError(f"宝具槽越界: {self.np_gauges}")
        if len(self.available_cards) > MAX_CARDS:
            raise ValueError(f"指令卡最多 {MAX_CARDS} 张，实际 {len(self.available_cards)}")
        indices = [c.index for c in self.available_cards]
        if len(set(indices)) != len(indices):
            raise ValueError(f"指令卡编号重复: {indices}")

        object.__setattr__(self, "servant_states", tuple(self.servant_states))
        object.__setattr__(self, "available_cards", tuple(self.available_cards))
        object.__setattr__(self, "np_gauges", tuple(self.np_gauges))
        object.__setattr__(
            self, "skill_cooldowns", MappingProxyType(dict(self.skill_cooldowns))
        )

    @classmethod
    def build(
        cls,
        info: BattleInfo,
        servants: Sequence[ServantState],
        cards: Sequence[CardInfo],
        skills: Sequence[SkillInfo] = (),
        objective: BattleObjective = BattleObjective.FARMING,
    ) -> BattleContext:
        """由感知结果构建上下文。

        缺失的站位补为阵亡占位；宝具槽与冷却表从从者状态与技能列表推导。
        """
        by_index = {s.index: s for s in servants}
        states = tuple(
            by_index.get(i, ServantState(index=i, is_alive=False, health_percentage=0.0))
            for i in range(SERVANT_SLOTS)
        )
        cooldowns = {s.key: s.cooldown for s in skills if s.cooldown > 0}
        return cls(
            turn=info.turn,
            phase=info.phase,
            enemy_count=info.enemy_count,
            servant_states=states,
            available_cards=tuple(cards),
            np_gauges=tuple(s.np_gauge for s in states),
            skill_cooldowns=cooldowns,
            objective=objective,
        )

    def servant(self, index: int) -> ServantState | None:
        """按站位取从者状态，越界返回 ``None``。"""
        if 0 <= index < len(self.servant_states):
            return self.servant_states[index]
        return None

    def np_gauge(self, index: int) -> int:
        """从者宝具槽，取从者状态与宝具槽列表中的较大值。"""
        servant = self.servant(index)
        own = servant.np_gauge if servant is not None else 0
        listed = self.np_gauges[index] if 0 <= index < len(self.np_gauges) else 0
        return max(own, listed)

    def is_on_cooldown(self, skill: SkillInfo) -> bool:
        """技能是否处于冷却或不可用。"""
        if not skill.is_available or skill.cooldown > 0:
            return True
        return self.skill_cooldowns.get(skill.key, 0) > 0
