"""作战计划 — YAML 配置驱动的技能释放规则。

计划为每个 (波次, 回合) 指定要释放的技能，命中规则的技能获得最高优先级。
未命中规则时由 :mod:`fgobot.battle.priority` 的情境规则决定。

YAML 格式::

    name: 3_turn_farming
    rules:
      - {battle: 1, turn: 1, servant: 0, skill: 0}
      - {battle: 1, turn: 1, master: true, skill: 0, target: 0}
      - {battle: 2, turn: 2, servant: 1, skill: 0, description: "充能"}
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from loguru import logger

from fgobot.battle.context import MASTER_SERVANT_INDEX, SkillInfo
from fgobot.infra.exceptions import ConfigError
from fgobot.infra.file_utils import load_yaml, save_yaml


@dataclass(frozen=True, slots=True)
class SkillRule:
    """一条按波次 / 回合触发的技能规则。

    Attributes
    ----------
    battle:
        波次 (与 ``BattleContext.phase`` 对应)。
    turn:
        回合。
    servant_index:
        技能所属从者，御主技能为 -1。
    skill_index:
        技能编号 (0–2)。
    target:
        技能目标站位，无需选择目标时为 ``None``。
    description:
        规则说明（日志 / 决策说明用）。
    """

    battle: int
    turn: int
    servant_index: int
    skill_index: int
    target: int | None = None
    description: str = ""

    @property
    def is_master(self) -> bool:
        return self.servant_index == MASTER_SERVANT_INDEX

    def matches(self, skill: SkillInfo, turn: int, battle: int) -> bool:
        return (
            self.turn == turn
            and self.battle == battle
            and self.servant_index == skill.servant_index
            and self.skill_index == skill.skill_index
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SkillRule:
        """解析一条规则。

        Raises
        ------
        ConfigError
            缺少 ``skill`` 或字段无法转换为整数。
        """
        try:
            master = bool(data.get("master", False))
            servant = MASTER_SERVANT_INDEX if master else int(data.get("servant", 0))
            target = data.get("target")
            return cls(
                battle=int(data.get("battle", 1)),
                turn=int(data.get("turn", 1)),
                servant_index=servant,
                skill_index=int(data["skill"]),
                target=int(target) if target is not None else None,
                description=str(data.get("description", "")),
            )
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise ConfigError(f"无法解析技能规则: {data!r}") from e

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"battle": self.battle, "turn": self.turn, "skill": self.skill_index}
        if self.is_master:
            data["master"] = True
        else:
            data["servant"] = self.servant_index
        if self.target is not None:
            data["target"] = self.target
        if self.description:
            data["description"] = self.description
        return data


@dataclass
class BattlePlan:
    """技能释放计划。"""

    name: str = ""
    rules: list[SkillRule] = field(default_factory=list)

    def find_rule(self, skill: SkillInfo, turn: int, battle: int) -> SkillRule | None:
        """返回首个匹配的规则。"""
        for rule in self.rules:
            if rule.matches(skill, turn, battle):
                return rule
        return None

    @classmethod
    def from_dict(cls, data: dict[str, Any], name: str = "") -> BattlePlan:
        rules = [SkillRule.from_dict(r) for r in data.get("rules", []) or []]
        plan = cls(name=name or data.get("name", ""), rules=rules)
        logger.info("加载作战计划: {} ({} 条规则)", plan.name or "<未命名>", len(rules))
        return plan

    @classmethod
    def from_yaml(cls, path: str | Path) -> BattlePlan:
        data = load_yaml(path)
        return cls.from_dict(data, name=data.get("name") or Path(path).stem)

    def save(self, path: str | Path) -> None:
        save_yaml({"name": self.name, "rules": [r.to_dict() for r in self.rules]}, path)

    @classmethod
    def builtin(cls, name: str) -> BattlePlan:
        """内置计划。

        Raises
        ------
        KeyError
            未知计划名。
        """
        if name not in BUILTIN_PLANS:
            raise KeyError(f"未知的内置计划: {name!r}，可选: {sorted(BUILTIN_PLANS)}")
        return cls.from_dict(BUILTIN_PLANS[name], name=name)

    @classmethod
    def resolve(cls, strategy: str, plan_root: Path | None = None) -> BattlePlan:
        """按队伍策略标签查找计划：先查 *plan_root* 下的 YAML，再查内置计划。

        均未找到时返回空计划（仅使用情境规则）。
        """
        if plan_root is not None:
            path = Path(plan_root) / f"{strategy}.yaml"
            if path.exists():
                return cls.from_yaml(path)
        if strategy in BUILTIN_PLANS:
            return cls.builtin(strategy)
        if strategy:
            logger.debug("策略 {} 无对应计划，仅使用情境规则", strategy)
        return cls(name=strategy)


BUILTIN_PLANS: dict[str, dict[str, Any]] = {
    "3_turn_farming": {
        "rules": [
            {"battle": 1, "turn": 1, "servant": 0, "skill": 0, "description": "开局增伤"},
            {"battle": 1, "turn": 1, "servant": 0, "skill": 1, "description": "开局充能"},
            {"battle": 1, "turn": 1, "master": True, "skill": 0, "description": "御主增益"},
            {"battle": 2, "turn": 2, "servant": 1, "skill": 0, "description": "第二波增伤"},
            {"battle": 3, "turn": 3, "servant": 2, "skill": 0, "description": "第三波增伤"},
        ],
    },
    "buster_loop": {
        "rules": [
            {"battle": 1, "turn": 1, "servant": 0, "skill": 0},
            {"battle": 1, "turn": 1, "servant": 0, "skill": 2},
            {"battle": 1, "turn": 1, "master": True, "skill": 1, "target": 0, "description": "Buster 增益"},
            {"battle": 2, "turn": 2, "servant": 1, "skill": 1},
            {"battle": 3, "turn": 3, "servant": 2, "skill": 0},
        ],
    },
    "arts_loop": {
        "rules": [
            {"battle": 1, "turn": 1, "servant": 0, "skill": 1, "description": "宝具充能"},
            {"battle": 1, "turn": 1, "master": True, "skill": 2, "description": "Arts 增益"},
            {"battle": 2, "turn": 2, "servant": 1, "skill": 0},
            {"battle": 3, "turn": 3, "servant": 2, "skill": 2},
        ],
    },
}
