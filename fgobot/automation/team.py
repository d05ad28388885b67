"""队伍配置。

除 ``strategy`` (选择作战计划) 与 ``objective`` (出卡倾向) 外，
其余字段对控制器不透明，仅用于日志与状态展示。

YAML 格式::

    name: 周回队
    servant_ids: [215, 284, 284]
    craft_essence_ids: [1234]
    strategy: 3_turn_farming
    objective: farming
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field, ValidationError, field_validator

from fgobot.infra.exceptions import ConfigError
from fgobot.infra.file_utils import load_yaml
from fgobot.types import BattleObjective


class Team(BaseModel):
    """出战队伍。"""

    model_config = {"frozen": True}

    name: str
    servant_ids: list[int] = Field(default_factory=list)
    craft_essence_ids: list[int] = Field(default_factory=list)
    strategy: str = ""
    """作战计划名，见 :meth:`~fgobot.battle.plan.BattlePlan.resolve`"""
    objective: BattleObjective = BattleObjective.FARMING

    @field_validator("name")
    @classmethod
    def _validate_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("队伍名称不能为空")
        return v

    @classmethod
    def from_yaml(cls, path: str | Path) -> Team:
        """从 YAML 文件加载队伍，校验失败抛出 :class:`ConfigError`。"""
        try:
            return cls.model_validate(load_yaml(path))
        except ValidationError as e:
            raise ConfigError(f"队伍文件 {path} 校验失败: {e}") from e
