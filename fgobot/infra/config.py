"""配置管理 — 基于 Pydantic v2。

配置从 YAML 文件加载，经过 Pydantic 校验后生成不可变的配置对象。

使用方式::

    from fgobot.infra.config import ConfigManager

    config = ConfigManager.load("user_settings.yaml")
    print(config.automation.max_battles)
"""

from __future__ import annotations

import datetime
from pathlib import Path
from typing import Any, Literal

from loguru import logger
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .exceptions import ConfigError
from .file_utils import load_yaml, merge_dicts


Position = tuple[float, float]
"""相对坐标 ``(x, y)``，取值 0.0–1.0。"""


def _check_positions(positions: list[Position], expected: int, name: str) -> list[Position]:
    if len(positions) != expected:
        raise ValueError(f"{name} 需要 {expected} 个坐标，实际 {len(positions)} 个")
    for x, y in positions:
        if not (0.0 <= x <= 1.0 and 0.0 <= y <= 1.0):
            raise ValueError(f"{name} 坐标越界: ({x}, {y})，应在 0.0–1.0 之间")
    return positions


# ── 子配置模型 ──


class AutomationConfig(BaseModel):
    """自动化会话配置。"""

    model_config = {"frozen": True}

    max_battles: int = -1
    """最多完成的战斗场数。-1 = 不限"""
    max_errors: int = 5
    """会话内累计错误上限（与循环内固定的连续失败阈值 3 相互独立）"""
    screenshot_interval_ms: int = 1000
    """两次截图的最小间隔 (毫秒)"""
    decision_timeout_ms: int = 10000
    """决策耗时告警阈值 (毫秒)"""
    enable_learning: bool = True
    """是否保留决策历史"""
    enable_recovery: bool = True
    """是否执行 ErrorRecovery 决策；关闭时跳过"""
    human_like_timing: bool = True
    """是否为操作延迟加入随机抖动"""

    @field_validator("max_battles")
    @classmethod
    def _validate_max_battles(cls, v: int) -> int:
        if v < -1 or v == 0:
            raise ValueError("max_battles 必须为 -1 (不限) 或正整数")
        return v

    @field_validator("max_errors")
    @classmethod
    def _validate_max_errors(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_errors 必须为正整数")
        return v

    @field_validator("screenshot_interval_ms", "decision_timeout_ms")
    @classmethod
    def _validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("时间参数不能为负数")
        return v


class DecisionConfig(BaseModel):
    """决策引擎配置。"""

    model_config = {"frozen": True}

    use_pre_turn_actions: bool = False
    """指令卡阶段是否先释放技能 / 宝具再出卡"""
    history_size: int = 1000
    """决策历史环形缓冲区容量"""

    @field_validator("history_size")
    @classmethod
    def _validate_history_size(cls, v: int) -> int:
        if v < 1:
            raise ValueError("history_size 必须为正整数")
        return v


class LayoutConfig(BaseModel):
    """画面点击位置（相对坐标）。

    默认值对应 16:9 横屏战斗界面。
    """

    model_config = {"frozen": True}

    cards: list[Position] = Field(
        default_factory=lambda: [(0.1, 0.72), (0.3, 0.72), (0.5, 0.72), (0.7, 0.72), (0.9, 0.72)]
    )
    """5 张指令卡位置"""
    skills: list[Position] = Field(
        default_factory=lambda: [
            (0.05, 0.82), (0.12, 0.82), (0.19, 0.82),
            (0.30, 0.82), (0.37, 0.82), (0.44, 0.82),
            (0.55, 0.82), (0.62, 0.82), (0.69, 0.82),
        ]
    )
    """3 名从者 × 3 个技能位置（按从者顺序展开）"""
    master_skills: list[Position] = Field(
        default_factory=lambda: [(0.77, 0.43), (0.84, 0.43), (0.91, 0.43)]
    )
    """御主技能位置"""
    targets: list[Position] = Field(
        default_factory=lambda: [(0.26, 0.6), (0.5, 0.6), (0.74, 0.6)]
    )
    """技能目标选择位置"""
    noble_phantasms: list[Position] = Field(
        default_factory=lambda: [(0.31, 0.28), (0.5, 0.28), (0.69, 0.28)]
    )
    """宝具卡位置"""
    dismiss: Position = (0.5, 0.5)
    """关闭弹窗 / 跳过结算的通用点击位置"""
    jitter: float = 0.01
    """拟人点击的最大坐标偏移"""

    @field_validator("cards")
    @classmethod
    def _validate_cards(cls, v: list[Position]) -> list[Position]:
        return _check_positions(v, 5, "cards")

    @field_validator("skills")
    @classmethod
    def _validate_skills(cls, v: list[Position]) -> list[Position]:
        return _check_positions(v, 9, "skills")

    @field_validator("master_skills", "targets", "noble_phantasms")
    @classmethod
    def _validate_triples(cls, v: list[Position]) -> list[Position]:
        return _check_positions(v, 3, "slots")

    @field_validator("dismiss")
    @classmethod
    def _validate_dismiss(cls, v: Position) -> Position:
        return _check_positions([v], 1, "dismiss")[0]

    @field_validator("jitter")
    @classmethod
    def _validate_jitter(cls, v: float) -> float:
        if not 0.0 <= v <= 0.1:
            raise ValueError("jitter 应在 0.0–0.1 之间")
        return v


class LogConfig(BaseModel):
    """日志配置。"""

    model_config = {"frozen": True}

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    """日志级别"""
    root: Path = Path("log")
    """日志保存根目录"""
    dir: Path | None = None
    """日志保存路径。自动按日期生成"""
    save_images: bool = False
    """出错时是否保存画面"""

    @model_validator(mode="after")
    def _set_log_dir(self) -> LogConfig:
        if self.dir is None:
            ts = datetime.datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
            object.__setattr__(self, "dir", self.root / ts)
        return self


# ── 顶层配置 ──


class UserConfig(BaseModel):
    """用户配置（顶层聚合）。"""

    model_config = {"frozen": True}

    automation: AutomationConfig = Field(default_factory=AutomationConfig)
    decision: DecisionConfig = Field(default_factory=DecisionConfig)
    layout: LayoutConfig = Field(default_factory=LayoutConfig)
    log: LogConfig = Field(default_factory=LogConfig)

    plan_root: Path | None = None
    """自定义作战计划目录"""

    @classmethod
    def from_yaml(cls, path: str | Path) -> UserConfig:
        """从 YAML 文件加载配置。

        Raises
        ------
        ConfigError
            字段校验失败。
        """
        return _validate_user_config(load_yaml(path), path)


def _validate_user_config(data: dict[str, Any], source: str | Path) -> UserConfig:
    try:
        return UserConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"配置文件 {source} 校验失败: {e}") from e


# ── ConfigManager ──


class ConfigManager:
    """配置管理器 — 提供加载入口。"""

    @staticmethod
    def load(path: str | Path, overrides: dict[str, Any] | None = None) -> UserConfig:
        """从文件加载用户配置。不存在时返回默认配置。

        Parameters
        ----------
        path:
            YAML 配置文件路径。
        overrides:
            额外覆盖项（深度合并到文件内容之上），如命令行参数。
        """
        path = Path(path)
        if path.exists():
            data = load_yaml(path)
            logger.info("已加载配置: {}", path)
        else:
            logger.warning("配置文件 {} 不存在，使用默认配置", path)
            data = {}
        if overrides:
            data = merge_dicts(data, overrides)
        return _validate_user_config(data, path)
