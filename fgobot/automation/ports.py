"""外部端口 — 截图、感知、操作三类能力的抽象接口。

控制器只依赖这些接口，具体实现（模拟器截图、图像识别模型、触控注入）
由调用方注入。所有坐标使用 **相对值** (0.0–1.0)：

- 左上角 = (0.0, 0.0)
- 右下角趋近 (1.0, 1.0)

端口可选实现 ``initialize()`` 与 ``cleanup()``，控制器在
:meth:`~fgobot.automation.controller.AutomationController.initialize` 与
:meth:`~fgobot.automation.controller.AutomationController.cleanup` 中调用。
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TypeAlias

import numpy as np

from fgobot.battle.context import BattleInfo, CardInfo, ServantState, SkillInfo
from fgobot.infra.config import Position
from fgobot.types import BattleState


# ── 截图 ──


@dataclass(frozen=True, slots=True)
class CaptureSuccess:
    """截图成功。

    Attributes
    ----------
    frame:
        RGB uint8 数组 ``(H, W, 3)``。
    timestamp:
        截图时间 (epoch 秒)。
    """

    frame: np.ndarray = field(repr=False)
    timestamp: float


@dataclass(frozen=True, slots=True)
class CaptureError:
    """截图失败。"""

    message: str


CaptureResult: TypeAlias = CaptureSuccess | CaptureError


class CapturePort(ABC):
    """截图端口。"""

    def initialize(self) -> bool:
        """准备截图资源，失败返回 ``False``。"""
        return True

    @abstractmethod
    def capture(self) -> CaptureResult:
        """截取当前画面。失败时返回 :class:`CaptureError`，不抛出异常。"""
        ...

    def cleanup(self) -> None:
        """释放截图资源。"""


# ── 感知 ──


class PerceptionPort(ABC):
    """画面感知端口。"""

    def initialize(self) -> bool:
        """加载识别模型，失败返回 ``False``。"""
        return True

    @abstractmethod
    def classify(self, frame: np.ndarray) -> BattleState:
        """识别当前画面状态。"""
        ...

    @abstractmethod
    def detect_cards(self, frame: np.ndarray) -> list[CardInfo]:
        """识别指令卡，``index`` 为识别顺序。"""
        ...

    @abstractmethod
    def detect_skills(self, frame: np.ndarray) -> list[SkillInfo]:
        """识别技能按钮（含御主技能）。"""
        ...

    @abstractmethod
    def detect_servant_states(self, frame: np.ndarray) -> list[ServantState]:
        """识别前排从者状态。"""
        ...

    @abstractmethod
    def detect_battle_info(self, frame: np.ndarray) -> BattleInfo:
        """识别回合、波次与敌人数量。"""
        ...

    @abstractmethod
    def is_victory(self, frame: np.ndarray) -> bool:
        """结算画面是否为胜利。"""
        ...

    def cleanup(self) -> None:
        """释放识别资源。"""


# ── 操作 ──


class ActuationPort(ABC):
    """触控操作端口。所有方法返回是否成功。"""

    def initialize(self) -> bool:
        return True

    @abstractmethod
    def tap(self, x: float, y: float) -> bool:
        """点击屏幕。

        Parameters
        ----------
        x, y:
            相对坐标 (0.0–1.0)。
        """
        ...

    @abstractmethod
    def tap_sequence(self, points: Sequence[Position], inter_tap_delay_ms: int) -> bool:
        """依次点击多个位置。

        Parameters
        ----------
        points:
            相对坐标序列。
        inter_tap_delay_ms:
            相邻两次点击的间隔 (毫秒)。
        """
        ...

    @abstractmethod
    def delay(self, ms: int) -> bool:
        """等待指定毫秒数。"""
        ...

    def cleanup(self) -> None:
        """释放触控资源。"""
