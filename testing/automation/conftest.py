"""自动化测试公共 fixtures — 内存中的端口实现。"""

from __future__ import annotations

import threading
import time
from collections import deque
from collections.abc import Callable, Sequence

import numpy as np
import pytest

from fgobot.automation.controller import AutomationController, LoopTiming
from fgobot.automation.ports import (
    ActuationPort,
    CaptureError,
    CaptureResult,
    CaptureSuccess,
    CapturePort,
    PerceptionPort,
)
from fgobot.battle.context import BattleInfo, CardInfo, ServantState, SkillInfo
from fgobot.infra.config import UserConfig
from fgobot.types import BattleState


class FakeCapture(CapturePort):
    """按脚本返回截图结果：``script`` 中 ``False`` 表示一次失败，耗尽后始终成功。"""

    def __init__(self) -> None:
        self.script: deque[bool] = deque()
        self.calls = 0
        self.init_ok = True
        self.cleaned = False

    def initialize(self) -> bool:
        return self.init_ok

    def capture(self) -> CaptureResult:
        self.calls += 1
        ok = self.script.popleft() if self.script else True
        if not ok:
            return CaptureError("模拟截图失败")
        return CaptureSuccess(np.zeros((9, 16, 3), dtype=np.uint8), time.time())

    def cleanup(self) -> None:
        self.cleaned = True


class FakePerception(PerceptionPort):
    """按脚本返回画面状态，耗尽后返回 ``default_state``。"""

    def __init__(self) -> None:
        self.states: deque[BattleState] = deque()
        self.default_state = BattleState.SUPPORT_SELECTION
        self.cards: list[CardInfo] = []
        self.skills: list[SkillInfo] = []
        self.servants: list[ServantState] = [ServantState(index=i) for i in range(3)]
        self.info = BattleInfo()
        self.victory = True
        self.init_ok = True
        self.cleaned = False

    def initialize(self) -> bool:
        return self.init_ok

    def classify(self, frame: np.ndarray) -> BattleState:
        return self.states.popleft() if self.states else self.default_state

    def detect_cards(self, frame: np.ndarray) -> list[CardInfo]:
        return list(self.cards)

    def detect_skills(self, frame: np.ndarray) -> list[SkillInfo]:
        return list(self.skills)

    def detect_servant_states(self, frame: np.ndarray) -> list[ServantState]:
        return list(self.servants)

    def detect_battle_info(self, frame: np.ndarray) -> BattleInfo:
        return self.info

    def is_victory(self, frame: np.ndarray) -> bool:
        return self.victory

    def cleanup(self) -> None:
        self.cleaned = True


class FakeActuation(ActuationPort):
    """记录所有操作，不做实际等待。"""

    def __init__(self) -> None:
        self.taps: list[tuple[float, float]] = []
        self.sequences: list[tuple[list[tuple[float, float]], int]] = []
        self.delays: list[int] = []
        self.ok = True
        self.init_ok = True
        self.cleaned = False
        self._lock = threading.Lock()

    def initialize(self) -> bool:
        return self.init_ok

    def tap(self, x: float, y: float) -> bool:
        with self._lock:
            self.taps.append((x, y))
        return self.ok

    def tap_sequence(self, points: Sequence[tuple[float, float]], inter_tap_delay_ms: int) -> bool:
        with self._lock:
            self.sequences.append((list(points), inter_tap_delay_ms))
        return self.ok

    def delay(self, ms: int) -> bool:
        with self._lock:
            self.delays.append(ms)
        return True

    def cleanup(self) -> None:
        self.cleaned = True


@pytest.fixture
def capture() -> FakeCapture:
    return FakeCapture()


@pytest.fixture
def perception() -> FakePerception:
    return FakePerception()


@pytest.fixture
def actuation() -> FakeActuation:
    return FakeActuation()


@pytest.fixture
def fast_timing() -> LoopTiming:
    return LoopTiming(cycle_delay_ms=1, error_backoff_ms=1, pause_poll_ms=5)


@pytest.fixture
def make_config() -> Callable[..., UserConfig]:
    """测试用配置：关闭截图间隔与拟人抖动。"""

    def _factory(decision: dict | None = None, **automation) -> UserConfig:
        settings = {"screenshot_interval_ms": 0, "human_like_timing": False}
        settings.update(automation)
        return UserConfig.model_validate({"automation": settings, "decision": decision or {}})

    return _factory


@pytest.fixture
def make_controller(capture, perception, actuation, fast_timing, make_config):
    """创建控制器并在测试结束时确保线程退出。"""
    created: list[AutomationController] = []

    def _factory(config: UserConfig | None = None, **automation) -> AutomationController:
        controller = AutomationController(
            capture,
            perception,
            actuation,
            config or make_config(**automation),
            timing=fast_timing,
        )
        created.append(controller)
        return controller

    yield _factory
    for controller in created:
        controller.stop()


@pytest.fixture
def wait_until() -> Callable[..., bool]:
    """轮询直到条件成立或超时。"""

    def _wait(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(0.005)
        return predicate()

    return _wait
