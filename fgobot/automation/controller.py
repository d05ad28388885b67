"""自动化控制器 — 会话状态机与主循环。

``AutomationController`` 驱动完整的自动化流程::

    截图 → 画面识别 → 构建上下文 → 决策 → 操作 → 统计 → 重复

主循环运行在每个会话独立的守护线程中；调用方只读取状态快照或修改状态枚举。
状态、统计、最近画面、连续失败计数与当前队伍由一把 ``RLock`` 保护，
循环中的每次等待都是 ``stop_event.wait(timeout)``，停止请求会立即唤醒。
状态切换在锁内完成，监听回调在释放锁之后调用。

失败策略:
  1. 截图失败 / 操作失败 / 其他异常均计为一次失败，连续失败计数 +1
  2. 连续失败达到 3 次 → ERROR（需外部重新 ``start``）
  3. 未达阈值时退避 5 秒后继续
  4. 任意一轮成功即清零连续失败计数
  5. 检测到体力不足 → COMPLETED（正常结束，不是错误）

使用方式::

    controller = AutomationController(capture, perception, actuation, config)
    controller.initialize()
    controller.start(Team(name="周回队", strategy="3_turn_farming"))
    ...
    controller.stop()
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum, auto

import numpy as np
from loguru import logger

from fgobot.automation.actions import ActionExecutor
from fgobot.automation.ports import ActuationPort, CaptureError, CapturePort, PerceptionPort
from fgobot.automation.stats import AutomationStats, AutomationStatus
from fgobot.automation.team import Team
from fgobot.battle.context import BattleContext
from fgobot.battle.decision import describe
from fgobot.battle.engine import DecisionEngine
from fgobot.battle.plan import BattlePlan
from fgobot.infra.config import UserConfig
from fgobot.infra.exceptions import (
    ControllerStateError,
    FatalThresholdError,
    PerceptionFailure,
    ResourceExhaustion,
)
from fgobot.infra.logger import save_image
from fgobot.types import AutomationState, BattleObjective, BattleState

MAX_CONSECUTIVE_ERRORS = 3

# 非战术画面的固定等待 (毫秒)
STATE_WAITS_MS: dict[BattleState, int] = {
    BattleState.QUEST_SELECTION: 1500,
    BattleState.SUPPORT_SELECTION: 2000,
    BattleState.BATTLE_START: 2000,
    BattleState.SKILL_SELECTION: 1000,
    BattleState.NP_SELECTION: 1000,
}
RESULT_WAIT_MS = 2000
ERROR_SCREEN_WAIT_MS = 2000
UNKNOWN_WAIT_MS = 1000

StateListener = Callable[[AutomationState, AutomationState], None]
"""状态监听回调，参数为 ``(旧状态, 新状态)``。"""

Transition = tuple[AutomationState, AutomationState]


@dataclass(frozen=True, slots=True)
class LoopTiming:
    """主循环节拍 (毫秒)。测试中可缩短。"""

    cycle_delay_ms: int = 100
    error_backoff_ms: int = 5000
    pause_poll_ms: int = 100


class _CycleOutcome(Enum):
    SUCCESS = auto()
    NEUTRAL = auto()
    COMPLETED = auto()


# ═══════════════════════════════════════════════════════════════════════════════
# 控制器
# ═══════════════════════════════════════════════════════════════════════════════


class AutomationController:
    """自动化会话控制器。

    Parameters
    ----------
    capture, perception, actuation:
        外部端口实现。
    config:
        用户配置，为 ``None`` 时使用默认值。
    engine:
        决策引擎，为 ``None`` 时按配置创建。
    timing:
        主循环节拍，为 ``None`` 时使用默认值。
    executor:
        决策执行器，为 ``None`` 时按配置创建。
    """

    def __init__(
        self,
        capture: CapturePort,
        perception: PerceptionPort,
        actuation: ActuationPort,
        config: UserConfig | None = None,
        *,
        engine: DecisionEngine | None = None,
        timing: LoopTiming | None = None,
        executor: ActionExecutor | None = None,
    ) -> None:
        self._capture = capture
        self._perception = perception
        self._actuation = actuation
        self._config = config or UserConfig()
        self._timing = timing or LoopTiming()

        auto_cfg = self._config.automation
        self._engine = engine or DecisionEngine(
            self._config.decision,
            enable_learning=auto_cfg.enable_learning,
            decision_timeout_ms=auto_cfg.decision_timeout_ms,
        )
        self._executor = executor or ActionExecutor(
            actuation,
            self._config.layout,
            human_like=auto_cfg.human_like_timing,
            enable_recovery=auto_cfg.enable_recovery,
        )

        self._lock = threading.RLock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._listeners: list[StateListener] = []

        # 以下字段受 _lock 保护
        self._state = AutomationState.IDLE
        self._initialized = False
        self._team: Team | None = None
        self._stats = AutomationStats()
        self._last_frame: np.ndarray | None = None
        self._consecutive_errors = 0
        self._last_error: str | None = None
        self._error_cap_warned = False

        self._last_capture_at: float | None = None

    # ═══════════════════════════════════════════════════════════════════════════
    # 只读属性
    # ═══════════════════════════════════════════════════════════════════════════

    @property
    def state(self) -> AutomationState:
        with self._lock:
            return self._state

    @property
    def engine(self) -> DecisionEngine:
        return self._engine

    @property
    def config(self) -> UserConfig:
        return self._config

    def status(self) -> AutomationStatus:
        """当前状态快照，任意线程可调用。"""
        with self._lock:
            return AutomationStatus(
                state=self._state,
                is_initialized=self._initialized,
                current_team=self._team,
                runtime_ms=self._stats.total_runtime_ms,
                stats=self._stats,
                last_frame=self._last_frame,
                consecutive_errors=self._consecutive_errors,
                last_error=self._last_error,
            )

    # ═══════════════════════════════════════════════════════════════════════════
    # 状态监听
    # ═══════════════════════════════════════════════════════════════════════════

    def add_state_listener(self, listener: StateListener) -> None:
        """注册状态监听回调。

        回调在释放控制器锁之后、由触发切换的线程调用（调用方线程或主循环线程），
        回调内可安全读取 :meth:`status`。
        """
        with self._lock:
            self._listeners.append(listener)

    def remove_state_listener(self, listener: StateListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _transition(self, new: AutomationState) -> Transition | None:
        """切换状态，调用方须持有 ``_lock``。状态未变化时返回 ``None``。"""
        old = self._state
        if old == new:
            return None
        self._state = new
        logger.info("[自动化] 状态: {} → {}", old.value, new.value)
        return old, new

    def _notify(self, transition: Transition | None) -> None:
        """通知监听者，须在锁外调用。"""
        if transition is None:
            return
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(*transition)
            except Exception as e:
                logger.opt(exception=True).warning("[自动化] 状态监听回调异常: {}", e)

    # ═══════════════════════════════════════════════════════════════════════════
    # 生命周期
    # ═══════════════════════════════════════════════════════════════════════════

    def initialize(self) -> bool:
        """初始化三个端口。

        Returns
        -------
        bool
            成功返回 ``True`` 并回到 IDLE；失败进入 ERROR。

        Raises
        ------
        ControllerStateError
            会话运行中调用。
        """
        with self._lock:
            if self._state.is_active or self._state in (
                AutomationState.INITIALIZING,
                AutomationState.STOPPING,
            ):
                raise ControllerStateError(f"会话运行中，无法初始化 (当前: {self._state.value})")
            transition = self._transition(AutomationState.INITIALIZING)
        self._notify(transition)

        try:
            ok = (
                self._capture.initialize()
                and self._perception.initialize()
                and self._actuation.initialize()
            )
            error = None if ok else "端口初始化失败"
        except Exception as e:
            logger.opt(exception=True).error("[自动化] 初始化异常: {}", e)
            ok, error = False, f"初始化异常: {e}"

        if ok:
            logger.info("[自动化] 初始化完成")
        else:
            logger.error("[自动化] {}", error)
        with self._lock:
            self._initialized = ok
            self._last_error = error
            transition = self._transition(AutomationState.IDLE if ok else AutomationState.ERROR)
        self._notify(transition)
        return ok

    def start(self, team: Team) -> None:
        """以指定队伍开始新会话。

        Raises
        ------
        ControllerStateError
            未初始化，或会话已在运行 / 暂停。
        ConfigError
            队伍策略对应的计划文件无法解析。
        """
        with self._lock:
            self._check_can_start()
            previous = self._thread
        # 上一会话自行结束 (ERROR / COMPLETED) 时线程可能仍在收尾
        if previous is not None and previous is not threading.current_thread():
            previous.join()

        with self._lock:
            self._check_can_start()
            self._stop_event.clear()
            self._team = team
            self._stats = AutomationStats.start()
            self._last_frame = None
            self._consecutive_errors = 0
            self._last_error = None
            self._error_cap_warned = False
            self._last_capture_at = None

            self._engine.reset()
            self._engine.set_plan(BattlePlan.resolve(team.strategy, self._config.plan_root))

            self._thread = threading.Thread(
                target=self._run, name="fgobot-automation", daemon=True
            )
            transition = self._transition(AutomationState.RUNNING)
            logger.info(
                "[自动化] 开始会话: 队伍={} 策略={} 目标={}",
                team.name, team.strategy or "<无>", team.objective.value,
            )
            self._thread.start()
        self._notify(transition)

    def _check_can_start(self) -> None:
        if not self._initialized:
            raise ControllerStateError("控制器尚未初始化")
        if self._state in (
            AutomationState.RUNNING,
            AutomationState.PAUSED,
            AutomationState.INITIALIZING,
            AutomationState.STOPPING,
        ):
            raise ControllerStateError(f"会话已在运行 (当前: {self._state.value})")

    def pause(self) -> bool:
        """暂停会话，仅在 RUNNING 时生效。"""
        with self._lock:
            if self._state != AutomationState.RUNNING:
                logger.warning("[自动化] 当前状态 {} 无法暂停", self._state.value)
                return False
            transition = self._transition(AutomationState.PAUSED)
        self._notify(transition)
        return True

    def resume(self) -> bool:
        """恢复会话，仅在 PAUSED 时生效。"""
        with self._lock:
            if self._state != AutomationState.PAUSED:
                logger.warning("[自动化] 当前状态 {} 无法恢复", self._state.value)
                return False
            transition = self._transition(AutomationState.RUNNING)
        self._notify(transition)
        return True

    def stop(self) -> None:
        """停止会话并等待主循环线程完全退出。

        IDLE 时调用为空操作；返回时状态必为 IDLE 且 ``current_team`` 为 ``None``。
        """
        with self._lock:
            if self._state == AutomationState.IDLE and self._thread is None:
                return
            transition = None
            if self._state.is_active:
                transition = self._transition(AutomationState.STOPPING)
            self._stop_event.set()
            thread = self._thread
        self._notify(transition)

        if thread is not None and thread is not threading.current_thread():
            thread.join()

        with self._lock:
            self._thread = None
            self._team = None
            self._stats = self._stats.finished()
            transition = self._transition(AutomationState.IDLE)
        self._notify(transition)
        logger.info("[自动化] 会话已停止")

    def cleanup(self) -> None:
        """停止会话并释放端口资源。"""
        self.stop()
        for port in (self._capture, self._perception, self._actuation):
            try:
                port.cleanup()
            except Exception as e:
                logger.opt(exception=True).warning(
                    "[自动化] 端口 {} 清理失败: {}", type(port).__name__, e
                )
        with self._lock:
            self._initialized = False
        logger.info("[自动化] 资源已释放")

    # ═══════════════════════════════════════════════════════════════════════════
    # 主循环
    # ═══════════════════════════════════════════════════════════════════════════

    def _sleep(self, ms: int) -> bool:
        """可被停止请求打断的等待，返回是否收到停止请求。"""
        return self._stop_event.wait(max(0, ms) / 1000)

    def _run(self) -> None:
        logger.debug("[自动化] 主循环线程启动")
        while not self._stop_event.is_set():
            state = self.state
            if not state.is_active:
                break
            if state == AutomationState.PAUSED:
                self._sleep(self._timing.pause_poll_ms)
                continue

            try:
                outcome = self._run_cycle()
            except ResourceExhaustion as e:
                logger.info("[自动化] {}，会话结束", e)
                self._finish_session(AutomationState.COMPLETED)
                break
            except Exception as e:
                if self._record_failure(e):
                    break
                if self._sleep(self._timing.error_backoff_ms):
                    break
            else:
                if outcome == _CycleOutcome.COMPLETED:
                    self._finish_session(AutomationState.COMPLETED)
                    break
                if outcome == _CycleOutcome.SUCCESS:
                    with self._lock:
                        self._consecutive_errors = 0

            self._sleep(self._timing.cycle_delay_ms)
        logger.debug("[自动化] 主循环线程退出")

    def _finish_session(self, terminal: AutomationState) -> None:
        """会话自行结束。已被并发的 stop 接管时不覆盖其状态。"""
        with self._lock:
            if not self._state.is_active:
                return
            transition = self._transition(terminal)
            self._stats = self._stats.finished()
            logger.info("[自动化] 会话统计: {}", self._stats.summary())
        self._notify(transition)

    def _record_failure(self, error: Exception) -> bool:
        """记录一次失败，返回是否已达到终止阈值。"""
        with self._lock:
            self._consecutive_errors += 1
            self._stats = self._stats.with_error()
            self._last_error = str(error)
            count = self._consecutive_errors
            total = self._stats.errors_encountered
            frame = self._last_frame
            warn_cap = total >= self._config.automation.max_errors and not self._error_cap_warned
            if warn_cap:
                self._error_cap_warned = True

        logger.warning("[自动化] 第 {} 次连续失败: {}", count, error)
        if frame is not None and self._config.log.save_images:
            save_image(frame, tag="cycle_failure")
        if warn_cap:
            logger.warning(
                "[自动化] 会话累计错误 {} 次，已达到上限 {}",
                total, self._config.automation.max_errors,
            )

        if count >= MAX_CONSECUTIVE_ERRORS:
            fatal = FatalThresholdError(count)
            logger.error("[自动化] {}", fatal)
            with self._lock:
                self._last_error = str(fatal)
            self._finish_session(AutomationState.ERROR)
            return True
        return False

    def _run_cycle(self) -> _CycleOutcome:
        """执行一轮循环。失败时抛出异常，由 :meth:`_run` 统一计数。"""
        frame = self._capture_frame()
        state = self._perception.classify(frame)
        with self._lock:
            self._stats = self._stats.with_screenshot()
        logger.debug("[自动化] 画面: {}", state.value)

        match state:
            case BattleState.COMMAND_SELECTION:
                self._handle_command(frame)
            case BattleState.BATTLE_RESULT:
                return self._handle_result(frame)
            case BattleState.AP_RECOVERY:
                raise ResourceExhaustion("体力不足")
            case BattleState.ERROR:
                self._executor.dismiss()
                self._executor.wait(ERROR_SCREEN_WAIT_MS, "错误画面")
                if self._config.log.save_images:
                    save_image(frame, tag="error_state")
                raise PerceptionFailure("检测到错误画面")
            case BattleState.UNKNOWN:
                self._executor.wait(UNKNOWN_WAIT_MS, "未知画面")
                return _CycleOutcome.NEUTRAL
            case _:
                self._executor.wait(STATE_WAITS_MS[state], state.value)
        return _CycleOutcome.SUCCESS

    def _capture_frame(self) -> np.ndarray:
        interval = self._config.automation.screenshot_interval_ms
        if interval > 0 and self._last_capture_at is not None:
            remaining = interval - (time.monotonic() - self._last_capture_at) * 1000
            if remaining > 0:
                self._sleep(int(remaining))

        result = self._capture.capture()
        self._last_capture_at = time.monotonic()
        if isinstance(result, CaptureError):
            raise PerceptionFailure(f"截图失败: {result.message}")
        with self._lock:
            self._last_frame = result.frame
        return result.frame

    def _handle_command(self, frame: np.ndarray) -> None:
        with self._lock:
            team = self._team
        skills = self._perception.detect_skills(frame)
        context = BattleContext.build(
            info=self._perception.detect_battle_info(frame),
            servants=self._perception.detect_servant_states(frame),
            cards=self._perception.detect_cards(frame),
            skills=skills,
            objective=team.objective if team is not None else BattleObjective.FARMING,
        )
        cards = context.available_cards
        if self._config.decision.use_pre_turn_actions:
            decisions = self._engine.plan_turn(context, cards, skills)
        else:
            decisions = [self._engine.decide(BattleState.COMMAND_SELECTION, context, cards, skills)]

        for decision in decisions:
            logger.info("[自动化] 执行决策: {}", describe(decision))
            self._executor.execute(decision)
            with self._lock:
                self._stats = self._stats.with_decision()

    def _handle_result(self, frame: np.ndarray) -> _CycleOutcome:
        victory = self._perception.is_victory(frame)
        with self._lock:
            self._stats = self._stats.with_battle(victory)
            completed = self._stats.battles_completed
        self._engine.note_battle_finished()
        logger.info("[自动化] 第 {} 场战斗结束: {}", completed, "胜利" if victory else "失败")

        self._executor.dismiss()
        self._executor.wait(RESULT_WAIT_MS, "结算")

        max_battles = self._config.automation.max_battles
        if max_battles != -1 and completed >= max_battles:
            logger.info("[自动化] 已完成 {} 场战斗，达到上限", completed)
            return _CycleOutcome.COMPLETED
        return _CycleOutcome.SUCCESS
