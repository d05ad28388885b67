"""自动化控制器测试 — 使用内存端口驱动真实主循环线程。"""

from __future__ import annotations

import threading
import time

import pytest

from fgobot.automation.controller import MAX_CONSECUTIVE_ERRORS
from fgobot.automation.team import Team
from fgobot.battle.context import BattleInfo, CardInfo, ServantState
from fgobot.infra.exceptions import ControllerStateError
from fgobot.types import AutomationState, BattleState, CardType

TEAM = Team(name="周回队", servant_ids=[215, 284, 284], strategy="3_turn_farming")


def loop_threads() -> list[threading.Thread]:
    return [t for t in threading.enumerate() if t.name == "fgobot-automation"]


# ═══════════════════════════════════════════════════════════════════════════════
# 生命周期
# ═══════════════════════════════════════════════════════════════════════════════


class TestLifecycle:
    def test_initial_status(self, make_controller):
        status = make_controller().status()
        assert status.state == AutomationState.IDLE
        assert not status.is_initialized
        assert status.current_team is None
        assert status.consecutive_errors == 0

    def test_initialize_success(self, make_controller):
        controller = make_controller()
        assert controller.initialize()
        assert controller.state == AutomationState.IDLE
        assert controller.status().is_initialized

    def test_initialize_failure(self, make_controller, perception):
        perception.init_ok = False
        controller = make_controller()
        assert not controller.initialize()
        assert controller.state == AutomationState.ERROR
        assert not controller.status().is_initialized
        with pytest.raises(ControllerStateError):
            controller.start(TEAM)

    def test_start_requires_initialize(self, make_controller):
        with pytest.raises(ControllerStateError):
            make_controller().start(TEAM)

    def test_start_rejects_reentry(self, make_controller):
        controller = make_controller()
        controller.initialize()
        controller.start(TEAM)
        with pytest.raises(ControllerStateError):
            controller.start(TEAM)
        controller.pause()
        with pytest.raises(ControllerStateError):
            controller.start(TEAM)

    def test_start_selects_plan(self, make_controller):
        controller = make_controller()
        controller.initialize()
        controller.start(TEAM)
        assert controller.engine.plan.name == "3_turn_farming"
        assert controller.status().current_team == TEAM


class TestStop:
    def test_stop_when_idle_is_noop(self, make_controller):
        controller = make_controller()
        events = []
        controller.add_state_listener(lambda old, new: events.append((old, new)))
        controller.stop()
        controller.stop()
        assert controller.state == AutomationState.IDLE
        assert events == []

    def test_stop_joins_loop(self, make_controller, capture, wait_until):
        controller = make_controller()
        controller.initialize()
        controller.start(TEAM)
        assert wait_until(lambda: capture.calls > 2)
        controller.stop()
        status = controller.status()
        assert status.state == AutomationState.IDLE
        assert status.current_team is None
        assert loop_threads() == []

    def test_stop_from_paused(self, make_controller):
        controller = make_controller()
        controller.initialize()
        controller.start(TEAM)
        controller.pause()
        controller.stop()
        assert controller.state == AutomationState.IDLE
        assert loop_threads() == []

    def test_stop_does_not_count_errors(self, make_controller, capture, wait_until):
        controller = make_controller()
        controller.initialize()
        controller.start(TEAM)
        assert wait_until(lambda: capture.calls > 2)
        controller.stop()
        assert controller.status().stats.errors_encountered == 0

    def test_transitions_through_stopping(self, make_controller):
        controller = make_controller()
        controller.initialize()
        events = []
        controller.add_state_listener(lambda old, new: events.append(new))
        controller.start(TEAM)
        controller.stop()
        assert events == [AutomationState.RUNNING, AutomationState.STOPPING, AutomationState.IDLE]


class TestPauseResume:
    def test_pause_stops_capturing(self, make_controller, capture, wait_until):
        controller = make_controller()
        controller.initialize()
        controller.start(TEAM)
        assert wait_until(lambda: capture.calls > 0)
        assert controller.pause()
        assert controller.state == AutomationState.PAUSED
        # 进行中的一轮允许完成
        time.sleep(0.05)
        paused_calls = capture.calls
        time.sleep(0.05)
        assert capture.calls == paused_calls

        assert controller.resume()
        assert controller.state == AutomationState.RUNNING
        assert wait_until(lambda: capture.calls > paused_calls)

    def test_pause_requires_running(self, make_controller):
        controller = make_controller()
        assert not controller.pause()
        assert not controller.resume()
        assert controller.state == AutomationState.IDLE


# ═══════════════════════════════════════════════════════════════════════════════
# 失败策略
# ═══════════════════════════════════════════════════════════════════════════════


class TestFailurePolicy:
    def test_three_consecutive_failures_enter_error(self, make_controller, capture, wait_until):
        capture.script.extend([False] * MAX_CONSECUTIVE_ERRORS)
        controller = make_controller()
        controller.initialize()
        controller.start(TEAM)
        assert wait_until(lambda: controller.state == AutomationState.ERROR)
        status = controller.status()
        assert status.consecutive_errors == 3
        assert status.stats.errors_encountered == 3
        assert "连续失败 3 次" in status.last_error
        assert wait_until(lambda: loop_threads() == [])

    def test_success_resets_counter(self, make_controller, capture, wait_until):
        capture.script.extend([False, False, True, False, False, True])
        controller = make_controller()
        controller.initialize()
        controller.start(TEAM)
        assert wait_until(lambda: capture.calls > 8)
        status = controller.status()
        assert status.state == AutomationState.RUNNING
        assert status.stats.errors_encountered == 4
        assert status.consecutive_errors == 0

    def test_unknown_screen_is_neutral(self, make_controller, capture, perception, wait_until):
        # 失败, 失败, 未知画面, 失败 → 未知画面不清零，第三次失败进入 ERROR
        capture.script.extend([False, False, True, False])
        perception.states.append(BattleState.UNKNOWN)
        controller = make_controller()
        controller.initialize()
        controller.start(TEAM)
        assert wait_until(lambda: controller.state == AutomationState.ERROR)
        assert controller.status().stats.errors_encountered == 3

    def test_error_screen_counts_as_failure(self, make_controller, perception, actuation, wait_until):
        perception.default_state = BattleState.ERROR
        controller = make_controller()
        controller.initialize()
        controller.start(TEAM)
        assert wait_until(lambda: controller.state == AutomationState.ERROR)
        dismiss = controller.config.layout.dismiss
        assert actuation.taps.count(dismiss) == 3

    def test_action_failure_counts(self, make_controller, perception, actuation, wait_until):
        perception.default_state = BattleState.BATTLE_RESULT
        actuation.ok = False
        controller = make_controller()
        controller.initialize()
        controller.start(TEAM)
        assert wait_until(lambda: controller.state == AutomationState.ERROR)
        status = controller.status()
        assert status.stats.errors_encountered == 3
        assert status.stats.battles_completed == 3

    def test_perception_exception_counts(self, make_controller, perception, wait_until, monkeypatch):
        def broken(frame):
            raise RuntimeError("模型未加载")

        monkeypatch.setattr(perception, "classify", broken)
        controller = make_controller()
        controller.initialize()
        controller.start(TEAM)
        assert wait_until(lambda: controller.state == AutomationState.ERROR)

    def test_restart_after_error(self, make_controller, capture, wait_until):
        capture.script.extend([False] * 3)
        controller = make_controller()
        controller.initialize()
        controller.start(TEAM)
        assert wait_until(lambda: controller.state == AutomationState.ERROR)
        controller.start(TEAM)
        assert controller.state == AutomationState.RUNNING
        status = controller.status()
        assert status.consecutive_errors == 0
        assert status.stats.errors_encountered == 0

    def test_listener_error_does_not_break_loop(self, make_controller, capture, wait_until):
        controller = make_controller()
        controller.initialize()

        def bad_listener(old, new):
            raise ValueError("监听器异常")

        controller.add_state_listener(bad_listener)
        controller.start(TEAM)
        assert wait_until(lambda: capture.calls > 2)
        assert controller.state == AutomationState.RUNNING

    def test_listener_runs_outside_lock(self, make_controller, capture, wait_until):
        controller = make_controller()
        controller.initialize()
        seen: dict[str, AutomationState] = {}

        def listener(old, new):
            if new != AutomationState.PAUSED:
                return
            reader = threading.Thread(
                target=lambda: seen.setdefault("status", controller.status().state)
            )
            reader.start()
            reader.join(timeout=0.5)

        controller.add_state_listener(listener)
        controller.start(TEAM)
        assert wait_until(lambda: capture.calls > 0)
        assert controller.pause()
        assert seen.get("status") == AutomationState.PAUSED

    def test_loop_not_blocked_by_listener(self, make_controller, capture, wait_until):
        controller = make_controller()
        controller.initialize()
        release = threading.Event()

        def slow_listener(old, new):
            if new == AutomationState.RUNNING:
                release.wait(2)

        controller.add_state_listener(slow_listener)
        starter = threading.Thread(target=controller.start, args=(TEAM,))
        starter.start()
        try:
            # start() 的调用方线程仍在回调中，主循环照常截图
            assert wait_until(lambda: capture.calls > 2)
        finally:
            release.set()
            starter.join()


# ═══════════════════════════════════════════════════════════════════════════════
# 画面处理
# ═══════════════════════════════════════════════════════════════════════════════


class TestScreens:
    def test_ap_recovery_completes(self, make_controller, perception, wait_until):
        perception.default_state = BattleState.AP_RECOVERY
        controller = make_controller()
        controller.initialize()
        controller.start(TEAM)
        assert wait_until(lambda: controller.state == AutomationState.COMPLETED)
        assert controller.status().stats.errors_encountered == 0
        controller.stop()
        assert controller.state == AutomationState.IDLE

    def test_max_battles_completes(self, make_controller, perception, wait_until):
        perception.default_state = BattleState.BATTLE_RESULT
        perception.victory = True
        controller = make_controller(max_battles=2)
        controller.initialize()
        controller.start(TEAM)
        assert wait_until(lambda: controller.state == AutomationState.COMPLETED)
        stats = controller.status().stats
        assert stats.battles_completed == 2
        assert stats.battles_won == 2
        assert stats.battles_lost == 0
        assert controller.engine.battle_count == 2

    def test_defeat_recorded(self, make_controller, perception, wait_until):
        perception.default_state = BattleState.BATTLE_RESULT
        perception.victory = False
        controller = make_controller(max_battles=1)
        controller.initialize()
        controller.start(TEAM)
        assert wait_until(lambda: controller.state == AutomationState.COMPLETED)
        assert controller.status().stats.battles_lost == 1

    def test_command_selection_taps_cards(self, make_controller, perception, actuation, wait_until):
        perception.states.append(BattleState.COMMAND_SELECTION)
        perception.cards = [
            CardInfo(0, CardType.QUICK, 1),
            CardInfo(1, CardType.BUSTER, 0),
            CardInfo(2, CardType.BUSTER, 0),
            CardInfo(3, CardType.BUSTER, 0),
            CardInfo(4, CardType.ARTS, 2),
        ]
        controller = make_controller()
        controller.initialize()
        controller.start(TEAM)
        assert wait_until(lambda: controller.status().stats.decisions_executed >= 1)
        cards = controller.config.layout.cards
        points, interval = actuation.sequences[0]
        assert points == [cards[1], cards[2], cards[3]]
        assert interval == 300

    def test_screenshots_counted(self, make_controller, capture, wait_until):
        controller = make_controller()
        controller.initialize()
        controller.start(TEAM)
        assert wait_until(lambda: controller.status().stats.screenshots_taken >= 3)
        assert controller.status().last_frame is not None

    def test_pre_turn_actions(self, make_config, make_controller, perception, actuation, wait_until):
        config = make_config(decision={"use_pre_turn_actions": True})
        perception.states.append(BattleState.COMMAND_SELECTION)
        perception.cards = [CardInfo(i, CardType.ARTS, i % 3) for i in range(3)]
        perception.info = BattleInfo(turn=1, phase=1, enemy_count=1)
        perception.servants = [
            ServantState(index=0, np_gauge=100),
            ServantState(index=1),
            ServantState(index=2),
        ]
        controller = make_controller(config)
        controller.initialize()
        controller.start(TEAM)
        assert wait_until(lambda: controller.status().stats.decisions_executed >= 2)
        assert controller.config.layout.noble_phantasms[0] in actuation.taps


# ═══════════════════════════════════════════════════════════════════════════════
# 资源释放
# ═══════════════════════════════════════════════════════════════════════════════


def test_cleanup(make_controller, capture, perception, actuation):
    controller = make_controller()
    controller.initialize()
    controller.start(TEAM)
    controller.cleanup()
    assert controller.state == AutomationState.IDLE
    assert not controller.status().is_initialized
    assert capture.cleaned and perception.cleaned and actuation.cleaned
