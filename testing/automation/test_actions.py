"""决策执行测试。"""

from __future__ import annotations

import random

import pytest

from fgobot.automation.actions import ActionExecutor
from fgobot.battle.decision import (
    CardSelection,
    ErrorRecovery,
    NoAction,
    NPUsage,
    SkillUsage,
    Wait,
)
from fgobot.infra.config import LayoutConfig
from fgobot.infra.exceptions import ActionExecutionFailure

LAYOUT = LayoutConfig()


@pytest.fixture
def executor(actuation) -> ActionExecutor:
    return ActionExecutor(actuation, LAYOUT, human_like=False)


class TestMapping:
    def test_card_selection(self, executor, actuation):
        executor.execute(CardSelection((4, 0, 2)))
        assert actuation.sequences == [([LAYOUT.cards[4], LAYOUT.cards[0], LAYOUT.cards[2]], 300)]
        assert actuation.delays == [2000]

    def test_servant_skill_with_target(self, executor, actuation):
        executor.execute(SkillUsage(servant_index=1, skill_index=2, target_index=0))
        assert actuation.taps == [LAYOUT.skills[5], LAYOUT.targets[0]]
        assert actuation.delays == [1500, 500]

    def test_skill_without_target(self, executor, actuation):
        executor.execute(SkillUsage(servant_index=2, skill_index=0))
        assert actuation.taps == [LAYOUT.skills[6]]

    def test_negative_target_ignored(self, executor, actuation):
        executor.execute(SkillUsage(servant_index=0, skill_index=0, target_index=-1))
        assert actuation.taps == [LAYOUT.skills[0]]

    def test_master_skill(self, executor, actuation):
        executor.execute(SkillUsage(servant_index=-1, skill_index=1))
        assert actuation.taps == [LAYOUT.master_skills[1]]

    def test_np(self, executor, actuation):
        executor.execute(NPUsage(servant_index=2))
        assert actuation.taps == [LAYOUT.noble_phantasms[2]]
        assert actuation.delays == [1000]

    def test_wait(self, executor, actuation):
        executor.execute(Wait(750))
        assert actuation.taps == []
        assert actuation.delays == [750]

    def test_no_action(self, executor, actuation):
        executor.execute(NoAction())
        assert actuation.taps == [] and actuation.delays == []

    @pytest.mark.parametrize(
        "action, delay",
        [("handle_ap_recovery", 5000), ("restart_battle", 3000), ("screenshot_analysis", 1000)],
    )
    def test_recovery_routines(self, executor, actuation, action, delay):
        executor.execute(ErrorRecovery(action))
        assert actuation.delays == [delay]

    def test_unknown_recovery(self, executor):
        with pytest.raises(ActionExecutionFailure):
            executor.execute(ErrorRecovery("reboot_phone"))

    def test_recovery_disabled(self, actuation):
        executor = ActionExecutor(actuation, LAYOUT, human_like=False, enable_recovery=False)
        executor.execute(ErrorRecovery("restart_battle"))
        assert actuation.delays == []


class TestFailures:
    def test_tap_failure_raises(self, executor, actuation):
        actuation.ok = False
        with pytest.raises(ActionExecutionFailure, match="宝具"):
            executor.execute(NPUsage(servant_index=0))

    def test_sequence_failure_raises(self, executor, actuation):
        actuation.ok = False
        with pytest.raises(ActionExecutionFailure):
            executor.execute(CardSelection((0, 1, 2)))

    def test_out_of_range_slot(self, executor):
        with pytest.raises(ActionExecutionFailure):
            executor.execute(CardSelection((0, 1, 7)))


class TestHumanLike:
    def test_delay_jitter_within_ten_percent(self, actuation):
        executor = ActionExecutor(actuation, LAYOUT, human_like=True, rng=random.Random(7))
        for _ in range(50):
            executor.execute(Wait(1000))
        assert all(900 <= d <= 1100 for d in actuation.delays)
        assert len(set(actuation.delays)) > 1

    def test_tap_offset_bounded(self, actuation):
        executor = ActionExecutor(actuation, LAYOUT, human_like=True, rng=random.Random(3))
        for _ in range(20):
            executor.execute(NPUsage(servant_index=1))
        bx, by = LAYOUT.noble_phantasms[1]
        for x, y in actuation.taps:
            assert abs(x - bx) <= LAYOUT.jitter + 1e-9
            assert abs(y - by) <= LAYOUT.jitter + 1e-9

    def test_zero_jitter_keeps_position(self, actuation):
        layout = LayoutConfig(jitter=0.0)
        executor = ActionExecutor(actuation, layout, human_like=True, rng=random.Random(1))
        executor.execute(NPUsage(servant_index=0))
        assert actuation.taps == [layout.noble_phantasms[0]]
