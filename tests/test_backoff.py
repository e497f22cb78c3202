"""
Backoff schedule and reconnect timer policy.
"""

import pytest

from sshmux.session.reconnect import (
    BackoffSchedule, ReconnectPolicy, DEFAULT_BACKOFF_DELAYS
)


class TestBackoffSchedule:
    def test_default_delays(self):
        schedule = BackoffSchedule()
        assert schedule.delays == (1.0, 2.0, 4.0, 8.0, 15.0, 30.0, 60.0)
        assert len(schedule) == 7
        assert schedule.last_index == 6

    def test_delays_are_non_decreasing(self):
        delays = BackoffSchedule().delays
        assert all(a <= b for a, b in zip(delays, delays[1:]))

    def test_delay_for_clamps_to_last_entry(self):
        schedule = BackoffSchedule()
        assert schedule.delay_for(0) == 1.0
        assert schedule.delay_for(6) == 60.0
        assert schedule.delay_for(50) == 60.0
        assert schedule.delay_for(-1) == 1.0

    def test_converts_to_float_tuple(self):
        schedule = BackoffSchedule([1, 3])
        assert schedule.delays == (1.0, 3.0)

    @pytest.mark.parametrize("delays", [(), (2, 1), (-1, 5)])
    def test_rejects_invalid(self, delays):
        with pytest.raises(ValueError):
            BackoffSchedule(delays)

    def test_allows_repeated_delays(self):
        assert BackoffSchedule((5, 5, 5)).delay_for(2) == 5.0


class TestReconnectPolicy:
    @pytest.fixture
    def calls(self):
        return []

    @pytest.fixture
    def policy(self, clock, calls):
        return ReconnectPolicy(
            lambda: calls.append(clock.now),
            schedule=BackoffSchedule(DEFAULT_BACKOFF_DELAYS),
            timer_factory=clock,
        )

    def test_schedule_starts_daemon_timer(self, policy, clock):
        assert policy.schedule() == 1.0

        assert policy.pending
        timer = clock.pending[0]
        assert timer.interval == 1.0
        assert timer.daemon

    def test_callback_runs_when_timer_fires(self, policy, clock, calls):
        policy.schedule()

        clock.advance(1.0)

        assert calls == [1.0]
        assert not policy.pending

    def test_does_not_stack_timers(self, policy, clock):
        policy.schedule()
        policy.schedule()

        assert len(clock.timers) == 1

    def test_record_failure_advances_and_saturates(self, policy):
        for _ in range(20):
            policy.record_failure()

        assert policy.index == 6
        assert policy.schedule() == 60.0

    def test_cancel_stops_timer(self, policy, clock, calls):
        policy.schedule()
        timer = clock.pending[0]

        policy.cancel()
        timer.function()

        assert timer.cancelled
        assert calls == []
        assert not policy.pending

    def test_cancel_without_timer(self, policy):
        policy.cancel()
        assert not policy.pending

    def test_reset_returns_to_first_step(self, policy, clock):
        policy.record_failure()
        policy.record_failure()
        policy.schedule()

        policy.reset()

        assert policy.index == 0
        assert clock.pending == []
        assert policy.schedule() == 1.0

    def test_superseded_timer_does_not_fire_callback(self, policy, clock, calls):
        policy.schedule()
        first = clock.pending[0]
        policy.cancel()
        policy.schedule()

        first.function()

        assert calls == []
        assert policy.pending
