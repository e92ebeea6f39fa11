"""Tests for retry strategies."""

import random

import pytest

from lockstep.execution.retry import ExponentialBackoff, JitteredConstantBackoff, backoff_schedule


class TestExponentialBackoff:
    """Tests for ExponentialBackoff strategy."""

    def test_default_configuration(self):
        strategy = ExponentialBackoff()
        assert strategy.max_attempts == 3
        assert strategy.base_delay == 1.0
        assert strategy.multiplier == 2.0
        assert strategy.jitter is False

    def test_delay_before_retry_i(self):
        """Delay before retry i is base * 2^(i-1)."""
        strategy = ExponentialBackoff(base_delay=1.0)
        assert strategy.next_delay(1) == 1.0
        assert strategy.next_delay(2) == 2.0
        assert strategy.next_delay(3) == 4.0

    def test_max_delay_caps(self):
        strategy = ExponentialBackoff(base_delay=10.0, max_delay=25.0)
        assert strategy.next_delay(3) == 25.0

    def test_should_retry_counts_attempts(self):
        strategy = ExponentialBackoff(max_attempts=3)
        assert strategy.should_retry(1) is True
        assert strategy.should_retry(2) is True
        assert strategy.should_retry(3) is False

    def test_jitter_stays_in_range(self):
        strategy = ExponentialBackoff(base_delay=4.0, jitter=True, jitter_range=0.25, rng=random.Random(1))
        for _ in range(50):
            assert 3.0 <= strategy.next_delay(1) <= 5.0


class TestJitteredConstantBackoff:
    def test_delay_within_jitter_window(self):
        strategy = JitteredConstantBackoff(delay=0.2, jitter=0.2, rng=random.Random(7))
        for attempt in range(1, 20):
            assert 0.2 <= strategy.next_delay(attempt) <= 0.4

    def test_no_jitter(self):
        assert JitteredConstantBackoff(delay=0.5, jitter=0.0).next_delay(1) == 0.5


class TestBackoffSchedule:
    def test_default_schedule(self):
        """Three attempts produce two waits: 1 s then 2 s."""
        assert backoff_schedule(ExponentialBackoff(max_attempts=3, base_delay=1.0)) == [1.0, 2.0]

    def test_single_attempt_never_waits(self):
        assert backoff_schedule(ExponentialBackoff(max_attempts=1)) == []

    @pytest.mark.parametrize("attempts", [2, 3, 5])
    def test_lock_retry_ceiling(self, attempts):
        schedule = backoff_schedule(
            JitteredConstantBackoff(max_attempts=attempts, delay=0.2, jitter=0.2, rng=random.Random(3))
        )
        assert len(schedule) == attempts - 1
        assert sum(schedule) <= (attempts - 1) * 0.4
