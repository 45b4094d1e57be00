"""
Unit tests for the upfront + linear ramp unlock arithmetic.
"""

import pytest

from tokenvest.core.schedule import Schedule
from tokenvest.core.unlock import claimable_at, unlocked_at


def make_schedule(total=1000, upfront=100, cliff=100, ramp_end=1100, claimed=0):
    return Schedule(
        total_amount=total,
        claimed_amount=claimed,
        upfront_amount=upfront,
        claimable_cache=upfront,
        cliff_time=cliff,
        ramp_start=cliff,
        ramp_end=ramp_end,
    )


class TestUnlockedAt:
    """Unlocked amount across the cliff, ramp and post-ramp phases."""

    def test_before_cliff_only_upfront(self):
        schedule = make_schedule()
        assert unlocked_at(schedule, 0) == 100
        assert unlocked_at(schedule, 50) == 100
        assert unlocked_at(schedule, 99) == 100

    def test_at_cliff_ramp_starts_from_upfront(self):
        assert unlocked_at(make_schedule(), 100) == 100

    def test_halfway_through_ramp(self):
        assert unlocked_at(make_schedule(), 600) == 550

    def test_at_and_after_ramp_end(self):
        schedule = make_schedule()
        assert unlocked_at(schedule, 1100) == 1000
        assert unlocked_at(schedule, 10**12) == 1000

    def test_floor_division(self):
        # 999 linear tokens over 1000 seconds: 1 second in unlocks floor(0.999) = 0
        schedule = make_schedule(total=1000, upfront=1, cliff=0, ramp_end=1000)
        assert unlocked_at(schedule, 1) == 1
        assert unlocked_at(schedule, 2) == 2
        assert unlocked_at(schedule, 999) == 1 + (999 * 999) // 1000

    def test_full_upfront_is_flat(self):
        schedule = make_schedule(total=500, upfront=500)
        for now in (0, 100, 600, 1100):
            assert unlocked_at(schedule, now) == 500

    def test_zero_upfront_locks_everything_before_cliff(self):
        schedule = make_schedule(upfront=0)
        assert unlocked_at(schedule, 99) == 0
        assert unlocked_at(schedule, 600) == 500

    def test_large_amounts_stay_exact(self):
        total = 10**27
        schedule = make_schedule(total=total, upfront=0, cliff=0, ramp_end=3)
        assert unlocked_at(schedule, 1) == total // 3
        assert unlocked_at(schedule, 2) == (total * 2) // 3
        assert unlocked_at(schedule, 3) == total


class TestClaimableAt:
    def test_subtracts_claimed(self):
        schedule = make_schedule(claimed=100)
        assert claimable_at(schedule, 600) == 450

    def test_never_negative(self):
        schedule = make_schedule(claimed=550)
        assert claimable_at(schedule, 50) == 0

    def test_fully_claimed(self):
        schedule = make_schedule(claimed=1000)
        assert claimable_at(schedule, 10**9) == 0

    @pytest.mark.parametrize(
        "now,expected",
        [(50, 100), (600, 550), (1100, 1000)],
    )
    def test_reference_scenario(self, now, expected):
        assert claimable_at(make_schedule(), now) == expected
