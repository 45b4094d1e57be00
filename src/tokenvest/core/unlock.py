"""
Unlock arithmetic for a single schedule.

The unlocked amount is the upfront portion before the cliff, the full total
from the ramp end onward, and a linear interpolation in between. Integer
floor division is used throughout so payouts are deterministic and sum to
exactly ``total_amount`` by the ramp end.
"""

from __future__ import annotations

from .schedule import Schedule


def unlocked_at(schedule: Schedule, now: int) -> int:
    """
    Calculate how much of a schedule is unlocked at ``now``.

    Args:
        schedule: Schedule to evaluate
        now: Unix timestamp

    Returns:
        Unlocked amount, between ``upfront_amount`` and ``total_amount``
    """
    if now < schedule.cliff_time:
        return schedule.upfront_amount

    if now >= schedule.ramp_end:
        return schedule.total_amount

    linear_portion = schedule.total_amount - schedule.upfront_amount
    elapsed = now - schedule.ramp_start
    duration = schedule.ramp_end - schedule.ramp_start

    unlocked = schedule.upfront_amount + (linear_portion * elapsed) // duration
    return min(unlocked, schedule.total_amount)


def claimable_at(schedule: Schedule, now: int) -> int:
    """Unlocked amount not yet claimed; never negative."""
    unlocked = unlocked_at(schedule, now)
    if unlocked > schedule.claimed_amount:
        return unlocked - schedule.claimed_amount
    return 0
