"""
Schedule records and the per-beneficiary schedule ledger.

Pure data: the vault owns one ScheduleStore and is the only writer.
"""

from __future__ import annotations

import copy
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterator, List


@dataclass
class Schedule:
    """
    One grant of tokens to one beneficiary.

    All amounts are integer base units and all times are integer Unix
    timestamps. ``claimable_cache`` is advisory only; the claimable amount
    is always recomputed from timestamps.
    """

    total_amount: int
    claimed_amount: int
    upfront_amount: int
    claimable_cache: int
    cliff_time: int
    ramp_start: int
    ramp_end: int

    @property
    def remaining(self) -> int:
        """Amount not yet paid out, locked or unlocked."""
        return self.total_amount - self.claimed_amount

    @property
    def fully_claimed(self) -> bool:
        return self.claimed_amount >= self.total_amount

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Schedule":
        return cls(
            total_amount=int(data["total_amount"]),
            claimed_amount=int(data["claimed_amount"]),
            upfront_amount=int(data["upfront_amount"]),
            claimable_cache=int(data["claimable_cache"]),
            cliff_time=int(data["cliff_time"]),
            ramp_start=int(data["ramp_start"]),
            ramp_end=int(data["ramp_end"]),
        )


class ScheduleStore:
    """
    Ordered schedule sequences keyed by beneficiary address.

    Schedules are only ever appended; a beneficiary's whole sequence can be
    cleared at once (recovery) and restored from a snapshot (rollback).
    """

    def __init__(self) -> None:
        self._ledger: Dict[str, List[Schedule]] = {}

    def append(self, beneficiary: str, schedule: Schedule) -> int:
        """Append a schedule and return its index within the beneficiary's list."""
        schedules = self._ledger.setdefault(beneficiary, [])
        schedules.append(schedule)
        return len(schedules) - 1

    def get(self, beneficiary: str) -> List[Schedule]:
        """Return the live schedule list (empty list if none)."""
        return self._ledger.get(beneficiary, [])

    def count(self, beneficiary: str) -> int:
        return len(self._ledger.get(beneficiary, []))

    def beneficiaries(self) -> List[str]:
        return [b for b, schedules in self._ledger.items() if schedules]

    def clear(self, beneficiary: str) -> List[Schedule]:
        """Remove and return the beneficiary's entire sequence."""
        return self._ledger.pop(beneficiary, [])

    def snapshot(self, beneficiary: str) -> List[Schedule]:
        """Deep copy of the beneficiary's schedules for rollback."""
        return copy.deepcopy(self._ledger.get(beneficiary, []))

    def restore(self, beneficiary: str, schedules: List[Schedule]) -> None:
        """Replace the beneficiary's sequence with a previously taken snapshot."""
        if schedules:
            self._ledger[beneficiary] = schedules
        else:
            self._ledger.pop(beneficiary, None)

    def total_outstanding(self) -> int:
        """Sum of unpaid amounts across every schedule in the store."""
        return sum(s.remaining for s in self)

    def __iter__(self) -> Iterator[Schedule]:
        for schedules in self._ledger.values():
            yield from schedules

    def __len__(self) -> int:
        return sum(len(schedules) for schedules in self._ledger.values())

    def to_dict(self) -> Dict[str, List[Dict[str, int]]]:
        return {
            beneficiary: [s.to_dict() for s in schedules]
            for beneficiary, schedules in self._ledger.items()
            if schedules
        }

    @classmethod
    def from_dict(cls, data: Dict[str, List[Dict[str, Any]]]) -> "ScheduleStore":
        store = cls()
        for beneficiary, records in data.items():
            for record in records:
                store.append(beneficiary, Schedule.from_dict(record))
        return store
