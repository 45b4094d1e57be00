"""
Unit tests for Schedule records and the ScheduleStore ledger.
"""

from tokenvest.core.schedule import Schedule, ScheduleStore


def _schedule(total, claimed=0):
    return Schedule(
        total_amount=total,
        claimed_amount=claimed,
        upfront_amount=0,
        claimable_cache=0,
        cliff_time=10,
        ramp_start=10,
        ramp_end=20,
    )


class TestSchedule:
    def test_remaining_and_fully_claimed(self):
        schedule = _schedule(500, claimed=200)
        assert schedule.remaining == 300
        assert not schedule.fully_claimed

        schedule.claimed_amount = 500
        assert schedule.remaining == 0
        assert schedule.fully_claimed

    def test_dict_has_seven_integer_fields(self):
        data = _schedule(500).to_dict()
        assert set(data) == {
            "total_amount",
            "claimed_amount",
            "upfront_amount",
            "claimable_cache",
            "cliff_time",
            "ramp_start",
            "ramp_end",
        }
        assert all(isinstance(v, int) for v in data.values())

    def test_from_dict_casts_values(self):
        data = {key: str(value) for key, value in _schedule(500, 7).to_dict().items()}
        restored = Schedule.from_dict(data)
        assert restored == _schedule(500, 7)


class TestScheduleStore:
    def test_append_preserves_insertion_order(self):
        store = ScheduleStore()
        assert store.append("0xa", _schedule(1)) == 0
        assert store.append("0xa", _schedule(2)) == 1
        assert store.append("0xb", _schedule(3)) == 0

        assert [s.total_amount for s in store.get("0xa")] == [1, 2]
        assert store.count("0xa") == 2
        assert store.count("0xmissing") == 0
        assert len(store) == 3

    def test_get_unknown_returns_empty(self):
        assert ScheduleStore().get("0xnobody") == []

    def test_clear_removes_whole_sequence(self):
        store = ScheduleStore()
        store.append("0xa", _schedule(1))
        store.append("0xa", _schedule(2))

        cleared = store.clear("0xa")

        assert [s.total_amount for s in cleared] == [1, 2]
        assert store.count("0xa") == 0
        assert store.beneficiaries() == []

    def test_snapshot_is_independent_copy(self):
        store = ScheduleStore()
        store.append("0xa", _schedule(100))

        snapshot = store.snapshot("0xa")
        store.get("0xa")[0].claimed_amount = 60

        assert snapshot[0].claimed_amount == 0

    def test_restore_replaces_sequence(self):
        store = ScheduleStore()
        store.append("0xa", _schedule(100))
        snapshot = store.snapshot("0xa")

        store.clear("0xa")
        store.restore("0xa", snapshot)

        assert store.count("0xa") == 1
        assert store.get("0xa")[0].total_amount == 100

    def test_restore_empty_snapshot_drops_beneficiary(self):
        store = ScheduleStore()
        empty = store.snapshot("0xa")
        store.append("0xa", _schedule(100))

        store.restore("0xa", empty)

        assert "0xa" not in store.beneficiaries()

    def test_total_outstanding(self):
        store = ScheduleStore()
        store.append("0xa", _schedule(500, claimed=200))
        store.append("0xb", _schedule(300))
        assert store.total_outstanding() == 600

    def test_dict_conversion(self):
        store = ScheduleStore()
        store.append("0xa", _schedule(500, claimed=200))
        store.append("0xb", _schedule(300))

        restored = ScheduleStore.from_dict(store.to_dict())

        assert restored.get("0xa") == store.get("0xa")
        assert restored.get("0xb") == store.get("0xb")
        assert sorted(restored.beneficiaries()) == ["0xa", "0xb"]
