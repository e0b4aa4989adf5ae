import pytest
from sqlalchemy.exc import OperationalError

from waitlist.core.database import connect_with_retry
from waitlist.core.exceptions import DuplicateEmailError, StorageUnavailableError, ValidationError
from waitlist.services.entry_store import EntryStore


def _create(store, i, referred_by=None):
    with store.transaction() as db:
        entry = store.create(
            db,
            name=f"Person {i}",
            email=f"person{i}@example.com",
            referral_code=f"CODE{i:04d}",
            referred_by=referred_by,
        )
        return entry.id


def _positions(store):
    with store.transaction() as db:
        return {entry.id: entry.position for entry, _ in store.list_entries(db)}


def test_entries_below_threshold_have_no_position(store):
    ids = [_create(store, i) for i in range(5)]
    assert set(_positions(store).values()) == {None}
    with store.transaction() as db:
        assert store.count(db) == 5
        assert store.count_unpositioned(db) == 5
        assert store.get_by_id(db, ids[0]).email == "person0@example.com"


def test_duplicate_email_fails_and_leaves_state_unchanged(store):
    _create(store, 1)
    before = _positions(store)

    with pytest.raises(DuplicateEmailError):
        with store.transaction() as db:
            store.create(db, name="Again", email="PERSON1@example.com ", referral_code="OTHER001")

    assert _positions(store) == before
    with store.transaction() as db:
        assert store.count(db) == 1
        assert store.get_by_referral_code(db, "OTHER001") is None


def test_threshold_crossing_assigns_sequential_positions_by_signup_order(store):
    ids = [_create(store, i) for i in range(149)]
    assert set(_positions(store).values()) == {None}

    last = _create(store, 149)
    ids.append(last)

    positions = _positions(store)
    assert sorted(positions.values()) == list(range(1, 151))
    with store.transaction() as db:
        ordered = sorted(
            (entry for entry, _ in store.list_entries(db)),
            key=lambda e: (e.created_at, e.id),
        )
        assert [e.position for e in ordered] == list(range(1, 151))
        assert store.get_by_id(db, last).position == 150
        assert store.count_unpositioned(db) == 0


def test_entries_after_threshold_take_the_next_position(store):
    for i in range(151):
        _create(store, i)
    with store.transaction() as db:
        assert store.get(db, "person150@example.com").position == 151


def test_backfill_is_idempotent(session_factory):
    store = EntryStore(session_factory, position_threshold=3)
    for i in range(3):
        _create(store, i)
    before = _positions(store)

    with store.transaction() as db:
        assert store.assign_sequential_positions(db) == 0
    assert _positions(store) == before


def test_milestone_is_recorded_once_but_points_accumulate(store):
    entry_id = _create(store, 1)
    with store.transaction() as db:
        assert store.update_points_and_milestones(db, entry_id, 100, "first_referral") is True
    with store.transaction() as db:
        assert store.update_points_and_milestones(db, entry_id, 100, "first_referral") is False
    with store.transaction() as db:
        entry = store.get_by_id(db, entry_id)
        assert entry.points_earned == 200
        assert entry.milestones == ["first_referral"]


def test_points_never_decrease(store):
    entry_id = _create(store, 1)
    with pytest.raises(ValidationError):
        with store.transaction() as db:
            store.update_points_and_milestones(db, entry_id, -5)


def test_update_position_stamps_last_update(store):
    entry_id = _create(store, 1)
    with store.transaction() as db:
        store.update_position(db, entry_id, 42)
    with store.transaction() as db:
        entry = store.get_by_id(db, entry_id)
        assert entry.position == 42
        assert entry.last_position_update is not None


def test_referral_counts_are_computed_from_referred_by(store):
    _create(store, 0)
    _create(store, 1, referred_by="CODE0000")
    _create(store, 2, referred_by="CODE0000")
    _create(store, 3, referred_by="MISSING1")

    with store.transaction() as db:
        assert store.count_referred_by(db, "CODE0000") == 2
        assert store.count_referred_by(db, "CODE0001") == 0
        rows = store.list_entries(db)
        # newest first
        assert [entry.email for entry, _ in rows][0] == "person3@example.com"
        counts = {entry.referral_code: n for entry, n in rows}
        assert counts["CODE0000"] == 2
        # stored counts were never incremented, so CODE0000 has drifted
        drift = store.referral_count_drift(db)
        assert [(entry.referral_code, n) for entry, n in drift] == [("CODE0000", 2)]


def test_increment_referral_count_returns_previous(store):
    entry_id = _create(store, 1)
    with store.transaction() as db:
        assert store.increment_referral_count(db, entry_id) == 0
        assert store.increment_referral_count(db, entry_id) == 1


def test_error_inside_transaction_rolls_everything_back(store):
    with pytest.raises(RuntimeError):
        with store.transaction() as db:
            store.create(db, name="Ghost", email="ghost@example.com", referral_code="GHOST001")
            raise RuntimeError("crash after insert")
    with store.transaction() as db:
        assert store.get(db, "ghost@example.com") is None


def test_connectivity_errors_surface_as_storage_unavailable(store):
    with pytest.raises(StorageUnavailableError):
        with store.transaction():
            raise OperationalError("SELECT 1", {}, Exception("server closed the connection"))


class _DownEngine:
    def __init__(self):
        self.attempts = 0

    def connect(self):
        self.attempts += 1
        raise OperationalError("connect", {}, Exception("connection refused"))


def test_startup_reconnect_is_bounded():
    engine = _DownEngine()
    with pytest.raises(StorageUnavailableError):
        connect_with_retry(engine, tries=2, interval=0)
    assert engine.attempts == 3
