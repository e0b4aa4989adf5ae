from datetime import datetime, timedelta, timezone

from waitlist.services.position_calculator import (
    POINTS_WEIGHT,
    RankingRow,
    assign_positions,
    compute_rank_key,
)

BASE = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def test_rank_key_is_signup_millis_minus_weighted_points():
    assert compute_rank_key(BASE, 0) == int(BASE.timestamp() * 1000)
    assert compute_rank_key(BASE, 250) == int(BASE.timestamp() * 1000) - 250 * POINTS_WEIGHT


def test_naive_datetimes_are_read_as_utc():
    naive = BASE.replace(tzinfo=None)
    assert compute_rank_key(naive, 10) == compute_rank_key(BASE, 10)


def test_one_referral_outweighs_a_minute_of_signup_separation():
    early = RankingRow(1, BASE, 0)
    late_with_points = RankingRow(2, BASE + timedelta(minutes=1), 100)
    positions = assign_positions([early, late_with_points])
    assert positions == {2: 1, 1: 2}


def test_positions_are_sequential_and_ordered_by_signup_without_points():
    rows = [RankingRow(i, BASE + timedelta(seconds=10 - i), 0) for i in range(1, 11)]
    positions = assign_positions(rows)
    assert sorted(positions.values()) == list(range(1, 11))
    # id 10 signed up earliest
    assert positions[10] == 1
    assert positions[1] == 10


def test_equal_rank_keys_fall_back_to_signup_time_then_id():
    # 1 point == 1000 ms: both keys equal, the earlier signup wins
    a = RankingRow(5, BASE, 1)
    b = RankingRow(3, BASE - timedelta(seconds=1), 0)
    assert compute_rank_key(a.created_at, a.points_earned) == compute_rank_key(b.created_at, b.points_earned)
    assert assign_positions([a, b]) == {3: 1, 5: 2}

    # identical keys and timestamps: lower id wins
    c = RankingRow(9, BASE, 0)
    d = RankingRow(4, BASE, 0)
    assert assign_positions([c, d]) == {4: 1, 9: 2}


def test_assignment_is_deterministic():
    rows = [RankingRow(i, BASE + timedelta(milliseconds=i * 7), (i * 37) % 5 * 50) for i in range(1, 40)]
    assert assign_positions(rows) == assign_positions(list(reversed(rows)))
