"""
Position Calculator - pure ranking functions

A rank key is a working value: signup time in epoch milliseconds minus a
points-weighted offset. The visible position is the 1-based rank of an
entry's key among every entry's key, ties broken by created_at then id.
"""
from datetime import datetime, timezone
from typing import Dict, Iterable, NamedTuple, Tuple

POINTS_WEIGHT = 1000


class RankingRow(NamedTuple):
    id: int
    created_at: datetime
    points_earned: int


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; they are stored as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _epoch_millis(value: datetime) -> int:
    return int(_as_utc(value).timestamp() * 1000)


def compute_rank_key(created_at: datetime, points_earned: int, points_weight: int = POINTS_WEIGHT) -> int:
    """Smaller is better: earlier signups and more points move an entry forward."""
    return _epoch_millis(created_at) - (points_earned or 0) * points_weight


def ranking_order(row: RankingRow, points_weight: int = POINTS_WEIGHT) -> Tuple[int, datetime, int]:
    return (
        compute_rank_key(row.created_at, row.points_earned, points_weight),
        _as_utc(row.created_at),
        row.id,
    )


def assign_positions(rows: Iterable[RankingRow], points_weight: int = POINTS_WEIGHT) -> Dict[int, int]:
    """Map every entry id to its 1-based position. Total order, no shared positions."""
    ordered = sorted(rows, key=lambda r: ranking_order(r, points_weight))
    return {row.id: index for index, row in enumerate(ordered, start=1)}
