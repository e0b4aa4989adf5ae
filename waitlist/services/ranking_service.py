"""
Ranking - turns rank keys into persisted positions

Every pass re-ranks the whole population so positions stay a strict 1..N
sequence; entries outside the batch are only written when their position
actually moved.
"""
from dataclasses import dataclass, field
from typing import Iterable, List, Optional
import logging

from waitlist.core.rules import Milestone, WaitlistRules
from waitlist.services.entry_store import EntryStore
from waitlist.services.position_calculator import assign_positions

logger = logging.getLogger(__name__)


@dataclass
class PositionChange:
    entry_id: int
    email: str
    name: str
    previous: Optional[int]
    position: int


@dataclass
class RecomputeResult:
    entries: int = 0
    changed: int = 0
    # Batch entries whose position moved, for notification after commit
    moved: List[PositionChange] = field(default_factory=list)
    # Batch entries now inside the top cutoff without the milestone
    top_candidates: List[int] = field(default_factory=list)


class RankingService:
    def __init__(self, store: EntryStore, rules: WaitlistRules):
        self.store = store
        self.rules = rules

    def recompute(self, entry_ids: Iterable[int] = ()) -> RecomputeResult:
        """Re-rank everyone in one transaction; `entry_ids` always get a fresh timestamp."""
        batch = set(entry_ids)
        result = RecomputeResult()
        with self.store.transaction() as db:
            self.store.lock_population(db)
            total = self.store.count(db)
            if total < self.rules.position_threshold:
                logger.debug(f"Skipping recompute: {total} entries below threshold {self.rules.position_threshold}")
                return result

            rows = self.store.ranking_rows(db)
            current = {row.id: position for row, position in rows}
            ranked = assign_positions((row for row, _ in rows), self.rules.points_weight)
            result.entries = len(ranked)

            for entry_id, position in ranked.items():
                previous = current.get(entry_id)
                moved = previous != position
                if moved:
                    result.changed += 1
                if not moved and entry_id not in batch:
                    continue
                self.store.update_position(db, entry_id, position)
                if entry_id not in batch:
                    continue
                entry = self.store.get_by_id(db, entry_id)
                if moved:
                    result.moved.append(PositionChange(
                        entry_id=entry_id,
                        email=entry.email,
                        name=entry.name,
                        previous=previous,
                        position=position,
                    ))
                if (position <= self.rules.top_milestone_cutoff
                        and Milestone.TOP_HUNDRED.value not in (entry.milestones or [])):
                    result.top_candidates.append(entry_id)

        logger.info(
            f"Recomputed {result.entries} positions ({result.changed} changed, batch of {len(batch)})"
        )
        return result
