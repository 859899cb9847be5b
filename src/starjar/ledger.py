"""Activity ledger keeping each child's cached total in step with its log entries."""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple
from uuid import uuid4

from .models import ActivityCategory, ActivityLog, Child, Outcome, utcnow
from .ops import StructuredLogger
from .points import to_points
from .store import KeyValueStore

MonthGroup = Tuple[int, int, Tuple[ActivityLog, ...]]


def new_id() -> str:
    return uuid4().hex


class ActivityLedger:
    """Create, edit and delete log entries for children.

    Every command applies the log write and the balance write in one store
    transaction, so ``child.total_points`` always equals the sum of that
    child's entries once a command returns. Missing children or entries are
    reported as ``not_found`` outcomes rather than raised.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        logger: StructuredLogger | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._logger = logger or store.logger
        self._clock = clock

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def entries(self, child_id: str | None = None) -> Tuple[ActivityLog, ...]:
        logs = self._store.get_logs()
        if child_id is not None:
            logs = [log for log in logs if log.child_id == child_id]
        return tuple(logs)

    def get(self, entry_id: str) -> Optional[ActivityLog]:
        for log in self._store.get_logs():
            if log.id == entry_id:
                return log
        return None

    def history(self, child_id: str) -> Tuple[ActivityLog, ...]:
        """Return a child's entries newest first."""

        return tuple(sorted(self.entries(child_id), key=lambda log: log.timestamp, reverse=True))

    def monthly_history(self, child_id: str) -> Tuple[MonthGroup, ...]:
        """Group a child's history by calendar month, newest month first."""

        groups: Dict[Tuple[int, int], List[ActivityLog]] = {}
        for log in self.history(child_id):
            groups.setdefault((log.timestamp.year, log.timestamp.month), []).append(log)
        return tuple((year, month, tuple(logs)) for (year, month), logs in groups.items())

    def balance_mismatches(self) -> Dict[str, Tuple[int, int]]:
        """Return ``{child_id: (cached_total, log_sum)}`` for children out of step."""

        sums = self._log_sums()
        return {
            child.id: (child.total_points, sums.get(child.id, 0))
            for child in self._store.get_children()
            if child.total_points != sums.get(child.id, 0)
        }

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------
    def record(
        self,
        child_id: str,
        description: str,
        points: int,
        category: ActivityCategory | str = ActivityCategory.OTHER,
        *,
        at: Optional[datetime] = None,
    ) -> Outcome[ActivityLog]:
        entry = ActivityLog(
            id=new_id(),
            child_id=child_id,
            description=description,
            points=points,
            category=ActivityCategory(category),
            timestamp=at or self._clock(),
        )
        return self.add_entry(entry)

    def add_entry(self, entry: ActivityLog) -> Outcome[ActivityLog]:
        with self._store.transaction():
            logs = self._store.get_logs()
            if any(log.id == entry.id for log in logs):
                return self._rejected("entry_rejected", f"Entry '{entry.id}' already exists.", entry=entry.id)
            children = self._store.get_children()
            child = _find_child(children, entry.child_id)
            if child is None:
                return self._not_found("entry_ignored", f"Child '{entry.child_id}' does not exist.", entry=entry.id)
            logs.append(entry)
            child.total_points += entry.points
            self._store.save_logs(logs)
            self._store.save_children(children)
        self._logger.log(
            "entry_added",
            child=entry.child_id,
            entry=entry.id,
            points=entry.points,
            category=entry.category.value,
        )
        return Outcome.success(entry)

    def update_entry(self, updated: ActivityLog) -> Outcome[ActivityLog]:
        with self._store.transaction():
            logs = self._store.get_logs()
            index = next((i for i, log in enumerate(logs) if log.id == updated.id), None)
            if index is None:
                return self._not_found("entry_ignored", f"Entry '{updated.id}' does not exist.", entry=updated.id)
            previous = logs[index]
            if previous.child_id != updated.child_id:
                return self._rejected(
                    "entry_rejected",
                    "An entry cannot be moved to another child.",
                    entry=updated.id,
                )
            delta = to_points(updated.points) - previous.points
            logs[index] = updated
            children = self._store.get_children()
            child = _find_child(children, updated.child_id)
            if child is not None:
                child.total_points += delta
                self._store.save_children(children)
            self._store.save_logs(logs)
        self._logger.log("entry_updated", child=updated.child_id, entry=updated.id, delta=delta)
        return Outcome.success(updated)

    def delete_entry(self, entry_id: str) -> Outcome[ActivityLog]:
        with self._store.transaction():
            logs = self._store.get_logs()
            removed = next((log for log in logs if log.id == entry_id), None)
            if removed is None:
                return self._not_found("entry_ignored", f"Entry '{entry_id}' does not exist.", entry=entry_id)
            children = self._store.get_children()
            child = _find_child(children, removed.child_id)
            if child is not None:
                child.total_points -= removed.points
                self._store.save_children(children)
            self._store.save_logs([log for log in logs if log.id != entry_id])
        self._logger.log("entry_deleted", child=removed.child_id, entry=entry_id, points=removed.points)
        return Outcome.success(removed)

    def rebuild_totals(self) -> Tuple[Child, ...]:
        """Recompute every cached total from the log and return the children that changed."""

        with self._store.transaction():
            sums = self._log_sums()
            children = self._store.get_children()
            changed = []
            for child in children:
                expected = sums.get(child.id, 0)
                if child.total_points != expected:
                    self._logger.log(
                        "balance_repaired",
                        child=child.id,
                        cached=child.total_points,
                        actual=expected,
                    )
                    child.total_points = expected
                    changed.append(child)
            if changed:
                self._store.save_children(children)
        return tuple(changed)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _log_sums(self) -> Dict[str, int]:
        sums: Dict[str, int] = defaultdict(int)
        for log in self._store.get_logs():
            sums[log.child_id] += log.points
        return sums

    def _not_found(self, event: str, reason: str, **fields: object) -> Outcome[ActivityLog]:
        self._logger.log(event, reason=reason, **fields)
        return Outcome.not_found(reason)

    def _rejected(self, event: str, reason: str, **fields: object) -> Outcome[ActivityLog]:
        self._logger.log(event, reason=reason, **fields)
        return Outcome.rejected(reason)


def _find_child(children: List[Child], child_id: str) -> Optional[Child]:
    for child in children:
        if child.id == child_id:
            return child
    return None


__all__ = ["ActivityLedger", "MonthGroup", "new_id"]
