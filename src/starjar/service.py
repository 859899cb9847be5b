"""High level service tying the StarJar ledgers, banks, AI helpers and backups together."""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional, Sequence, Tuple
from urllib.parse import quote

from .ai import GeminiClient, Transport
from .banks import BankDirectory
from .config import DEFAULT_AVATAR_URL, GEMINI_API_KEY
from .exceptions import ChildNotFoundError
from .investing import InvestmentLedger
from .ledger import ActivityLedger, new_id
from .models import (
    ActivityCategory,
    ActivityLog,
    ActivitySuggestion,
    Bank,
    Child,
    Investment,
    Outcome,
    RateQuote,
    utcnow,
)
from .ops import BackupManager, StructuredLogger
from .points import require_positive, to_points
from .store import InMemoryStore, KeyValueStore


class StarJar:
    """Manage children, their point ledgers, fixed deposits and settings."""

    __slots__ = (
        "_store",
        "_logger",
        "_clock",
        "_env_api_key",
        "_ai_transport",
        "activity",
        "banks",
        "investments",
        "backups",
    )

    def __init__(
        self,
        store: KeyValueStore | None = None,
        *,
        logger: StructuredLogger | None = None,
        clock: Callable[[], datetime] = utcnow,
        env_api_key: str | None = GEMINI_API_KEY,
        ai_transport: Transport | None = None,
    ) -> None:
        self._logger = logger or (store.logger if store is not None else StructuredLogger())
        self._store = store if store is not None else InMemoryStore(logger=self._logger)
        self._clock = clock
        self._env_api_key = env_api_key
        self._ai_transport = ai_transport
        self.activity = ActivityLedger(self._store, logger=self._logger, clock=clock)
        self.banks = BankDirectory(self._store, logger=self._logger)
        self.investments = InvestmentLedger(
            self._store,
            self.activity,
            self.banks,
            logger=self._logger,
            clock=clock,
        )
        self.backups = BackupManager(self._store, logger=self._logger)

    @property
    def store(self) -> KeyValueStore:
        return self._store

    @property
    def logger(self) -> StructuredLogger:
        return self._logger

    # ------------------------------------------------------------------
    # Children
    # ------------------------------------------------------------------
    def add_child(self, name: str, *, avatar_url: str | None = None) -> Child:
        cleaned = (name or "").strip()
        if not cleaned:
            raise ValueError("A child needs a name.")
        child = Child(
            id=new_id(),
            name=cleaned,
            avatar_url=avatar_url or f"{DEFAULT_AVATAR_URL}{quote(cleaned)}",
        )
        with self._store.transaction():
            children = self._store.get_children()
            children.append(child)
            self._store.save_children(children)
        self._logger.log("child_added", child=child.id, name=child.name)
        return child

    def list_children(self) -> Tuple[Child, ...]:
        return tuple(self._store.get_children())

    def find_child(self, child_id: str) -> Optional[Child]:
        for child in self._store.get_children():
            if child.id == child_id:
                return child
        return None

    def get_child(self, child_id: str) -> Child:
        child = self.find_child(child_id)
        if child is None:
            raise ChildNotFoundError(f"Child '{child_id}' does not exist.")
        return child

    def update_child(
        self,
        child_id: str,
        *,
        name: str | None = None,
        avatar_url: str | None = None,
    ) -> Outcome[Child]:
        with self._store.transaction():
            children = self._store.get_children()
            child = next((c for c in children if c.id == child_id), None)
            if child is None:
                return Outcome.not_found(f"Child '{child_id}' does not exist.")
            if name is not None:
                if not name.strip():
                    return Outcome.rejected("A child needs a name.")
                child.name = name.strip()
            if avatar_url is not None:
                child.avatar_url = avatar_url
            self._store.save_children(children)
        self._logger.log("child_updated", child=child_id)
        return Outcome.success(child)

    def reorder_children(self, child_ids: Sequence[str]) -> Outcome[Tuple[Child, ...]]:
        """Persist a new display order; ``child_ids`` must list every child exactly once."""

        with self._store.transaction():
            children = {child.id: child for child in self._store.get_children()}
            if len(child_ids) != len(children) or set(child_ids) != set(children):
                return Outcome.rejected("Order must list every child exactly once.")
            ordered = tuple(children[child_id] for child_id in child_ids)
            self._store.save_children(ordered)
        self._logger.log("children_reordered", order=list(child_ids))
        return Outcome.success(ordered)

    def delete_child(self, child_id: str) -> Outcome[Child]:
        """Remove a child together with all of its log entries and investments."""

        with self._store.transaction():
            children = self._store.get_children()
            child = next((c for c in children if c.id == child_id), None)
            if child is None:
                return Outcome.not_found(f"Child '{child_id}' does not exist.")
            logs = self._store.get_logs()
            investments = self._store.get_investments()
            self._store.save_children([c for c in children if c.id != child_id])
            self._store.save_logs([log for log in logs if log.child_id != child_id])
            self._store.save_investments([item for item in investments if item.child_id != child_id])
        self._logger.log(
            "child_deleted",
            child=child_id,
            logs=sum(1 for log in logs if log.child_id == child_id),
            investments=sum(1 for item in investments if item.child_id == child_id),
        )
        return Outcome.success(child)

    # ------------------------------------------------------------------
    # Activity
    # ------------------------------------------------------------------
    def earn(
        self,
        child_id: str,
        description: str,
        points: int,
        category: ActivityCategory | str = ActivityCategory.CHORE,
        *,
        at: Optional[datetime] = None,
    ) -> Outcome[ActivityLog]:
        value = require_positive(abs(to_points(points)))
        return self.activity.record(child_id, description, value, category, at=at)

    def redeem(
        self,
        child_id: str,
        description: str,
        points: int,
        *,
        category: ActivityCategory | str = ActivityCategory.REDEMPTION,
        at: Optional[datetime] = None,
    ) -> Outcome[ActivityLog]:
        """Spend points; refused when the cost is more than the child has."""

        cost = require_positive(abs(to_points(points)))
        child = self.find_child(child_id)
        if child is None:
            return Outcome.not_found(f"Child '{child_id}' does not exist.")
        if cost > child.total_points:
            self._logger.log("redeem_refused", child=child_id, cost=cost, balance=child.total_points)
            return Outcome.rejected(f"Cost {cost} exceeds balance {child.total_points}.")
        return self.activity.record(child_id, description, -cost, category, at=at)

    def edit_entry(self, entry: ActivityLog) -> Outcome[ActivityLog]:
        return self.activity.update_entry(entry)

    def delete_entry(self, entry_id: str) -> Outcome[ActivityLog]:
        return self.activity.delete_entry(entry_id)

    # ------------------------------------------------------------------
    # Investments
    # ------------------------------------------------------------------
    def invest(
        self,
        child_id: str,
        bank_id: str,
        amount: int,
        months: int,
        *,
        at: Optional[datetime] = None,
    ) -> Outcome[Investment]:
        return self.investments.create_investment(child_id, bank_id, amount, months, at=at)

    def withdraw(self, investment_id: str, *, at: Optional[datetime] = None) -> Outcome[Investment]:
        return self.investments.withdraw_investment(investment_id, at=at)

    def reconcile(self, *, at: Optional[datetime] = None) -> Tuple[Investment, ...]:
        """Credit matured deposits; call before reading balances or investments."""

        return self.investments.check_matured_investments(at=at)

    def list_banks(self) -> Tuple[Bank, ...]:
        return self.banks.get_banks()

    # ------------------------------------------------------------------
    # Settings and AI helpers
    # ------------------------------------------------------------------
    def api_key(self) -> Optional[str]:
        return self._store.get_api_key() or self._env_api_key or None

    def set_api_key(self, api_key: str | None) -> None:
        cleaned = (api_key or "").strip()
        self._store.save_api_key(cleaned or None)
        self._logger.log("api_key_updated", configured=bool(cleaned))

    def ai_client(self) -> Optional[GeminiClient]:
        key = self.api_key()
        if not key:
            return None
        return GeminiClient(key, transport=self._ai_transport, logger=self._logger)

    def suggest_activity(self, text: str, *, mode: str | None = None) -> Optional[ActivitySuggestion]:
        client = self.ai_client()
        if client is None:
            self._logger.log("ai_unavailable", feature="suggestion")
            return None
        suggestion = client.suggest_activity(text)
        if suggestion is not None and mode is not None:
            suggestion = suggestion.for_mode(mode)
        return suggestion

    def refresh_bank_rates(self) -> Optional[RateQuote]:
        client = self.ai_client()
        if client is None:
            self._logger.log("ai_unavailable", feature="rates")
            return None
        return self.banks.refresh(client)

    # ------------------------------------------------------------------
    # Backups
    # ------------------------------------------------------------------
    def export_json(self, *, at: Optional[datetime] = None) -> str:
        return self.backups.export_json(at=at or self._clock())

    def import_json(self, document: str | bytes) -> dict[str, int]:
        return self.backups.import_document(document)


__all__ = ["StarJar"]
