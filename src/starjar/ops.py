"""Operational utilities for StarJar: structured event logging and backups."""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Mapping, Optional

from .config import EXPORT_VERSION, LOG_FILE
from .exceptions import ImportRejectedError
from .models import ActivityLog, Child, Investment, to_millis, utcnow

if TYPE_CHECKING:  # pragma: no cover
    from .store import KeyValueStore


class StructuredLogger:
    """Write JSON lines log entries for parent inspection."""

    def __init__(self, *, path: Path | str | None = LOG_FILE) -> None:
        self.path = Path(path) if path else None
        self._entries: list[dict] = []

    def log(self, event_type: str, **fields: object) -> dict:
        entry = {"timestamp": utcnow().isoformat(), "event": event_type, **fields}
        self._entries.append(entry)
        if self.path:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(entry, default=str) + "\n")
        return entry

    def tail(self, limit: int = 50) -> tuple[dict, ...]:
        return tuple(self._entries[-limit:])

    def events(self, event_type: str) -> tuple[dict, ...]:
        return tuple(entry for entry in self._entries if entry["event"] == event_type)


_SECTIONS: Dict[str, Callable[[Mapping[str, Any]], Any]] = {
    "children": Child.from_dict,
    "logs": ActivityLog.from_dict,
    "investments": Investment.from_dict,
}


class BackupManager:
    """Produce and restore whole-store export documents."""

    def __init__(self, store: "KeyValueStore", *, logger: StructuredLogger | None = None) -> None:
        self._store = store
        self._logger = logger or store.logger

    def export_document(self, *, at: Optional[datetime] = None) -> Dict[str, Any]:
        document = {
            "children": [child.to_dict() for child in self._store.get_children()],
            "logs": [log.to_dict() for log in self._store.get_logs()],
            "investments": [investment.to_dict() for investment in self._store.get_investments()],
            "version": EXPORT_VERSION,
            "exportedAt": to_millis(at or utcnow()),
        }
        self._logger.log(
            "export_created",
            children=len(document["children"]),
            logs=len(document["logs"]),
            investments=len(document["investments"]),
        )
        return document

    def export_json(self, *, at: Optional[datetime] = None, indent: int | None = 2) -> str:
        return json.dumps(self.export_document(at=at), indent=indent)

    def import_document(self, document: Mapping[str, Any] | str | bytes) -> Dict[str, int]:
        """Replace children, logs and investments with the contents of ``document``.

        Nothing is written unless every section is present and every record decodes.
        """

        if isinstance(document, (str, bytes)):
            try:
                document = json.loads(document)
            except ValueError as exc:
                raise self._rejection("Backup file is not valid JSON.") from exc
        if not isinstance(document, Mapping):
            raise self._rejection("Backup file must contain a JSON object.")

        decoded: Dict[str, List[Any]] = {}
        for section, factory in _SECTIONS.items():
            records = document.get(section)
            if not isinstance(records, list):
                raise self._rejection(f"Backup file is missing the '{section}' list.")
            try:
                decoded[section] = [factory(record) for record in records]
            except (KeyError, TypeError, ValueError, ArithmeticError) as exc:
                raise self._rejection(f"Backup file has an invalid '{section}' record: {exc}") from exc

        with self._store.transaction():
            self._store.save_children(decoded["children"])
            self._store.save_logs(decoded["logs"])
            self._store.save_investments(decoded["investments"])
        counts = {section: len(records) for section, records in decoded.items()}
        self._logger.log("import_restored", version=document.get("version"), **counts)
        return counts

    def _rejection(self, reason: str) -> ImportRejectedError:
        self._logger.log("import_rejected", reason=reason)
        return ImportRejectedError(reason)


__all__ = ["BackupManager", "StructuredLogger"]
