"""SQLModel backed persistence for StarJar's key/value collections."""
from __future__ import annotations

import json
from typing import Any, Mapping, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlmodel import Field, Session, SQLModel, create_engine, select

from .config import SQLITE_FILE_NAME
from .exceptions import StoreError
from .ops import StructuredLogger
from .store import KeyValueStore


class StoredValue(SQLModel, table=True):
    k: str = Field(primary_key=True)
    v: str


def make_engine(url: Optional[str] = None) -> Engine:
    return create_engine(
        url or f"sqlite:///{SQLITE_FILE_NAME}",
        echo=False,
        connect_args={"check_same_thread": False},
    )


class SqlModelStore(KeyValueStore):
    """Store each collection as one JSON document row, committing a transaction in one session."""

    def __init__(
        self,
        url: Optional[str] = None,
        *,
        engine: Optional[Engine] = None,
        logger: StructuredLogger | None = None,
    ) -> None:
        super().__init__(logger=logger)
        self.engine = engine or make_engine(url)
        SQLModel.metadata.create_all(self.engine, tables=[StoredValue.__table__])

    def _load(self, key: str) -> Any:
        try:
            with Session(self.engine) as session:
                record = session.get(StoredValue, key)
                payload = record.v if record else None
        except OperationalError as exc:
            raise StoreError(f"Unable to read '{key}' from the database.") from exc
        if payload is None:
            return None
        try:
            return json.loads(payload)
        except ValueError as exc:
            self.logger.log("store_decode_failed", key=key, error=str(exc))
            return None

    def _commit(self, changes: Mapping[str, Any]) -> None:
        try:
            with Session(self.engine) as session:
                for key, value in changes.items():
                    record = session.get(StoredValue, key)
                    if value is None:
                        if record is not None:
                            session.delete(record)
                        continue
                    payload = json.dumps(value)
                    if record is None:
                        record = StoredValue(k=key, v=payload)
                    else:
                        record.v = payload
                    session.add(record)
                session.commit()
        except SQLAlchemyError as exc:
            self.logger.log("store_commit_failed", keys=sorted(changes), error=str(exc))
            raise StoreError("Unable to commit changes to the database.") from exc

    def keys(self) -> tuple[str, ...]:
        with Session(self.engine) as session:
            return tuple(sorted(session.exec(select(StoredValue.k)).all()))


__all__ = ["SqlModelStore", "StoredValue", "make_engine"]
