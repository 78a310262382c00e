from __future__ import annotations

import copy
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from relay_service.application.exceptions import PersistenceError
from relay_service.infrastructure.db.models.client_state import ClientStateModel


class SqlStateRepository:
    """Stores each client's conversation mapping as one JSON row."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def load(self, identity: str) -> dict[str, Any] | None:
        stmt = select(ClientStateModel.payload).where(ClientStateModel.identity == identity)
        try:
            with self._session_factory() as session:
                return session.execute(stmt).scalar_one_or_none()
        except (SQLAlchemyError, ValueError) as exc:
            raise PersistenceError(f"load failed for {identity}: {exc}") from exc

    def save(self, identity: str, data: dict[str, Any]) -> None:
        try:
            with self._session_factory.begin() as session:
                row = session.get(ClientStateModel, identity)
                if row is None:
                    session.add(ClientStateModel(identity=identity, payload=data))
                else:
                    # JSON columns are not mutation-tracked; assign a fresh object
                    row.payload = copy.deepcopy(data)
        except (SQLAlchemyError, TypeError, ValueError) as exc:
            raise PersistenceError(f"save failed for {identity}: {exc}") from exc


class MemoryStateRepository:
    """Keeps serialized state in a dict; used by tests and throwaway sessions."""

    def __init__(self, records: dict[str, Any] | None = None) -> None:
        self.records: dict[str, Any] = records if records is not None else {}
        self.saves = 0

    def load(self, identity: str) -> dict[str, Any] | None:
        record = self.records.get(identity)
        return copy.deepcopy(record) if record is not None else None

    def save(self, identity: str, data: dict[str, Any]) -> None:
        self.records[identity] = copy.deepcopy(data)
        self.saves += 1
