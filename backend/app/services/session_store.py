from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from threading import Lock
from typing import Callable

from app.core.config import Settings
from app.repositories.installation_sessions import (
    delete_session_entries,
    get_session_entry,
    list_session_entries,
    upsert_session_entry,
)


class SessionStore(ABC):
    """String key/value entries scoped to one wizard session."""

    @abstractmethod
    def get(self, session_id: str, key: str) -> str | None: ...

    @abstractmethod
    def set(self, session_id: str, key: str, value: str) -> None: ...

    @abstractmethod
    def entries(self, session_id: str) -> dict[str, str]: ...

    @abstractmethod
    def clear(self, session_id: str) -> None: ...

    def scope(self, session_id: str) -> SessionScope:
        return SessionScope(store=self, session_id=session_id)


class SessionScope:
    def __init__(self, *, store: SessionStore, session_id: str) -> None:
        self.session_id = session_id
        self._store = store

    def get(self, key: str) -> str | None:
        return self._store.get(self.session_id, key)

    def set(self, key: str, value: str) -> None:
        self._store.set(self.session_id, key, value)

    def entries(self) -> dict[str, str]:
        return self._store.entries(self.session_id)

    def exists(self) -> bool:
        return bool(self.entries())

    def clear(self) -> None:
        self._store.clear(self.session_id)


class InMemorySessionStore(SessionStore):
    def __init__(self) -> None:
        self._lock = Lock()
        self._sessions: dict[str, dict[str, str]] = {}

    def get(self, session_id: str, key: str) -> str | None:
        with self._lock:
            return self._sessions.get(session_id, {}).get(key)

    def set(self, session_id: str, key: str, value: str) -> None:
        with self._lock:
            self._sessions.setdefault(session_id, {})[key] = value

    def entries(self, session_id: str) -> dict[str, str]:
        with self._lock:
            return dict(self._sessions.get(session_id, {}))

    def clear(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)


class DatabaseSessionStore(SessionStore):
    def __init__(self, *, session_factory: Callable) -> None:
        self._session_factory = session_factory

    def get(self, session_id: str, key: str) -> str | None:
        with self._session_factory() as db:
            return get_session_entry(db, session_id=session_id, key=key)

    def set(self, session_id: str, key: str, value: str) -> None:
        with self._session_factory() as db:
            upsert_session_entry(db, session_id=session_id, key=key, value_text=value)

    def entries(self, session_id: str) -> dict[str, str]:
        with self._session_factory() as db:
            return list_session_entries(db, session_id=session_id)

    def clear(self, session_id: str) -> None:
        with self._session_factory() as db:
            delete_session_entries(db, session_id=session_id)


def build_session_store(settings: Settings, *, session_factory: Callable | None = None) -> SessionStore:
    logger = logging.getLogger("app.session_store")
    if settings.session_store == "database":
        if session_factory is None:
            raise ValueError("database session store requires a session factory")
        logger.info("using database session store")
        return DatabaseSessionStore(session_factory=session_factory)
    logger.info("using in-memory session store")
    return InMemorySessionStore()
