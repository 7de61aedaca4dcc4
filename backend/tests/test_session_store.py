from __future__ import annotations

from unittest import TestCase

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import Settings
from app.db.base import Base
from app.db import models  # noqa: F401
from app.services.installation_session import (
    InstallationSession,
    load_installation_session,
    save_installation_session,
)
from app.services.installation_systems import INSTALLATION_SYSTEMS
from app.services.session_store import (
    DatabaseSessionStore,
    InMemorySessionStore,
    build_session_store,
)


def _build_database_store() -> DatabaseSessionStore:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    session_factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return DatabaseSessionStore(session_factory=session_factory)


class DatabaseSessionStoreTests(TestCase):
    def test_set_overwrites_and_entries_are_scoped(self) -> None:
        store = _build_database_store()

        store.set("session-1", "viewIndex", "1")
        store.set("session-1", "viewIndex", "2")
        store.set("session-2", "viewIndex", "5")

        self.assertEqual(store.get("session-1", "viewIndex"), "2")
        self.assertEqual(store.entries("session-1"), {"viewIndex": "2"})
        self.assertIsNone(store.get("session-1", "edge"))

    def test_clear_removes_only_one_session(self) -> None:
        store = _build_database_store()
        store.set("session-1", "viewIndex", "1")
        store.set("session-2", "viewIndex", "1")

        store.clear("session-1")

        self.assertFalse(store.scope("session-1").exists())
        self.assertTrue(store.scope("session-2").exists())

    def test_installation_session_round_trip(self) -> None:
        store = _build_database_store()
        scope = store.scope("session-1")
        session = InstallationSession(system=INSTALLATION_SYSTEMS["FENECON_HOME_30"], view_index=9)
        session.data.line_side_meter_fuse.fixed_value = 35
        save_installation_session(scope, session)

        restored = load_installation_session(scope)

        self.assertEqual(restored.system.id, "FENECON_HOME_30")
        self.assertEqual(restored.view_index, 9)
        self.assertEqual(restored.data.line_side_meter_fuse.fixed_value, 35)


class BuildSessionStoreTests(TestCase):
    def test_memory_store_is_default(self) -> None:
        self.assertIsInstance(build_session_store(Settings()), InMemorySessionStore)

    def test_database_store_requires_session_factory(self) -> None:
        settings = Settings(session_store="database")

        with self.assertRaises(ValueError):
            build_session_store(settings)
        self.assertIsInstance(
            build_session_store(settings, session_factory=lambda: None),
            DatabaseSessionStore,
        )
