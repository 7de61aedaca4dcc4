from __future__ import annotations

import json
from unittest import TestCase

from app.schemas.installation import EdgeData
from app.services.installation_session import (
    SESSION_KEY_IBN,
    SESSION_KEY_VIEW_INDEX,
    InstallationSession,
    load_installation_session,
    save_installation_session,
)
from app.services.installation_systems import GENERAL_SYSTEM, INSTALLATION_SYSTEMS, View
from app.services.session_store import InMemorySessionStore
from app.services.wizard_navigator import (
    DeviceHandOff,
    NavigationBoundsError,
    WizardNavigator,
    device_live_route,
)


def _build_navigator(
    *,
    system_id: str = "FENECON_HOME_20",
    view_index: int = 0,
    edge_id: str | None = "fems1234",
) -> tuple[WizardNavigator, InstallationSession, InMemorySessionStore, list[DeviceHandOff]]:
    store = InMemorySessionStore()
    scope = store.scope("session-1")
    session = InstallationSession(
        system=INSTALLATION_SYSTEMS[system_id],
        view_index=view_index,
        edge=EdgeData(id=edge_id) if edge_id else None,
    )
    save_installation_session(scope, session)
    hand_offs: list[DeviceHandOff] = []
    navigator = WizardNavigator(session=session, scope=scope, on_finish=hand_offs.append)
    return navigator, session, store, hand_offs


class WizardNavigatorTests(TestCase):
    def test_advancing_through_all_views_hands_off_exactly_once(self) -> None:
        navigator, _session, store, hand_offs = _build_navigator()
        results = [navigator.advance() for _ in range(navigator.view_count)]

        self.assertEqual([result.finished for result in results].count(True), 1)
        self.assertTrue(results[-1].finished)
        self.assertEqual(hand_offs, [DeviceHandOff(edge_id="fems1234", route="/device/fems1234/live")])
        self.assertEqual(store.entries("session-1"), {})
        with self.assertRaises(NavigationBoundsError):
            navigator.advance()
        self.assertEqual(len(hand_offs), 1)

    def test_advance_persists_view_index(self) -> None:
        navigator, _session, store, _hand_offs = _build_navigator()

        navigator.advance()
        navigator.advance()

        self.assertEqual(store.get("session-1", SESSION_KEY_VIEW_INDEX), "2")

    def test_retreat_at_first_view_raises(self) -> None:
        navigator, _session, _store, _hand_offs = _build_navigator()

        with self.assertRaises(NavigationBoundsError):
            navigator.retreat()

    def test_retreat_decrements_index(self) -> None:
        navigator, session, _store, _hand_offs = _build_navigator(view_index=3)

        result = navigator.retreat()

        self.assertTrue(result.accepted)
        self.assertEqual(session.view_index, 2)

    def test_jump_out_of_bounds_is_rejected_without_change(self) -> None:
        navigator, session, store, _hand_offs = _build_navigator(view_index=4)

        for index in (-1, navigator.view_count, navigator.view_count + 5):
            result = navigator.jump_to(index)
            self.assertFalse(result.accepted)
            self.assertIsNotNone(result.error)

        self.assertEqual(session.view_index, 4)
        self.assertEqual(store.get("session-1", SESSION_KEY_VIEW_INDEX), "4")

    def test_jump_within_bounds_moves_to_view(self) -> None:
        navigator, _session, _store, _hand_offs = _build_navigator()

        result = navigator.jump_to(5)

        self.assertTrue(result.accepted)
        self.assertEqual(navigator.current_view(), View.PROTOCOL_CUSTOMER)

    def test_progress_reflects_position(self) -> None:
        navigator, session, _store, _hand_offs = _build_navigator()
        self.assertEqual(navigator.progress(), 0.0)
        self.assertEqual(navigator.progress_text(), f"Schritt 1 von {navigator.view_count}")

        session.view_index = navigator.view_count - 1
        self.assertEqual(navigator.progress(), 1.0)

    def test_hand_off_without_edge_routes_to_index(self) -> None:
        navigator, _session, _store, hand_offs = _build_navigator(edge_id=None, view_index=16)

        result = navigator.advance()

        self.assertTrue(result.finished)
        self.assertEqual(hand_offs[0].route, "/index")
        self.assertEqual(device_live_route(""), "/index")


class InstallationSessionPersistenceTests(TestCase):
    def test_resume_restores_system_data_and_index(self) -> None:
        store = InMemorySessionStore()
        scope = store.scope("session-1")
        session = InstallationSession(system=INSTALLATION_SYSTEMS["FENECON_HOME"], view_index=6)
        session.data.customer.first_name = "Erika"
        save_installation_session(scope, session)

        restored = load_installation_session(scope)

        self.assertEqual(restored.system.id, "FENECON_HOME")
        self.assertEqual(restored.view_index, 6)
        self.assertEqual(restored.data.customer.first_name, "Erika")

    def test_stored_entry_keeps_only_system_tag(self) -> None:
        store = InMemorySessionStore()
        scope = store.scope("session-1")
        save_installation_session(scope, InstallationSession(system=INSTALLATION_SYSTEMS["FENECON_HOME_30"]))

        decoded = json.loads(store.get("session-1", SESSION_KEY_IBN))

        self.assertEqual(set(decoded), {"id", "data"})
        self.assertEqual(decoded["id"], "FENECON_HOME_30")

    def test_unknown_system_falls_back_to_general_at_first_view(self) -> None:
        store = InMemorySessionStore()
        store.set("session-1", SESSION_KEY_IBN, json.dumps({"id": "REMOVED_SYSTEM", "data": {}}))
        store.set("session-1", SESSION_KEY_VIEW_INDEX, "7")

        with self.assertLogs("app.installation_session", level="WARNING"):
            restored = load_installation_session(store.scope("session-1"))

        self.assertIs(restored.system, GENERAL_SYSTEM)
        self.assertEqual(restored.view_index, 0)

    def test_out_of_bounds_index_is_reset(self) -> None:
        store = InMemorySessionStore()
        save_installation_session(
            store.scope("session-1"),
            InstallationSession(system=INSTALLATION_SYSTEMS["FENECON_HOME"]),
        )
        store.set("session-1", SESSION_KEY_VIEW_INDEX, "99")

        with self.assertLogs("app.installation_session", level="WARNING"):
            restored = load_installation_session(store.scope("session-1"))

        self.assertEqual(restored.view_index, 0)

    def test_unreadable_entries_use_defaults(self) -> None:
        store = InMemorySessionStore()
        store.set("session-1", SESSION_KEY_IBN, "{not json")
        store.set("session-1", SESSION_KEY_VIEW_INDEX, "abc")

        with self.assertLogs("app.installation_session", level="WARNING"):
            restored = load_installation_session(store.scope("session-1"))

        self.assertIs(restored.system, GENERAL_SYSTEM)
        self.assertEqual(restored.view_index, 0)
