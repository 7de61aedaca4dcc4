from __future__ import annotations

import asyncio
import copy
import logging
import uuid
from dataclasses import dataclass
from threading import Lock
from typing import Any, Mapping

from app.core.config import Settings
from app.schemas.installation import EdgeData, FeedInSetting, InstallationData, SafetyCountry
from app.schemas.protocol import SetupProtocol
from app.services.backend_client import BackendApiError, BackendClient
from app.services.installation_session import (
    InstallationSession,
    load_installation_session,
    save_installation_session,
)
from app.services.installation_systems import (
    AppInstallPayload,
    View,
    get_installation_system,
)
from app.services.live_data import LiveDataFeed
from app.services.live_defaults import (
    CellMetrics,
    fallback_serial_number_defaults,
    read_cell_metrics,
    resolve_serial_number_defaults,
)
from app.services.serial_number_fields import (
    SerialNumberDefaults,
    SerialNumberSchema,
    build_serial_number_schema,
    build_settings_fields,
    collect_serial_numbers,
    settings_counts,
    validate_settings,
)
from app.services.session_store import SessionScope, SessionStore
from app.services.setup_protocol import assemble_setup_protocol
from app.services.step_fields import validate_step
from app.services.wizard_navigator import DeviceHandOff, NavigationResult, WizardNavigator

PROTOCOL_SUBMITTED_MESSAGE = "Das Protokoll wurde erfolgreich versendet."
PROTOCOL_FAILED_MESSAGE = "Fehler beim Versenden des Protokolls."


class SessionNotFoundError(LookupError):
    pass


class UnknownSystemError(ValueError):
    pass


class SystemAlreadySelectedError(RuntimeError):
    pass


class ViewMismatchError(RuntimeError):
    pass


class SubmissionInProgressError(RuntimeError):
    pass


class StepValidationError(ValueError):
    def __init__(self, field_errors: dict[str, str]):
        self.field_errors = field_errors
        super().__init__(f"{len(field_errors)} field(s) invalid")


@dataclass(frozen=True)
class Notification:
    level: str
    message: str


@dataclass(frozen=True)
class SubmissionOutcome:
    session: InstallationSession
    navigation: NavigationResult
    notification: Notification
    protocol_id: str | None


class InstallationService:
    def __init__(
        self,
        *,
        settings: Settings,
        session_store: SessionStore,
        backend_client: BackendClient,
        live_data_feed: LiveDataFeed | None = None,
    ) -> None:
        self._settings = settings
        self._store = session_store
        self._backend_client = backend_client
        self._live_data_feed = live_data_feed
        self._logger = logging.getLogger("app.installation")
        self._lock = Lock()
        self._submitting: set[str] = set()
        self._finished_count = 0
        self._submitted_count = 0
        self._failed_submissions_count = 0

    def create_session(self, *, edge: EdgeData | None = None) -> tuple[str, InstallationSession]:
        session_id = str(uuid.uuid4())
        session = InstallationSession(edge=edge)
        save_installation_session(self._store.scope(session_id), session)
        self._logger.info("installation session started session=%s edge=%s", session_id, edge.id if edge else None)
        return session_id, session

    def get_session(self, session_id: str) -> InstallationSession:
        return self._load(session_id)[1]

    def abandon_session(self, session_id: str) -> None:
        scope, _session = self._load(session_id)
        scope.clear()
        self._logger.info("installation session abandoned session=%s", session_id)

    def bind_edge(self, session_id: str, edge: EdgeData) -> InstallationSession:
        scope, session = self._load(session_id)
        session.edge = edge
        save_installation_session(scope, session)
        return session

    def select_system(self, session_id: str, system_id: str) -> InstallationSession:
        system = get_installation_system(system_id)
        if system is None or system.is_general:
            raise UnknownSystemError(f"unknown installation system {system_id}")

        scope, session = self._load(session_id)
        if session.system.id == system.id:
            return session
        if not session.system.is_general:
            raise SystemAlreadySelectedError(
                f"installation system {session.system.id} is already selected for this session"
            )

        current_view = session.system.views[session.view_index]
        mapped_index = system.index_of(current_view)
        session.system = system
        session.view_index = mapped_index if mapped_index is not None else min(session.view_index, system.view_count - 1)
        save_installation_session(scope, session)
        self._logger.info(
            "installation system selected session=%s system=%s view_index=%s",
            session_id,
            system.id,
            session.view_index,
        )
        return session

    def update_data(self, session_id: str, patch: Mapping[str, Any]) -> InstallationSession:
        scope, session = self._load(session_id)
        merged = session.data.model_dump(mode="json")
        _deep_merge(merged, copy.deepcopy(dict(patch)))
        session.data = InstallationData.model_validate(merged)
        save_installation_session(scope, session)
        return session

    def navigator(self, session_id: str) -> tuple[WizardNavigator, InstallationSession]:
        scope, session = self._load(session_id)
        return self._navigator(scope, session), session

    def advance(self, session_id: str) -> tuple[NavigationResult, InstallationSession]:
        scope, session = self._load(session_id)
        navigator = self._navigator(scope, session)
        errors = validate_step(navigator.current_view(), session.system, session.data)
        if errors:
            raise StepValidationError(errors)
        return navigator.advance(), session

    def retreat(self, session_id: str) -> tuple[NavigationResult, InstallationSession]:
        scope, session = self._load(session_id)
        return self._navigator(scope, session).retreat(), session

    def jump_to(self, session_id: str, index: int) -> tuple[NavigationResult, InstallationSession]:
        scope, session = self._load(session_id)
        return self._navigator(scope, session).jump_to(index), session

    async def serial_number_schema(
        self,
        session_id: str,
        *,
        number_of_towers: int | None = None,
        number_of_modules_per_tower: int | None = None,
    ) -> SerialNumberSchema:
        _scope, session = self._load(session_id)
        edge_id = session.edge.id if session.edge is not None else None
        if number_of_towers is not None and number_of_modules_per_tower is not None:
            defaults = SerialNumberDefaults(
                number_of_towers=number_of_towers,
                number_of_modules_per_tower=number_of_modules_per_tower,
                source="input",
            )
        else:
            defaults = await resolve_serial_number_defaults(
                self._live_data_feed,
                edge_id=edge_id,
                settings=self._settings,
            )
        if defaults.battery_inverter_serial_number is None:
            defaults = SerialNumberDefaults(
                number_of_towers=defaults.number_of_towers,
                number_of_modules_per_tower=defaults.number_of_modules_per_tower,
                battery_inverter_serial_number=_stored_battery_inverter_serial(session.data),
                source=defaults.source,
            )
        return build_serial_number_schema(session.system, defaults)

    async def submit_serial_numbers(
        self,
        session_id: str,
        *,
        settings_values: Mapping[str, Any],
        tower_values: Mapping[int, Mapping[str, Any]],
    ) -> SubmissionOutcome:
        with self._lock:
            if session_id in self._submitting:
                raise SubmissionInProgressError("a setup protocol submission is already running")
            self._submitting.add(session_id)
        try:
            return await self._submit_serial_numbers(
                session_id,
                settings_values=settings_values,
                tower_values=tower_values,
            )
        finally:
            with self._lock:
                self._submitting.discard(session_id)

    def is_submitting(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._submitting

    def preview_protocol(self, session_id: str) -> SetupProtocol:
        _scope, session = self._load(session_id)
        return assemble_setup_protocol(session.data, edge_id=session.edge.id if session.edge else "")

    def project_app_payload(
        self,
        session_id: str,
        *,
        safety_country: SafetyCountry,
        feed_in_setting: FeedInSetting | None = None,
    ) -> AppInstallPayload:
        _scope, session = self._load(session_id)
        if session.system.is_general:
            raise ViewMismatchError("no installation system selected")
        resolved_setting = feed_in_setting or session.data.battery_inverter.dynamic_feed_in_limitation.feed_in_setting
        return session.system.project_payload(session.data, safety_country, resolved_setting)

    async def cell_metrics(self, session_id: str) -> CellMetrics:
        _scope, session = self._load(session_id)
        return await read_cell_metrics(
            self._live_data_feed,
            edge_id=session.edge.id if session.edge is not None else None,
            settings=self._settings,
        )

    def get_status(self) -> dict[str, Any]:
        with self._lock:
            return {
                "session_store": type(self._store).__name__,
                "submissions_running": len(self._submitting),
                "submitted_count": self._submitted_count,
                "failed_submissions_count": self._failed_submissions_count,
                "finished_count": self._finished_count,
            }

    async def _submit_serial_numbers(
        self,
        session_id: str,
        *,
        settings_values: Mapping[str, Any],
        tower_values: Mapping[int, Mapping[str, Any]],
    ) -> SubmissionOutcome:
        scope, session = self._load(session_id)
        navigator = self._navigator(scope, session)
        if navigator.current_view() != View.PROTOCOL_SERIAL_NUMBERS:
            raise ViewMismatchError("serial numbers can only be submitted on the serial number view")
        if session.edge is None:
            raise ViewMismatchError("no device is bound to this installation session")

        settings_fields = build_settings_fields(session.system, fallback_serial_number_defaults(self._settings))
        errors = validate_settings(settings_fields, settings_values)
        if errors:
            raise StepValidationError(errors)

        number_of_towers, number_of_modules_per_tower = settings_counts(settings_values)
        schema = build_serial_number_schema(
            session.system,
            SerialNumberDefaults(
                number_of_towers=number_of_towers,
                number_of_modules_per_tower=number_of_modules_per_tower,
                source="input",
            ),
        )
        serial_numbers, errors = collect_serial_numbers(schema, tower_values)
        if errors:
            raise StepValidationError(errors)

        session.data.battery.serial_numbers = serial_numbers
        save_installation_session(scope, session)

        protocol = assemble_setup_protocol(session.data, edge_id=session.edge.id)
        protocol_id: str | None = None
        try:
            protocol_id = await asyncio.to_thread(self._backend_client.submit_setup_protocol, protocol)
        except BackendApiError as exc:
            self._logger.warning(
                "setup protocol submission failed session=%s edge=%s status=%s detail=%s",
                session_id,
                session.edge.id,
                exc.status_code,
                exc.detail,
            )
            notification = Notification(level="danger", message=PROTOCOL_FAILED_MESSAGE)
            with self._lock:
                self._failed_submissions_count += 1
        else:
            session.data.setup_protocol_id = protocol_id
            notification = Notification(level="success", message=PROTOCOL_SUBMITTED_MESSAGE)
            with self._lock:
                self._submitted_count += 1

        navigation = navigator.advance()
        return SubmissionOutcome(
            session=session,
            navigation=navigation,
            notification=notification,
            protocol_id=protocol_id,
        )

    def _navigator(self, scope: SessionScope, session: InstallationSession) -> WizardNavigator:
        return WizardNavigator(session=session, scope=scope, on_finish=self._on_finish)

    def _on_finish(self, _hand_off: DeviceHandOff) -> None:
        with self._lock:
            self._finished_count += 1

    def _load(self, session_id: str) -> tuple[SessionScope, InstallationSession]:
        scope = self._store.scope(session_id)
        if not scope.exists():
            raise SessionNotFoundError(f"installation session {session_id} not found")
        return scope, load_installation_session(scope)


def _stored_battery_inverter_serial(data: InstallationData) -> str | None:
    for entry in data.battery.serial_numbers.tower1:
        if entry.label == "Home - Wechselrichter" and entry.value:
            return entry.value
    return None


def _deep_merge(target: dict[str, Any], patch: dict[str, Any]) -> None:
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _deep_merge(target[key], value)
        else:
            target[key] = value
