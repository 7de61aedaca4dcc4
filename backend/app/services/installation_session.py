from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field

from pydantic import ValidationError

from app.schemas.installation import EdgeData, InstallationData
from app.services.installation_systems import (
    GENERAL_SYSTEM,
    InstallationSystem,
    get_installation_system,
)
from app.services.session_store import SessionScope

SESSION_KEY_IBN = "ibn"
SESSION_KEY_VIEW_INDEX = "viewIndex"
SESSION_KEY_EDGE = "edge"

_logger = logging.getLogger("app.installation_session")


@dataclass
class InstallationSession:
    system: InstallationSystem = GENERAL_SYSTEM
    data: InstallationData = field(default_factory=InstallationData)
    view_index: int = 0
    edge: EdgeData | None = None


def save_installation_session(scope: SessionScope, session: InstallationSession) -> None:
    scope.set(SESSION_KEY_IBN, serialize_system_entry(session))
    scope.set(SESSION_KEY_VIEW_INDEX, str(session.view_index))
    if session.edge is not None:
        scope.set(SESSION_KEY_EDGE, session.edge.model_dump_json())


def serialize_system_entry(session: InstallationSession) -> str:
    return json.dumps(
        {
            "id": session.system.id,
            "data": session.data.model_dump(mode="json"),
        },
        separators=(",", ":"),
        ensure_ascii=False,
    )


def load_installation_session(scope: SessionScope) -> InstallationSession:
    entries = scope.entries()
    session = InstallationSession(edge=_load_edge(entries.get(SESSION_KEY_EDGE), scope.session_id))

    system, data = _load_system_entry(entries.get(SESSION_KEY_IBN), scope.session_id)
    view_index = _load_view_index(entries.get(SESSION_KEY_VIEW_INDEX), scope.session_id)

    if system is None:
        if view_index:
            _logger.warning(
                "view index without installation system session=%s index=%s, restarting at 0",
                scope.session_id,
                view_index,
            )
        return session

    session.system = system
    if data is not None:
        session.data = data
    if 0 <= view_index < system.view_count:
        session.view_index = view_index
    else:
        _logger.warning(
            "stored view index out of bounds session=%s system=%s index=%s",
            scope.session_id,
            system.id,
            view_index,
        )
    return session


def _load_system_entry(
    raw: str | None,
    session_id: str,
) -> tuple[InstallationSystem | None, InstallationData | None]:
    if raw is None:
        return None, None
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError:
        _logger.warning("unreadable installation entry session=%s", session_id)
        return None, None
    if not isinstance(decoded, dict):
        return None, None

    system = get_installation_system(decoded.get("id"))
    if system is None:
        _logger.warning("unknown installation system session=%s id=%s", session_id, decoded.get("id"))
        return None, None

    raw_data = decoded.get("data")
    if not isinstance(raw_data, dict):
        return system, None
    try:
        return system, InstallationData.model_validate(raw_data)
    except ValidationError as exc:
        _logger.warning("invalid installation data session=%s errors=%s", session_id, exc.error_count())
        return system, None


def _load_view_index(raw: str | None, session_id: str) -> int:
    if raw is None:
        return 0
    try:
        return int(raw.strip(), 10)
    except ValueError:
        _logger.warning("unreadable view index session=%s value=%s", session_id, raw)
        return 0


def _load_edge(raw: str | None, session_id: str) -> EdgeData | None:
    if raw is None:
        return None
    try:
        return EdgeData.model_validate_json(raw)
    except ValidationError:
        _logger.warning("unreadable edge entry session=%s", session_id)
        return None
