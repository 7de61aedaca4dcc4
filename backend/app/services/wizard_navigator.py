from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from app.services.installation_session import (
    InstallationSession,
    save_installation_session,
)
from app.services.installation_systems import View
from app.services.session_store import SessionScope


class NavigationBoundsError(RuntimeError):
    def __init__(self, *, index: int, view_count: int) -> None:
        self.index = index
        self.view_count = view_count
        super().__init__(f"view index {index} is out of bounds for {view_count} views")


@dataclass(frozen=True)
class DeviceHandOff:
    edge_id: str | None
    route: str


@dataclass(frozen=True)
class NavigationResult:
    accepted: bool
    view_index: int
    finished: bool = False
    hand_off: DeviceHandOff | None = None
    error: str | None = None


def device_live_route(edge_id: str | None) -> str:
    if not edge_id:
        return "/index"
    return f"/device/{edge_id}/live"


def current_view_of(session: InstallationSession) -> View | None:
    if session.view_index >= session.system.view_count:
        return None
    return session.system.views[session.view_index]


def progress_of(session: InstallationSession) -> float:
    view_count = session.system.view_count
    if view_count > 1:
        return min(session.view_index, view_count - 1) / (view_count - 1)
    return 0.0


def progress_text_of(session: InstallationSession) -> str:
    return f"Schritt {session.view_index + 1} von {session.system.view_count}"


class WizardNavigator:
    def __init__(
        self,
        *,
        session: InstallationSession,
        scope: SessionScope,
        on_finish: Callable[[DeviceHandOff], None] | None = None,
    ) -> None:
        self._session = session
        self._scope = scope
        self._on_finish = on_finish
        self._logger = logging.getLogger("app.wizard_navigator")

    @property
    def view_count(self) -> int:
        return self._session.system.view_count

    @property
    def view_index(self) -> int:
        return self._session.view_index

    @property
    def finished(self) -> bool:
        # view_count is the exit sentinel past the last view
        return self._session.view_index == self.view_count

    def current_view(self) -> View | None:
        return current_view_of(self._session)

    def progress(self) -> float:
        return progress_of(self._session)

    def progress_text(self) -> str:
        return progress_text_of(self._session)

    def advance(self) -> NavigationResult:
        if self.finished:
            raise NavigationBoundsError(index=self._session.view_index + 1, view_count=self.view_count)

        self._session.view_index += 1
        if not self.finished:
            self._persist()
            return NavigationResult(accepted=True, view_index=self._session.view_index)

        edge_id = self._session.edge.id if self._session.edge is not None else None
        hand_off = DeviceHandOff(edge_id=edge_id, route=device_live_route(edge_id))
        self._scope.clear()
        self._logger.info(
            "installation finished session=%s system=%s edge=%s",
            self._scope.session_id,
            self._session.system.id,
            edge_id,
        )
        if self._on_finish is not None:
            self._on_finish(hand_off)
        return NavigationResult(
            accepted=True,
            view_index=self._session.view_index,
            finished=True,
            hand_off=hand_off,
        )

    def retreat(self) -> NavigationResult:
        if self._session.view_index <= 0 or self.finished:
            raise NavigationBoundsError(index=self._session.view_index - 1, view_count=self.view_count)
        self._session.view_index -= 1
        self._persist()
        return NavigationResult(accepted=True, view_index=self._session.view_index)

    def jump_to(self, index: int) -> NavigationResult:
        if self.finished or not 0 <= index < self.view_count:
            self._logger.warning(
                "view index out of bounds session=%s index=%s view_count=%s",
                self._scope.session_id,
                index,
                self.view_count,
            )
            return NavigationResult(
                accepted=False,
                view_index=self._session.view_index,
                error=f"view index {index} is out of bounds",
            )
        self._session.view_index = index
        self._persist()
        return NavigationResult(accepted=True, view_index=index)

    def _persist(self) -> None:
        save_installation_session(self._scope, self._session)
