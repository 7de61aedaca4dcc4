from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Response, status
from pydantic import ValidationError

from app.dependencies import get_installation_service
from app.schemas.installation import EdgeData
from app.schemas.wizard import (
    AppPayloadRequest,
    AppPayloadResponse,
    CellMetricsResponse,
    CreateSessionRequest,
    FieldResponse,
    InstallationSystemResponse,
    JumpRequest,
    NavigationResponse,
    NotificationResponse,
    SelectSystemRequest,
    SerialNumberFieldsResponse,
    SerialNumbersSubmitRequest,
    SerialNumbersSubmitResponse,
    WizardStateResponse,
)
from app.services.field_definitions import FieldDef
from app.services.installation import (
    InstallationService,
    SessionNotFoundError,
    StepValidationError,
    SubmissionInProgressError,
    SystemAlreadySelectedError,
    UnknownSystemError,
    ViewMismatchError,
)
from app.services.installation_session import InstallationSession
from app.services.installation_systems import InstallationSystem, selectable_installation_systems
from app.services.wizard_navigator import (
    NavigationBoundsError,
    NavigationResult,
    current_view_of,
    progress_of,
    progress_text_of,
)


router = APIRouter(tags=["installation"])


@router.get("/api/installation/systems", response_model=list[InstallationSystemResponse])
def get_installation_systems() -> list[InstallationSystemResponse]:
    return [_system_response(system) for system in selectable_installation_systems()]


@router.post("/api/installation/sessions", response_model=WizardStateResponse, status_code=status.HTTP_201_CREATED)
def post_session(
    payload: CreateSessionRequest | None = None,
    service: InstallationService = Depends(get_installation_service),
) -> WizardStateResponse:
    session_id, session = service.create_session(edge=payload.edge if payload else None)
    return _state_response(service, session_id, session)


@router.get("/api/installation/sessions/{session_id}", response_model=WizardStateResponse)
def get_session(
    session_id: str,
    service: InstallationService = Depends(get_installation_service),
) -> WizardStateResponse:
    try:
        session = service.get_session(session_id)
    except SessionNotFoundError as exc:
        raise _http_error(exc) from exc
    return _state_response(service, session_id, session)


@router.delete("/api/installation/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_session(
    session_id: str,
    service: InstallationService = Depends(get_installation_service),
) -> Response:
    try:
        service.abandon_session(session_id)
    except SessionNotFoundError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/api/installation/sessions/{session_id}/edge", response_model=WizardStateResponse)
def put_session_edge(
    session_id: str,
    payload: EdgeData,
    service: InstallationService = Depends(get_installation_service),
) -> WizardStateResponse:
    try:
        session = service.bind_edge(session_id, payload)
    except SessionNotFoundError as exc:
        raise _http_error(exc) from exc
    return _state_response(service, session_id, session)


@router.put("/api/installation/sessions/{session_id}/system", response_model=WizardStateResponse)
def put_session_system(
    session_id: str,
    payload: SelectSystemRequest,
    service: InstallationService = Depends(get_installation_service),
) -> WizardStateResponse:
    try:
        session = service.select_system(session_id, payload.system_id)
    except (SessionNotFoundError, UnknownSystemError, SystemAlreadySelectedError) as exc:
        raise _http_error(exc) from exc
    return _state_response(service, session_id, session)


@router.patch("/api/installation/sessions/{session_id}/data", response_model=WizardStateResponse)
def patch_session_data(
    session_id: str,
    payload: dict[str, Any] = Body(...),
    service: InstallationService = Depends(get_installation_service),
) -> WizardStateResponse:
    try:
        session = service.update_data(session_id, payload)
    except SessionNotFoundError as exc:
        raise _http_error(exc) from exc
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=exc.errors(include_url=False, include_context=False),
        ) from exc
    return _state_response(service, session_id, session)


@router.post("/api/installation/sessions/{session_id}/advance", response_model=NavigationResponse)
def post_session_advance(
    session_id: str,
    service: InstallationService = Depends(get_installation_service),
) -> NavigationResponse:
    try:
        result, session = service.advance(session_id)
    except (SessionNotFoundError, StepValidationError, NavigationBoundsError) as exc:
        raise _http_error(exc) from exc
    return _navigation_response(service, session_id, session, result)


@router.post("/api/installation/sessions/{session_id}/retreat", response_model=NavigationResponse)
def post_session_retreat(
    session_id: str,
    service: InstallationService = Depends(get_installation_service),
) -> NavigationResponse:
    try:
        result, session = service.retreat(session_id)
    except (SessionNotFoundError, NavigationBoundsError) as exc:
        raise _http_error(exc) from exc
    return _navigation_response(service, session_id, session, result)


@router.post("/api/installation/sessions/{session_id}/jump", response_model=NavigationResponse)
def post_session_jump(
    session_id: str,
    payload: JumpRequest,
    service: InstallationService = Depends(get_installation_service),
) -> NavigationResponse:
    try:
        result, session = service.jump_to(session_id, payload.index)
    except SessionNotFoundError as exc:
        raise _http_error(exc) from exc
    return _navigation_response(service, session_id, session, result)


@router.get("/api/installation/sessions/{session_id}/serial-number-fields", response_model=SerialNumberFieldsResponse)
async def get_serial_number_fields(
    session_id: str,
    number_of_towers: int | None = Query(default=None, ge=1),
    number_of_modules_per_tower: int | None = Query(default=None, ge=1),
    service: InstallationService = Depends(get_installation_service),
) -> SerialNumberFieldsResponse:
    try:
        schema = await service.serial_number_schema(
            session_id,
            number_of_towers=number_of_towers,
            number_of_modules_per_tower=number_of_modules_per_tower,
        )
    except SessionNotFoundError as exc:
        raise _http_error(exc) from exc
    return SerialNumberFieldsResponse(
        number_of_towers=schema.defaults.number_of_towers,
        number_of_modules_per_tower=schema.defaults.number_of_modules_per_tower,
        defaults_source=schema.defaults.source,
        settings=[_field_response(field) for field in schema.settings],
        towers={tower_nr: [_field_response(field) for field in fields] for tower_nr, fields in schema.towers.items()},
    )


@router.post("/api/installation/sessions/{session_id}/serial-numbers", response_model=SerialNumbersSubmitResponse)
async def post_serial_numbers(
    session_id: str,
    payload: SerialNumbersSubmitRequest,
    service: InstallationService = Depends(get_installation_service),
) -> SerialNumbersSubmitResponse:
    try:
        outcome = await service.submit_serial_numbers(
            session_id,
            settings_values=payload.settings,
            tower_values=payload.towers,
        )
    except (
        SessionNotFoundError,
        StepValidationError,
        SubmissionInProgressError,
        ViewMismatchError,
        NavigationBoundsError,
    ) as exc:
        raise _http_error(exc) from exc
    return SerialNumbersSubmitResponse(
        protocol_id=outcome.protocol_id,
        notification=NotificationResponse(
            level=outcome.notification.level,
            message=outcome.notification.message,
        ),
        navigation=_navigation_response(service, session_id, outcome.session, outcome.navigation),
    )


@router.get("/api/installation/sessions/{session_id}/protocol")
def get_session_protocol(
    session_id: str,
    service: InstallationService = Depends(get_installation_service),
) -> dict[str, Any]:
    try:
        protocol = service.preview_protocol(session_id)
    except SessionNotFoundError as exc:
        raise _http_error(exc) from exc
    return protocol.to_wire()


@router.post("/api/installation/sessions/{session_id}/app-payload", response_model=AppPayloadResponse)
def post_app_payload(
    session_id: str,
    payload: AppPayloadRequest,
    service: InstallationService = Depends(get_installation_service),
) -> AppPayloadResponse:
    try:
        app_payload = service.project_app_payload(
            session_id,
            safety_country=payload.safety_country,
            feed_in_setting=payload.feed_in_setting,
        )
    except (SessionNotFoundError, ViewMismatchError) as exc:
        raise _http_error(exc) from exc
    return AppPayloadResponse(
        app_id=app_payload.app_id,
        alias=app_payload.alias,
        properties=app_payload.properties,
    )


@router.get("/api/installation/sessions/{session_id}/cell-metrics", response_model=CellMetricsResponse)
async def get_cell_metrics(
    session_id: str,
    service: InstallationService = Depends(get_installation_service),
) -> CellMetricsResponse:
    try:
        metrics = await service.cell_metrics(session_id)
    except SessionNotFoundError as exc:
        raise _http_error(exc) from exc
    return CellMetricsResponse(
        cell_voltage_difference=metrics.cell_voltage_difference,
        cell_temperature_difference=metrics.cell_temperature_difference,
        source=metrics.source,
    )


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, SessionNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, UnknownSystemError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, StepValidationError):
        return HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": str(exc), "field_errors": exc.field_errors},
        )
    if isinstance(
        exc,
        (SystemAlreadySelectedError, SubmissionInProgressError, ViewMismatchError, NavigationBoundsError),
    ):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def _system_response(system: InstallationSystem) -> InstallationSystemResponse:
    return InstallationSystemResponse(
        id=system.id,
        label=system.label,
        app_id=system.app_id,
        app_alias=system.app_alias,
        min_number_of_modules_per_tower=system.min_number_of_modules_per_tower,
        max_number_of_modules_per_tower=system.max_number_of_modules_per_tower,
        max_number_of_towers=system.max_number_of_towers,
        max_number_of_pv_strings=system.max_number_of_pv_strings,
        max_number_of_mppt=system.max_number_of_mppt,
        views=[view.value for view in system.views],
    )


def _field_response(field: FieldDef) -> FieldResponse:
    return FieldResponse(
        key=field.key,
        label=field.label,
        value_type=field.value_type,
        required=field.required,
        default=field.default,
        minimum=field.minimum,
        maximum=field.maximum,
        pattern=field.pattern,
        options=list(field.options) if field.options is not None else None,
    )


def _state_response(
    service: InstallationService,
    session_id: str,
    session: InstallationSession,
) -> WizardStateResponse:
    current_view = current_view_of(session)
    return WizardStateResponse(
        session_id=session_id,
        system=_system_response(session.system),
        view_index=session.view_index,
        view_count=session.system.view_count,
        current_view=current_view.value if current_view is not None else None,
        progress=progress_of(session),
        progress_text=progress_text_of(session),
        edge=session.edge,
        data=session.data,
        submitting=service.is_submitting(session_id),
    )


def _navigation_response(
    service: InstallationService,
    session_id: str,
    session: InstallationSession,
    result: NavigationResult,
) -> NavigationResponse:
    if result.finished:
        return NavigationResponse(
            accepted=result.accepted,
            finished=True,
            redirect=result.hand_off.route if result.hand_off is not None else None,
        )
    return NavigationResponse(
        accepted=result.accepted,
        error=result.error,
        state=_state_response(service, session_id, session),
    )
