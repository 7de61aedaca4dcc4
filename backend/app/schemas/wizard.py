from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

from app.schemas.installation import EdgeData, FeedInSetting, InstallationData, SafetyCountry


class InstallationSystemResponse(BaseModel):
    id: str
    label: str
    app_id: str
    app_alias: str
    min_number_of_modules_per_tower: int
    max_number_of_modules_per_tower: int
    max_number_of_towers: int
    max_number_of_pv_strings: int
    max_number_of_mppt: int
    views: list[str] = Field(default_factory=list)


class WizardStateResponse(BaseModel):
    session_id: str
    system: InstallationSystemResponse
    view_index: int
    view_count: int
    current_view: str | None = None
    progress: float
    progress_text: str
    edge: EdgeData | None = None
    data: InstallationData
    submitting: bool = False


class NavigationResponse(BaseModel):
    accepted: bool
    finished: bool = False
    redirect: str | None = None
    error: str | None = None
    state: WizardStateResponse | None = None


class CreateSessionRequest(BaseModel):
    edge: EdgeData | None = None


class SelectSystemRequest(BaseModel):
    system_id: str = Field(min_length=1, max_length=64)


class JumpRequest(BaseModel):
    index: int


class FieldResponse(BaseModel):
    key: str
    label: str
    value_type: Literal["number", "string", "boolean"]
    required: bool
    default: Any = None
    minimum: float | None = None
    maximum: float | None = None
    pattern: str | None = None
    options: list[Any] | None = None


class SerialNumberFieldsResponse(BaseModel):
    number_of_towers: int
    number_of_modules_per_tower: int
    defaults_source: Literal["live", "fallback", "input"]
    settings: list[FieldResponse] = Field(default_factory=list)
    towers: dict[int, list[FieldResponse]] = Field(default_factory=dict)


class SerialNumbersSubmitRequest(BaseModel):
    settings: dict[str, Any] = Field(default_factory=dict)
    towers: dict[int, dict[str, Any]] = Field(default_factory=dict)


class NotificationResponse(BaseModel):
    level: Literal["success", "danger"]
    message: str


class SerialNumbersSubmitResponse(BaseModel):
    protocol_id: str | None = None
    notification: NotificationResponse
    navigation: NavigationResponse


class AppPayloadRequest(BaseModel):
    safety_country: SafetyCountry
    feed_in_setting: FeedInSetting | None = None


class AppPayloadResponse(BaseModel):
    app_id: str
    alias: str
    properties: dict[str, Any] = Field(default_factory=dict)


class CellMetricsResponse(BaseModel):
    cell_voltage_difference: float | None = None
    cell_temperature_difference: float | None = None
    source: str
