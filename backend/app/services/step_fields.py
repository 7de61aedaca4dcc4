from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from app.schemas.installation import (
    COUNTRY_OPTIONS,
    LINE_SIDE_METER_FUSE_OPTIONS,
    LINE_SIDE_METER_FUSE_OTHER,
    FeedInSetting,
    InstallationData,
)
from app.services.field_definitions import FieldDef
from app.services.installation_systems import InstallationSystem, View

EMAIL_PATTERN = r"[^@\s]+@[^@\s]+\.[^@\s]+"
ZIP_PATTERN = r"[0-9]{4,5}"

_MISSING = object()
_COUNTRY_CODES = tuple(code for code, _label in COUNTRY_OPTIONS)


@dataclass(frozen=True)
class StepFieldDef:
    field: FieldDef
    path: tuple[str | int, ...]
    guard_path: tuple[str | int, ...] | None = None
    guard_value: Any = True

    @property
    def field_id(self) -> str:
        return ".".join(str(token) for token in self.path)


def _contact_fields(
    prefix: str,
    *,
    guard_path: tuple[str | int, ...] | None = None,
    guard_value: Any = True,
) -> list[StepFieldDef]:
    specs = (
        ("first_name", "Vorname", None),
        ("last_name", "Nachname", None),
        ("street", "Straße", None),
        ("zip", "PLZ", ZIP_PATTERN),
        ("city", "Ort", None),
        ("country", "Land", None),
        ("email", "E-Mail", EMAIL_PATTERN),
        ("phone", "Telefonnummer", None),
    )
    return [
        StepFieldDef(
            field=FieldDef(
                key=key,
                label=label,
                required=True,
                pattern=pattern,
                options=_COUNTRY_CODES if key == "country" else None,
            ),
            path=(prefix, key),
            guard_path=guard_path,
            guard_value=guard_value,
        )
        for key, label, pattern in specs
    ]


def _customer_fields(_system: InstallationSystem, _data: InstallationData) -> list[StepFieldDef]:
    return [
        *_contact_fields("customer"),
        StepFieldDef(
            field=FieldDef(key="company_name", label="Firmenname", required=True),
            path=("customer", "company_name"),
            guard_path=("customer", "is_corporate_client"),
        ),
    ]


def _location_fields(_system: InstallationSystem, _data: InstallationData) -> list[StepFieldDef]:
    return _contact_fields(
        "location",
        guard_path=("location", "is_equal_to_customer_data"),
        guard_value=False,
    )


def _emergency_reserve_fields(_system: InstallationSystem, _data: InstallationData) -> list[StepFieldDef]:
    return [
        StepFieldDef(
            field=FieldDef(
                key="value",
                label="Notstromreserve [%]",
                value_type="number",
                required=True,
                minimum=5,
                maximum=100,
            ),
            path=("battery", "emergency_reserve", "value"),
            guard_path=("battery", "emergency_reserve", "is_enabled"),
        )
    ]


def _line_side_meter_fuse_fields(_system: InstallationSystem, _data: InstallationData) -> list[StepFieldDef]:
    return [
        StepFieldDef(
            field=FieldDef(
                key="fixed_value",
                label="Wert [A]",
                value_type="number",
                required=True,
                options=LINE_SIDE_METER_FUSE_OPTIONS,
            ),
            path=("line_side_meter_fuse", "fixed_value"),
        ),
        StepFieldDef(
            field=FieldDef(
                key="other_value",
                label="Eigener Wert [A]",
                value_type="number",
                required=True,
                minimum=1,
                maximum=1000,
            ),
            path=("line_side_meter_fuse", "other_value"),
            guard_path=("line_side_meter_fuse", "fixed_value"),
            guard_value=LINE_SIDE_METER_FUSE_OTHER,
        ),
    ]


def _pv_fields(system: InstallationSystem, data: InstallationData) -> list[StepFieldDef]:
    fields: list[StepFieldDef] = []
    for index in range(min(len(data.pv.dc), system.max_number_of_mppt)):
        guard = ("pv", "dc", index, "is_selected")
        fields.extend(
            [
                StepFieldDef(
                    field=FieldDef(key="alias", label=f"Alias MPPT{index + 1}", required=True),
                    path=("pv", "dc", index, "alias"),
                    guard_path=guard,
                ),
                StepFieldDef(
                    field=FieldDef(
                        key="value",
                        label=f"Wert MPPT{index + 1} [Wp]",
                        value_type="number",
                        required=True,
                        minimum=1,
                    ),
                    path=("pv", "dc", index, "value"),
                    guard_path=guard,
                ),
                StepFieldDef(
                    field=FieldDef(
                        key="modules_per_string",
                        label=f"Modulanzahl MPPT{index + 1}",
                        value_type="number",
                        minimum=1,
                        maximum=100,
                    ),
                    path=("pv", "dc", index, "modules_per_string"),
                    guard_path=guard,
                ),
            ]
        )
    return fields


def _ac_producer_fields(_system: InstallationSystem, data: InstallationData) -> list[StepFieldDef]:
    fields: list[StepFieldDef] = []
    for index in range(len(data.pv.ac)):
        label = f"AC{index + 1}"
        fields.extend(
            [
                StepFieldDef(
                    field=FieldDef(key="alias", label=f"Alias {label}", required=True),
                    path=("pv", "ac", index, "alias"),
                ),
                StepFieldDef(
                    field=FieldDef(
                        key="value",
                        label=f"Wert {label} [Wp]",
                        value_type="number",
                        required=True,
                        minimum=1,
                    ),
                    path=("pv", "ac", index, "value"),
                ),
                StepFieldDef(
                    field=FieldDef(
                        key="modbus_communication_address",
                        label=f"Modbus Kommunikationsadresse {label}",
                        value_type="number",
                        required=True,
                        minimum=1,
                        maximum=247,
                    ),
                    path=("pv", "ac", index, "modbus_communication_address"),
                ),
            ]
        )
    return fields


def _feed_in_limitation_fields(_system: InstallationSystem, _data: InstallationData) -> list[StepFieldDef]:
    base = ("battery_inverter", "dynamic_feed_in_limitation")
    return [
        StepFieldDef(
            field=FieldDef(
                key="maximum_feed_in_power",
                label="Maximale Einspeiseleistung [W]",
                value_type="number",
                required=True,
                minimum=0,
            ),
            path=(*base, "maximum_feed_in_power"),
        ),
        StepFieldDef(
            field=FieldDef(key="fixed_power_factor", label="Cos φ Festwert", required=True),
            path=(*base, "fixed_power_factor"),
            guard_path=(*base, "feed_in_setting"),
            guard_value=FeedInSetting.FIXED_POWER_FACTOR.value,
        ),
    ]


_STEP_FIELD_BUILDERS = {
    View.PROTOCOL_CUSTOMER: _customer_fields,
    View.PROTOCOL_SYSTEM: _location_fields,
    View.CONFIGURATION_EMERGENCY_RESERVE: _emergency_reserve_fields,
    View.CONFIGURATION_LINE_SIDE_METER_FUSE: _line_side_meter_fuse_fields,
    View.PROTOCOL_PV: _pv_fields,
    View.PROTOCOL_ADDITIONAL_AC_PRODUCERS: _ac_producer_fields,
    View.PROTOCOL_FEED_IN_LIMITATION: _feed_in_limitation_fields,
}


def step_field_defs(view: View | None, system: InstallationSystem, data: InstallationData) -> list[StepFieldDef]:
    builder = _STEP_FIELD_BUILDERS.get(view) if view is not None else None
    if builder is None:
        return []
    return builder(system, data)


def validate_step(view: View | None, system: InstallationSystem, data: InstallationData) -> dict[str, str]:
    payload = data.model_dump(mode="json")
    errors: dict[str, str] = {}
    for step_field in step_field_defs(view, system, data):
        if step_field.guard_path is not None:
            if _read_path(payload, step_field.guard_path) != step_field.guard_value:
                continue
        value = _read_path(payload, step_field.path)
        error = step_field.field.validate(None if value is _MISSING else value)
        if error is not None:
            errors[step_field.field_id] = error
    return errors


def _read_path(payload: dict[str, Any], path: tuple[str | int, ...]) -> Any:
    current: Any = payload
    for token in path:
        if isinstance(token, int):
            if not isinstance(current, list) or token < 0 or token >= len(current):
                return _MISSING
            current = current[token]
            continue
        if not isinstance(current, dict) or token not in current:
            return _MISSING
        current = current[token]
    return current
