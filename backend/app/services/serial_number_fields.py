from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Literal, Mapping

from app.schemas.installation import SerialNumberEntry, SerialNumbers
from app.services.field_definitions import FieldDef, coerce_field_value
from app.services.installation_systems import InstallationSystem

SERIAL_NUMBER_PATTERN = r"[0-9A-Za-z]{10,20}"
SERIAL_NUMBER_MESSAGE = "Bitte eine gültige Seriennummer eingeben."
DEFAULT_BMS_BOX_SERIAL_NUMBER = "519100001009"
DEFAULT_MODULE_SERIAL_NUMBER = "519110001210"
MAX_SERIAL_NUMBER_TOWERS = 3

DefaultsSource = Literal["live", "fallback", "input"]

_logger = logging.getLogger("app.serial_number_fields")


@dataclass(frozen=True)
class SerialNumberDefaults:
    number_of_towers: int
    number_of_modules_per_tower: int
    battery_inverter_serial_number: str | None = None
    source: DefaultsSource = "fallback"


@dataclass(frozen=True)
class SerialNumberSchema:
    settings: tuple[FieldDef, ...]
    towers: dict[int, tuple[FieldDef, ...]]
    defaults: SerialNumberDefaults


def _serial_field(key: str, label: str, *, default: str | None = None) -> FieldDef:
    return FieldDef(
        key=key,
        label=label,
        required=True,
        default=default,
        pattern=SERIAL_NUMBER_PATTERN,
        pattern_message=SERIAL_NUMBER_MESSAGE,
    )


def max_serial_number_towers(system: InstallationSystem) -> int:
    return min(MAX_SERIAL_NUMBER_TOWERS, system.max_number_of_towers)


def build_settings_fields(system: InstallationSystem, defaults: SerialNumberDefaults) -> tuple[FieldDef, ...]:
    return (
        FieldDef(
            key="numberOfTowers",
            label="Anzahl Türme",
            value_type="number",
            required=True,
            default=defaults.number_of_towers,
            minimum=1,
            maximum=max_serial_number_towers(system),
        ),
        FieldDef(
            key="numberOfModulesPerTower",
            label="Anzahl Module pro Turm",
            value_type="number",
            required=True,
            default=defaults.number_of_modules_per_tower,
            minimum=system.min_number_of_modules_per_tower,
            maximum=system.max_number_of_modules_per_tower,
        ),
    )


def build_tower_fields(
    tower_nr: int,
    *,
    system: InstallationSystem,
    number_of_modules_per_tower: int,
    battery_inverter_serial_number: str | None = None,
) -> tuple[FieldDef, ...]:
    fields: list[FieldDef] = []
    if tower_nr == 1:
        fields.append(
            FieldDef(
                key="batteryInverter",
                label="Home - Wechselrichter",
                required=True,
                default=battery_inverter_serial_number,
            )
        )
        fields.append(_serial_field("emsBox", system.ems_box_label))
    elif tower_nr == 2:
        fields.append(_serial_field("parallelBox", "Home - Parallel Box"))
    elif tower_nr == 3:
        fields.append(_serial_field("extensionBox", "Home - Extension Box"))
    else:
        raise ValueError(f"unsupported tower number {tower_nr}")

    fields.append(_serial_field("bmsBox", "Home - BMS Box & Sockel", default=DEFAULT_BMS_BOX_SERIAL_NUMBER))
    for module_nr in range(1, number_of_modules_per_tower + 1):
        fields.append(
            _serial_field(
                f"module{module_nr}",
                f"Home - Batteriemodul {module_nr}",
                default=DEFAULT_MODULE_SERIAL_NUMBER,
            )
        )
    return tuple(fields)


def clamp_defaults(system: InstallationSystem, defaults: SerialNumberDefaults) -> SerialNumberDefaults:
    towers = min(max(defaults.number_of_towers, 1), max_serial_number_towers(system))
    modules = min(
        max(defaults.number_of_modules_per_tower, system.min_number_of_modules_per_tower),
        system.max_number_of_modules_per_tower,
    )
    if (towers, modules) != (defaults.number_of_towers, defaults.number_of_modules_per_tower):
        _logger.warning(
            "serial number counts outside system bounds system=%s towers=%s modules=%s clamped_to=%s/%s",
            system.id,
            defaults.number_of_towers,
            defaults.number_of_modules_per_tower,
            towers,
            modules,
        )
    return SerialNumberDefaults(
        number_of_towers=towers,
        number_of_modules_per_tower=modules,
        battery_inverter_serial_number=defaults.battery_inverter_serial_number,
        source=defaults.source,
    )


def build_serial_number_schema(system: InstallationSystem, defaults: SerialNumberDefaults) -> SerialNumberSchema:
    resolved = clamp_defaults(system, defaults)
    towers = {
        tower_nr: build_tower_fields(
            tower_nr,
            system=system,
            number_of_modules_per_tower=resolved.number_of_modules_per_tower,
            battery_inverter_serial_number=resolved.battery_inverter_serial_number,
        )
        for tower_nr in range(1, resolved.number_of_towers + 1)
    }
    return SerialNumberSchema(
        settings=build_settings_fields(system, resolved),
        towers=towers,
        defaults=resolved,
    )


def validate_settings(fields: tuple[FieldDef, ...], values: Mapping[str, Any]) -> dict[str, str]:
    errors: dict[str, str] = {}
    for field in fields:
        error = field.validate(values.get(field.key))
        if error is not None:
            errors[field.key] = error
    return errors


def collect_serial_numbers(
    schema: SerialNumberSchema,
    values: Mapping[int, Mapping[str, Any]],
) -> tuple[SerialNumbers, dict[str, str]]:
    serial_numbers = SerialNumbers()
    errors: dict[str, str] = {}
    for tower_nr, fields in schema.towers.items():
        tower_values = values.get(tower_nr) or {}
        entries = serial_numbers.for_tower(tower_nr)
        for field in fields:
            value = tower_values.get(field.key, field.default)
            error = field.validate(value)
            if error is not None:
                errors[f"tower{tower_nr}.{field.key}"] = error
            coerced = coerce_field_value(field, value)
            entries.append(SerialNumberEntry(label=field.label, value=None if coerced is None else str(coerced)))
    return serial_numbers, errors


def settings_counts(values: Mapping[str, Any]) -> tuple[int, int]:
    return (
        int(float(values["numberOfTowers"])),
        int(float(values["numberOfModulesPerTower"])),
    )
