from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any

from app.core.config import Settings
from app.services.live_data import (
    CHANNEL_BATTERY_INVERTER_SERIAL_NUMBER,
    CHANNEL_MAX_CELL_TEMPERATURE,
    CHANNEL_MAX_CELL_VOLTAGE,
    CHANNEL_MIN_CELL_TEMPERATURE,
    CHANNEL_MIN_CELL_VOLTAGE,
    CHANNEL_NUMBER_OF_MODULES_PER_TOWER,
    CHANNEL_NUMBER_OF_TOWERS,
    LiveDataFeed,
    LiveSample,
    wait_for_sample,
)
from app.services.serial_number_fields import SerialNumberDefaults

SERIAL_NUMBER_CHANNELS = (
    CHANNEL_NUMBER_OF_TOWERS,
    CHANNEL_NUMBER_OF_MODULES_PER_TOWER,
    CHANNEL_BATTERY_INVERTER_SERIAL_NUMBER,
)
CELL_METRIC_CHANNELS = (
    CHANNEL_MAX_CELL_VOLTAGE,
    CHANNEL_MIN_CELL_VOLTAGE,
    CHANNEL_MAX_CELL_TEMPERATURE,
    CHANNEL_MIN_CELL_TEMPERATURE,
)

_logger = logging.getLogger("app.live_defaults")


@dataclass(frozen=True)
class CellMetrics:
    cell_voltage_difference: float | None
    cell_temperature_difference: float | None
    source: str


def fallback_serial_number_defaults(settings: Settings) -> SerialNumberDefaults:
    return SerialNumberDefaults(
        number_of_towers=settings.default_number_of_towers,
        number_of_modules_per_tower=settings.default_modules_per_tower,
        source="fallback",
    )


async def resolve_serial_number_defaults(
    feed: LiveDataFeed | None,
    *,
    edge_id: str | None,
    settings: Settings,
) -> SerialNumberDefaults:
    if feed is None or not edge_id:
        _logger.info("no live data source for serial number defaults edge=%s", edge_id)
        return fallback_serial_number_defaults(settings)

    sample = await wait_for_sample(
        feed,
        edge_id=edge_id,
        channels=SERIAL_NUMBER_CHANNELS,
        accept=_has_tower_counts,
        timeout_seconds=settings.live_data_timeout_seconds,
    )
    if sample is None:
        _logger.info(
            "live data timeout edge=%s timeout_seconds=%s, using fallback counts",
            edge_id,
            settings.live_data_timeout_seconds,
        )
        return fallback_serial_number_defaults(settings)

    serial_number = sample.get(CHANNEL_BATTERY_INVERTER_SERIAL_NUMBER)
    return SerialNumberDefaults(
        number_of_towers=_positive_int(sample.get(CHANNEL_NUMBER_OF_TOWERS)) or settings.default_number_of_towers,
        number_of_modules_per_tower=(
            _positive_int(sample.get(CHANNEL_NUMBER_OF_MODULES_PER_TOWER)) or settings.default_modules_per_tower
        ),
        battery_inverter_serial_number=str(serial_number) if serial_number not in (None, "") else None,
        source="live",
    )


async def read_cell_metrics(
    feed: LiveDataFeed | None,
    *,
    edge_id: str | None,
    settings: Settings,
) -> CellMetrics:
    if feed is None or not edge_id:
        return CellMetrics(cell_voltage_difference=None, cell_temperature_difference=None, source="unavailable")

    sample = await wait_for_sample(
        feed,
        edge_id=edge_id,
        channels=CELL_METRIC_CHANNELS,
        accept=_has_cell_voltages,
        timeout_seconds=settings.live_data_timeout_seconds,
    )
    if sample is None:
        return CellMetrics(cell_voltage_difference=None, cell_temperature_difference=None, source="timeout")
    return CellMetrics(
        cell_voltage_difference=subtract_safely(
            sample.get(CHANNEL_MAX_CELL_VOLTAGE),
            sample.get(CHANNEL_MIN_CELL_VOLTAGE),
        ),
        cell_temperature_difference=subtract_safely(
            sample.get(CHANNEL_MAX_CELL_TEMPERATURE),
            sample.get(CHANNEL_MIN_CELL_TEMPERATURE),
        ),
        source="live",
    )


def subtract_safely(minuend: Any, subtrahend: Any) -> float | None:
    left = _as_float(minuend)
    right = _as_float(subtrahend)
    if left is None or right is None:
        return None
    return left - right


def _has_tower_counts(sample: LiveSample) -> bool:
    return (
        _positive_int(sample.get(CHANNEL_NUMBER_OF_TOWERS)) is not None
        and _positive_int(sample.get(CHANNEL_NUMBER_OF_MODULES_PER_TOWER)) is not None
    )


def _has_cell_voltages(sample: LiveSample) -> bool:
    return (
        _as_float(sample.get(CHANNEL_MAX_CELL_VOLTAGE)) is not None
        and _as_float(sample.get(CHANNEL_MIN_CELL_VOLTAGE)) is not None
    )


def _as_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        numeric = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if not math.isfinite(numeric):
        return None
    return numeric


def _positive_int(value: Any) -> int | None:
    numeric = _as_float(value)
    if numeric is None or numeric < 1:
        return None
    return int(numeric)
