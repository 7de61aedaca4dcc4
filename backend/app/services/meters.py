from __future__ import annotations

from dataclasses import dataclass

from app.schemas.installation import Meter


@dataclass(frozen=True)
class MeterSpec:
    app_ac_meter_type: str
    label: str


METER_SPECS: dict[Meter, MeterSpec] = {
    Meter.SOCOMEC: MeterSpec(
        app_ac_meter_type="SOCOMEC",
        label="Socomec",
    ),
    Meter.KDK: MeterSpec(
        app_ac_meter_type="KDK",
        label="KDK",
    ),
}


def meter_spec(meter: Meter) -> MeterSpec:
    return METER_SPECS[meter]
