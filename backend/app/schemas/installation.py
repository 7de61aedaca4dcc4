from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class FeedInSetting(str, Enum):
    UNDEFINED = "UNDEFINED"
    QU_ENABLE_CURVE = "QU_ENABLE_CURVE"
    PU_ENABLE_CURVE = "PU_ENABLE_CURVE"
    FIXED_POWER_FACTOR = "FIXED_POWER_FACTOR"


class SafetyCountry(str, Enum):
    GERMANY = "GERMANY"
    AUSTRIA = "AUSTRIA"
    SWITZERLAND = "SWITZERLAND"


class Meter(str, Enum):
    SOCOMEC = "SOCOMEC"
    KDK = "KDK"


COUNTRY_OPTIONS: tuple[tuple[str, str], ...] = (
    ("de", "Deutschland"),
    ("at", "Österreich"),
    ("ch", "Schweiz"),
)

# Sentinel of LineSideMeterFuse.fixed_value selecting the free-form override.
LINE_SIDE_METER_FUSE_OTHER = -1
LINE_SIDE_METER_FUSE_OPTIONS: tuple[int, ...] = (35, 40, 50, 63, 80, LINE_SIDE_METER_FUSE_OTHER)


class EdgeData(BaseModel):
    id: str = Field(min_length=1, max_length=64)
    comment: str = ""
    producttype: str = ""
    version: str = ""
    role: str = "guest"
    is_online: bool = False


class Customer(BaseModel):
    is_corporate_client: bool = False
    company_name: str | None = None
    first_name: str = ""
    last_name: str = ""
    street: str = ""
    zip: str = ""
    city: str = ""
    country: str = "de"
    email: str = ""
    phone: str = ""


class Location(BaseModel):
    is_equal_to_customer_data: bool = True
    company_name: str | None = None
    first_name: str = ""
    last_name: str = ""
    street: str = ""
    zip: str = ""
    city: str = ""
    country: str = "de"
    email: str = ""
    phone: str = ""


class DcPv(BaseModel):
    is_selected: bool = False
    alias: str = ""
    value: float | None = None
    orientation: str = ""
    module_type: str = ""
    modules_per_string: int | None = None


class AcPv(BaseModel):
    alias: str = ""
    value: float | None = None
    orientation: str = ""
    module_type: str = ""
    modules_per_string: int | None = None
    meter_type: Meter = Meter.SOCOMEC
    modbus_communication_address: int | None = None


def _default_dc_strings() -> list[DcPv]:
    return [DcPv(), DcPv()]


class Pv(BaseModel):
    dc: list[DcPv] = Field(default_factory=_default_dc_strings)
    ac: list[AcPv] = Field(default_factory=list)


class EmergencyReserve(BaseModel):
    is_enabled: bool = False
    value: int = Field(default=20, ge=0, le=100)


class SerialNumberEntry(BaseModel):
    label: str
    value: str | None = None


class SerialNumbers(BaseModel):
    tower1: list[SerialNumberEntry] = Field(default_factory=list)
    tower2: list[SerialNumberEntry] = Field(default_factory=list)
    tower3: list[SerialNumberEntry] = Field(default_factory=list)

    def for_tower(self, tower_nr: int) -> list[SerialNumberEntry]:
        return getattr(self, f"tower{tower_nr}")


class Battery(BaseModel):
    emergency_reserve: EmergencyReserve = Field(default_factory=EmergencyReserve)
    serial_numbers: SerialNumbers = Field(default_factory=SerialNumbers)


class DynamicFeedInLimitation(BaseModel):
    feed_in_setting: FeedInSetting = FeedInSetting.QU_ENABLE_CURVE
    fixed_power_factor: str | None = None
    maximum_feed_in_power: int | None = None


class BatteryInverter(BaseModel):
    dynamic_feed_in_limitation: DynamicFeedInLimitation = Field(default_factory=DynamicFeedInLimitation)


class LineSideMeterFuse(BaseModel):
    fixed_value: int | None = None
    other_value: int | None = None


class InstallationData(BaseModel):
    customer: Customer = Field(default_factory=Customer)
    location: Location = Field(default_factory=Location)
    pv: Pv = Field(default_factory=Pv)
    battery: Battery = Field(default_factory=Battery)
    battery_inverter: BatteryInverter = Field(default_factory=BatteryInverter)
    line_side_meter_fuse: LineSideMeterFuse = Field(default_factory=LineSideMeterFuse)
    setup_protocol_id: str | None = None
