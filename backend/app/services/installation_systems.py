from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from app.schemas.installation import (
    FeedInSetting,
    InstallationData,
    SafetyCountry,
)
from app.services.installation_values import resolve_line_side_meter_fuse
from app.services.meters import meter_spec


class View(str, Enum):
    PRE_INSTALLATION = "pre_installation"
    PRE_INSTALLATION_UPDATE = "pre_installation_update"
    CONFIGURATION_SYSTEM = "configuration_system"
    CONFIGURATION_SYSTEM_VARIANT = "configuration_system_variant"
    PROTOCOL_INSTALLER = "protocol_installer"
    PROTOCOL_CUSTOMER = "protocol_customer"
    PROTOCOL_SYSTEM = "protocol_system"
    CONFIGURATION_EMERGENCY_RESERVE = "configuration_emergency_reserve"
    CONFIGURATION_ENERGY_FLOW_METER = "configuration_energy_flow_meter"
    CONFIGURATION_LINE_SIDE_METER_FUSE = "configuration_line_side_meter_fuse"
    CONFIGURATION_MPPT_SELECTION = "configuration_mppt_selection"
    PROTOCOL_PV = "protocol_pv"
    PROTOCOL_ADDITIONAL_AC_PRODUCERS = "protocol_additional_ac_producers"
    PROTOCOL_FEED_IN_LIMITATION = "protocol_feed_in_limitation"
    CONFIGURATION_SUMMARY = "configuration_summary"
    CONFIGURATION_EXECUTE = "configuration_execute"
    PROTOCOL_SERIAL_NUMBERS = "protocol_serial_numbers"
    COMPLETION = "completion"


PayloadProjector = Callable[[InstallationData, SafetyCountry, FeedInSetting], dict[str, Any]]


@dataclass(frozen=True)
class AppInstallPayload:
    app_id: str
    alias: str
    properties: dict[str, Any]


@dataclass(frozen=True)
class InstallationSystem:
    id: str
    label: str
    app_id: str
    app_alias: str
    ems_box_label: str
    min_number_of_modules_per_tower: int
    max_number_of_modules_per_tower: int
    max_number_of_towers: int
    max_number_of_pv_strings: int
    max_number_of_mppt: int
    views: tuple[View, ...]
    projector: PayloadProjector = field(repr=False, compare=False)

    @property
    def view_count(self) -> int:
        return len(self.views)

    @property
    def is_general(self) -> bool:
        return self.id == GENERAL_SYSTEM_ID

    def index_of(self, view: View) -> int | None:
        try:
            return self.views.index(view)
        except ValueError:
            return None

    def project_payload(
        self,
        data: InstallationData,
        safety_country: SafetyCountry,
        feed_in_setting: FeedInSetting,
    ) -> AppInstallPayload:
        return AppInstallPayload(
            app_id=self.app_id,
            alias=self.app_alias,
            properties=self.projector(data, safety_country, feed_in_setting),
        )


def _project_nothing(
    _data: InstallationData,
    _safety_country: SafetyCountry,
    _feed_in_setting: FeedInSetting,
) -> dict[str, Any]:
    return {}


def _emergency_reserve_properties(data: InstallationData) -> dict[str, Any]:
    reserve = data.battery.emergency_reserve
    properties: dict[str, Any] = {
        "HAS_EMERGENCY_RESERVE": reserve.is_enabled,
        "EMERGENCY_RESERVE_ENABLED": reserve.is_enabled,
    }
    if reserve.is_enabled:
        properties["EMERGENCY_RESERVE_SOC"] = reserve.value
    return properties


def _ac_meter_properties(data: InstallationData) -> dict[str, Any]:
    ac = data.pv.ac
    properties: dict[str, Any] = {"HAS_AC_METER": bool(ac)}
    if ac:
        properties["AC_METER_TYPE"] = meter_spec(ac[0].meter_type).app_ac_meter_type
    return properties


def _feed_in_properties(data: InstallationData, feed_in_setting: FeedInSetting) -> dict[str, Any]:
    limitation = data.battery_inverter.dynamic_feed_in_limitation
    return {
        "FEED_IN_TYPE": "DYNAMIC_LIMITATION",
        "FEED_IN_SETTING": feed_in_setting.value,
        "MAX_FEED_IN_POWER": limitation.maximum_feed_in_power or 0,
    }


def _dc_string_flags(
    data: InstallationData,
    *,
    count: int,
    has_key: str,
    alias_key: str,
) -> dict[str, Any]:
    properties: dict[str, Any] = {}
    strings = data.pv.dc
    for index in range(count):
        number = index + 1
        dc = strings[index] if index < len(strings) else None
        selected = dc is not None and dc.is_selected
        properties[has_key.format(number=number)] = selected
        if selected:
            properties[alias_key.format(number=number)] = dc.alias
    return properties


def _project_home(
    data: InstallationData,
    safety_country: SafetyCountry,
    feed_in_setting: FeedInSetting,
) -> dict[str, Any]:
    return {
        "SAFETY_COUNTRY": safety_country.value,
        **_feed_in_properties(data, feed_in_setting),
        **_ac_meter_properties(data),
        **_dc_string_flags(data, count=2, has_key="HAS_DC_PV{number}", alias_key="DC_PV{number}_ALIAS"),
        **_emergency_reserve_properties(data),
        "SHADOW_MANAGEMENT_DISABLED": False,
    }


def _home_2030_common(
    data: InstallationData,
    safety_country: SafetyCountry,
    feed_in_setting: FeedInSetting,
) -> dict[str, Any]:
    return {
        "SAFETY_COUNTRY": safety_country.value,
        "LINE_SIDE_METER_FUSE": resolve_line_side_meter_fuse(data.line_side_meter_fuse),
        **_feed_in_properties(data, feed_in_setting),
        **_ac_meter_properties(data),
        **_emergency_reserve_properties(data),
        "SHADOW_MANAGEMENT_DISABLED": False,
    }


def _mppt_projector(mppt_count: int) -> PayloadProjector:
    def project(
        data: InstallationData,
        safety_country: SafetyCountry,
        feed_in_setting: FeedInSetting,
    ) -> dict[str, Any]:
        return {
            **_home_2030_common(data, safety_country, feed_in_setting),
            **_dc_string_flags(data, count=mppt_count, has_key="HAS_MPPT_{number}", alias_key="ALIAS_MPPT_{number}"),
        }

    return project


GENERAL_SYSTEM_ID = "GENERAL"

_HOME_VIEWS: tuple[View, ...] = (
    View.PRE_INSTALLATION,
    View.PRE_INSTALLATION_UPDATE,
    View.CONFIGURATION_SYSTEM,
    View.PROTOCOL_INSTALLER,
    View.PROTOCOL_CUSTOMER,
    View.PROTOCOL_SYSTEM,
    View.CONFIGURATION_EMERGENCY_RESERVE,
    View.PROTOCOL_PV,
    View.PROTOCOL_ADDITIONAL_AC_PRODUCERS,
    View.PROTOCOL_FEED_IN_LIMITATION,
    View.CONFIGURATION_SUMMARY,
    View.CONFIGURATION_EXECUTE,
    View.PROTOCOL_SERIAL_NUMBERS,
    View.COMPLETION,
)

_HOME_2030_VIEWS: tuple[View, ...] = (
    View.PRE_INSTALLATION,
    View.PRE_INSTALLATION_UPDATE,
    View.CONFIGURATION_SYSTEM,
    View.CONFIGURATION_SYSTEM_VARIANT,
    View.PROTOCOL_INSTALLER,
    View.PROTOCOL_CUSTOMER,
    View.PROTOCOL_SYSTEM,
    View.CONFIGURATION_EMERGENCY_RESERVE,
    View.CONFIGURATION_ENERGY_FLOW_METER,
    View.CONFIGURATION_LINE_SIDE_METER_FUSE,
    View.CONFIGURATION_MPPT_SELECTION,
    View.PROTOCOL_PV,
    View.PROTOCOL_FEED_IN_LIMITATION,
    View.CONFIGURATION_SUMMARY,
    View.CONFIGURATION_EXECUTE,
    View.PROTOCOL_SERIAL_NUMBERS,
    View.COMPLETION,
)

GENERAL_SYSTEM = InstallationSystem(
    id=GENERAL_SYSTEM_ID,
    label="Allgemein",
    app_id="",
    app_alias="",
    ems_box_label="EMS Box",
    min_number_of_modules_per_tower=4,
    max_number_of_modules_per_tower=10,
    max_number_of_towers=3,
    max_number_of_pv_strings=2,
    max_number_of_mppt=2,
    views=(
        View.PRE_INSTALLATION,
        View.PRE_INSTALLATION_UPDATE,
        View.CONFIGURATION_SYSTEM,
    ),
    projector=_project_nothing,
)

INSTALLATION_SYSTEMS: dict[str, InstallationSystem] = {
    system.id: system
    for system in (
        GENERAL_SYSTEM,
        InstallationSystem(
            id="FENECON_HOME",
            label="FENECON Home",
            app_id="App.FENECON.Home",
            app_alias="FENECON Home",
            ems_box_label="Home - EMS Box",
            min_number_of_modules_per_tower=4,
            max_number_of_modules_per_tower=10,
            max_number_of_towers=3,
            max_number_of_pv_strings=2,
            max_number_of_mppt=2,
            views=_HOME_VIEWS,
            projector=_project_home,
        ),
        InstallationSystem(
            id="FENECON_HOME_20",
            label="FENECON Home 20",
            app_id="App.FENECON.Home.20",
            app_alias="FENECON Home 20",
            ems_box_label="Home 20 & 30 - EMS Box",
            min_number_of_modules_per_tower=5,
            max_number_of_modules_per_tower=15,
            max_number_of_towers=5,
            max_number_of_pv_strings=4,
            max_number_of_mppt=2,
            views=_HOME_2030_VIEWS,
            projector=_mppt_projector(2),
        ),
        InstallationSystem(
            id="FENECON_HOME_30",
            label="FENECON Home 30",
            app_id="App.FENECON.Home.30",
            app_alias="FENECON Home 30",
            ems_box_label="Home 20 & 30 - EMS Box",
            min_number_of_modules_per_tower=5,
            max_number_of_modules_per_tower=15,
            max_number_of_towers=5,
            max_number_of_pv_strings=6,
            max_number_of_mppt=3,
            views=_HOME_2030_VIEWS,
            projector=_mppt_projector(3),
        ),
    )
}


def get_installation_system(system_id: str | None) -> InstallationSystem | None:
    if system_id is None:
        return None
    return INSTALLATION_SYSTEMS.get(system_id)


def selectable_installation_systems() -> list[InstallationSystem]:
    return [system for system in INSTALLATION_SYSTEMS.values() if not system.is_general]
