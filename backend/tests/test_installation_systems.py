from __future__ import annotations

from unittest import TestCase

from app.schemas.installation import AcPv, DcPv, FeedInSetting, InstallationData, Meter, SafetyCountry
from app.services.installation_systems import (
    GENERAL_SYSTEM,
    INSTALLATION_SYSTEMS,
    View,
    get_installation_system,
    selectable_installation_systems,
)


class InstallationSystemRegistryTests(TestCase):
    def test_general_system_is_not_selectable(self) -> None:
        ids = [system.id for system in selectable_installation_systems()]

        self.assertEqual(ids, ["FENECON_HOME", "FENECON_HOME_20", "FENECON_HOME_30"])
        self.assertTrue(GENERAL_SYSTEM.is_general)
        self.assertIsNone(get_installation_system("UNKNOWN"))
        self.assertIsNone(get_installation_system(None))

    def test_every_system_starts_with_the_general_views(self) -> None:
        for system in INSTALLATION_SYSTEMS.values():
            self.assertEqual(system.views[: GENERAL_SYSTEM.view_count], GENERAL_SYSTEM.views)

    def test_selectable_systems_end_with_serial_numbers_and_completion(self) -> None:
        for system in selectable_installation_systems():
            self.assertEqual(system.views[-2:], (View.PROTOCOL_SERIAL_NUMBERS, View.COMPLETION))
            self.assertEqual(len(set(system.views)), system.view_count)

    def test_home_20_and_30_differ_in_bounds_only(self) -> None:
        home_20 = INSTALLATION_SYSTEMS["FENECON_HOME_20"]
        home_30 = INSTALLATION_SYSTEMS["FENECON_HOME_30"]

        self.assertEqual(home_20.views, home_30.views)
        self.assertEqual(home_20.max_number_of_mppt, 2)
        self.assertEqual(home_30.max_number_of_mppt, 3)
        self.assertEqual(home_30.max_number_of_pv_strings, 6)


class InstallationSystemProjectionTests(TestCase):
    def test_projection_is_deterministic(self) -> None:
        data = InstallationData()
        data.pv.dc[0] = DcPv(is_selected=True, alias="Dach")
        system = INSTALLATION_SYSTEMS["FENECON_HOME_20"]

        first = system.project_payload(data, SafetyCountry.GERMANY, FeedInSetting.QU_ENABLE_CURVE)
        second = system.project_payload(data, SafetyCountry.GERMANY, FeedInSetting.QU_ENABLE_CURVE)

        self.assertEqual(first, second)
        self.assertEqual(first.app_id, "App.FENECON.Home.20")

    def test_mppt_alias_is_only_emitted_for_selected_strings(self) -> None:
        data = InstallationData()
        data.pv.dc[0] = DcPv(is_selected=True, alias="Dach")
        data.pv.dc[1] = DcPv(is_selected=False, alias="Garage")

        properties = INSTALLATION_SYSTEMS["FENECON_HOME_20"].project_payload(
            data,
            SafetyCountry.GERMANY,
            FeedInSetting.QU_ENABLE_CURVE,
        ).properties

        self.assertTrue(properties["HAS_MPPT_1"])
        self.assertEqual(properties["ALIAS_MPPT_1"], "Dach")
        self.assertFalse(properties["HAS_MPPT_2"])
        self.assertNotIn("ALIAS_MPPT_2", properties)
        self.assertNotIn("HAS_MPPT_3", properties)

    def test_three_mppt_projection_tolerates_missing_third_string(self) -> None:
        data = InstallationData()

        properties = INSTALLATION_SYSTEMS["FENECON_HOME_30"].project_payload(
            data,
            SafetyCountry.AUSTRIA,
            FeedInSetting.PU_ENABLE_CURVE,
        ).properties

        self.assertFalse(properties["HAS_MPPT_3"])
        self.assertEqual(properties["SAFETY_COUNTRY"], "AUSTRIA")
        self.assertEqual(properties["FEED_IN_SETTING"], "PU_ENABLE_CURVE")
        self.assertEqual(properties["MAX_FEED_IN_POWER"], 0)

    def test_home_projection_uses_dc_pv_keys_and_ac_meter(self) -> None:
        data = InstallationData()
        data.pv.dc[1] = DcPv(is_selected=True, alias="Garage")
        data.pv.ac.append(AcPv(meter_type=Meter.KDK))
        data.battery.emergency_reserve.is_enabled = True
        data.battery.emergency_reserve.value = 25

        properties = INSTALLATION_SYSTEMS["FENECON_HOME"].project_payload(
            data,
            SafetyCountry.SWITZERLAND,
            FeedInSetting.QU_ENABLE_CURVE,
        ).properties

        self.assertFalse(properties["HAS_DC_PV1"])
        self.assertNotIn("DC_PV1_ALIAS", properties)
        self.assertEqual(properties["DC_PV2_ALIAS"], "Garage")
        self.assertTrue(properties["HAS_AC_METER"])
        self.assertEqual(properties["AC_METER_TYPE"], "KDK")
        self.assertEqual(properties["EMERGENCY_RESERVE_SOC"], 25)
        self.assertNotIn("LINE_SIDE_METER_FUSE", properties)

    def test_emergency_reserve_soc_is_omitted_when_disabled(self) -> None:
        properties = INSTALLATION_SYSTEMS["FENECON_HOME_30"].project_payload(
            InstallationData(),
            SafetyCountry.GERMANY,
            FeedInSetting.QU_ENABLE_CURVE,
        ).properties

        self.assertFalse(properties["EMERGENCY_RESERVE_ENABLED"])
        self.assertNotIn("EMERGENCY_RESERVE_SOC", properties)
        self.assertFalse(properties["HAS_AC_METER"])
        self.assertNotIn("AC_METER_TYPE", properties)
