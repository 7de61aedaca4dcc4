from __future__ import annotations

from unittest import TestCase

from app.services.installation_systems import INSTALLATION_SYSTEMS
from app.services.serial_number_fields import (
    DEFAULT_BMS_BOX_SERIAL_NUMBER,
    DEFAULT_MODULE_SERIAL_NUMBER,
    SerialNumberDefaults,
    build_serial_number_schema,
    collect_serial_numbers,
    settings_counts,
    validate_settings,
)


def _keys(fields) -> list[str]:
    return [field.key for field in fields]


class SerialNumberSchemaTests(TestCase):
    def setUp(self) -> None:
        self.system = INSTALLATION_SYSTEMS["FENECON_HOME"]

    def test_single_tower_fields(self) -> None:
        schema = build_serial_number_schema(
            self.system,
            SerialNumberDefaults(number_of_towers=1, number_of_modules_per_tower=5),
        )

        self.assertEqual(list(schema.towers), [1])
        self.assertEqual(
            _keys(schema.towers[1]),
            ["batteryInverter", "emsBox", "bmsBox", "module1", "module2", "module3", "module4", "module5"],
        )
        self.assertEqual(schema.towers[1][1].label, "Home - EMS Box")
        self.assertEqual(schema.towers[1][2].default, DEFAULT_BMS_BOX_SERIAL_NUMBER)
        self.assertEqual(schema.towers[1][3].default, DEFAULT_MODULE_SERIAL_NUMBER)

    def test_additional_towers_get_their_own_box(self) -> None:
        schema = build_serial_number_schema(
            self.system,
            SerialNumberDefaults(number_of_towers=3, number_of_modules_per_tower=4),
        )

        self.assertEqual(_keys(schema.towers[2])[0], "parallelBox")
        self.assertEqual(_keys(schema.towers[3])[0], "extensionBox")
        self.assertEqual(len(schema.towers[3]), 2 + 4)

    def test_rebuilding_with_same_counts_is_idempotent(self) -> None:
        defaults = SerialNumberDefaults(number_of_towers=2, number_of_modules_per_tower=6)

        self.assertEqual(
            build_serial_number_schema(self.system, defaults),
            build_serial_number_schema(self.system, defaults),
        )

    def test_rebuilding_with_fewer_towers_drops_groups(self) -> None:
        larger = build_serial_number_schema(
            self.system,
            SerialNumberDefaults(number_of_towers=3, number_of_modules_per_tower=8),
        )
        smaller = build_serial_number_schema(
            self.system,
            SerialNumberDefaults(number_of_towers=1, number_of_modules_per_tower=4),
        )

        self.assertEqual(len(larger.towers), 3)
        self.assertEqual(list(smaller.towers), [1])
        self.assertNotIn("module5", _keys(smaller.towers[1]))

    def test_counts_are_clamped_to_system_bounds(self) -> None:
        with self.assertLogs("app.serial_number_fields", level="WARNING"):
            schema = build_serial_number_schema(
                INSTALLATION_SYSTEMS["FENECON_HOME_20"],
                SerialNumberDefaults(number_of_towers=5, number_of_modules_per_tower=2),
            )

        self.assertEqual(schema.defaults.number_of_towers, 3)
        self.assertEqual(schema.defaults.number_of_modules_per_tower, 5)

    def test_battery_inverter_default_is_seeded(self) -> None:
        schema = build_serial_number_schema(
            self.system,
            SerialNumberDefaults(
                number_of_towers=1,
                number_of_modules_per_tower=4,
                battery_inverter_serial_number="IN1234567890",
                source="live",
            ),
        )

        self.assertEqual(schema.towers[1][0].default, "IN1234567890")
        self.assertEqual(schema.defaults.source, "live")


class SerialNumberValidationTests(TestCase):
    def setUp(self) -> None:
        self.schema = build_serial_number_schema(
            INSTALLATION_SYSTEMS["FENECON_HOME"],
            SerialNumberDefaults(number_of_towers=1, number_of_modules_per_tower=4),
        )

    def test_defaults_fill_missing_values(self) -> None:
        serial_numbers, errors = collect_serial_numbers(
            self.schema,
            {1: {"batteryInverter": "IN1234567890", "emsBox": "EMS0000001"}},
        )

        self.assertEqual(errors, {})
        self.assertEqual(len(serial_numbers.tower1), 7)
        self.assertEqual(serial_numbers.tower1[2].value, DEFAULT_BMS_BOX_SERIAL_NUMBER)
        self.assertEqual(serial_numbers.tower2, [])

    def test_invalid_and_missing_serial_numbers_are_reported(self) -> None:
        _serial_numbers, errors = collect_serial_numbers(
            self.schema,
            {1: {"emsBox": "12-34", "module2": ""}},
        )

        self.assertIn("tower1.batteryInverter", errors)
        self.assertIn("tower1.emsBox", errors)
        self.assertIn("tower1.module2", errors)
        self.assertNotIn("tower1.module1", errors)

    def test_settings_validation_uses_system_bounds(self) -> None:
        errors = validate_settings(self.schema.settings, {"numberOfTowers": 4, "numberOfModulesPerTower": 3})

        self.assertEqual(set(errors), {"numberOfTowers", "numberOfModulesPerTower"})
        self.assertEqual(
            validate_settings(self.schema.settings, {"numberOfTowers": "2", "numberOfModulesPerTower": 10}),
            {},
        )
        self.assertEqual(settings_counts({"numberOfTowers": "2", "numberOfModulesPerTower": 10}), (2, 10))
