from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Literal

FieldValueType = Literal["number", "string", "boolean"]


@dataclass(frozen=True)
class FieldDef:
    key: str
    label: str
    value_type: FieldValueType = "string"
    required: bool = False
    default: Any = None
    minimum: float | None = None
    maximum: float | None = None
    pattern: str | None = None
    pattern_message: str | None = None
    options: tuple[Any, ...] | None = None

    def validate(self, value: Any) -> str | None:
        if _is_blank(value):
            return "Dieses Feld ist ein Pflichtfeld." if self.required else None

        if self.value_type == "number":
            numeric = _coerce_number(value)
            if numeric is None:
                return "Bitte eine gültige Zahl eingeben."
            if self.minimum is not None and numeric < self.minimum:
                return f"Der Wert muss mindestens {_format_bound(self.minimum)} betragen."
            if self.maximum is not None and numeric > self.maximum:
                return f"Der Wert darf höchstens {_format_bound(self.maximum)} betragen."
        elif self.value_type == "boolean":
            if not isinstance(value, bool):
                return "Bitte ja oder nein wählen."

        if self.options is not None and _option_value(self, value) not in self.options:
            return "Bitte einen gültigen Wert auswählen."

        if self.pattern is not None and re.fullmatch(self.pattern, str(value).strip()) is None:
            return self.pattern_message or "Ungültiges Format."
        return None


def coerce_field_value(field: FieldDef, value: Any) -> Any:
    if _is_blank(value):
        return None
    if field.value_type == "number":
        numeric = _coerce_number(value)
        if numeric is not None and numeric.is_integer():
            return int(numeric)
        return numeric
    if field.value_type == "string":
        return str(value).strip()
    return value


def _option_value(field: FieldDef, value: Any) -> Any:
    if field.value_type == "number":
        numeric = _coerce_number(value)
        if numeric is not None and numeric.is_integer():
            return int(numeric)
        return numeric
    return value


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def _coerce_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            numeric = float(value)
        except OverflowError:
            return None
    elif isinstance(value, str):
        try:
            numeric = float(value.strip().replace(",", "."))
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(numeric):
        return None
    return numeric


def _format_bound(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return str(value)
