from __future__ import annotations

from app.schemas.installation import LINE_SIDE_METER_FUSE_OTHER, LineSideMeterFuse


def resolve_line_side_meter_fuse(fuse: LineSideMeterFuse) -> int | None:
    if fuse.fixed_value == LINE_SIDE_METER_FUSE_OTHER:
        return fuse.other_value
    return fuse.fixed_value


def format_number(value: int | float | None) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
