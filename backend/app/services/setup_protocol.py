from __future__ import annotations

from app.schemas.installation import (
    AcPv,
    Customer,
    DcPv,
    FeedInSetting,
    InstallationData,
    Location,
)
from app.schemas.protocol import (
    ProtocolAddress,
    ProtocolCompany,
    ProtocolContact,
    ProtocolFems,
    ProtocolItem,
    ProtocolLot,
    SetupProtocol,
)
from app.services.installation_values import format_number, resolve_line_side_meter_fuse
from app.services.meters import meter_spec

CATEGORY_EMERGENCY_RESERVE = "Angaben zu Notstrom"
CATEGORY_LINE_SIDE_METER_FUSE = "Zählervorsicherung"
CATEGORY_DC_PV = "DC-PV-Installation"
CATEGORY_FEED_IN_LIMITATION = "Dynamische Begrenzung der Einspeisung"
CATEGORY_AC_PRODUCERS = "Zusätzliche AC-Erzeuger"
CATEGORY_FEMS = "FEMS"

TOWER_LOT_CATEGORIES: dict[int, str] = {
    1: "Speichersystemkomponenten",
    2: "Batterieturm 2",
    3: "Batterieturm 3",
}


def assemble_setup_protocol(data: InstallationData, *, edge_id: str) -> SetupProtocol:
    protocol = SetupProtocol(
        fems=ProtocolFems(id=edge_id),
        customer=_customer_contact(data.customer),
    )
    if not data.location.is_equal_to_customer_data:
        protocol.location = _location_contact(data.location)

    items: list[ProtocolItem] = []
    items.extend(_emergency_reserve_items(data))
    items.append(_line_side_meter_fuse_item(data))
    for index, dc in enumerate(data.pv.dc):
        items.extend(_dc_pv_items(dc, label=f"MPPT{index + 1}"))
    items.extend(_feed_in_limitation_items(data))
    for index, ac in enumerate(data.pv.ac):
        items.extend(_ac_producer_items(ac, label=f"AC{index + 1}"))
    items.append(ProtocolItem(category=CATEGORY_FEMS, name="FEMS Nummer", value=edge_id))

    protocol.items = items
    protocol.lots = build_serial_number_lots(data)
    return protocol


def build_serial_number_lots(data: InstallationData) -> list[ProtocolLot]:
    lots: list[ProtocolLot] = []
    serial_numbers = data.battery.serial_numbers
    for tower_nr, category in TOWER_LOT_CATEGORIES.items():
        for entry in serial_numbers.for_tower(tower_nr):
            if entry.value is None or entry.value == "":
                continue
            lots.append(
                ProtocolLot(
                    category=category,
                    name=f"{entry.label} Seriennummer",
                    serial_number=entry.value,
                )
            )
    return lots


def _customer_contact(customer: Customer) -> ProtocolContact:
    contact = ProtocolContact(
        firstname=customer.first_name,
        lastname=customer.last_name,
        email=customer.email,
        phone=customer.phone,
        address=ProtocolAddress(
            street=customer.street,
            city=customer.city,
            zip=customer.zip,
            country=customer.country,
        ),
    )
    if customer.is_corporate_client:
        contact.company = ProtocolCompany(name=customer.company_name)
    return contact


def _location_contact(location: Location) -> ProtocolContact:
    return ProtocolContact(
        firstname=location.first_name,
        lastname=location.last_name,
        email=location.email,
        phone=location.phone,
        address=ProtocolAddress(
            street=location.street,
            city=location.city,
            zip=location.zip,
            country=location.country,
        ),
        company=ProtocolCompany(name=location.company_name),
    )


def _emergency_reserve_items(data: InstallationData) -> list[ProtocolItem]:
    reserve = data.battery.emergency_reserve
    items = [
        ProtocolItem(
            category=CATEGORY_EMERGENCY_RESERVE,
            name="Notstrom?",
            value="ja" if reserve.is_enabled else "nein",
        )
    ]
    if reserve.is_enabled:
        items.append(
            ProtocolItem(
                category=CATEGORY_EMERGENCY_RESERVE,
                name="Notstromreserve [%]",
                value=format_number(reserve.value),
            )
        )
    return items


def _line_side_meter_fuse_item(data: InstallationData) -> ProtocolItem:
    return ProtocolItem(
        category=CATEGORY_LINE_SIDE_METER_FUSE,
        name="Wert [A]",
        value=format_number(resolve_line_side_meter_fuse(data.line_side_meter_fuse)),
    )


def _dc_pv_items(dc: DcPv, *, label: str) -> list[ProtocolItem]:
    if not dc.is_selected:
        return []
    return [
        ProtocolItem(category=CATEGORY_DC_PV, name=f"Alias {label}", value=dc.alias),
        ProtocolItem(category=CATEGORY_DC_PV, name=f"Wert {label} [Wp]", value=format_number(dc.value)),
        ProtocolItem(category=CATEGORY_DC_PV, name=f"Ausrichtung {label}", value=dc.orientation),
        ProtocolItem(category=CATEGORY_DC_PV, name=f"Modultyp {label}", value=dc.module_type),
        ProtocolItem(
            category=CATEGORY_DC_PV,
            name=f"Modulanzahl {label}",
            value=format_number(dc.modules_per_string),
        ),
    ]


def _feed_in_limitation_items(data: InstallationData) -> list[ProtocolItem]:
    limitation = data.battery_inverter.dynamic_feed_in_limitation
    items = [
        ProtocolItem(
            category=CATEGORY_FEED_IN_LIMITATION,
            name="Maximale Einspeiseleistung [W]",
            value=format_number(limitation.maximum_feed_in_power),
        ),
        ProtocolItem(
            category=CATEGORY_FEED_IN_LIMITATION,
            name="Typ",
            value=limitation.feed_in_setting.value,
        ),
    ]
    if limitation.feed_in_setting == FeedInSetting.FIXED_POWER_FACTOR:
        items.append(
            ProtocolItem(
                category=CATEGORY_FEED_IN_LIMITATION,
                name="Cos φ Festwert",
                value=limitation.fixed_power_factor or "",
            )
        )
    return items


def _ac_producer_items(ac: AcPv, *, label: str) -> list[ProtocolItem]:
    return [
        ProtocolItem(category=CATEGORY_AC_PRODUCERS, name=f"Alias {label}", value=ac.alias),
        ProtocolItem(category=CATEGORY_AC_PRODUCERS, name=f"Wert {label} [Wp]", value=format_number(ac.value)),
        ProtocolItem(category=CATEGORY_AC_PRODUCERS, name=f"Ausrichtung {label}", value=ac.orientation),
        ProtocolItem(category=CATEGORY_AC_PRODUCERS, name=f"Modultyp {label}", value=ac.module_type),
        ProtocolItem(
            category=CATEGORY_AC_PRODUCERS,
            name=f"Modulanzahl {label}",
            value=format_number(ac.modules_per_string),
        ),
        ProtocolItem(
            category=CATEGORY_AC_PRODUCERS,
            name=f"Zählertyp {label}",
            value=meter_spec(ac.meter_type).label,
        ),
        ProtocolItem(
            category=CATEGORY_AC_PRODUCERS,
            name=f"Modbus Kommunikationsadresse {label}",
            value=format_number(ac.modbus_communication_address),
        ),
    ]
