from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class ProtocolAddress(BaseModel):
    street: str
    city: str
    zip: str
    country: str


class ProtocolCompany(BaseModel):
    name: str | None = None


class ProtocolContact(BaseModel):
    firstname: str
    lastname: str
    email: str
    phone: str
    address: ProtocolAddress
    company: ProtocolCompany | None = None


class ProtocolFems(BaseModel):
    id: str


class ProtocolItem(BaseModel):
    category: str
    name: str
    value: str


class ProtocolLot(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    category: str
    name: str
    serial_number: str = Field(serialization_alias="serialNumber", validation_alias="serialNumber")


class SetupProtocol(BaseModel):
    fems: ProtocolFems
    customer: ProtocolContact
    location: ProtocolContact | None = None
    items: list[ProtocolItem] = Field(default_factory=list)
    lots: list[ProtocolLot] = Field(default_factory=list)

    def to_wire(self) -> dict[str, object]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
