"""Typed views over provider_data JSON columns.

Known fields are validated; anything else the backend returned is kept as
extra attributes so a round trip through the database never loses data.
"""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field


class DnssecKey(BaseModel):
    """DNSSEC key as held by the backend"""
    model_config = ConfigDict(extra="allow")

    id: str
    key_type: str = Field(..., pattern="^(ksk|zsk|csk)$")
    algorithm: Optional[str] = None
    bits: Optional[int] = None
    active: bool = False
    published: bool = True
    created_at: Optional[datetime] = None
    ds: List[str] = Field(default_factory=list)
    dnskey: Optional[str] = None


class DnssecInfo(BaseModel):
    """DNSSEC status reported by the backend"""
    model_config = ConfigDict(extra="allow")

    managed_by_provider: bool = False
    status: Optional[str] = None
    enabled_at: Optional[datetime] = None
    disabled_at: Optional[datetime] = None
    last_rollover_at: Optional[datetime] = None


class ZoneProviderData(BaseModel):
    """Snapshot of the remote zone"""
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    kind: Optional[str] = None
    serial: Optional[int] = None
    nameservers: List[str] = Field(default_factory=list)
    dnssec: Optional[DnssecInfo] = None
    dnssec_keys: List[DnssecKey] = Field(default_factory=list)

    @classmethod
    def load(cls, data: Optional[dict]) -> "ZoneProviderData":
        return cls.model_validate(data or {})

    def dump(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)


class RecordProviderData(BaseModel):
    """Snapshot of the remote record"""
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    proxied: Optional[bool] = None
    raw_content: Optional[str] = None

    def dump(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)
