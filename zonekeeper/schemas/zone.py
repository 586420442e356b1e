"""DNS zone schemas"""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field

from zonekeeper.models.zone import ZoneKind, DnssecState


class ZoneCreate(BaseModel):
    """Schema for zone creation"""
    provider_id: int
    name: str = Field(..., min_length=1, max_length=255)
    kind: ZoneKind = ZoneKind.NATIVE
    masters: List[str] = Field(default_factory=list)
    nameservers: List[str] = Field(default_factory=list)
    ttl: Optional[int] = Field(None, ge=1, le=604800)
    hostmaster: Optional[str] = None
    account: Optional[str] = None
    description: Optional[str] = None
    auto_dnssec: bool = False
    create_default_records: bool = True
    test_connection: bool = False


class ZoneUpdate(BaseModel):
    """Schema for zone update"""
    kind: Optional[ZoneKind] = None
    masters: Optional[List[str]] = None
    ttl: Optional[int] = Field(None, ge=1, le=604800)
    dnssec_enabled: Optional[bool] = None
    auto_dnssec: Optional[bool] = None
    account: Optional[str] = None
    description: Optional[str] = None
    active: Optional[bool] = None
    sort_order: Optional[int] = None


class ZoneResponse(BaseModel):
    """Schema for zone response"""
    id: int
    provider_id: int
    name: str
    external_id: Optional[str] = None
    kind: ZoneKind
    masters: List[str] = Field(default_factory=list)
    nameservers: List[str] = Field(default_factory=list)
    serial: int
    ttl: int
    auto_dnssec: bool
    dnssec_enabled: bool
    dnssec_state: DnssecState
    active: bool
    records_count: int
    is_reverse: bool = False
    description: Optional[str] = None
    last_synced: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
