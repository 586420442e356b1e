"""DNS record schemas"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class DNSRecordCreate(BaseModel):
    """Schema for DNS record creation"""
    zone: str = Field(..., min_length=1, description="Zone name or id")
    name: str = Field(default="@", max_length=255)
    type: str = Field(..., min_length=1, max_length=10)
    content: str = ""
    ttl: Optional[int] = Field(None, ge=1, le=604800)
    priority: Optional[int] = Field(None, ge=0, le=65535)
    disabled: bool = False
    comment: Optional[str] = Field(None, max_length=255)

    # Write-through options
    allow_duplicate: bool = False
    auto_ptr: bool = False
    auto_create_ptr_zone: bool = False


class DNSRecordUpdate(BaseModel):
    """Schema for DNS record update"""
    name: Optional[str] = Field(None, max_length=255)
    type: Optional[str] = Field(None, min_length=1, max_length=10)
    content: Optional[str] = None
    ttl: Optional[int] = Field(None, ge=1, le=604800)
    priority: Optional[int] = Field(None, ge=0, le=65535)
    disabled: Optional[bool] = None
    comment: Optional[str] = Field(None, max_length=255)

    update_ptr: bool = False


class DNSRecordResponse(BaseModel):
    """Schema for DNS record response"""
    id: int
    zone_id: int
    external_id: Optional[str] = None
    type: str
    name: str
    content: str
    ttl: int
    priority: Optional[int] = None
    disabled: bool
    comment: Optional[str] = None
    last_synced: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
