"""DNS provider schemas"""
from datetime import datetime
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator

from zonekeeper.models.provider import ProviderType


class PowerDnsConnection(BaseModel):
    """Connection settings for a PowerDNS authoritative server"""
    model_config = ConfigDict(extra="allow")

    api_key: str = Field(..., min_length=1)
    api_endpoint: Optional[str] = None  # used directly when no ssh_host is set
    api_port: int = 8081
    server_id: str = "localhost"

    # SSH tunnel
    ssh_host: Optional[str] = None
    ssh_port: int = 22
    ssh_user: str = "root"
    ssh_key: Optional[str] = None
    ssh_password: Optional[str] = None

    @model_validator(mode="after")
    def check_reachable(self):
        if not self.ssh_host and not self.api_endpoint:
            raise ValueError("either ssh_host or api_endpoint is required")
        return self


class CloudflareConnection(BaseModel):
    """Connection settings for CloudFlare API v4"""
    model_config = ConfigDict(extra="allow")

    api_token: str = Field(..., min_length=1)
    account_id: Optional[str] = None
    base_url: Optional[str] = None


class CustomConnection(BaseModel):
    """Connection settings for a generic REST backend"""
    model_config = ConfigDict(extra="allow")

    base_url: str = Field(..., min_length=1)
    api_key: Optional[str] = None
    auth_header: str = "Authorization"
    auth_scheme: Optional[str] = "Bearer"
    headers: Dict[str, str] = Field(default_factory=dict)


class ProviderCreate(BaseModel):
    """Schema for provider creation"""
    name: str = Field(..., min_length=1, max_length=255)
    type: ProviderType
    description: Optional[str] = None
    active: bool = True
    connection_config: Dict[str, Any] = Field(default_factory=dict)
    rate_limit: int = Field(default=100, ge=1)
    timeout: int = Field(default=30, ge=1, le=300)
    sort_order: int = 0


class ProviderUpdate(BaseModel):
    """Schema for provider update"""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    active: Optional[bool] = None
    connection_config: Optional[Dict[str, Any]] = None
    rate_limit: Optional[int] = Field(None, ge=1)
    timeout: Optional[int] = Field(None, ge=1, le=300)
    sort_order: Optional[int] = None


class ProviderResponse(BaseModel):
    """Schema for provider response"""
    id: int
    name: str
    type: ProviderType
    description: Optional[str] = None
    active: bool
    rate_limit: int
    timeout: int
    last_sync: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
