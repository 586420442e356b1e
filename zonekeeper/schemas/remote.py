"""Backend-neutral shapes exchanged with provider clients"""
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from zonekeeper.models.zone import ZoneKind


class RecordSpec(BaseModel):
    """Record as sent to a backend"""
    name: str
    type: str
    content: str
    ttl: int = 3600
    priority: Optional[int] = None
    disabled: bool = False
    comment: Optional[str] = None


class ZoneSpec(BaseModel):
    """Zone as sent to a backend on creation"""
    name: str
    kind: ZoneKind = ZoneKind.NATIVE
    masters: List[str] = Field(default_factory=list)
    nameservers: List[str] = Field(default_factory=list)
    ttl: int = 3600
    account: Optional[str] = None
    soa_edit_api: str = "DEFAULT"
    records: List[RecordSpec] = Field(default_factory=list)


class RemoteRecord(BaseModel):
    """Record as reported by a backend"""
    id: str
    name: str
    type: str
    content: str
    ttl: int = 3600
    priority: Optional[int] = None
    disabled: bool = False
    comment: Optional[str] = None
    raw: Dict[str, Any] = Field(default_factory=dict)


class RemoteZone(BaseModel):
    """Zone as reported by a backend"""
    id: str
    name: str
    kind: Optional[str] = None
    serial: Optional[int] = None
    masters: List[str] = Field(default_factory=list)
    nameservers: List[str] = Field(default_factory=list)
    dnssec: bool = False
    raw: Dict[str, Any] = Field(default_factory=dict)


class CommandResult(BaseModel):
    """Result of command execution"""
    success: bool
    stdout: str
    stderr: str
    exit_code: int
    execution_time: float


class SSHTarget(BaseModel):
    """Where and how to open an SSH session"""
    host: str
    port: int = 22
    username: str = "root"
    client_key: Optional[str] = None
    password: Optional[str] = None


class TunnelStatus(BaseModel):
    """One pooled SSH tunnel"""
    host: str
    service: str
    endpoint: str
    remote_port: int
    alive: bool
    age_seconds: float
    idle_seconds: float
