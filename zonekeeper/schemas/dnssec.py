"""DNSSEC schemas"""
import enum
from typing import List, Optional
from pydantic import BaseModel, Field


class CheckStatus(str, enum.Enum):
    PASS = "pass"
    FAIL = "fail"
    WARN = "warn"
    ERROR = "error"


class DnssecCheck(BaseModel):
    """One diagnostic check"""
    name: str
    status: CheckStatus
    message: str = ""


class DnssecValidation(BaseModel):
    """Aggregated DNSSEC diagnostics for a zone"""
    zone: str
    checks: List[DnssecCheck] = Field(default_factory=list)

    @property
    def status(self) -> CheckStatus:
        if self.checks and all(c.status == CheckStatus.PASS for c in self.checks):
            return CheckStatus.PASS
        return CheckStatus.FAIL

    @property
    def passed(self) -> bool:
        return self.status == CheckStatus.PASS

    def add(self, name: str, status: CheckStatus, message: str = "") -> DnssecCheck:
        check = DnssecCheck(name=name, status=status, message=message)
        self.checks.append(check)
        return check


class KeyGenerationRequest(BaseModel):
    """Parameters for generating a DNSSEC key pair"""
    algorithm: Optional[str] = None
    ksk_bits: Optional[int] = Field(None, ge=0)
    zsk_bits: Optional[int] = Field(None, ge=0)


class RolloverRequest(BaseModel):
    """Explicitly confirmed key rollover"""
    key_type: str = Field(default="zsk", pattern="^(ksk|zsk)$")
    confirm: bool = False


class DnssecMonitorSummary(BaseModel):
    """Result of validating every DNSSEC-enabled zone"""
    checked: int = 0
    passed: int = 0
    failed: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    results: List[DnssecValidation] = Field(default_factory=list)
