"""Operation results returned by the write-through services"""
import enum
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field


class ErrorKind(str, enum.Enum):
    """Why an operation did not succeed"""
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    EXISTS = "exists"
    CONFLICT = "conflict"
    CONFIGURATION = "configuration"
    REMOTE = "remote"
    RATE_LIMITED = "rate_limited"
    TUNNEL = "tunnel"
    UNSUPPORTED = "unsupported"


class OperationResult(BaseModel):
    """Outcome of a zone or record mutation.

    ``local`` is the ORM row after commit and ``remote`` the backend echo.
    ``divergence`` is set when the backend accepted the change but the local
    commit failed; the row will be healed by the next sync.
    """
    success: bool
    message: str = ""
    error: Optional[ErrorKind] = None
    local: Any = None
    remote: Any = None
    changes: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    ptr: Optional["OperationResult"] = None
    dnssec: Optional["OperationResult"] = None
    divergence: Optional[str] = None

    @property
    def divergent(self) -> bool:
        return self.divergence is not None

    @classmethod
    def ok(cls, message: str = "", **kwargs) -> "OperationResult":
        return cls(success=True, message=message, **kwargs)

    @classmethod
    def fail(cls, error: ErrorKind, message: str, **kwargs) -> "OperationResult":
        return cls(success=False, error=error, message=message, **kwargs)


OperationResult.model_rebuild()
