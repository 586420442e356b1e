"""Reconciliation schemas"""
from typing import List, Optional
from pydantic import BaseModel, Field


class SyncError(BaseModel):
    """Per-item failure collected during a sync run"""
    zone: Optional[str] = None
    message: str


class SyncSummary(BaseModel):
    """Counters for one reconciliation pass"""
    provider: Optional[str] = None
    zones_created: int = 0
    zones_updated: int = 0
    zones_removed: int = 0
    records_created: int = 0
    records_updated: int = 0
    records_removed: int = 0
    records_skipped: int = 0
    errors: List[SyncError] = Field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    def merge(self, other: "SyncSummary") -> "SyncSummary":
        for field in (
            "zones_created", "zones_updated", "zones_removed",
            "records_created", "records_updated", "records_removed", "records_skipped",
        ):
            setattr(self, field, getattr(self, field) + getattr(other, field))
        self.errors.extend(other.errors)
        return self
