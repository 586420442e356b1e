"""DNS zone models"""
from datetime import datetime
from sqlalchemy import Column, Integer, BigInteger, String, DateTime, ForeignKey, Boolean, Text, JSON, Enum as SQLEnum
from sqlalchemy.orm import relationship
import enum

from zonekeeper.core.database import Base
from zonekeeper.services.reverse_dns import is_reverse_zone


class ZoneKind(str, enum.Enum):
    """Replication role of a zone"""
    NATIVE = "Native"
    PRIMARY = "Primary"
    SECONDARY = "Secondary"
    FORWARDED = "Forwarded"


class DnssecState(str, enum.Enum):
    """DNSSEC lifecycle state"""
    DISABLED = "disabled"
    ENABLING = "enabling"
    KEYS_PENDING = "keys_pending"
    KEYS_ACTIVE = "keys_active"
    ROLLOVER_IN_PROGRESS = "rollover_in_progress"
    DISABLING = "disabling"


class DNSZone(Base):
    """DNS zone owned by one provider"""
    __tablename__ = "dns_zones"

    id = Column(Integer, primary_key=True, index=True)
    provider_id = Column(Integer, ForeignKey("dns_providers.id"), nullable=False, index=True)

    name = Column(String(255), nullable=False, index=True)  # always ends with "."
    external_id = Column(String(255), nullable=True, index=True)
    kind = Column(SQLEnum(ZoneKind), default=ZoneKind.NATIVE, nullable=False)
    masters = Column(JSON, default=list, nullable=False)
    nameservers = Column(JSON, default=list, nullable=False)
    account = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)

    # SOA
    serial = Column(BigInteger, default=0, nullable=False)
    ttl = Column(Integer, default=3600, nullable=False)

    # DNSSEC
    auto_dnssec = Column(Boolean, default=False, nullable=False)
    dnssec_enabled = Column(Boolean, default=False, nullable=False)
    dnssec_state = Column(SQLEnum(DnssecState), default=DnssecState.DISABLED, nullable=False)

    # Last fetched remote representation, see schemas.provider_data.ZoneProviderData
    provider_data = Column(JSON, default=dict, nullable=False)

    active = Column(Boolean, default=True, nullable=False)
    records_count = Column(Integer, default=0, nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)
    last_check = Column(DateTime, nullable=True)
    last_synced = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    deleted_at = Column(DateTime, nullable=True, index=True)

    # Relationships
    provider = relationship("DNSProvider", back_populates="zones")
    records = relationship("DNSRecord", back_populates="zone", cascade="all, delete-orphan")

    @property
    def remote_id(self) -> str:
        """Identifier the backend knows this zone by"""
        return self.external_id or self.name

    @property
    def lock_key(self) -> str:
        return f"{self.provider_id}:{self.name}"

    @property
    def is_reverse(self) -> bool:
        return is_reverse_zone(self.name)

    def __repr__(self):
        return f"<DNSZone {self.name}>"
