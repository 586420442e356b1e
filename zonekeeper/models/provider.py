"""DNS provider models"""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text, JSON, Enum as SQLEnum
from sqlalchemy.orm import relationship
import enum

from zonekeeper.core.database import Base


class ProviderType(str, enum.Enum):
    """Supported authoritative backends"""
    POWERDNS = "powerdns"
    CLOUDFLARE = "cloudflare"
    ROUTE53 = "route53"
    DNSMASQ = "dnsmasq"
    CUSTOM = "custom"


class DNSProvider(Base):
    """Authoritative DNS backend"""
    __tablename__ = "dns_providers"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), unique=True, nullable=False, index=True)
    type = Column(SQLEnum(ProviderType), nullable=False, index=True)
    description = Column(Text, nullable=True)
    active = Column(Boolean, default=True, nullable=False)

    # Endpoint, API key, SSH host, ... (shape depends on type)
    connection_config = Column(JSON, default=dict, nullable=False)

    version = Column(String(50), nullable=True)
    rate_limit = Column(Integer, default=100, nullable=False)  # requests per minute
    timeout = Column(Integer, default=30, nullable=False)  # seconds
    sort_order = Column(Integer, default=0, nullable=False)
    last_sync = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    deleted_at = Column(DateTime, nullable=True, index=True)

    # Relationships
    zones = relationship("DNSZone", back_populates="provider")

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def __repr__(self):
        return f"<DNSProvider {self.name} ({self.type.value if self.type else '?'})>"
