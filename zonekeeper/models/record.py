"""DNS record models"""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Boolean, Text, JSON
from sqlalchemy.orm import relationship

from zonekeeper.core.database import Base


class DNSRecord(Base):
    """DNS record model"""
    __tablename__ = "dns_records"

    id = Column(Integer, primary_key=True, index=True)
    zone_id = Column(Integer, ForeignKey("dns_zones.id"), nullable=False, index=True)
    external_id = Column(String(512), nullable=True, index=True)

    # DNS fields
    name = Column(String(255), nullable=False, index=True)  # FQDN with trailing dot
    type = Column(String(10), nullable=False, index=True)
    content = Column(Text, nullable=False)  # priority is kept separately for MX/SRV
    ttl = Column(Integer, default=3600, nullable=False)
    priority = Column(Integer, nullable=True)
    disabled = Column(Boolean, default=False, nullable=False)

    # PowerDNS bookkeeping
    auth = Column(Boolean, default=True, nullable=False)
    ordername = Column(String(255), nullable=True)

    comment = Column(String(255), nullable=True)
    provider_data = Column(JSON, default=dict, nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)
    last_synced = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    deleted_at = Column(DateTime, nullable=True, index=True)

    # Relationships
    zone = relationship("DNSZone", back_populates="records")

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def __repr__(self):
        return f"<DNSRecord {self.name} {self.type} {self.content}>"
