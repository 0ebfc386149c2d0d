"""Xero OAuth credential model."""
import uuid
from datetime import datetime

from sqlalchemy import Column, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from ledgerlink.database import Base


class XeroCredential(Base):
    """OAuth client credentials and current token set for one company."""

    __tablename__ = "xero_credentials"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    company_id = Column(
        Integer,
        ForeignKey("companies.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
        index=True,
    )

    # App registration
    client_id = Column(String(255))
    client_secret = Column(String(255))
    scope = Column(Text, nullable=False)

    # Token set (cleared on disconnect)
    access_token = Column(Text)
    refresh_token = Column(Text)
    expires_at = Column(String(26))  # naive UTC ISO timestamp

    # Active tenant
    tenant_id = Column(String(36))
    tenant_name = Column(String(255))
    tenant_type = Column(String(50))

    # Timestamps
    created_at = Column(String(26), default=lambda: datetime.utcnow().isoformat())
    updated_at = Column(String(26), default=lambda: datetime.utcnow().isoformat(), onupdate=lambda: datetime.utcnow().isoformat())

    # Relationships
    company = relationship("Company", back_populates="credential")

    @property
    def is_connected(self) -> bool:
        return bool(self.access_token and self.tenant_id)

    @property
    def expires_at_dt(self) -> datetime | None:
        if not self.expires_at:
            return None
        return datetime.fromisoformat(self.expires_at)
