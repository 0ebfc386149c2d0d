"""Company model."""
from datetime import datetime

from sqlalchemy import Column, Integer, String
from sqlalchemy.orm import relationship

from ledgerlink.database import Base


class Company(Base):
    """A client company of the firm; owns one Xero connection."""

    __tablename__ = "companies"

    id = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(String(255), nullable=False)
    email = Column(String(255))
    created_at = Column(String(26), default=lambda: datetime.utcnow().isoformat())

    # Relationships
    credential = relationship(
        "XeroCredential",
        back_populates="company",
        uselist=False,
        cascade="all, delete-orphan",
    )
    staged_transactions = relationship(
        "StagedTransaction",
        back_populates="company",
        cascade="all, delete-orphan",
    )
