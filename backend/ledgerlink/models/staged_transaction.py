"""Staged bank statement lines imported from CSV."""
import enum
import uuid
from datetime import datetime

from sqlalchemy import Column, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship

from ledgerlink.database import Base


class TransactionStatus(str, enum.Enum):
    """Lifecycle of a staged transaction."""

    PENDING = "pending"
    CODED = "coded"
    SKIPPED = "skipped"
    PUSHED = "pushed"
    PAYRUN_CREATED = "payrun_created"


class StagedTransaction(Base):
    """Statement line waiting to be coded and pushed to Xero."""

    __tablename__ = "staged_transactions"
    __table_args__ = (
        Index("ix_staged_transactions_company_status", "company_id", "status"),
        Index(
            "ix_staged_transactions_dedup",
            "company_id", "bank_account_number", "date", "payee",
        ),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)

    # Statement line fields from CSV
    bank_account = Column(String(255), nullable=False)
    bank_account_number = Column(String(100), nullable=False, default="")
    date = Column(String(10), nullable=False)  # YYYY-MM-DD
    payee = Column(String(255), nullable=False)
    particulars = Column(String(255))
    spent = Column(Numeric(14, 2))
    received = Column(Numeric(14, 2))
    tax = Column(String(50))
    comments = Column(Text)

    # Coding
    status = Column(String(20), nullable=False, default=TransactionStatus.PENDING.value)
    account_code = Column(String(20))
    account_name = Column(String(255))

    # Set once pushed to Xero
    xero_bank_transaction_id = Column(String(36))

    # Timestamps
    imported_at = Column(String(26), default=lambda: datetime.utcnow().isoformat())
    updated_at = Column(String(26), default=lambda: datetime.utcnow().isoformat(), onupdate=lambda: datetime.utcnow().isoformat())

    # Relationships
    company = relationship("Company", back_populates="staged_transactions")

    @property
    def amount(self):
        """Absolute transaction amount, whichever side is populated."""
        return self.spent or self.received or 0

    @property
    def transaction_type(self) -> str:
        return "SPEND" if self.spent else "RECEIVE"
