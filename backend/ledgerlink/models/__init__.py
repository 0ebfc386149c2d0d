"""SQLAlchemy models package."""
from ledgerlink.models.company import Company
from ledgerlink.models.credential import XeroCredential
from ledgerlink.models.staged_transaction import StagedTransaction, TransactionStatus

__all__ = [
    "Company",
    "XeroCredential",
    "StagedTransaction",
    "TransactionStatus",
]
