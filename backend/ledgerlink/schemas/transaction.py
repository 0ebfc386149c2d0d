"""Staged transaction schemas."""
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field

StatusValue = Literal["pending", "coded", "skipped", "pushed", "payrun_created"]


class StagedTransactionResponse(BaseModel):
    """Staged transaction response."""

    id: str
    company_id: int
    bank_account: str
    bank_account_number: str
    date: str
    payee: str
    particulars: str | None
    spent: Decimal | None
    received: Decimal | None
    tax: str | None
    comments: str | None
    status: str
    account_code: str | None
    account_name: str | None
    xero_bank_transaction_id: str | None
    imported_at: str

    class Config:
        from_attributes = True


class StagedTransactionListResponse(BaseModel):
    transactions: list[StagedTransactionResponse]
    total: int


class ImportResponse(BaseModel):
    """Response after uploading a statement-lines CSV."""

    parsed: int
    saved: int
    skipped: int
    message: str


class TransactionUpdate(BaseModel):
    """Partial update of a staged transaction.

    Only fields present in the request are applied. When account_code is
    given without status, status follows the code: coded if non-empty,
    pending otherwise.
    """

    account_code: str | None = None
    account_name: str | None = None
    status: StatusValue | None = None


class BulkTransactionUpdate(TransactionUpdate):
    ids: list[str] = Field(..., min_length=1)


class BulkUpdateResponse(BaseModel):
    updated: int


class DeleteResponse(BaseModel):
    deleted: int


class PushRequest(BaseModel):
    """Transactions to push; all coded transactions when ids is omitted."""

    ids: list[str] | None = None


class ItemOutcomeResponse(BaseModel):
    id: str
    ok: bool
    detail: str | None = None
    external_id: str | None = None


class BatchResultResponse(BaseModel):
    """Outcome of a bulk operation that continues past failures."""

    succeeded: int
    failed: int
    outcomes: list[ItemOutcomeResponse]


class CodingResponse(BatchResultResponse):
    coded: int
    skipped: int
    left_pending: int
