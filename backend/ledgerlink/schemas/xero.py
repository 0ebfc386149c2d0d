"""Read-only views of Xero objects."""
from typing import Any

from pydantic import BaseModel


class LedgerAccount(BaseModel):
    """Chart-of-accounts entry usable for coding."""

    account_id: str
    code: str | None
    name: str
    type: str
    status: str | None = None


class BankAccount(BaseModel):
    """Xero bank account."""

    account_id: str
    name: str
    code: str | None = None
    type: str = "BANK"
    bank_account_number: str | None = None
    bank_account_type: str | None = None
    currency_code: str | None = None
    status: str | None = None


class BankTransactionLine(BaseModel):
    description: str | None = None
    quantity: float | None = None
    unit_amount: float | None = None
    line_amount: float | None = None
    account_code: str | None = None
    tax_type: str | None = None


class BankTransactionAccount(BaseModel):
    account_id: str | None = None
    name: str | None = None
    code: str | None = None


class BankTransactionContact(BaseModel):
    contact_id: str | None = None
    name: str | None = None


class BankTransaction(BaseModel):
    """Bank transaction as shown on the reconcile screen."""

    transaction_id: str
    type: str | None = None
    date: str | None = None
    reference: str | None = None
    status: str | None = None
    is_reconciled: bool = False
    bank_account: BankTransactionAccount
    contact: BankTransactionContact | None = None
    line_items: list[BankTransactionLine] = []
    sub_total: float | None = None
    total_tax: float | None = None
    total: float | None = None
    currency_code: str | None = None


class BankTransactionListResponse(BaseModel):
    transactions: list[BankTransaction]
    total_count: int
    unreconciled_count: int
    include_all: bool
    date_filter: str
    note: str | None = None


class Tenant(BaseModel):
    tenant_id: str
    tenant_name: str | None = None
    tenant_type: str | None = None


class ConnectionsResponse(BaseModel):
    success: bool
    tenant: Tenant
    all_connections: list[dict[str, Any]]


class LedgerAccountListResponse(BaseModel):
    accounts: list[LedgerAccount]


class BankAccountListResponse(BaseModel):
    bank_accounts: list[BankAccount]


class ReconcileResponse(BaseModel):
    success: bool
    message: str


class StatementLineInput(BaseModel):
    """Bank statement line to find a match for."""

    date: str
    description: str
    amount: float
    reference: str | None = None


class SuggestionRequest(BaseModel):
    statement_line: StatementLineInput
    existing_transactions: list[BankTransaction]


class MatchSuggestion(BaseModel):
    best_match_index: int | None = None
    confidence: str = "none"
    reason: str = ""
    suggested_account_code: str | None = None
    suggested_contact: str | None = None


class SuggestionResponse(BaseModel):
    suggestion: MatchSuggestion
