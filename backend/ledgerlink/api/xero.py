"""Xero connection and ledger API endpoints."""
import logging
from datetime import date

import requests
from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from ledgerlink.api.credentials import get_credential_or_404
from ledgerlink.api.deps import get_db, get_http_session, get_xero_client
from ledgerlink.config import get_settings
from ledgerlink.errors import LLMError, LLMNotConfigured, XeroError
from ledgerlink.schemas.credential import AuthorizeResponse, MessageResponse
from ledgerlink.schemas.xero import (
    BankAccountListResponse,
    BankTransactionListResponse,
    ConnectionsResponse,
    LedgerAccountListResponse,
    ReconcileResponse,
    SuggestionRequest,
    SuggestionResponse,
    Tenant,
)
from ledgerlink.services.llm_client import ReconciliationAdvisor
from ledgerlink.services.xero_auth import (
    build_authorize_url,
    decode_state_token,
    disconnect,
    ensure_access_token,
    exchange_code,
    get_credential,
    sync_tenant,
)
from ledgerlink.services.xero_client import XeroClient, six_months_before

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter(prefix="/companies/{company_id}/xero", tags=["xero"])
callback_router = APIRouter(prefix="/xero", tags=["xero"])

NO_UNRECONCILED_NOTE = (
    "No unreconciled coded bank transactions found. Bank feed statement lines "
    "awaiting reconciliation in Xero are not available through the API."
)
NO_RECENT_NOTE = "No coded bank transactions found in the last 6 months."


@router.get("/authorize", response_model=AuthorizeResponse)
def authorize(
    company_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
):
    """Get the Xero consent URL for the company."""
    credential = get_credential_or_404(db, company_id)
    try:
        url = build_authorize_url(credential)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        )
    return AuthorizeResponse(authorization_url=url)


@router.get("/connections", response_model=ConnectionsResponse)
def connections(
    company_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
    http: requests.Session = Depends(get_http_session),
):
    """Refresh tenant details from Xero and store the first organisation."""
    credential = get_credential(db, company_id)
    ensure_access_token(db, credential, http)
    all_connections = sync_tenant(db, credential, http)
    return ConnectionsResponse(
        success=True,
        tenant=Tenant(
            tenant_id=credential.tenant_id,
            tenant_name=credential.tenant_name,
            tenant_type=credential.tenant_type,
        ),
        all_connections=all_connections,
    )


@router.post("/disconnect", response_model=MessageResponse)
def disconnect_xero(
    company_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
):
    """Forget the token set and tenant for the company."""
    credential = get_credential_or_404(db, company_id)
    disconnect(db, credential)
    return MessageResponse(message="Disconnected from Xero")


@router.get("/accounts", response_model=LedgerAccountListResponse)
def list_accounts(client: XeroClient = Depends(get_xero_client)):
    """Active accounts that statement lines can be coded to."""
    return LedgerAccountListResponse(accounts=client.get_coding_accounts())


@router.get("/bank-accounts", response_model=BankAccountListResponse)
def list_bank_accounts(client: XeroClient = Depends(get_xero_client)):
    return BankAccountListResponse(bank_accounts=client.get_bank_accounts())


@router.get("/bank-transactions", response_model=BankTransactionListResponse)
def list_bank_transactions(
    account_id: str | None = Query(None),
    recent: bool = Query(False),
    include_all: bool = Query(False),
    client: XeroClient = Depends(get_xero_client),
):
    """Authorised bank transactions, unreconciled unless include_all is set."""
    transactions, cutoff = client.get_bank_transactions(
        account_id=account_id,
        recent=recent,
        include_all=include_all,
    )

    note = None
    if not transactions:
        note = NO_RECENT_NOTE if include_all else NO_UNRECONCILED_NOTE

    return BankTransactionListResponse(
        transactions=transactions,
        total_count=len(transactions),
        unreconciled_count=sum(1 for tx in transactions if not tx.is_reconciled),
        include_all=include_all,
        date_filter=cutoff.isoformat(),
        note=note,
    )


@router.get("/reports/bank-summary")
def bank_summary(client: XeroClient = Depends(get_xero_client)):
    """Xero Bank Summary report for the last six months."""
    today = date.today()
    return client.get_bank_summary(six_months_before(today), today)


@router.post("/bank-transactions/{transaction_id}/reconcile", response_model=ReconcileResponse)
def reconcile_transaction(
    transaction_id: str,
    client: XeroClient = Depends(get_xero_client),
):
    client.mark_reconciled(transaction_id)
    return ReconcileResponse(success=True, message="Transaction reconciled")


@router.post("/reconcile/suggest", response_model=SuggestionResponse)
def suggest_reconciliation(
    data: SuggestionRequest,
    http: requests.Session = Depends(get_http_session),
):
    """Ask the LLM which candidate transaction matches a statement line."""
    try:
        advisor = ReconciliationAdvisor(http)
        suggestion = advisor.suggest_match(data.statement_line, data.existing_transactions)
    except LLMNotConfigured as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e),
        )
    except LLMError as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=str(e),
        )
    return SuggestionResponse(suggestion=suggestion)


def _frontend_redirect(query: str) -> RedirectResponse:
    return RedirectResponse(
        url=f"{settings.frontend_url.rstrip('/')}/xero?{query}",
        status_code=status.HTTP_302_FOUND,
    )


@callback_router.get("/callback")
def oauth_callback(
    code: str | None = Query(None),
    state: str | None = Query(None),
    db: Session = Depends(get_db),
    http: requests.Session = Depends(get_http_session),
):
    """Complete the OAuth flow and send the browser back to the frontend."""
    if not code or not state:
        return _frontend_redirect("error=missing_params")

    try:
        company_id = decode_state_token(state)
    except ValueError as e:
        logger.warning(f"Rejected OAuth callback: {e}")
        return _frontend_redirect("error=invalid_state")

    credential = get_credential(db, company_id)
    if not credential:
        return _frontend_redirect("error=no_credentials")

    try:
        exchange_code(db, credential, code, http)
    except XeroError as e:
        logger.error(f"OAuth callback failed for company {company_id}: {e.detail}")
        return _frontend_redirect("error=callback_failed")

    return _frontend_redirect("success=connected")
