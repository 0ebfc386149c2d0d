"""Staged transaction API endpoints."""
from fastapi import APIRouter, Depends, File, HTTPException, Query, Response, UploadFile, status
from sqlalchemy.orm import Session

from ledgerlink.api.deps import get_coding_accounts, get_company, get_db, get_xero_client
from ledgerlink.models.company import Company
from ledgerlink.models.staged_transaction import StagedTransaction, TransactionStatus
from ledgerlink.schemas.transaction import (
    BatchResultResponse,
    BulkTransactionUpdate,
    BulkUpdateResponse,
    CodingResponse,
    DeleteResponse,
    ImportResponse,
    ItemOutcomeResponse,
    PushRequest,
    StagedTransactionListResponse,
    StagedTransactionResponse,
    StatusValue,
    TransactionUpdate,
)
from ledgerlink.schemas.xero import LedgerAccount
from ledgerlink.services.batch import BatchResult
from ledgerlink.services.staging import (
    apply_coding,
    bulk_update_transactions,
    clear_transactions,
    delete_transaction,
    get_company_transactions,
    get_transaction,
    import_statement,
    push_to_xero,
    update_transaction,
)
from ledgerlink.services.xero_client import XeroClient

router = APIRouter(prefix="/companies/{company_id}/transactions", tags=["transactions"])


def get_transaction_or_404(db: Session, company_id: int, transaction_id: str) -> StagedTransaction:
    transaction = get_transaction(db, company_id, transaction_id)
    if not transaction:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Transaction not found",
        )
    return transaction


def outcome_responses(result: BatchResult) -> list[ItemOutcomeResponse]:
    return [
        ItemOutcomeResponse(
            id=o.item_id,
            ok=o.ok,
            detail=o.detail,
            external_id=o.external_id,
        )
        for o in result.outcomes
    ]


@router.post("/import", response_model=ImportResponse)
async def import_transactions(
    file: UploadFile = File(...),
    company: Company = Depends(get_company),
    db: Session = Depends(get_db),
):
    """Upload a Xero statement-lines CSV export."""
    content = await file.read()
    try:
        csv_content = content.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="File must be UTF-8 encoded CSV",
        )

    result = import_statement(db, company.id, csv_content)

    return ImportResponse(
        **result,
        message=f"Imported {result['saved']} new transactions ({result['skipped']} skipped)",
    )


@router.get("", response_model=StagedTransactionListResponse)
def list_transactions(
    status_filter: StatusValue | None = Query(None, alias="status", description="Filter by status"),
    view: str | None = Query(None, alias="filter", description="'wage' to show wage payments only"),
    company: Company = Depends(get_company),
    db: Session = Depends(get_db),
):
    """List staged transactions, newest first."""
    transactions = get_company_transactions(
        db,
        company.id,
        status=status_filter,
        wage_only=view == "wage",
    )
    return StagedTransactionListResponse(
        transactions=[StagedTransactionResponse.model_validate(t) for t in transactions],
        total=len(transactions),
    )


@router.patch("", response_model=BulkUpdateResponse)
def bulk_update(
    data: BulkTransactionUpdate,
    company: Company = Depends(get_company),
    db: Session = Depends(get_db),
):
    """Apply the same change to several transactions."""
    update = TransactionUpdate(**data.model_dump(include=data.model_fields_set - {"ids"}))
    updated = bulk_update_transactions(db, company.id, data.ids, update)
    return BulkUpdateResponse(updated=updated)


@router.patch("/{transaction_id}", response_model=StagedTransactionResponse)
def update_one(
    transaction_id: str,
    data: TransactionUpdate,
    company: Company = Depends(get_company),
    db: Session = Depends(get_db),
):
    """Manually code, skip or reset a transaction."""
    transaction = get_transaction_or_404(db, company.id, transaction_id)
    transaction = update_transaction(db, transaction, data)
    return StagedTransactionResponse.model_validate(transaction)


@router.delete("", response_model=DeleteResponse)
def clear_all(
    company: Company = Depends(get_company),
    db: Session = Depends(get_db),
):
    """Delete every staged transaction for the company."""
    return DeleteResponse(deleted=clear_transactions(db, company.id))


@router.delete("/{transaction_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_one(
    transaction_id: str,
    company: Company = Depends(get_company),
    db: Session = Depends(get_db),
):
    transaction = get_transaction_or_404(db, company.id, transaction_id)
    delete_transaction(db, transaction)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/coding", response_model=CodingResponse)
def code_transactions(
    company: Company = Depends(get_company),
    db: Session = Depends(get_db),
    accounts: list[LedgerAccount] = Depends(get_coding_accounts),
):
    """Apply the coding rules to every pending transaction."""
    result, left_pending = apply_coding(db, company.id, accounts)

    return CodingResponse(
        succeeded=len(result.succeeded),
        failed=len(result.failed),
        outcomes=outcome_responses(result),
        coded=sum(1 for o in result.outcomes if o.detail == TransactionStatus.CODED.value),
        skipped=sum(1 for o in result.outcomes if o.detail == TransactionStatus.SKIPPED.value),
        left_pending=left_pending,
    )


@router.post("/push", response_model=BatchResultResponse)
def push_transactions(
    data: PushRequest,
    company: Company = Depends(get_company),
    db: Session = Depends(get_db),
    client: XeroClient = Depends(get_xero_client),
):
    """Create coded transactions in Xero; each item succeeds or fails on its own."""
    result = push_to_xero(db, company.id, client, ids=data.ids)
    return BatchResultResponse(
        succeeded=len(result.succeeded),
        failed=len(result.failed),
        outcomes=outcome_responses(result),
    )
