"""Staged statement lines: import, coding and push to Xero."""
import logging
from collections.abc import Sequence

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ledgerlink.errors import XeroAPIError, unmatched_bank_account
from ledgerlink.models.staged_transaction import StagedTransaction, TransactionStatus
from ledgerlink.schemas.transaction import TransactionUpdate
from ledgerlink.schemas.xero import BankAccount, LedgerAccount
from ledgerlink.services.bank_matcher import match_bank_account
from ledgerlink.services.batch import BatchResult
from ledgerlink.services.coding_rules import CodingRule, suggest_coding
from ledgerlink.services.statement_parser import parse_statement_lines
from ledgerlink.services.xero_client import XeroClient

logger = logging.getLogger(__name__)

WAGE_KEYWORD = "wage"


def import_statement(db: Session, company_id: int, csv_content: str) -> dict:
    """Parse a statement-lines export and stage new rows as pending.

    Rows already staged for the company (same account number, date, payee,
    spent and received) are skipped, as are repeats within the file and rows
    with neither amount.

    Returns dict with counts: parsed, saved, skipped.
    """
    lines = parse_statement_lines(csv_content)

    saved = 0
    skipped = 0
    seen_in_file: set[tuple] = set()

    for line in lines:
        if line.spent is None and line.received is None:
            skipped += 1
            continue

        if line.dedup_key in seen_in_file:
            skipped += 1
            continue
        seen_in_file.add(line.dedup_key)

        existing = db.query(StagedTransaction).filter(
            StagedTransaction.company_id == company_id,
            StagedTransaction.bank_account_number == line.bank_account_number,
            StagedTransaction.date == line.date,
            StagedTransaction.payee == line.payee,
            StagedTransaction.spent == line.spent,
            StagedTransaction.received == line.received,
        ).first()
        if existing:
            skipped += 1
            continue

        db.add(StagedTransaction(
            company_id=company_id,
            bank_account=line.bank_account,
            bank_account_number=line.bank_account_number,
            date=line.date,
            payee=line.payee,
            particulars=line.particulars or "",
            spent=line.spent,
            received=line.received,
            tax=line.tax,
            comments=line.comments,
            status=TransactionStatus.PENDING.value,
        ))
        saved += 1

    db.commit()
    logger.info(f"Company {company_id}: parsed {len(lines)} statement lines, saved {saved}, skipped {skipped}")

    return {"parsed": len(lines), "saved": saved, "skipped": skipped}


def get_company_transactions(
    db: Session,
    company_id: int,
    status: str | None = None,
    wage_only: bool = False,
) -> list[StagedTransaction]:
    """Staged transactions for a company, newest first.

    ``wage_only`` keeps spends whose payee or particulars mention wages.
    """
    query = db.query(StagedTransaction).filter(StagedTransaction.company_id == company_id)

    if status:
        query = query.filter(StagedTransaction.status == status)

    if wage_only:
        pattern = f"%{WAGE_KEYWORD}%"
        query = query.filter(
            or_(
                StagedTransaction.payee.ilike(pattern),
                StagedTransaction.particulars.ilike(pattern),
            ),
            StagedTransaction.spent.isnot(None),
            StagedTransaction.spent > 0,
        )

    return query.order_by(StagedTransaction.date.desc(), StagedTransaction.imported_at.desc()).all()


def get_transaction(db: Session, company_id: int, transaction_id: str) -> StagedTransaction | None:
    return db.query(StagedTransaction).filter(
        StagedTransaction.id == transaction_id,
        StagedTransaction.company_id == company_id,
    ).first()


def update_values(update: TransactionUpdate) -> dict:
    """Resolve a partial update to the column values to write."""
    fields = update.model_fields_set & {"account_code", "account_name", "status"}
    values = {name: getattr(update, name) for name in fields}

    if "account_code" in values and "status" not in values:
        values["status"] = (
            TransactionStatus.CODED.value if values["account_code"] else TransactionStatus.PENDING.value
        )
    if values.get("status") is None and "status" in values:
        del values["status"]
    return values


def update_transaction(db: Session, transaction: StagedTransaction, update: TransactionUpdate) -> StagedTransaction:
    for name, value in update_values(update).items():
        setattr(transaction, name, value)
    db.commit()
    db.refresh(transaction)
    return transaction


def bulk_update_transactions(db: Session, company_id: int, ids: Sequence[str], update: TransactionUpdate) -> int:
    """Apply the same partial update to several transactions; returns rows updated."""
    values = update_values(update)
    if not values:
        return 0

    updated = db.query(StagedTransaction).filter(
        StagedTransaction.company_id == company_id,
        StagedTransaction.id.in_(list(ids)),
    ).update(values, synchronize_session=False)
    db.commit()
    return updated


def delete_transaction(db: Session, transaction: StagedTransaction) -> None:
    db.delete(transaction)
    db.commit()


def clear_transactions(db: Session, company_id: int) -> int:
    deleted = db.query(StagedTransaction).filter(
        StagedTransaction.company_id == company_id,
    ).delete(synchronize_session=False)
    db.commit()
    logger.info(f"Company {company_id}: cleared {deleted} staged transactions")
    return deleted


def apply_coding(
    db: Session,
    company_id: int,
    accounts: Sequence[LedgerAccount],
    rules: Sequence[CodingRule] | None = None,
) -> tuple[BatchResult, int]:
    """Run the coding rules over every pending transaction of the company.

    Returns the batch result (one outcome per coded or skipped transaction)
    and the number of transactions left pending.
    """
    pending = get_company_transactions(db, company_id, status=TransactionStatus.PENDING.value)

    result = BatchResult()
    left_pending = 0

    for txn in pending:
        suggestion = suggest_coding(txn.payee, txn.particulars, accounts, rules)
        if suggestion is None:
            left_pending += 1
            continue

        txn.account_code = suggestion.account_code
        txn.account_name = suggestion.account_name
        txn.status = suggestion.status
        db.commit()
        result.record_success(txn.id, detail=suggestion.status)

    logger.info(
        f"Company {company_id}: coded {len(result.outcomes)} transactions, {left_pending} left pending"
    )
    return result, left_pending


def build_bank_transaction(txn: StagedTransaction, bank_account_id: str) -> dict:
    """Xero BankTransaction payload for a coded statement line."""
    particulars = txn.particulars or ""
    payload = {
        "Type": txn.transaction_type,
        "BankAccount": {"AccountID": bank_account_id},
        "Date": txn.date,
        "LineItems": [{
            "Description": f"{txn.payee} - {particulars}",
            "Quantity": 1,
            "UnitAmount": float(abs(txn.amount)),
            "AccountCode": txn.account_code,
        }],
        "Reference": particulars,
    }
    if txn.payee:
        payload["Contact"] = {"Name": txn.payee}
    return payload


def push_to_xero(
    db: Session,
    company_id: int,
    client: XeroClient,
    ids: Sequence[str] | None = None,
    bank_accounts: Sequence[BankAccount] | None = None,
) -> BatchResult:
    """Create coded transactions in Xero one at a time.

    Each transaction succeeds or fails on its own; successes are marked
    pushed immediately so a later failure does not undo them.
    """
    if bank_accounts is None:
        bank_accounts = client.get_bank_accounts()

    query = db.query(StagedTransaction).filter(StagedTransaction.company_id == company_id)
    if ids is not None:
        query = query.filter(StagedTransaction.id.in_(list(ids)))
    else:
        query = query.filter(StagedTransaction.status == TransactionStatus.CODED.value)
    transactions = query.order_by(StagedTransaction.date).all()

    result = BatchResult()
    if ids is not None:
        found = {t.id for t in transactions}
        for missing_id in ids:
            if missing_id not in found:
                result.record_failure(missing_id, "Transaction not found")

    for txn in transactions:
        if txn.status != TransactionStatus.CODED.value or not txn.account_code:
            result.record_failure(txn.id, f"Transaction is {txn.status}, not coded")
            continue

        bank_account_id = match_bank_account(txn.bank_account_number, bank_accounts)
        if not bank_account_id:
            result.record_failure(txn.id, unmatched_bank_account(txn.bank_account, txn.bank_account_number))
            continue

        try:
            xero_id = client.create_bank_transaction(build_bank_transaction(txn, bank_account_id))
        except XeroAPIError as e:
            result.record_failure(txn.id, e.detail)
            continue

        txn.status = TransactionStatus.PUSHED.value
        txn.xero_bank_transaction_id = xero_id
        db.commit()
        result.record_success(txn.id, external_id=xero_id)

    logger.info(
        f"Company {company_id}: pushed {len(result.succeeded)} transactions to Xero, "
        f"{len(result.failed)} failed"
    )
    return result


def mark_payrun_created(db: Session, transaction: StagedTransaction) -> StagedTransaction:
    transaction.status = TransactionStatus.PAYRUN_CREATED.value
    db.commit()
    db.refresh(transaction)
    return transaction
