"""Thin client over the Xero accounting and payroll REST APIs."""
import logging
import re
from datetime import date, datetime, timezone
from typing import Any

import requests
from dateutil.relativedelta import relativedelta

from ledgerlink.config import get_settings
from ledgerlink.errors import XeroAPIError
from ledgerlink.schemas.xero import (
    BankAccount,
    BankTransaction,
    BankTransactionAccount,
    BankTransactionContact,
    BankTransactionLine,
    LedgerAccount,
)

logger = logging.getLogger(__name__)
settings = get_settings()

CODING_ACCOUNT_TYPES = ("EXPENSE", "REVENUE", "DIRECTCOSTS", "OVERHEADS", "OTHERINCOME")
XERO_DATE_RE = re.compile(r"/Date\((-?\d+)([+-]\d+)?\)/")


def parse_xero_date(raw: str | None) -> str | None:
    """Convert Xero's ``/Date(1719792000000+0000)/`` format to an ISO timestamp.

    Values that are not in that format are returned unchanged.
    """
    if not raw:
        return None
    match = XERO_DATE_RE.search(raw)
    if not match:
        return raw
    moment = datetime.fromtimestamp(int(match.group(1)) / 1000, tz=timezone.utc)
    return moment.isoformat().replace("+00:00", "Z")


def six_months_before(today: date) -> date:
    return today - relativedelta(months=6)


class XeroClient:
    """Authenticated calls for one tenant."""

    def __init__(self, access_token: str, tenant_id: str, session: requests.Session):
        self.access_token = access_token
        self.tenant_id = tenant_id
        self.session = session

    def _request(
        self,
        method: str,
        url: str,
        params: dict | None = None,
        json: Any = None,
    ) -> dict:
        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "Xero-Tenant-Id": self.tenant_id,
            "Accept": "application/json",
        }
        if json is not None:
            headers["Content-Type"] = "application/json"

        try:
            response = self.session.request(
                method,
                url,
                params=params,
                json=json,
                headers=headers,
                timeout=settings.http_timeout_seconds,
            )
        except requests.RequestException as e:
            logger.error(f"Xero request {method} {url} failed: {e}")
            raise XeroAPIError(f"Could not reach Xero: {e}") from e

        data = _json_or_empty(response)
        if not response.ok or data.get("ErrorNumber"):
            message = _error_message(data) or response.text[:500] or "Unknown error"
            logger.error(f"Xero API error {response.status_code} for {method} {url}: {message}")
            status = response.status_code if not response.ok else 400
            raise XeroAPIError(message, status_code=status)
        return data

    # Accounting

    def get_coding_accounts(self) -> list[LedgerAccount]:
        """Active expense/revenue accounts that statement lines can be coded to."""
        data = self._request("GET", f"{settings.xero_api_url}/Accounts")
        return [
            LedgerAccount(
                account_id=acc["AccountID"],
                code=acc.get("Code"),
                name=acc.get("Name", ""),
                type=acc.get("Type", ""),
                status=acc.get("Status"),
            )
            for acc in data.get("Accounts", [])
            if acc.get("Type") in CODING_ACCOUNT_TYPES and acc.get("Status") == "ACTIVE"
        ]

    def get_bank_accounts(self) -> list[BankAccount]:
        data = self._request(
            "GET",
            f"{settings.xero_api_url}/Accounts",
            params={"where": 'Type=="BANK"'},
        )
        return [
            BankAccount(
                account_id=acc["AccountID"],
                name=acc.get("Name", ""),
                code=acc.get("Code"),
                type=acc.get("Type", "BANK"),
                bank_account_number=acc.get("BankAccountNumber"),
                bank_account_type=acc.get("BankAccountType"),
                currency_code=acc.get("CurrencyCode"),
                status=acc.get("Status"),
            )
            for acc in data.get("Accounts", [])
        ]

    def get_bank_transactions(
        self,
        account_id: str | None = None,
        recent: bool = False,
        include_all: bool = False,
        today: date | None = None,
    ) -> tuple[list[BankTransaction], date]:
        """AUTHORISED bank transactions, unreconciled unless include_all.

        Returns the transactions and the six-month cutoff date.
        """
        cutoff = six_months_before(today or date.today())

        where = 'Status=="AUTHORISED"' if include_all else 'Status=="AUTHORISED" AND IsReconciled==false'
        if recent or include_all:
            where += f" AND Date>=DateTime({cutoff.year},{cutoff.month},{cutoff.day})"
        if account_id:
            where += f' AND BankAccount.AccountID=Guid("{account_id}")'

        data = self._request(
            "GET",
            f"{settings.xero_api_url}/BankTransactions",
            params={"where": where, "order": "Date DESC"},
        )
        return [_to_bank_transaction(tx) for tx in data.get("BankTransactions", [])], cutoff

    def create_bank_transaction(self, payload: dict) -> str | None:
        """Create one bank transaction; returns its BankTransactionID."""
        data = self._request(
            "PUT",
            f"{settings.xero_api_url}/BankTransactions",
            json={"BankTransactions": [payload]},
        )
        created = data.get("BankTransactions") or [{}]
        return created[0].get("BankTransactionID")

    def mark_reconciled(self, transaction_id: str) -> None:
        self._request(
            "POST",
            f"{settings.xero_api_url}/BankTransactions/{transaction_id}",
            json={"BankTransactions": [{"BankTransactionID": transaction_id, "IsReconciled": True}]},
        )

    def get_bank_summary(self, from_date: date, to_date: date) -> dict:
        return self._request(
            "GET",
            f"{settings.xero_api_url}/Reports/BankSummary",
            params={"fromDate": from_date.isoformat(), "toDate": to_date.isoformat()},
        )

    # Payroll (AU)

    def get_employees(self) -> list[dict]:
        data = self._request("GET", f"{settings.xero_payroll_url}/Employees")
        return data.get("Employees", [])

    def get_employee(self, employee_id: str) -> dict | None:
        data = self._request("GET", f"{settings.xero_payroll_url}/Employees/{employee_id}")
        employees = data.get("Employees") or []
        return employees[0] if employees else None

    def get_payroll_calendars(self) -> list[dict]:
        data = self._request("GET", f"{settings.xero_payroll_url}/PayrollCalendars")
        return data.get("PayrollCalendars", [])

    def get_payroll_calendar(self, calendar_id: str) -> dict | None:
        data = self._request("GET", f"{settings.xero_payroll_url}/PayrollCalendars/{calendar_id}")
        calendars = data.get("PayrollCalendars") or []
        return calendars[0] if calendars else None

    def create_pay_run(self, payroll_calendar_id: str) -> dict | None:
        """Create a DRAFT pay run on a calendar."""
        data = self._request(
            "POST",
            f"{settings.xero_payroll_url}/PayRuns",
            json=[{"PayrollCalendarID": payroll_calendar_id, "PayRunStatus": "DRAFT"}],
        )
        pay_runs = data.get("PayRuns") or []
        return pay_runs[0] if pay_runs else None

    def update_payslip_earnings(self, payslip_id: str, earnings_rate_id: str | None, amount: float) -> None:
        self._request(
            "POST",
            f"{settings.xero_payroll_url}/Payslip/{payslip_id}",
            json={
                "PayslipID": payslip_id,
                "EarningsLines": [{
                    "EarningsRateID": earnings_rate_id,
                    "NumberOfUnits": 1,
                    "RatePerUnit": amount,
                }],
            },
        )


def _json_or_empty(response: requests.Response) -> dict:
    if not response.content:
        return {}
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {"items": data}


def _error_message(data: dict) -> str | None:
    if data.get("Message") and not data.get("Elements"):
        return data["Message"]
    for element in data.get("Elements", []):
        for error in element.get("ValidationErrors", []):
            if error.get("Message"):
                return error["Message"]
    return data.get("Message") or data.get("Detail")


def _to_bank_transaction(tx: dict) -> BankTransaction:
    contact = tx.get("Contact")
    bank_account = tx.get("BankAccount") or {}
    return BankTransaction(
        transaction_id=tx["BankTransactionID"],
        type=tx.get("Type"),
        date=parse_xero_date(tx.get("Date")),
        reference=tx.get("Reference"),
        status=tx.get("Status"),
        is_reconciled=bool(tx.get("IsReconciled")),
        bank_account=BankTransactionAccount(
            account_id=bank_account.get("AccountID"),
            name=bank_account.get("Name"),
            code=bank_account.get("Code"),
        ),
        contact=BankTransactionContact(
            contact_id=contact.get("ContactID"),
            name=contact.get("Name"),
        ) if contact else None,
        line_items=[
            BankTransactionLine(
                description=item.get("Description"),
                quantity=item.get("Quantity"),
                unit_amount=item.get("UnitAmount"),
                line_amount=item.get("LineAmount"),
                account_code=item.get("AccountCode"),
                tax_type=item.get("TaxType"),
            )
            for item in tx.get("LineItems", [])
        ],
        sub_total=tx.get("SubTotal"),
        total_tax=tx.get("TotalTax"),
        total=tx.get("Total"),
        currency_code=tx.get("CurrencyCode"),
    )
