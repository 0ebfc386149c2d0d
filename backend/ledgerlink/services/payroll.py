"""Pay run estimation and creation for wage payments found in the bank feed."""
import logging
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal

from ledgerlink.errors import XeroAPIError
from ledgerlink.schemas.payroll import (
    CreatedPayRun,
    Employee,
    EmployeeBankAccount,
    PayRunEmployee,
    PayRunEstimate,
)
from ledgerlink.services.xero_client import XeroClient, parse_xero_date

logger = logging.getLogger(__name__)

SUPER_RATE = Decimal("0.115")
ESTIMATED_TAX_RATE = Decimal("0.27")
CENTS = Decimal("0.01")
PAYRUNS_URL = "https://go.xero.com/payroll/payruns"


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def estimate_pay_run(
    net_pay: Decimal,
    estimated_earnings: Decimal | None = None,
    pay_period_end_date: str | None = None,
) -> PayRunEstimate:
    """Gross up a net wage payment using a flat tax rate and add super.

    A caller-supplied ``estimated_earnings`` (from an earlier estimate) is
    used as-is.
    """
    earnings = _money(estimated_earnings or net_pay / (1 - ESTIMATED_TAX_RATE))
    tax = _money(earnings * ESTIMATED_TAX_RATE)
    super_amount = _money(earnings * SUPER_RATE)
    return PayRunEstimate(
        target_net_pay=net_pay,
        estimated_earnings=earnings,
        estimated_tax=tax,
        estimated_super=super_amount,
        total_cost=earnings + super_amount,
        pay_period_end_date=pay_period_end_date,
    )


def next_friday(today: date) -> date:
    days_until_friday = (4 - today.weekday()) % 7 or 7
    return today + timedelta(days=days_until_friday)


def next_pay_period_end(client: XeroClient, calendar_id: str | None, today: date | None = None) -> str:
    """Payment date of the calendar's next period, or next Friday if unknown."""
    today = today or date.today()
    if calendar_id:
        try:
            calendar = client.get_payroll_calendar(calendar_id)
        except XeroAPIError as e:
            logger.warning(f"Could not read payroll calendar {calendar_id}: {e.detail}")
            calendar = None
        payment_date = parse_xero_date((calendar or {}).get("PaymentDate"))
        if payment_date:
            return payment_date[:10]
    return next_friday(today).isoformat()


def to_employee(raw: dict) -> Employee:
    first = raw.get("FirstName") or ""
    last = raw.get("LastName") or ""
    return Employee(
        employee_id=raw["EmployeeID"],
        first_name=raw.get("FirstName"),
        last_name=raw.get("LastName"),
        full_name=f"{first} {last}".strip(),
        email=raw.get("Email"),
        status=raw.get("Status"),
        bank_accounts=[
            EmployeeBankAccount(
                account_name=ba.get("AccountName"),
                bsb=ba.get("BSB"),
                account_number=ba.get("AccountNumber"),
                remainder=ba.get("Remainder"),
                formatted_account=f"{ba.get('BSB') or ''} {ba.get('AccountNumber') or ''}".replace("-", "").strip(),
            )
            for ba in raw.get("BankAccounts", [])
        ],
    )


def employee_pay_template(raw: dict) -> dict:
    return {
        "pay_template": raw.get("PayTemplate"),
        "tax_declaration": raw.get("TaxDeclaration"),
        "super_memberships": raw.get("SuperMemberships"),
        "bank_accounts": raw.get("BankAccounts"),
        "ordinary_earnings_rate_id": raw.get("OrdinaryEarningsRateID"),
    }


def pay_run_employee(raw: dict, calendar_id: str | None) -> PayRunEmployee:
    return PayRunEmployee(
        id=raw["EmployeeID"],
        name=f"{raw.get('FirstName') or ''} {raw.get('LastName') or ''}".strip(),
        payroll_calendar_id=calendar_id,
        earnings_rate_id=raw.get("OrdinaryEarningsRateID"),
    )


def create_pay_run(
    client: XeroClient,
    employee: dict,
    calendar_id: str,
    estimate: PayRunEstimate,
) -> tuple[CreatedPayRun, bool]:
    """Create a DRAFT pay run and set the employee's payslip earnings.

    Returns the pay run and whether the payslip update succeeded; a failed
    payslip update leaves the draft pay run in place for manual editing.
    """
    pay_run = client.create_pay_run(calendar_id)
    if not pay_run:
        raise XeroAPIError("Pay run created but no data returned", status_code=502)

    employee_id = employee["EmployeeID"]
    payslip = next(
        (p for p in pay_run.get("Payslips", []) if p.get("EmployeeID") == employee_id),
        None,
    )

    payslip_updated = False
    if payslip:
        try:
            client.update_payslip_earnings(
                payslip["PayslipID"],
                employee.get("OrdinaryEarningsRateID"),
                float(estimate.estimated_earnings),
            )
            payslip_updated = True
        except XeroAPIError as e:
            logger.error(f"Failed to update payslip earnings for {employee_id}: {e.detail}")
    else:
        logger.warning(f"Pay run {pay_run.get('PayRunID')} has no payslip for employee {employee_id}")

    created = CreatedPayRun(
        pay_run_id=pay_run["PayRunID"],
        pay_run_status=pay_run.get("PayRunStatus"),
        payment_date=parse_xero_date(pay_run.get("PaymentDate")),
        pay_period_start_date=parse_xero_date(pay_run.get("PayPeriodStartDate")),
        pay_period_end_date=parse_xero_date(pay_run.get("PayPeriodEndDate")),
    )
    return created, payslip_updated


def pay_run_link(pay_run_id: str | None = None) -> str:
    return f"{PAYRUNS_URL}/{pay_run_id}" if pay_run_id else PAYRUNS_URL
