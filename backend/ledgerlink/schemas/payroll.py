"""Payroll schemas."""
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field


class EmployeeBankAccount(BaseModel):
    account_name: str | None = None
    bsb: str | None = None
    account_number: str | None = None
    remainder: bool | None = None
    formatted_account: str


class Employee(BaseModel):
    employee_id: str
    first_name: str | None = None
    last_name: str | None = None
    full_name: str
    email: str | None = None
    status: str | None = None
    bank_accounts: list[EmployeeBankAccount] = []


class EmployeeListResponse(BaseModel):
    employees: list[Employee]


class CalendarsResponse(BaseModel):
    payroll_calendars: list[dict[str, Any]]
    employee_pay_template: dict[str, Any] | None = None


class PayRunRequest(BaseModel):
    """Estimate a pay run for a wage payment and optionally create it."""

    employee_id: str
    net_pay_amount: Decimal = Field(..., gt=0)
    payroll_calendar_id: str | None = None
    pay_period_end_date: str | None = None
    create_payrun: bool = False
    estimated_earnings: Decimal | None = Field(None, gt=0)
    staged_transaction_id: str | None = None
    bank_transaction_id: str | None = None


class PayRunEstimate(BaseModel):
    target_net_pay: Decimal
    estimated_earnings: Decimal
    estimated_tax: Decimal
    estimated_super: Decimal
    total_cost: Decimal
    pay_period_end_date: str | None = None


class PayRunEmployee(BaseModel):
    id: str
    name: str
    payroll_calendar_id: str | None
    earnings_rate_id: str | None


class CreatedPayRun(BaseModel):
    pay_run_id: str
    pay_run_status: str | None = None
    payment_date: str | None = None
    pay_period_start_date: str | None = None
    pay_period_end_date: str | None = None


class PayRunResponse(BaseModel):
    success: bool
    payrun_created: bool
    calculation: PayRunEstimate
    employee: PayRunEmployee
    pay_run: CreatedPayRun | None = None
    payslip_updated: bool | None = None
    reconciled: bool | None = None
    message: str
    xero_deep_link: str
