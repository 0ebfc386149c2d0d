"""Payroll API endpoints."""
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from ledgerlink.api.deps import get_company, get_db, get_xero_client
from ledgerlink.errors import XeroAPIError
from ledgerlink.models.company import Company
from ledgerlink.schemas.payroll import (
    CalendarsResponse,
    EmployeeListResponse,
    PayRunRequest,
    PayRunResponse,
)
from ledgerlink.services.payroll import (
    create_pay_run,
    employee_pay_template,
    estimate_pay_run,
    next_pay_period_end,
    pay_run_employee,
    pay_run_link,
    to_employee,
)
from ledgerlink.services.staging import get_transaction, mark_payrun_created
from ledgerlink.services.xero_client import XeroClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/companies/{company_id}/payroll", tags=["payroll"])


@router.get("/employees", response_model=EmployeeListResponse)
def list_employees(client: XeroClient = Depends(get_xero_client)):
    """Employees with their bank accounts."""
    return EmployeeListResponse(employees=[to_employee(e) for e in client.get_employees()])


@router.get("/calendars", response_model=CalendarsResponse)
def list_calendars(
    employee_id: str | None = Query(None, description="Include this employee's pay template"),
    client: XeroClient = Depends(get_xero_client),
):
    """Payroll calendars, plus an employee's pay template if requested."""
    calendars = client.get_payroll_calendars()

    template = None
    if employee_id:
        employee = client.get_employee(employee_id)
        if employee:
            template = employee_pay_template(employee)

    return CalendarsResponse(payroll_calendars=calendars, employee_pay_template=template)


@router.post("/payruns", response_model=PayRunResponse)
def payrun(
    data: PayRunRequest,
    company: Company = Depends(get_company),
    db: Session = Depends(get_db),
    client: XeroClient = Depends(get_xero_client),
):
    """Estimate a pay run for a wage payment, and create it in Xero if asked."""
    employee = client.get_employee(data.employee_id)
    if not employee:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Employee not found",
        )

    calendar_id = data.payroll_calendar_id or employee.get("PayrollCalendarID")
    period_end = data.pay_period_end_date or next_pay_period_end(client, calendar_id)
    estimate = estimate_pay_run(data.net_pay_amount, data.estimated_earnings, period_end)
    summary = pay_run_employee(employee, calendar_id)

    if not data.create_payrun:
        return PayRunResponse(
            success=True,
            payrun_created=False,
            calculation=estimate,
            employee=summary,
            message='Pay run calculation ready. Click "Create Payrun in Xero" to proceed.',
            xero_deep_link=pay_run_link(),
        )

    if not calendar_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Employee has no payroll calendar; choose one to create a pay run",
        )

    staged = None
    if data.staged_transaction_id:
        staged = get_transaction(db, company.id, data.staged_transaction_id)
        if not staged:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Transaction not found",
            )

    pay_run, payslip_updated = create_pay_run(client, employee, calendar_id, estimate)

    if staged:
        mark_payrun_created(db, staged)

    reconciled = None
    if data.bank_transaction_id:
        try:
            client.mark_reconciled(data.bank_transaction_id)
            reconciled = True
        except XeroAPIError as e:
            logger.warning(f"Could not reconcile bank transaction {data.bank_transaction_id}: {e.detail}")
            reconciled = False

    return PayRunResponse(
        success=True,
        payrun_created=True,
        calculation=estimate,
        employee=summary,
        pay_run=pay_run,
        payslip_updated=payslip_updated,
        reconciled=reconciled,
        message="Pay run created in Xero! Review and post it in Xero to complete.",
        xero_deep_link=pay_run_link(pay_run.pay_run_id),
    )
