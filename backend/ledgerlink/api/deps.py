"""Shared API dependencies."""
import logging
from collections.abc import Generator

import requests
from fastapi import Depends, HTTPException, Path, status
from sqlalchemy.orm import Session

from ledgerlink.database import get_db
from ledgerlink.errors import XeroError
from ledgerlink.models.company import Company
from ledgerlink.schemas.xero import LedgerAccount
from ledgerlink.services.xero_auth import ensure_access_token, get_credential
from ledgerlink.services.xero_client import XeroClient

__all__ = ["get_db", "get_company", "get_http_session", "get_xero_client", "get_coding_accounts"]

logger = logging.getLogger(__name__)


def get_http_session() -> Generator[requests.Session, None, None]:
    """Dependency that provides an outbound HTTP session."""
    session = requests.Session()
    try:
        yield session
    finally:
        session.close()


def get_company(
    company_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
) -> Company:
    """Resolve the company from the path."""
    company = db.query(Company).filter(Company.id == company_id).first()
    if not company:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Company not found",
        )
    return company


def get_xero_client(
    company_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
    http: requests.Session = Depends(get_http_session),
) -> XeroClient:
    """Xero client for the company, refreshing its token first if needed."""
    credential = get_credential(db, company_id)
    access_token = ensure_access_token(db, credential, http)
    return XeroClient(access_token, credential.tenant_id, http)


def get_coding_accounts(
    company_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
    http: requests.Session = Depends(get_http_session),
) -> list[LedgerAccount]:
    """Active Xero accounts, or none when Xero cannot be reached.

    Coding rules keep their own account labels when the list is empty.
    """
    try:
        client = get_xero_client(company_id, db, http)
        return client.get_coding_accounts()
    except XeroError as e:
        logger.warning(f"Coding company {company_id} without Xero accounts: {e.detail}")
        return []
