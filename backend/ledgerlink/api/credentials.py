"""Xero credential API endpoints."""
from fastapi import APIRouter, Depends, HTTPException, Path, status
from sqlalchemy.orm import Session

from ledgerlink.api.deps import get_db
from ledgerlink.models.credential import XeroCredential
from ledgerlink.schemas.credential import CredentialCreate, CredentialResponse, CredentialUpdate
from ledgerlink.services.xero_auth import create_credential, get_credential, update_credential

router = APIRouter(prefix="/companies/{company_id}/credentials", tags=["credentials"])


def to_response(credential: XeroCredential) -> CredentialResponse:
    return CredentialResponse(
        id=credential.id,
        company_id=credential.company_id,
        client_id=credential.client_id,
        has_client_secret=bool(credential.client_secret),
        scope=credential.scope,
        connected=credential.is_connected,
        tenant_id=credential.tenant_id,
        tenant_name=credential.tenant_name,
        tenant_type=credential.tenant_type,
        expires_at=credential.expires_at,
    )


def get_credential_or_404(db: Session, company_id: int) -> XeroCredential:
    credential = get_credential(db, company_id)
    if not credential:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Credentials not found",
        )
    return credential


@router.post("", response_model=CredentialResponse, status_code=status.HTTP_201_CREATED)
def save_credentials(
    data: CredentialCreate,
    company_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
):
    """Store the Xero app client id and secret for a company."""
    if get_credential(db, company_id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Credentials already exist for this company",
        )

    credential = create_credential(db, company_id, data)
    return to_response(credential)


@router.get("", response_model=CredentialResponse)
def read_credentials(
    company_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
):
    """Get connection status for a company."""
    return to_response(get_credential_or_404(db, company_id))


@router.patch("", response_model=CredentialResponse)
def patch_credentials(
    data: CredentialUpdate,
    company_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
):
    """Update only the credential fields present in the request."""
    credential = get_credential_or_404(db, company_id)
    try:
        credential = update_credential(db, credential, data)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        )
    return to_response(credential)
