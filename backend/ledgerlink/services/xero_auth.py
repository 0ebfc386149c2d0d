"""Xero OAuth credentials, authorization and token refresh."""
import logging
from datetime import datetime, timedelta, timezone
from urllib.parse import urlencode

import requests
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from ledgerlink.config import get_settings
from ledgerlink.errors import (
    XeroAPIError,
    XeroNotConnected,
    XeroReconnectRequired,
    not_connected,
    reconnect_required,
)
from ledgerlink.models.company import Company
from ledgerlink.models.credential import XeroCredential
from ledgerlink.schemas.credential import CredentialCreate, CredentialUpdate

logger = logging.getLogger(__name__)
settings = get_settings()

STATE_TOKEN_TYPE = "oauth_state"


def get_credential(db: Session, company_id: int) -> XeroCredential | None:
    """Get the stored credential for a company."""
    return db.query(XeroCredential).filter(XeroCredential.company_id == company_id).first()


def create_credential(db: Session, company_id: int, data: CredentialCreate) -> XeroCredential:
    """Store app credentials, creating the company on first use."""
    company = db.query(Company).filter(Company.id == company_id).first()
    if not company:
        company = Company(
            id=company_id,
            name=data.company_name or f"Company {company_id}",
        )
        db.add(company)
        db.flush()

    credential = XeroCredential(
        company_id=company_id,
        client_id=data.client_id.strip(),
        client_secret=data.client_secret.strip(),
        scope=data.scope or settings.xero_default_scope,
    )
    db.add(credential)
    db.commit()
    db.refresh(credential)
    logger.info(f"Stored Xero credentials for company {company_id}")
    return credential


def update_credential(db: Session, credential: XeroCredential, update: CredentialUpdate) -> XeroCredential:
    """Apply the fields that were explicitly sent."""
    for field_name in update.model_fields_set:
        value = getattr(update, field_name)
        if field_name == "expires_at" and value is not None:
            value = _normalize_timestamp(value)
        if field_name == "scope" and value is None:
            value = settings.xero_default_scope
        setattr(credential, field_name, value)

    db.commit()
    db.refresh(credential)
    return credential


def disconnect(db: Session, credential: XeroCredential) -> XeroCredential:
    """Clear the token set and tenant; keep client id and secret."""
    credential.access_token = None
    credential.refresh_token = None
    credential.expires_at = None
    credential.tenant_id = None
    credential.tenant_name = None
    credential.tenant_type = None
    db.commit()
    db.refresh(credential)
    logger.info(f"Disconnected company {credential.company_id} from Xero")
    return credential


def create_state_token(company_id: int) -> str:
    """Sign the company id into a short-lived OAuth state value."""
    expire = datetime.utcnow() + timedelta(minutes=settings.oauth_state_expire_minutes)
    payload = {"sub": str(company_id), "type": STATE_TOKEN_TYPE, "exp": expire}
    return jwt.encode(payload, settings.secret_key, algorithm=settings.algorithm)


def decode_state_token(state: str) -> int:
    """Return the company id from a state value.

    Raises:
        ValueError: If the state is expired, tampered with or malformed
    """
    try:
        payload = jwt.decode(state, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError as e:
        raise ValueError(f"Invalid OAuth state: {e}") from e

    if payload.get("type") != STATE_TOKEN_TYPE:
        raise ValueError("Invalid OAuth state: wrong token type")
    try:
        return int(payload["sub"])
    except (KeyError, TypeError, ValueError) as e:
        raise ValueError("Invalid OAuth state: missing company") from e


def build_authorize_url(credential: XeroCredential) -> str:
    """Build the Xero consent URL for the company's app registration."""
    if not credential.client_id:
        raise ValueError("Client ID must be set before connecting to Xero")

    query = urlencode({
        "response_type": "code",
        "client_id": credential.client_id,
        "redirect_uri": settings.xero_redirect_uri,
        "scope": credential.scope or settings.xero_default_scope,
        "state": create_state_token(credential.company_id),
    })
    return f"{settings.xero_authorize_url}?{query}"


def exchange_code(
    db: Session,
    credential: XeroCredential,
    code: str,
    http: requests.Session,
    now: datetime | None = None,
) -> XeroCredential:
    """Exchange an authorization code for tokens and store the first tenant."""
    now = now or datetime.utcnow()
    token_data = _post_token_request(credential, http, {
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": settings.xero_redirect_uri,
    })
    if token_data is None:
        raise XeroAPIError("Token exchange with Xero failed", status_code=400)

    _store_token_set(credential, token_data, now)
    db.commit()

    sync_tenant(db, credential, http)
    return credential


def fetch_connections(access_token: str, http: requests.Session) -> list[dict]:
    """List the organisations the token has access to."""
    try:
        response = http.request(
            "GET",
            settings.xero_connections_url,
            headers={
                "Authorization": f"Bearer {access_token}",
                "Content-Type": "application/json",
            },
            timeout=settings.http_timeout_seconds,
        )
    except requests.RequestException as e:
        logger.error(f"Connections request failed: {e}")
        raise XeroAPIError(f"Could not reach Xero: {e}") from e

    if not response.ok:
        logger.error(f"Connections API error: {response.status_code} {response.text[:500]}")
        raise XeroAPIError("Failed to fetch connections from Xero", status_code=response.status_code)
    return response.json()


def sync_tenant(db: Session, credential: XeroCredential, http: requests.Session) -> list[dict]:
    """Store the first connected tenant on the credential; return all connections.

    Raises:
        XeroAPIError: If no organisation is connected (404)
    """
    connections = fetch_connections(credential.access_token, http)
    if not connections:
        raise XeroAPIError(
            "No Xero organizations connected. Please reconnect and select an organization.",
            status_code=404,
        )

    first = connections[0]
    credential.tenant_id = first.get("tenantId")
    credential.tenant_name = first.get("tenantName")
    credential.tenant_type = first.get("tenantType")
    db.commit()
    logger.info(f"Company {credential.company_id} using tenant {credential.tenant_name}")
    return connections


def needs_refresh(credential: XeroCredential, now: datetime | None = None) -> bool:
    """True when the access token expires within the refresh margin."""
    expires_at = credential.expires_at_dt
    if expires_at is None:
        return False
    now = now or datetime.utcnow()
    return expires_at < now + timedelta(seconds=settings.token_refresh_margin_seconds)


def refresh_access_token(
    db: Session,
    credential: XeroCredential,
    http: requests.Session,
    now: datetime | None = None,
) -> str:
    """Perform exactly one refresh-token grant and persist the new token set."""
    if not credential.refresh_token:
        raise XeroReconnectRequired(reconnect_required())

    now = now or datetime.utcnow()
    token_data = _post_token_request(credential, http, {
        "grant_type": "refresh_token",
        "refresh_token": credential.refresh_token,
    })
    if token_data is None:
        raise XeroReconnectRequired(reconnect_required())

    _store_token_set(credential, token_data, now)
    db.commit()
    logger.info(f"Refreshed Xero token for company {credential.company_id}")
    return credential.access_token


def ensure_access_token(
    db: Session,
    credential: XeroCredential | None,
    http: requests.Session,
    now: datetime | None = None,
) -> str:
    """Return a usable access token, refreshing it first if it is about to expire."""
    if credential is None or not credential.is_connected:
        raise XeroNotConnected(not_connected())

    if needs_refresh(credential, now):
        logger.info(f"Token for company {credential.company_id} expiring soon, refreshing")
        return refresh_access_token(db, credential, http, now)
    return credential.access_token


def _post_token_request(credential: XeroCredential, http: requests.Session, form: dict) -> dict | None:
    try:
        response = http.request(
            "POST",
            settings.xero_token_url,
            data=form,
            auth=(credential.client_id or "", credential.client_secret or ""),
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            timeout=settings.http_timeout_seconds,
        )
    except requests.RequestException as e:
        logger.error(f"Token request ({form['grant_type']}) failed: {e}")
        return None

    if not response.ok:
        logger.error(f"Token request ({form['grant_type']}) rejected: {response.status_code} {response.text[:500]}")
        return None

    try:
        token_data = response.json()
    except ValueError:
        logger.error(f"Token request ({form['grant_type']}) returned a non-JSON body")
        return None
    if not isinstance(token_data, dict) or not token_data.get("access_token"):
        logger.error(f"Token request ({form['grant_type']}) returned no access token")
        return None
    return token_data


def _store_token_set(credential: XeroCredential, token_data: dict, now: datetime) -> None:
    credential.access_token = token_data.get("access_token")
    credential.refresh_token = token_data.get("refresh_token", credential.refresh_token)
    expires_in = token_data.get("expires_in")
    credential.expires_at = (now + timedelta(seconds=int(expires_in))).isoformat() if expires_in else None


def _normalize_timestamp(value: str) -> str:
    """Store timestamps as naive UTC ISO strings."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed.isoformat()
