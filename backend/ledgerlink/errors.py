"""Error types for outbound integrations."""


class XeroError(Exception):
    """Base class for failures talking to Xero.

    Carries the HTTP status the API layer should answer with and whether the
    user has to re-authorize the connection.
    """

    status_code = 502
    needs_reconnect = False

    def __init__(self, detail: str, status_code: int | None = None):
        super().__init__(detail)
        self.detail = detail
        if status_code is not None:
            self.status_code = status_code


class XeroNotConnected(XeroError):
    """No credentials, access token or tenant stored for the company."""

    status_code = 401


class XeroReconnectRequired(XeroError):
    """The access token expired and could not be refreshed."""

    status_code = 401
    needs_reconnect = True


class XeroAPIError(XeroError):
    """Xero answered with a non-success status or a validation error."""


class LLMNotConfigured(Exception):
    """No API key configured for the completion endpoint."""


class LLMError(Exception):
    """The completion call failed or returned unusable output."""


def not_connected() -> str:
    """Return message for a company without a usable Xero connection."""
    return "Not connected to Xero"


def reconnect_required() -> str:
    """Return message when the stored token cannot be refreshed."""
    return "Token expired and refresh failed. Please reconnect to Xero."


def unmatched_bank_account(name: str | None, number: str | None) -> str:
    """Return message for a statement line with no matching Xero bank account."""
    return f"Could not match bank account: {name or ''} ({number or ''})"
