"""Application configuration."""
from collections import Counter
from functools import lru_cache
import math
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings

DEFAULT_XERO_SCOPE = (
    "payroll.employees payroll.timesheets payroll.payruns payroll.payslip payroll.settings "
    "accounting.settings accounting.attachments accounting.transactions accounting.contacts "
    "accounting.reports.read offline_access"
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    app_name: str = "LedgerLink"
    debug: bool = False
    log_level: str = "INFO"
    frontend_url: str = "http://localhost:3000"

    # Database
    database_url: str = "sqlite:///./data/ledgerlink.db"
    database_key: str

    # Signing (OAuth state)
    secret_key: str
    algorithm: str = "HS256"
    oauth_state_expire_minutes: int = 10

    # Xero
    xero_redirect_uri: str = "http://localhost:8000/api/xero/callback"
    xero_default_scope: str = DEFAULT_XERO_SCOPE
    xero_authorize_url: str = "https://login.xero.com/identity/connect/authorize"
    xero_token_url: str = "https://identity.xero.com/connect/token"
    xero_connections_url: str = "https://api.xero.com/connections"
    xero_api_url: str = "https://api.xero.com/api.xro/2.0"
    xero_payroll_url: str = "https://api.xero.com/payroll.xro/1.0"
    token_refresh_margin_seconds: int = 300
    http_timeout_seconds: int = 30

    # LLM (reconciliation suggestions)
    llm_api_key: str | None = None
    llm_api_url: str = "https://api.openai.com/v1/chat/completions"
    llm_model: str = "gpt-4o-mini"

    # Paths
    base_dir: Path = Path(__file__).parent
    coding_rules_path: Path = base_dir / "configs" / "coding_rules.yaml"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    @field_validator("secret_key")
    @classmethod
    def validate_secret_key(cls, value: str) -> str:
        """Fail closed if SECRET_KEY is weak or placeholder quality."""
        if not value:
            raise ValueError("SECRET_KEY must be set.")

        if len(value) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")

        weak_values = {"changeme", "changeme-in-production", "secret", "password", "test"}
        lowered = value.lower()
        if lowered in weak_values or "changeme" in lowered:
            raise ValueError("SECRET_KEY must not be a placeholder value.")

        counts = Counter(value)
        entropy_per_char = -sum((count / len(value)) * math.log2(count / len(value)) for count in counts.values())
        estimated_entropy_bits = entropy_per_char * len(value)
        if estimated_entropy_bits < 100:
            raise ValueError("SECRET_KEY entropy is too low; use a cryptographically random value.")

        return value

    @field_validator("token_refresh_margin_seconds")
    @classmethod
    def validate_refresh_margin(cls, value: int) -> int:
        if value < 0:
            raise ValueError("TOKEN_REFRESH_MARGIN_SECONDS must not be negative.")
        return value


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
