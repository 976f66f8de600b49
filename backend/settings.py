"""
Settings - Founder Ledger Webhook
=================================
Immutable configuration, built once at startup and passed explicitly into
the dispatcher, the ledger and the Stripe client.

Environment (a local .env file is honoured):
    STRIPE_SECRET_KEY, STRIPE_WEBHOOK_SECRET          (required)
    GOOGLE_SHEETS_SPREADSHEET_ID                      (required for sheets)
    GOOGLE_SERVICE_ACCOUNT_KEY                        (inline JSON, preferred)
    GOOGLE_SERVICE_ACCOUNT_KEY_JSON                   (file fallback)

pip install pydantic python-dotenv
"""

import json
import os
from typing import Any, Dict, Mapping, Optional, Tuple

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

from pipeline.errors import ConfigurationMissing
from pipeline.tiers import validate_tier_table
from schemas.ledger_models import TierDefinition


# =============================================================================
# CONSTANTS
# =============================================================================

AGREEMENT_VERSION = "v1.0"
DEFAULT_TAB_NAME = "Sheet1"
DEFAULT_CREDENTIALS_PATH = "./service-account.json"
DEFAULT_TIMEZONE = "America/Chicago"
FALLBACK_CREDIT_MULTIPLIER = 1.3

# Highest threshold first; min_amount is also the exact price point for credits
DEFAULT_TIER_TABLE: Tuple[TierDefinition, ...] = (
    TierDefinition(name="Titan", min_amount=5000, credits=8000),
    TierDefinition(name="Gold", min_amount=2000, credits=3000),
    TierDefinition(name="Silver", min_amount=750, credits=1050),
    TierDefinition(name="Bronze", min_amount=250, credits=325),
)

LEDGER_BACKENDS = ("sheets", "memory")


# =============================================================================
# SETTINGS
# =============================================================================

class Settings(BaseModel):
    """Process configuration. Frozen: read-only after startup."""

    model_config = ConfigDict(frozen=True)

    # Stripe
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    webhook_tolerance_seconds: int = Field(default=300, ge=0)
    stripe_timeout_seconds: float = Field(default=10.0, gt=0)
    allowed_price_ids: Tuple[str, ...] = ()

    # Ledger
    ledger_backend: str = "sheets"
    spreadsheet_id: str = ""
    sheet_tab_name: str = DEFAULT_TAB_NAME
    service_account_info: Optional[Dict[str, Any]] = None
    ledger_timeout_seconds: float = Field(default=15.0, gt=0)
    ledger_timezone: str = DEFAULT_TIMEZONE
    agreement_version: str = AGREEMENT_VERSION

    # Tiers
    tier_table: Tuple[TierDefinition, ...] = DEFAULT_TIER_TABLE
    fallback_credit_multiplier: float = FALLBACK_CREDIT_MULTIPLIER

    # Server
    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"
    log_format: str = "json"

    @field_validator("tier_table")
    @classmethod
    def _tier_table_descending(cls, table: Tuple[TierDefinition, ...]) -> Tuple[TierDefinition, ...]:
        return validate_tier_table(table)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from the environment.

        When no mapping is given, a .env file in the working directory is
        loaded into os.environ first.
        """
        if environ is None:
            load_dotenv()
            environ = os.environ

        backend = environ.get("LEDGER_BACKEND", "sheets").strip().lower()
        if backend not in LEDGER_BACKENDS:
            raise ConfigurationMissing(
                "LEDGER_BACKEND", f"expected one of {', '.join(LEDGER_BACKENDS)}, got {backend!r}"
            )

        allowed = tuple(
            price.strip()
            for price in environ.get("STRIPE_ALLOWED_PRICE_IDS", "").split(",")
            if price.strip()
        )

        return cls(
            stripe_secret_key=environ.get("STRIPE_SECRET_KEY", ""),
            stripe_webhook_secret=environ.get("STRIPE_WEBHOOK_SECRET", ""),
            webhook_tolerance_seconds=_int(environ, "STRIPE_WEBHOOK_TOLERANCE_SECONDS", 300),
            stripe_timeout_seconds=_float(environ, "STRIPE_TIMEOUT_SECONDS", 10.0),
            allowed_price_ids=allowed,
            ledger_backend=backend,
            spreadsheet_id=environ.get("GOOGLE_SHEETS_SPREADSHEET_ID", ""),
            sheet_tab_name=environ.get("GOOGLE_SHEETS_TAB_NAME") or DEFAULT_TAB_NAME,
            service_account_info=(
                load_service_account_info(environ) if backend == "sheets" else None
            ),
            ledger_timeout_seconds=_float(environ, "LEDGER_TIMEOUT_SECONDS", 15.0),
            ledger_timezone=environ.get("LEDGER_TIMEZONE") or DEFAULT_TIMEZONE,
            agreement_version=environ.get("AGREEMENT_VERSION") or AGREEMENT_VERSION,
            fallback_credit_multiplier=_float(
                environ, "CREDIT_FALLBACK_MULTIPLIER", FALLBACK_CREDIT_MULTIPLIER
            ),
            host=environ.get("HOST", "0.0.0.0"),
            port=_int(environ, "PORT", 8080),
            log_level=environ.get("LOG_LEVEL", "INFO").upper(),
            log_format=environ.get("LOG_FORMAT", "json").lower(),
        )

    def require_complete(self) -> "Settings":
        """Raise ConfigurationMissing unless every value needed to serve is set."""
        if not self.stripe_secret_key:
            raise ConfigurationMissing("STRIPE_SECRET_KEY")
        if not self.stripe_webhook_secret:
            raise ConfigurationMissing("STRIPE_WEBHOOK_SECRET")
        if self.ledger_backend == "sheets":
            if not self.spreadsheet_id:
                raise ConfigurationMissing("GOOGLE_SHEETS_SPREADSHEET_ID")
            if not self.service_account_info:
                raise ConfigurationMissing("GOOGLE_SERVICE_ACCOUNT_KEY")
        return self


# =============================================================================
# HELPERS
# =============================================================================

def load_service_account_info(environ: Mapping[str, str]) -> Dict[str, Any]:
    """
    Load Google service-account credentials.

    Inline JSON in GOOGLE_SERVICE_ACCOUNT_KEY wins; otherwise the file named by
    GOOGLE_SERVICE_ACCOUNT_KEY_JSON (default ./service-account.json) is read.
    """
    inline = environ.get("GOOGLE_SERVICE_ACCOUNT_KEY")
    if inline:
        try:
            return json.loads(inline)
        except json.JSONDecodeError as e:
            raise ConfigurationMissing(
                "GOOGLE_SERVICE_ACCOUNT_KEY", f"invalid JSON ({e.msg})"
            ) from e

    path = environ.get("GOOGLE_SERVICE_ACCOUNT_KEY_JSON") or DEFAULT_CREDENTIALS_PATH
    try:
        with open(path, "r", encoding="utf-8") as fh:
            return json.load(fh)
    except OSError as e:
        raise ConfigurationMissing(
            "GOOGLE_SERVICE_ACCOUNT_KEY_JSON", f"cannot read {path} ({e.strerror})"
        ) from e
    except json.JSONDecodeError as e:
        raise ConfigurationMissing(
            "GOOGLE_SERVICE_ACCOUNT_KEY_JSON", f"invalid JSON in {path} ({e.msg})"
        ) from e


def _int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationMissing(name, f"expected an integer, got {raw!r}") from e


def _float(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = environ.get(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationMissing(name, f"expected a number, got {raw!r}") from e
