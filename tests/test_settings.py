"""
Unit tests for environment-driven settings.
"""

import json

import pytest
from pydantic import ValidationError

from pipeline.errors import ConfigurationMissing
from schemas.ledger_models import TierDefinition
from settings import DEFAULT_TIER_TABLE, Settings


SERVICE_ACCOUNT = {"type": "service_account", "client_email": "ledger@example.iam.gserviceaccount.com"}


@pytest.fixture
def environ():
    return {
        "STRIPE_SECRET_KEY": "sk_test_123",
        "STRIPE_WEBHOOK_SECRET": "whsec_test",
        "GOOGLE_SHEETS_SPREADSHEET_ID": "sheet_123",
        "GOOGLE_SERVICE_ACCOUNT_KEY": json.dumps(SERVICE_ACCOUNT),
    }


@pytest.mark.unit
def test_defaults(environ):
    settings = Settings.from_env(environ).require_complete()

    assert settings.sheet_tab_name == "Sheet1"
    assert settings.port == 8080
    assert settings.ledger_backend == "sheets"
    assert settings.ledger_timezone == "America/Chicago"
    assert settings.agreement_version == "v1.0"
    assert settings.fallback_credit_multiplier == 1.3
    assert settings.webhook_tolerance_seconds == 300
    assert settings.tier_table == DEFAULT_TIER_TABLE
    assert settings.allowed_price_ids == ()
    assert settings.service_account_info == SERVICE_ACCOUNT


@pytest.mark.unit
def test_overrides(environ):
    environ.update({
        "GOOGLE_SHEETS_TAB_NAME": "Founders",
        "PORT": "9000",
        "CREDIT_FALLBACK_MULTIPLIER": "1.5",
        "STRIPE_ALLOWED_PRICE_IDS": "price_a, price_b,,",
        "LEDGER_TIMEZONE": "UTC",
        "LOG_LEVEL": "debug",
    })

    settings = Settings.from_env(environ)

    assert settings.sheet_tab_name == "Founders"
    assert settings.port == 9000
    assert settings.fallback_credit_multiplier == 1.5
    assert settings.allowed_price_ids == ("price_a", "price_b")
    assert settings.ledger_timezone == "UTC"
    assert settings.log_level == "DEBUG"


@pytest.mark.unit
def test_credentials_file_fallback(environ, tmp_path):
    key_file = tmp_path / "service-account.json"
    key_file.write_text(json.dumps(SERVICE_ACCOUNT))
    del environ["GOOGLE_SERVICE_ACCOUNT_KEY"]
    environ["GOOGLE_SERVICE_ACCOUNT_KEY_JSON"] = str(key_file)

    assert Settings.from_env(environ).service_account_info == SERVICE_ACCOUNT


@pytest.mark.unit
def test_unreadable_credentials_file(environ, tmp_path):
    del environ["GOOGLE_SERVICE_ACCOUNT_KEY"]
    environ["GOOGLE_SERVICE_ACCOUNT_KEY_JSON"] = str(tmp_path / "missing.json")

    with pytest.raises(ConfigurationMissing, match="GOOGLE_SERVICE_ACCOUNT_KEY_JSON"):
        Settings.from_env(environ)


@pytest.mark.unit
def test_invalid_inline_credentials(environ):
    environ["GOOGLE_SERVICE_ACCOUNT_KEY"] = "{not json"

    with pytest.raises(ConfigurationMissing, match="invalid JSON"):
        Settings.from_env(environ)


@pytest.mark.unit
def test_memory_backend_needs_no_credentials():
    settings = Settings.from_env({
        "STRIPE_SECRET_KEY": "sk_test_123",
        "STRIPE_WEBHOOK_SECRET": "whsec_test",
        "LEDGER_BACKEND": "memory",
    }).require_complete()

    assert settings.service_account_info is None


@pytest.mark.unit
def test_unknown_backend_is_rejected(environ):
    environ["LEDGER_BACKEND"] = "postgres"

    with pytest.raises(ConfigurationMissing, match="LEDGER_BACKEND"):
        Settings.from_env(environ)


@pytest.mark.unit
def test_non_numeric_port_is_rejected(environ):
    environ["PORT"] = "eighty"

    with pytest.raises(ConfigurationMissing, match="PORT"):
        Settings.from_env(environ)


@pytest.mark.unit
@pytest.mark.parametrize(
    "missing",
    ["STRIPE_SECRET_KEY", "STRIPE_WEBHOOK_SECRET", "GOOGLE_SHEETS_SPREADSHEET_ID"],
)
def test_require_complete_names_missing_setting(environ, missing):
    del environ[missing]
    settings = Settings.from_env(environ)

    with pytest.raises(ConfigurationMissing) as exc_info:
        settings.require_complete()
    assert exc_info.value.setting == missing


@pytest.mark.unit
def test_settings_are_immutable(environ):
    settings = Settings.from_env(environ)

    with pytest.raises(ValidationError):
        settings.port = 1234


@pytest.mark.unit
def test_tier_table_order_is_validated():
    with pytest.raises(ValidationError, match="strictly decreasing"):
        Settings(tier_table=(
            TierDefinition(name="Bronze", min_amount=250, credits=325),
            TierDefinition(name="Gold", min_amount=2000, credits=3000),
        ))
