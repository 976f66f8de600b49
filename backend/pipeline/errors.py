# pipeline/errors.py
# ============================================================================
# FOUNDER LEDGER WEBHOOK - ERROR TAXONOMY
# ============================================================================
# Every failure the webhook pipeline can surface, mapped to an HTTP status
# by the API layer. Nothing here is retried internally: 5xx responses hand
# the retry to Stripe's own redelivery schedule.
# ============================================================================


class FounderLedgerError(Exception):
    """Base class for all pipeline failures."""

    status_code: int = 500


class ConfigurationMissing(FounderLedgerError):
    """A required setting (secret, credentials, ledger target) is absent."""

    def __init__(self, setting: str, detail: str = ""):
        self.setting = setting
        message = f"{setting} is not configured"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class SignatureInvalid(FounderLedgerError):
    """Inbound body was not signed by Stripe with our signing secret."""

    status_code = 400


class MalformedEvent(FounderLedgerError):
    """A verified event that cannot be turned into a ledger row."""


class LedgerUnavailable(FounderLedgerError):
    """The ledger append failed (network, auth, quota or timeout)."""
