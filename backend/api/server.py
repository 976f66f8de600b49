# api/server.py
# ============================================================================
# FOUNDER LEDGER WEBHOOK - FASTAPI SERVER
# ============================================================================
# Stripe webhook intake and liveness endpoint. Configuration is validated
# before the first request is accepted; a missing secret stops startup.
# ============================================================================

import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

import structlog
import uvicorn
from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from pipeline.dispatcher import EventDispatcher
from pipeline.errors import ConfigurationMissing, FounderLedgerError, SignatureInvalid
from settings import Settings

logger = structlog.get_logger(component="server")

SIGNATURE_HEADER = "stripe-signature"
LIVENESS_MESSAGE = "Founder ledger webhook is live."


# ============================================================================
# LOGGING
# ============================================================================

def configure_logging(level: str = "INFO", fmt: str = "json") -> None:
    """Configure structlog once for the process."""
    renderer = (
        structlog.dev.ConsoleRenderer(colors=True)
        if fmt == "console"
        else structlog.processors.JSONRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


# ============================================================================
# ENDPOINTS
# ============================================================================

router = APIRouter()


@router.get("/", response_class=PlainTextResponse)
async def liveness():
    """Liveness string; no business logic."""
    return LIVENESS_MESSAGE


@router.post("/stripe-webhook")
async def stripe_webhook(request: Request):
    """
    Stripe webhook intake.

    The body is read as raw bytes: signatures cover the exact payload, so it
    must never be parsed before verification.
    """
    dispatcher: EventDispatcher = request.app.state.dispatcher
    payload = await request.body()
    signature = request.headers.get(SIGNATURE_HEADER)

    log = logger.bind(content_length=len(payload))
    log.info("webhook_received")

    try:
        outcome = await dispatcher.dispatch(payload, signature)
    except SignatureInvalid as e:
        log.warning("webhook_rejected", error=str(e))
        return PlainTextResponse(f"Webhook Error: {e}", status_code=e.status_code)
    except ConfigurationMissing as e:
        log.error("webhook_misconfigured", setting=e.setting)
        if e.setting == "STRIPE_WEBHOOK_SECRET":
            return PlainTextResponse("Webhook secret not configured", status_code=e.status_code)
        return PlainTextResponse("Server not configured", status_code=e.status_code)
    except FounderLedgerError as e:
        log.error("webhook_processing_failed", error=str(e), error_type=type(e).__name__)
        return PlainTextResponse("Internal Server Error", status_code=e.status_code)
    except Exception as e:
        log.error("webhook_unexpected_error", error_type=type(e).__name__, exc_info=True)
        return PlainTextResponse("Internal Server Error", status_code=500)

    log.info(
        "webhook_acknowledged",
        event_id=outcome.event_id,
        event_type=outcome.event_type,
        outcome=outcome.kind.value,
    )
    return JSONResponse({"received": True})


# ============================================================================
# APP FACTORY
# ============================================================================

def create_app(
    settings: Optional[Settings] = None,
    dispatcher: Optional[EventDispatcher] = None,
) -> FastAPI:
    """
    Build the FastAPI app.

    With an explicit dispatcher the app is ready immediately. Otherwise the
    lifespan loads settings (from the environment if none were given),
    refuses to start unless they are complete, and builds the dispatcher.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "dispatcher", None) is None:
            resolved = (settings or Settings.from_env()).require_complete()
            if settings is None:
                configure_logging(resolved.log_level, resolved.log_format)
            app.state.dispatcher = EventDispatcher(resolved)
            logger.info(
                "webhook_server_ready",
                ledger_backend=resolved.ledger_backend,
                sheet_tab=resolved.sheet_tab_name,
                tiers=[t.name for t in resolved.tier_table],
            )
        yield
        logger.info("webhook_server_stopped")

    app = FastAPI(
        title="Founder Ledger Webhook",
        description="Stripe checkout webhook that appends founder records to a Google Sheets ledger",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.dispatcher = dispatcher

    @app.middleware("http")
    async def add_timing_header(request: Request, call_next):
        """Add response timing header."""
        start = time.perf_counter()
        response = await call_next(request)
        duration = (time.perf_counter() - start) * 1000
        response.headers["X-Response-Time-Ms"] = f"{duration:.2f}"
        return response

    app.include_router(router)
    return app


app = create_app()


# ============================================================================
# MAIN
# ============================================================================

def main():
    try:
        settings = Settings.from_env().require_complete()
    except ConfigurationMissing as e:
        configure_logging()
        logger.critical("startup_aborted", setting=e.setting, error=str(e))
        raise SystemExit(1)

    configure_logging(settings.log_level, settings.log_format)
    logger.info("webhook_server_starting", host=settings.host, port=settings.port)
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level="info",
    )


if __name__ == "__main__":
    main()
