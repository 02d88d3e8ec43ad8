"""
PayGate application entry point.

Startup loads configuration, connects the idempotency ledger, builds the
strategy registry and stores one PaymentProcessor on the app state.
"""

from fastapi import FastAPI, Request, HTTPException, Depends, Header
from contextlib import asynccontextmanager
from typing import Mapping, Optional
from paygate.core.config import AppConfig, load_config, get_config
from paygate.core.handlers import setup_exception_handlers
from paygate.core.middleware import RequestLoggingMiddleware
from paygate.core.monitoring import setup_monitoring, error_monitor, monitor_errors
from paygate.core.limiter import limiter, api_rate_limit
from paygate.database import init_db, close_database, health_check as ledger_health_check
from paygate.gateways.base import GatewayAdapter
from paygate.routes.payments import router as payments_router
from paygate.services.ledger import InMemoryLedger, MongoLedger, TransactionLedger
from paygate.services.payment_processor import PaymentProcessor
from paygate.strategies.registry import build_registry, set_default_registry
from slowapi import _rate_limit_exceeded_handler
from slowapi.middleware import SlowAPIMiddleware
from slowapi.errors import RateLimitExceeded
import hmac
import logging

logger = logging.getLogger(__name__)


async def build_ledger(config: AppConfig) -> TransactionLedger:
    if config.ledger.backend == "mongo":
        await init_db(config.ledger)
        return MongoLedger()
    return InMemoryLedger()


async def build_processor(
    config: AppConfig,
    gateways: Optional[Mapping[str, GatewayAdapter]] = None,
) -> PaymentProcessor:
    """Wire registry, ledger and processor from configuration."""
    registry = build_registry(config, gateways)
    set_default_registry(registry)
    ledger = await build_ledger(config)
    logger.info(f"Payment methods available: {', '.join(registry.methods())}")
    return PaymentProcessor(ledger=ledger, registry=registry)


async def verify_monitoring_access(
    x_monitoring_key: str = Header(None),
):
    """
    API key check for the internal monitoring endpoint.
    Access is denied when no key is configured.
    """
    expected_key = get_config().monitoring_api_key

    if not expected_key:
        raise HTTPException(status_code=403, detail="Monitoring access not configured")

    if not x_monitoring_key or not hmac.compare_digest(x_monitoring_key, expected_key):
        raise HTTPException(status_code=403, detail="Invalid monitoring credentials")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle events"""
    try:
        config = load_config()
        setup_monitoring(config.logging.level)
        app.state.config = config

        app.state.processor = await build_processor(config)
        logger.info("PayGate started successfully")

    except Exception as e:
        error_monitor.log_error(e, {"context": "application_startup"})
        logger.error(f"Failed to start PayGate: {str(e)}")
        raise

    yield

    logger.info("PayGate shutting down")
    await close_database()
    set_default_registry(None)

    final_summary = error_monitor.get_error_summary()
    logger.info(f"Shutdown - Total errors handled: {final_summary['total_errors']}")


app = FastAPI(
    title="PayGate",
    description="Uniform payment processing across card and wallet gateways",
    lifespan=lifespan,
)

app.state.limiter = limiter

app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(SlowAPIMiddleware)

setup_exception_handlers(app)

app.add_middleware(RequestLoggingMiddleware)

app.include_router(payments_router, prefix="/payments")


@app.get("/")
@limiter.limit(api_rate_limit)
async def health_check(request: Request):
    config = get_config()
    status = {
        "status": "active",
        "service": "PayGate",
        "methods": request.app.state.processor.registry.methods(),
        "ledger": config.ledger.backend,
    }
    if config.ledger.backend == "mongo":
        status["ledger_health"] = (await ledger_health_check())["status"]
    return status


@app.get("/monitoring/errors", dependencies=[Depends(verify_monitoring_access)])
@limiter.limit("10/minute")
@monitor_errors("monitoring_endpoint")
async def get_monitoring_info(request: Request):
    """Internal endpoint for error and outcome counters (authenticated)."""
    return error_monitor.get_error_summary()
