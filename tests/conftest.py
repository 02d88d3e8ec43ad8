import os
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from paygate.core.config import CREDIT_CARD, PAYPAL, GatewayConfig, GatewayCredentials
from paygate.core.limiter import limiter
from paygate.core.monitoring import error_monitor
from paygate.gateways.base import GatewayAdapter, GatewayCharge, GatewayRefund
from paygate.gateways.sandbox import SandboxGateway
from paygate.schemas.payment import Payment
from paygate.services.payment_processor import PaymentProcessor
from paygate.strategies.credit_card import CreditCardStrategy
from paygate.strategies.paypal import PayPalStrategy
from paygate.strategies.registry import StrategyRegistry

FIXED_NOW = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)

VALID_CARD_DETAILS = {
    "card_number": "4111111111111111",
    "expiry": "12/30",
    "cvv": "123",
}

TEST_ENV = {
    "CREDIT_CARD_API_KEY": "test_card_key",
    "PAYPAL_CLIENT_ID": "test_paypal_id",
    "PAYPAL_CLIENT_SECRET": "test_paypal_secret",
    "LEDGER_BACKEND": "memory",
    "PAYMENT_ENVIRONMENT": "sandbox",
    "GATEWAY_TIMEOUT_SECONDS": "2",
    "GATEWAY_RETRY_BACKOFF": "0",
    "MONITORING_API_KEY": "test_monitoring_key",
}


def make_gateway_config(name=CREDIT_CARD, api_key="test_key", api_secret=None, **overrides) -> GatewayConfig:
    settings = {
        "timeout_seconds": 1.0,
        "connect_attempts": 3,
        "retry_backoff": 0.0,
        "requires_secret": name == PAYPAL,
    }
    settings.update(overrides)
    if settings["requires_secret"] and api_secret is None and api_key is not None:
        api_secret = "test_secret"
    return GatewayConfig(
        name=name,
        credentials=GatewayCredentials(api_key=api_key, api_secret=api_secret),
        **settings,
    )


def make_card_payment(payment_id="p1", amount="100.00", currency="USD", **detail_overrides) -> Payment:
    details = dict(VALID_CARD_DETAILS)
    details.update(detail_overrides)
    return Payment(
        id=payment_id,
        amount=Decimal(amount),
        currency=currency,
        method=CREDIT_CARD,
        details=details,
    )


def make_paypal_payment(payment_id="pp1", amount="25.50", currency="EUR", email="buyer@example.com") -> Payment:
    return Payment(
        id=payment_id,
        amount=Decimal(amount),
        currency=currency,
        method=PAYPAL,
        details={"email": email},
    )


def create_payment_payload(
    payment_id="api_pay_1",
    amount="100.00",
    currency="USD",
    method="credit-card",
    details=None,
):
    """Create an HTTP payment body with customizable parameters"""
    payload = {
        "amount": amount,
        "currency": currency,
        "method": method,
        "details": dict(VALID_CARD_DETAILS) if details is None else details,
    }
    if payment_id is not None:
        payload["id"] = payment_id
    return payload


def create_invalid_payment_payloads():
    """Payment bodies the schema must reject"""
    return {
        "negative_amount": create_payment_payload(amount="-100.00"),
        "zero_amount": create_payment_payload(amount="0.00"),
        "too_high_amount": create_payment_payload(amount="1000001.00"),
        "invalid_amount_type": create_payment_payload(amount="not_a_number"),
        "lowercase_currency": create_payment_payload(currency="usd"),
        "empty_id": create_payment_payload(payment_id=""),
        "invalid_id_chars": create_payment_payload(payment_id="pay 1!"),
        "empty_method": create_payment_payload(method=""),
    }


def make_mock_gateway(transaction_id="tx_1", refund_id="rf_1"):
    """GatewayAdapter mock whose session answers with fixed identifiers"""
    session = AsyncMock()
    session.submit = AsyncMock(return_value=GatewayCharge(transaction_id=transaction_id))
    session.reverse = AsyncMock(
        side_effect=lambda tx: GatewayRefund(refund_id=refund_id, transaction_id=tx)
    )
    session.close = AsyncMock()

    gateway = MagicMock(spec=GatewayAdapter)
    gateway.connect = AsyncMock(return_value=session)
    return gateway, session


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW


@pytest.fixture
def card_config():
    return make_gateway_config(CREDIT_CARD)


@pytest.fixture
def paypal_config():
    return make_gateway_config(PAYPAL)


@pytest.fixture
def card_gateway():
    return SandboxGateway(name=CREDIT_CARD)


@pytest.fixture
def paypal_gateway():
    return SandboxGateway(name=PAYPAL)


@pytest.fixture
def card_strategy(card_gateway, card_config, fixed_clock):
    return CreditCardStrategy(card_gateway, card_config, clock=fixed_clock)


@pytest.fixture
def paypal_strategy(paypal_gateway, paypal_config):
    return PayPalStrategy(paypal_gateway, paypal_config)


@pytest.fixture
def registry(card_strategy, paypal_strategy):
    registry = StrategyRegistry()
    registry.register(CREDIT_CARD, card_strategy)
    registry.register(PAYPAL, paypal_strategy)
    return registry


@pytest.fixture
def processor(card_strategy, registry):
    return PaymentProcessor(strategy=card_strategy, registry=registry)


@pytest.fixture
def card_payment():
    return make_card_payment()


@pytest.fixture
def paypal_payment():
    return make_paypal_payment()


@pytest.fixture
def mock_gateway():
    return make_mock_gateway()


@pytest.fixture
def invalid_payloads():
    return create_invalid_payment_payloads()


@pytest.fixture
def mock_ledger_entry():
    """Mock LedgerEntry in the ledger module where it's used"""
    with patch("paygate.services.ledger.LedgerEntry") as mock:
        yield mock


@pytest.fixture
def mock_env_vars():
    """Patch the environment with a complete sandbox configuration"""
    with patch.dict(os.environ, TEST_ENV, clear=True):
        yield dict(TEST_ENV)


@pytest.fixture
def client(mock_env_vars):
    """TestClient with the app's lifespan run against the sandbox gateways"""
    from paygate.main import app

    limiter.reset()
    error_monitor.reset()
    with TestClient(app) as test_client:
        yield test_client
