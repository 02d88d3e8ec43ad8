"""
In-memory settlement backend used in the sandbox environment and in tests.

Transaction ids are issued as tx_1, tx_2, ... and refund ids as rf_1,
rf_2, ... per gateway instance. Submissions that reuse an idempotency key
return the original transaction instead of charging twice.
"""

import asyncio
import logging
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional

from paygate.core.config import GatewayCredentials
from paygate.core.exceptions import (
    ConfigurationError,
    GatewayConnectionError,
    NotFoundError,
    PaymentDeclinedError,
)
from paygate.gateways.base import GatewayAdapter, GatewayCharge, GatewayRefund, GatewaySession

logger = logging.getLogger(__name__)


class SandboxSession(GatewaySession):
    def __init__(self, gateway: "SandboxGateway"):
        self._gateway = gateway
        self.closed = False

    async def submit(
        self,
        amount: Decimal,
        currency: str,
        method_detail: Mapping[str, Any],
        idempotency_key: str,
    ) -> GatewayCharge:
        return await self._gateway._submit(amount, currency, method_detail, idempotency_key)

    async def reverse(self, transaction_id: str) -> GatewayRefund:
        return await self._gateway._reverse(transaction_id)

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._gateway.open_sessions -= 1


class SandboxGateway(GatewayAdapter):
    """
    Fake backend with controllable behaviour.

    Args:
        name: Gateway name used in errors and logs
        decline_above: Amounts strictly above this are declined
        latency: Seconds each submit/reverse call sleeps before answering
        fail_connects: Number of initial connect() calls that fail with a
            connection error
    """

    def __init__(
        self,
        name: str = "sandbox",
        decline_above: Optional[Decimal] = None,
        latency: float = 0.0,
        fail_connects: int = 0,
    ):
        self.name = name
        self.decline_above = decline_above
        self.latency = latency
        self.fail_connects = fail_connects

        self.connect_calls = 0
        self.submit_calls = 0
        self.reverse_calls = 0
        self.open_sessions = 0

        self._charges: Dict[str, Dict[str, Any]] = {}
        self._by_idempotency_key: Dict[str, str] = {}
        self._tx_counter = 0
        self._refund_counter = 0

    async def connect(self, credentials: GatewayCredentials, environment: str) -> SandboxSession:
        self.connect_calls += 1

        if not credentials.api_key:
            raise ConfigurationError(f"{self.name} gateway credentials missing", config_key="api_key")

        if self.fail_connects > 0:
            self.fail_connects -= 1
            raise GatewayConnectionError(
                f"{self.name} gateway unreachable", gateway=self.name, operation="connect"
            )

        self.open_sessions += 1
        return SandboxSession(self)

    async def _submit(
        self,
        amount: Decimal,
        currency: str,
        method_detail: Mapping[str, Any],
        idempotency_key: str,
    ) -> GatewayCharge:
        self.submit_calls += 1
        if self.latency:
            await asyncio.sleep(self.latency)

        existing = self._by_idempotency_key.get(idempotency_key)
        if existing is not None:
            logger.info(f"Sandbox replaying {existing} for key {idempotency_key}")
            return GatewayCharge(transaction_id=existing)

        if self.decline_above is not None and amount > self.decline_above:
            raise PaymentDeclinedError(
                "Payment declined: amount exceeds limit",
                gateway=self.name,
                decline_code="amount_limit",
            )

        self._tx_counter += 1
        transaction_id = f"tx_{self._tx_counter}"
        self._charges[transaction_id] = {
            "amount": amount,
            "currency": currency,
            "refund_id": None,
        }
        self._by_idempotency_key[idempotency_key] = transaction_id
        return GatewayCharge(transaction_id=transaction_id)

    async def _reverse(self, transaction_id: str) -> GatewayRefund:
        self.reverse_calls += 1
        if self.latency:
            await asyncio.sleep(self.latency)

        charge = self._charges.get(transaction_id)
        if charge is None:
            raise NotFoundError("Transaction", transaction_id)
        if charge["refund_id"] is not None:
            raise NotFoundError("Transaction", transaction_id, reason="already refunded")

        self._refund_counter += 1
        refund_id = f"rf_{self._refund_counter}"
        charge["refund_id"] = refund_id
        return GatewayRefund(refund_id=refund_id, transaction_id=transaction_id)

    def is_refunded(self, transaction_id: str) -> bool:
        charge = self._charges.get(transaction_id)
        return charge is not None and charge["refund_id"] is not None
