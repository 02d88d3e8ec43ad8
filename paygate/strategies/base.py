"""
Payment method strategy contract.

Every payment method implements three operations:

    validate(payment) -> ValidationResult
        Synchronous and side-effect free. Reports every violated rule.
    process(payment) -> PaymentResult
        Charges the payment through the method's gateway. Never raises for
        business outcomes (declines, timeouts, network or configuration
        problems); those come back as failed results.
    refund(payment, transaction_id) -> RefundResult
        Fully reverses a previously successful transaction.

GatewayStrategy implements process() and refund() once for every method
that talks to a GatewayAdapter; a variant supplies validate() and the
method detail it submits.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Dict, Tuple, TypeVar

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from paygate.core.config import GatewayConfig
from paygate.core.exceptions import (
    BackendError,
    BaseAppError,
    ConfigurationError,
    GatewayConnectionError,
    GatewayTimeoutError,
)
from paygate.gateways.base import GatewayAdapter, GatewaySession
from paygate.schemas.payment import Payment
from paygate.schemas.results import PaymentResult, RefundResult, ValidationResult

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PaymentStrategy(ABC):
    """Interchangeable implementation of one payment method."""

    method_id: str = ""
    aliases: Tuple[str, ...] = ()

    def accepts(self, method: str) -> bool:
        return method == self.method_id or method in self.aliases

    @abstractmethod
    def validate(self, payment: Payment) -> ValidationResult:
        """Check the method-specific details. No I/O."""

    @abstractmethod
    async def process(self, payment: Payment) -> PaymentResult:
        """Charge a payment that has already passed validation."""

    @abstractmethod
    async def refund(self, payment: Payment, transaction_id: str) -> RefundResult:
        """Reverse a previously successful transaction."""


class GatewayStrategy(PaymentStrategy):
    """
    Strategy backed by a GatewayAdapter.

    Sessions are opened per call and closed on every exit path, including
    cancellation. Only the connect step is retried; a charge or reversal is
    submitted at most once per call.
    """

    def __init__(self, gateway: GatewayAdapter, config: GatewayConfig):
        self.gateway = gateway
        self.config = config

    @abstractmethod
    def method_detail(self, payment: Payment) -> Dict[str, Any]:
        """The method payload submitted to the gateway."""

    def describe(self, payment: Payment) -> str:
        """Log-safe description of the payment's method details."""
        return self.method_id

    async def _call(self, awaitable: Awaitable[T], operation: str) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.config.timeout_seconds)
        except asyncio.TimeoutError:
            raise GatewayTimeoutError(
                gateway=self.config.name,
                operation=operation,
                timeout=self.config.timeout_seconds,
            )

    async def _connect(self) -> GatewaySession:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.config.connect_attempts),
            wait=wait_exponential(multiplier=self.config.retry_backoff, max=10),
            retry=retry_if_exception_type((GatewayConnectionError, ConnectionError)),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.info(
                        f"Retrying {self.config.name} connect "
                        f"(attempt {attempt.retry_state.attempt_number}/{self.config.connect_attempts})"
                    )
                return await self._call(
                    self.gateway.connect(self.config.credentials, self.config.environment),
                    "connect",
                )

    @asynccontextmanager
    async def session(self) -> AsyncIterator[GatewaySession]:
        """
        Open a gateway session for one operation.

        Raises:
            ConfigurationError: If the gateway has no credentials
            GatewayConnectionError: If no session could be opened
            GatewayTimeoutError: If connecting exceeded the timeout
        """
        missing = self.config.missing_credentials()
        if missing:
            raise ConfigurationError(
                f"{self.config.name} gateway is not configured",
                config_key=",".join(missing),
            )

        session = await self._connect()
        try:
            yield session
        finally:
            await session.close()

    async def process(self, payment: Payment) -> PaymentResult:
        try:
            async with self.session() as session:
                charge = await self._call(
                    session.submit(
                        payment.amount,
                        payment.currency,
                        self.method_detail(payment),
                        payment.id,
                    ),
                    "submit",
                )
            if not charge.transaction_id:
                raise BackendError(
                    "Gateway returned no transaction id",
                    gateway=self.config.name,
                    operation="submit",
                )

        except BaseAppError as e:
            logger.warning(
                f"{self.method_id} payment {payment.id} ({self.describe(payment)}) failed: "
                f"[{e.error_code}] {e.message}"
            )
            return PaymentResult.from_error(e, payment.id)
        except (ConnectionError, OSError):
            logger.warning(f"Network error charging {payment.id} via {self.config.name}", exc_info=True)
            return PaymentResult.from_error(
                BackendError("Gateway network error", gateway=self.config.name, operation="submit"),
                payment.id,
            )

        logger.info(
            f"{self.method_id} payment {payment.id} ({self.describe(payment)}) "
            f"charged as {charge.transaction_id}"
        )
        return PaymentResult.succeeded(charge.transaction_id, payment.id)

    async def refund(self, payment: Payment, transaction_id: str) -> RefundResult:
        try:
            async with self.session() as session:
                reversal = await self._call(session.reverse(transaction_id), "reverse")
            if not reversal.refund_id:
                raise BackendError(
                    "Gateway returned no refund id",
                    gateway=self.config.name,
                    operation="reverse",
                )

        except BaseAppError as e:
            logger.warning(
                f"Refund of {transaction_id} for payment {payment.id} failed: [{e.error_code}] {e.message}"
            )
            return RefundResult.from_error(e, transaction_id)
        except (ConnectionError, OSError):
            logger.warning(f"Network error reversing {transaction_id} via {self.config.name}", exc_info=True)
            return RefundResult.from_error(
                BackendError("Gateway network error", gateway=self.config.name, operation="reverse"),
                transaction_id,
            )

        logger.info(f"Transaction {transaction_id} refunded as {reversal.refund_id}")
        return RefundResult.succeeded(reversal.refund_id, transaction_id)
