"""
Payment processing context.

The processor sequences idempotency check -> validation -> processing and
normalizes every business failure into a PaymentResult / RefundResult.
It holds one active strategy, but each call captures the strategy it
starts with, so set_strategy() never affects a call already running.
A strategy can also be passed per call.

No retry logic lives here; callers retry by resubmitting a Payment with the
same id, and the idempotency guard makes that safe.
"""

import logging
from typing import Optional

from paygate.core.exceptions import (
    BaseAppError,
    ConfigurationError,
    DatabaseError,
    PaymentValidationError,
)
from paygate.core.monitoring import error_monitor, monitor_errors
from paygate.schemas.payment import Payment
from paygate.schemas.results import PaymentResult, RefundResult
from paygate.services.idempotency import IdempotencyGuard, SingleFlight
from paygate.services.ledger import TransactionLedger
from paygate.strategies.base import PaymentStrategy
from paygate.strategies.registry import StrategyRegistry

logger = logging.getLogger(__name__)


class PaymentProcessor:
    """Runs payments through the selected payment method strategy"""

    def __init__(
        self,
        strategy: Optional[PaymentStrategy] = None,
        ledger: Optional[TransactionLedger] = None,
        registry: Optional[StrategyRegistry] = None,
    ):
        self._strategy = strategy
        self.registry = registry
        self.guard = IdempotencyGuard(ledger)
        self._refunds: SingleFlight[RefundResult] = SingleFlight()

    @property
    def strategy(self) -> Optional[PaymentStrategy]:
        return self._strategy

    def set_strategy(self, strategy: PaymentStrategy) -> None:
        """Replace the active strategy for calls started from now on."""
        self._strategy = strategy

    def _resolve(self, strategy: Optional[PaymentStrategy]) -> PaymentStrategy:
        resolved = strategy if strategy is not None else self._strategy
        if resolved is None:
            raise ConfigurationError("No payment strategy selected", config_key="strategy")
        return resolved

    @monitor_errors("process_payment")
    async def process_payment(
        self,
        payment: Payment,
        strategy: Optional[PaymentStrategy] = None,
    ) -> PaymentResult:
        """
        Validate and charge a payment at most once per payment id.

        Args:
            payment: The payment attempt
            strategy: Strategy to use instead of the active one

        Returns:
            PaymentResult; failures carry error and error_code
        """
        try:
            active = self._resolve(strategy)
            result = await self.guard.run(payment.id, lambda: self._execute(active, payment))
        except (ConfigurationError, DatabaseError) as e:
            result = PaymentResult.from_error(e, payment.id)

        error_monitor.log_outcome(
            "process_payment",
            result.success,
            result.error_code,
            {"payment_id": payment.id, "method": payment.method},
        )
        return result

    async def _execute(self, strategy: PaymentStrategy, payment: Payment) -> PaymentResult:
        if strategy.method_id and not strategy.accepts(payment.method):
            error = PaymentValidationError(
                f"Payment method '{payment.method}' does not match strategy '{strategy.method_id}'",
                field="method",
            )
            return PaymentResult.from_error(error, payment.id)

        validation = strategy.validate(payment)
        if not validation.valid:
            logger.info(f"Payment {payment.id} rejected by validation: {validation.errors}")
            return PaymentResult.failed(
                ", ".join(validation.errors),
                PaymentValidationError.error_code,
                payment.id,
            )

        try:
            result = await strategy.process(payment)
        except BaseAppError as e:
            # Strategies should return results; normalize one that raised instead
            logger.warning(f"{type(strategy).__name__}.process raised {e.__class__.__name__} for {payment.id}")
            return PaymentResult.from_error(e, payment.id)

        if result.payment_id != payment.id:
            result = result.model_copy(update={"payment_id": payment.id})
        return result

    @monitor_errors("refund_payment")
    async def refund_payment(
        self,
        payment: Payment,
        transaction_id: str,
        strategy: Optional[PaymentStrategy] = None,
    ) -> RefundResult:
        """
        Reverse a previously successful transaction.

        Concurrent refunds of the same transaction share one backend reversal.
        Transaction ids are only unique per payment method.
        """
        try:
            active = self._resolve(strategy)
            result = await self._refunds.run(
                (active.method_id, transaction_id),
                lambda: self._execute_refund(active, payment, transaction_id),
            )
        except ConfigurationError as e:
            result = RefundResult.from_error(e, transaction_id)

        error_monitor.log_outcome(
            "refund_payment",
            result.success,
            result.error_code,
            {"payment_id": payment.id, "transaction_id": transaction_id},
        )
        return result

    async def _execute_refund(
        self,
        strategy: PaymentStrategy,
        payment: Payment,
        transaction_id: str,
    ) -> RefundResult:
        try:
            return await strategy.refund(payment, transaction_id)
        except BaseAppError as e:
            logger.warning(f"{type(strategy).__name__}.refund raised {e.__class__.__name__} for {transaction_id}")
            return RefundResult.from_error(e, transaction_id)

    def _select(self, payment: Payment) -> PaymentStrategy:
        if self.registry is None:
            raise ConfigurationError("Payment processor has no strategy registry", config_key="registry")
        return self.registry.select(payment.method)

    async def handle_payment(self, payment: Payment) -> PaymentResult:
        """Select the strategy for payment.method and process the payment with it."""
        try:
            strategy = self._select(payment)
        except BaseAppError as e:
            logger.info(f"Payment {payment.id} not routed: {e.message}")
            error_monitor.log_outcome("process_payment", False, e.error_code, {"payment_id": payment.id})
            return PaymentResult.from_error(e, payment.id)
        return await self.process_payment(payment, strategy=strategy)

    async def handle_refund(self, payment: Payment, transaction_id: str) -> RefundResult:
        """Select the strategy for payment.method and refund through it."""
        try:
            strategy = self._select(payment)
        except BaseAppError as e:
            error_monitor.log_outcome("refund_payment", False, e.error_code, {"transaction_id": transaction_id})
            return RefundResult.from_error(e, transaction_id)
        return await self.refund_payment(payment, transaction_id, strategy=strategy)
