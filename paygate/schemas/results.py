"""
Outcome values exchanged between strategies, the processor and the HTTP layer.

A failed operation always carries a non-empty `error` and an `error_code`;
a successful one always carries the backend-assigned identifier. The model
validators enforce this so an inconsistent result can never be built.
"""

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from paygate.core.exceptions import BaseAppError

# Outcomes that will not change on replay and are recorded by the idempotency guard
TERMINAL_ERROR_CODES = frozenset({"payment_declined"})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ValidationResult(BaseModel):
    """Result of a strategy's validate() call."""

    model_config = ConfigDict(frozen=True)

    valid: bool = Field(..., description="Whether every rule passed")
    errors: List[str] = Field(default_factory=list, description="Violated rules, in check order")

    @model_validator(mode="after")
    def errors_match_validity(self):
        if self.valid and self.errors:
            raise ValueError("A valid result cannot carry errors")
        if not self.valid and not self.errors:
            raise ValueError("An invalid result must list at least one error")
        return self

    @classmethod
    def from_errors(cls, errors: List[str]) -> "ValidationResult":
        return cls(valid=not errors, errors=list(errors))


class OperationResult(BaseModel):
    """Shared fields of payment and refund outcomes."""

    model_config = ConfigDict(frozen=True)

    success: bool = Field(..., description="Whether the operation was successful")
    error: Optional[str] = Field(None, description="Human-readable failure message")
    error_code: Optional[str] = Field(None, description="Machine-readable failure kind")
    timestamp: datetime = Field(default_factory=utcnow, description="When the outcome was produced")


class PaymentResult(OperationResult):
    """Outcome of processing a payment."""

    transaction_id: Optional[str] = Field(None, description="Backend transaction identifier")
    payment_id: Optional[str] = Field(None, description="Idempotency identifier of the payment")

    @model_validator(mode="after")
    def exactly_one_outcome(self):
        if self.success:
            if not self.transaction_id:
                raise ValueError("A successful payment must carry a transaction_id")
            if self.error:
                raise ValueError("A successful payment cannot carry an error")
        else:
            if not self.error:
                raise ValueError("A failed payment must carry an error")
            if self.transaction_id:
                raise ValueError("A failed payment cannot carry a transaction_id")
        return self

    @property
    def is_terminal(self) -> bool:
        return self.success or self.error_code in TERMINAL_ERROR_CODES

    @classmethod
    def succeeded(cls, transaction_id: str, payment_id: str = None) -> "PaymentResult":
        return cls(success=True, transaction_id=transaction_id, payment_id=payment_id)

    @classmethod
    def failed(cls, error: str, error_code: str, payment_id: str = None) -> "PaymentResult":
        return cls(success=False, error=error, error_code=error_code, payment_id=payment_id)

    @classmethod
    def from_error(cls, exc: BaseAppError, payment_id: str = None) -> "PaymentResult":
        return cls.failed(exc.message or exc.__class__.__name__, exc.error_code, payment_id)


class RefundResult(OperationResult):
    """Outcome of reversing a previously successful transaction."""

    refund_id: Optional[str] = Field(None, description="Backend refund identifier")
    transaction_id: str = Field(..., description="Transaction being reversed")

    @model_validator(mode="after")
    def exactly_one_outcome(self):
        if self.success:
            if not self.refund_id:
                raise ValueError("A successful refund must carry a refund_id")
            if self.error:
                raise ValueError("A successful refund cannot carry an error")
        else:
            if not self.error:
                raise ValueError("A failed refund must carry an error")
            if self.refund_id:
                raise ValueError("A failed refund cannot carry a refund_id")
        return self

    @classmethod
    def succeeded(cls, refund_id: str, transaction_id: str) -> "RefundResult":
        return cls(success=True, refund_id=refund_id, transaction_id=transaction_id)

    @classmethod
    def failed(cls, error: str, error_code: str, transaction_id: str) -> "RefundResult":
        return cls(success=False, error=error, error_code=error_code, transaction_id=transaction_id)

    @classmethod
    def from_error(cls, exc: BaseAppError, transaction_id: str) -> "RefundResult":
        return cls.failed(exc.message or exc.__class__.__name__, exc.error_code, transaction_id)
