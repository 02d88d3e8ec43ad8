"""
Backend gateway adapter interface.

A gateway adapter is the boundary to a real settlement network. Strategies
call `connect()` to obtain a session, use it for exactly one submit or
reverse, and close it on every exit path.

Adapters signal outcomes by raising exceptions from paygate.core.exceptions:
    - PaymentDeclinedError: the backend refused the charge
    - GatewayConnectionError: no session could be established (retried on connect)
    - BackendError: any other backend failure
    - NotFoundError: reverse() for an unknown or already-reversed transaction
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Mapping

from paygate.core.config import GatewayCredentials


@dataclass(frozen=True)
class GatewayCharge:
    """Backend acknowledgement of a submitted charge"""
    transaction_id: str


@dataclass(frozen=True)
class GatewayRefund:
    """Backend acknowledgement of a reversal"""
    refund_id: str
    transaction_id: str


class GatewaySession(ABC):
    """An open connection to a settlement backend."""

    @abstractmethod
    async def submit(
        self,
        amount: Decimal,
        currency: str,
        method_detail: Mapping[str, Any],
        idempotency_key: str,
    ) -> GatewayCharge:
        """
        Submit a charge.

        The idempotency key is forwarded so the backend can deduplicate a
        retried submission of the same logical payment.
        """

    @abstractmethod
    async def reverse(self, transaction_id: str) -> GatewayRefund:
        """Fully reverse a previously successful charge."""

    @abstractmethod
    async def close(self) -> None:
        """Release the session. Must be safe to call more than once."""

    async def __aenter__(self) -> "GatewaySession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


class GatewayAdapter(ABC):
    """Factory for sessions against one settlement backend."""

    name: str = "gateway"

    @abstractmethod
    async def connect(self, credentials: GatewayCredentials, environment: str) -> GatewaySession:
        """Open a session using the caller-supplied credentials."""
