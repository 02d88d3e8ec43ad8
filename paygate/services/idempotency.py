"""
At-most-once execution keyed by idempotency identifier.

SingleFlight coalesces concurrent calls for the same key onto one running
operation. IdempotencyGuard adds the ledger on top: a key that already has a
terminal outcome is answered from the ledger without running anything.

Both rely on running inside a single event loop: the check for an in-flight
call and the claim of a new one happen without an await in between.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Generic, Hashable, Optional, TypeVar

from paygate.core.exceptions import DatabaseError
from paygate.core.monitoring import error_monitor
from paygate.schemas.results import PaymentResult
from paygate.services.ledger import InMemoryLedger, TransactionLedger

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SingleFlight(Generic[T]):
    """
    Run at most one operation per key at a time.

    Callers arriving while an operation for their key is running wait for it
    and receive the same result object. If the running call is cancelled or
    fails with an exception, one waiter takes over and runs the operation
    itself; the failure is raised only to the call that hit it.
    """

    def __init__(self):
        self._inflight: Dict[Hashable, "asyncio.Future[T]"] = {}

    def in_flight(self, key: Hashable) -> bool:
        return key in self._inflight

    async def run(self, key: Hashable, operation: Callable[[], Awaitable[T]]) -> T:
        while True:
            leader = self._inflight.get(key)
            if leader is None:
                break
            await asyncio.wait({leader})
            if not leader.cancelled():
                return leader.result()

        future = asyncio.get_running_loop().create_future()
        self._inflight[key] = future
        try:
            result = await operation()
        except BaseException:
            future.cancel()
            raise
        else:
            future.set_result(result)
            return result
        finally:
            if self._inflight.get(key) is future:
                del self._inflight[key]


class IdempotencyGuard:
    """Answer repeated payments from the ledger; run new ones exactly once."""

    def __init__(self, ledger: Optional[TransactionLedger] = None):
        self.ledger = ledger if ledger is not None else InMemoryLedger()
        self._flights: SingleFlight[PaymentResult] = SingleFlight()

    def in_flight(self, idempotency_key: str) -> bool:
        return self._flights.in_flight(idempotency_key)

    async def run(
        self,
        idempotency_key: str,
        operation: Callable[[], Awaitable[PaymentResult]],
    ) -> PaymentResult:
        """
        Return the recorded outcome for the key, or run the operation.

        Raises:
            DatabaseError: If the ledger cannot be read
        """
        return await self._flights.run(
            idempotency_key,
            lambda: self._run_once(idempotency_key, operation),
        )

    async def _run_once(
        self,
        idempotency_key: str,
        operation: Callable[[], Awaitable[PaymentResult]],
    ) -> PaymentResult:
        recorded = await self.ledger.get(idempotency_key)
        if recorded is not None:
            logger.info(f"Payment {idempotency_key} already processed; returning recorded result")
            return recorded

        result = await operation()

        if result.is_terminal:
            try:
                # Shielded so a cancelled caller cannot leave the entry half-written
                await asyncio.shield(self.ledger.put(idempotency_key, result))
            except DatabaseError as e:
                error_monitor.log_error(e, {"idempotency_key": idempotency_key, "context": "ledger_put"})
        else:
            logger.info(
                f"Payment {idempotency_key} ended with non-terminal [{result.error_code}]; not recorded"
            )

        return result
