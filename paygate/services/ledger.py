"""
Transaction ledger: where terminal payment outcomes are recorded against
their idempotency key.

The ledger is only read and written by the idempotency guard. Writes are
first-wins: once a key has a terminal outcome it never changes.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

from pymongo.errors import DuplicateKeyError

from paygate.core.exceptions import DatabaseError
from paygate.models import LedgerEntry
from paygate.schemas.results import PaymentResult

logger = logging.getLogger(__name__)


class TransactionLedger(ABC):
    @abstractmethod
    async def get(self, idempotency_key: str) -> Optional[PaymentResult]:
        """Recorded outcome for the key, or None."""

    @abstractmethod
    async def put(self, idempotency_key: str, result: PaymentResult) -> None:
        """Record a terminal outcome. An existing entry is kept."""


class InMemoryLedger(TransactionLedger):
    """Process-local ledger, lost on restart."""

    def __init__(self):
        self._entries: Dict[str, PaymentResult] = {}

    async def get(self, idempotency_key: str) -> Optional[PaymentResult]:
        return self._entries.get(idempotency_key)

    async def put(self, idempotency_key: str, result: PaymentResult) -> None:
        self._entries.setdefault(idempotency_key, result)

    def __len__(self) -> int:
        return len(self._entries)


class MongoLedger(TransactionLedger):
    """Ledger backed by the LedgerEntry collection (unique index on the key)."""

    async def get(self, idempotency_key: str) -> Optional[PaymentResult]:
        """
        Raises:
            DatabaseError: If the lookup fails or the stored entry is unreadable
        """
        try:
            entry = await LedgerEntry.find_one({"idempotency_key": idempotency_key})
            if not entry:
                return None
            return PaymentResult.model_validate(entry.result)

        except Exception:
            logger.error(f"Database error reading ledger entry {idempotency_key}", exc_info=True)
            raise DatabaseError(
                "Failed to read idempotency ledger",
                operation="find_ledger_entry",
            )

    async def put(self, idempotency_key: str, result: PaymentResult) -> None:
        """
        Raises:
            DatabaseError: If the insert fails for any reason other than a duplicate key
        """
        entry = LedgerEntry(
            idempotency_key=idempotency_key,
            result=result.model_dump(mode="json"),
            success=result.success,
            transaction_id=result.transaction_id,
        )

        try:
            await entry.insert()
        except DuplicateKeyError:
            # Another worker recorded this key first; its outcome stands
            logger.info(f"Ledger entry {idempotency_key} already recorded")
        except Exception:
            logger.error(f"Database error recording ledger entry {idempotency_key}", exc_info=True)
            raise DatabaseError(
                "Failed to record idempotency ledger entry",
                operation="insert_ledger_entry",
            )
