from beanie import Document, Indexed
from pydantic import Field
from datetime import datetime, timezone
from typing import Any, Dict, Optional


# Terminal payment outcome recorded against its idempotency key
class LedgerEntry(Document):
    """Idempotency ledger entry stored in MongoDB"""

    idempotency_key: Indexed(str, unique=True)  # One terminal outcome per key
    result: Dict[str, Any]  # PaymentResult in JSON form
    success: bool
    transaction_id: Optional[str] = None
    recorded_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Settings:
        name = "idempotency_ledger"
