"""
Pydantic schemas for payments.

`Payment` is the method-agnostic value the core works on. `PaymentRequest`
is the transport shape accepted by the HTTP layer; it shares every field
rule with `Payment` through `BasePaymentSchema` and converts with
`to_payment()`.
"""

import uuid
from decimal import Decimal
from types import MappingProxyType
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# ISO 4217 minor units for currencies that do not use two decimal places
CURRENCY_MINOR_UNITS = {
    "BIF": 0, "CLP": 0, "DJF": 0, "GNF": 0, "ISK": 0, "JPY": 0, "KMF": 0,
    "KRW": 0, "PYG": 0, "RWF": 0, "UGX": 0, "VND": 0, "VUV": 0, "XAF": 0,
    "XOF": 0, "XPF": 0,
    "BHD": 3, "IQD": 3, "JOD": 3, "KWD": 3, "LYD": 3, "OMR": 3, "TND": 3,
}
DEFAULT_MINOR_UNITS = 2


def minor_units(currency: str) -> int:
    return CURRENCY_MINOR_UNITS.get(currency, DEFAULT_MINOR_UNITS)


def generate_payment_id() -> str:
    return f"pay_{uuid.uuid4().hex}"


def normalize_method(method: str) -> str:
    return method.strip().lower().replace("_", "-")


def freeze_details(details: Mapping[str, Any]) -> Mapping[str, Any]:
    """Read-only copy of a details mapping, nested mappings included."""
    return MappingProxyType({
        key: freeze_details(value) if isinstance(value, Mapping) else value
        for key, value in details.items()
    })


class BasePaymentSchema(BaseModel):
    """
    Shared validation rules for payment values and payment requests.
    """

    amount: Decimal = Field(
        ...,
        gt=0,
        le=1000000,
        max_digits=12,
        description="Payment amount in major units (must be positive)",
    )

    currency: str = Field(
        ...,
        min_length=3,
        max_length=3,
        pattern=r"^[A-Z]{3}$",
        description="ISO 4217 currency code (e.g., USD)",
    )

    method: str = Field(
        ...,
        min_length=1,
        max_length=50,
        description="Payment method identifier (e.g., credit-card, paypal)",
    )

    details: Mapping[str, Any] = Field(
        default_factory=dict,
        repr=False,
        description="Method-specific payload, owned by the selected strategy",
    )

    @field_validator("method")
    @classmethod
    def normalize_method_id(cls, v):
        return normalize_method(v)

    @field_validator("details")
    @classmethod
    def copy_details(cls, v):
        # Detached from the caller's dict and not writable afterwards
        return freeze_details(v)

    @model_validator(mode="after")
    def amount_matches_currency_scale(self):
        exponent = self.amount.as_tuple().exponent
        places = -exponent if isinstance(exponent, int) and exponent < 0 else 0
        allowed = minor_units(self.currency)
        if places > allowed:
            raise ValueError(
                f"Amount has {places} decimal places but {self.currency} allows {allowed}"
            )
        return self


class Payment(BasePaymentSchema):
    """An immutable payment attempt. Retries build a new value with the same id."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(
        default_factory=generate_payment_id,
        min_length=1,
        max_length=100,
        pattern=r"^[a-zA-Z0-9_-]+$",
        description="Idempotency identifier",
    )


class PaymentRequest(BasePaymentSchema):
    """Schema for payment requests received over HTTP."""

    id: Optional[str] = Field(
        None,
        min_length=1,
        max_length=100,
        pattern=r"^[a-zA-Z0-9_-]+$",
        description="Idempotency identifier; generated when omitted",
    )

    def to_payment(self) -> Payment:
        fields = {
            "amount": self.amount,
            "currency": self.currency,
            "method": self.method,
            "details": self.details,
        }
        if self.id:
            fields["id"] = self.id
        return Payment(**fields)
