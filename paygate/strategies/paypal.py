"""
PayPal wallet payments.

Expected details:
    email  the PayPal account email
"""

import re
from typing import Any, Dict, List

from paygate.core.config import PAYPAL
from paygate.schemas.payment import Payment
from paygate.schemas.results import ValidationResult
from paygate.strategies.base import GatewayStrategy

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

SUPPORTED_CURRENCIES = frozenset({
    "AUD", "BRL", "CAD", "CHF", "CNY", "CZK", "DKK", "EUR", "GBP", "HKD",
    "HUF", "ILS", "JPY", "MXN", "MYR", "NOK", "NZD", "PHP", "PLN", "SEK",
    "SGD", "THB", "TWD", "USD",
})


class PayPalStrategy(GatewayStrategy):
    method_id = PAYPAL
    aliases = ("wallet",)

    def validate(self, payment: Payment) -> ValidationResult:
        errors: List[str] = []
        email = str(payment.details.get("email") or "").strip()

        if not email:
            errors.append("PayPal email is required")
        elif not EMAIL_PATTERN.match(email) or len(email) > 254:
            errors.append("Invalid PayPal email")

        if payment.currency not in SUPPORTED_CURRENCIES:
            errors.append(f"Currency {payment.currency} is not supported by PayPal")

        return ValidationResult.from_errors(errors)

    def method_detail(self, payment: Payment) -> Dict[str, Any]:
        return {"email": str(payment.details["email"]).strip().lower()}

    def describe(self, payment: Payment) -> str:
        email = str(payment.details.get("email") or "")
        _, _, domain = email.partition("@")
        return f"paypal account at {domain}" if domain else "paypal account"
