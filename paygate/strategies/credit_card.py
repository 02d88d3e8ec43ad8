"""
Credit card payments.

Expected details:
    card_number      13-19 digits, spaces and dashes allowed
    expiry           "MM/YY" or "MM/YYYY"
    cvv              3 or 4 digits
    cardholder_name  optional
"""

import re
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from paygate.core.config import CREDIT_CARD, GatewayConfig
from paygate.gateways.base import GatewayAdapter
from paygate.schemas.payment import Payment
from paygate.schemas.results import ValidationResult, utcnow
from paygate.strategies.base import GatewayStrategy

EXPIRY_PATTERN = re.compile(r"([0-9]{1,2})\s*/\s*([0-9]{2}|[0-9]{4})")
CVV_PATTERN = re.compile(r"[0-9]{3,4}")
CARD_NUMBER_PATTERN = re.compile(r"[0-9]{13,19}")


def normalize_card_number(card_number: str) -> str:
    return re.sub(r"[\s-]", "", card_number)


def luhn_valid(digits: str) -> bool:
    """Luhn checksum over a string of digits."""
    total = 0
    for index, char in enumerate(reversed(digits)):
        value = int(char)
        if index % 2 == 1:
            value *= 2
            if value > 9:
                value -= 9
        total += value
    return total % 10 == 0


def is_valid_card_number(card_number: str) -> bool:
    digits = normalize_card_number(card_number)
    if not CARD_NUMBER_PATTERN.fullmatch(digits):
        return False
    return luhn_valid(digits)


def parse_expiry(expiry: str) -> Optional[Tuple[int, int]]:
    """Return (month, four-digit year), or None if the format is wrong."""
    match = EXPIRY_PATTERN.fullmatch(expiry.strip())
    if not match:
        return None
    month = int(match.group(1))
    year = int(match.group(2))
    if not 1 <= month <= 12:
        return None
    if year < 100:
        year += 2000
    return month, year


def is_expired(month: int, year: int, now: datetime) -> bool:
    # Cards are valid through the last day of their expiry month
    return (year, month) < (now.year, now.month)


def _text(details: Dict[str, Any], key: str) -> str:
    value = details.get(key)
    return "" if value is None else str(value).strip()


class CreditCardStrategy(GatewayStrategy):
    """Card payments validated locally and settled through a card gateway."""

    method_id = CREDIT_CARD
    aliases = ("card",)

    def __init__(
        self,
        gateway: GatewayAdapter,
        config: GatewayConfig,
        clock: Callable[[], datetime] = utcnow,
    ):
        super().__init__(gateway, config)
        self.clock = clock

    def validate(self, payment: Payment) -> ValidationResult:
        errors: List[str] = []
        card_number = _text(payment.details, "card_number")
        expiry = _text(payment.details, "expiry")
        cvv = _text(payment.details, "cvv")

        if not card_number:
            errors.append("Card number is required")
        elif not is_valid_card_number(card_number):
            errors.append("Invalid card number")

        if not expiry:
            errors.append("Expiry date is required")
        else:
            parsed = parse_expiry(expiry)
            if parsed is None:
                errors.append("Invalid expiry date format")
            elif is_expired(*parsed, now=self.clock()):
                errors.append("Card has expired")

        if not cvv:
            errors.append("CVV is required")
        elif not CVV_PATTERN.fullmatch(cvv):
            errors.append("Invalid CVV")

        return ValidationResult.from_errors(errors)

    def method_detail(self, payment: Payment) -> Dict[str, Any]:
        month, year = parse_expiry(_text(payment.details, "expiry"))
        detail = {
            "card_number": normalize_card_number(_text(payment.details, "card_number")),
            "expiry_month": month,
            "expiry_year": year,
            "cvv": _text(payment.details, "cvv"),
        }
        cardholder_name = _text(payment.details, "cardholder_name")
        if cardholder_name:
            detail["cardholder_name"] = cardholder_name
        return detail

    def describe(self, payment: Payment) -> str:
        digits = normalize_card_number(_text(payment.details, "card_number"))
        return f"card ending {digits[-4:]}" if len(digits) >= 4 else "card"
