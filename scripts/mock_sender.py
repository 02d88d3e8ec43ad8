"""
Send sample payments to a running PayGate instance and check the answers.

Usage:
    PAYGATE_URL=http://localhost:8001 python scripts/mock_sender.py
"""

import asyncio
import logging
import os
import uuid

import httpx
from dotenv import load_dotenv

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

load_dotenv()

BASE_URL = os.getenv("PAYGATE_URL", "http://localhost:8001")
PAYMENTS_URL = f"{BASE_URL}/payments"


def card_payment(**overrides) -> dict:
    payment = {
        "id": f"pay_{uuid.uuid4().hex[:12]}",
        "amount": "100.00",
        "currency": "USD",
        "method": "credit-card",
        "details": {"card_number": "4111 1111 1111 1111", "expiry": "12/30", "cvv": "123"},
    }
    payment.update(overrides)
    return payment


def paypal_payment(**overrides) -> dict:
    payment = {
        "id": f"pay_{uuid.uuid4().hex[:12]}",
        "amount": "25.50",
        "currency": "EUR",
        "method": "paypal",
        "details": {"email": "buyer@example.com"},
    }
    payment.update(overrides)
    return payment


async def send_payment(client: httpx.AsyncClient, payload: dict, url: str = PAYMENTS_URL):
    try:
        response = await client.post(url, json=payload, timeout=10.0)
    except httpx.RequestError as e:
        logger.error(f"Request failed: {str(e)}")
        return None
    logger.info(f"Status: {response.status_code} Response: {response.json()}")
    return response


def check(name: str, response, expected_status: int) -> bool:
    status_code = response.status_code if response is not None else None
    if status_code == expected_status:
        logger.info(f"PASS {name}")
        return True
    logger.info(f"FAIL {name}: expected {expected_status}, got {status_code}")
    return False


async def run_test_scenarios() -> int:
    """Run the scenarios and return the number of failures."""
    failures = 0
    async with httpx.AsyncClient() as client:
        simple_cases = [
            ("Card success", card_payment(), 200),
            ("PayPal success", paypal_payment(), 200),
            ("Expired card", card_payment(details={"card_number": "4111111111111111", "expiry": "01/20", "cvv": "123"}), 422),
            ("Bad PayPal email", paypal_payment(details={"email": "not-an-email"}), 422),
            ("Unknown method", card_payment(method="bank-transfer"), 400),
            ("Too many decimals", card_payment(amount="100.555"), 422),
        ]
        for name, payload, expected in simple_cases:
            logger.info(f"=== {name} ===")
            failures += not check(name, await send_payment(client, payload), expected)

        logger.info("=== Concurrent duplicates ===")
        duplicate = card_payment()
        responses = await asyncio.gather(*(send_payment(client, dict(duplicate)) for _ in range(5)))
        transaction_ids = {r.json().get("transaction_id") for r in responses if r is not None}
        if len(transaction_ids) == 1 and None not in transaction_ids:
            logger.info(f"PASS Concurrent duplicates share {transaction_ids.pop()}")
        else:
            logger.info(f"FAIL Concurrent duplicates produced {transaction_ids}")
            failures += 1

        logger.info("=== Refund round trip ===")
        paid = await send_payment(client, card_payment())
        if paid is not None and paid.status_code == 200:
            refund_url = f"{PAYMENTS_URL}/{paid.json()['transaction_id']}/refund"
            refund_body = card_payment()
            failures += not check("Refund", await send_payment(client, refund_body, refund_url), 200)
            failures += not check("Second refund", await send_payment(client, refund_body, refund_url), 404)
        else:
            failures += 1

    return failures


async def main():
    logger.info("Starting PayGate Mock Sender")
    logger.info(f"Target URL: {PAYMENTS_URL}")

    failures = await run_test_scenarios()
    logger.info(f"Mock sender completed with {failures} failure(s)")


if __name__ == "__main__":
    asyncio.run(main())
