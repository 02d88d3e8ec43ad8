import pytest

from conftest import make_paypal_payment
from paygate.core.config import PAYPAL, GatewayConfig, GatewayCredentials
from paygate.strategies.paypal import PayPalStrategy


class TestPayPalValidation:
    def test_valid_payment(self, paypal_strategy):
        assert paypal_strategy.validate(make_paypal_payment()).valid

    @pytest.mark.parametrize(
        "email,expected_error",
        [
            ("", "PayPal email is required"),
            (None, "PayPal email is required"),
            ("buyer", "Invalid PayPal email"),
            ("buyer@example", "Invalid PayPal email"),
            ("buyer @example.com", "Invalid PayPal email"),
        ],
    )
    def test_email_rules(self, paypal_strategy, email, expected_error):
        result = paypal_strategy.validate(make_paypal_payment(email=email))
        assert result.errors == [expected_error]

    def test_unsupported_currency_reported_with_email_error(self, paypal_strategy):
        result = paypal_strategy.validate(make_paypal_payment(currency="INR", email="nope"))

        assert result.errors == ["Invalid PayPal email", "Currency INR is not supported by PayPal"]

    def test_describe_hides_local_part(self, paypal_strategy):
        assert paypal_strategy.describe(make_paypal_payment()) == "paypal account at example.com"


class TestPayPalLifecycle:
    @pytest.mark.asyncio
    async def test_process_and_refund(self, paypal_strategy, paypal_gateway):
        payment = make_paypal_payment(email="Buyer@Example.com ")

        charged = await paypal_strategy.process(payment)
        refunded = await paypal_strategy.refund(payment, charged.transaction_id)

        assert charged.success
        assert charged.transaction_id == "tx_1"
        assert refunded.success
        assert refunded.refund_id == "rf_1"
        assert paypal_strategy.method_detail(payment) == {"email": "buyer@example.com"}
        assert paypal_gateway.open_sessions == 0

    @pytest.mark.asyncio
    async def test_missing_client_secret_is_configuration_error(self, paypal_gateway):
        config = GatewayConfig(
            name=PAYPAL,
            credentials=GatewayCredentials(api_key="client_id"),
            requires_secret=True,
        )
        strategy = PayPalStrategy(paypal_gateway, config)

        result = await strategy.process(make_paypal_payment())

        assert result.error_code == "configuration_error"
        assert paypal_gateway.connect_calls == 0
