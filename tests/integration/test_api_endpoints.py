from unittest.mock import AsyncMock

from conftest import create_payment_payload
from paygate.core.exceptions import DatabaseError


class TestAPIEndpointsIntegration:
    def test_health_check(self, client):
        response = client.get("/")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "active"
        assert body["service"] == "PayGate"
        assert body["methods"] == ["credit-card", "paypal"]
        assert body["ledger"] == "memory"

    def test_request_id_header(self, client):
        response = client.get("/", headers={"X-Request-ID": "req_from_caller"})
        assert response.headers["X-Request-ID"] == "req_from_caller"

        generated = client.get("/")
        assert generated.headers["X-Request-ID"].startswith("req_")

    def test_card_payment_success(self, client):
        response = client.post("/payments", json=create_payment_payload())

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["transaction_id"] == "tx_1"
        assert body["payment_id"] == "api_pay_1"
        assert body["error"] is None

    def test_paypal_payment_success(self, client):
        payload = create_payment_payload(
            payment_id="api_pp_1",
            amount="25.50",
            currency="EUR",
            method="paypal",
            details={"email": "buyer@example.com"},
        )

        response = client.post("/payments", json=payload)

        assert response.status_code == 200
        assert response.json()["transaction_id"] == "tx_1"

    def test_payment_id_generated_when_omitted(self, client):
        response = client.post("/payments", json=create_payment_payload(payment_id=None))

        assert response.status_code == 200
        assert response.json()["payment_id"].startswith("pay_")

    def test_expired_card(self, client):
        payload = create_payment_payload(details={"card_number": "4111111111111111", "expiry": "01/20", "cvv": "123"})

        response = client.post("/payments", json=payload)

        assert response.status_code == 422
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "Card has expired"
        assert body["error_code"] == "validation_error"

    def test_invalid_paypal_email(self, client):
        payload = create_payment_payload(method="paypal", currency="EUR", details={"email": "not-an-email"})

        response = client.post("/payments", json=payload)

        assert response.status_code == 422
        assert response.json()["error"] == "Invalid PayPal email"

    def test_unsupported_method(self, client):
        response = client.post("/payments", json=create_payment_payload(method="bitcoin"))

        assert response.status_code == 400
        assert response.json()["error_code"] == "unsupported_method"

    def test_schema_rejections(self, client, invalid_payloads):
        for name, payload in invalid_payloads.items():
            response = client.post("/payments", json=payload)
            assert response.status_code == 422, name
            assert "detail" in response.json()

    def test_amount_scale_rejected(self, client):
        response = client.post("/payments", json=create_payment_payload(amount="10.123"))
        assert response.status_code == 422

    def test_ledger_failure_is_503(self, client):
        client.app.state.processor.guard.ledger.get = AsyncMock(
            side_effect=DatabaseError("read failed", operation="find_ledger_entry")
        )

        response = client.post("/payments", json=create_payment_payload())

        assert response.status_code == 503
        assert response.json()["error_code"] == "database_error"

    def test_refund_round_trip(self, client):
        payload = create_payment_payload()
        charged = client.post("/payments", json=payload).json()

        refund = client.post(f"/payments/{charged['transaction_id']}/refund", json=payload)
        again = client.post(f"/payments/{charged['transaction_id']}/refund", json=payload)

        assert refund.status_code == 200
        assert refund.json()["refund_id"] == "rf_1"
        assert refund.json()["transaction_id"] == "tx_1"
        assert again.status_code == 404
        assert again.json()["error_code"] == "not_found"

    def test_refund_unknown_transaction(self, client):
        response = client.post("/payments/tx_404/refund", json=create_payment_payload())

        assert response.status_code == 404
        assert response.json()["transaction_id"] == "tx_404"


class TestMonitoringEndpoint:
    def test_requires_key(self, client):
        response = client.get("/monitoring/errors")
        assert response.status_code == 403

    def test_rejects_wrong_key(self, client):
        response = client.get("/monitoring/errors", headers={"X-Monitoring-Key": "wrong"})
        assert response.status_code == 403

    def test_reports_outcome_counts(self, client, mock_env_vars):
        client.post("/payments", json=create_payment_payload(method="bitcoin"))

        response = client.get(
            "/monitoring/errors",
            headers={"X-Monitoring-Key": mock_env_vars["MONITORING_API_KEY"]},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["error_counts"]["outcome:unsupported_method"] == 1
        assert body["mode"] == "ephemeral"
