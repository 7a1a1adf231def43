"""Integration tests for webhook API endpoints."""

from unittest.mock import MagicMock, patch

import stripe
from fastapi.testclient import TestClient

ORDER_ID = "660e8400-e29b-41d4-a716-446655440000"


def intent_event(event_type: str, **intent: object) -> dict:
    return {
        "id": "evt_123",
        "type": event_type,
        "data": {"object": {"id": "pi_test_123", "metadata": {"order_id": ORDER_ID}, **intent}},
    }


class TestStripeWebhook:
    """Tests for POST /api/v1/webhooks/stripe endpoint."""

    @patch("src.services.checkout_service.get_stripe")
    @patch("src.services.order_service.get_supabase_client")
    def test_payment_succeeded_reconciles_pending_order(
        self,
        mock_supabase: MagicMock,
        mock_stripe: MagicMock,
        client: TestClient,
    ) -> None:
        mock_stripe.return_value.Webhook.construct_event.return_value = intent_event(
            "payment_intent.succeeded", latest_charge="ch_test_456"
        )

        pending = MagicMock()
        pending.data = {"id": ORDER_ID, "status": "Pending"}
        mock_supabase.return_value.table.return_value.select.return_value.eq.return_value.maybe_single.return_value.execute.return_value = pending

        updated = MagicMock()
        updated.data = [{"id": ORDER_ID, "status": "Paid"}]
        mock_supabase.return_value.table.return_value.update.return_value.eq.return_value.execute.return_value = updated

        response = client.post(
            "/api/v1/webhooks/stripe",
            content=b'{"test": "payload"}',
            headers={"stripe-signature": "valid_signature"},
        )

        assert response.status_code == 200
        assert response.json()["status"] == "received"
        update_data = mock_supabase.return_value.table.return_value.update.call_args[0][0]
        assert update_data["status"] == "Paid"
        assert update_data["payment_reference"] == "ch_test_456"

    @patch("src.services.checkout_service.get_stripe")
    @patch("src.services.order_service.get_supabase_client")
    def test_payment_canceled_fails_order(
        self,
        mock_supabase: MagicMock,
        mock_stripe: MagicMock,
        client: TestClient,
    ) -> None:
        mock_stripe.return_value.Webhook.construct_event.return_value = intent_event("payment_intent.canceled")
        failed = MagicMock()
        failed.data = [{"id": ORDER_ID, "status": "Failed"}]
        mock_supabase.return_value.table.return_value.update.return_value.eq.return_value.eq.return_value.execute.return_value = failed

        response = client.post(
            "/api/v1/webhooks/stripe",
            content=b"{}",
            headers={"stripe-signature": "valid_signature"},
        )

        assert response.status_code == 200
        update_data = mock_supabase.return_value.table.return_value.update.call_args[0][0]
        assert update_data["failure_reason"] == "cancelled"

    @patch("src.services.checkout_service.get_stripe")
    @patch("src.services.order_service.get_supabase_client")
    def test_unhandled_event_is_acknowledged(
        self,
        mock_supabase: MagicMock,
        mock_stripe: MagicMock,
        client: TestClient,
    ) -> None:
        mock_stripe.return_value.Webhook.construct_event.return_value = intent_event("charge.refunded")

        response = client.post(
            "/api/v1/webhooks/stripe",
            content=b"{}",
            headers={"stripe-signature": "valid_signature"},
        )

        assert response.status_code == 200
        mock_supabase.return_value.table.assert_not_called()

    def test_missing_signature_returns_400(self, client: TestClient) -> None:
        response = client.post("/api/v1/webhooks/stripe", content=b"{}")

        assert response.status_code == 400

    @patch("src.services.checkout_service.get_stripe")
    @patch("src.services.order_service.get_supabase_client")
    def test_invalid_signature_returns_400(
        self,
        mock_supabase: MagicMock,
        mock_stripe: MagicMock,
        client: TestClient,
    ) -> None:
        mock_stripe.return_value.Webhook.construct_event.side_effect = (
            stripe.error.SignatureVerificationError("Invalid", "sig")
        )

        response = client.post(
            "/api/v1/webhooks/stripe",
            content=b"{}",
            headers={"stripe-signature": "bad_signature"},
        )

        assert response.status_code == 400
