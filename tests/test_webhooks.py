"""Stripe webhook settlement: signature checks, PAID/FAILED transitions, idempotency."""
import json
import uuid

import pytest

from helpers import (
    RecordingMailer, create_order, create_product, get_order, get_product, payment_event, post_webhook,
    stripe_signature,
)

SUCCEEDED = "payment_intent.succeeded"
FAILED = "payment_intent.payment_failed"


@pytest.fixture()
def pending(client):
    """Product A (price 10.00, stock 5) and a PENDING order for 2 of it."""
    product = create_product(client, name="Product A", price="10.00", stock=5)
    order = create_order(client, [(product["id"], 2)])
    return product, order


class TestSignature:
    def test_missing_header(self, client, pending):
        _, order = pending
        payload = payment_event(SUCCEEDED, order["id"])
        response = client.post(
            "/api/webhooks/stripe", content=payload, headers={"Content-Type": "application/json"}
        )
        assert response.status_code == 400
        assert response.json() == {"success": False, "message": "Missing stripe-signature header"}

    def test_invalid_signature_mutates_nothing(self, client, pending, mailer):
        product, order = pending
        payload = payment_event(SUCCEEDED, order["id"])

        response = post_webhook(client, payload, signature=stripe_signature(payload, secret="whsec_wrong"))

        assert response.status_code == 400
        assert response.json()["message"].startswith("Webhook Error:")
        assert get_order(client, order["id"])["status"] == "PENDING"
        assert get_product(client, product["id"])["stock"] == 5
        assert mailer.sent == []

    def test_tampered_body_mutates_nothing(self, client, pending):
        product, order = pending
        signed = payment_event(FAILED, order["id"])
        tampered = payment_event(SUCCEEDED, order["id"])

        response = post_webhook(client, tampered, signature=stripe_signature(signed))

        assert response.status_code == 400
        assert get_order(client, order["id"])["status"] == "PENDING"
        assert get_product(client, product["id"])["stock"] == 5

    def test_signed_garbage_is_invalid_payload(self, client):
        response = post_webhook(client, "not json")
        assert response.status_code == 400
        assert response.json()["message"] == "Invalid payload"


class TestPaymentSucceeded:
    def test_settles_pending_order(self, client, pending, mailer):
        product, order = pending
        assert order["total_amount"] == 20.00
        assert order["status"] == "PENDING"

        response = post_webhook(client, payment_event(SUCCEEDED, order["id"]))

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "message": "Webhook processed successfully",
            "data": {"received": True},
        }
        assert get_order(client, order["id"])["status"] == "PAID"
        assert get_product(client, product["id"])["stock"] == 3
        assert [m["to"] for m in mailer.sent] == ["buyer@example.com"]
        assert mailer.sent[0]["status"] == "PAID"

    def test_decrements_every_item(self, client):
        a = create_product(client, name="A", stock=5)
        b = create_product(client, name="B", stock=7)
        order = create_order(client, [(a["id"], 1), (b["id"], 4)])

        post_webhook(client, payment_event(SUCCEEDED, order["id"]))

        assert get_product(client, a["id"])["stock"] == 4
        assert get_product(client, b["id"])["stock"] == 3

    def test_redelivery_is_a_no_op(self, client, pending, mailer):
        product, order = pending
        payload = payment_event(SUCCEEDED, order["id"])

        assert post_webhook(client, payload).status_code == 200
        assert post_webhook(client, payload).status_code == 200
        assert post_webhook(client, payment_event(SUCCEEDED, order["id"])).status_code == 200

        assert get_order(client, order["id"])["status"] == "PAID"
        assert get_product(client, product["id"])["stock"] == 3
        assert len(mailer.sent) == 1

    def test_failed_order_is_not_settled(self, client, pending, mailer):
        product, order = pending
        post_webhook(client, payment_event(FAILED, order["id"]))

        response = post_webhook(client, payment_event(SUCCEEDED, order["id"]))

        assert response.status_code == 200
        assert get_order(client, order["id"])["status"] == "FAILED"
        assert get_product(client, product["id"])["stock"] == 5
        assert mailer.sent == []

    @pytest.mark.parametrize("order_id", [None, "not-a-uuid", str(uuid.uuid4())])
    def test_unresolvable_order_is_acknowledged(self, client, pending, mailer, order_id):
        product, _ = pending
        response = post_webhook(client, payment_event(SUCCEEDED, order_id))

        assert response.status_code == 200
        assert get_product(client, product["id"])["stock"] == 5
        assert mailer.sent == []

    @pytest.mark.parametrize("mailer", [RecordingMailer(fail=True)])
    def test_email_failure_does_not_undo_settlement(self, client, pending, mailer):
        product, order = pending

        response = post_webhook(client, payment_event(SUCCEEDED, order["id"]))

        assert response.status_code == 200
        assert get_order(client, order["id"])["status"] == "PAID"
        assert get_product(client, product["id"])["stock"] == 3

    def test_stock_is_not_rechecked_at_settlement(self, client):
        product = create_product(client, stock=2)
        first = create_order(client, [(product["id"], 2)])
        second = create_order(client, [(product["id"], 2)])

        post_webhook(client, payment_event(SUCCEEDED, first["id"]))
        post_webhook(client, payment_event(SUCCEEDED, second["id"]))

        assert get_order(client, second["id"])["status"] == "PAID"
        assert get_product(client, product["id"])["stock"] == -2


class TestPaymentFailed:
    def test_marks_order_failed(self, client, pending, mailer):
        product, order = pending

        response = post_webhook(client, payment_event(FAILED, order["id"], "Your card was declined."))

        assert response.status_code == 200
        assert get_order(client, order["id"])["status"] == "FAILED"
        assert get_product(client, product["id"])["stock"] == 5
        assert mailer.sent == []

    def test_repeated_failure_is_harmless(self, client, pending):
        _, order = pending
        post_webhook(client, payment_event(FAILED, order["id"]))
        response = post_webhook(client, payment_event(FAILED, order["id"]))

        assert response.status_code == 200
        assert get_order(client, order["id"])["status"] == "FAILED"

    def test_overrides_paid_order(self, client, pending):
        _, order = pending
        post_webhook(client, payment_event(SUCCEEDED, order["id"]))

        post_webhook(client, payment_event(FAILED, order["id"]))

        assert get_order(client, order["id"])["status"] == "FAILED"

    def test_unknown_order_is_acknowledged(self, client):
        response = post_webhook(client, payment_event(FAILED, str(uuid.uuid4())))
        assert response.status_code == 200


def test_other_event_types_are_acknowledged(client, pending):
    product, order = pending
    response = post_webhook(client, payment_event("charge.refunded", order["id"]))

    assert response.status_code == 200
    assert response.json()["data"] == {"received": True}
    assert get_order(client, order["id"])["status"] == "PENDING"
    assert get_product(client, product["id"])["stock"] == 5


class TestUnexpectedBodies:
    @pytest.mark.parametrize("payload", ["[]", "42", '"payment_intent.succeeded"'])
    def test_signed_non_object_body_is_invalid_payload(self, client, payload):
        response = post_webhook(client, payload)
        assert response.status_code == 400
        assert response.json()["message"] == "Invalid payload"

    @pytest.mark.parametrize("order_id", [123, ["a"], {"id": "x"}])
    def test_non_string_order_id_is_acknowledged(self, client, pending, mailer, order_id):
        product, order = pending
        payload = json.dumps({
            "id": "evt_odd_metadata",
            "object": "event",
            "type": SUCCEEDED,
            "data": {"object": {"id": "pi_1", "object": "payment_intent", "metadata": {"orderId": order_id}}},
        })

        response = post_webhook(client, payload)

        assert response.status_code == 200
        assert get_order(client, order["id"])["status"] == "PENDING"
        assert get_product(client, product["id"])["stock"] == 5
        assert mailer.sent == []

    def test_intent_object_of_wrong_type_is_acknowledged(self, client, pending):
        product, _ = pending
        payload = json.dumps({"id": "evt_odd", "object": "event", "type": SUCCEEDED, "data": {"object": ["x"]}})

        response = post_webhook(client, payload)

        assert response.status_code == 200
        assert get_product(client, product["id"])["stock"] == 5
