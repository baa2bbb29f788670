from datetime import datetime
from decimal import Decimal

import stripe

from conftest import TestingSessionLocal, VENDOR_ID, checkout_session, completed_event, order_body
from orderflow.models import Order, PaymentIntent, PushToken


def seed_order(status="pending", vendor_id=VENDOR_ID, txn_id="cs_seed", customer="Seed", **fields):
    db = TestingSessionLocal()
    order = Order(
        vendor_id=vendor_id,
        customer_name=customer,
        customer_phone="9800000000",
        status=status,
        payment_status=fields.pop("payment_status", "paid"),
        total_amount=Decimal("100.00"),
        payment_intent_id=txn_id,
        **fields,
    )
    db.add(order)
    db.commit()
    order_id = order.id
    db.close()
    return order_id


def test_initiate_order_payment(client, mocker):
    create = mocker.patch("orderflow.routes.create_checkout", return_value=checkout_session(mocker, "cs_100"))

    response = client.post("/payment/initiate", json=order_body())

    assert response.status_code == 200
    assert response.json()["gateway_txn_id"] == "cs_100"
    assert response.json()["payment_url"].endswith("cs_100")
    assert create.call_args.args[0] == Decimal("250.00")

    db = TestingSessionLocal()
    intent = db.get(PaymentIntent, "cs_100")
    assert intent.status == "created"
    assert intent.reference_id is None
    assert '"vendor_id":7' in intent.order_payload
    # paying does not create the order
    assert db.query(Order).count() == 0
    db.close()


def test_initiate_dues_payment_requires_reference(client, mocker):
    mocker.patch("orderflow.routes.create_checkout", return_value=checkout_session(mocker, "cs_dues"))

    missing = client.post("/payment/initiate", json={
        "payment_type": "dues", "amount": "500.00", "customer_name": "Cafe", "customer_mobile": "98",
    })
    ok = client.post("/payment/initiate", json={
        "payment_type": "dues", "reference_id": VENDOR_ID, "amount": "500.00",
        "customer_name": "Cafe", "customer_mobile": "98",
    })

    assert missing.status_code == 422
    assert ok.status_code == 200


def test_initiate_rejects_amount_that_differs_from_cart(client, mocker):
    create = mocker.patch("orderflow.routes.create_checkout")

    response = client.post("/payment/initiate", json=order_body(amount="10.00"))

    assert response.status_code == 422
    create.assert_not_called()


def test_initiate_gateway_error_leaves_no_record(client, mocker):
    mocker.patch("orderflow.routes.create_checkout", side_effect=stripe.APIConnectionError("Stripe unavailable"))

    response = client.post("/payment/initiate", json=order_body())

    assert response.status_code == 502
    assert response.json()["detail"] == "Payment could not be started"
    db = TestingSessionLocal()
    assert db.query(PaymentIntent).count() == 0
    db.close()


def test_webhook_success_creates_one_pending_order(client, mocker, notifier):
    mocker.patch("orderflow.routes.create_checkout", return_value=checkout_session(mocker, "cs_tx1"))
    client.post("/payment/initiate", json=order_body())
    mocker.patch("stripe.Webhook.construct_event", return_value=completed_event("cs_tx1"))

    first = client.post("/webhook", content="raw", headers={"stripe-signature": "sig"})
    second = client.post("/webhook", content="raw", headers={"stripe-signature": "sig"})

    assert first.json() == {"ok": True}
    assert second.status_code == 200

    db = TestingSessionLocal()
    orders = db.query(Order).all()
    assert len(orders) == 1
    order = orders[0]
    assert order.status == "pending"
    assert order.payment_status == "paid"
    assert order.total_amount == Decimal("250.00")
    assert [item.subtotal for item in order.items] == [Decimal("200.00"), Decimal("50.00")]
    assert db.get(PaymentIntent, "cs_tx1").order_id == order.id
    db.close()

    notifier.notify_new_order.assert_awaited_once()


def test_webhook_failure_never_creates_order(client, mocker, notifier):
    mocker.patch("orderflow.routes.create_checkout", return_value=checkout_session(mocker, "cs_fail"))
    client.post("/payment/initiate", json=order_body())
    mocker.patch("stripe.Webhook.construct_event",
                 return_value=completed_event("cs_fail", event_type="checkout.session.expired"))

    response = client.post("/webhook", content="raw", headers={"stripe-signature": "sig"})

    assert response.status_code == 200
    db = TestingSessionLocal()
    assert db.get(PaymentIntent, "cs_fail").status == "failure"
    assert db.query(Order).count() == 0
    db.close()
    notifier.notify_new_order.assert_not_awaited()


def test_success_after_failure_is_ignored(client, mocker):
    mocker.patch("orderflow.routes.create_checkout", return_value=checkout_session(mocker, "cs_late"))
    client.post("/payment/initiate", json=order_body())

    mocker.patch("stripe.Webhook.construct_event",
                 return_value=completed_event("cs_late", event_type="checkout.session.async_payment_failed"))
    client.post("/webhook", content="raw", headers={"stripe-signature": "sig"})
    mocker.patch("stripe.Webhook.construct_event",
                 return_value=completed_event("cs_late", event_type="checkout.session.async_payment_succeeded"))
    client.post("/webhook", content="raw", headers={"stripe-signature": "sig"})

    db = TestingSessionLocal()
    assert db.get(PaymentIntent, "cs_late").status == "failure"
    assert db.query(Order).count() == 0
    db.close()


def test_webhook_unpaid_completion_waits(client, mocker):
    mocker.patch("orderflow.routes.create_checkout", return_value=checkout_session(mocker, "cs_async"))
    client.post("/payment/initiate", json=order_body())
    mocker.patch("stripe.Webhook.construct_event", return_value=completed_event("cs_async", payment_status="unpaid"))

    client.post("/webhook", content="raw", headers={"stripe-signature": "sig"})

    db = TestingSessionLocal()
    assert db.get(PaymentIntent, "cs_async").status == "pending"
    assert db.query(Order).count() == 0
    db.close()


def test_webhook_unknown_intent(client, mocker):
    mocker.patch("stripe.Webhook.construct_event", return_value=completed_event("cs_unknown"))

    response = client.post("/webhook", headers={"stripe-signature": "test"})

    assert response.status_code == 200


def test_stripe_webhook_invalid_signature(client, mocker):
    mocker.patch("stripe.Webhook.construct_event",
                 side_effect=stripe.SignatureVerificationError("Invalid", "sig"))

    response = client.post("/webhook", headers={"stripe-signature": "invalid_sig"})

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid signature"


def test_verify_reconciles_with_gateway(client, mocker, notifier):
    mocker.patch("orderflow.routes.create_checkout", return_value=checkout_session(mocker, "cs_verify"))
    client.post("/payment/initiate", json=order_body())
    retrieve = mocker.patch("orderflow.routes.retrieve_checkout",
                            return_value={"id": "cs_verify", "status": "complete", "payment_status": "paid"})

    first = client.get("/payment/verify/cs_verify")
    second = client.get("/payment/verify/cs_verify")

    assert first.json()["status"] == "success"
    assert first.json()["transaction"]["order_id"] is not None
    assert second.json()["transaction"]["order_id"] == first.json()["transaction"]["order_id"]
    # settled intents are not looked up again
    retrieve.assert_called_once()
    notifier.notify_new_order.assert_awaited_once()


def test_verify_open_session_is_scanning(client, mocker):
    mocker.patch("orderflow.routes.create_checkout", return_value=checkout_session(mocker, "cs_open"))
    client.post("/payment/initiate", json=order_body())
    mocker.patch("orderflow.routes.retrieve_checkout", return_value={"id": "cs_open", "status": "open"})

    response = client.get("/payment/verify/cs_open")

    assert response.json()["status"] == "scanning"


def test_verify_unknown_transaction(client):
    response = client.get("/payment/verify/cs_missing")

    assert response.status_code == 404


def test_list_orders_is_fifo_and_scoped(client):
    newer = seed_order(txn_id="cs_a", customer="Second")
    older = seed_order(txn_id="cs_b", customer="First")
    db = TestingSessionLocal()
    db.get(Order, older).created_at = db.get(Order, newer).created_at.replace(year=2020)
    db.commit()
    db.close()
    seed_order(txn_id="cs_c", vendor_id=99)
    seed_order(txn_id="cs_d", status="accepted")
    seed_order(txn_id="cs_e", payment_status="pending")

    response = client.get("/orders/?status=pending&page_size=100")

    body = response.json()
    assert [o["id"] for o in body["data"]] == [older, newer]
    assert body["count"] == 2


def test_accept_moves_order_between_buckets(client, notifier):
    order_id = seed_order()

    response = client.post(f"/orders/{order_id}/edit", data={"status": "accepted"})

    assert response.status_code == 200
    assert response.json()["status"] == "accepted"
    pending = client.get("/orders/?status=pending").json()["data"]
    accepted = client.get("/orders/?status=accepted").json()["data"]
    assert order_id not in [o["id"] for o in pending]
    assert order_id in [o["id"] for o in accepted]
    notifier.notify_status_change.assert_awaited_once()


def test_reject_without_reason_keeps_order_pending(client):
    order_id = seed_order()

    response = client.post(f"/orders/{order_id}/edit", data={"status": "rejected"})

    assert response.status_code == 400
    assert client.get(f"/orders/{order_id}").json()["status"] == "pending"


def test_reject_records_reason(client):
    order_id = seed_order(status="accepted")

    response = client.post(f"/orders/{order_id}/edit", data={"status": "rejected", "reject_reason": "Out of stock "})

    assert response.json()["status"] == "rejected"
    assert response.json()["reject_reason"] == "Out of stock"


def test_illegal_transition_is_refused(client):
    order_id = seed_order()

    response = client.post(f"/orders/{order_id}/edit", data={"status": "ready"})

    assert response.status_code == 400
    assert client.get(f"/orders/{order_id}").json()["status"] == "pending"


def test_repeated_command_is_a_no_op(client, notifier):
    order_id = seed_order()

    client.post(f"/orders/{order_id}/edit", data={"status": "accepted"})
    again = client.post(f"/orders/{order_id}/edit", data={"status": "accepted"})

    assert again.status_code == 200
    assert again.json()["status"] == "accepted"
    notifier.notify_status_change.assert_awaited_once()


def test_edit_other_vendors_order_is_not_found(client):
    order_id = seed_order(vendor_id=99)

    response = client.post(f"/orders/{order_id}/edit", data={"status": "accepted"})

    assert response.status_code == 404


def test_order_payment_status(client):
    order_id = seed_order(txn_id="cs_paid")
    db = TestingSessionLocal()
    db.add(PaymentIntent(id="cs_paid", payment_type="order", amount=Decimal("100.00"), currency="inr",
                         status="success", order_id=order_id))
    db.commit()
    db.close()

    response = client.get(f"/payment/status/order/{order_id}")

    assert response.json()["has_payment"] is True
    assert response.json()["payment"]["id"] == "cs_paid"


def test_register_push_token_is_idempotent(client):
    client.post("/auth/user/fcm-token/", json={"token": "device-1"})
    response = client.post("/auth/user/fcm-token/", json={"token": "device-1"})

    assert response.status_code == 200
    db = TestingSessionLocal()
    assert db.query(PushToken).filter_by(vendor_id=VENDOR_ID).count() == 1
    db.close()


def test_list_orders_date_window_includes_whole_end_day(client):
    seed_order(txn_id="cs_d1", customer="Day1", created_at=datetime(2026, 3, 1, 9, 0))
    seed_order(txn_id="cs_d2", customer="Day2Late", created_at=datetime(2026, 3, 2, 23, 30))
    seed_order(txn_id="cs_d3", customer="Day3", created_at=datetime(2026, 3, 3, 0, 0))

    one_day = client.get("/orders/?status=pending&start_date=2026-03-02&end_date=2026-03-02").json()
    two_days = client.get("/orders/?status=pending&start_date=2026-03-01&end_date=2026-03-02").json()
    from_day3 = client.get("/orders/?status=pending&start_date=2026-03-03").json()

    assert [o["customer_name"] for o in one_day["data"]] == ["Day2Late"]
    assert [o["customer_name"] for o in two_days["data"]] == ["Day1", "Day2Late"]
    assert two_days["count"] == 2
    assert [o["customer_name"] for o in from_day3["data"]] == ["Day3"]


def test_unpaid_order_cannot_be_transitioned(client, notifier):
    order_id = seed_order(payment_status="pending")

    response = client.post(f"/orders/{order_id}/edit", data={"status": "accepted"})

    assert response.status_code == 400
    assert response.json()["detail"] == "Order could not be updated"
    db = TestingSessionLocal()
    assert db.get(Order, order_id).status == "pending"
    db.close()
    notifier.notify_status_change.assert_not_called()
