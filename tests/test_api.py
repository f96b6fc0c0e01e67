import json

import pytest
import stripe
from fastapi.testclient import TestClient

from storefront.config import Settings
from storefront.main import create_app

CHECKOUT_FORM = {
    "productPrice": "99.99",
    "productName": "Lampa stojąca",
    "email": "a@b.com",
    "fullName": "Jan Kowalski",
    "address1": "Main 1",
    "zip": "00-001",
    "city": "Warsaw",
    "phone": "123456789",
    "delivery": "courier",
}


@pytest.fixture
def settings(tmp_path):
    return Settings(
        stripe_secret_key="sk_test_123",
        stripe_public_key="pk_test_123",
        stripe_webhook_secret="whsec_test",
        backup_path=tmp_path / "orders_backup.json",
        admin_password="supasecret",
        jwt_secret="test-jwt-secret",
    )


@pytest.fixture
def client(settings):
    with TestClient(create_app(settings)) as c:
        yield c


@pytest.fixture
def payment_intent(mocker):
    mock_pi = mocker.Mock()
    mock_pi.id = "pi_123"
    mock_pi.client_secret = "pi_123_secret_456"
    return mocker.patch("stripe.PaymentIntent.create", return_value=mock_pi)


def read_backup(settings):
    return json.loads(settings.backup_path.read_text(encoding="utf-8"))


def test_create_payment_intent_success(client, settings, payment_intent):
    response = client.post("/create-payment-intent", json=CHECKOUT_FORM)

    assert response.status_code == 200
    assert response.json() == {
        "clientSecret": "pi_123_secret_456",
        "paymentIntentId": "pi_123",
        "amount": 100.99,
    }

    kwargs = payment_intent.call_args.kwargs
    assert kwargs["amount"] == 10099
    assert kwargs["currency"] == "pln"
    assert kwargs["metadata"]["product_name"] == "Lampa stojąca"
    assert kwargs["shipping"]["address"]["country"] == "PL"

    records = read_backup(settings)
    assert len(records) == 1
    assert records[0]["paymentIntentId"] == "pi_123"
    assert records[0]["status"] == "pending"
    assert records[0]["clientSecret"] == "pi_123_secret_456"
    assert records[0]["amount"] == "100.99"
    assert "savedAt" in records[0]


def test_create_payment_intent_accepts_scraped_price(client, payment_intent):
    form = dict(CHECKOUT_FORM, productPrice="49,50 zł")

    response = client.post("/create-payment-intent", json=form)

    assert response.status_code == 200
    assert payment_intent.call_args.kwargs["amount"] == 5050


@pytest.mark.parametrize("field", ["email", "fullName", "address1", "zip", "city", "phone"])
def test_missing_field_rejected_before_gateway(client, settings, payment_intent, field):
    form = dict(CHECKOUT_FORM)
    form[field] = "  "

    response = client.post("/create-payment-intent", json=form)

    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"
    payment_intent.assert_not_called()
    assert not settings.backup_path.exists()


@pytest.mark.parametrize("price", [None, "abc", "0", "-5", ""])
def test_invalid_price_rejected(client, payment_intent, price):
    form = dict(CHECKOUT_FORM, productPrice=price)

    response = client.post("/create-payment-intent", json=form)

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_PRICE"
    payment_intent.assert_not_called()


def test_numeric_form_fields_are_accepted(client, settings, payment_intent):
    form = dict(CHECKOUT_FORM, phone=123456789, zip=1234, productPrice=99.99)

    response = client.post("/create-payment-intent", json=form)

    assert response.status_code == 200
    assert payment_intent.call_args.kwargs["amount"] == 10099
    assert payment_intent.call_args.kwargs["shipping"]["phone"] == "123456789"
    record = read_backup(settings)[0]
    assert record["customer"]["phone"] == "123456789"
    assert record["address"]["postalCode"] == "1234"


@pytest.mark.parametrize("form", [
    dict(CHECKOUT_FORM, phone=["123"]),
    dict(CHECKOUT_FORM, email={"a": "b"}),
])
def test_badly_typed_fields_are_validation_errors(client, payment_intent, form):
    response = client.post("/create-payment-intent", json=form)

    assert response.status_code == 400
    body = response.json()
    assert body["code"] == "VALIDATION_ERROR"
    assert set(body) == {"error", "code"}
    payment_intent.assert_not_called()


def test_malformed_body_is_validation_error(client, payment_intent):
    response = client.post(
        "/create-payment-intent",
        content="{not json",
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"
    payment_intent.assert_not_called()


def test_update_order_status_rejects_badly_typed_body(client):
    response = client.post("/update-order-status", json={"paymentIntentId": {"id": 1}, "status": "failed"})

    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"


def test_gateway_error_passes_code_through(client, settings, mocker):
    mocker.patch(
        "stripe.PaymentIntent.create",
        side_effect=stripe.CardError("Your card was declined.", None, "card_declined", http_status=402),
    )

    response = client.post("/create-payment-intent", json=CHECKOUT_FORM)

    assert response.status_code == 400
    assert response.json() == {"error": "Your card was declined.", "code": "card_declined"}
    assert not settings.backup_path.exists()


def test_gateway_unreachable_is_server_error(client, mocker):
    mocker.patch(
        "stripe.PaymentIntent.create",
        side_effect=stripe.APIConnectionError("Network error"),
    )

    response = client.post("/create-payment-intent", json=CHECKOUT_FORM)

    assert response.status_code == 500
    assert response.json()["code"] == "GATEWAY_ERROR"


def test_update_order_status(client, settings, payment_intent):
    client.post("/create-payment-intent", json=CHECKOUT_FORM)

    response = client.post("/update-order-status", json={"paymentIntentId": "pi_123", "status": "succeeded"})

    assert response.status_code == 200
    assert response.json() == {"success": True}
    assert read_backup(settings)[0]["status"] == "succeeded"


def test_update_unknown_order_status_succeeds_without_record(client, settings):
    response = client.post("/update-order-status", json={"paymentIntentId": "pi_unknown", "status": "succeeded"})

    assert response.status_code == 200
    assert response.json() == {"success": True}
    assert not settings.backup_path.exists()


def test_update_order_status_rejects_unknown_status(client):
    response = client.post("/update-order-status", json={"paymentIntentId": "pi_123", "status": "shipped"})

    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"


def test_admin_login_wrong_password_returns_no_orders(client, payment_intent):
    client.post("/create-payment-intent", json=CHECKOUT_FORM)

    response = client.post("/admin-login", json={"password": "wrong"})

    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized", "code": "UNAUTHORIZED"}


def test_admin_login_lists_orders_without_client_secret(client, payment_intent):
    client.post("/create-payment-intent", json=CHECKOUT_FORM)

    response = client.post("/admin-login", json={"password": "supasecret"})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["hasDatabase"] is False
    assert body["token"]
    assert len(body["orders"]) == 1
    order = body["orders"][0]
    assert order["paymentIntentId"] == "pi_123"
    assert order["source"] == "backup"
    assert "clientSecret" not in order


def test_admin_login_skips_backup_records_with_bad_timestamps(client, settings, payment_intent):
    client.post("/create-payment-intent", json=CHECKOUT_FORM)
    records = read_backup(settings)
    records.append(dict(records[0], paymentIntentId="pi_broken", createdAt=12345))
    settings.backup_path.write_text(json.dumps(records), encoding="utf-8")

    response = client.post("/admin-login", json={"password": "supasecret"})

    assert response.status_code == 200
    assert [o["paymentIntentId"] for o in response.json()["orders"]] == ["pi_123"]


def test_admin_orders_with_token(client, payment_intent):
    client.post("/create-payment-intent", json=CHECKOUT_FORM)
    token = client.post("/admin-login", json={"password": "supasecret"}).json()["token"]

    response = client.get("/admin/orders", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 200
    assert [o["paymentIntentId"] for o in response.json()["orders"]] == ["pi_123"]


def test_admin_orders_rejects_bad_token(client):
    response = client.get("/admin/orders", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401

    response = client.get("/admin/orders")
    assert response.status_code == 401


def test_admin_login_disabled_without_configured_password(tmp_path):
    settings = Settings(backup_path=tmp_path / "orders.json")
    with TestClient(create_app(settings)) as c:
        response = c.post("/admin-login", json={"password": ""})
    assert response.status_code == 401


def test_stripe_webhook_success(client, settings, payment_intent, mocker):
    client.post("/create-payment-intent", json=CHECKOUT_FORM)
    mock_event = {
        "type": "payment_intent.payment_failed",
        "data": {
            "object": {
                "id": "pi_123"
            }
        }
    }
    construct = mocker.patch("stripe.Webhook.construct_event", return_value=mock_event)

    response = client.post(
        "/webhook",
        content="raw_payload",
        headers={"stripe-signature": "fake_sig"}
    )

    assert response.status_code == 200
    assert response.json() == {"received": True}
    assert construct.call_args.args[2] == "whsec_test"
    assert read_backup(settings)[0]["status"] == "failed"


def test_stripe_webhook_ignores_other_events(client, mocker):
    mocker.patch("stripe.Webhook.construct_event", return_value={"type": "charge.refunded", "data": {"object": {}}})

    response = client.post("/webhook", content="{}", headers={"stripe-signature": "sig"})

    assert response.status_code == 200
    assert response.json() == {"received": True}


def test_stripe_webhook_invalid_signature(client, mocker):
    mocker.patch("stripe.Webhook.construct_event", side_effect=stripe.SignatureVerificationError("Invalid", "sig"))

    response = client.post(
        "/webhook",
        headers={"stripe-signature": "invalid_sig"}
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid signature"


def test_public_config_and_health(client):
    assert client.get("/config").json() == {"publishableKey": "pk_test_123"}
    assert client.get("/health").json() == {"ok": True, "hasDatabase": False}


def test_request_id_is_echoed(client):
    response = client.get("/health", headers={"X-Request-ID": "req-42"})
    assert response.headers["X-Request-ID"] == "req-42"
