import hashlib
import hmac
import json
import time

import pytest
from sqlmodel import Session, select

from conftest import build_client, signup_and_login
from neodrive.billing import CheckoutSession, PaymentGateway
from neodrive.models import PaymentHistory, User
from neodrive.quota import GB

WEBHOOK_SECRET = "whsec_test"


class FakeGateway(PaymentGateway):
    def __init__(self):
        super().__init__(secret_key=None, webhook_secret=WEBHOOK_SECRET)
        self.checkouts = []

    def create_customer(self, email, name):
        return f"cus_{name.lower()}"

    def create_checkout_session(self, **kwargs):
        self.checkouts.append(kwargs)
        session_id = f"cs_test_{len(self.checkouts)}"
        return CheckoutSession(id=session_id, url=f"https://checkout.example/{session_id}")


def sign(payload: str, secret: str = WEBHOOK_SECRET) -> str:
    timestamp = int(time.time())
    signature = hmac.new(secret.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def post_event(client, event_type, obj):
    payload = json.dumps({"id": "evt_1", "object": "event", "type": event_type, "data": {"object": obj}})
    return client.post(
        "/api/webhook",
        content=payload,
        headers={"stripe-signature": sign(payload), "Content-Type": "application/json"},
    )


@pytest.fixture
def billing_client(tmp_path, monkeypatch):
    with build_client(tmp_path, monkeypatch, stripe_pro_price_id="price_pro") as c:
        c.app.state.payments = FakeGateway()
        yield c


def test_checkout_creates_pending_payment(billing_client):
    user = signup_and_login(billing_client)
    response = billing_client.post("/api/stripe/checkout", json={"userId": user["id"], "product": "Pro"})
    assert response.status_code == 200
    assert response.json() == {"url": "https://checkout.example/cs_test_1"}

    checkout = billing_client.app.state.payments.checkouts[0]
    assert checkout["price_id"] == "price_pro"
    assert checkout["metadata"] == {"userId": user["id"], "product": "pro"}
    with Session(billing_client.app.state.engine) as db:
        payment = db.exec(select(PaymentHistory)).one()
    assert payment.status == "pending"
    assert payment.stripe_session_id == "cs_test_1"


def test_checkout_errors(billing_client):
    assert billing_client.post("/api/stripe/checkout", json={"userId": "x", "product": "pro"}).status_code == 401

    user = signup_and_login(billing_client)
    assert billing_client.post("/api/stripe/checkout", json={"userId": user["id"]}).status_code == 400
    assert billing_client.post("/api/stripe/checkout", json={"userId": "other", "product": "pro"}).status_code == 403
    response = billing_client.post("/api/stripe/checkout", json={"userId": user["id"], "product": "premium"})
    assert response.status_code == 404


def test_completed_checkout_upgrades_user(billing_client):
    user = signup_and_login(billing_client)
    billing_client.post("/api/stripe/checkout", json={"userId": user["id"], "product": "pro"})

    response = post_event(billing_client, "checkout.session.completed", {
        "id": "cs_test_1",
        "subscription": "sub_1",
        "metadata": {"userId": user["id"], "product": "pro"},
    })
    assert response.status_code == 200

    assert billing_client.get("/api/auth/me").json()["subscription"] == "pro"
    assert billing_client.get("/api/file/getStorageUsage").json()["storageLimit"] == 10 * GB
    with Session(billing_client.app.state.engine) as db:
        payment = db.exec(select(PaymentHistory)).one()
        assert payment.status == "paid"
        assert db.get(User, user["id"]).stripe_subscription_id == "sub_1"

    again = billing_client.post("/api/stripe/checkout", json={"userId": user["id"], "product": "pro"})
    assert again.status_code == 409


def test_invoice_and_cancellation(billing_client):
    user = signup_and_login(billing_client)
    post_event(billing_client, "checkout.session.completed", {
        "id": "cs_other",
        "subscription": "sub_1",
        "metadata": {"userId": user["id"], "product": "pro"},
    })

    invoice = post_event(billing_client, "invoice.payment_succeeded", {
        "id": "in_1", "customer": "cus_alice", "subscription": "sub_1", "amount_paid": 499,
    })
    assert invoice.status_code == 200
    with Session(billing_client.app.state.engine) as db:
        payments = db.exec(select(PaymentHistory)).all()
    assert [(p.amount, p.status) for p in payments] == [(4.99, "paid")]

    cancelled = post_event(billing_client, "customer.subscription.deleted", {"id": "sub_1", "customer": "cus_alice"})
    assert cancelled.status_code == 200
    assert billing_client.get("/api/auth/me").json()["subscription"] == "free"


def test_webhook_rejects_bad_signatures(billing_client):
    payload = json.dumps({"type": "checkout.session.completed", "data": {"object": {}}})
    missing = billing_client.post("/api/webhook", content=payload)
    assert missing.status_code == 400

    forged = billing_client.post(
        "/api/webhook", content=payload, headers={"stripe-signature": sign(payload, secret="whsec_wrong")}
    )
    assert forged.status_code == 400
    assert forged.json() == {"message": "Invalid signature"}


def test_unhandled_events_are_acknowledged(billing_client):
    response = post_event(billing_client, "customer.created", {"id": "cus_1"})
    assert response.status_code == 200
