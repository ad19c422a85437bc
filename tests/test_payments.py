from datetime import datetime, timedelta
from types import SimpleNamespace
from unittest.mock import patch

import stripe

from models import db, User, CoinPackage, ChapterPurchase, Transaction


def _wallet(app, username):
    with app.app_context():
        return User.query.filter_by(username=username).first().wallet_coins


def test_recorded_coin_purchase_does_not_credit_reader(app, make_user, login):
    make_user("ann")
    client = login("ann")
    resp = client.post("/api/payments", json={"amount": 100000, "payment_type": "COIN_PURCHASE", "item_id": 7})
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["wallet_coins"] == 0
    assert body["transaction"]["type"] == "COIN_PURCHASE"
    assert body["transaction"]["status"] == "COMPLETED"
    assert body["transaction"]["item_id"] == "7"
    assert _wallet(app, "ann") == 0

    client.post("/api/payments", json={"amount": 20, "payment_type": "COIN_PURCHASE", "status": "PENDING"})
    history = client.get("/api/payments").get_json()
    assert history["wallet_coins"] == 0
    assert [(t["amount"], t["status"]) for t in history["transactions"]] == [(20, "PENDING"), (100000, "COMPLETED")]


def test_admin_recorded_coin_purchase_credits_wallet(app, make_user, login):
    make_user("root", role="admin")
    client = login("root")
    resp = client.post("/api/payments", json={"amount": 100, "payment_type": "COIN_PURCHASE"})
    assert resp.status_code == 201
    assert resp.get_json()["wallet_coins"] == 100
    client.post("/api/payments", json={"amount": 50, "payment_type": "COIN_PURCHASE", "status": "FAILED"})
    assert _wallet(app, "root") == 100


def test_record_payment_validation(make_user, login, client):
    make_user("ann")
    assert client.post("/api/payments", json={"amount": 10, "payment_type": "COIN_PURCHASE"}).status_code == 401
    ann = login("ann")
    assert ann.post("/api/payments", json={"amount": 0, "payment_type": "COIN_PURCHASE"}).status_code == 400
    assert ann.post("/api/payments", json={"amount": "ten", "payment_type": "COIN_PURCHASE"}).status_code == 400
    assert ann.post("/api/payments", json={"amount": 10, "payment_type": "REFUND"}).status_code == 400
    assert ann.post("/api/payments", json={"amount": 10, "payment_type": "COIN_PURCHASE",
                                        "status": "REVERSED"}).status_code == 400


def _premium_chapter(make_user, make_novel, make_chapter, cost=5, **chapter_fields):
    author = make_user("author", role="author")
    novel_id = make_novel(author)
    return make_chapter(novel_id, is_premium=True, coins_cost=cost, **chapter_fields)


def test_purchase_chapter_spends_coins(app, make_user, make_novel, make_chapter, login):
    chapter_id = _premium_chapter(make_user, make_novel, make_chapter, cost=8)
    make_user("ann", wallet_coins=10)
    client = login("ann")

    resp = client.post(f"/api/chapters/{chapter_id}/purchase")
    assert resp.status_code == 201
    assert resp.get_json()["wallet_coins"] == 2
    assert resp.get_json()["transaction"]["type"] == "CHAPTER_PURCHASE"

    assert client.post(f"/api/chapters/{chapter_id}/purchase").status_code == 400
    assert client.get(f"/api/chapters/{chapter_id}").get_json()["can_access_premium"] is True

    with app.app_context():
        purchase = ChapterPurchase.query.filter_by(chapter_id=chapter_id).one()
        assert purchase.coins_spent == 8
    assert _wallet(app, "ann") == 2


def test_purchase_chapter_with_short_wallet(app, make_user, make_novel, make_chapter, login):
    chapter_id = _premium_chapter(make_user, make_novel, make_chapter, cost=8)
    make_user("ann", wallet_coins=3)
    resp = login("ann").post(f"/api/chapters/{chapter_id}/purchase")
    assert resp.status_code == 402
    assert resp.get_json()["coins_cost"] == 8
    assert _wallet(app, "ann") == 3
    with app.app_context():
        assert ChapterPurchase.query.count() == 0


def test_purchase_rejects_free_and_own_chapters(make_user, make_novel, make_chapter, login):
    author = make_user("author", role="author")
    make_user("ann", wallet_coins=50)
    novel_id = make_novel(author)
    free = make_chapter(novel_id, number=1)
    paid = make_chapter(novel_id, number=2, is_premium=True, coins_cost=5)
    draft = make_chapter(novel_id, number=3, is_premium=True, coins_cost=5, status="DRAFT")

    assert login("ann").post(f"/api/chapters/{free}/purchase").status_code == 400
    assert login("ann").post(f"/api/chapters/{draft}/purchase").status_code == 403
    assert login("author").post(f"/api/chapters/{paid}/purchase").status_code == 400


def test_premium_subscription(app, make_user, login):
    make_user("ann", wallet_coins=650)
    client = login("ann")

    resp = client.post("/api/premium/subscribe")
    assert resp.status_code == 201
    first_expiry = datetime.fromisoformat(resp.get_json()["premium_until"])
    assert resp.get_json()["wallet_coins"] == 350
    assert timedelta(days=29) < first_expiry - datetime.utcnow() <= timedelta(days=30)

    resp = client.post("/api/premium/subscribe")
    assert resp.status_code == 201
    assert datetime.fromisoformat(resp.get_json()["premium_until"]) == first_expiry + timedelta(days=30)

    resp = client.post("/api/premium/subscribe")
    assert resp.status_code == 402
    assert _wallet(app, "ann") == 50
    assert client.get("/api/auth/me").get_json()["user"]["premium_active"] is True
    with app.app_context():
        assert Transaction.query.filter_by(type="PREMIUM_SUBSCRIPTION").count() == 2


def test_coin_packages_listing(app, client):
    with app.app_context():
        db.session.add(CoinPackage(coins=500, cost=4.99, stripe_price_id="price_500"))
        db.session.add(CoinPackage(coins=100, cost=0.99, stripe_price_id="price_100"))
        db.session.commit()
    packages = client.get("/api/coin-packages").get_json()["packages"]
    assert [p["coins"] for p in packages] == [100, 500]


def test_checkout_session_creates_customer_once(app, make_user, login):
    make_user("ann")
    with app.app_context():
        package = CoinPackage(coins=100, cost=0.99, stripe_price_id="price_100")
        db.session.add(package)
        db.session.commit()
        package_id = package.id
    client = login("ann")

    with patch("stripe.Customer.create", return_value=SimpleNamespace(id="cus_123")) as create_customer, \
            patch("stripe.checkout.Session.create",
                  return_value=SimpleNamespace(id="cs_1", url="https://checkout.example/cs_1")) as create_session:
        resp = client.post(f"/api/payments/checkout/{package_id}")
        assert resp.status_code == 200
        assert resp.get_json() == {"id": "cs_1", "url": "https://checkout.example/cs_1"}
        client.post(f"/api/payments/checkout/{package_id}")

    assert create_customer.call_count == 1
    assert create_session.call_args.kwargs["customer"] == "cus_123"
    assert create_session.call_args.kwargs["metadata"]["package_id"] == package_id
    assert client.post("/api/payments/checkout/9999").status_code == 404


def test_checkout_reports_stripe_failure(app, make_user, login):
    make_user("ann")
    with app.app_context():
        package = CoinPackage(coins=100, cost=0.99, stripe_price_id="price_100")
        db.session.add(package)
        db.session.commit()
        package_id = package.id
    with patch("stripe.Customer.create", side_effect=stripe.StripeError("boom")):
        assert login("ann").post(f"/api/payments/checkout/{package_id}").status_code == 502


def test_webhook_credits_coins(app, client, make_user):
    user_id = make_user("ann")
    with app.app_context():
        package = CoinPackage(coins=250, cost=1.99)
        db.session.add(package)
        db.session.commit()
        package_id = package.id
    event = {
        "type": "checkout.session.completed",
        "data": {"object": {"id": "cs_9", "metadata": {"user_id": str(user_id), "package_id": str(package_id)}}},
    }
    with patch("stripe.Webhook.construct_event", return_value=event):
        resp = client.post("/api/stripe/webhook", data=b"{}", headers={"Stripe-Signature": "sig"})
    assert resp.status_code == 200
    assert _wallet(app, "ann") == 250
    with app.app_context():
        transaction = Transaction.query.one()
        assert transaction.item_id == "cs_9"
        assert transaction.type == "COIN_PURCHASE"


def test_webhook_redelivery_credits_once(app, client, make_user):
    user_id = make_user("ann")
    with app.app_context():
        package = CoinPackage(coins=100, cost=0.99)
        db.session.add(package)
        db.session.commit()
        package_id = package.id
    event = {
        "type": "checkout.session.completed",
        "data": {"object": {"id": "cs_1", "metadata": {"user_id": str(user_id), "package_id": str(package_id)}}},
    }
    with patch("stripe.Webhook.construct_event", return_value=event):
        for _ in range(2):
            resp = client.post("/api/stripe/webhook", data=b"{}", headers={"Stripe-Signature": "sig"})
            assert resp.status_code == 200
    assert _wallet(app, "ann") == 100
    with app.app_context():
        assert Transaction.query.filter_by(item_type="stripe_checkout", item_id="cs_1").count() == 1


def test_webhook_rejects_bad_signature(client):
    error = stripe.SignatureVerificationError("bad signature", "sig")
    with patch("stripe.Webhook.construct_event", side_effect=error):
        resp = client.post("/api/stripe/webhook", data=b"{}", headers={"Stripe-Signature": "sig"})
    assert resp.status_code == 400


def test_admin_manages_coin_packages(app, make_user, login):
    make_user("root", role="admin")
    make_user("ann")
    assert login("ann").post("/api/coin-packages", json={"coins": 100, "cost": 0.99}).status_code == 403

    admin = login("root")
    with patch("stripe.Price.create", return_value=SimpleNamespace(id="price_new")) as create_price:
        resp = admin.post("/api/coin-packages", json={"coins": 100, "cost": 0.99})
        assert resp.status_code == 201
        assert admin.post("/api/coin-packages", json={"coins": 100, "cost": 1.99}).status_code == 400
    assert create_price.call_args.kwargs["unit_amount"] == 99
    package_id = resp.get_json()["package"]["id"]
    with app.app_context():
        assert CoinPackage.query.get(package_id).stripe_price_id == "price_new"

    with patch("stripe.Price.retrieve", return_value=SimpleNamespace(product="prod_1")), \
            patch("stripe.Product.modify") as modify:
        assert admin.delete(f"/api/coin-packages/{package_id}").status_code == 200
    modify.assert_called_once_with("prod_1", active=False)
    with app.app_context():
        assert CoinPackage.query.count() == 0


def test_coin_package_removed_when_stripe_refuses_price(app, make_user, login):
    make_user("root", role="admin")
    with patch("stripe.Price.create", side_effect=stripe.StripeError("down")):
        assert login("root").post("/api/coin-packages", json={"coins": 100, "cost": 0.99}).status_code == 502
    with app.app_context():
        assert CoinPackage.query.count() == 0
