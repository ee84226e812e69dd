# Overview: End-to-end API flows through the Flask test client.

import io

from consignment.models import Provider, Statement
from consignment.services import transaction_service
from conftest import PASSWORD, auth_headers


CART = {"X-Cart-Session": "cart-session-one"}
OTHER_CART = {"X-Cart-Session": "cart-session-two"}


def test_health(client, db_session):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json["checks"]["database"]["status"] == "healthy"


def test_unknown_route_uses_envelope(client, db_session):
    resp = client.get("/api/does-not-exist")
    assert resp.status_code == 404
    assert resp.json["success"] is False


class TestBackOfficeFlow:

    def test_provider_item_sale(self, client, owner_headers):
        resp = client.post("/api/providers", json={
            "display_name": "Carol Closet",
            "email": "carol@example.com",
            "commission_rate": "55.00",
        }, headers=owner_headers)
        assert resp.status_code == 201
        provider = resp.json["data"]
        assert provider["provider_number"] == "PRV-00001"

        resp = client.post("/api/items", json={
            "provider_id": provider["id"], "title": "Silk scarf", "price_cents": 3000,
        }, headers=owner_headers)
        assert resp.status_code == 201
        item = resp.json["data"]
        assert item["sku"] == "PRV-00001-0001"
        assert item["status"] == "AVAILABLE"

        resp = client.post("/api/transactions", json={
            "item_id": item["id"], "payment_method": "CARD",
        }, headers=owner_headers)
        assert resp.status_code == 201
        txn = resp.json["data"]
        assert txn["provider_amount_cents"] == 1650
        assert txn["shop_amount_cents"] == 1350

        again = client.post("/api/transactions", json={"item_id": item["id"]}, headers=owner_headers)
        assert again.status_code == 409

        listed = client.get("/api/transactions", headers=owner_headers).json["data"]
        assert listed["count"] == 1

        resp = client.post(f"/api/transactions/{txn['id']}/void", json={"reason": "Mistake"}, headers=owner_headers)
        assert resp.status_code == 200
        assert resp.json["data"]["status"] == "VOIDED"
        item_now = client.get(f"/api/items/{item['id']}", headers=owner_headers).json["data"]
        assert item_now["status"] == "AVAILABLE"

    def test_validation_errors_are_400(self, client, owner_headers, provider_a):
        resp = client.post("/api/items", json={
            "provider_id": provider_a.id, "title": "Bad", "price_cents": -5,
        }, headers=owner_headers)
        assert resp.status_code == 400
        assert resp.json["success"] is False

    def test_invalid_json_body(self, client, owner_headers):
        resp = client.post("/api/providers", data="not json", content_type="application/json",
                           headers=owner_headers)
        assert resp.status_code == 400

    def test_photo_upload(self, client, owner_headers, item_a):
        resp = client.post(
            f"/api/items/{item_a.id}/photos",
            data={"photo": (io.BytesIO(b"\xff\xd8\xff fake jpeg"), "coat.jpg")},
            content_type="multipart/form-data",
            headers=owner_headers,
        )
        assert resp.status_code == 201
        photo = resp.json["data"]
        assert photo["url"].startswith("/media/photos/")
        assert photo["url"].endswith(".jpg")

        item = client.get(f"/api/items/{item_a.id}", headers=owner_headers).json["data"]
        assert len(item["photos"]) == 1

        resp = client.delete(f"/api/items/{item_a.id}/photos/{photo['id']}", headers=owner_headers)
        assert resp.status_code == 200

    def test_photo_rejects_other_files(self, client, owner_headers, item_a):
        resp = client.post(
            f"/api/items/{item_a.id}/photos",
            data={"photo": (io.BytesIO(b"#!/bin/sh"), "evil.sh")},
            content_type="multipart/form-data",
            headers=owner_headers,
        )
        assert resp.status_code == 400

    def test_reports(self, client, owner_headers, scope_a, item_a):
        transaction_service.record_sale(scope_a, item_id=item_a.id)
        resp = client.get("/api/reports/sales?group_by=month", headers=owner_headers)
        assert resp.status_code == 200
        assert resp.json["data"]["totals"]["transaction_count"] == 1

        bad = client.get("/api/reports/sales?group_by=decade", headers=owner_headers)
        assert bad.status_code == 400

        csv_resp = client.get("/api/reports/transactions.csv", headers=owner_headers)
        assert csv_resp.status_code == 200
        assert csv_resp.mimetype == "text/csv"
        assert len(csv_resp.get_data(as_text=True).strip().splitlines()) == 2


class TestConsignorApplication:

    def test_apply_then_approve(self, client, db_session, owner_headers, org_a, outbox):
        resp = client.post("/api/shop/rose/consignor-applications", json={
            "display_name": "Dana Donor", "email": "dana@example.com",
        })
        assert resp.status_code == 201
        assert resp.json["data"]["status"] == "PENDING"

        provider = db_session.query(Provider).filter_by(email="dana@example.com").one()
        resp = client.post(f"/api/providers/{provider.id}/approve", headers=owner_headers)
        assert resp.status_code == 200
        assert resp.json["data"]["status"] == "ACTIVE"
        assert [m.subject for m in outbox if m.to == "dana@example.com"] == ["Welcome to Second Hand Rose"]

    def test_application_cannot_set_commission(self, client, org_a):
        resp = client.post("/api/shop/rose/consignor-applications", json={
            "display_name": "Greedy", "email": "greedy@example.com", "commission_rate": "99",
        })
        assert resp.status_code == 400

    def test_grant_portal_access_and_login(self, client, owner_headers, provider_a):
        resp = client.post(f"/api/providers/{provider_a.id}/portal-access",
                           json={"password": PASSWORD}, headers=owner_headers)
        assert resp.status_code == 201
        assert resp.json["data"]["role"] == "CONSIGNOR"

        login = client.post("/api/auth/login", json={
            "org_slug": "rose", "email": provider_a.email, "password": PASSWORD,
        })
        assert login.status_code == 200
        assert login.json["data"]["user"]["role"] == "CONSIGNOR"


class TestNotifications:

    def test_consignor_sees_sale(self, client, owner_headers, consignor_headers, item_a, outbox):
        client.post("/api/transactions", json={"item_id": item_a.id}, headers=owner_headers)

        resp = client.get("/api/notifications", headers=consignor_headers)
        data = resp.json["data"]
        assert data["count"] == 1
        assert data["unread_count"] == 1
        assert data["items"][0]["notification_type"] == "ITEM_SOLD"
        assert any(m.subject == "Your item sold: Wool coat" for m in outbox)

        resp = client.post("/api/notifications/read-all", headers=consignor_headers)
        assert resp.json["data"]["updated"] == 1
        count = client.get("/api/notifications/unread-count", headers=consignor_headers)
        assert count.json["data"]["unread_count"] == 0


class TestStorefrontFlow:

    def test_catalog_hides_sold_items(self, client, scope_a, item_a, make_item):
        sold = make_item(title="Gone")
        transaction_service.record_sale(scope_a, item_id=sold.id)
        resp = client.get("/api/shop/rose/items")
        assert resp.status_code == 200
        titles = [i["title"] for i in resp.json["data"]["items"]]
        assert titles == ["Wool coat"]
        assert client.get(f"/api/shop/rose/items/{sold.id}").status_code == 404

    def test_public_item_hides_split(self, client, item_a):
        data = client.get(f"/api/shop/rose/items/{item_a.id}").json["data"]
        assert "override_split_percentage" not in data
        assert "provider_id" not in data

    def test_cart_reservation_blocks_other_shoppers(self, client, item_a):
        resp = client.post("/api/shop/rose/cart/items", json={"item_id": item_a.id}, headers=CART)
        assert resp.status_code == 201
        assert resp.json["data"]["item_count"] == 1

        resp = client.post("/api/shop/rose/cart/items", json={"item_id": item_a.id}, headers=OTHER_CART)
        assert resp.status_code == 409

        listed = client.get("/api/shop/rose/items").json["data"]["items"]
        assert listed[0]["is_reserved"] is True

    def test_cart_requires_session_header(self, client, item_a):
        resp = client.post("/api/shop/rose/cart/items", json={"item_id": item_a.id})
        assert resp.status_code == 400

    def test_guest_checkout_and_payment(self, client, item_a, outbox):
        client.post("/api/shop/rose/cart/items", json={"item_id": item_a.id}, headers=CART)

        intent = client.post("/api/shop/rose/checkout/payment-intent",
                             json={"fulfillment_type": "PICKUP"}, headers=CART)
        assert intent.status_code == 201
        intent_id = intent.json["data"]["id"]
        assert intent_id.startswith("pi_")
        assert intent.json["data"]["amount_cents"] == 10850

        resp = client.post("/api/shop/rose/checkout", json={
            "customer_email": "guest@example.com",
            "customer_name": "Guest Buyer",
            "fulfillment_type": "PICKUP",
            "payment_intent_id": intent_id,
        }, headers=CART)
        assert resp.status_code == 201
        order = resp.json["data"]
        assert order["total_cents"] == 10850
        assert order["status"] == "PENDING"
        assert any(m.to == "guest@example.com" for m in outbox)

        denied = client.post(f"/api/shop/rose/orders/{order['id']}/confirm-payment", json={})
        assert denied.status_code == 404
        wrong = client.post(f"/api/shop/rose/orders/{order['id']}/confirm-payment",
                            json={"payment_intent_id": "pi_someoneelse"})
        assert wrong.status_code == 404

        resp = client.post(f"/api/shop/rose/orders/{order['id']}/confirm-payment",
                           json={"payment_intent_id": intent_id})
        assert resp.status_code == 200
        assert resp.json["data"]["status"] == "CONFIRMED"
        assert resp.json["data"]["payment_status"] == "PAID"

    def test_in_store_sale_empties_cart(self, client, owner_headers, item_a):
        client.post("/api/shop/rose/cart/items", json={"item_id": item_a.id}, headers=CART)
        sale = client.post("/api/transactions", json={"item_id": item_a.id}, headers=owner_headers)
        assert sale.status_code == 201

        cart = client.get("/api/shop/rose/cart", headers=CART).json["data"]
        assert cart["item_count"] == 0
        resp = client.post("/api/shop/rose/checkout", json={
            "customer_email": "guest@example.com",
            "customer_name": "Guest Buyer",
            "fulfillment_type": "PICKUP",
        }, headers=CART)
        assert resp.status_code == 400

    def test_shopper_login_merges_cart(self, client, shopper_a, item_a):
        client.post("/api/shop/rose/cart/items", json={"item_id": item_a.id}, headers=CART)
        resp = client.post("/api/shop/rose/login", json={
            "email": shopper_a.email, "password": PASSWORD,
        }, headers=CART)
        assert resp.status_code == 200
        assert resp.json["data"]["cart"]["item_count"] == 1
        assert resp.json["data"]["cart"]["expires_at"] is None

        headers = auth_headers(resp.json["data"]["token"])
        cart = client.get("/api/shop/rose/cart", headers=headers).json["data"]
        assert cart["item_count"] == 1

    def test_shopper_register_and_orders(self, client, item_a):
        resp = client.post("/api/shop/rose/register", json={
            "email": "new.shopper@example.com", "password": PASSWORD, "first_name": "Nia",
        })
        assert resp.status_code == 201
        headers = auth_headers(resp.json["data"]["token"])

        client.post("/api/shop/rose/cart/items", json={"item_id": item_a.id}, headers=headers)
        order = client.post("/api/shop/rose/checkout", json={
            "customer_name": "Nia Shopper",
            "fulfillment_type": "SHIPPING",
            "shipping_address": {"line1": "1 Main St", "city": "Portland", "state": "OR", "postal_code": "97201"},
        }, headers=headers)
        assert order.status_code == 201
        assert order.json["data"]["customer_email"] == "new.shopper@example.com"

        mine = client.get("/api/shop/rose/orders", headers=headers).json["data"]
        assert mine["count"] == 1

        cancelled = client.post(f"/api/shop/rose/orders/{order.json['data']['id']}/cancel", json={}, headers=headers)
        assert cancelled.status_code == 200
        assert cancelled.json["data"]["status"] == "CANCELLED"
        item = client.get(f"/api/shop/rose/items/{item_a.id}")
        assert item.status_code == 200

    def test_my_orders_requires_sign_in(self, client, org_a):
        assert client.get("/api/shop/rose/orders").status_code == 401

    def test_staff_token_is_not_a_shopper(self, client, owner_headers, org_a):
        assert client.get("/api/shop/rose/orders", headers=owner_headers).status_code == 401


class TestCli:

    def test_generate_statements(self, app, db_session, provider_a):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["statements", "generate", "--year", "2026", "--month", "9"])
        assert result.exit_code == 0, result.output
        assert "1 generated" in result.output
        assert db_session.query(Statement).count() == 1

    def test_generate_statements_rejects_bad_month(self, app, db_session):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["statements", "generate", "--year", "2026", "--month", "13"])
        assert result.exit_code != 0

    def test_cleanup_expired_carts(self, app, db_session):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["carts", "cleanup-expired"])
        assert result.exit_code == 0
        assert "Deleted 0 expired carts" in result.output
