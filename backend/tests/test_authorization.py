"""
Authorization tests for the consignment API.

Verifies:
- Unauthenticated requests return 401
- Clerks and accountants are limited to their duties (403)
- Consignors only reach the portal, and only their own records
- Owners can perform privileged operations
"""

import pytest

from consignment.models import SecurityEvent
from consignment.models.auth import ALL_ROLES
from consignment.permissions import DEFAULT_ROLE_PERMISSIONS, get_role_permissions, validate_permission_code
from consignment.services import payout_service, statement_service, transaction_service


# =============================================================================
# UNAUTHENTICATED ACCESS (401)
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/auth/me"),
            ("GET", "/api/organization"),
            ("GET", "/api/users"),
            ("GET", "/api/providers"),
            ("POST", "/api/providers"),
            ("GET", "/api/items"),
            ("POST", "/api/items"),
            ("GET", "/api/transactions"),
            ("POST", "/api/transactions"),
            ("GET", "/api/payouts/pending"),
            ("GET", "/api/statements"),
            ("GET", "/api/reports/sales"),
            ("GET", "/api/orders"),
            ("GET", "/api/notifications"),
            ("GET", "/api/portal/dashboard"),
            ("GET", "/api/accounting/status"),
            ("GET", "/api/security/events"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"
        assert resp.json["success"] is False

    def test_garbage_token(self, client, db_session):
        resp = client.get("/api/items", headers={"Authorization": "Bearer not-a-token"})
        assert resp.status_code == 401

    def test_logout_revokes_token(self, client, owner_headers):
        assert client.post("/api/auth/logout", headers=owner_headers).status_code == 200
        assert client.get("/api/auth/me", headers=owner_headers).status_code == 401


# =============================================================================
# LOGIN
# =============================================================================


class TestLogin:

    def test_login_returns_permissions(self, client, owner_a):
        resp = client.post("/api/auth/login", json={
            "org_slug": "rose", "email": "OWNER@rose.test", "password": "Password123!",
        })
        assert resp.status_code == 200
        data = resp.json["data"]
        assert data["user"]["role"] == "OWNER"
        assert data["organization"]["slug"] == "rose"
        assert "MANAGE_ORGANIZATION" in data["permissions"]

    def test_wrong_shop_fails(self, client, owner_a, org_b):
        resp = client.post("/api/auth/login", json={
            "org_slug": "beta", "email": owner_a.email, "password": "Password123!",
        })
        assert resp.status_code == 401

    def test_failed_login_is_logged(self, client, db_session, owner_a):
        client.post("/api/auth/login", json={"org_slug": "rose", "email": owner_a.email, "password": "wrong"})
        assert db_session.query(SecurityEvent).filter_by(event_type="LOGIN_FAILED").count() == 1

    def test_shopper_cannot_use_back_office_login(self, client, shopper_a):
        resp = client.post("/api/auth/login", json={
            "org_slug": "rose", "email": shopper_a.email, "password": "Password123!",
        })
        assert resp.status_code == 401

    def test_register_shop(self, client, db_session):
        resp = client.post("/api/auth/register", json={
            "organization_name": "New Shop",
            "slug": "new-shop",
            "email": "me@new.test",
            "password": "Password123!",
        })
        assert resp.status_code == 201
        assert resp.json["data"]["user"]["role"] == "OWNER"
        token = resp.json["data"]["token"]
        me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert me.json["data"]["organization"]["slug"] == "new-shop"

    def test_register_weak_password(self, client, db_session):
        resp = client.post("/api/auth/register", json={
            "organization_name": "Weak", "slug": "weak", "email": "me@weak.test", "password": "short",
        })
        assert resp.status_code == 400

    def test_register_duplicate_slug(self, client, org_a):
        resp = client.post("/api/auth/register", json={
            "organization_name": "Copy", "slug": "rose", "email": "me@copy.test", "password": "Password123!",
        })
        assert resp.status_code == 409


# =============================================================================
# STAFF ROLES (403)
# =============================================================================


class TestClerkLimits:

    def test_clerk_can_sell(self, client, clerk_headers, item_a):
        resp = client.post("/api/transactions", json={"item_id": item_a.id}, headers=clerk_headers)
        assert resp.status_code == 201
        assert resp.json["data"]["provider_amount_cents"] == 6000

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/users"),
            ("GET", "/api/payouts/pending"),
            ("GET", "/api/reports/sales"),
            ("PATCH", "/api/organization"),
            ("POST", "/api/providers"),
            ("GET", "/api/security/events"),
        ],
    )
    def test_clerk_denied(self, client, clerk_headers, method, path):
        resp = getattr(client, method.lower())(path, json={}, headers=clerk_headers)
        assert resp.status_code == 403

    def test_clerk_cannot_void(self, client, clerk_headers, scope_a, item_a):
        txn = transaction_service.record_sale(scope_a, item_id=item_a.id)
        resp = client.post(f"/api/transactions/{txn.id}/void", json={}, headers=clerk_headers)
        assert resp.status_code == 403
        assert resp.json["data"]["required_permission"] == "VOID_TRANSACTION"

    def test_denial_is_logged(self, client, db_session, clerk_headers):
        client.get("/api/users", headers=clerk_headers)
        event = db_session.query(SecurityEvent).filter_by(event_type="PERMISSION_DENIED").one()
        assert event.action == "VIEW_USERS"


class TestAccountantLimits:

    def test_accountant_runs_payouts(self, client, accountant_headers, scope_a, item_a, provider_a):
        txn = transaction_service.record_sale(scope_a, item_id=item_a.id)
        day = txn.sale_date.date().isoformat()
        resp = client.post("/api/payouts", json={
            "provider_id": provider_a.id, "period_start": day, "period_end": day,
        }, headers=accountant_headers)
        assert resp.status_code == 201

    def test_accountant_cannot_sell(self, client, accountant_headers, item_a):
        resp = client.post("/api/transactions", json={"item_id": item_a.id}, headers=accountant_headers)
        assert resp.status_code == 403


class TestOwnerUserManagement:

    def test_create_clerk(self, client, owner_headers):
        resp = client.post("/api/users", json={
            "email": "new.clerk@rose.test", "password": "Password123!", "role": "CLERK",
        }, headers=owner_headers)
        assert resp.status_code == 201
        assert resp.json["data"]["role"] == "CLERK"

    def test_cannot_create_consignor_or_shopper_here(self, client, owner_headers):
        for role in ("CONSIGNOR", "SHOPPER"):
            resp = client.post("/api/users", json={
                "email": f"{role.lower()}@rose.test", "password": "Password123!", "role": role,
            }, headers=owner_headers)
            assert resp.status_code == 400

    def test_cannot_deactivate_self(self, client, owner_headers, owner_a):
        resp = client.post(f"/api/users/{owner_a.id}/deactivate", headers=owner_headers)
        assert resp.status_code in (400, 409)

    def test_deactivated_user_loses_session(self, client, owner_headers, clerk_a, clerk_headers):
        assert client.post(f"/api/users/{clerk_a.id}/deactivate", headers=owner_headers).status_code == 200
        assert client.get("/api/items", headers=clerk_headers).status_code == 401


# =============================================================================
# CONSIGNOR PORTAL
# =============================================================================


class TestConsignorPortal:

    def test_consignor_blocked_from_back_office(self, client, consignor_headers):
        assert client.get("/api/providers", headers=consignor_headers).status_code == 403
        assert client.get("/api/transactions", headers=consignor_headers).status_code == 403

    def test_staff_blocked_from_portal(self, client, owner_headers):
        assert client.get("/api/portal/dashboard", headers=owner_headers).status_code == 403

    def test_dashboard_shows_own_balance(self, client, consignor_headers, scope_a, item_a):
        transaction_service.record_sale(scope_a, item_id=item_a.id)
        resp = client.get("/api/portal/dashboard", headers=consignor_headers)
        assert resp.status_code == 200
        data = resp.json["data"]
        assert data["pending_balance_cents"] == 6000
        assert len(data["recent_sales"]) == 1

    def test_only_own_sales(self, client, consignor_headers, scope_a, make_item, item_a):
        from consignment.services import provider_service

        other = provider_service.create_provider(scope_a, {"display_name": "Other", "email": "other@example.com"})
        theirs = make_item(title="Not mine", provider=other)
        transaction_service.record_sale(scope_a, item_id=theirs.id)
        transaction_service.record_sale(scope_a, item_id=item_a.id)

        resp = client.get("/api/portal/sales", headers=consignor_headers)
        assert resp.json["data"]["count"] == 1
        assert resp.json["data"]["items"][0]["item_id"] == item_a.id

    def test_other_providers_payout_is_404(self, client, consignor_headers, scope_a, make_item):
        from consignment.services import provider_service

        other = provider_service.create_provider(scope_a, {"display_name": "Other", "email": "other@example.com"})
        txn = transaction_service.record_sale(scope_a, item_id=make_item(provider=other).id)
        day = txn.sale_date.date()
        payout = payout_service.create_payout(scope_a, other.id, day, day)
        assert client.get(f"/api/portal/payouts/{payout.id}", headers=consignor_headers).status_code == 404

    def test_opening_statement_marks_viewed(self, client, consignor_headers, scope_a, provider_a):
        from datetime import date

        statement = statement_service.generate_statement(scope_a, provider_a.id, date(2026, 9, 1), date(2026, 9, 30))
        resp = client.get(f"/api/portal/statements/{statement.id}", headers=consignor_headers)
        assert resp.status_code == 200
        assert resp.json["data"]["status"] == "VIEWED"

    def test_profile_cannot_change_commission(self, client, consignor_headers):
        resp = client.patch("/api/portal/profile", json={"commission_rate": "90"}, headers=consignor_headers)
        assert resp.status_code == 400
        resp = client.patch("/api/portal/profile", json={"city": "Portland"}, headers=consignor_headers)
        assert resp.status_code == 200
        assert resp.json["data"]["city"] == "Portland"


# =============================================================================
# ROLE MAP
# =============================================================================


class TestRoleMap:

    def test_every_role_has_an_entry(self):
        assert set(DEFAULT_ROLE_PERMISSIONS) == set(ALL_ROLES)

    @pytest.mark.parametrize("role", sorted(ALL_ROLES))
    def test_granted_codes_are_defined(self, role):
        for code in get_role_permissions(role):
            assert validate_permission_code(code), f"{role} grants unknown permission {code}"

    def test_manager_cannot_change_organization(self):
        assert "MANAGE_ORGANIZATION" in get_role_permissions("OWNER")
        assert "MANAGE_ORGANIZATION" not in get_role_permissions("MANAGER")

    def test_unknown_role_has_nothing(self):
        assert get_role_permissions("INTERN") == set()
