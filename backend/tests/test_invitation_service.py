# Overview: Pytest coverage for consignor invitations and sign-up from an invitation link.

from datetime import timedelta
from decimal import Decimal

import pytest

from consignment.models import Provider, ProviderInvitation, User
from consignment.services import invitation_service, session_service
from consignment.services.tenant_service import TenantAccessError
from consignment.time_utils import utcnow
from consignment.validation import ConflictError, NotFoundError, ValidationError
from conftest import PASSWORD, auth_headers


@pytest.fixture
def invited(scope_a, owner_a):
    """(invitation, plaintext token) for dana@example.com at 65%."""
    return invitation_service.create_invitation(
        scope_a,
        email="Dana@Example.com",
        name="Dana Dresser",
        commission_rate="65.00",
        invited_by_user_id=owner_a.id,
    )


def _register(token, **overrides):
    params = {"email": "dana@example.com", "password": PASSWORD}
    params.update(overrides)
    return invitation_service.register_from_invitation(token, **params)


class TestCreateInvitation:

    def test_emails_a_tokenized_link(self, invited, outbox):
        invitation, token = invited
        assert invitation.status == "PENDING"
        assert invitation.email == "dana@example.com"
        assert invitation.commission_rate == Decimal("65.00")
        assert invitation.token_hash == session_service.hash_token(token)
        assert invitation.token_hash != token

        message = outbox[-1]
        assert message.to == "dana@example.com"
        assert "Second Hand Rose" in message.subject
        assert f"token={token}" in message.body
        assert "shop=rose" in message.body

    def test_one_live_invitation_per_email(self, scope_a, invited):
        with pytest.raises(ConflictError):
            invitation_service.create_invitation(scope_a, email="dana@example.com", name="Dana again")

    def test_existing_provider_cannot_be_invited(self, scope_a, provider_a):
        with pytest.raises(ConflictError):
            invitation_service.create_invitation(scope_a, email=provider_a.email, name="Alice")

    def test_requires_name_and_valid_email(self, scope_a, org_a):
        with pytest.raises(ValidationError):
            invitation_service.create_invitation(scope_a, email="dana@example.com", name=" ")
        with pytest.raises(ValidationError):
            invitation_service.create_invitation(scope_a, email="not-an-email", name="Dana")
        with pytest.raises(ValidationError):
            invitation_service.create_invitation(
                scope_a, email="dana@example.com", name="Dana", commission_rate="120"
            )

    def test_expired_invitation_frees_the_email(self, scope_a, invited, db_session):
        invitation, _ = invited
        invitation.expires_at = utcnow() - timedelta(minutes=1)
        db_session.commit()
        assert invitation.to_dict()["status"] == "EXPIRED"

        again, _ = invitation_service.create_invitation(scope_a, email="dana@example.com", name="Dana")
        assert again.id != invitation.id


class TestManageInvitations:

    def test_list_pending_only(self, scope_a, invited):
        other, _ = invitation_service.create_invitation(scope_a, email="eve@example.com", name="Eve")
        invitation_service.cancel_invitation(scope_a, other.id)

        rows, total = invitation_service.list_invitations(scope_a)
        assert total == 1
        assert [i.email for i in rows] == ["dana@example.com"]

        _, total = invitation_service.list_invitations(scope_a, status=None)
        assert total == 2
        with pytest.raises(ValidationError):
            invitation_service.list_invitations(scope_a, status="LOST")

    def test_cancel(self, scope_a, invited):
        invitation, token = invited
        cancelled = invitation_service.cancel_invitation(scope_a, invitation.id)
        assert cancelled.status == "CANCELLED"
        assert cancelled.cancelled_at is not None

        with pytest.raises(ConflictError):
            invitation_service.cancel_invitation(scope_a, invitation.id)
        with pytest.raises(ConflictError):
            _register(token)

    def test_resend_rotates_the_token(self, scope_a, invited, outbox, db_session):
        invitation, old_token = invited
        invitation.expires_at = utcnow() + timedelta(hours=1)
        db_session.commit()

        resent, new_token = invitation_service.resend_invitation(scope_a, invitation.id)
        assert new_token != old_token
        assert resent.sent_count == 2
        assert resent.expires_at > utcnow() + timedelta(days=6)
        assert f"token={new_token}" in outbox[-1].body

        with pytest.raises(NotFoundError):
            invitation_service.get_invitation_by_token(old_token)
        assert invitation_service.get_invitation_by_token(new_token).id == invitation.id

    def test_other_shop_cannot_touch_invitation(self, scope_b, invited):
        invitation, _ = invited
        with pytest.raises(TenantAccessError):
            invitation_service.cancel_invitation(scope_b, invitation.id)
        with pytest.raises(TenantAccessError):
            invitation_service.resend_invitation(scope_b, invitation.id)


class TestRegisterFromInvitation:

    def test_creates_active_provider_and_login(self, scope_a, invited):
        invitation, token = invited
        provider, user = _register(token, display_name="Dana D. Dresser", phone="555-0100")

        assert provider.status == "ACTIVE"
        assert provider.provider_number == "PRV-00001"
        assert provider.commission_rate == Decimal("65.00")
        assert provider.display_name == "Dana D. Dresser"
        assert user.role == "CONSIGNOR"
        assert user.provider_id == provider.id
        assert user.org_id == scope_a.org_id

        invitation = scope_a.get(ProviderInvitation, invitation.id)
        assert invitation.status == "ACCEPTED"
        assert invitation.provider_id == provider.id
        assert invitation.accepted_at is not None

    def test_shop_default_rate_when_invitation_has_none(self, scope_a, org_a):
        _, token = invitation_service.create_invitation(scope_a, email="fay@example.com", name="Fay")
        provider, _ = _register(token, email="fay@example.com")
        assert provider.commission_rate == org_a.default_split_percentage
        assert provider.display_name == "Fay"

    def test_link_works_once(self, invited):
        _, token = invited
        _register(token)
        with pytest.raises(ConflictError):
            _register(token)

    def test_email_must_match(self, scope_a, invited):
        _, token = invited
        with pytest.raises(ValidationError):
            _register(token, email="someone.else@example.com")
        assert scope_a.query(Provider).count() == 0

    def test_weak_password_leaves_nothing_behind(self, scope_a, invited, db_session):
        invitation, token = invited
        with pytest.raises(ValidationError):
            _register(token, password="short")
        assert scope_a.query(Provider).count() == 0
        assert db_session.query(User).filter_by(email="dana@example.com").count() == 0
        assert scope_a.get(ProviderInvitation, invitation.id).status == "PENDING"

    def test_expired_link_is_refused(self, invited, db_session):
        invitation, token = invited
        invitation.expires_at = utcnow() - timedelta(seconds=1)
        db_session.commit()
        with pytest.raises(ConflictError):
            _register(token)

    def test_unknown_token(self, db_session):
        with pytest.raises(NotFoundError):
            _register("not-a-real-token")


class TestInvitationApi:

    def test_owner_invites_and_consignor_signs_up(self, client, owner_headers, outbox):
        resp = client.post("/api/providers/invitations", json={
            "email": "gus@example.com", "name": "Gus Goods",
        }, headers=owner_headers)
        assert resp.status_code == 201
        data = resp.json["data"]
        assert data["status"] == "PENDING"
        token = data["invite_link"].split("token=", 1)[1].split("&", 1)[0]

        resp = client.get("/api/providers/invitations", headers=owner_headers)
        assert resp.json["data"]["count"] == 1

        resp = client.get(f"/api/auth/invitations/{token}")
        assert resp.status_code == 200
        assert resp.json["data"]["shop_name"] == "Second Hand Rose"
        assert "token_hash" not in resp.json["data"]

        resp = client.post(f"/api/auth/invitations/{token}/accept", json={
            "email": "gus@example.com", "password": PASSWORD,
        })
        assert resp.status_code == 201
        session = resp.json["data"]
        assert session["user"]["role"] == "CONSIGNOR"
        assert session["provider"]["display_name"] == "Gus Goods"

        resp = client.get("/api/portal/dashboard", headers=auth_headers(session["token"]))
        assert resp.status_code == 200

        resp = client.post(f"/api/auth/invitations/{token}/accept", json={
            "email": "gus@example.com", "password": PASSWORD,
        })
        assert resp.status_code == 409

    def test_resend_and_cancel_routes(self, client, owner_headers, invited):
        invitation, _ = invited
        resp = client.post(f"/api/providers/invitations/{invitation.id}/resend", headers=owner_headers)
        assert resp.status_code == 200
        assert resp.json["data"]["sent_count"] == 2

        resp = client.post(f"/api/providers/invitations/{invitation.id}/cancel", headers=owner_headers)
        assert resp.status_code == 200
        assert resp.json["data"]["status"] == "CANCELLED"

        resp = client.post(f"/api/providers/invitations/{invitation.id}/cancel", headers=owner_headers)
        assert resp.status_code == 409

    def test_clerk_cannot_invite(self, client, clerk_headers):
        resp = client.post("/api/providers/invitations", json={
            "email": "hal@example.com", "name": "Hal",
        }, headers=clerk_headers)
        assert resp.status_code == 403

    def test_unknown_token_is_404(self, client, db_session):
        resp = client.get("/api/auth/invitations/nope")
        assert resp.status_code == 404
