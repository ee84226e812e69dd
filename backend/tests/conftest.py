"""
Pytest fixtures for the consignment backend tests.

Provides an in-memory database, two tenant organizations with staff,
providers, items, a consignor portal login and a storefront shopper.
"""

import pytest

from consignment import create_app
from consignment.extensions import db
from consignment.models import User
from consignment.services import auth_service, item_service, provider_service
from consignment.services.tenant_service import TenantScope


PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app(tmp_path_factory):
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'EMAIL_BACKEND': 'memory',
        'BCRYPT_ROUNDS': 4,
        'PHOTO_STORAGE_DIR': str(tmp_path_factory.mktemp("photos")),
        'ACCOUNTING_BACKEND': 'local',
        'LOG_LEVEL': 'WARNING',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Fresh data for each test, schema kept."""
    with app.app_context():
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        app.extensions.pop("email_outbox", None)
        app.extensions.pop("accounting_journal", None)

        yield db.session

        db.session.rollback()


@pytest.fixture(scope='function')
def outbox(app, db_session):
    """Emails captured by the memory backend during the test."""
    return app.extensions.setdefault("email_outbox", [])


@pytest.fixture(scope='function')
def org_a(db_session):
    """Organization A (first tenant) with its OWNER account."""
    org, _ = auth_service.register_organization(
        name="Second Hand Rose",
        slug="rose",
        owner_email="owner@rose.test",
        owner_password=PASSWORD,
        owner_first_name="Rose",
        owner_last_name="Owner",
    )
    return org


@pytest.fixture(scope='function')
def org_b(db_session):
    """Organization B (second tenant)."""
    org, _ = auth_service.register_organization(
        name="Beta Resale",
        slug="beta",
        owner_email="owner@beta.test",
        owner_password=PASSWORD,
    )
    return org


@pytest.fixture(scope='function')
def owner_a(db_session, org_a):
    return db_session.query(User).filter_by(org_id=org_a.id, email="owner@rose.test").one()


@pytest.fixture(scope='function')
def owner_b(db_session, org_b):
    return db_session.query(User).filter_by(org_id=org_b.id, email="owner@beta.test").one()


@pytest.fixture(scope='function')
def clerk_a(db_session, org_a):
    return auth_service.create_user(
        org_id=org_a.id, email="clerk@rose.test", password=PASSWORD, role="CLERK",
    )


@pytest.fixture(scope='function')
def accountant_a(db_session, org_a):
    return auth_service.create_user(
        org_id=org_a.id, email="books@rose.test", password=PASSWORD, role="ACCOUNTANT",
    )


@pytest.fixture(scope='function')
def scope_a(org_a):
    return TenantScope(org_a.id)


@pytest.fixture(scope='function')
def scope_b(org_b):
    return TenantScope(org_b.id)


@pytest.fixture(scope='function')
def provider_a(scope_a):
    """Active provider in Organization A earning 60%."""
    return provider_service.create_provider(scope_a, {
        "display_name": "Alice Consignor",
        "email": "alice@example.com",
        "commission_rate": "60.00",
        "payment_method": "CHECK",
    })


@pytest.fixture(scope='function')
def provider_b(scope_b):
    return provider_service.create_provider(scope_b, {
        "display_name": "Bob Beta",
        "email": "bob@example.com",
    })


@pytest.fixture(scope='function')
def make_item(scope_a, provider_a):
    """Factory for items in Organization A (provider_a unless given)."""
    def _make(title="Wool coat", price_cents=10000, provider=None, scope=None, **extra):
        payload = {
            "provider_id": (provider or provider_a).id,
            "title": title,
            "price_cents": price_cents,
        }
        payload.update(extra)
        return item_service.create_item(scope or scope_a, payload)
    return _make


@pytest.fixture(scope='function')
def item_a(make_item):
    return make_item(category="Outerwear")


@pytest.fixture(scope='function')
def item_b(scope_b, provider_b):
    return item_service.create_item(scope_b, {
        "provider_id": provider_b.id,
        "title": "Leather boots",
        "price_cents": 5000,
    })


@pytest.fixture(scope='function')
def consignor_a(scope_a, provider_a):
    """Portal login for provider_a."""
    return provider_service.grant_portal_access(scope_a, provider_a.id, PASSWORD)


@pytest.fixture(scope='function')
def shopper_a(db_session, org_a):
    return auth_service.register_shopper(
        org_id=org_a.id,
        email="shopper@example.com",
        password=PASSWORD,
        first_name="Sam",
        last_name="Shopper",
    )


def get_auth_token(client, org_slug: str, email: str, password: str = PASSWORD) -> str:
    """Helper to get a back-office auth token for a user."""
    response = client.post('/api/auth/login', json={
        'org_slug': org_slug,
        'email': email,
        'password': password,
    })
    if response.status_code == 200:
        return response.json["data"]["token"]
    return None


def get_shopper_token(client, org_slug: str, email: str, password: str = PASSWORD) -> str:
    response = client.post(f'/api/shop/{org_slug}/login', json={'email': email, 'password': password})
    if response.status_code == 200:
        return response.json["data"]["token"]
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def owner_headers(client, owner_a):
    return auth_headers(get_auth_token(client, "rose", owner_a.email))


@pytest.fixture(scope='function')
def owner_b_headers(client, owner_b):
    return auth_headers(get_auth_token(client, "beta", owner_b.email))


@pytest.fixture(scope='function')
def clerk_headers(client, clerk_a):
    return auth_headers(get_auth_token(client, "rose", clerk_a.email))


@pytest.fixture(scope='function')
def accountant_headers(client, accountant_a):
    return auth_headers(get_auth_token(client, "rose", accountant_a.email))


@pytest.fixture(scope='function')
def consignor_headers(client, consignor_a):
    return auth_headers(get_auth_token(client, "rose", consignor_a.email))


@pytest.fixture(scope='function')
def shopper_headers(client, shopper_a):
    return auth_headers(get_shopper_token(client, "rose", shopper_a.email))
