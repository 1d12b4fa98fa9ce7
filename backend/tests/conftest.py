"""
Pytest fixtures for storepos backend tests.

Provides the application on an in-memory database, a fresh sale engine and
clean tables per test, store/staff/member/product fixtures, and auth helpers.
"""

import pytest

from storepos import create_app
from storepos.config import TestConfig
from storepos.extensions import db
from storepos.models import Member, Product, Store, User
from storepos.models.auth import ROLE_ADMIN, ROLE_ATTENDANT, ROLE_CASHIER
from storepos.services import session_service
from storepos.services.engine import get_engine, init_engine
from storepos.services.sale_commit import CartItem, CheckoutRequest
from storepos.services.session_service import Principal


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

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
    """Empty every table and rebuild the sale engine for each test."""
    with app.app_context():
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        # Fresh in-process publisher and cache
        init_engine(app)

        yield db.session

        db.session.rollback()


@pytest.fixture(scope='function')
def engine(db_session):
    return get_engine()


@pytest.fixture(scope='function')
def store(db_session):
    store = Store(name="Store One", code="S1", timezone="UTC")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def other_store(db_session):
    store = Store(name="Store Two", code="S2", timezone="Asia/Jakarta")
    db_session.add(store)
    db_session.commit()
    return store


def make_user(session, store, username, role):
    user = User(store_id=store.id, username=username, name=username.title(), role=role, is_active=True)
    session.add(user)
    session.commit()
    return user


@pytest.fixture(scope='function')
def cashier(db_session, store):
    return make_user(db_session, store, "kasir", ROLE_CASHIER)


@pytest.fixture(scope='function')
def admin(db_session, store):
    return make_user(db_session, store, "admin", ROLE_ADMIN)


@pytest.fixture(scope='function')
def attendant(db_session, store):
    return make_user(db_session, store, "pramuniaga", ROLE_ATTENDANT)


@pytest.fixture(scope='function')
def member(db_session, store):
    member = Member(store_id=store.id, name="Budi", code="M001")
    db_session.add(member)
    db_session.commit()
    return member


@pytest.fixture(scope='function')
def general_member(db_session, store):
    member = Member(store_id=store.id, name="Umum", code="UMUM", is_general=True)
    db_session.add(member)
    db_session.commit()
    return member


def make_product(session, store, sku, stock, price=10000, name=None):
    product = Product(store_id=store.id, sku=sku, name=name or f"Product {sku}", price=price, stock=stock)
    session.add(product)
    session.commit()
    return product


@pytest.fixture(scope='function')
def products(db_session, store):
    """Three products in the store: stock 10, 5 and 1."""
    return [
        make_product(db_session, store, "P1", 10, price=10000, name="Kopi"),
        make_product(db_session, store, "P2", 5, price=25000, name="Teh"),
        make_product(db_session, store, "P3", 1, price=50000, name="Gula"),
    ]


@pytest.fixture(scope='function')
def principal(store, cashier):
    return Principal(user_id=cashier.id, role=cashier.role, store_id=store.id, name=cashier.name)


@pytest.fixture(scope='function')
def admin_principal(store, admin):
    return Principal(user_id=admin.id, role=admin.role, store_id=store.id, name=admin.name)


def checkout_request(attendant, lines, **kwargs) -> CheckoutRequest:
    """Build a request from (product, quantity) pairs at the product's list price."""
    items = [CartItem(product_id=p.id, quantity=q, price=p.price) for p, q in lines]
    request = CheckoutRequest(items=items, attendant_id=attendant.id, **kwargs)
    if "payment" not in kwargs and request.status == "PAID":
        request.payment = request.total_after_discount
    return request


def get_auth_token(user) -> str:
    """Helper to issue a bearer token for a user."""
    return session_service.issue_token(user.id)


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def build_checkout():
    return checkout_request


@pytest.fixture(scope='function')
def product_factory(db_session, store):
    def factory(sku, stock, price=10000, name=None, in_store=None):
        return make_product(db_session, in_store or store, sku, stock, price=price, name=name)
    return factory


@pytest.fixture(scope='function')
def headers_for(db_session):
    def factory(user):
        return auth_headers(get_auth_token(user))
    return factory
