from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from main import app
from core.db import Base, get_db
from models.product import Product
from models.user import User
from schemas.order import CheckoutRequest
from security import jwt as jwt_utils
from services import cart as cart_service
from services.checkout import checkout


ADDRESS = {
    "first_name": "Ada",
    "last_name": "Buyer",
    "street": "1 Market Street",
    "city": "Springfield",
    "state": "IL",
    "zip_code": "62701",
    "country": "US",
    "phone": "+1 (555) 010-2030",
}


@pytest.fixture()
def db():
    """Fresh in-memory database shared by the test and the app for one test."""
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()

    def _get_db():
        yield session

    app.dependency_overrides[get_db] = _get_db
    try:
        yield session
    finally:
        session.close()
        app.dependency_overrides.clear()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def client(db):
    with TestClient(app) as c:
        yield c


def _user(db, email, role, first_name, company=None):
    user = User(first_name=first_name, last_name="Test", email=email, role=role, company=company, is_active=True)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def buyer(db):
    return _user(db, "buyer@example.com", "buyer", "Bea", company="Acme Retail")


@pytest.fixture
def other_buyer(db):
    return _user(db, "other.buyer@example.com", "buyer", "Otto")


@pytest.fixture
def supplier(db):
    return _user(db, "supplier@example.com", "supplier", "Sam", company="Widget Works")


@pytest.fixture
def other_supplier(db):
    return _user(db, "bolts@example.com", "supplier", "Bo", company="Bolt Co")


def _product(db, supplier, name, price, min_order_quantity=1, stock=100, status="active"):
    product = Product(
        supplier_id=supplier.id,
        name=name,
        price=Decimal(price),
        min_order_quantity=min_order_quantity,
        stock=stock,
        status=status,
    )
    db.add(product)
    db.commit()
    db.refresh(product)
    return product


@pytest.fixture
def widget(db, supplier):
    return _product(db, supplier, "Widget", "10.00")


@pytest.fixture
def bolts(db, other_supplier):
    return _product(db, other_supplier, "Bolts", "2.50", min_order_quantity=5, stock=500)


@pytest.fixture
def make_product(db):
    def _make(supplier, name="Gadget", price="4.00", **kwargs):
        return _product(db, supplier, name, price, **kwargs)
    return _make


@pytest.fixture
def headers_for():
    def _headers(user):
        return {"Authorization": f"Bearer {jwt_utils.create_access_token(str(user.id))}"}
    return _headers


@pytest.fixture
def checkout_payload():
    return {
        "shipping_address": dict(ADDRESS),
        "same_as_shipping": True,
        "payment_method": "credit_card",
        "payment_details": {"card_last4": "4242", "card_brand": "Visa", "transaction_id": "txn_123"},
    }


@pytest.fixture
def place_order(db, checkout_payload):
    """Fill ``buyer``'s cart with ``lines`` of (product, quantity) and check out."""
    def _place(buyer, lines):
        for product, quantity in lines:
            cart_service.add_item(db, buyer.id, product.id, quantity)
        return checkout(db, buyer, CheckoutRequest(**checkout_payload))
    return _place


@pytest.fixture
def mixed_order(place_order, buyer, widget, bolts):
    """Confirmed order with one line from each supplier."""
    return place_order(buyer, [(widget, 2), (bolts, 10)])
