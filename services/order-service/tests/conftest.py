import os
import tempfile
from datetime import datetime, timezone
from decimal import Decimal

import pytest

# Application modules read their configuration at import time, so the test
# database has to be chosen before any of them is imported.
_DB_DIR = tempfile.mkdtemp(prefix="order-service-tests-")
os.environ["DATABASE_URL"] = "sqlite:///" + os.path.join(_DB_DIR, "orders.db")
os.environ["DB_LOCK_TIMEOUT_MS"] = "30000"
os.environ["OTEL_ENABLED"] = "false"


@pytest.fixture(autouse=True)
def setup_db():
    """Fresh schema for every test."""
    from database import engine, init_db
    from models import Base

    Base.metadata.drop_all(bind=engine)
    init_db()

    yield

    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory():
    from database import SessionLocal

    return SessionLocal


@pytest.fixture
def order_service():
    from dependencies import get_order_service

    return get_order_service()


@pytest.fixture
def make_product(session_factory):
    from models import Product

    def _make(name="Bananas", price="1.99", stock=10, deleted=False):
        with session_factory() as db, db.begin():
            product = Product(
                name=name,
                price=Decimal(price),
                stock=stock,
                deleted_at=datetime.now(timezone.utc) if deleted else None,
            )
            db.add(product)
            db.flush()
            return product.id

    return _make


@pytest.fixture
def make_cart(session_factory):
    """Create a cart for a user from a {product_id: quantity} mapping."""
    from models import Cart, CartItem

    def _make(user_id, items):
        with session_factory() as db, db.begin():
            cart = Cart(user_id=user_id)
            cart.items = [
                CartItem(product_id=product_id, quantity=quantity)
                for product_id, quantity in items.items()
            ]
            db.add(cart)
            db.flush()
            return cart.id

    return _make


@pytest.fixture
def stock_of(session_factory):
    from models import Product

    def _stock(product_id):
        with session_factory() as db:
            return db.get(Product, product_id).stock

    return _stock


@pytest.fixture
def count_rows(session_factory):
    def _count(model):
        with session_factory() as db:
            return db.query(model).count()

    return _count
