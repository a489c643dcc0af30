"""
Pytest fixtures for shopstock backend tests.

Provides test database setup, user/shop/product factories, and test client.
"""

import pytest

from shopstock import create_app
from shopstock.extensions import db
from shopstock.models import Product, Shop, Supplier, User
from shopstock.services import product_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'STOCK_RETRY_BACKOFF': 0,
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
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()
        db.session.expunge_all()


@pytest.fixture(scope='function')
def make_user(db_session):
    """Factory: make_user("Cashier") -> persisted User with that role."""
    counter = {"n": 0}

    def _make(role: str, username: str | None = None) -> User:
        counter["n"] += 1
        user = User(
            username=username or f"{role.lower()}_{counter['n']}",
            email=f"{role.lower()}_{counter['n']}@shopstock.test",
            role=role,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _make


@pytest.fixture(scope='function')
def admin(make_user):
    return make_user("Admin", "admin")


@pytest.fixture(scope='function')
def manager(make_user):
    return make_user("Manager", "manager")


@pytest.fixture(scope='function')
def stock_keeper(make_user):
    return make_user("StockKeeper", "stock_keeper")


@pytest.fixture(scope='function')
def cashier(make_user):
    return make_user("Cashier", "cashier")


@pytest.fixture(scope='function')
def seller(make_user):
    return make_user("Seller", "seller")


@pytest.fixture(scope='function')
def other_seller(make_user):
    return make_user("Seller", "other_seller")


@pytest.fixture(scope='function')
def shop(db_session, seller):
    """Shop owned by the seller."""
    shop = Shop(name="Seller Shop", owner_id=seller.id)
    db_session.add(shop)
    db_session.commit()
    return shop


@pytest.fixture(scope='function')
def supplier(db_session):
    supplier = Supplier(name="Acme Wholesale", contact_person="Dara", is_active=True)
    db_session.add(supplier)
    db_session.commit()
    return supplier


@pytest.fixture(scope='function')
def make_product(db_session, admin):
    """
    Factory: global product whose opening stock is posted through the ledger,
    so every product starts with a consistent movement history.
    """
    counter = {"n": 0}

    def _make(
        *,
        stock: int = 0,
        min_stock: int = 10,
        price_cents: int = 1000,
        cost_cents: int = 600,
        sku: str | None = None,
        owner_id: int | None = None,
    ) -> Product:
        counter["n"] += 1
        return product_service.create_product(
            {
                "sku": sku or f"SKU-{counter['n']:03d}",
                "name": f"Product {counter['n']}",
                "price_cents": price_cents,
                "cost_cents": cost_cents,
                "min_stock": min_stock,
                "initial_stock": stock,
            },
            admin.id,
            owner_id=owner_id,
        )

    return _make


def reload(instance):
    """Drop cached state and read the row again."""
    db.session.expire_all()
    return db.session.get(type(instance), instance.id)


def auth_headers(user) -> dict:
    """Helper to create the acting-user header."""
    return {'X-User-Id': str(user.id)}
