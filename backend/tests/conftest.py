"""
Pytest fixtures for stockroom backend tests.

Provides an in-memory app, per-test table wipe, a two-branch business with
one staff member per role, and small factories for suppliers, products and
approved purchase orders.
"""

import pytest

from stockroom import create_app
from stockroom.extensions import db
from stockroom.models import Business, Branch, Staff, Supplier, Product
from stockroom.permissions import Role
from stockroom.services import actor_service, purchase_order_service
from stockroom.services.notification_service import (
    NOTIFIER_EXTENSION_KEY,
    Notifier,
    NotificationError,
    install_notifier,
)


class RecordingNotifier(Notifier):
    """Keeps every message; methods listed in `failing` raise."""

    def __init__(self):
        self.sent = []
        self.failing = set()

    def send(self, *, method, contact, subject, message):
        if method in self.failing:
            raise NotificationError(f"{method} gateway down")
        self.sent.append({"method": method, "contact": contact, "subject": subject, "message": message})
        return True


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
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


@pytest.fixture(scope='function')
def notifier(app):
    previous = app.extensions.get(NOTIFIER_EXTENSION_KEY)
    recorder = RecordingNotifier()
    install_notifier(app, recorder)
    yield recorder
    if previous is None:
        app.extensions.pop(NOTIFIER_EXTENSION_KEY, None)
    else:
        install_notifier(app, previous)


@pytest.fixture(scope='function')
def business(db_session):
    business = Business(name="Corner Shop", is_active=True)
    db_session.add(business)
    db_session.commit()
    return business


@pytest.fixture(scope='function')
def other_business(db_session):
    business = Business(name="Rival Traders", is_active=True)
    db_session.add(business)
    db_session.commit()
    return business


@pytest.fixture(scope='function')
def main_branch(db_session, business):
    branch = Branch(business_id=business.id, name="Main Branch", code="MAIN", is_default=True)
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def east_branch(db_session, business):
    branch = Branch(business_id=business.id, name="East Branch", code="EAST")
    db_session.add(branch)
    db_session.commit()
    return branch


def _make_staff(session, business, branch, role, email):
    staff = Staff(
        business_id=business.id,
        branch_id=branch.id if branch else None,
        email=email,
        first_name=role.value.split()[0],
        role=role.value,
        is_active=True,
    )
    session.add(staff)
    session.commit()
    return staff


@pytest.fixture(scope='function')
def owner(db_session, business, main_branch):
    return _make_staff(db_session, business, main_branch, Role.BUSINESS_OWNER, "owner@shop.test")


@pytest.fixture(scope='function')
def manager(db_session, business, main_branch):
    return _make_staff(db_session, business, main_branch, Role.MANAGER, "manager@shop.test")


@pytest.fixture(scope='function')
def accountant(db_session, business, main_branch):
    return _make_staff(db_session, business, main_branch, Role.ACCOUNTANT, "accounts@shop.test")


@pytest.fixture(scope='function')
def cashier(db_session, business, main_branch):
    return _make_staff(db_session, business, main_branch, Role.CASHIER, "till@shop.test")


@pytest.fixture(scope='function')
def east_staff(db_session, business, east_branch):
    return _make_staff(db_session, business, east_branch, Role.STAFF, "east@shop.test")


@pytest.fixture(scope='function')
def owner_ctx(owner):
    return actor_service.context_for_staff(owner)


@pytest.fixture(scope='function')
def manager_ctx(manager):
    return actor_service.context_for_staff(manager)


@pytest.fixture(scope='function')
def accountant_ctx(accountant):
    return actor_service.context_for_staff(accountant)


@pytest.fixture(scope='function')
def cashier_ctx(cashier):
    return actor_service.context_for_staff(cashier)


@pytest.fixture(scope='function')
def east_ctx(east_staff):
    return actor_service.context_for_staff(east_staff)


@pytest.fixture(scope='function')
def supplier(db_session, business):
    supplier = Supplier(
        business_id=business.id,
        name="Fresh Farms",
        contact_name="Ada",
        contact_email="orders@freshfarms.test",
        contact_phone="+15550100",
        is_active=True,
    )
    db_session.add(supplier)
    db_session.commit()
    return supplier


@pytest.fixture(scope='function')
def make_product(db_session, business, main_branch):
    """Factory: make_product(name, sku, stock=0, cost=500, branch=main, supplier=None)."""

    def _make(name="Rice 5kg", sku="RICE-5", *, stock=0, cost=500, branch=None, supplier=None, threshold=10):
        product = Product(
            business_id=business.id,
            branch_id=(branch or main_branch).id,
            name=name,
            sku=sku,
            stock=stock,
            low_stock_threshold=threshold,
            cost_price_cents=cost,
            retail_price_cents=cost * 2 if cost is not None else None,
            supplier_id=supplier.id if supplier else None,
            is_active=True,
        )
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def approved_order():
    """Factory: drive a new purchase order through Draft -> Sent -> Approved."""

    def _approve(ctx, *, branch, supplier, items):
        po = purchase_order_service.create_purchase_order(
            ctx,
            branch_id=branch.id,
            supplier_id=supplier.id,
            items=items,
        )
        purchase_order_service.send_purchase_order(ctx, po.id, methods=["Email"])
        return purchase_order_service.approve_purchase_order(ctx, po.id)

    return _approve