"""
Pytest fixtures for board cafe backend tests.

Provides test database setup, customer/plan/membership fixtures, and test client.
"""

import pytest
from boardcafe import create_app
from boardcafe.extensions import db
from boardcafe.models import Customer
from boardcafe.services import membership_service


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


def make_customer(db_session, name="Aiko", email=None):
    customer = Customer(display_name=name, email=email, points_balance=0)
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def customer(db_session):
    """Walk-in customer with no points and no membership."""
    return make_customer(db_session, name="Aiko", email="aiko@example.com")


@pytest.fixture(scope='function')
def other_customer(db_session):
    return make_customer(db_session, name="Ren", email="ren@example.com")


@pytest.fixture(scope='function')
def plan(db_session):
    """Monthly Pass: 20h included, ¥300/h overage, 200 bonus points."""
    return membership_service.create_plan({
        "name": "Monthly Pass",
        "price": 800000,
        "hours_included": 20,
        "overage_rate": 30000,
        "points_on_purchase": 200,
        "earn_rate_denominator": 40,
    })


@pytest.fixture(scope='function')
def membership(db_session, customer, plan):
    """Active membership for `customer` starting now."""
    return membership_service.purchase_membership(customer.id, plan.id)
