"""Pytest configuration and shared fixtures for all tests."""

import os
import sys
from decimal import Decimal
from pathlib import Path

# Minimal environment so config.Config can be imported outside production
os.environ.setdefault("FLASK_ENV", "testing")
os.environ.setdefault("SECRET_KEY", "test_secret_key_for_testing_only")

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import pytest

from app import create_app
from commission.config import CommissionConfigHelper
from config import TestConfig
from extensions import db
from models import KycStatus, Role, User

DEFAULT_PASSWORD = "secret123"


@pytest.fixture
def app():
    """Fresh application and in-memory database per test."""
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def ctx(app):
    """Application context for tests that call services directly."""
    with app.app_context():
        yield
        db.session.remove()


@pytest.fixture
def notifications(app):
    """Every event delivered through the notifier, as (user_id, event_type, payload)."""
    sent = []
    app.extensions["notifier"].register(lambda user_id, event, payload: sent.append((user_id, event, payload)))
    return sent


@pytest.fixture
def commission_levels(app):
    """The default five levels: 10, 5, 3, 2, 1 percent."""
    with app.app_context():
        CommissionConfigHelper.seed_defaults(db.session)
        db.session.commit()


@pytest.fixture
def make_user(app):
    """Create an account and return its id."""
    counter = {"n": 0}

    def _make_user(balance="0", referred_by=None, kyc_status=KycStatus.NOT_SUBMITTED,
                   role=Role.USER.value, name=None):
        counter["n"] += 1
        n = counter["n"]
        with app.app_context():
            user = User(
                full_name=name or f"User {n}",
                email=f"user{n}@example.com",
                mobile=f"+2567000000{n:02d}",
                role=role,
                referral_code=f"CODE{n:04d}",
                referred_by=referred_by,
                wallet_balance=Decimal(str(balance)),
                kyc_status=kyc_status,
            )
            user.set_password(DEFAULT_PASSWORD)
            db.session.add(user)
            db.session.commit()
            return user.id

    return _make_user


@pytest.fixture
def login(client):
    """Log the test client in as the given account id."""
    def _login(user_id, test_client=None):
        test_client = test_client or client
        with test_client.application.app_context():
            email = db.session.get(User, user_id).email
        response = test_client.post("/api/auth/login", json={
            "identifier": email,
            "password": DEFAULT_PASSWORD,
        })
        assert response.status_code == 200, response.get_json()
        return response

    return _login


@pytest.fixture
def user_state(app):
    """Detached snapshot of an account's money and referral fields."""
    def _user_state(user_id):
        with app.app_context():
            user = db.session.get(User, user_id)
            return {
                "wallet_balance": Decimal(str(user.wallet_balance)),
                "total_earnings": Decimal(str(user.total_earnings)),
                "referral_code": user.referral_code,
                "kyc_status": user.kyc_status,
            }

    return _user_state


@pytest.fixture
def admin_client(app, make_user, login):
    """Separate test client logged in as an admin account."""
    admin_id = make_user(role=Role.ADMIN.value, name="Admin")
    admin = app.test_client()
    login(admin_id, test_client=admin)
    return admin


@pytest.fixture
def make_plan(app):
    """Create an investment plan and return its id."""
    def _make_plan(amount="100", name=None, status="ACTIVE", daily_roi="15", duration=30):
        from models import InvestmentPlan

        with app.app_context():
            plan = InvestmentPlan(
                name=name or f"Plan {amount}",
                amount=Decimal(str(amount)),
                daily_roi=Decimal(str(daily_roi)),
                duration=duration,
                status=status,
            )
            db.session.add(plan)
            db.session.commit()
            return plan.id

    return _make_plan
