"""Shared test fixtures for the FireOps test suite.

Provides:
- app: Flask app configured for testing (in-memory SQLite, CSRF off)
- client: Flask test client
- db_session: clean database per test (tables created/dropped)
- seed_data: a team, one user per role, a customer, a draft quote,
  an accepted quote and a job assigned to the technician
- login: helper that signs a user in through POST /api/auth/login
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from werkzeug.security import generate_password_hash

from fireops import create_app
from fireops.extensions import db as _db
from fireops.models.customer import Customer
from fireops.models.job import Job, JobAssignment
from fireops.models.quote import Quote
from fireops.models.user import Team, User

YEAR = datetime.now(timezone.utc).year

PASSWORDS = {
    "admin": "admin123",
    "manager": "manager123",
    "technician": "tech1234",
    "inspector": "inspect123",
    "other_tech": "tech5678",
}

LINE_ITEMS = [
    {
        "id": "item-1",
        "category": "Smoke Detection",
        "name": "Smoke Detector",
        "description": "Smoke Detector",
        "unit": "ea",
        "quantity": 2.0,
        "unit_price": 75.0,
        "allowance_low": 0.0,
        "allowance_high": 0.0,
        "is_allowance": False,
        "taxable": True,
        "amount": 150.0,
        "amount_low": 150.0,
        "amount_high": 150.0,
    },
    {
        "id": "item-2",
        "category": "Pull Stations",
        "name": "Pull Station",
        "description": "Pull Station",
        "unit": "ea",
        "quantity": 1.0,
        "unit_price": 150.0,
        "allowance_low": 0.0,
        "allowance_high": 0.0,
        "is_allowance": False,
        "taxable": True,
        "amount": 150.0,
        "amount_low": 150.0,
        "amount_high": 150.0,
    },
]

TOTALS = {
    "subtotal": 300.0,
    "subtotal_low": 300.0,
    "subtotal_high": 300.0,
    "labor_total": 0.0,
    "materials_total": 300.0,
    "tax_rate": 0.0825,
    "tax": 24.75,
    "total": 324.75,
    "total_low": 324.75,
    "total_high": 324.75,
}

CUSTOMER_SNAPSHOT = {
    "name": "Acme Property Management",
    "email": "billing@acme.test",
    "phone": "512-555-0100",
    "address": "100 Congress Ave",
    "city": "Austin",
    "state": "TX",
    "zip": "78701",
}

SITE = {
    "address": "100 Congress Ave",
    "city": "Austin",
    "state": "TX",
    "zip": "78701",
}


@pytest.fixture(scope="session")
def app():
    """Create the Flask application configured for testing."""
    app = create_app("testing")
    yield app


@pytest.fixture(autouse=True)
def db_session(app):
    """Create all tables before each test, drop after."""
    with app.app_context():
        _db.create_all()
        yield _db.session
        _db.session.rollback()
        _db.drop_all()


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


def _user(email, role, full_name, password, team=None):
    user = User(
        email=email,
        password_hash=generate_password_hash(password),
        full_name=full_name,
        role=role,
        team_id=team.id if team else None,
        is_active=True,
    )
    _db.session.add(user)
    return user


@pytest.fixture
def seed_data(db_session):
    """Seed users, a customer, two quotes and an assigned job.

    Returns a dict of ids (plain strings) for easy access in tests.
    """
    team = Team(name="North Team")
    _db.session.add(team)
    _db.session.flush()

    admin = _user("admin@fireops.local", "admin", "Admin User", PASSWORDS["admin"])
    manager = _user(
        "manager@fireops.local", "manager", "Maria Manager", PASSWORDS["manager"], team
    )
    tech = _user(
        "tech@fireops.local", "technician", "Tom Tech", PASSWORDS["technician"], team
    )
    other_tech = _user(
        "other@fireops.local", "technician", "Olive Other", PASSWORDS["other_tech"], team
    )
    inspector = _user(
        "inspector@fireops.local", "inspector", "Ian Inspector", PASSWORDS["inspector"], team
    )
    _db.session.flush()

    customer = Customer(
        name="Acme Property Management",
        email="billing@acme.test",
        phone="512-555-0100",
        address="100 Congress Ave",
        city="Austin",
        state="TX",
        zip="78701",
    )
    _db.session.add(customer)

    draft_quote = Quote(
        quote_number=f"QT-{YEAR}-001",
        quote_type="installation",
        template_name="Fire Alarm Install",
        status="draft",
        customer=dict(CUSTOMER_SNAPSHOT),
        site=dict(SITE),
        line_items=[dict(item) for item in LINE_ITEMS],
        totals=dict(TOTALS),
        deposit_amount=Decimal("100.00"),
    )
    accepted_quote = Quote(
        quote_number=f"QT-{YEAR}-002",
        quote_type="installation",
        template_name="Fire Alarm Install",
        status="accepted",
        customer=dict(CUSTOMER_SNAPSHOT),
        site=dict(SITE),
        line_items=[dict(item) for item in LINE_ITEMS],
        totals=dict(TOTALS),
    )
    _db.session.add_all([draft_quote, accepted_quote])
    _db.session.flush()

    job = Job(
        job_number=f"JOB-{YEAR}-0001",
        customer_id=customer.id,
        customer_name="Acme Property Management",
        customer_email="billing@acme.test",
        site_address="100 Congress Ave",
        site_city="Austin",
        site_state="TX",
        site_zip="78701",
        job_type="installation",
        status="scheduled",
        scope_summary="2x Smoke Detector\nPull Station",
        total_amount=Decimal("300.00"),
        team_id=team.id,
    )
    _db.session.add(job)
    _db.session.flush()

    _db.session.add(JobAssignment(job_id=job.id, user_id=tech.id, role="technician"))
    _db.session.commit()

    return {
        "team_id": team.id,
        "admin_id": admin.id,
        "manager_id": manager.id,
        "tech_id": tech.id,
        "other_tech_id": other_tech.id,
        "inspector_id": inspector.id,
        "customer_id": customer.id,
        "draft_quote_id": draft_quote.id,
        "accepted_quote_id": accepted_quote.id,
        "job_id": job.id,
    }


@pytest.fixture
def login(client):
    """Return a helper that logs in as one of the seeded roles.

    Usage: login("admin"), login("technician"), login("other_tech")
    """
    emails = {
        "admin": "admin@fireops.local",
        "manager": "manager@fireops.local",
        "technician": "tech@fireops.local",
        "inspector": "inspector@fireops.local",
        "other_tech": "other@fireops.local",
    }

    def _login(role):
        resp = client.post(
            "/api/auth/login",
            json={"email": emails[role], "password": PASSWORDS[role]},
        )
        assert resp.status_code == 200, resp.data
        return resp

    return _login
