"""
Pytest fixtures for the BOQ Desk test suite.

Provides:
- A Flask app built with TestConfig (in-memory SQLite, CSRF off) and a fresh schema per test
- Company / user / scope fixtures
- Document and persisted-BOQ factories
- A test client logged in as the fixture user
"""

from datetime import date
from decimal import Decimal

import pytest

from boqdesk import create_app
from boqdesk.documents import Client, Document, Item, Section, Subsection
from boqdesk.extensions import db
from boqdesk.models import Boq, Company, User
from boqdesk.scope import Actor, Scope
from boqdesk.seed import seed_default_units
from config import TestConfig

TEST_PASSWORD = "s3cret-pass"


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def company(app):
    company = Company(name="Acme Builders", currency="KES")
    db.session.add(company)
    db.session.commit()
    seed_default_units(company.id)
    return company


@pytest.fixture
def other_company(app):
    company = Company(name="Other Works", currency="KES")
    db.session.add(company)
    db.session.commit()
    return company


@pytest.fixture
def user(company):
    user = User(
        username="jane",
        full_name="Jane Wanjiru",
        email="jane@acme.test",
        is_admin=True,
        company_id=company.id,
    )
    user.set_password(TEST_PASSWORD)
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def scope(user):
    return Scope(
        company_id=user.company_id,
        actor=Actor(id=user.id, name=user.full_name, email=user.email),
        ip_address="127.0.0.1",
        user_agent="pytest",
    )


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_client(client, user):
    response = client.post("/auth/login", json={"username": user.username, "password": TEST_PASSWORD})
    assert response.status_code == 200
    return client


def make_item(description, quantity, rate, unit_id=None, unit_name=None):
    return Item(
        description=description,
        quantity=Decimal(str(quantity)),
        rate=Decimal(str(rate)),
        unit_id=unit_id,
        unit_name=unit_name,
    )


def make_sample_document(number="BOQ-20240115-0001"):
    """One section "General": A Materials -> Cement 10 x 50, B Labor -> Mason 5 x 100."""
    return Document(
        number=number,
        date=date(2024, 1, 15),
        currency="KES",
        client=Client(name="Kamau Holdings", email="info@kamau.test", city="Nairobi", country="Kenya"),
        project_title="Warehouse extension",
        sections=[
            Section(
                title="General",
                subsections=[
                    Subsection(name="A", label="Materials", items=[make_item("Cement", 10, 50, unit_name="Bag")]),
                    Subsection(name="B", label="Labor", items=[make_item("Mason", 5, 100)]),
                ],
            )
        ],
    )


def sample_payload(number=None, client_name="Kamau Holdings"):
    """JSON payload equivalent of make_sample_document()."""
    payload = {
        "date": "2024-01-15",
        "client": {"name": client_name, "email": "info@kamau.test"},
        "project_title": "Warehouse extension",
        "sections": [
            {
                "title": "General",
                "subsections": [
                    {
                        "name": "A",
                        "label": "Materials",
                        "items": [{"description": "Cement", "quantity": "10", "rate": "50", "unit_id": "Sm"}],
                    },
                    {
                        "name": "B",
                        "label": "Labor",
                        "items": [
                            {"description": "Mason", "quantity": 5, "rate": 100},
                            {"description": "", "quantity": "", "rate": ""},
                        ],
                    },
                ],
            }
        ],
    }
    if number:
        payload["number"] = number
    return payload


@pytest.fixture
def sample_document():
    return make_sample_document()


@pytest.fixture
def make_boq(scope):
    """Factory: persist a Boq for the fixture company."""

    def _make(document=None, tax_amount=Decimal("0")):
        document = document or make_sample_document()
        boq = Boq.from_document(
            document,
            company_id=scope.company_id,
            created_by=scope.actor.id,
            tax_amount=tax_amount,
        )
        db.session.add(boq)
        db.session.commit()
        return boq

    return _make
