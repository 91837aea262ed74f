"""Shared test fixtures for the CRM test suite.

Provides:
- app: Flask app configured for testing (in-memory SQLite, no SMTP)
- client: Flask test client
- db_session: clean database per test (tables created/dropped)
- make_lead: factory that inserts a Lead with sensible defaults
- seed_data: a handful of leads plus cadence templates
- smtp_configured: SMTP credentials set on the app config
"""

from datetime import datetime, timedelta, timezone

import pytest

from crm import create_app
from crm.extensions import db as _db
from crm.models.email_template import EmailTemplate
from crm.models.lead import Lead


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


@pytest.fixture
def make_lead(db_session):
    """Insert a lead. Keyword arguments override the defaults."""

    def _make(**fields):
        data = {"dispensary_name": "Test Dispensary", "stage": "New Lead"}
        data.update(fields)
        lead = Lead(**data)
        db_session.add(lead)
        db_session.flush()
        return lead

    return _make


@pytest.fixture
def smtp_configured(app, monkeypatch):
    monkeypatch.setitem(app.config, "MAIL_USERNAME", "sales@example.com")
    monkeypatch.setitem(app.config, "MAIL_PASSWORD", "app-password")
    monkeypatch.setitem(app.config, "MAIL_FROM_NAME", "Pat Seller")


@pytest.fixture
def seed_data(db_session, make_lead):
    """Three leads (two of them duplicates by phone) and two cadence templates.

    Returns plain ids so tests can use them after commits expire objects.
    """
    long_ago = datetime.now(timezone.utc) - timedelta(days=30)
    green = make_lead(
        dispensary_name="Green Leaf Wellness",
        contact_name="Sam Rivera",
        contact_email="sam@greenleaf.example",
        contact_number="(555) 201-3344",
        city="Denver",
        state="CO",
        current_pos_system="Dutchie",
        deal_value=350,
        priority="High",
        stage="Contacted",
        source="manual",
        created_at=long_ago,
    )
    green_dup = make_lead(
        dispensary_name="Green Leaf - Downtown",
        contact_name="Sam R.",
        contact_number="555.201.3344",
        city="Denver",
        state="CO",
        stage="New Lead",
        source="import",
        created_at=long_ago + timedelta(days=1),
    )
    coastal = make_lead(
        dispensary_name="Coastal Cannabis Co",
        contact_name="Jordan Blake",
        contact_email="jordan@coastal.example",
        city="Portland",
        state="OR",
        current_pos_system="Treez",
        priority="Low",
        stage="Negotiating",
        deal_value=600,
        source="referral",
        created_at=long_ago + timedelta(days=2),
    )

    intro = EmailTemplate(
        name="Intro Email",
        subject="Quick question for {{dispensary_name}}",
        body="Hi {{first_name}}, do you still use {{current_pos_system}}? - {{sender_name}}",
        category="Intro",
        cadence_step=1,
        delay_days=0,
        is_default=True,
    )
    followup = EmailTemplate(
        name="Value Follow-Up",
        subject="Following up, {{first_name}}",
        body="Hi {{first_name}}, checking back in about {{dispensary_name}}.",
        category="Follow-Up",
        cadence_step=3,
        delay_days=2,
    )
    db_session.add_all([intro, followup])
    db_session.commit()

    return {
        "green_id": green.id,
        "green_dup_id": green_dup.id,
        "coastal_id": coastal.id,
        "intro_id": intro.id,
        "followup_id": followup.id,
    }
