"""
Shared pytest fixtures for the Buildroom Workflow test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - staff / other_staff / manager / admin: pre-created users
    - auth_headers: Bearer header factory for a user
    - catalog: laptop type with a two-step template, monitor type without one
    - make_order: order factory going through order_service.create_order
    - finish_checklist: drives a system checklist to done
"""

import pytest

from buildroom import create_app
from buildroom.models import db as _db
from buildroom.models.auth import User
from buildroom.models.checklist import ChecklistStep, ChecklistTemplate
from buildroom.models.system import SystemType
from buildroom.services import order_service
from buildroom.services.jwt_service import generate_access_token


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Users & identity ─────────────────────────────────────────────────────


def _user(email, first, last, role):
    user = User(email=email, first_name=first, last_name=last, role=role)
    _db.session.add(user)
    _db.session.commit()
    return user


@pytest.fixture()
def staff():
    return _user("sam@buildroom.test", "Sam", "Tech", "staff")


@pytest.fixture()
def other_staff():
    return _user("robin@buildroom.test", "Robin", "Tech", "staff")


@pytest.fixture()
def manager():
    return _user("morgan@buildroom.test", "Morgan", "Lead", "manager")


@pytest.fixture()
def admin():
    return _user("alex@buildroom.test", "Alex", "Admin", "admin")


@pytest.fixture()
def auth_headers():
    """``auth_headers(user)`` → Authorization header dict for the test client."""

    def _headers(user):
        return {"Authorization": f"Bearer {generate_access_token(user.id, user.role)}"}

    return _headers


# ── Catalog & orders ─────────────────────────────────────────────────────


@pytest.fixture()
def catalog():
    """Laptop: [Image (weight 2), Final inspection (QA)]. Monitor: no template."""
    laptop = SystemType(name="Laptop", code="laptop", requires_imaging=True)
    monitor = SystemType(name="Monitor", code="monitor")
    template = ChecklistTemplate(name="Laptop build", system_type=laptop)
    template.steps = [
        ChecklistStep(step_order=1, name="Image", step_weight=2.0, estimated_minutes=30),
        ChecklistStep(step_order=2, name="Final inspection", requires_qa=True,
                      step_weight=1.0, estimated_minutes=10),
    ]
    _db.session.add_all([laptop, monitor, template])
    _db.session.commit()
    return {"laptop": laptop, "monitor": monitor, "template": template}


@pytest.fixture()
def make_order(catalog, staff):
    """Create an order through the service; ``systems`` defaults to one laptop."""
    counter = {"n": 0}

    def _make(systems=None, actor=None, **overrides):
        counter["n"] += 1
        payload = {
            "external_ref": f"WC-{1000 + counter['n']}",
            "customer_name": "Dana Customer",
            "customer_email": "dana@example.com",
            "customer_department": "Finance",
            "order_date": "2026-10-01T09:00:00Z",
            "delivery_method": "delivery",
            "systems": [{"type": "laptop", "quantity": 1}] if systems is None else systems,
        }
        payload.update(overrides)
        return order_service.create_order(payload, actor or staff)

    return _make


@pytest.fixture()
def finish_checklist():
    """``finish_checklist(system, worker, qa)`` completes every step, QA-checking where needed."""
    from buildroom.services import checklist_service

    def _finish(system, worker, qa):
        checklist = system.checklist
        for step in list(checklist.steps):
            checklist_service.complete_step(checklist.id, step.id, worker)
            if step.requires_qa:
                checklist_service.qa_check_step(checklist.id, step.id, qa)

    return _finish
