"""
Shared pytest fixtures for the Taskflow test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - admin / manager / member / other_member: one user per role
    - auth_headers: build an Authorization header for a user
    - workflow: Todo / Doing / Done workflow owned by the manager
"""

import pytest

from taskflow import create_app
from taskflow.models import db as _db
from taskflow.models.user import User
from taskflow.models.workflow import Workflow, WorkflowStage
from taskflow.services.jwt_service import generate_access_token
from taskflow.utils.crypto import hash_password

TEST_PASSWORD = "secret123"


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


# ── Users ────────────────────────────────────────────────────────────────


def make_user(name, email, role):
    user = User(
        name=name,
        email=email,
        password_hash=hash_password(TEST_PASSWORD, rounds=4),
        role=role,
    )
    _db.session.add(user)
    _db.session.commit()
    return user


@pytest.fixture()
def admin():
    return make_user("Ada Admin", "admin@example.com", "admin")


@pytest.fixture()
def manager():
    return make_user("Max Manager", "manager@example.com", "manager")


@pytest.fixture()
def member():
    return make_user("Mia Member", "member@example.com", "member")


@pytest.fixture()
def other_member():
    return make_user("Olu Other", "other@example.com", "member")


@pytest.fixture()
def auth_headers():
    """Return a callable: auth_headers(user) -> {"Authorization": "Bearer ..."}."""

    def _headers(user):
        token = generate_access_token(user.id, user.email, user.role)
        return {"Authorization": f"Bearer {token}"}

    return _headers


# ── Workflow ─────────────────────────────────────────────────────────────


@pytest.fixture()
def workflow(manager):
    """Workflow with stages Todo(0), Doing(1), Done(2), owned by the manager."""
    wf = Workflow(name="Delivery", description="", project_id="default", created_by=manager.id)
    wf.stages = [
        WorkflowStage(name="Todo", order=0, color="#cccccc"),
        WorkflowStage(name="Doing", order=1, color="#3366ff"),
        WorkflowStage(name="Done", order=2, color="#22aa55"),
    ]
    _db.session.add(wf)
    _db.session.commit()
    return wf


@pytest.fixture()
def stages(workflow):
    """Map stage name -> WorkflowStage for the ``workflow`` fixture."""
    return {s.name: s for s in workflow.stages}
