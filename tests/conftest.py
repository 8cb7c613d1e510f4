"""
Shared pytest fixtures for the Stage & Form Definition Engine test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - engine: FormEngine over the SQL key-value table
    - memory_engine: FormEngine over an in-memory backend
    - category: Pre-created category with stages "1".."5"
    - runner: Flask CLI runner
"""

import pytest

from stageforms import create_app
from stageforms.models import db as _db
from stageforms.services.engine import build_engine, engine_from_app
from stageforms.services.repository import MemoryKeyValueBackend


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


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
        _db.session.remove()
        _db.drop_all()
        _db.create_all()
        app.extensions.pop("stageforms.memory_backend", None)


@pytest.fixture()
def runner(app):
    """Flask CLI runner."""
    return app.test_cli_runner()


# ── Engine fixtures ──────────────────────────────────────────────────────


@pytest.fixture()
def engine(app):
    """Engine on the kv_documents table, default catalog not seeded."""
    return engine_from_app(app)


@pytest.fixture()
def memory_backend():
    return MemoryKeyValueBackend()


@pytest.fixture()
def memory_engine(memory_backend):
    return build_engine(memory_backend, seed_defaults=False)


class RecordingNotifier:
    """Collects audit events instead of logging them."""

    def __init__(self):
        self.events = []

    def notify(self, action, category_id, resource_id):
        self.events.append((action, str(category_id), str(resource_id)))

    @property
    def actions(self):
        return [e[0] for e in self.events]


@pytest.fixture()
def notifier():
    return RecordingNotifier()


@pytest.fixture()
def recorded_engine(memory_backend, notifier):
    return build_engine(memory_backend, notifier=notifier, seed_defaults=False)


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def category(engine):
    """Category "1" with the five default stages A..E (ids "1".."5")."""
    cat = engine.stages.ensure_category("1")
    for stage, name in zip(engine.stages.list_stages("1"), "ABCDE"):
        engine.stages.rename_stage("1", stage.id, name)
    return engine.stages.get_category(cat.id)

