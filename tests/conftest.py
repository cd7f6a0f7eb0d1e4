"""
Shared pytest fixtures for the diligence tracking test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - category / other_category: Pre-created taxonomy categories
"""

import pytest

from dealroom import create_app
from dealroom.models import db as _db
from dealroom.models.diligence import DiligenceCategory, DiligenceSubcategory


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
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def category():
    """A committed 'Financial' category with one subcategory."""
    cat = DiligenceCategory(name="Financial", icon="bar-chart-3", color="#10B981", order_index=0)
    _db.session.add(cat)
    _db.session.flush()
    _db.session.add(DiligenceSubcategory(category_id=cat.id, name="Tax Returns", order_index=0))
    _db.session.commit()
    return cat


@pytest.fixture()
def other_category():
    cat = DiligenceCategory(name="Legal", order_index=1)
    _db.session.add(cat)
    _db.session.commit()
    return cat
