"""
Shared fixtures: an in-memory SQLite store seeded with the demo depot layout.
DATABASE_URL is forced to SQLite before anything under app/ is imported.
"""

import os
import sys
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))
os.environ["DATABASE_URL"] = "sqlite://"

import pytest

import app.models  # noqa: F401  (registers every table on Base)
from app.database import Base, SessionLocal, engine, create_tables
from app.models.bay import Bay
from app.models.floor import Floor
from app.services.depot_layout import seed_depot
from app.services.gate_session import gate_sessions
from app.utils.locks import entity_locks


@pytest.fixture
def db():
    Base.metadata.drop_all(bind=engine)
    create_tables()
    gate_sessions.clear()
    entity_locks.reset()
    session = SessionLocal()
    seed_depot(session)
    try:
        yield session
    finally:
        gate_sessions.clear()
        entity_locks.reset()
        session.close()


@pytest.fixture
def fast_fallback(monkeypatch):
    """Make the RFID fallback fire almost immediately."""
    from app.config import settings
    monkeypatch.setattr(settings, "IDENTIFICATION_FALLBACK_SECONDS", 0.01)
    return 0.01


@pytest.fixture
def bay_by_code(db):
    def _get(code):
        return db.query(Bay).filter(Bay.bay_code == code).one()
    return _get


@pytest.fixture
def floor_id(db):
    def _get(level):
        return db.query(Floor).filter(Floor.level_number == level).one().id
    return _get
