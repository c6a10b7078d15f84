import pytest
from datetime import date
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from spendshare.core.models import Base
from spendshare.events.bus import ChangeBus
from spendshare.services.profile_service import register_profile

TODAY = date(2026, 3, 14)


@pytest.fixture
def engine():
    """In-memory SQLite database shared by every connection of a test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _fk_on(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine):
    SessionLocal = sessionmaker(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def bus():
    return ChangeBus(history_size=64)


@pytest.fixture
def users(db_session):
    """Three registered accounts: alice, bob and carol."""
    for user_id, name in (("alice", "Alice"), ("bob", "Bob"), ("carol", "Carol")):
        register_profile(db_session, user_id, f"{user_id}@example.com", name)
    return ("alice", "bob", "carol")
