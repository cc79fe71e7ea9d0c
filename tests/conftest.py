"""Shared test fixtures and utilities for all tests.

This conftest.py provides an in-memory SQLite database, a seeded baseline
channel, and a FastAPI test client bound to the same database. Row
factories live in tests/factories.py.
"""

import sys
from pathlib import Path

# CRITICAL: Ensure the correct project root is first in sys.path
# This prevents importing from other projects with similar module names
project_root = str(Path(__file__).parent.parent.absolute())
if project_root not in sys.path:
    sys.path.insert(0, project_root)
elif sys.path[0] != project_root:
    sys.path.remove(project_root)
    sys.path.insert(0, project_root)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, pool
from sqlalchemy.orm import sessionmaker

from channeldata.lib.config import AggregationConfig
from channeldata.lib.database import Base
from tests.factories import BASELINE_SAMPLES, add_samples

# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def db_engine():
    """In-memory SQLite engine; StaticPool shares one connection between sessions."""
    engine = create_engine(
        'sqlite:///:memory:',
        connect_args={'check_same_thread': False},
        poolclass=pool.StaticPool,
        echo=False,
    )
    from channeldata import models  # noqa: F401  (registers tables)

    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    """Database session for one test."""
    SessionFactory = sessionmaker(bind=db_engine, autoflush=False)
    session = SessionFactory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def aggregation_config():
    """Default aggregation settings (enabled, day fallback, UTC)."""
    return AggregationConfig()


@pytest.fixture
def baseline_channel(db_session):
    """Channel 1 seeded with BASELINE_SAMPLES, no rollups."""
    add_samples(db_session, BASELINE_SAMPLES)
    return 1


# ============================================================================
# FastAPI Application Fixtures
# ============================================================================

@pytest.fixture
def client(db_session, aggregation_config):
    """Test client with the database session and settings overridden."""
    from channeldata.app import app
    from channeldata.lib.database import get_db_session
    from channeldata.routers.data import get_aggregation_config

    def override_session():
        yield db_session

    app.dependency_overrides[get_db_session] = override_session
    app.dependency_overrides[get_aggregation_config] = lambda: aggregation_config
    yield TestClient(app)
    app.dependency_overrides.clear()
