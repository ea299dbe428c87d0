"""Shared pytest fixtures for all tests."""

import sqlite3
import pytest
from datetime import datetime, timedelta, timezone
from pathlib import Path

from config import Config, get_migrations_dir
from services.base import Services
from tests.helpers import FakeClock, run_migrations


@pytest.fixture
def test_db():
    """Create an in-memory SQLite database for testing.

    Yields:
        sqlite3.Connection: Connection to in-memory database.
    """
    # Shared with worker threads in the concurrency tests
    conn = sqlite3.connect(":memory:", check_same_thread=False)
    yield conn
    conn.close()


@pytest.fixture
def test_config(tmp_path):
    """Create a test configuration pointing to a temporary directory.

    Args:
        tmp_path: pytest tmp_path fixture for temporary directory.

    Returns:
        Config: Test configuration object.
    """
    return Config(
        base_dir=tmp_path / "fillbook",
        db_data_dir=tmp_path / "fillbook" / "db",
        db_filename="test.db",
        log_level="DEBUG",
        log_dir=tmp_path / "fillbook" / "logs",
        upload_dir=tmp_path / "fillbook" / "uploads",
        sessions_dir=tmp_path / "fillbook" / "sessions",
        session_ttl_minutes=30,
        cleanup_interval_seconds=300,
        max_upload_bytes=10 * 1024 * 1024,
        execute_policy="single_use",
    )


@pytest.fixture
def db_manager_with_schema(test_db):
    """Create a DatabaseManager with schema already set up.

    This fixture provides a DatabaseManager that uses an in-memory database
    with all migrations already applied.

    Args:
        test_db: In-memory database connection fixture.

    Returns:
        DatabaseManager: Database manager with schema ready.
    """
    # Run migrations to set up schema
    migrations_dir = get_migrations_dir()
    run_migrations(test_db, migrations_dir)

    # Create a custom DatabaseManager that uses our in-memory connection
    class TestDatabaseManager:
        """Test database manager that uses in-memory connection."""

        def __init__(self, conn):
            self.conn = conn

        def connect(self):
            """Return a context manager for the test connection."""
            return _TestConnectionContext(self.conn)

        def get_db_path(self):
            """Return a fake path for the test database."""
            return Path(":memory:")

        def get_migrations_dir(self):
            """Get the migrations directory path."""
            return get_migrations_dir()

    class _TestConnectionContext:
        """Context manager for test database connections."""

        def __init__(self, conn):
            self.conn = conn

        def __enter__(self):
            return self.conn

        def __exit__(self, exc_type, exc_val, exc_tb):
            # Don't close the connection - let the fixture handle it
            pass

    return TestDatabaseManager(test_db)


@pytest.fixture
def clock():
    """A controllable clock starting at a fixed UTC time."""
    return FakeClock(datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def services(test_config, db_manager_with_schema, clock):
    """Create a Services container with test database.

    This fixture provides access to all services with a clean test database
    and a session registry driven by the fake clock.

    Args:
        test_config: Test configuration fixture.
        db_manager_with_schema: Database manager with schema set up.
        clock: Fake clock fixture.

    Returns:
        Services: Services container for testing.
    """
    return Services(test_config, db_manager=db_manager_with_schema, clock=clock)


@pytest.fixture
def expire(clock, test_config):
    """Move the fake clock past the session TTL."""

    def _expire():
        clock.advance(timedelta(minutes=test_config.session_ttl_minutes, seconds=1))

    return _expire
