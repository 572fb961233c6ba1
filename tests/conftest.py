"""
Pytest configuration file with shared fixtures.
"""
import shutil
import tempfile
from pathlib import Path
from typing import Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import app.db.models  # noqa: F401
from app.db.base_class import Base
from app.db.models.assistant import Assistant
from app.services.sync.folder_sync import FolderSynchronizer
from tests.helpers import RecordingNotifier, make_assistant

# In-memory database shared by every session of a test
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def session_factory():
    """
    Create a fresh database for each test and hand out its session factory.
    """
    Base.metadata.create_all(bind=engine)
    yield TestingSessionLocal
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    temp_path = Path(tempfile.mkdtemp())
    yield temp_path
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def docs_dir(temp_dir: Path) -> Path:
    """Create an empty documents folder."""
    folder = temp_dir / "docs"
    folder.mkdir()
    return folder


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def synchronizer(session_factory, notifier) -> FolderSynchronizer:
    return FolderSynchronizer(session_factory=session_factory, notifier=notifier)


@pytest.fixture
def assistant(db, docs_dir) -> Assistant:
    """A stored, active assistant bound to the docs folder."""
    return make_assistant(db, folder=str(docs_dir))
