"""
Global test configuration for LinearVue.

Every test gets a fresh in-memory SQLite database bound to the module-level
session factory, plus fixtures for building the scheduling runtime against
in-memory collaborators.
"""

import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Ensure the project src directory is importable without relying on external environment.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from linearvue.infra import db as db_module  # noqa: E402
from linearvue.infra.settings import settings  # noqa: E402
from linearvue.runtime.block_store import InMemoryBlockStore  # noqa: E402
from linearvue.runtime.catalog import InMemoryCatalog  # noqa: E402
from linearvue.runtime.change_notifier import ChangeNotifier  # noqa: E402
from linearvue.runtime.channel_source import InMemoryChannelSource  # noqa: E402
from linearvue.runtime.clock import ControllableMasterClock  # noqa: E402
from linearvue.runtime.schedule_manager import ScheduleManager  # noqa: E402
from linearvue.runtime.schedule_types import ChannelSnapshot, FillerPolicy  # noqa: E402
from linearvue.runtime.timeline_builder import TimelineBuilder  # noqa: E402
from schedule_helpers import ALPHA, BRAVO, CHARLIE, MIN, at  # noqa: E402


@pytest.fixture
def engine():
    test_engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        future=True,
    )
    db_module.install_sqlite_pragmas(test_engine)
    db_module.init_db(test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(
        bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True
    )


@pytest.fixture(autouse=True)
def _force_test_db(monkeypatch, engine, session_factory):
    """Point the module-level engine and SessionLocal at the per-test database."""
    monkeypatch.setattr(db_module, "SessionLocal", session_factory)
    monkeypatch.setattr(db_module, "engine", engine)
    monkeypatch.setattr(db_module, "get_engine", lambda db_url=None: engine)
    # One connection is shared by every thread; keep batch work serial.
    monkeypatch.setattr(settings, "regeneration_max_workers", 1)
    monkeypatch.setattr(settings, "auto_regenerate_enabled", False)


@pytest.fixture
def db_session(session_factory):
    with session_factory() as db:
        yield db


@pytest.fixture
def clock():
    return ControllableMasterClock(epoch=at(minutes=10))


@pytest.fixture
def catalog():
    return InMemoryCatalog([ALPHA, BRAVO, CHARLIE])


@pytest.fixture
def channels():
    return InMemoryChannelSource(
        [ChannelSnapshot(id=1, number=1, name="One", item_ids=("A", "B"), content_version=1)]
    )


@pytest.fixture
def store():
    return InMemoryBlockStore()


@pytest.fixture
def notifier():
    return ChangeNotifier()


@pytest.fixture
def manager(channels, store, catalog, clock, notifier):
    return ScheduleManager(
        channels,
        store,
        TimelineBuilder(catalog, FillerPolicy(fill_ms=5 * MIN)),
        clock,
        block_hours=8,
        lookahead_blocks=3,
        max_workers=2,
        notifier=notifier,
    )
