"""
Channel and library use cases against the per-test SQLite database.
"""

from __future__ import annotations

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from linearvue.domain.entities import ScheduleBlockRecord
from linearvue.infra.exceptions import ResourceError, StoreError, ValidationError
from linearvue.runtime.block_store import SqlBlockStore
from linearvue.runtime.catalog import DbMediaCatalog
from linearvue.runtime.channel_source import SqlChannelSource
from linearvue.runtime.schedule_manager import ScheduleManager
from linearvue.runtime.timeline_builder import TimelineBuilder
from linearvue.usecases.channel_add import add_channel
from linearvue.usecases.channel_content_update import update_channel_content
from linearvue.usecases.channel_delete import delete_channel
from linearvue.usecases.channel_list import list_channels
from linearvue.usecases.library_upsert import upsert_library_item
from schedule_helpers import at


class TestAddChannel:
    def test_numbers_are_assigned_in_sequence(self, db_session):
        first = add_channel(db_session, name="Movies", item_ids=["A", "B"])
        second = add_channel(db_session, name="  Cartoons  ", kind="preset")

        assert first["number"] == 1
        assert first["content_version"] == 1
        assert first["item_count"] == 2
        assert second["number"] == 2
        assert second["name"] == "Cartoons"
        assert second["sort_order"] == 2
        assert second["created_at"].endswith("Z")

    def test_explicit_number(self, db_session):
        assert add_channel(db_session, name="Late", number=40)["number"] == 40
        assert add_channel(db_session, name="Later")["number"] == 41

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"name": ""},
            {"name": "   "},
            {"name": "X", "kind": "shared"},
            {"name": "X", "number": 0},
        ],
    )
    def test_validation(self, db_session, kwargs):
        with pytest.raises(ValidationError):
            add_channel(db_session, **kwargs)


class TestUpdateContent:
    def test_change_bumps_version(self, db_session):
        channel = add_channel(db_session, name="One", item_ids=["A"])
        result = update_channel_content(db_session, channel_id=channel["id"], item_ids=["A", "B"])
        assert result["changed"] is True
        assert result["content_version"] == 2
        assert result["item_ids"] == ["A", "B"]

    def test_same_list_is_a_no_op(self, db_session):
        channel = add_channel(db_session, name="One", item_ids=["A", "B"])
        result = update_channel_content(db_session, channel_id=channel["id"], item_ids=["A", "B"])
        assert result["changed"] is False
        assert result["content_version"] == 1

    def test_reorder_counts_as_change(self, db_session):
        channel = add_channel(db_session, name="One", item_ids=["A", "B"])
        result = update_channel_content(db_session, channel_id=channel["id"], item_ids=["B", "A"])
        assert result["changed"] is True

    def test_unknown_channel(self, db_session):
        with pytest.raises(ResourceError):
            update_channel_content(db_session, channel_id=99, item_ids=[])


class TestListAndDelete:
    def test_list_in_display_order_with_filter(self, db_session):
        add_channel(db_session, name="B", number=2)
        add_channel(db_session, name="A", number=1, kind="auto")
        listing = list_channels(db_session)
        assert listing["total"] == 2
        assert [c["name"] for c in listing["channels"]] == ["A", "B"]
        assert list_channels(db_session, kind="auto")["total"] == 1

    def test_delete_cascades_to_blocks(self, db_session, session_factory, clock):
        upsert_library_item(db_session, item_id="A", name="Alpha", runtime_seconds=1800)
        channel = add_channel(db_session, name="One", item_ids=["A"])
        other = add_channel(db_session, name="Two", item_ids=["A"])
        manager = ScheduleManager(
            SqlChannelSource(session_factory),
            SqlBlockStore(session_factory),
            TimelineBuilder(DbMediaCatalog(session_factory)),
            clock,
            max_workers=1,
        )
        manager.ensure_all(at(minutes=10))

        result = delete_channel(db_session, channel_id=channel["id"])
        assert result == {"deleted": 1, "id": channel["id"], "name": "One", "blocks_deleted": 4}

        remaining = db_session.execute(
            select(ScheduleBlockRecord.channel_id, func.count()).group_by(ScheduleBlockRecord.channel_id)
        ).all()
        assert [tuple(row) for row in remaining] == [(other["id"], 4)]

    def test_delete_unknown_channel(self, db_session):
        with pytest.raises(ResourceError):
            delete_channel(db_session, channel_id=5)


class TestLibraryUpsert:
    def test_create_then_update(self, db_session):
        created = upsert_library_item(
            db_session,
            item_id="ep1",
            name="Pilot",
            item_type="episode",
            runtime_seconds=1320.4,
            series_name="Show",
            season_number=1,
            episode_number=1,
        )
        assert created["created"] is True
        assert created["item_type"] == "Episode"
        assert created["runtime_ms"] == 1320400

        updated = upsert_library_item(db_session, item_id="ep1", name="Pilot (Remastered)")
        assert updated["created"] is False
        assert updated["item_type"] == "Movie"
        assert updated["runtime_ms"] is None

    def test_catalog_reads_upserted_rows(self, db_session, session_factory):
        upsert_library_item(db_session, item_id="m1", name="Heat", runtime_seconds=10200, production_year=1995)
        items = DbMediaCatalog(session_factory).get_items(["m1", "missing", "m1"])
        assert list(items) == ["m1"]
        assert items["m1"].duration_ms == 10_200_000
        assert items["m1"].year == 1995

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"item_id": "", "name": "X"},
            {"item_id": "x", "name": ""},
            {"item_id": "x", "name": "X", "item_type": "Trailer"},
        ],
    )
    def test_validation(self, db_session, kwargs):
        with pytest.raises(ValidationError):
            upsert_library_item(db_session, **kwargs)


@pytest.fixture
def empty_db_factory():
    """Sessions on a database with no tables, so every read fails."""
    empty = create_engine("sqlite://", poolclass=StaticPool, future=True)
    yield sessionmaker(bind=empty, future=True)
    empty.dispose()


class TestReadFailures:
    def test_channel_source_raises_store_error(self, empty_db_factory):
        source = SqlChannelSource(empty_db_factory)
        with pytest.raises(StoreError):
            source.list_channels()
        with pytest.raises(StoreError):
            source.get_channel(1)

    def test_catalog_raises_store_error(self, empty_db_factory):
        with pytest.raises(StoreError):
            DbMediaCatalog(empty_db_factory).get_items(["m1"])
