"""Block Store: persistence for fixed-size schedule blocks.

Write path (ScheduleManager only):
    replace_blocks(channel_id, blocks)   -- transactional upsert
    delete_channel_blocks(channel_id)
    prune(before)

Read path (NowResolver, HTTP, CLI):
    get_block(channel_id, block_start)
    get_block_at(channel_id, at)
    get_blocks(channel_id, start, end)
    get_block_stamp(channel_id, block_start)

Readers see either the previous block set or the new one, never a mix.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from concurrent.futures import wait as futures_wait
from datetime import datetime
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from linearvue.domain.entities import ScheduleBlockRecord
from linearvue.domain.interfaces import BlockStore
from linearvue.infra.exceptions import StoreError, StoreTimeoutError
from linearvue.infra.uow import read_session, session as uow_session
from linearvue.runtime.schedule_types import BlockSeed, BlockStamp, ScheduleBlock, ScheduledEntry

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Row <-> block conversion
# ---------------------------------------------------------------------------

def block_from_record(row: ScheduleBlockRecord) -> ScheduleBlock:
    return ScheduleBlock(
        channel_id=row.channel_id,
        block_start=row.block_start,
        block_end=row.block_end,
        entries=tuple(ScheduledEntry.from_dict(e) for e in row.entries or ()),
        seed=BlockSeed.from_dict(row.seed),
        next_seed=BlockSeed.from_dict(row.next_seed),
        content_version=row.content_version,
        generated_at=row.generated_at,
    )


def _record_values(block: ScheduleBlock) -> dict[str, Any]:
    values: dict[str, Any] = {
        "block_end": block.block_end,
        "entries": [e.to_dict() for e in block.entries],
        "seed": block.seed.to_dict(),
        "next_seed": block.next_seed.to_dict(),
        "content_version": block.content_version,
    }
    if block.generated_at is not None:
        values["generated_at"] = block.generated_at
    return values


# ---------------------------------------------------------------------------
# SQL store
# ---------------------------------------------------------------------------

class SqlBlockStore(BlockStore):
    """SQLAlchemy-backed store; one transaction per call."""

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def _read(self, fn: Callable[[Session], Any]) -> Any:
        try:
            with read_session(self._session_factory) as db:
                return fn(db)
        except SQLAlchemyError as e:
            raise StoreError(f"block store read failed: {e}") from e

    def get_block(self, channel_id: int, block_start: datetime) -> ScheduleBlock | None:
        def _q(db: Session) -> ScheduleBlock | None:
            row = db.execute(
                select(ScheduleBlockRecord).where(
                    ScheduleBlockRecord.channel_id == channel_id,
                    ScheduleBlockRecord.block_start == block_start,
                )
            ).scalar_one_or_none()
            return block_from_record(row) if row is not None else None

        return self._read(_q)

    def get_block_at(self, channel_id: int, at: datetime) -> ScheduleBlock | None:
        def _q(db: Session) -> ScheduleBlock | None:
            row = db.execute(
                select(ScheduleBlockRecord)
                .where(
                    ScheduleBlockRecord.channel_id == channel_id,
                    ScheduleBlockRecord.block_start <= at,
                    ScheduleBlockRecord.block_end > at,
                )
                .order_by(ScheduleBlockRecord.block_start.desc())
                .limit(1)
            ).scalar_one_or_none()
            return block_from_record(row) if row is not None else None

        return self._read(_q)

    def get_blocks(
        self,
        channel_id: int,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[ScheduleBlock]:
        def _q(db: Session) -> list[ScheduleBlock]:
            stmt = select(ScheduleBlockRecord).where(ScheduleBlockRecord.channel_id == channel_id)
            if start is not None:
                stmt = stmt.where(ScheduleBlockRecord.block_end > start)
            if end is not None:
                stmt = stmt.where(ScheduleBlockRecord.block_start < end)
            rows = db.execute(stmt.order_by(ScheduleBlockRecord.block_start)).scalars()
            return [block_from_record(row) for row in rows]

        return self._read(_q)

    def get_block_stamp(self, channel_id: int, block_start: datetime) -> BlockStamp | None:
        def _q(db: Session) -> BlockStamp | None:
            row = db.execute(
                select(ScheduleBlockRecord.content_version, ScheduleBlockRecord.generated_at).where(
                    ScheduleBlockRecord.channel_id == channel_id,
                    ScheduleBlockRecord.block_start == block_start,
                )
            ).one_or_none()
            return (row.content_version, row.generated_at) if row is not None else None

        return self._read(_q)

    def replace_blocks(self, channel_id: int, blocks: Iterable[ScheduleBlock]) -> int:
        blocks = list(blocks)
        if any(b.channel_id != channel_id for b in blocks):
            raise ValueError("all blocks must belong to the given channel")
        if not blocks:
            return 0
        try:
            with uow_session(self._session_factory) as db:
                for block in blocks:
                    row = db.execute(
                        select(ScheduleBlockRecord).where(
                            ScheduleBlockRecord.channel_id == channel_id,
                            ScheduleBlockRecord.block_start == block.block_start,
                        )
                    ).scalar_one_or_none()
                    values = _record_values(block)
                    if row is None:
                        db.add(
                            ScheduleBlockRecord(
                                channel_id=channel_id,
                                block_start=block.block_start,
                                **values,
                            )
                        )
                    else:
                        for key, value in values.items():
                            setattr(row, key, value)
        except SQLAlchemyError as e:
            raise StoreError(f"block store write failed for channel {channel_id}: {e}") from e
        return len(blocks)

    def delete_channel_blocks(self, channel_id: int) -> int:
        try:
            with uow_session(self._session_factory) as db:
                result = db.execute(
                    delete(ScheduleBlockRecord).where(ScheduleBlockRecord.channel_id == channel_id)
                )
                return result.rowcount or 0
        except SQLAlchemyError as e:
            raise StoreError(f"block delete failed for channel {channel_id}: {e}") from e

    def prune(self, before: datetime) -> int:
        try:
            with uow_session(self._session_factory) as db:
                result = db.execute(
                    delete(ScheduleBlockRecord).where(ScheduleBlockRecord.block_end <= before)
                )
                return result.rowcount or 0
        except SQLAlchemyError as e:
            raise StoreError(f"block prune failed: {e}") from e


# ---------------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------------

class InMemoryBlockStore(BlockStore):
    """Thread-safe in-memory store.

    Each channel's blocks live in a dict that is never mutated after
    publication; writers build a new dict and swap it in under the lock.
    """

    def __init__(self) -> None:
        self._channels: dict[int, dict[datetime, ScheduleBlock]] = {}
        self._lock = threading.Lock()

    def _snapshot(self, channel_id: int) -> dict[datetime, ScheduleBlock]:
        with self._lock:
            return self._channels.get(channel_id, {})

    def get_block(self, channel_id: int, block_start: datetime) -> ScheduleBlock | None:
        return self._snapshot(channel_id).get(block_start)

    def get_block_at(self, channel_id: int, at: datetime) -> ScheduleBlock | None:
        for block in self._snapshot(channel_id).values():
            if block.covers(at):
                return block
        return None

    def get_blocks(
        self,
        channel_id: int,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[ScheduleBlock]:
        blocks = [
            b
            for b in self._snapshot(channel_id).values()
            if (start is None or b.block_end > start) and (end is None or b.block_start < end)
        ]
        return sorted(blocks, key=lambda b: b.block_start)

    def replace_blocks(self, channel_id: int, blocks: Iterable[ScheduleBlock]) -> int:
        blocks = list(blocks)
        if any(b.channel_id != channel_id for b in blocks):
            raise ValueError("all blocks must belong to the given channel")
        with self._lock:
            updated = dict(self._channels.get(channel_id, {}))
            for block in blocks:
                updated[block.block_start] = block
            self._channels[channel_id] = updated
        return len(blocks)

    def delete_channel_blocks(self, channel_id: int) -> int:
        with self._lock:
            return len(self._channels.pop(channel_id, {}))

    def prune(self, before: datetime) -> int:
        removed = 0
        with self._lock:
            for channel_id, blocks in list(self._channels.items()):
                kept = {k: b for k, b in blocks.items() if b.block_end > before}
                removed += len(blocks) - len(kept)
                self._channels[channel_id] = kept
        return removed


# ---------------------------------------------------------------------------
# Timeout wrapper
# ---------------------------------------------------------------------------

class BoundedBlockStore(BlockStore):
    """Bounds every call on an inner store by ``timeout_seconds``.

    Calls run on a small worker pool; a call that does not finish in time
    raises StoreTimeoutError. A timed-out write keeps running on the pool and
    may still commit, so writes for one channel are chained: each starts only
    after the previous one for that channel has finished. ``after_writes``
    lets the schedule manager hold its channel gate until then.
    """

    def __init__(self, inner: BlockStore, timeout_seconds: float, max_workers: int = 8):
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        self._inner = inner
        self._timeout = timeout_seconds
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="block-store")
        self._writes: dict[int, Future] = {}
        self._writes_lock = threading.Lock()

    @property
    def inner(self) -> BlockStore:
        return self._inner

    def _wait(self, name: str, future: Future) -> Any:
        try:
            return future.result(timeout=self._timeout)
        except FutureTimeoutError as e:
            future.cancel()
            logger.warning("Block store call %s timed out after %.2fs", name, self._timeout)
            raise StoreTimeoutError(f"{name} timed out after {self._timeout}s") from e

    def _call(self, name: str, *args: Any) -> Any:
        return self._wait(name, self._executor.submit(getattr(self._inner, name), *args))

    def _write(self, channel_id: int, name: str, *args: Any) -> Any:
        fn = getattr(self._inner, name)

        def _after(prior: Future | None) -> Any:
            if prior is not None:
                futures_wait([prior])
            return fn(*args)

        with self._writes_lock:
            prior = self._writes.get(channel_id)
            future = self._executor.submit(_after, prior)
            self._writes[channel_id] = future
        future.add_done_callback(lambda f: self._write_done(channel_id, f))
        return self._wait(name, future)

    def _write_done(self, channel_id: int, future: Future) -> None:
        with self._writes_lock:
            if self._writes.get(channel_id) is future:
                del self._writes[channel_id]

    def after_writes(self, channel_id: int, callback: Callable[[], None]) -> None:
        with self._writes_lock:
            pending = self._writes.get(channel_id)
        if pending is None:
            callback()
        else:
            pending.add_done_callback(lambda _f: callback())

    def get_block(self, channel_id: int, block_start: datetime) -> ScheduleBlock | None:
        return self._call("get_block", channel_id, block_start)

    def get_block_at(self, channel_id: int, at: datetime) -> ScheduleBlock | None:
        return self._call("get_block_at", channel_id, at)

    def get_blocks(
        self,
        channel_id: int,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[ScheduleBlock]:
        return self._call("get_blocks", channel_id, start, end)

    def get_block_stamp(self, channel_id: int, block_start: datetime) -> BlockStamp | None:
        return self._call("get_block_stamp", channel_id, block_start)

    def replace_blocks(self, channel_id: int, blocks: Iterable[ScheduleBlock]) -> int:
        return self._write(channel_id, "replace_blocks", channel_id, list(blocks))

    def delete_channel_blocks(self, channel_id: int) -> int:
        return self._write(channel_id, "delete_channel_blocks", channel_id)

    def prune(self, before: datetime) -> int:
        return self._call("prune", before)

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
