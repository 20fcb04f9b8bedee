"""Horizon Keeper: background loop keeping every channel's future materialized.

Each pass calls ScheduleManager.ensure_all() (the same entry point used for
on-demand regeneration) and then prunes blocks older than the retention
window. One channel failing never stops the pass; it is retried on the next
tick.

Evaluation via evaluate_once() or a background daemon thread via
start()/stop(). get_health_report() returns the last pass summary.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from linearvue.domain.interfaces import BlockStore
from linearvue.infra.exceptions import StoreError
from linearvue.infra.logging import get_logger
from linearvue.runtime.clock import MasterClock
from linearvue.runtime.schedule_manager import ScheduleManager

logger = get_logger(__name__)


@dataclass
class KeeperPassReport:
    """Summary of one evaluate_once() pass."""
    started_at: datetime
    finished_at: datetime
    channels: int = 0
    blocks_written: int = 0
    blocks_pruned: int = 0
    failed_channels: list[int] = field(default_factory=list)
    cancelled: bool = False
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and not self.failed_channels

    def to_dict(self) -> dict:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
            "channels": self.channels,
            "blocks_written": self.blocks_written,
            "blocks_pruned": self.blocks_pruned,
            "failed_channels": list(self.failed_channels),
            "cancelled": self.cancelled,
            "error": self.error,
        }


@dataclass
class KeeperHealthReport:
    running: bool
    enabled: bool
    interval_seconds: float
    retention_hours: int
    pass_count: int
    last_pass: KeeperPassReport | None

    @property
    def is_healthy(self) -> bool:
        return self.last_pass is not None and self.last_pass.ok

    def to_dict(self) -> dict:
        return {
            "running": self.running,
            "enabled": self.enabled,
            "interval_seconds": self.interval_seconds,
            "retention_hours": self.retention_hours,
            "pass_count": self.pass_count,
            "is_healthy": self.is_healthy,
            "last_pass": self.last_pass.to_dict() if self.last_pass else None,
        }


class HorizonKeeper:
    def __init__(
        self,
        schedule_manager: ScheduleManager,
        store: BlockStore,
        clock: MasterClock | None = None,
        *,
        interval_seconds: float = 4 * 3600,
        retention_hours: int = 24,
        enabled: bool = True,
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._manager = schedule_manager
        self._store = store
        self._clock = clock or MasterClock()
        self._interval_s = interval_seconds
        self._retention = timedelta(hours=retention_hours)
        self._retention_hours = retention_hours
        self._enabled = enabled

        self._pass_count = 0
        self._last_pass: KeeperPassReport | None = None
        self._report_lock = threading.Lock()

        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def evaluate_once(self) -> KeeperPassReport:
        """Run one extend + prune pass. Safe to call from any thread."""
        now = self._clock.now_utc()
        report = KeeperPassReport(started_at=now, finished_at=now)

        try:
            batch = self._manager.ensure_all(now, cancel=self._stop_event)
        except Exception as e:
            logger.exception("horizon_pass_failed", stage="extend")
            report.error = str(e)
        else:
            report.channels = len(batch.results)
            report.blocks_written = batch.blocks_written
            report.cancelled = batch.cancelled
            for result in batch.failed:
                report.failed_channels.append(result.channel_id)
                logger.warning(
                    "horizon_channel_failed", channel_id=result.channel_id, error=result.error
                )

        try:
            report.blocks_pruned = self._store.prune(now - self._retention)
        except StoreError as e:
            logger.warning("horizon_prune_failed", error=str(e))
            report.error = report.error or str(e)

        report.finished_at = self._clock.now_utc()
        with self._report_lock:
            self._pass_count += 1
            self._last_pass = report
        logger.info(
            "horizon_pass_complete",
            channels=report.channels,
            blocks_written=report.blocks_written,
            blocks_pruned=report.blocks_pruned,
            failed=len(report.failed_channels),
        )
        return report

    def get_health_report(self) -> KeeperHealthReport:
        with self._report_lock:
            return KeeperHealthReport(
                running=self.is_running,
                enabled=self._enabled,
                interval_seconds=self._interval_s,
                retention_hours=self._retention_hours,
                pass_count=self._pass_count,
                last_pass=self._last_pass,
            )

    def start(self) -> None:
        """Start the background evaluation thread (no-op when disabled)."""
        if not self._enabled:
            logger.info("horizon_keeper_disabled")
            return
        if self._thread is not None:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="HorizonKeeper",
            daemon=True,
        )
        self._thread.start()
        logger.info("horizon_keeper_started", interval_seconds=self._interval_s)

    def stop(self, timeout: float | None = 30.0) -> None:
        """Stop the background thread; an in-flight batch stops at the next channel."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        logger.info("horizon_keeper_stopped")

    def _run_loop(self) -> None:
        """Background loop: evaluate, sleep, repeat."""
        while not self._stop_event.is_set():
            try:
                self.evaluate_once()
            except Exception:
                logger.exception("horizon_evaluation_failed")
            self._stop_event.wait(timeout=self._interval_s)
