"""
Delegation sync loop (TzKT -> Postgres).

One loop covers both backfill and steady-state polling:
- resume from the newest stored timestamp (never from a side checkpoint)
- fetch the next batch strictly after it
- write it idempotently
- loop immediately while batches come back full, otherwise sleep

Failures never stop the loop; they are logged and retried with a growing
backoff. Only task cancellation ends `run()`.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Protocol

from core.backoff import Backoff
from core.config import DEFAULT_GENESIS
from core.tzkt import Delegation, format_timestamp

from . import repository

logger = logging.getLogger(__name__)


class DelegationSource(Protocol):
    async def fetch_delegations(self, since: datetime, limit: int) -> list[Delegation]: ...


class DelegationSink(Protocol):
    async def last_seen(self) -> tuple[datetime, int]: ...

    async def bulk_insert(self, rows: list[repository.NewDelegation]) -> None: ...


class SyncState(str, enum.Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    WRITING = "writing"
    SLEEPING = "sleeping"
    STOPPED = "stopped"


@dataclass(frozen=True)
class SyncConfig:
    batch_size: int = 10_000
    poll_interval_s: float = 15.0
    max_backoff_s: float = 120.0
    genesis: datetime = DEFAULT_GENESIS
    # Defaults to poll_interval_s.
    backoff_base_s: float | None = None


def to_rows(delegations: list[Delegation]) -> list[repository.NewDelegation]:
    """
    Map fetched delegations to insert rows, dropping ones without a delegator.
    """
    return [
        repository.NewDelegation(
            tzkt_id=d.id,
            timestamp=d.timestamp,
            amount=d.amount,
            delegator=d.delegator,
            level=d.level,
        )
        for d in delegations
        if d.delegator
    ]


class SyncEngine:
    def __init__(
        self,
        *,
        client: DelegationSource,
        store: DelegationSink = repository,
        config: SyncConfig | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.client = client
        self.store = store
        self.config = config or SyncConfig()
        self._sleep = sleep
        self._backoff = Backoff(
            base=self.config.backoff_base_s or self.config.poll_interval_s,
            cap=self.config.max_backoff_s,
        )

        self.state = SyncState.IDLE
        self.last_watermark: datetime | None = None
        self.last_success_at: datetime | None = None
        self.last_error: str | None = None
        self.consecutive_failures = 0

    def resume_point(self, watermark: datetime) -> datetime:
        genesis = self.config.genesis
        if watermark < genesis:
            return genesis
        return watermark

    async def sync_once(self) -> int:
        """
        Run one fetch/write cycle. Returns how many events TzKT returned
        (before dropping ones without a delegator).
        """
        self.state = SyncState.FETCHING
        watermark, _ = await self.store.last_seen()
        since = self.resume_point(watermark)
        self.last_watermark = since

        delegations = await self.client.fetch_delegations(since, self.config.batch_size)
        if not delegations:
            return 0

        rows = to_rows(delegations)
        self.state = SyncState.WRITING
        await self.store.bulk_insert(rows)

        logger.info(
            "sync_batch_written fetched=%s written=%s since=%s",
            len(delegations),
            len(rows),
            format_timestamp(since),
        )
        return len(delegations)

    async def run(self) -> None:
        logger.info(
            "sync_started batch_size=%s poll_interval_s=%s max_backoff_s=%s genesis=%s",
            self.config.batch_size,
            self.config.poll_interval_s,
            self.config.max_backoff_s,
            format_timestamp(self.config.genesis),
        )
        try:
            while True:
                try:
                    fetched = await self.sync_once()
                except Exception as e:
                    self.consecutive_failures += 1
                    self.last_error = f"{type(e).__name__}: {e}"
                    delay = self._backoff.next_delay()
                    logger.exception(
                        "sync_failed failures=%s retry_in_s=%s",
                        self.consecutive_failures,
                        delay,
                    )
                    self.state = SyncState.SLEEPING
                    await self._sleep(delay)
                    continue

                self._backoff.reset()
                self.consecutive_failures = 0
                self.last_error = None
                self.last_success_at = datetime.now(timezone.utc)

                # A full batch means more history is probably waiting.
                if fetched == self.config.batch_size:
                    self.state = SyncState.IDLE
                    continue

                self.state = SyncState.SLEEPING
                await self._sleep(self.config.poll_interval_s)
                self.state = SyncState.IDLE
        finally:
            self.state = SyncState.STOPPED
            logger.info("sync_stopped")

    def status(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "last_watermark": format_timestamp(self.last_watermark) if self.last_watermark else None,
            "last_success_at": format_timestamp(self.last_success_at) if self.last_success_at else None,
            "last_error": self.last_error,
            "consecutive_failures": self.consecutive_failures,
        }
