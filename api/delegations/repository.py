"""
Delegation persistence.
This module is where delegation-related SQL lives.

The table is append-only: rows are inserted once (idempotently, keyed by the
TzKT id) and never updated or deleted. The sync watermark is not stored
anywhere; it is always derived from the rows themselves.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from core import db

# Returned by last_seen() when nothing has been ingested yet; earlier than
# any real Tezos operation.
EMPTY_WATERMARK = datetime(1, 1, 1, tzinfo=timezone.utc)

INSERT_DELEGATION_SQL = """
INSERT INTO delegations (tzkt_id, timestamp, amount, delegator, level, year)
VALUES ($1, $2, $3, $4, $5, EXTRACT(YEAR FROM $2::timestamptz AT TIME ZONE 'UTC')::int)
ON CONFLICT (tzkt_id) DO NOTHING
"""


@dataclass(frozen=True)
class NewDelegation:
    tzkt_id: int
    timestamp: datetime
    amount: int
    delegator: str
    level: int


async def bulk_insert(rows: list[NewDelegation]) -> None:
    """
    Insert a batch in a single transaction.

    Rows whose tzkt_id already exists are skipped. Any other failure rolls
    back the whole batch.
    """
    if not rows:
        return

    records = [(r.tzkt_id, r.timestamp, r.amount, r.delegator, r.level) for r in rows]

    pool = db.pool()
    async with pool.acquire() as conn:
        async with conn.transaction():
            await conn.executemany(INSERT_DELEGATION_SQL, records)


async def last_seen() -> tuple[datetime, int]:
    """
    Return (max timestamp, max level) over all rows, or
    (EMPTY_WATERMARK, 0) when the table is empty.
    """
    row = await db.fetch_one(
        """
        SELECT max(timestamp) AS timestamp, COALESCE(max(level), 0) AS level
        FROM delegations
        """
    )
    if row is None or row["timestamp"] is None:
        return EMPTY_WATERMARK, 0
    return row["timestamp"], int(row["level"])


async def get_page(*, year: int | None = None, limit: int = 50, offset: int = 0) -> list[dict[str, Any]]:
    """
    Newest first; id breaks ties between identical timestamps.
    """
    if year is not None:
        return await db.fetch_all(
            """
            SELECT timestamp, amount, delegator, level
            FROM delegations
            WHERE year = $1
            ORDER BY timestamp DESC, id DESC
            LIMIT $2
            OFFSET $3
            """,
            year,
            limit,
            offset,
        )

    return await db.fetch_all(
        """
        SELECT timestamp, amount, delegator, level
        FROM delegations
        ORDER BY timestamp DESC, id DESC
        LIMIT $1
        OFFSET $2
        """,
        limit,
        offset,
    )


async def count(*, year: int | None = None) -> int:
    if year is not None:
        row = await db.fetch_one("SELECT count(*) AS n FROM delegations WHERE year = $1", year)
    else:
        row = await db.fetch_one("SELECT count(*) AS n FROM delegations")
    return int((row or {}).get("n", 0))
