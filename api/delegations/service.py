"""
Delegations read service.

Query parameters arrive as raw strings and are validated here, so bad input
is rejected with a 400 before any database access.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any

from fastapi import HTTPException

from core.config import DEFAULT_GENESIS

from . import repository

PAGE_SIZE = 50
MAX_YEAR = 9999
# OFFSET is int8 in Postgres.
MAX_PAGE = (2**63 - 1) // PAGE_SIZE + 1

_INTEGER = re.compile(r"-?[0-9]{1,20}")

logger = logging.getLogger(__name__)


def _parse_int(raw: str) -> int | None:
    """
    Plain ASCII decimal only; rejects forms int() tolerates
    (whitespace, "+", "_" separators, non-ASCII digits).
    """
    if not _INTEGER.fullmatch(raw):
        return None
    return int(raw)


def parse_year(raw: str | None, *, min_year: int = DEFAULT_GENESIS.year) -> int | None:
    if raw is None or raw == "":
        return None
    year = _parse_int(raw)
    if year is None or year < min_year or year > MAX_YEAR:
        raise HTTPException(status_code=400, detail="invalid year")
    return year


def parse_page(raw: str | None) -> int:
    if raw is None or raw == "":
        return 1
    page = _parse_int(raw)
    if page is None or page < 1 or page > MAX_PAGE:
        raise HTTPException(status_code=400, detail="invalid page")
    return page


def _format_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def to_response_item(row: dict[str, Any]) -> dict[str, str]:
    return {
        "timestamp": _format_timestamp(row["timestamp"]),
        "amount": str(int(row["amount"])),
        "delegator": row["delegator"],
        "level": str(int(row["level"])),
    }


async def list_delegations(
    *,
    year: str | None,
    page: str | None,
    min_year: int = DEFAULT_GENESIS.year,
) -> list[dict[str, str]]:
    """
    One page (50 rows) of delegations, newest first.
    """
    year_value = parse_year(year, min_year=min_year)
    page_value = parse_page(page)
    offset = (page_value - 1) * PAGE_SIZE

    try:
        rows = await repository.get_page(year=year_value, limit=PAGE_SIZE, offset=offset)
    except Exception as e:
        logger.exception("delegations_query_failed year=%s page=%s", year_value, page_value)
        raise HTTPException(status_code=500, detail="internal error") from e

    return [to_response_item(row) for row in rows]
