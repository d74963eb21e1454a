"""
Delegations API endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Query, Request

from core.config import DEFAULT_GENESIS

from . import schemas, service

router = APIRouter()


@router.get("/xtz/delegations", response_model=schemas.DelegationsResponse)
async def list_delegations(
    request: Request,
    year: str | None = Query(default=None),
    page: str | None = Query(default=None),
) -> dict:
    """
    Delegations newest first, 50 per page, optionally filtered by year.
    """
    settings = getattr(request.app.state, "settings", None)
    min_year = settings.genesis_year if settings is not None else DEFAULT_GENESIS.year
    data = await service.list_delegations(year=year, page=page, min_year=min_year)
    return {"data": data}
