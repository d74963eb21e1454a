"""
Pydantic schemas for delegation endpoints.
"""

from __future__ import annotations

from pydantic import BaseModel


class DelegationOut(BaseModel):
    timestamp: str
    amount: str
    delegator: str
    level: str


class DelegationsResponse(BaseModel):
    data: list[DelegationOut]
