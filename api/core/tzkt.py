"""
TzKT HTTP client.

Used endpoint:
- GET /operations/delegations?timestamp.gt=...&sort.asc=id&limit=...&status=applied
  -> [{"id": 1, "level": 2, "timestamp": "...Z", "amount": 3, "sender": {"address": "tz1..."}}, ...]

Every outbound attempt takes a token from the rate limiter first. Network
errors, 429 and 5xx are retried with exponential backoff; anything else ends
the retry loop.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError, field_validator

from .backoff import RetryPolicy
from .ratelimit import TokenBucket

DEFAULT_BASE_URL = "https://api.tzkt.io/v1"
DELEGATIONS_PATH = "/operations/delegations"

logger = logging.getLogger(__name__)


# TzKT failures are explicit and separable from other runtime errors.
class TzktError(RuntimeError):
    pass


class TzktFetchError(TzktError):
    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TzktDecodeError(TzktError):
    pass


class Sender(BaseModel):
    model_config = ConfigDict(frozen=True)

    address: str = ""


class Delegation(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    level: int
    timestamp: datetime
    amount: int
    sender: Sender | None = None

    @field_validator("timestamp")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @property
    def delegator(self) -> str:
        return self.sender.address if self.sender is not None else ""


_delegation_list = TypeAdapter(list[Delegation])


def format_timestamp(value: datetime) -> str:
    """
    RFC3339 in UTC with second precision, e.g. 2018-06-30T00:00:00Z.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_delegations(payload: Any) -> list[Delegation]:
    if not isinstance(payload, list):
        raise TzktDecodeError(f"Expected a JSON array of delegations, got {type(payload).__name__}.")
    try:
        return _delegation_list.validate_python(payload)
    except ValidationError as e:
        raise TzktDecodeError(f"Malformed delegation payload: {e.error_count()} error(s).") from e


def _normalize_base_url(base_url: str) -> str:
    base_url = (base_url or "").strip()
    if not base_url:
        raise TzktError("TZKT_BASE_URL is empty.")
    return base_url.rstrip("/")


def _is_retryable_status(status_code: int) -> bool:
    return status_code == httpx.codes.TOO_MANY_REQUESTS or status_code >= 500


class TzktClient:
    def __init__(
        self,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout_s: float = 10.0,
        limiter: TokenBucket | None = None,
        retry: RetryPolicy | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = _normalize_base_url(base_url)
        self._limiter = limiter or TokenBucket(rate=10, burst=5)
        self._retry = retry or RetryPolicy(max_attempts=3, base_delay=1.0)
        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout_s,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    async def __aenter__(self) -> TzktClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def fetch_delegations(self, since: datetime, limit: int) -> list[Delegation]:
        """
        Fetch up to `limit` applied delegations strictly after `since`,
        ascending by TzKT id.
        """
        if limit <= 0:
            raise ValueError("limit must be > 0")

        params = {
            "timestamp.gt": format_timestamp(since),
            "sort.asc": "id",
            "limit": str(limit),
            "status": "applied",
        }
        resp = await self._get_with_retry(DELEGATIONS_PATH, params)

        if resp.status_code >= 300:
            # Avoid dumping huge bodies; include a small snippet.
            body = resp.text[:500]
            raise TzktFetchError(
                f"TzKT delegations request failed: {resp.status_code} {body}",
                status_code=resp.status_code,
            )

        try:
            payload = resp.json()
        except ValueError as e:
            raise TzktDecodeError("TzKT returned a non-JSON body.") from e
        return parse_delegations(payload)

    async def _get_with_retry(self, path: str, params: dict[str, str]) -> httpx.Response:
        attempts = self._retry.max_attempts
        last_cause = ""

        for attempt in range(1, attempts + 1):
            if attempt > 1:
                await self._retry.wait_before_retry(attempt - 1)
            await self._limiter.acquire()

            try:
                resp = await self._http.get(path, params=params)
            except httpx.TransportError as e:
                last_cause = f"{type(e).__name__}: {e}"
                logger.warning("tzkt_request_error attempt=%s/%s error=%s", attempt, attempts, last_cause)
                continue

            if _is_retryable_status(resp.status_code):
                last_cause = f"status {resp.status_code}"
                logger.warning("tzkt_retryable_status attempt=%s/%s status=%s", attempt, attempts, resp.status_code)
                if attempt < attempts:
                    continue
                raise TzktFetchError(
                    f"TzKT request failed after {attempts} attempts: {last_cause}",
                    status_code=resp.status_code,
                )

            return resp

        raise TzktFetchError(f"TzKT request failed after {attempts} attempts: {last_cause}")
