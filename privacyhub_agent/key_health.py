"""
Availability and quota tracking for the scoring-service credentials.

The cache is shared by every request in the process. A refresh queries the
account endpoint once per credential; overlapping refresh calls join the
refresh already in flight instead of starting another one.
"""
from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Sequence

import httpx

from .config import OPENROUTER_BASE_URL, Credential
from .models import CredentialStatus

logger = logging.getLogger(__name__)

DEFAULT_TTL_S = 4 * 60 * 60
DEFAULT_RECHECK_S = 5 * 60
DEFAULT_RATE_LIMIT_REMAINING = 100
ROTATION_DAYS = 3

StatusChecker = Callable[[Credential], Awaitable[dict[str, Any]]]


class CredentialCheckError(Exception):
    pass


async def check_openrouter_key(credential: Credential, *, base_url: str = OPENROUTER_BASE_URL, timeout: float = 10.0) -> dict[str, Any]:
    """Query ``GET /key`` for one credential and return ``credits`` / ``rate_limit_remaining``."""
    async with httpx.AsyncClient(timeout=timeout) as client:
        res = await client.get(f"{base_url}/key", headers={"Authorization": f"Bearer {credential.key}"})
    if res.status_code != 200:
        raise CredentialCheckError(f"HTTP {res.status_code}")
    payload = res.json()
    data = payload.get("data") if isinstance(payload.get("data"), dict) else payload

    credits = data.get("limit_remaining")
    if credits is None:
        credits = data.get("limit")
    rate_limit = data.get("rate_limit") if isinstance(data.get("rate_limit"), dict) else {}
    remaining = rate_limit.get("remaining")
    return {
        "credits": float(credits or 0),
        "rate_limit_remaining": int(remaining) if remaining is not None else DEFAULT_RATE_LIMIT_REMAINING,
    }


def rotation_order(credentials: Sequence[Credential], now: float) -> list[Credential]:
    """The primary credential moves one step per day over a three-day cycle."""
    items = list(credentials)
    if not items:
        return items
    shift = (int(now // 86400) % ROTATION_DAYS) % len(items)
    return items[shift:] + items[:shift]


class KeyHealthCache:
    def __init__(
        self,
        credentials: Sequence[Credential],
        *,
        checker: StatusChecker | None = None,
        clock: Callable[[], float] = time.time,
        ttl_s: float = DEFAULT_TTL_S,
        recheck_s: float = DEFAULT_RECHECK_S,
    ):
        self._credentials = list(credentials)
        self._checker = checker or check_openrouter_key
        self._clock = clock
        self.ttl_s = ttl_s
        self.recheck_s = recheck_s
        self._statuses: dict[str, CredentialStatus] = {}
        self._inflight: asyncio.Task | None = None

    @property
    def credentials(self) -> list[Credential]:
        return list(self._credentials)

    def get_all(self) -> dict[str, CredentialStatus]:
        return {name: status.model_copy() for name, status in self._statuses.items()}

    def is_stale(self) -> bool:
        if not self._statuses or len(self._statuses) < len(self._credentials):
            return True
        oldest = min(s.last_checked for s in self._statuses.values())
        return self._clock() - oldest > self.ttl_s

    async def refresh_all(self) -> dict[str, CredentialStatus]:
        task = self._inflight
        if task is None:
            task = asyncio.ensure_future(self._refresh())
            self._inflight = task
            task.add_done_callback(self._clear_inflight)
        # Shield so one cancelled caller does not cancel the refresh for the others.
        await asyncio.shield(task)
        return self.get_all()

    def _clear_inflight(self, task: asyncio.Task) -> None:
        if self._inflight is task:
            self._inflight = None

    async def _refresh(self) -> None:
        results = await asyncio.gather(*(self._check(c) for c in self._credentials))
        for status in results:
            self._store(status)
        available = sum(1 for s in results if s.is_available)
        logger.info("Refreshed %d scoring credentials, %d available", len(results), available)

    async def _check(self, credential: Credential) -> CredentialStatus:
        try:
            info = await self._checker(credential)
        except Exception as e:
            logger.warning("Credential %s status check failed: %s", credential.name, e)
            return CredentialStatus(
                name=credential.name,
                is_available=False,
                credits=0,
                rate_limit_remaining=0,
                last_checked=self._clock(),
                error=str(e) or type(e).__name__,
            )
        return CredentialStatus(
            name=credential.name,
            is_available=True,
            credits=float(info.get("credits") or 0),
            rate_limit_remaining=int(info.get("rate_limit_remaining", DEFAULT_RATE_LIMIT_REMAINING)),
            last_checked=self._clock(),
        )

    def _store(self, status: CredentialStatus) -> None:
        previous = self._statuses.get(status.name)
        if previous is not None and status.last_checked < previous.last_checked:
            status = status.model_copy(update={"last_checked": previous.last_checked})
        self._statuses[status.name] = status

    async def ensure_fresh(self, force: bool = False) -> dict[str, CredentialStatus]:
        if force or self.is_stale():
            return await self.refresh_all()
        return self.get_all()

    def needs_recheck(self) -> bool:
        """An unavailable credential is re-queried after ``recheck_s`` instead of the full TTL."""
        now = self._clock()
        return any(
            not s.is_available and now - s.last_checked > self.recheck_s
            for s in self._statuses.values()
        )

    async def select(self, exclude: set[str] | frozenset[str] = frozenset()) -> Credential | None:
        await self.ensure_fresh(force=self.needs_recheck())
        for credential in rotation_order(self._credentials, self._clock()):
            if credential.name in exclude:
                continue
            status = self._statuses.get(credential.name)
            if status and status.is_available and status.rate_limit_remaining > 0:
                return credential
        return None

    def mark_failed(self, name: str, error: str) -> None:
        status = self._statuses.get(name)
        now = max(self._clock(), status.last_checked if status else 0)
        self._statuses[name] = CredentialStatus(
            name=name,
            is_available=False,
            credits=status.credits if status else 0,
            rate_limit_remaining=0,
            last_checked=now,
            error=error,
        )
        logger.warning("Marked credential %s as failed: %s", name, error)

    def summary(self) -> dict[str, Any]:
        statuses = list(self._statuses.values())
        total = len(self._credentials)
        available = sum(1 for s in statuses if s.is_available)
        if total and available == total:
            health = "operational"
        elif available == 0:
            health = "outage"
        else:
            health = "degraded"
        return {
            "keys": [
                {
                    "name": s.name,
                    "isAvailable": s.is_available,
                    "credits": s.credits,
                    "rateLimitRemaining": s.rate_limit_remaining,
                    "lastChecked": datetime.fromtimestamp(s.last_checked, tz=timezone.utc).isoformat(),
                    "error": s.error,
                }
                for s in statuses
            ],
            "totalKeys": total,
            "availableKeys": available,
            "totalCredits": sum(s.credits for s in statuses),
            "totalRateLimitRemaining": sum(s.rate_limit_remaining for s in statuses),
            "overallHealth": health,
        }
