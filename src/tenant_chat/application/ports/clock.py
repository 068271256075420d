from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Protocol
from uuid import UUID

_TICK = timedelta(microseconds=1)


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Default wall-clock implementation."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class TenantMonotonicClock:
    """Hands out strictly increasing timestamps per tenant.

    Wall-clock steps backwards (NTP adjustments) or two sends inside the same
    microsecond would otherwise produce ties or inversions in the per-tenant
    ordering. State is process-local.
    """

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()
        self._last: dict[UUID, datetime] = {}

    def now_for(self, tenant_id: UUID) -> datetime:
        now = self._clock.now()
        last = self._last.get(tenant_id)
        if last is not None and now <= last:
            now = last + _TICK
        self._last[tenant_id] = now
        return now
