# auth_api/app/core/clock.py
from datetime import datetime, timezone
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Relógio real. Retorna UTC naive, o mesmo formato gravado no banco."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc).replace(tzinfo=None)
