"""
Reloj inyectable. "Hoy" se calcula en la zona horaria configurada y no en UTC,
para que un registro hecho a las 8:00 en Tokio no caiga en el día anterior.
"""
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Optional, Union
from zoneinfo import ZoneInfo

from .config import get_settings


class Clock:
    def __init__(self, tz: Union[str, tzinfo, None] = None):
        if tz is None:
            tz = get_settings().timezone
        self.tz = ZoneInfo(tz) if isinstance(tz, str) else tz

    def now(self) -> datetime:
        return datetime.now(self.tz)

    def today(self) -> date:
        return self.now().date()

    def days_ago(self, days: int) -> date:
        return self.today() - timedelta(days=days)

    def utcnow_naive(self) -> datetime:
        """UTC sin tzinfo, que es lo que MongoDB devuelve al leer fechas."""
        return self.now().astimezone(timezone.utc).replace(tzinfo=None)


class FixedClock(Clock):
    """Reloj parado en un instante concreto. Solo para tests y scripts."""

    def __init__(self, today: date, at: Optional[time] = None, tz: Union[str, tzinfo, None] = "UTC"):
        super().__init__(tz)
        self._now = datetime.combine(today, at or time(12, 0), tzinfo=self.tz)

    def now(self) -> datetime:
        return self._now


_clock: Clock | None = None
def get_clock() -> Clock:
    global _clock
    if _clock is None:
        _clock = Clock()
    return _clock
