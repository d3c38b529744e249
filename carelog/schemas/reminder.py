from pydantic import Field, field_validator, model_validator
from typing import Iterable, Optional, List
from datetime import date
from enum import Enum

from .base import CamelModel, normalize_time


class Weekday(str, Enum):
    sun = "Sun"
    mon = "Mon"
    tue = "Tue"
    wed = "Wed"
    thu = "Thu"
    fri = "Fri"
    sat = "Sat"

    @classmethod
    def of(cls, d: date) -> "Weekday":
        # date.weekday(): lunes=0 ... domingo=6
        return _BY_PY_WEEKDAY[d.weekday()]


WEEK_ORDER = list(Weekday)
_BY_PY_WEEKDAY = [Weekday.mon, Weekday.tue, Weekday.wed, Weekday.thu, Weekday.fri, Weekday.sat, Weekday.sun]


class WeekdaySet(frozenset):
    """
    Conjunto de días de la semana. En MongoDB se guarda como "Mon,Wed,Fri";
    from_storage/to_storage son el único punto donde se traduce ese formato.
    """

    def __new__(cls, days: Iterable = ()):
        return super().__new__(cls, (Weekday(d) for d in days))

    @classmethod
    def from_storage(cls, raw: Optional[str]) -> "WeekdaySet":
        if not raw:
            return cls()
        return cls(part.strip() for part in raw.split(",") if part.strip())

    def to_storage(self) -> Optional[str]:
        if not self:
            return None
        return ",".join(d.value for d in self.ordered())

    def ordered(self) -> List[Weekday]:
        return [d for d in WEEK_ORDER if d in self]

    @property
    def covers_all(self) -> bool:
        return len(self) == len(WEEK_ORDER)

    def __repr__(self) -> str:
        return f"WeekdaySet({self.to_storage() or ''})"


class Frequency(str, Enum):
    daily = "daily"
    weekly = "weekly"


class ReminderIn(CamelModel):
    title: str = Field(..., min_length=1, max_length=50)
    target_time: Optional[str] = None
    is_repeat: bool = True
    frequency: Optional[Frequency] = None
    days_of_week: List[Weekday] = []
    is_enabled: bool = True

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Escribe un título")
        return v.strip()

    @field_validator("target_time")
    @classmethod
    def check_time(cls, v: Optional[str]) -> Optional[str]:
        # "" o "all day" significan todo el día (sin hora)
        if v is None or v.strip() == "" or v.strip().lower() == "all day":
            return None
        return normalize_time(v)

    @model_validator(mode="after")
    def check_recurrence(self):
        if not self.is_repeat:
            self.frequency = None
            self.days_of_week = []
            return self
        if self.frequency is None:
            self.frequency = Frequency.daily
        if self.frequency == Frequency.daily:
            self.days_of_week = []
        elif not self.days_of_week:
            raise ValueError("Selecciona al menos un día de la semana")
        return self

    def weekdays(self) -> WeekdaySet:
        return WeekdaySet(self.days_of_week)


class ReminderOut(CamelModel):
    id: str
    title: str
    target_time: Optional[str] = None
    is_repeat: bool
    frequency: Optional[Frequency] = None
    days_of_week: List[Weekday] = []
    is_enabled: bool
    last_completed_date: Optional[date] = None


class ReminderTodayOut(ReminderOut):
    is_completed: bool = False


class ReminderManageOut(ReminderOut):
    # False si está desactivado o si es de una sola vez y ya caducó
    is_active: bool = True


class CompletePatch(CamelModel):
    completed: bool
