"""
Qué recordatorios se muestran "hoy".

El estado no se guarda: se deriva de los campos del recordatorio y de la
fecha de hoy. Ojo con los de una sola vez ya completados en un día anterior:
siguen con is_enabled=True en la base de datos, pero no deben aparecer en la
lista de hoy. La vista de gestión ("todos") sí los muestra, para poder
editarlos o borrarlos.
"""
from datetime import date
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from ..schemas.reminder import Frequency, Weekday, WeekdaySet


class ReminderState(str, Enum):
    repeating_always = "repeating_always"
    repeating_weekday = "repeating_weekday"
    one_time_pending = "one_time_pending"
    one_time_completed_today = "one_time_completed_today"
    one_time_expired = "one_time_expired"


def _last_completed(reminder: Dict[str, Any]) -> Optional[date]:
    value = reminder.get("last_completed_date")
    if value is None or isinstance(value, date):
        return value
    return date.fromisoformat(value)


def classify(reminder: Dict[str, Any], today: date) -> ReminderState:
    if reminder.get("is_repeat"):
        days = reminder.get("days_of_week") or WeekdaySet()
        if reminder.get("frequency") != Frequency.weekly or WeekdaySet(days).covers_all:
            return ReminderState.repeating_always
        return ReminderState.repeating_weekday

    last = _last_completed(reminder)
    if last is None or last > today:
        return ReminderState.one_time_pending
    if last == today:
        return ReminderState.one_time_completed_today
    return ReminderState.one_time_expired


def should_auto_disable(reminder: Dict[str, Any], today: date) -> bool:
    """Una sola vez + completado antes de hoy + todavía activado."""
    return bool(reminder.get("is_enabled")) and classify(reminder, today) == ReminderState.one_time_expired


def is_visible_today(reminder: Dict[str, Any], today: date) -> bool:
    state = classify(reminder, today)
    if state == ReminderState.one_time_expired:
        return False
    if not reminder.get("is_enabled"):
        return False
    if state == ReminderState.repeating_weekday:
        return Weekday.of(today) in WeekdaySet(reminder.get("days_of_week") or ())
    return True


def is_completed_today(reminder: Dict[str, Any], today: date) -> bool:
    return _last_completed(reminder) == today


def sort_by_target_time(reminders: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Orden por hora; los de "todo el día" (sin hora) van primero."""
    return sorted(reminders, key=lambda r: (r.get("target_time") is not None, r.get("target_time") or ""))


def visible_today(reminders: Iterable[Dict[str, Any]], today: date) -> List[Dict[str, Any]]:
    return sort_by_target_time(r for r in reminders if is_visible_today(r, today))
