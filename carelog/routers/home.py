from typing import List, Optional
from fastapi import APIRouter, Depends

from ..clock import Clock, get_clock
from ..deps import get_history, get_reminder_store
from ..schemas.alert import HealthAlert
from ..schemas.base import CamelModel
from ..schemas.reminder import ReminderTodayOut
from ..security import get_current_user_id
from ..services.history import RecordHistoryAggregator
from ..services.reminders import ReminderStore

router = APIRouter()


class AnimalAlerts(CamelModel):
    animal_id: str
    name: str
    alerts: List[HealthAlert] = []


class HomeOut(CamelModel):
    reminders: List[ReminderTodayOut] = []
    animals: List[AnimalAlerts] = []


@router.get("", response_model=HomeOut)
async def home(
    animal_id: Optional[str] = None,
    user_id: str = Depends(get_current_user_id),
    store: ReminderStore = Depends(get_reminder_store),
    history: RecordHistoryAggregator = Depends(get_history),
    clock: Clock = Depends(get_clock),
):
    """
    Pantalla de inicio: recordatorios de hoy y alertas de cada animal
    (o solo del animal indicado). Todo se recalcula en cada petición.
    """
    reminders = await store.list_today(user_id, clock.today())
    animals = await history.repo.list_animals(user_id)
    if animal_id:
        animals = [a for a in animals if str(a["_id"]) == animal_id]

    out = []
    for a in animals:
        alerts = await history.get_health_alerts(user_id, str(a["_id"]))
        out.append(AnimalAlerts(animal_id=str(a["_id"]), name=a["name"], alerts=alerts))
    return HomeOut(reminders=reminders, animals=out)
