from datetime import date
from typing import Dict, List
import asyncio
import logging

from ..clock import Clock
from ..schemas.alert import HealthAlert
from ..schemas.hospital import HospitalVisitOut
from ..schemas.record import ExcretionEntry, MealEntry, RecentDay, WeightEntry, WeightRange
from ..utils import to_id
from .alerts import NO_RECORD_WINDOW_DAYS, evaluate_health_alerts
from .repository import RecordRepository

logger = logging.getLogger(__name__)


class RecordHistoryAggregator:
    """Resúmenes de periodos (tendencia de peso, últimos N días) calculados al vuelo."""

    def __init__(self, repo: RecordRepository, clock: Clock):
        self.repo = repo
        self.clock = clock

    async def get_weight_history(self, owner_id: str, animal_id: str, range_: WeightRange) -> List[WeightEntry]:
        await self.repo.require_animal(owner_id, animal_id)
        # "Hoy" en la zona horaria local, no medianoche UTC
        start = self.clock.days_ago(range_.days)
        rows = await self.repo.list_since("weight", animal_id, start, ascending=True)
        return [WeightEntry(**r) for r in rows]

    async def get_recent_records(self, owner_id: str, animal_id: str, window_days: int) -> List[RecentDay]:
        """
        Peso, comidas y excreciones de los últimos `window_days` días agrupados por
        fecha. Los días sin ningún registro no aparecen.
        """
        await self.repo.require_animal(owner_id, animal_id)
        since = self.clock.days_ago(window_days)
        weights, meals, excretions = await asyncio.gather(
            self.repo.list_since("weight", animal_id, since),
            self.repo.list_since("meals", animal_id, since),
            self.repo.list_since("excretions", animal_id, since),
        )

        days: Dict[date, RecentDay] = {}

        def day(d: date) -> RecentDay:
            if d not in days:
                days[d] = RecentDay(date=d)
            return days[d]

        for w in weights:
            day(w["date"]).weight = WeightEntry(**w)
        for m in meals:
            day(m["date"]).meals.append(MealEntry(**m))
        for e in excretions:
            day(e["date"]).excretions.append(ExcretionEntry(**e))

        return sorted(days.values(), key=lambda d: d.date, reverse=True)

    async def get_hospital_history(self, owner_id: str, animal_id: str) -> List[HospitalVisitOut]:
        await self.repo.require_animal(owner_id, animal_id)
        visits = await self.repo.list_hospital_visits(animal_id)
        return [HospitalVisitOut(**to_id(v)) for v in visits]

    async def get_health_alerts(self, owner_id: str, animal_id: str) -> List[HealthAlert]:
        await self.repo.require_animal(owner_id, animal_id)
        today = self.clock.today()
        latest, recent = await asyncio.gather(
            self.repo.latest("weight", animal_id, 2),
            self.repo.list_since("weight", animal_id, self.clock.days_ago(NO_RECORD_WINDOW_DAYS)),
        )
        history = {r["id"]: r for r in latest + recent}
        return evaluate_health_alerts(list(history.values()), today)
