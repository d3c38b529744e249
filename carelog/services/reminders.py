from datetime import date, datetime
from typing import Any, Dict, List, Optional
import logging

from motor.motor_asyncio import AsyncIOMotorDatabase

from ..errors import Forbidden, NotFound
from ..schemas.reminder import ReminderIn, ReminderManageOut, ReminderOut, ReminderTodayOut, WeekdaySet
from ..utils import new_id
from . import visibility

logger = logging.getLogger(__name__)


def from_doc(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Documento de MongoDB -> forma de la app (días como WeekdaySet, fechas como date)."""
    last = doc.get("last_completed_date")
    return {
        "id": str(doc["_id"]),
        "title": doc["title"],
        "target_time": doc.get("target_time") or None,
        "is_repeat": bool(doc.get("is_repeat", True)),
        "frequency": doc.get("frequency"),
        "days_of_week": WeekdaySet.from_storage(doc.get("days_of_week")),
        "is_enabled": bool(doc.get("is_enabled", True)),
        "last_completed_date": date.fromisoformat(last) if last else None,
    }


def _out(reminder: Dict[str, Any]) -> Dict[str, Any]:
    d = dict(reminder)
    d["days_of_week"] = d["days_of_week"].ordered()
    return d


class ReminderStore:
    """Recordatorios del usuario. No dependen de ningún animal."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db

    async def _load(self, user_id: str) -> List[Dict[str, Any]]:
        docs = await self.db.reminders.find({"user_id": user_id}).to_list(None)
        return [from_doc(d) for d in docs]

    async def get(self, user_id: str, reminder_id: str) -> Dict[str, Any]:
        doc = await self.db.reminders.find_one({"_id": reminder_id})
        if not doc:
            raise NotFound("Recordatorio no encontrado")
        if doc.get("user_id") != user_id:
            raise Forbidden("Sin acceso a este recordatorio")
        return from_doc(doc)

    async def list_all(self, user_id: str, today: date) -> List[ReminderManageOut]:
        reminders = visibility.sort_by_target_time(await self._load(user_id))
        return [
            ReminderManageOut(
                **_out(r),
                is_active=r["is_enabled"] and not visibility.should_auto_disable(r, today),
            )
            for r in reminders
        ]

    async def list_today(self, user_id: str, today: date) -> List[ReminderTodayOut]:
        reminders = visibility.visible_today(await self._load(user_id), today)
        return [ReminderTodayOut(**_out(r), is_completed=visibility.is_completed_today(r, today)) for r in reminders]

    async def save(self, user_id: str, payload: ReminderIn, reminder_id: Optional[str] = None) -> ReminderOut:
        fields = {
            "title": payload.title,
            "target_time": payload.target_time,
            "is_repeat": payload.is_repeat,
            "frequency": payload.frequency.value if payload.frequency else None,
            # Los días se reemplazan enteros, nunca se suman o quitan de uno en uno
            "days_of_week": payload.weekdays().to_storage(),
            "is_enabled": payload.is_enabled,
        }
        if reminder_id:
            await self.get(user_id, reminder_id)
            await self.db.reminders.update_one({"_id": reminder_id, "user_id": user_id}, {"$set": fields})
            logger.info(f"Recordatorio {reminder_id} actualizado")
        else:
            reminder_id = new_id()
            doc = {"_id": reminder_id, "user_id": user_id, "last_completed_date": None,
                   "created_at": datetime.utcnow(), **fields}
            await self.db.reminders.insert_one(doc)
            logger.info(f"Recordatorio {reminder_id} creado para {user_id}")
        return ReminderOut(**_out(await self.get(user_id, reminder_id)))

    async def toggle_complete(self, user_id: str, reminder_id: str, completed: bool, today: date) -> ReminderOut:
        """Único punto que escribe last_completed_date."""
        await self.get(user_id, reminder_id)
        value = today.isoformat() if completed else None
        await self.db.reminders.update_one(
            {"_id": reminder_id, "user_id": user_id}, {"$set": {"last_completed_date": value}}
        )
        return ReminderOut(**_out(await self.get(user_id, reminder_id)))

    async def delete(self, user_id: str, reminder_id: str) -> None:
        result = await self.db.reminders.delete_one({"_id": reminder_id, "user_id": user_id})
        if result.deleted_count == 0:
            # Distinguir "no existe" de "no es tuyo"
            await self.get(user_id, reminder_id)
        logger.info(f"Recordatorio {reminder_id} eliminado")
