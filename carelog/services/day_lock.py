"""
Fila de bloqueo/versión por (animal, fecha).

Dos guardados del mismo día no pueden intercalarse: el segundo recibe Conflict
mientras el primero tenga el bloqueo. Si el cliente envía la versión que leyó,
un guardado basado en datos obsoletos también se rechaza.
"""
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional
import logging

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from ..clock import Clock
from ..errors import Conflict
from ..utils import new_id

logger = logging.getLogger(__name__)


@dataclass
class DayLock:
    animal_id: str
    record_date: date
    token: str
    version: int


class DayLockStore:
    def __init__(self, db: AsyncIOMotorDatabase, clock: Clock, ttl_seconds: int = 30):
        self.db = db
        self.clock = clock
        self.ttl_seconds = ttl_seconds

    def _key(self, animal_id: str, record_date: date) -> dict:
        return {"animal_id": animal_id, "record_date": record_date.isoformat()}

    async def current_version(self, animal_id: str, record_date: date) -> int:
        doc = await self.db.day_versions.find_one(self._key(animal_id, record_date))
        return int(doc.get("version", 0)) if doc else 0

    async def acquire(self, animal_id: str, record_date: date, expected_version: Optional[int] = None) -> DayLock:
        key = self._key(animal_id, record_date)
        # Garantiza que la fila exista antes de intentar tomar el bloqueo
        await self.db.day_versions.update_one(
            key,
            {"$setOnInsert": {"version": 0, "locked_by": None, "locked_at": None}},
            upsert=True,
        )

        now = self.clock.utcnow_naive()
        stale_before = now - timedelta(seconds=self.ttl_seconds)
        query = dict(key)
        query["$or"] = [{"locked_by": None}, {"locked_at": {"$lt": stale_before}}]
        if expected_version is not None:
            query["version"] = expected_version

        token = new_id()
        doc = await self.db.day_versions.find_one_and_update(
            query,
            {"$set": {"locked_by": token, "locked_at": now}},
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            current = await self.db.day_versions.find_one(key) or {}
            if expected_version is not None and int(current.get("version", 0)) != expected_version:
                logger.warning(f"Versión obsoleta para {animal_id} {record_date}: "
                               f"esperada {expected_version}, actual {current.get('version')}")
                raise Conflict("Los registros de este día han cambiado. Recarga e inténtalo de nuevo")
            logger.warning(f"Día bloqueado por otro guardado: {animal_id} {record_date}")
            raise Conflict("Ya se están guardando los registros de este día. Inténtalo de nuevo en unos segundos")
        return DayLock(animal_id, record_date, token, int(doc.get("version", 0)))

    async def release(self, lock: DayLock, changed: bool) -> int:
        """Libera el bloqueo; si algo se escribió, sube la versión. Devuelve la versión final."""
        doc = await self.db.day_versions.find_one_and_update(
            {**self._key(lock.animal_id, lock.record_date), "locked_by": lock.token},
            {"$set": {"locked_by": None, "locked_at": None}, "$inc": {"version": 1 if changed else 0}},
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            # El bloqueo caducó y otro guardado lo tomó
            logger.warning(f"Bloqueo perdido al liberar {lock.animal_id} {lock.record_date}")
            return await self.current_version(lock.animal_id, lock.record_date)
        return int(doc["version"])
