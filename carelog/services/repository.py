"""
Acceso tipado a los registros diarios de un animal.

Este módulo es el único sitio donde se traducen los nombres de campo de
MongoDB (record_date, record_time, amount_unit, details, medicine_name...)
a los nombres que usa la aplicación. Ningún router ni servicio debería
construir documentos de estas colecciones a mano.
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence
import logging

from motor.motor_asyncio import AsyncIOMotorDatabase, AsyncIOMotorClientSession
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import PyMongoError

from ..errors import Forbidden, InternalError, NotFound
from ..utils import new_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Collection:
    kind: str
    name: str
    singleton: bool
    # campo de la app -> campo en MongoDB
    fields: Dict[str, str] = field(default_factory=dict)

    def to_row(self, animal_id: str, record_date: date, values: Dict[str, Any]) -> Dict[str, Any]:
        row = {"animal_id": animal_id, "record_date": record_date.isoformat()}
        for app_name, value in values.items():
            row[self.fields[app_name]] = value
        return row

    def to_storage(self, values: Dict[str, Any]) -> Dict[str, Any]:
        return {self.fields[k]: v for k, v in values.items()}

    def from_row(self, row: Dict[str, Any]) -> Dict[str, Any]:
        out = {"id": str(row["_id"]), "date": date.fromisoformat(row["record_date"])}
        for app_name, db_name in self.fields.items():
            out[app_name] = row.get(db_name)
        return out


WEIGHT = Collection("weight", "weight_records", True, {"weight": "weight"})
ENVIRONMENT = Collection("environment", "environment_records", True,
                         {"temperature": "temperature", "humidity": "humidity"})
MEMO = Collection("memo", "memo_records", True, {"content": "content"})
MEALS = Collection("meals", "meal_records", False,
                   {"time": "record_time", "content": "content", "amount": "amount", "unit": "amount_unit"})
EXCRETIONS = Collection("excretions", "excretion_records", False,
                        {"time": "record_time", "type": "type", "condition": "condition", "notes": "details"})
MEDICATIONS = Collection("medications", "medication_records", False,
                         {"time": "record_time", "name": "medicine_name"})

COLLECTIONS: Dict[str, Collection] = {
    c.kind: c for c in (WEIGHT, ENVIRONMENT, MEMO, MEALS, EXCRETIONS, MEDICATIONS)
}


def _opts(session: Optional[AsyncIOMotorClientSession]) -> Dict[str, Any]:
    return {"session": session} if session is not None else {}


class RecordRepository:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db

    def _coll(self, kind: str):
        return self.db[COLLECTIONS[kind].name]

    # ---------- Animales ----------

    async def require_animal(self, owner_id: str, animal_id: str) -> Dict[str, Any]:
        """Devuelve el animal si existe y pertenece al usuario."""
        animal = await self.db.animals.find_one({"_id": animal_id})
        if not animal:
            raise NotFound("Animal no encontrado")
        if str(animal.get("owner_id")) != owner_id:
            raise Forbidden("No eres el propietario de este animal")
        return animal

    async def list_animals(self, owner_id: str) -> List[Dict[str, Any]]:
        return await self.db.animals.find({"owner_id": owner_id}).sort("created_at", ASCENDING).to_list(None)

    async def delete_animal_records(self, animal_id: str) -> None:
        """
        Borra todo lo que cuelga del animal. Si algo falla a medias se lanza
        InternalError; repetir el borrado es seguro.
        """
        names = [c.name for c in COLLECTIONS.values()] + ["day_versions", "hospital_visits"]
        done = []
        for name in names:
            try:
                await self.db[name].delete_many({"animal_id": animal_id})
            except PyMongoError as e:
                logger.error(f"Error borrando {name} de {animal_id} (ya borradas: {done}): {e}", exc_info=True)
                raise InternalError("No se pudieron borrar todos los registros del animal. Inténtalo de nuevo")
            done.append(name)

    # ---------- Singletons (peso, entorno, memo) ----------

    async def get_singleton(self, kind: str, animal_id: str, record_date: date,
                            session: Optional[AsyncIOMotorClientSession] = None) -> Optional[Dict[str, Any]]:
        row = await self._coll(kind).find_one(
            {"animal_id": animal_id, "record_date": record_date.isoformat()}, **_opts(session)
        )
        return COLLECTIONS[kind].from_row(row) if row else None

    async def upsert_singleton(self, kind: str, animal_id: str, record_date: date, values: Dict[str, Any],
                               session: Optional[AsyncIOMotorClientSession] = None) -> str:
        """
        Actualiza la fila del día si existe (solo los campos recibidos) o la crea.
        Devuelve el id de la fila.
        """
        c = COLLECTIONS[kind]
        coll = self.db[c.name]
        existing = await coll.find_one(
            {"animal_id": animal_id, "record_date": record_date.isoformat()}, {"_id": 1}, **_opts(session)
        )
        if existing:
            await coll.update_one({"_id": existing["_id"]}, {"$set": c.to_storage(values)}, **_opts(session))
            return str(existing["_id"])
        row = c.to_row(animal_id, record_date, values)
        row["_id"] = new_id()
        row["created_at"] = datetime.utcnow()
        await coll.insert_one(row, **_opts(session))
        return row["_id"]

    async def delete_singleton(self, kind: str, animal_id: str, record_date: date,
                               session: Optional[AsyncIOMotorClientSession] = None) -> int:
        res = await self._coll(kind).delete_one(
            {"animal_id": animal_id, "record_date": record_date.isoformat()}, **_opts(session)
        )
        return res.deleted_count

    # ---------- Listas (comidas, excreciones, medicación) ----------

    async def list_for_date(self, kind: str, animal_id: str, record_date: date,
                            session: Optional[AsyncIOMotorClientSession] = None) -> List[Dict[str, Any]]:
        c = COLLECTIONS[kind]
        cursor = self.db[c.name].find(
            {"animal_id": animal_id, "record_date": record_date.isoformat()}, **_opts(session)
        )
        if not c.singleton:
            cursor = cursor.sort([("record_time", ASCENDING), ("position", ASCENDING)])
        return [c.from_row(r) for r in await cursor.to_list(None)]

    async def replace_list(self, kind: str, animal_id: str, record_date: date, items: Sequence[Dict[str, Any]],
                           session: Optional[AsyncIOMotorClientSession] = None) -> int:
        """
        Borra todas las filas del día para esta colección e inserta `items`.
        No hay diff por elemento: el resultado son exactamente esos items.
        """
        c = COLLECTIONS[kind]
        coll = self.db[c.name]
        await coll.delete_many({"animal_id": animal_id, "record_date": record_date.isoformat()}, **_opts(session))
        if not items:
            return 0
        now = datetime.utcnow()
        rows = []
        for position, item in enumerate(items):
            row = c.to_row(animal_id, record_date, item)
            row["_id"] = new_id()
            row["position"] = position
            row["created_at"] = now
            rows.append(row)
        await coll.insert_many(rows, **_opts(session))
        return len(rows)

    # ---------- Historial ----------

    async def list_since(self, kind: str, animal_id: str, since: date, ascending: bool = True) -> List[Dict[str, Any]]:
        c = COLLECTIONS[kind]
        order = ASCENDING if ascending else DESCENDING
        sort = [("record_date", order)]
        if not c.singleton:
            sort += [("record_time", ASCENDING), ("position", ASCENDING)]
        cursor = self.db[c.name].find(
            {"animal_id": animal_id, "record_date": {"$gte": since.isoformat()}}
        ).sort(sort)
        return [c.from_row(r) for r in await cursor.to_list(None)]

    async def latest(self, kind: str, animal_id: str, limit: int) -> List[Dict[str, Any]]:
        c = COLLECTIONS[kind]
        cursor = self.db[c.name].find({"animal_id": animal_id}).sort("record_date", DESCENDING).limit(limit)
        return [c.from_row(r) for r in await cursor.to_list(None)]

    # ---------- Visitas al veterinario ----------

    async def save_hospital_visit(self, visit: Dict[str, Any]) -> str:
        visit_id = visit.pop("_id", None) or new_id()
        await self.db.hospital_visits.update_one({"_id": visit_id}, {"$set": visit}, upsert=True)
        return visit_id

    async def get_hospital_visit(self, visit_id: str) -> Optional[Dict[str, Any]]:
        return await self.db.hospital_visits.find_one({"_id": visit_id})

    async def list_hospital_visits(self, animal_id: str) -> List[Dict[str, Any]]:
        cursor = self.db.hospital_visits.find({"animal_id": animal_id}).sort("visit_date", DESCENDING)
        return await cursor.to_list(None)

    async def delete_hospital_visit(self, visit_id: str) -> int:
        res = await self.db.hospital_visits.delete_one({"_id": visit_id})
        return res.deleted_count
