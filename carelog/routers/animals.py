from datetime import datetime
from fastapi import APIRouter, Depends, status
from motor.motor_asyncio import AsyncIOMotorDatabase
import logging

from ..config import get_settings
from ..db import get_db
from ..deps import get_repository
from ..errors import LimitExceeded
from ..schemas.animal import AnimalCreate, AnimalOut
from ..security import get_current_user_id
from ..services.repository import RecordRepository
from ..utils import new_id, to_id, to_uuid

logger = logging.getLogger(__name__)

router = APIRouter()
settings = get_settings()


def to_out(doc: dict) -> dict:
    return to_id(doc)


@router.get("/my", response_model=list[AnimalOut])
async def my_animals(
    user_id: str = Depends(get_current_user_id),
    repo: RecordRepository = Depends(get_repository),
):
    return [to_out(d) for d in await repo.list_animals(user_id)]


@router.post("", response_model=AnimalOut, status_code=status.HTTP_201_CREATED)
async def create_animal(
    payload: AnimalCreate,
    user_id: str = Depends(get_current_user_id),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    # Límite por usuario: se comprueba contando, no hay restricción en la base de datos
    count = await db.animals.count_documents({"owner_id": user_id})
    if count >= settings.max_animals_per_owner:
        raise LimitExceeded(f"Solo puedes registrar hasta {settings.max_animals_per_owner} animales")

    doc = payload.model_dump(mode="json")
    doc["_id"] = new_id()
    doc["owner_id"] = user_id     # lo pone el backend
    doc["created_at"] = datetime.utcnow()
    await db.animals.insert_one(doc)
    logger.info(f"Animal {doc['_id']} creado para {user_id} ({count + 1}/{settings.max_animals_per_owner})")
    return to_out(doc)


@router.delete("/{animal_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_animal(
    animal_id: str,
    user_id: str = Depends(get_current_user_id),
    repo: RecordRepository = Depends(get_repository),
):
    animal_id = to_uuid(animal_id, "animal_id")
    await repo.require_animal(user_id, animal_id)
    # Primero los registros: si falla, el animal sigue ahí y se puede reintentar.
    # Los recordatorios son del usuario y se quedan
    await repo.delete_animal_records(animal_id)
    await repo.db.animals.delete_one({"_id": animal_id, "owner_id": user_id})
    logger.info(f"Animal {animal_id} eliminado")
    return None
