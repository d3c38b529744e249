from datetime import datetime
from typing import Any, Dict, List
from fastapi import APIRouter, Depends, status
import logging

from ..deps import get_history, get_repository
from ..errors import NotFound
from ..schemas.hospital import HospitalVisitIn, HospitalVisitOut
from ..security import get_current_user_id
from ..services.history import RecordHistoryAggregator
from ..services.repository import RecordRepository
from ..utils import to_id, to_uuid

logger = logging.getLogger(__name__)

router = APIRouter()


async def owned_visit(repo: RecordRepository, user_id: str, visit_id: str) -> Dict[str, Any]:
    """La visita existe y es de un animal del usuario"""
    visit = await repo.get_hospital_visit(visit_id)
    if not visit:
        raise NotFound("Visita no encontrada")
    await repo.require_animal(user_id, visit["animal_id"])
    return visit


@router.post("", response_model=HospitalVisitOut, status_code=status.HTTP_201_CREATED)
async def save_hospital_visit(
    payload: HospitalVisitIn,
    user_id: str = Depends(get_current_user_id),
    repo: RecordRepository = Depends(get_repository),
):
    """Crea la visita, o la actualiza si viene con id"""
    animal_id = str(payload.animal_id)
    await repo.require_animal(user_id, animal_id)

    doc = payload.model_dump(mode="json", exclude={"id"})
    if payload.id:
        await owned_visit(repo, user_id, str(payload.id))
        doc["_id"] = str(payload.id)
    else:
        doc["created_at"] = datetime.utcnow()

    visit_id = await repo.save_hospital_visit(doc)
    logger.info(f"Visita {visit_id} guardada para {animal_id}")
    return to_id(await repo.get_hospital_visit(visit_id))


@router.get("/visit/{visit_id}", response_model=HospitalVisitOut)
async def get_hospital_visit(
    visit_id: str,
    user_id: str = Depends(get_current_user_id),
    repo: RecordRepository = Depends(get_repository),
):
    """Una visita, para editarla"""
    return to_id(await owned_visit(repo, user_id, to_uuid(visit_id, "visit_id")))


@router.delete("/{visit_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_hospital_visit(
    visit_id: str,
    user_id: str = Depends(get_current_user_id),
    repo: RecordRepository = Depends(get_repository),
):
    visit_id = to_uuid(visit_id, "visit_id")
    await owned_visit(repo, user_id, visit_id)
    await repo.delete_hospital_visit(visit_id)
    logger.info(f"Visita {visit_id} eliminada")
    return None


@router.get("/{animal_id}/history", response_model=List[HospitalVisitOut])
async def get_hospital_history(
    animal_id: str,
    user_id: str = Depends(get_current_user_id),
    history: RecordHistoryAggregator = Depends(get_history),
):
    return await history.get_hospital_history(user_id, to_uuid(animal_id, "animal_id"))
