from datetime import date
from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Body, Depends, Header, Query, Request
import logging

from ..deps import get_history, get_synchronizer
from ..middleware.rate_limit import apply_rate_limit
from ..schemas.alert import HealthAlert
from ..schemas.record import BatchSaveResult, DailyRecordSet, RecentDay, WeightEntry, WeightRange
from ..security import get_current_user_id
from ..services.daily_batch import DailyBatchSynchronizer
from ..services.history import RecordHistoryAggregator
from ..utils import to_uuid

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/batch", response_model=BatchSaveResult)
async def save_daily_batch(
    request: Request,
    payload: Dict[str, Any] = Body(...),
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    user_id: str = Depends(get_current_user_id),
    sync: DailyBatchSynchronizer = Depends(get_synchronizer),
):
    """
    Guarda un día completo de cuidados. La validación la hace el sincronizador
    para devolver un único mensaje con el primer error.
    """
    apply_rate_limit(request, "30/minute")
    return await sync.save_daily_batch(user_id, payload, idempotency_key)


@router.get("/{animal_id}/daily", response_model=DailyRecordSet)
async def get_daily_records(
    animal_id: str,
    day: date = Query(..., alias="date"),
    user_id: str = Depends(get_current_user_id),
    sync: DailyBatchSynchronizer = Depends(get_synchronizer),
):
    return await sync.get_daily_records(user_id, to_uuid(animal_id, "animal_id"), day)


@router.get("/{animal_id}/weights", response_model=List[WeightEntry])
async def get_weight_history(
    animal_id: str,
    range_: WeightRange = Query(WeightRange.d30, alias="range"),
    user_id: str = Depends(get_current_user_id),
    history: RecordHistoryAggregator = Depends(get_history),
):
    return await history.get_weight_history(user_id, to_uuid(animal_id, "animal_id"), range_)


@router.get("/{animal_id}/recent", response_model=List[RecentDay])
async def get_recent_records(
    animal_id: str,
    days: int = Query(90, ge=1, le=365),
    user_id: str = Depends(get_current_user_id),
    history: RecordHistoryAggregator = Depends(get_history),
):
    return await history.get_recent_records(user_id, to_uuid(animal_id, "animal_id"), days)


@router.get("/{animal_id}/alerts", response_model=List[HealthAlert])
async def get_health_alerts(
    animal_id: str,
    user_id: str = Depends(get_current_user_id),
    history: RecordHistoryAggregator = Depends(get_history),
):
    return await history.get_health_alerts(user_id, to_uuid(animal_id, "animal_id"))
