from typing import List
from fastapi import APIRouter, Depends, status

from ..clock import Clock, get_clock
from ..deps import get_reminder_store
from ..schemas.reminder import CompletePatch, ReminderIn, ReminderManageOut, ReminderOut, ReminderTodayOut
from ..security import get_current_user_id
from ..services.reminders import ReminderStore
from ..utils import to_uuid

router = APIRouter()


@router.get("", response_model=List[ReminderManageOut])
async def list_reminders(
    user_id: str = Depends(get_current_user_id),
    store: ReminderStore = Depends(get_reminder_store),
    clock: Clock = Depends(get_clock),
):
    """Vista de gestión: todos, incluidos los desactivados y los caducados"""
    return await store.list_all(user_id, clock.today())


@router.get("/today", response_model=List[ReminderTodayOut])
async def list_today(
    user_id: str = Depends(get_current_user_id),
    store: ReminderStore = Depends(get_reminder_store),
    clock: Clock = Depends(get_clock),
):
    return await store.list_today(user_id, clock.today())


@router.post("", response_model=ReminderOut, status_code=status.HTTP_201_CREATED)
async def create_reminder(
    payload: ReminderIn,
    user_id: str = Depends(get_current_user_id),
    store: ReminderStore = Depends(get_reminder_store),
):
    return await store.save(user_id, payload)


@router.put("/{reminder_id}", response_model=ReminderOut)
async def update_reminder(
    reminder_id: str,
    payload: ReminderIn,
    user_id: str = Depends(get_current_user_id),
    store: ReminderStore = Depends(get_reminder_store),
):
    return await store.save(user_id, payload, to_uuid(reminder_id, "reminder_id"))


@router.patch("/{reminder_id}/complete", response_model=ReminderOut)
async def toggle_complete(
    reminder_id: str,
    body: CompletePatch,
    user_id: str = Depends(get_current_user_id),
    store: ReminderStore = Depends(get_reminder_store),
    clock: Clock = Depends(get_clock),
):
    return await store.toggle_complete(user_id, to_uuid(reminder_id, "reminder_id"), body.completed, clock.today())


@router.delete("/{reminder_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_reminder(
    reminder_id: str,
    user_id: str = Depends(get_current_user_id),
    store: ReminderStore = Depends(get_reminder_store),
):
    await store.delete(user_id, to_uuid(reminder_id, "reminder_id"))
    return None
