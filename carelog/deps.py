"""Dependencias de FastAPI que construyen los servicios para cada petición."""
from fastapi import Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from .clock import Clock, get_clock
from .config import get_settings
from .db import get_db
from .services.daily_batch import DailyBatchSynchronizer
from .services.day_lock import DayLockStore
from .services.history import RecordHistoryAggregator
from .services.invalidation import InvalidationHook
from .services.reminders import ReminderStore
from .services.repository import RecordRepository

settings = get_settings()

# Compartido entre peticiones: solo guarda la lista de listeners
invalidation_hook = InvalidationHook()


def get_invalidation_hook() -> InvalidationHook:
    return invalidation_hook


def get_repository(db: AsyncIOMotorDatabase = Depends(get_db)) -> RecordRepository:
    return RecordRepository(db)


def get_synchronizer(
    repo: RecordRepository = Depends(get_repository),
    clock: Clock = Depends(get_clock),
    hook: InvalidationHook = Depends(get_invalidation_hook),
) -> DailyBatchSynchronizer:
    return DailyBatchSynchronizer(
        repo,
        DayLockStore(repo.db, clock, settings.day_lock_ttl_seconds),
        hook,
        clock,
        timeout_seconds=settings.request_timeout_seconds,
        use_transactions=settings.mongodb_transactions,
    )


def get_history(
    repo: RecordRepository = Depends(get_repository),
    clock: Clock = Depends(get_clock),
) -> RecordHistoryAggregator:
    return RecordHistoryAggregator(repo, clock)


def get_reminder_store(db: AsyncIOMotorDatabase = Depends(get_db)) -> ReminderStore:
    return ReminderStore(db)
