from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from .config import get_settings

_settings = get_settings()
_client: AsyncIOMotorClient | None = None
_db: AsyncIOMotorDatabase | None = None

# Colecciones con una sola fila por (animal, fecha)
SINGLETON_COLLECTIONS = ("weight_records", "environment_records", "memo_records")
# Colecciones que se reemplazan enteras en cada guardado del día
LIST_COLLECTIONS = ("meal_records", "excretion_records", "medication_records")


async def create_indexes(db: AsyncIOMotorDatabase) -> None:
    await db.users.create_index("email", unique=True)
    await db.animals.create_index([("owner_id", 1)])
    for name in SINGLETON_COLLECTIONS:
        await db[name].create_index([("animal_id", 1), ("record_date", 1)], unique=True)
    for name in LIST_COLLECTIONS:
        await db[name].create_index([("animal_id", 1), ("record_date", 1)])
    await db.day_versions.create_index([("animal_id", 1), ("record_date", 1)], unique=True)
    await db.batch_requests.create_index([("owner_id", 1), ("key", 1)], unique=True)
    await db.hospital_visits.create_index([("animal_id", 1), ("visit_date", -1)])
    await db.reminders.create_index([("user_id", 1), ("target_time", 1)])


async def get_db() -> AsyncIOMotorDatabase:
    global _client, _db
    if _db is None:
        _client = AsyncIOMotorClient(_settings.mongodb_uri)
        _db = _client[_settings.db_name]
        await create_indexes(_db)
    return _db
