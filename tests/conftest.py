"""
Configuración de pytest para tests.

La base de datos es un Motor en memoria (mongomock-motor) y el reloj está
parado en un miércoles, así que los tests no dependen de la fecha real.
"""
import pytest
from datetime import date, datetime
from uuid import uuid4
from httpx import AsyncClient, ASGITransport
from mongomock_motor import AsyncMongoMockClient

from carelog.clock import FixedClock, get_clock
from carelog.db import create_indexes, get_db
from carelog.security import get_current_user_id
from carelog.services.daily_batch import DailyBatchSynchronizer
from carelog.services.day_lock import DayLockStore
from carelog.services.history import RecordHistoryAggregator
from carelog.services.invalidation import InvalidationHook
from carelog.services.reminders import ReminderStore
from carelog.services.repository import RecordRepository

# 2026-01-21 es miércoles
TODAY = date(2026, 1, 21)
OWNER_ID = "owner-1"
OTHER_ID = "owner-2"


@pytest.fixture
async def test_db():
    """Base de datos limpia para cada test"""
    client = AsyncMongoMockClient()
    db = client["carelog_test"]
    await create_indexes(db)
    yield db


@pytest.fixture
def clock():
    return FixedClock(TODAY)


@pytest.fixture
def repo(test_db):
    return RecordRepository(test_db)


@pytest.fixture
def invalidations():
    """Llamadas recibidas por el hook de invalidación"""
    return []


@pytest.fixture
def hook(invalidations):
    h = InvalidationHook()

    async def record(animal_id, record_date):
        invalidations.append((animal_id, record_date))

    h.register(record)
    return h


@pytest.fixture
def synchronizer(repo, clock, hook):
    return DailyBatchSynchronizer(repo, DayLockStore(repo.db, clock), hook, clock)


@pytest.fixture
def history(repo, clock):
    return RecordHistoryAggregator(repo, clock)


@pytest.fixture
def reminder_store(test_db):
    return ReminderStore(test_db)


async def insert_animal(db, owner_id: str = OWNER_ID, name: str = "Hari") -> str:
    animal_id = str(uuid4())
    await db.animals.insert_one({
        "_id": animal_id,
        "owner_id": owner_id,
        "name": name,
        "gender": "unknown",
        "created_at": datetime(2026, 1, 1),
    })
    return animal_id


@pytest.fixture
async def animal_id(test_db):
    """Animal del usuario de prueba"""
    return await insert_animal(test_db)


@pytest.fixture
def login():
    """Cambia el usuario autenticado en la app: login("owner-2") o login(None)"""
    from carelog.main import app
    from carelog.errors import AuthRequired

    def _login(user_id):
        if user_id is None:
            def anonymous():
                raise AuthRequired()
            app.dependency_overrides[get_current_user_id] = anonymous
        else:
            app.dependency_overrides[get_current_user_id] = lambda: user_id

    return _login


@pytest.fixture
async def api(test_db, clock, login):
    """Cliente HTTP contra la app con base de datos y reloj de test"""
    from carelog.main import app
    # Deshabilitar rate limiting en los tests
    app.state.limiter = None
    app.dependency_overrides[get_db] = lambda: test_db
    app.dependency_overrides[get_clock] = lambda: clock
    login(OWNER_ID)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
