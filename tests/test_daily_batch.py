"""
Tests del guardado por lotes de un día y de su lectura
"""
import pytest
from datetime import date
from pymongo.errors import OperationFailure

from carelog.errors import Conflict, Forbidden, InternalError, NotFound, PartialWriteError, ValidationError
from carelog.services.daily_batch import DailyBatchSynchronizer
from carelog.services.day_lock import DayLockStore
from carelog.services.repository import RecordRepository
from conftest import OTHER_ID, OWNER_ID, TODAY

DAY = "2026-01-20"
MEAL_A = {"time": "08:00", "content": "Pienso", "amount": 10, "unit": "g"}
MEAL_B = {"time": "12:00", "content": "Gusanos", "amount": 5, "unit": "pcs"}
MEAL_C = {"time": "20:00", "content": "Pienso", "amount": 12, "unit": "g"}


def batch(animal_id, **fields):
    return {"animalId": animal_id, "date": DAY, **fields}


async def test_list_replace_is_idempotent(synchronizer, animal_id, test_db):
    """Guardar dos veces las mismas comidas deja 2 filas, no 4"""
    await synchronizer.save_daily_batch(OWNER_ID, batch(animal_id, meals=[MEAL_A, MEAL_B]))
    await synchronizer.save_daily_batch(OWNER_ID, batch(animal_id, meals=[MEAL_A, MEAL_B]))

    count = await test_db.meal_records.count_documents({"animal_id": animal_id, "record_date": DAY})
    assert count == 2


async def test_list_replace_removes_omitted_items(synchronizer, animal_id):
    """[A,B,C] y luego [A,C]: B desaparece"""
    await synchronizer.save_daily_batch(OWNER_ID, batch(animal_id, meals=[MEAL_A, MEAL_B, MEAL_C]))
    await synchronizer.save_daily_batch(OWNER_ID, batch(animal_id, meals=[MEAL_A, MEAL_C]))

    records = await synchronizer.get_daily_records(OWNER_ID, animal_id, date(2026, 1, 20))
    assert [m.content for m in records.meals] == ["Pienso", "Pienso"]
    assert [m.time for m in records.meals] == ["08:00", "20:00"]


async def test_empty_list_clears_day_and_omitted_list_is_untouched(synchronizer, animal_id):
    await synchronizer.save_daily_batch(OWNER_ID, batch(
        animal_id,
        meals=[MEAL_A],
        medications=[{"time": "09:00", "name": "Antibiótico"}],
    ))
    await synchronizer.save_daily_batch(OWNER_ID, batch(animal_id, meals=[]))

    records = await synchronizer.get_daily_records(OWNER_ID, animal_id, date(2026, 1, 20))
    assert records.meals == []
    assert [m.name for m in records.medications] == ["Antibiótico"]


async def test_weight_is_upserted(synchronizer, animal_id, test_db):
    await synchronizer.save_daily_batch(OWNER_ID, batch(animal_id, weight=300))
    await synchronizer.save_daily_batch(OWNER_ID, batch(animal_id, weight=305.5))

    rows = await test_db.weight_records.find({"animal_id": animal_id}).to_list(None)
    assert len(rows) == 1
    assert rows[0]["weight"] == 305.5


async def test_null_weight_leaves_existing_row(synchronizer, animal_id):
    await synchronizer.save_daily_batch(OWNER_ID, batch(animal_id, weight=300))
    await synchronizer.save_daily_batch(OWNER_ID, batch(animal_id, weight=None, memo="Sin cambios"))

    records = await synchronizer.get_daily_records(OWNER_ID, animal_id, date(2026, 1, 20))
    assert records.weight.weight == 300
    assert records.memo.content == "Sin cambios"


async def test_environment_partial_update_keeps_other_field(synchronizer, animal_id):
    await synchronizer.save_daily_batch(OWNER_ID, batch(animal_id, temperature=25, humidity=50))
    await synchronizer.save_daily_batch(OWNER_ID, batch(animal_id, temperature=26))

    records = await synchronizer.get_daily_records(OWNER_ID, animal_id, date(2026, 1, 20))
    assert records.condition.temperature == 26
    assert records.condition.humidity == 50


async def test_environment_new_row_only_has_supplied_field(synchronizer, animal_id):
    await synchronizer.save_daily_batch(OWNER_ID, batch(animal_id, humidity=40))

    records = await synchronizer.get_daily_records(OWNER_ID, animal_id, date(2026, 1, 20))
    assert records.condition.humidity == 40
    assert records.condition.temperature is None


async def test_empty_memo_deletes_row(synchronizer, animal_id, test_db):
    await synchronizer.save_daily_batch(OWNER_ID, batch(animal_id, memo="Ha comido poco"))
    await synchronizer.save_daily_batch(OWNER_ID, batch(animal_id, memo=""))

    assert await test_db.memo_records.count_documents({"animal_id": animal_id}) == 0


async def test_missing_singletons_are_absent(synchronizer, animal_id):
    records = await synchronizer.get_daily_records(OWNER_ID, animal_id, date(2026, 1, 20))
    assert records.weight is None
    assert records.condition is None
    assert records.memo is None
    assert records.meals == [] and records.excretions == [] and records.medications == []
    assert records.version == 0


async def test_storage_field_names_are_mapped(synchronizer, animal_id, test_db):
    """En MongoDB se guardan con los nombres de almacenamiento"""
    await synchronizer.save_daily_batch(OWNER_ID, batch(
        animal_id,
        excretions=[{"time": "7:30", "type": "stool", "condition": "abnormal", "notes": "Blanda"}],
    ))
    row = await test_db.excretion_records.find_one({"animal_id": animal_id})
    assert row["record_date"] == DAY
    assert row["record_time"] == "07:30"
    assert row["details"] == "Blanda"


async def test_abnormal_excretion_without_notes_is_rejected(synchronizer, animal_id, test_db):
    with pytest.raises(ValidationError) as exc:
        await synchronizer.save_daily_batch(OWNER_ID, batch(
            animal_id,
            weight=300,
            excretions=[{"time": "08:00", "type": "urine", "condition": "abnormal"}],
        ))
    assert "anormal" in exc.value.message
    # La validación va antes de cualquier escritura
    assert await test_db.weight_records.count_documents({}) == 0


async def test_validation_reports_only_first_error(synchronizer, animal_id):
    with pytest.raises(ValidationError) as exc:
        await synchronizer.save_daily_batch(OWNER_ID, batch(
            animal_id,
            weight=5000,
            meals=[{"time": "08:00", "content": "x" * 31}],
        ))
    assert exc.value.message.startswith("weight")
    assert "meals" not in exc.value.message


async def test_success_returns_committed_steps_and_version(synchronizer, animal_id, invalidations):
    result = await synchronizer.save_daily_batch(OWNER_ID, batch(
        animal_id, weight=300, temperature=24, memo="ok", meals=[MEAL_A], excretions=[], medications=[],
    ))
    assert result.success is True
    assert result.committed == ["weight", "environment", "memo", "meals", "excretions", "medications"]
    assert result.version == 1
    assert invalidations == [(animal_id, date(2026, 1, 20))]


async def test_stale_version_is_rejected(synchronizer, animal_id):
    await synchronizer.save_daily_batch(OWNER_ID, batch(animal_id, weight=300, version=0))
    with pytest.raises(Conflict):
        await synchronizer.save_daily_batch(OWNER_ID, batch(animal_id, weight=290, version=0))

    result = await synchronizer.save_daily_batch(OWNER_ID, batch(animal_id, weight=290, version=1))
    assert result.version == 2


async def test_concurrent_save_is_rejected_while_day_is_locked(synchronizer, animal_id, repo, clock):
    locks = DayLockStore(repo.db, clock)
    lock = await locks.acquire(animal_id, date(2026, 1, 20))

    with pytest.raises(Conflict):
        await synchronizer.save_daily_batch(OWNER_ID, batch(animal_id, weight=300))

    await locks.release(lock, changed=False)
    result = await synchronizer.save_daily_batch(OWNER_ID, batch(animal_id, weight=300))
    assert result.committed == ["weight"]


class FailingRepository(RecordRepository):
    """Falla al reemplazar la colección indicada"""

    def __init__(self, db, fail_on):
        super().__init__(db)
        self.fail_on = fail_on

    async def replace_list(self, kind, *args, **kwargs):
        if kind == self.fail_on:
            raise OperationFailure("fallo simulado")
        return await super().replace_list(kind, *args, **kwargs)


async def test_failed_step_reports_committed_steps(test_db, animal_id, clock, hook, invalidations):
    repo = FailingRepository(test_db, fail_on="meals")
    sync = DailyBatchSynchronizer(repo, DayLockStore(test_db, clock), hook, clock)

    with pytest.raises(PartialWriteError) as exc:
        await sync.save_daily_batch(OWNER_ID, batch(
            animal_id, weight=300, meals=[MEAL_A], medications=[{"time": "09:00", "name": "Vitamina"}],
        ))

    assert exc.value.committed == ["weight"]
    assert exc.value.failed_step == "meals"
    assert exc.value.to_payload()["partial"] is True
    # Lo ya escrito se queda; lo posterior no se aplica
    assert await test_db.weight_records.count_documents({"animal_id": animal_id}) == 1
    assert await test_db.medication_records.count_documents({"animal_id": animal_id}) == 0
    assert invalidations == []
    # El bloqueo se libera y la versión refleja el cambio parcial
    assert await DayLockStore(test_db, clock).current_version(animal_id, date(2026, 1, 20)) == 1


async def test_failure_on_first_step_reports_nothing_committed(test_db, animal_id, clock, hook):
    repo = FailingRepository(test_db, fail_on="meals")
    sync = DailyBatchSynchronizer(repo, DayLockStore(test_db, clock), hook, clock)

    with pytest.raises(PartialWriteError) as exc:
        await sync.save_daily_batch(OWNER_ID, batch(animal_id, meals=[MEAL_A]))

    assert exc.value.committed == []
    assert exc.value.to_payload()["partial"] is False


async def test_idempotency_key_replays_previous_result(synchronizer, animal_id, test_db):
    first = await synchronizer.save_daily_batch(OWNER_ID, batch(animal_id, weight=300), idempotency_key="k1")
    again = await synchronizer.save_daily_batch(OWNER_ID, batch(animal_id, weight=300), idempotency_key="k1")

    assert again.replayed is True
    assert again.version == first.version == 1


async def test_idempotency_key_with_other_day_is_rejected(synchronizer, animal_id, test_db):
    """Misma clave con otros datos: Conflict, no se devuelve el resultado anterior"""
    await synchronizer.save_daily_batch(OWNER_ID, batch(animal_id, weight=300), idempotency_key="k1")

    with pytest.raises(Conflict):
        await synchronizer.save_daily_batch(
            OWNER_ID, {"animalId": animal_id, "date": "2026-01-21", "weight": 250}, idempotency_key="k1",
        )
    assert await test_db.weight_records.count_documents({"record_date": "2026-01-21"}) == 0


async def test_idempotency_key_with_other_body_is_rejected(synchronizer, animal_id, test_db):
    await synchronizer.save_daily_batch(OWNER_ID, batch(animal_id, weight=300), idempotency_key="k1")

    with pytest.raises(Conflict):
        await synchronizer.save_daily_batch(OWNER_ID, batch(animal_id, weight=250), idempotency_key="k1")
    row = await test_db.weight_records.find_one({"animal_id": animal_id})
    assert row["weight"] == 300


async def test_idempotency_replay_ignores_stale_version(synchronizer, animal_id):
    """El reintento lleva la versión que leyó antes del primer guardado"""
    await synchronizer.save_daily_batch(OWNER_ID, batch(animal_id, weight=300, version=0), idempotency_key="k1")
    again = await synchronizer.save_daily_batch(
        OWNER_ID, batch(animal_id, weight=300, version=0), idempotency_key="k1",
    )
    assert again.replayed is True
    assert again.version == 1


class RetryOnRelease(DayLockStore):
    """Lanza un reintento del mismo lote justo antes de liberar el día"""

    def __init__(self, db, clock):
        super().__init__(db, clock)
        self.retry = None
        self.results = []

    async def release(self, lock, changed):
        if self.retry is not None:
            retry, self.retry = self.retry, None
            self.results.append(await retry())
        return await super().release(lock, changed)


async def test_retry_before_release_replays_instead_of_writing_twice(repo, clock, hook, animal_id, test_db):
    locks = RetryOnRelease(test_db, clock)
    sync = DailyBatchSynchronizer(repo, locks, hook, clock)
    body = batch(animal_id, meals=[MEAL_A])
    locks.retry = lambda: sync.save_daily_batch(OWNER_ID, body, idempotency_key="k2")

    first = await sync.save_daily_batch(OWNER_ID, body, idempotency_key="k2")

    assert first.version == 1
    assert locks.results[0].replayed is True
    assert locks.results[0].version == 1
    assert await test_db.meal_records.count_documents({"animal_id": animal_id}) == 1
    assert await test_db.batch_requests.count_documents({"key": "k2"}) == 1


class RetryDuringWrite(RecordRepository):
    """Lanza un reintento mientras el primer guardado está escribiendo"""

    def __init__(self, db):
        super().__init__(db)
        self.retry = None
        self.errors = []

    async def replace_list(self, kind, *args, **kwargs):
        if self.retry is not None:
            retry, self.retry = self.retry, None
            try:
                await retry()
            except Conflict as e:
                self.errors.append(e)
        return await super().replace_list(kind, *args, **kwargs)


async def test_retry_while_writing_gets_conflict(test_db, clock, hook, animal_id):
    repo = RetryDuringWrite(test_db)
    sync = DailyBatchSynchronizer(repo, DayLockStore(test_db, clock), hook, clock)
    body = batch(animal_id, meals=[MEAL_A])
    repo.retry = lambda: sync.save_daily_batch(OWNER_ID, body, idempotency_key="k3")

    result = await sync.save_daily_batch(OWNER_ID, body, idempotency_key="k3")

    assert result.replayed is False
    assert len(repo.errors) == 1
    assert await test_db.meal_records.count_documents({"animal_id": animal_id}) == 1


async def test_failed_batch_frees_its_idempotency_key(test_db, animal_id, clock, hook):
    repo = FailingRepository(test_db, fail_on="meals")
    sync = DailyBatchSynchronizer(repo, DayLockStore(test_db, clock), hook, clock)
    with pytest.raises(PartialWriteError):
        await sync.save_daily_batch(OWNER_ID, batch(animal_id, meals=[MEAL_A]), idempotency_key="k4")
    assert await test_db.batch_requests.count_documents({"key": "k4"}) == 0

    # El reintento con la misma clave se aplica de verdad
    ok = DailyBatchSynchronizer(RecordRepository(test_db), DayLockStore(test_db, clock), hook, clock)
    result = await ok.save_daily_batch(OWNER_ID, batch(animal_id, meals=[MEAL_A]), idempotency_key="k4")
    assert result.replayed is False
    assert await test_db.meal_records.count_documents({"animal_id": animal_id}) == 1


class FailingRelease(DayLockStore):
    async def release(self, lock, changed):
        raise OperationFailure("fallo simulado al liberar")


async def test_release_failure_does_not_hide_partial_write(test_db, animal_id, clock, hook):
    repo = FailingRepository(test_db, fail_on="meals")
    sync = DailyBatchSynchronizer(repo, FailingRelease(test_db, clock), hook, clock)

    with pytest.raises(PartialWriteError) as exc:
        await sync.save_daily_batch(OWNER_ID, batch(animal_id, weight=300, meals=[MEAL_A]))
    assert exc.value.committed == ["weight"]


async def test_release_failure_after_success_is_internal_error(repo, animal_id, clock, hook, invalidations):
    sync = DailyBatchSynchronizer(repo, FailingRelease(repo.db, clock), hook, clock)

    with pytest.raises(InternalError) as exc:
        await sync.save_daily_batch(OWNER_ID, batch(animal_id, weight=300))
    assert not isinstance(exc.value, PartialWriteError)
    assert invalidations == []


class BrokenAnimals(RecordRepository):
    async def require_animal(self, owner_id, animal_id):
        raise OperationFailure("sin conexión")


async def test_database_error_before_writing_is_internal_error(test_db, animal_id, clock, hook):
    sync = DailyBatchSynchronizer(BrokenAnimals(test_db), DayLockStore(test_db, clock), hook, clock)
    with pytest.raises(InternalError):
        await sync.save_daily_batch(OWNER_ID, batch(animal_id, weight=300))


async def test_other_owner_cannot_save(synchronizer, animal_id):
    with pytest.raises(Forbidden):
        await synchronizer.save_daily_batch(OTHER_ID, batch(animal_id, weight=300))


async def test_unknown_animal(synchronizer):
    with pytest.raises(NotFound):
        await synchronizer.save_daily_batch(OWNER_ID, batch("123e4567-e89b-12d3-a456-426614174000", weight=300))


# ---------- API ----------

async def test_batch_endpoint_success(api, animal_id):
    r = await api.post("/records/batch", json=batch(animal_id, weight=300, meals=[MEAL_A]))
    assert r.status_code == 200
    assert r.json()["success"] is True

    r = await api.get(f"/records/{animal_id}/daily", params={"date": DAY})
    data = r.json()
    assert data["weight"]["weight"] == 300
    assert data["condition"] is None
    assert data["memo"] is None
    assert len(data["meals"]) == 1
    assert data["version"] == 1


async def test_batch_endpoint_validation_error(api, animal_id):
    r = await api.post("/records/batch", json=batch(
        animal_id, excretions=[{"time": "08:00", "type": "stool", "condition": "abnormal", "notes": ""}],
    ))
    assert r.status_code == 400
    body = r.json()
    assert body["success"] is False
    assert body["code"] == "VALIDATION"
    assert "anormal" in body["error"]


async def test_batch_endpoint_requires_auth(api, animal_id, login):
    login(None)
    r = await api.post("/records/batch", json=batch(animal_id, weight=300))
    assert r.status_code == 401
    assert r.json()["success"] is False
