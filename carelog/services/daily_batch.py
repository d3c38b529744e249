"""
Guardado por lotes de un día de cuidados (peso, entorno, memo, comidas,
excreciones y medicación) y lectura del día completo.

Reglas de escritura:
- Singletons (peso, entorno, memo): update-or-insert por (animal, fecha).
  El entorno admite actualización parcial: solo se tocan los campos enviados.
- Listas (comidas, excreciones, medicación): se borran las del día y se
  insertan las recibidas. Una lista vacía deja el día sin entradas.
- Los pasos se ejecutan en orden; el primero que falla aborta el resto y el
  error indica qué colecciones ya quedaron escritas.
"""
from datetime import date
import hashlib
import json
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple
import asyncio
import logging

from pydantic import ValidationError as PydanticValidationError
from pymongo.errors import DuplicateKeyError, PyMongoError

from ..clock import Clock
from ..errors import Conflict, InternalError, PartialWriteError, ValidationError
from ..schemas.record import (
    BatchSaveResult,
    DailyBatchIn,
    DailyRecordSet,
    EnvironmentEntry,
    ExcretionEntry,
    MealEntry,
    MedicationEntry,
    MemoEntry,
    WeightEntry,
)
from ..utils import first_error_message, new_id
from .day_lock import DayLock, DayLockStore
from .invalidation import InvalidationHook
from .repository import RecordRepository

logger = logging.getLogger(__name__)

Step = Tuple[str, Callable[[Any], Awaitable[Any]]]


def parse_batch(payload: Dict[str, Any]) -> DailyBatchIn:
    """Valida el payload; devuelve solo el primer error encontrado."""
    try:
        return DailyBatchIn.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError(first_error_message(e))


def batch_fingerprint(batch: DailyBatchIn) -> str:
    """Huella del contenido del lote ya normalizado (sin la versión)."""
    body = batch.model_dump(mode="json", exclude_unset=True, exclude={"version"})
    return hashlib.sha256(json.dumps(body, sort_keys=True, separators=(",", ":")).encode()).hexdigest()


class DailyBatchSynchronizer:
    def __init__(
        self,
        repo: RecordRepository,
        locks: DayLockStore,
        hook: InvalidationHook,
        clock: Clock,
        timeout_seconds: float = 10.0,
        use_transactions: bool = False,
    ):
        self.repo = repo
        self.locks = locks
        self.hook = hook
        self.clock = clock
        self.timeout_seconds = timeout_seconds
        self.use_transactions = use_transactions

    # ---------- Escritura ----------

    def plan(self, batch: DailyBatchIn) -> List[Step]:
        """Lista ordenada de pasos a aplicar; los campos omitidos no generan paso."""
        animal_id = str(batch.animal_id)
        day = batch.date
        repo = self.repo
        steps: List[Step] = []

        if batch.weight is not None:
            steps.append(("weight", lambda s: repo.upsert_singleton(
                "weight", animal_id, day, {"weight": batch.weight}, session=s)))

        env = batch.environment_fields()
        if env:
            async def save_environment(s):
                existing = await repo.get_singleton("environment", animal_id, day, session=s)
                # Fila nueva sin ningún valor: no hay nada que guardar
                if existing is None and all(v is None for v in env.values()):
                    return None
                return await repo.upsert_singleton("environment", animal_id, day, env, session=s)
            steps.append(("environment", save_environment))

        if "memo" in batch.model_fields_set:
            memo = (batch.memo or "").strip()
            if memo:
                steps.append(("memo", lambda s: repo.upsert_singleton(
                    "memo", animal_id, day, {"content": memo}, session=s)))
            else:
                steps.append(("memo", lambda s: repo.delete_singleton("memo", animal_id, day, session=s)))

        for kind in ("meals", "excretions", "medications"):
            items = getattr(batch, kind)
            if items is None:
                continue
            rows = [item.model_dump(mode="json") for item in items]
            steps.append((kind, lambda s, kind=kind, rows=rows: repo.replace_list(
                kind, animal_id, day, rows, session=s)))

        return steps

    async def _apply(self, steps: List[Step], committed: List[str], session=None) -> None:
        for name, run in steps:
            await run(session)
            committed.append(name)

    async def _apply_in_transaction(self, steps: List[Step], committed: List[str]) -> None:
        client = self.repo.db.client
        async with await client.start_session() as session:
            async with session.start_transaction():
                await self._apply(steps, committed, session)

    async def _guard(self, what: str, pending: Awaitable[Any]) -> Any:
        """Errores de MongoDB fuera de los pasos del lote -> InternalError."""
        try:
            return await pending
        except PyMongoError as e:
            logger.error(f"Error de base de datos al {what}: {e}", exc_info=True)
            raise InternalError("No se pudieron guardar los registros. Inténtalo de nuevo")

    # ---------- Claves de idempotencia ----------

    def _replay(self, request: Dict[str, Any], batch: DailyBatchIn, fingerprint: str) -> BatchSaveResult:
        same = (
            request.get("animal_id") == str(batch.animal_id)
            and request.get("record_date") == batch.date.isoformat()
            and request.get("fingerprint") == fingerprint
        )
        if not same:
            logger.warning(f"Clave {request.get('key')} reutilizada con otros datos")
            raise Conflict("Esta clave de idempotencia ya se usó con otros datos")
        if request.get("result") is None:
            raise Conflict("Ya se está procesando un guardado con esta clave. Inténtalo de nuevo en unos segundos")
        logger.info(f"Guardado repetido con clave {request['key']}; se devuelve el resultado anterior")
        return BatchSaveResult(**request["result"], replayed=True)

    async def _find_request(self, owner_id: str, key: str) -> Optional[Dict[str, Any]]:
        return await self.repo.db.batch_requests.find_one({"owner_id": owner_id, "key": key})

    async def _claim_key(self, owner_id: str, key: str, batch: DailyBatchIn,
                         fingerprint: str) -> Optional[BatchSaveResult]:
        """
        Reserva la clave antes de escribir. Si otro guardado ya la tiene,
        devuelve su resultado (o Conflict si los datos no coinciden).
        """
        try:
            await self.repo.db.batch_requests.insert_one({
                "_id": new_id(),
                "owner_id": owner_id,
                "key": key,
                "animal_id": str(batch.animal_id),
                "record_date": batch.date.isoformat(),
                "fingerprint": fingerprint,
                "result": None,
                "created_at": self.clock.utcnow_naive(),
            })
        except DuplicateKeyError:
            previous = await self._find_request(owner_id, key)
            if previous is None:
                raise Conflict("Ya se está procesando un guardado con esta clave. Inténtalo de nuevo en unos segundos")
            return self._replay(previous, batch, fingerprint)
        return None

    async def _forget_key(self, owner_id: str, key: Optional[str]) -> None:
        """Tras un fallo la clave se libera para que el cliente pueda reintentar."""
        if not key:
            return
        try:
            await self.repo.db.batch_requests.delete_one({"owner_id": owner_id, "key": key, "result": None})
        except PyMongoError as e:
            logger.error(f"No se pudo liberar la clave {key}: {e}", exc_info=True)

    async def _write(self, owner_id: str, batch: DailyBatchIn, steps: List[Step], committed: List[str],
                     lock: DayLock, idempotency_key: Optional[str],
                     fingerprint: str) -> Optional[BatchSaveResult]:
        """Aplica los pasos con el día bloqueado. Devuelve un resultado solo si es una repetición."""
        animal_id = str(batch.animal_id)
        if idempotency_key:
            replay = await self._guard(
                "reservar la clave", self._claim_key(owner_id, idempotency_key, batch, fingerprint)
            )
            if replay is not None:
                return replay

        failed: Optional[str] = None
        try:
            if self.use_transactions:
                await asyncio.wait_for(self._apply_in_transaction(steps, committed), self.timeout_seconds)
            else:
                await asyncio.wait_for(self._apply(steps, committed), self.timeout_seconds)
            if idempotency_key:
                # La versión es la que dejará release(): nadie más puede tocar el día
                version = lock.version + 1 if committed else lock.version
                await self.repo.db.batch_requests.update_one(
                    {"owner_id": owner_id, "key": idempotency_key},
                    {"$set": {"result": {"version": version, "committed": list(committed)}}},
                )
        except asyncio.TimeoutError:
            failed = steps[len(committed)][0] if len(committed) < len(steps) else None
            if self.use_transactions:
                committed.clear()
            logger.error(f"Tiempo agotado guardando {animal_id} {batch.date}; "
                         f"escritos: {committed}, pendiente: {failed}")
            await self._forget_key(owner_id, idempotency_key)
            raise PartialWriteError(
                "Se agotó el tiempo al guardar. Revisa los datos y vuelve a intentarlo",
                committed, failed,
            )
        except PyMongoError as e:
            failed = steps[len(committed)][0] if len(committed) < len(steps) else None
            if self.use_transactions:
                # La transacción se abortó: nada quedó escrito
                committed.clear()
            logger.error(f"Error guardando '{failed}' de {animal_id} {batch.date}: {e}; "
                         f"escritos: {committed}", exc_info=True)
            await self._forget_key(owner_id, idempotency_key)
            raise PartialWriteError("No se pudieron guardar todos los registros", committed, failed)
        return None

    async def _release_after_error(self, lock: DayLock, committed: List[str]) -> None:
        """Libera el bloqueo sin tapar el error que ya se está propagando."""
        try:
            await self.locks.release(lock, changed=bool(committed))
        except PyMongoError as e:
            logger.error(f"No se pudo liberar el bloqueo de {lock.animal_id} {lock.record_date}: {e}",
                         exc_info=True)

    async def save_daily_batch(self, owner_id: str, payload: Dict[str, Any],
                               idempotency_key: Optional[str] = None) -> BatchSaveResult:
        batch = parse_batch(payload)
        animal_id = str(batch.animal_id)
        fingerprint = batch_fingerprint(batch)
        await self._guard("comprobar el animal", self.repo.require_animal(owner_id, animal_id))

        if idempotency_key:
            # Reintento de un guardado ya terminado: no hace falta el bloqueo
            previous = await self._guard("buscar la clave", self._find_request(owner_id, idempotency_key))
            if previous:
                return self._replay(previous, batch, fingerprint)

        steps = self.plan(batch)
        lock = await self._guard("bloquear el día", self.locks.acquire(animal_id, batch.date, batch.version))
        committed: List[str] = []
        try:
            replay = await self._write(owner_id, batch, steps, committed, lock, idempotency_key, fingerprint)
        except BaseException:
            await self._release_after_error(lock, committed)
            raise
        version = await self._guard("liberar el bloqueo", self.locks.release(lock, changed=bool(committed)))
        if replay is not None:
            return replay

        result = BatchSaveResult(version=version, committed=committed)
        logger.info(f"Registros de {animal_id} {batch.date} guardados: {committed} (versión {version})")
        await self.hook.records_changed(animal_id, batch.date)
        return result

    # ---------- Lectura ----------

    async def get_daily_records(self, owner_id: str, animal_id: str, day: date) -> DailyRecordSet:
        await self.repo.require_animal(owner_id, animal_id)
        try:
            weight, env, memo, meals, excretions, medications, version = await asyncio.gather(
                self.repo.get_singleton("weight", animal_id, day),
                self.repo.get_singleton("environment", animal_id, day),
                self.repo.get_singleton("memo", animal_id, day),
                self.repo.list_for_date("meals", animal_id, day),
                self.repo.list_for_date("excretions", animal_id, day),
                self.repo.list_for_date("medications", animal_id, day),
                self.locks.current_version(animal_id, day),
            )
        except PyMongoError as e:
            logger.error(f"Error leyendo registros de {animal_id} {day}: {e}", exc_info=True)
            raise InternalError("No se pudieron cargar los registros")

        return DailyRecordSet(
            animal_id=animal_id,
            date=day,
            version=version,
            weight=WeightEntry(**weight) if weight else None,
            condition=EnvironmentEntry(**env) if env else None,
            memo=MemoEntry(**memo) if memo else None,
            meals=[MealEntry(**m) for m in meals],
            excretions=[ExcretionEntry(**e) for e in excretions],
            medications=[MedicationEntry(**m) for m in medications],
        )
