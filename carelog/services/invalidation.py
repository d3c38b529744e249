"""
Hook de invalidación: se avisa tras cada guardado correcto para que las vistas
derivadas del animal (historial, alertas, pantalla de inicio) se recalculen.
"""
from datetime import date
from typing import Awaitable, Callable, List
import logging

logger = logging.getLogger(__name__)

Listener = Callable[[str, date], Awaitable[None]]


class InvalidationHook:
    def __init__(self):
        self._listeners: List[Listener] = []

    def register(self, listener: Listener) -> None:
        self._listeners.append(listener)

    async def records_changed(self, animal_id: str, record_date: date) -> None:
        logger.info(f"Invalidando vistas de {animal_id} ({record_date})")
        for listener in self._listeners:
            try:
                await listener(animal_id, record_date)
            except Exception as e:
                # Los datos ya están guardados; un listener roto no debe convertir el guardado en error
                logger.error(f"Error en listener de invalidación: {e}", exc_info=True)
