"""
Errores de dominio de CareLog.

Todos heredan de CareLogError; main.py registra un único handler que los
convierte en respuestas {"success": false, "error": ..., "code": ...}.
El campo code es orientativo: los clientes no deberían depender de él.
"""
from typing import List, Optional


class CareLogError(Exception):
    status_code = 500
    code = "INTERNAL"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict:
        return {"success": False, "error": self.message, "code": self.code}


class ValidationError(CareLogError):
    """Violación de un campo o de una regla entre campos (solo la primera)."""
    status_code = 400
    code = "VALIDATION"


class AuthRequired(CareLogError):
    status_code = 401
    code = "AUTH_REQUIRED"

    def __init__(self, message: str = "Inicia sesión para continuar"):
        super().__init__(message)


class Forbidden(CareLogError):
    status_code = 403
    code = "FORBIDDEN"


class NotFound(CareLogError):
    status_code = 404
    code = "NOT_FOUND"


class LimitExceeded(CareLogError):
    status_code = 409
    code = "LIMIT_EXCEEDED"


class Conflict(CareLogError):
    """Otro guardado del mismo día está en curso o la versión enviada está obsoleta."""
    status_code = 409
    code = "CONFLICT"


class InternalError(CareLogError):
    status_code = 500
    code = "INTERNAL"


class PartialWriteError(InternalError):
    """
    Falló un paso de un guardado por lotes. `committed` lista los pasos que ya
    quedaron escritos (puede estar vacía) y `failed_step` el que falló.
    """
    code = "PARTIAL_WRITE"

    def __init__(self, message: str, committed: Optional[List[str]] = None, failed_step: Optional[str] = None):
        super().__init__(message)
        self.committed = list(committed or [])
        self.failed_step = failed_step

    def to_payload(self) -> dict:
        payload = super().to_payload()
        payload["committed"] = self.committed
        payload["failedStep"] = self.failed_step
        payload["partial"] = bool(self.committed)
        return payload
