# carelog/utils.py
from typing import Any, Dict, Optional
from uuid import UUID, uuid4
from datetime import datetime

from .errors import ValidationError


def to_id(doc: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Convierte _id -> id y los datetime a ISO strings, también en dicts anidados.
    Si doc es None, devuelve {}.
    """
    if doc is None:
        return {}
    d = dict(doc)

    if "_id" in d:
        d["id"] = str(d.pop("_id"))

    for key, value in d.items():
        if isinstance(value, datetime):
            d[key] = value.isoformat()
        elif isinstance(value, dict):
            d[key] = to_id(value)
        elif isinstance(value, list):
            d[key] = [
                item.isoformat() if isinstance(item, datetime)
                else to_id(item) if isinstance(item, dict)
                else item
                for item in value
            ]

    return d


def new_id() -> str:
    return str(uuid4())


def to_uuid(value: str, field_name: str = "id") -> str:
    """
    Valida que el valor sea un UUID y lo devuelve normalizado (minúsculas).
    Centraliza la validación para no repetirla en cada router.
    """
    try:
        return str(UUID(str(value)))
    except (ValueError, TypeError):
        raise ValidationError(f"{field_name} inválido: {value}")


def first_error_message(exc) -> str:
    """
    Mensaje legible del primer error (no se agregan los demás). Sirve tanto para
    el ValidationError de pydantic como para el RequestValidationError de FastAPI.
    """
    errors = exc.errors()
    if not errors:
        return "Datos inválidos"
    err = errors[0]
    msg = str(err.get("msg", "Datos inválidos"))
    if msg.startswith("Value error, "):
        msg = msg[len("Value error, "):]
    loc = ".".join(str(p) for p in err.get("loc", ()) if p not in ("__root__", "body"))
    return f"{loc}: {msg}" if loc else msg
