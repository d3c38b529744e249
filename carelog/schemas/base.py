from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
import re

# HH:mm (acepta "8:00", se normaliza a "08:00")
TIME_RE = re.compile(r"^([0-1]?[0-9]|2[0-3]):([0-5][0-9])$")


class CamelModel(BaseModel):
    """El cliente habla camelCase; en Python y en MongoDB usamos snake_case."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def normalize_time(value: str) -> str:
    m = TIME_RE.match(value.strip())
    if not m:
        raise ValueError("Introduce una hora válida (HH:mm)")
    return f"{int(m.group(1)):02d}:{m.group(2)}"
