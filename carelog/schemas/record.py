from pydantic import Field, field_validator, model_validator
from typing import Optional, List, Literal
from datetime import date
from enum import Enum
from uuid import UUID

from .base import CamelModel, normalize_time


class ExcretionType(str, Enum):
    urine = "urine"
    stool = "stool"
    other = "other"


class ExcretionCondition(str, Enum):
    normal = "normal"
    abnormal = "abnormal"


class MealIn(CamelModel):
    time: str
    content: str = Field(..., min_length=1, max_length=30)
    amount: Optional[float] = Field(None, ge=0)
    unit: Optional[str] = Field(None, max_length=20)

    @field_validator("time")
    @classmethod
    def check_time(cls, v: str) -> str:
        return normalize_time(v)


class ExcretionIn(CamelModel):
    time: str
    type: ExcretionType = ExcretionType.other
    condition: ExcretionCondition
    notes: Optional[str] = Field(None, max_length=200)

    @field_validator("time")
    @classmethod
    def check_time(cls, v: str) -> str:
        return normalize_time(v)

    @model_validator(mode="after")
    def notes_required_when_abnormal(self):
        """Un estado anormal siempre tiene que ir acompañado de una descripción"""
        if self.condition == ExcretionCondition.abnormal and not (self.notes or "").strip():
            raise ValueError("Describe el estado cuando es anormal")
        return self


class MedicationIn(CamelModel):
    time: str
    name: str = Field(..., min_length=1, max_length=50)

    @field_validator("time")
    @classmethod
    def check_time(cls, v: str) -> str:
        return normalize_time(v)


class DailyBatchIn(CamelModel):
    """
    Un día completo de cuidados. Los campos omitidos no se tocan; las listas
    presentes reemplazan a las del día (una lista vacía las borra).
    """
    animal_id: UUID
    date: date
    weight: Optional[float] = Field(None, ge=0, lt=3000)
    temperature: Optional[float] = Field(None, ge=-10, le=50)
    humidity: Optional[float] = Field(None, ge=0, le=100)
    meals: Optional[List[MealIn]] = None
    excretions: Optional[List[ExcretionIn]] = None
    medications: Optional[List[MedicationIn]] = None
    memo: Optional[str] = Field(None, max_length=1000)
    # Versión del día leída por el cliente; si no coincide se rechaza el guardado
    version: Optional[int] = Field(None, ge=0)

    def environment_fields(self) -> dict:
        """Solo los campos de entorno que el cliente envió (null incluido)."""
        return {k: getattr(self, k) for k in ("temperature", "humidity") if k in self.model_fields_set}


# ---------- Salida ----------

class WeightEntry(CamelModel):
    id: str
    date: date
    weight: float


class EnvironmentEntry(CamelModel):
    id: str
    date: date
    temperature: Optional[float] = None
    humidity: Optional[float] = None


class MemoEntry(CamelModel):
    id: str
    date: date
    content: str


class MealEntry(CamelModel):
    id: str
    date: date
    time: str
    content: str
    amount: Optional[float] = None
    unit: Optional[str] = None


class ExcretionEntry(CamelModel):
    id: str
    date: date
    time: str
    type: ExcretionType
    condition: ExcretionCondition
    notes: Optional[str] = None


class MedicationEntry(CamelModel):
    id: str
    date: date
    time: str
    name: str


class DailyRecordSet(CamelModel):
    animal_id: str
    date: date
    version: int = 0
    weight: Optional[WeightEntry] = None
    condition: Optional[EnvironmentEntry] = None
    memo: Optional[MemoEntry] = None
    meals: List[MealEntry] = []
    excretions: List[ExcretionEntry] = []
    medications: List[MedicationEntry] = []


class BatchSaveResult(CamelModel):
    success: Literal[True] = True
    version: int
    committed: List[str] = []
    replayed: bool = False


class WeightRange(str, Enum):
    d30 = "30d"
    d90 = "90d"
    d180 = "180d"

    @property
    def days(self) -> int:
        return int(self.value[:-1])


class RecentDay(CamelModel):
    date: date
    weight: Optional[WeightEntry] = None
    meals: List[MealEntry] = []
    excretions: List[ExcretionEntry] = []
