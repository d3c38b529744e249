from pydantic import Field, model_validator
from typing import Optional, List
from datetime import date
from uuid import UUID

from .base import CamelModel


class Medicine(CamelModel):
    name: str = Field(..., min_length=1, max_length=50)
    note: str = Field("", max_length=200)


class HospitalVisitIn(CamelModel):
    id: Optional[UUID] = None
    animal_id: UUID
    visit_date: date
    diagnosis: Optional[str] = Field(None, max_length=500)
    treatment: Optional[str] = Field(None, max_length=500)
    medications: List[Medicine] = []
    next_visit_date: Optional[date] = None

    @model_validator(mode="after")
    def check_next_visit(self):
        if self.next_visit_date and self.next_visit_date < self.visit_date:
            raise ValueError("La próxima visita no puede ser anterior a la consulta")
        return self


class HospitalVisitOut(CamelModel):
    id: str
    animal_id: str
    visit_date: date
    diagnosis: Optional[str] = None
    treatment: Optional[str] = None
    medications: List[Medicine] = []
    next_visit_date: Optional[date] = None
