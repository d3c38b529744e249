from pydantic import Field, model_validator
from typing import Optional, Literal
from datetime import date

from .base import CamelModel


class AnimalCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=50)
    gender: Literal["male", "female", "unknown"] = "unknown"
    birth_date: Optional[date] = None
    welcome_date: Optional[date] = None
    features: Optional[str] = Field(None, max_length=200)
    insurance_number: Optional[str] = Field(None, max_length=50)

    @model_validator(mode="after")
    def check_dates(self):
        """La fecha de nacimiento no puede ser posterior a la de adopción"""
        if self.birth_date and self.welcome_date and self.birth_date > self.welcome_date:
            raise ValueError("La fecha de nacimiento debe ser anterior a la fecha de adopción")
        return self


class AnimalOut(AnimalCreate):
    id: str
    owner_id: str
