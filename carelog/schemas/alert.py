from enum import Enum

from .base import CamelModel


class AlertType(str, Enum):
    weight_loss = "weight_loss"
    no_record = "no_record"


class AlertLevel(str, Enum):
    warning = "warning"
    info = "info"


class HealthAlert(CamelModel):
    type: AlertType
    level: AlertLevel
    message: str
