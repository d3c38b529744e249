"""
Alertas de salud derivadas del historial de peso. No se guardan: se recalculan
en cada lectura a partir de las mismas filas, así que el resultado es estable.
"""
from datetime import date, timedelta
from typing import Any, Dict, List, Sequence

from ..schemas.alert import AlertLevel, AlertType, HealthAlert

WEIGHT_LOSS_THRESHOLD_PERCENT = -5.0
NO_RECORD_WINDOW_DAYS = 3


def weight_change(previous: float, latest: float) -> Dict[str, float]:
    delta = latest - previous
    percent = (delta / previous) * 100 if previous != 0 else 0.0
    return {"delta": delta, "percent": percent}


def evaluate_health_alerts(history: Sequence[Dict[str, Any]], today: date) -> List[HealthAlert]:
    """
    `history`: filas de peso ({"date": date, "weight": float}) en cualquier orden.
    Debe incluir al menos las dos más recientes y todas las de la ventana de
    NO_RECORD_WINDOW_DAYS días.
    """
    alerts: List[HealthAlert] = []
    rows = sorted(history, key=lambda r: r["date"], reverse=True)

    if len(rows) >= 2:
        latest, previous = rows[0], rows[1]
        change = weight_change(float(previous["weight"]), float(latest["weight"]))
        if change["percent"] <= WEIGHT_LOSS_THRESHOLD_PERCENT:
            alerts.append(HealthAlert(
                type=AlertType.weight_loss,
                level=AlertLevel.warning,
                message=(
                    f"El peso ha bajado {abs(change['delta']):.0f}g "
                    f"({abs(change['percent']):.1f}%) desde el registro anterior ({previous['date'].isoformat()})."
                ),
            ))

    since = today - timedelta(days=NO_RECORD_WINDOW_DAYS)
    if not any(r["date"] >= since for r in rows):
        alerts.append(HealthAlert(
            type=AlertType.no_record,
            level=AlertLevel.info,
            message="No hay registros recientes. ¿Todo bien?",
        ))

    return alerts
