"""
Rate limiting por endpoint usando slowapi
"""
from fastapi import Request
from limits import parse
from slowapi.util import get_remote_address

from ..errors import CareLogError


class TooManyRequests(CareLogError):
    status_code = 429
    code = "RATE_LIMITED"


def apply_rate_limit(request: Request, limit: str):
    """
    Aplica rate limiting a un endpoint concreto.
    Uso: apply_rate_limit(request, "5/minute")

    Si el limiter no está configurado (por ejemplo, en tests), no hace nada.
    """
    limiter = getattr(request.app.state, "limiter", None)
    if limiter is None:
        return

    key = get_remote_address(request)

    # limiter.limiter es la estrategia de `limits` que hay debajo de slowapi
    if not limiter.limiter.hit(parse(limit), key):
        raise TooManyRequests(f"Demasiadas solicitudes. Límite: {limit}. Inténtalo más tarde.")
