"""Middleware de auth: una estrategia por tipo detrás de `AuthStrategy`."""

from core.services.auth.base import (
    AuthFailure,
    AuthOutcome,
    AuthRequest,
    AuthStrategy,
    CompletedResponse,
    Dispatch,
    HeaderContribution,
)
from core.services.auth.factory import AuthStrategyFactory

__all__ = [
    "AuthFailure",
    "AuthOutcome",
    "AuthRequest",
    "AuthStrategy",
    "AuthStrategyFactory",
    "CompletedResponse",
    "Dispatch",
    "HeaderContribution",
]
