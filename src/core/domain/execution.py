"""Tipos de estado de ejecución, progreso y configuración de batch.

Compartidos por todo runner construido sobre `core.services.batch_executor`.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field
from pydantic.config import ConfigDict

from core.domain.models import HttpResponseResult

ExecutionStatus = Literal[
    "idle",
    "pending",
    "running",
    "success",
    "failed",
    "skipped",
    "cancelled",
]

ValidationStatus = Literal["idle", "pending", "pass", "fail"]


class ExecutionConfig(BaseModel):
    """Configuración del batch."""

    model_config = ConfigDict(frozen=True)

    concurrent_calls: int = Field(
        default=1,
        ge=1,
        description="Items lanzados juntos en un batch.",
    )
    delay_between_calls: int = Field(
        default=0,
        ge=0,
        description="Espera entre batches en milisegundos.",
    )
    stop_on_failure: bool = Field(
        default=False,
        description="Detiene la ejecución tras el primer batch con un item fallido.",
    )


class ExecutionProgress(BaseModel):
    model_config = ConfigDict(frozen=True)

    total: int = Field(default=0, ge=0)
    completed: int = Field(default=0, ge=0)
    passed: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)
    skipped: int = Field(default=0, ge=0)


class StatusReport(BaseModel):
    """Lo que reporta un extractor de resultados para agregar el progreso."""

    model_config = ConfigDict(frozen=True)

    status: Literal["success", "failed", "skipped", "cancelled"]
    validation_status: ValidationStatus = "idle"


def create_initial_progress(total: int) -> ExecutionProgress:
    return ExecutionProgress(total=total)


def update_progress(
    progress: ExecutionProgress,
    status: ExecutionStatus,
    validation_status: ValidationStatus = "idle",
) -> ExecutionProgress:
    """Devuelve un nuevo progreso que contabiliza un resultado más.

    Cuenta como completado si tuvo éxito, falló o se omitió; una validación
    fallida cuenta como fallo aunque la llamada haya ido bien.
    """

    is_completed = status in ("success", "failed", "skipped")
    is_passed = status == "success" and validation_status != "fail"
    is_failed = status == "failed" or validation_status == "fail"
    is_skipped = status == "skipped"

    return progress.model_copy(
        update={
            "completed": progress.completed + int(is_completed),
            "passed": progress.passed + int(is_passed),
            "failed": progress.failed + int(is_failed),
            "skipped": progress.skipped + int(is_skipped),
        }
    )


def determine_execution_status(
    response: HttpResponseResult | None,
    error: str | None = None,
) -> ExecutionStatus:
    if error or response is None:
        return "failed"
    return "success" if 200 <= response.status < 400 else "failed"


def average_elapsed_ms(results: list[HttpResponseResult]) -> int:
    timed = [r.elapsed_time_ms for r in results if r.elapsed_time_ms]
    if not timed:
        return 0
    return round(sum(timed) / len(timed))
