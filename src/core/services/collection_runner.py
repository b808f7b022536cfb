"""Ejecuta una lista de requests con `BatchExecutor` + `HttpExecutor`.

Produce un `RequestRunResult` por request de entrada, en orden de entrada:
- los requests no iniciados tras un stop-on-failure se reportan `skipped`;
- los requests no iniciados tras una cancelación se reportan `cancelled`.
"""

from __future__ import annotations

import logging
from typing import Sequence

from pydantic import BaseModel, Field

from core.domain.execution import (
    ExecutionConfig,
    ExecutionProgress,
    ExecutionStatus,
    StatusReport,
    ValidationStatus,
    average_elapsed_ms,
    determine_execution_status,
    update_progress,
)
from core.domain.models import Cookie, ExecutionSettings, HttpRequest, HttpResponseResult
from core.services.batch_executor import BatchCallbacks, BatchExecutor
from core.services.http_executor import HttpExecutor

logger = logging.getLogger(__name__)


class CancellationToken:
    """Flag de cancelación cooperativa; la propia instancia es el predicado."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    def reset(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def __call__(self) -> bool:
        return self._cancelled


class RequestRunResult(BaseModel):
    id: str = Field(..., description="Id del request al que pertenece este resultado.")
    method: str = "GET"
    url: str = ""
    status: ExecutionStatus = "idle"
    validation_status: ValidationStatus = "idle"
    response: HttpResponseResult | None = None
    error: str | None = None
    new_cookies: list[Cookie] = Field(default_factory=list)


class CollectionRunReport(BaseModel):
    results: list[RequestRunResult] = Field(default_factory=list)
    progress: ExecutionProgress = Field(default_factory=ExecutionProgress)
    cancelled: bool = False
    stopped_on_failure: bool = False

    @property
    def average_elapsed_ms(self) -> int:
        return average_elapsed_ms([r.response for r in self.results if r.response is not None])


def extract_status(result: RequestRunResult) -> StatusReport:
    status = result.status if result.status in ("success", "failed", "skipped", "cancelled") else "failed"
    return StatusReport(status=status, validation_status=result.validation_status)


def _not_run(request: HttpRequest, status: ExecutionStatus) -> RequestRunResult:
    return RequestRunResult(id=request.id, method=request.method, url=request.url, status=status)


class CollectionRunner:
    def __init__(
        self,
        executor: HttpExecutor,
        settings: ExecutionSettings | None = None,
        *,
        batch_executor: BatchExecutor[HttpRequest, RequestRunResult] | None = None,
    ) -> None:
        self.executor = executor
        self.settings = settings or ExecutionSettings()
        self.batch_executor = batch_executor or BatchExecutor()

    async def _run_one(self, request: HttpRequest, token: CancellationToken) -> RequestRunResult:
        if token.cancelled:
            return _not_run(request, "cancelled")

        execution = await self.executor.execute(request, self.settings)
        response = execution.response
        error = response.body_text() if response.status == 0 else None
        return RequestRunResult(
            id=request.id,
            method=request.method,
            url=request.url,
            status=determine_execution_status(response, error),
            response=response,
            error=error,
            new_cookies=execution.new_cookies,
        )

    async def run(
        self,
        requests: Sequence[HttpRequest],
        config: ExecutionConfig | None = None,
        *,
        token: CancellationToken | None = None,
        callbacks: BatchCallbacks[RequestRunResult] | None = None,
    ) -> CollectionRunReport:
        config = config or ExecutionConfig()
        token = token or CancellationToken()

        async def _execute(request: HttpRequest) -> RequestRunResult:
            return await self._run_one(request, token)

        def _on_error(request: HttpRequest, exc: Exception) -> RequestRunResult:
            logger.warning("Request %s raised: %s", request.id, exc)
            return RequestRunResult(
                id=request.id,
                method=request.method,
                url=request.url,
                status="failed",
                error=str(exc),
            )

        outcome = await self.batch_executor.execute(
            requests,
            _execute,
            config,
            token,
            extract_status,
            callbacks,
            on_item_error=_on_error,
        )

        by_id = {result.id: result for result in outcome.results}
        progress = outcome.progress
        ordered: list[RequestRunResult] = []
        for request in requests:
            result = by_id.get(request.id)
            if result is None:
                status: ExecutionStatus = "skipped" if outcome.stopped_on_failure else "cancelled"
                result = _not_run(request, status)
                progress = update_progress(progress, status)
            ordered.append(result)

        return CollectionRunReport(
            results=ordered,
            progress=progress,
            cancelled=outcome.cancelled,
            stopped_on_failure=outcome.stopped_on_failure,
        )
