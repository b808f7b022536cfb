"""Batch executor genérico.

Ejecuta items con un executor async en ventanas de tamaño fijo:
- hasta `concurrent_calls` items arrancan juntos; la siguiente ventana solo
  empieza cuando terminó cada item de la actual (stop-and-go, sin relleno);
- los resultados se añaden en orden de finalización;
- la cancelación es cooperativa: se comprueba antes de cada ventana y durante
  la espera entre ventanas, nunca aborta una ventana en curso;
- con `stop_on_failure`, una ventana con un item fallido termina la ejecución
  y el llamador marca los items restantes como omitidos.

Lo comparten el collection runner y cualquier otro consumidor (suites, flujos).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Generic, Protocol, Sequence, TypeVar

from core.domain.execution import (
    ExecutionConfig,
    ExecutionProgress,
    StatusReport,
    create_initial_progress,
    update_progress,
)

logger = logging.getLogger(__name__)

CANCEL_POLL_INTERVAL = 0.05


class BatchItem(Protocol):
    id: str


TItem = TypeVar("TItem", bound=BatchItem)
TResult = TypeVar("TResult")
TResult_contra = TypeVar("TResult_contra", contravariant=True)


class StatusExtractor(Protocol[TResult_contra]):
    """Mapea un resultado al estado usado para agregar el progreso."""

    def __call__(self, result: TResult_contra) -> StatusReport:
        ...


@dataclass
class BatchCallbacks(Generic[TResult]):
    on_item_start: Callable[[str], None] | None = None
    on_item_complete: Callable[[TResult], None] | None = None
    on_batch_complete: Callable[[list[TResult]], None] | None = None
    on_progress: Callable[[ExecutionProgress], None] | None = None


@dataclass
class BatchExecutionResult(Generic[TResult]):
    results: list[TResult] = field(default_factory=list)
    progress: ExecutionProgress = field(default_factory=ExecutionProgress)
    cancelled: bool = False
    stopped_on_failure: bool = False


class BatchExecutor(Generic[TItem, TResult]):
    def __init__(self) -> None:
        self._delay_wakeup: asyncio.Event | None = None

    async def execute(
        self,
        items: Sequence[TItem],
        executor: Callable[[TItem], Awaitable[TResult]],
        config: ExecutionConfig,
        is_cancelled: Callable[[], bool],
        extract_status: StatusExtractor[TResult],
        callbacks: BatchCallbacks[TResult] | None = None,
        *,
        on_item_error: Callable[[TItem, Exception], TResult] | None = None,
    ) -> BatchExecutionResult[TResult]:
        """Ejecuta `items` y agrega sus resultados.

        Si `executor` lanza, `on_item_error` convierte la excepción en un
        resultado; sin él la ventana se completa igualmente y la primera
        excepción se relanza después.
        """

        callbacks = callbacks or BatchCallbacks()
        results: list[TResult] = []
        progress = create_initial_progress(len(items))
        stopped_on_failure = False
        pending = list(items)

        while pending and not is_cancelled():
            size = min(config.concurrent_calls, len(pending))
            batch, pending = pending[:size], pending[size:]
            logger.debug("Starting batch of %d item(s), %d queued", len(batch), len(pending))

            if callbacks.on_item_start:
                for item in batch:
                    callbacks.on_item_start(item.id)

            batch_results, first_error = await self._run_batch(
                batch, executor, callbacks, on_item_error
            )

            has_failure = False
            for result in batch_results:
                results.append(result)
                report = extract_status(result)
                progress = update_progress(progress, report.status, report.validation_status)
                if report.status == "failed":
                    has_failure = True

            if callbacks.on_batch_complete:
                callbacks.on_batch_complete(batch_results)
            if callbacks.on_progress:
                callbacks.on_progress(progress)

            if first_error is not None:
                raise first_error

            if config.stop_on_failure and has_failure:
                stopped_on_failure = True
                logger.debug("Stopping after failed batch, %d item(s) not run", len(pending))
                break

            if config.delay_between_calls > 0 and pending and not is_cancelled():
                await self._delay(config.delay_between_calls, is_cancelled)

        return BatchExecutionResult(
            results=results,
            progress=progress,
            cancelled=is_cancelled(),
            stopped_on_failure=stopped_on_failure,
        )

    async def _run_batch(
        self,
        batch: list[TItem],
        executor: Callable[[TItem], Awaitable[TResult]],
        callbacks: BatchCallbacks[TResult],
        on_item_error: Callable[[TItem, Exception], TResult] | None,
    ) -> tuple[list[TResult], Exception | None]:
        async def _run(item: TItem) -> tuple[TItem, TResult | None, Exception | None]:
            try:
                return item, await executor(item), None
            except Exception as exc:
                return item, None, exc

        batch_results: list[TResult] = []
        first_error: Exception | None = None
        tasks = [asyncio.ensure_future(_run(item)) for item in batch]

        for next_done in asyncio.as_completed(tasks):
            item, result, error = await next_done
            if error is not None:
                if on_item_error is None:
                    logger.warning("Item %s raised: %s", item.id, error)
                    first_error = first_error or error
                    continue
                result = on_item_error(item, error)
            batch_results.append(result)
            if callbacks.on_item_complete:
                callbacks.on_item_complete(result)

        return batch_results, first_error

    def cancel_delay(self) -> None:
        """Despierta de inmediato una espera pendiente entre batches."""

        if self._delay_wakeup is not None:
            self._delay_wakeup.set()

    async def _delay(self, ms: int, is_cancelled: Callable[[], bool]) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + ms / 1000
        self._delay_wakeup = asyncio.Event()
        try:
            while True:
                remaining = deadline - loop.time()
                if remaining <= 0 or is_cancelled():
                    return
                try:
                    await asyncio.wait_for(
                        self._delay_wakeup.wait(),
                        timeout=min(CANCEL_POLL_INTERVAL, remaining),
                    )
                    return
                except asyncio.TimeoutError:
                    continue
        finally:
            self._delay_wakeup = None
