import httpx
import pytest

from core.domain.execution import ExecutionConfig
from core.domain.models import HttpRequest
from core.services.batch_executor import BatchCallbacks
from core.services.collection_runner import (
    CancellationToken,
    CollectionRunner,
    RequestRunResult,
    extract_status,
)


def _handler(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/missing":
        return httpx.Response(404)
    if request.url.path == "/moved":
        return httpx.Response(302, headers={"Location": "/elsewhere"})
    return httpx.Response(200, text="ok")


def _requests(*paths: str) -> list[HttpRequest]:
    return [HttpRequest(url=f"https://api.x.com{p}") for p in paths]


@pytest.mark.asyncio
async def test_statuses_follow_http_codes(make_executor):
    executor, _ = make_executor(_handler)
    requests = _requests("/a", "/missing", "/moved")

    report = await CollectionRunner(executor).run(requests, ExecutionConfig(concurrent_calls=3))

    assert [r.id for r in report.results] == [r.id for r in requests]
    assert [r.status for r in report.results] == ["success", "failed", "success"]
    assert (report.progress.passed, report.progress.failed) == (2, 1)


@pytest.mark.asyncio
async def test_transport_errors_are_failed_results(make_executor):
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    executor, _ = make_executor(handler)
    report = await CollectionRunner(executor).run(_requests("/a"))

    result = report.results[0]
    assert result.status == "failed"
    assert result.error == "timed out"
    assert result.response.status == 0


@pytest.mark.asyncio
async def test_stop_on_failure_marks_rest_skipped(make_executor):
    executor, _ = make_executor(_handler)
    requests = _requests("/missing", "/a", "/b")

    report = await CollectionRunner(executor).run(
        requests, ExecutionConfig(concurrent_calls=1, stop_on_failure=True)
    )

    assert report.stopped_on_failure
    assert [r.status for r in report.results] == ["failed", "skipped", "skipped"]
    assert report.results[1].response is None
    assert (report.progress.completed, report.progress.skipped) == (3, 2)


@pytest.mark.asyncio
async def test_cancellation_marks_rest_cancelled(make_executor):
    executor, _ = make_executor(_handler)
    token = CancellationToken()
    requests = _requests("/a", "/b", "/c")

    report = await CollectionRunner(executor).run(
        requests,
        ExecutionConfig(concurrent_calls=1),
        token=token,
        callbacks=BatchCallbacks(on_item_complete=lambda result: token.cancel()),
    )

    assert report.cancelled
    assert [r.status for r in report.results] == ["success", "cancelled", "cancelled"]
    assert report.progress.completed == 1


def test_cancellation_token():
    token = CancellationToken()
    assert not token()
    token.cancel()
    assert token() and token.cancelled
    token.reset()
    assert not token.cancelled


def test_unknown_status_counts_as_failure():
    assert extract_status(RequestRunResult(id="x", status="running")).status == "failed"
