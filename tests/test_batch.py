import pytest

from fakes import FixedRandom, response
from pacedreq.core.backoff import ExecutionConfig
from pacedreq.core.cancellation import CancelToken
from pacedreq.core.exceptions import ErrorKind, RequestError
from pacedreq.core.executors import BatchExecutor, RequestExecutor
from pacedreq.req.transport import RequestDescriptor


class RoutingTransport:
    """Answers by URL path; records every call."""

    def __init__(self, routes):
        self.routes = routes
        self.calls = []

    async def send(self, request, cancel=None):
        self.calls.append(request.url)
        return self.routes[request.url]

    async def close(self):
        pass


def make_batch(transport, limiter, **kwargs):
    executor = RequestExecutor(
        transport,
        rate_limiter=limiter,
        config=ExecutionConfig(max_retries=2, base_delay=0.001, max_delay=0.01),
        rng=FixedRandom(0.0),
    )
    kwargs.setdefault("show_progress", False)
    return BatchExecutor(executor, **kwargs)


def test_batch_collects_results_in_order(run, fast_limiter):
    transport = RoutingTransport({
        "/a": response(200, {"id": "a"}),
        "/b": response(404, {"error": "no such record"}),
        "/c": response(200, {"id": "c"}),
    })
    batch = make_batch(transport, fast_limiter, max_workers=2)
    requests = [RequestDescriptor(url=u) for u in ("/a", "/b", "/c")]

    results = run(batch.execute(requests))

    assert [index for index, _ in results] == [0, 1, 2]
    assert results[0][1] == b'{"id": "a"}'
    assert isinstance(results[1][1], RequestError)
    assert results[1][1].kind is ErrorKind.NOT_FOUND
    assert results[2][1] == b'{"id": "c"}'
    assert batch.completed_tasks == 3


def test_batch_applies_result_processor(run, fast_limiter):
    transport = RoutingTransport({"/a": response(200, {"id": "a"})})
    batch = make_batch(transport, fast_limiter,
                       result_processor=lambda results: [body for _, body in results])

    assert run(batch.execute([RequestDescriptor(url="/a")] * 3)) == [b'{"id": "a"}'] * 3


def test_cancelled_batch_starts_nothing(run, fast_limiter):
    transport = RoutingTransport({"/a": response(200)})
    batch = make_batch(transport, fast_limiter)

    async def scenario():
        token = CancelToken()
        token.cancel("shutdown")
        return await batch.execute([RequestDescriptor(url="/a")] * 4, token)

    results = run(scenario())
    assert transport.calls == []
    assert all(r.kind is ErrorKind.CANCELLED for _, r in results)


def test_empty_batch(run, fast_limiter):
    batch = make_batch(RoutingTransport({}), fast_limiter)
    assert run(batch.execute([])) == []


def test_run_is_synchronous_entry_point(fast_limiter):
    transport = RoutingTransport({"/a": response(200, {"ok": 1})})
    batch = make_batch(transport, fast_limiter, show_progress=True)

    results = batch.run([RequestDescriptor(url="/a"), RequestDescriptor(url="/a")])

    assert results == [(0, b'{"ok": 1}'), (1, b'{"ok": 1}')]
    assert batch.progress_bar is None


def test_batch_rejects_invalid_worker_count(fast_limiter):
    with pytest.raises(ValueError):
        make_batch(RoutingTransport({}), fast_limiter, max_workers=0)
