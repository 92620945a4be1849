import asyncio
import time

import pytest

from pacedreq.core.cancellation import CancelToken
from pacedreq.core.exceptions import ErrorKind, RequestError


def test_cancel_fires_token(run):
    async def scenario():
        token = CancelToken()
        assert not token.cancelled
        token.cancel("user abort")
        token.cancel("second call is ignored")
        return token

    token = run(scenario())
    assert token.cancelled
    assert token.reason == "user abort"
    error = token.error()
    assert error.kind is ErrorKind.CANCELLED
    assert error.metadata["deadline_exceeded"] is False
    assert not error.retryable


def test_deadline_fires_token(run):
    async def scenario():
        token = CancelToken(timeout=0.01)
        await asyncio.sleep(0.03)
        return token

    token = run(scenario())
    assert token.cancelled
    assert token.deadline_exceeded
    assert token.remaining() == 0.0
    assert token.error().metadata["deadline_exceeded"] is True


def test_with_deadline_uses_monotonic_clock(run):
    async def scenario():
        return CancelToken.with_deadline(time.monotonic() + 60)

    token = run(scenario())
    assert not token.cancelled
    assert 59 < token.remaining() <= 60


def test_wait_times_out_without_cancellation(run):
    async def scenario():
        return await CancelToken().wait(0.01)

    assert run(scenario()) is False


def test_wait_wakes_on_cancel(run):
    async def scenario():
        token = CancelToken()
        asyncio.get_running_loop().call_later(0.02, token.cancel)
        started = time.monotonic()
        fired = await token.wait(10)
        return fired, time.monotonic() - started

    fired, elapsed = run(scenario())
    assert fired is True
    assert elapsed < 1.0


def test_sleep_raises_when_deadline_passes(run):
    async def scenario():
        token = CancelToken(timeout=0.02)
        await token.sleep(10)

    with pytest.raises(RequestError) as info:
        run(scenario())
    assert info.value.kind is ErrorKind.CANCELLED
    assert info.value.metadata["deadline_exceeded"] is True


def test_guard_returns_result(run):
    async def work():
        await asyncio.sleep(0)
        return 42

    async def scenario():
        return await CancelToken().guard(work())

    assert run(scenario()) == 42


def test_guard_propagates_exceptions(run):
    async def work():
        raise ConnectionResetError("reset")

    async def scenario():
        await CancelToken().guard(work())

    with pytest.raises(ConnectionResetError):
        run(scenario())


def test_guard_cancels_abandoned_work(run):
    interrupted = []

    async def slow():
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            interrupted.append(True)
            raise

    async def scenario():
        token = CancelToken()
        asyncio.get_running_loop().call_later(0.02, token.cancel)
        await token.guard(slow())

    started = time.monotonic()
    with pytest.raises(RequestError) as info:
        run(scenario())
    assert time.monotonic() - started < 1.0
    assert info.value.kind is ErrorKind.CANCELLED
    assert interrupted == [True]


def test_guard_honours_deadline(run):
    async def scenario():
        await CancelToken(timeout=0.02).guard(asyncio.sleep(10))

    with pytest.raises(RequestError) as info:
        run(scenario())
    assert info.value.metadata["deadline_exceeded"] is True
