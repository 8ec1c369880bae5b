from __future__ import annotations

import asyncio
import logging
import time

import httpx
import pytest

from cios import CancelToken, CiosCancelledError, RetryController
from cios.cancel_token import DEFAULT_CANCEL_REASON


def test_cancel_is_one_way_and_keeps_first_reason() -> None:
    token = CancelToken()
    assert not token.is_cancelled
    token.cancel("first")
    token.cancel("second")
    assert token.is_cancelled
    assert token.reason == "first"


def test_cancel_without_reason_uses_default() -> None:
    token = CancelToken()
    token.cancel()
    assert token.reason == DEFAULT_CANCEL_REASON


def test_observers_fire_once_in_registration_order() -> None:
    token = CancelToken()
    calls: list[tuple[str, str]] = []
    token.register(lambda reason: calls.append(("a", reason)))
    token.register(lambda reason: calls.append(("b", reason)))

    token.cancel("stop")
    token.cancel("again")

    assert calls == [("a", "stop"), ("b", "stop")]


def test_late_registration_is_notified_immediately() -> None:
    token = CancelToken()
    token.cancel("done")
    seen: list[str] = []
    token.register(seen.append)
    assert seen == ["done"]


def test_unregister_prevents_notification() -> None:
    token = CancelToken()
    seen: list[str] = []
    unregister = token.register(seen.append)
    unregister()
    unregister()
    token.cancel("x")
    assert seen == []


def test_throw_if_requested() -> None:
    token = CancelToken()
    token.throw_if_requested()
    token.cancel("user left")
    with pytest.raises(CiosCancelledError, match="user left") as excinfo:
        token.throw_if_requested()
    assert excinfo.value.reason == "user left"


def test_source_returns_token_and_cancel_function() -> None:
    token, cancel = CancelToken.source()
    cancel("via source")
    assert token.reason == "via source"


def test_failing_observer_does_not_stop_fan_out(caplog) -> None:
    token = CancelToken()
    seen: list[str] = []

    def broken(reason: str) -> None:
        raise RuntimeError("boom")

    token.register(broken)
    token.register(seen.append)
    with caplog.at_level(logging.ERROR, logger="cios.cancel_token"):
        token.cancel("go")

    assert seen == ["go"]
    assert "cancel observer" in caplog.text


def test_pre_cancelled_token_fails_before_dispatch(make_client) -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={})

    async def run() -> None:
        token = CancelToken()
        token.cancel("too late")
        async with make_client(handler) as client:
            data, error = await client.get("/posts/4", cancel_token=token)
        assert data is None
        assert isinstance(error, CiosCancelledError)
        assert error.reason == "too late"

    asyncio.run(run())
    assert calls == []


def test_cancel_aborts_every_in_flight_request_sharing_the_token(make_client) -> None:
    started: list[str] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        started.append(request.url.path)
        await asyncio.sleep(5)
        return httpx.Response(200, json={})

    async def run() -> None:
        token, cancel = CancelToken.source()
        async with make_client(handler, throttle_interval=0) as client:
            tasks = [
                asyncio.ensure_future(client.get(f"/posts/{index}", cancel_token=token))
                for index in range(3)
            ]
            while len(started) < 3:
                await asyncio.sleep(0.01)
            begin = time.monotonic()
            cancel("Batch cancellation")
            outcomes = await asyncio.gather(*tasks)
            elapsed = time.monotonic() - begin

        assert elapsed < 1.0
        for data, error in outcomes:
            assert data is None
            assert isinstance(error, CiosCancelledError)
            assert error.reason == "Batch cancellation"

    asyncio.run(run())


def test_cancel_during_backoff_stops_further_attempts(make_client) -> None:
    calls: list[httpx.Request] = []
    token, cancel = CancelToken.source()

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    async def sleep(delay: float) -> None:
        cancel("gave up")
        await asyncio.sleep(5)

    async def run() -> None:
        async with make_client(handler, retry_controller=RetryController(sleep=sleep)) as client:
            data, error = await client.post("/jobs", {"a": 1}, retries=3, cancel_token=token)
        assert data is None
        assert isinstance(error, CiosCancelledError)

    asyncio.run(run())
    assert len(calls) == 1


def test_finished_request_leaves_no_observer_on_token(make_client) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"ok": True})

    async def run() -> CancelToken:
        token = CancelToken()
        async with make_client(handler) as client:
            data, error = await client.get("/ping", cancel_token=token)
        assert error is None
        assert data == {"ok": True}
        return token

    token = asyncio.run(run())
    assert token._observers == []
