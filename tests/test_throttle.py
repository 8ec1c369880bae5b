from __future__ import annotations

import asyncio
import time

import httpx
import pytest

from cios import HostThrottle


def test_rejects_negative_interval() -> None:
    with pytest.raises(ValueError):
        HostThrottle(-0.5)


def test_only_configured_methods_are_throttled() -> None:
    throttle = HostThrottle(0.1)
    assert throttle.applies_to("get")
    assert not throttle.applies_to("POST")
    assert not HostThrottle(0).applies_to("GET")
    assert HostThrottle(0.1, methods=("get", "head")).applies_to("HEAD")


def test_consecutive_gets_to_one_host_are_spaced() -> None:
    async def run() -> list[float]:
        throttle = HostThrottle(0.05)
        departures = []
        for _ in range(3):
            await throttle.acquire("api.example.com", "GET")
            departures.append(time.monotonic())
        return departures

    departures = asyncio.run(run())
    gaps = [later - earlier for earlier, later in zip(departures, departures[1:])]
    assert all(gap >= 0.045 for gap in gaps)


def test_concurrent_waiters_never_share_a_slot() -> None:
    async def run() -> list[float]:
        throttle = HostThrottle(0.05)
        departures: list[float] = []

        async def take() -> None:
            await throttle.acquire("api.example.com", "GET")
            departures.append(time.monotonic())

        await asyncio.gather(*(take() for _ in range(4)))
        return sorted(departures)

    departures = asyncio.run(run())
    gaps = [later - earlier for earlier, later in zip(departures, departures[1:])]
    assert all(gap >= 0.045 for gap in gaps)


def test_hosts_are_independent_and_case_insensitive() -> None:
    async def run() -> tuple[float, float]:
        throttle = HostThrottle(1.0)
        await throttle.acquire("API.example.com", "GET")
        other = await throttle.acquire("cdn.example.com", "GET")
        assert sorted(throttle.throttled_hosts) == ["api.example.com", "cdn.example.com"]
        unthrottled = await throttle.acquire("api.example.com", "POST")
        return other, unthrottled

    other, unthrottled = asyncio.run(run())
    assert other < 0.05
    assert unthrottled == 0.0


def test_expired_hosts_are_pruned() -> None:
    async def run() -> list[str]:
        throttle = HostThrottle(0.01)
        await throttle.acquire("api.example.com", "GET")
        await asyncio.sleep(0.03)
        return throttle.throttled_hosts

    assert asyncio.run(run()) == []


def test_client_spaces_gets_but_not_posts(make_client) -> None:
    stamps: dict[str, list[float]] = {"GET": [], "POST": []}

    def handler(request: httpx.Request) -> httpx.Response:
        stamps[request.method].append(time.monotonic())
        return httpx.Response(200, json={})

    async def run() -> None:
        async with make_client(handler, throttle_interval=0.05) as client:
            await asyncio.gather(*(client.get("/items") for _ in range(3)))
            await asyncio.gather(*(client.post("/items", {"n": n}) for n in range(3)))

    asyncio.run(run())
    gets = sorted(stamps["GET"])
    assert all(later - earlier >= 0.045 for earlier, later in zip(gets, gets[1:]))
    posts = sorted(stamps["POST"])
    assert posts[-1] - posts[0] < 0.045


def test_expired_entry_is_dropped_on_next_acquire() -> None:
    async def run() -> tuple[float, list[str]]:
        throttle = HostThrottle(0.01)
        await throttle.acquire("api.example.com", "GET")
        await asyncio.sleep(0.03)
        waited = await throttle.acquire("cdn.example.com", "GET")
        return waited, list(throttle._release_at)

    waited, hosts = asyncio.run(run())
    assert waited == 0.0
    assert hosts == ["cdn.example.com"]
