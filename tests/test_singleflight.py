"""Tests for the request-coalescing primitive."""

from __future__ import annotations

import asyncio

import pytest

from bkk_realtime.services.gtfs_rt.singleflight import SingleFlight


class TestSingleFlight:
    """Unit tests for SingleFlight."""

    async def test_concurrent_calls_share_one_execution(self) -> None:
        flight: SingleFlight[str, list[int]] = SingleFlight()
        calls = 0

        async def work() -> list[int]:
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            return [1, 2, 3]

        results = await asyncio.gather(*(flight.do("k", work) for _ in range(10)))

        assert calls == 1
        assert all(result is results[0] for result in results)

    async def test_distinct_keys_run_independently(self) -> None:
        flight: SingleFlight[str, str] = SingleFlight()

        async def work(value: str) -> str:
            await asyncio.sleep(0.01)
            return value

        a, b = await asyncio.gather(
            flight.do("a", lambda: work("A")),
            flight.do("b", lambda: work("B")),
        )

        assert (a, b) == ("A", "B")

    async def test_record_is_cleared_after_success(self) -> None:
        flight: SingleFlight[str, int] = SingleFlight()

        async def work() -> int:
            return 1

        await flight.do("k", work)

        assert not flight.in_flight("k")

    async def test_error_is_shared_and_record_cleared(self) -> None:
        flight: SingleFlight[str, int] = SingleFlight()
        calls = 0

        async def work() -> int:
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            raise RuntimeError("boom")

        results = await asyncio.gather(
            flight.do("k", work), flight.do("k", work), return_exceptions=True
        )

        assert calls == 1
        assert all(isinstance(result, RuntimeError) for result in results)
        assert not flight.in_flight("k")

    async def test_sequential_calls_run_again(self) -> None:
        flight: SingleFlight[str, int] = SingleFlight()
        calls = 0

        async def work() -> int:
            nonlocal calls
            calls += 1
            return calls

        assert await flight.do("k", work) == 1
        assert await flight.do("k", work) == 2

    async def test_cancelled_waiter_does_not_cancel_others(self) -> None:
        flight: SingleFlight[str, str] = SingleFlight()
        started = asyncio.Event()

        async def work() -> str:
            started.set()
            await asyncio.sleep(0.05)
            return "done"

        first = asyncio.create_task(flight.do("k", work))
        await started.wait()
        second = asyncio.create_task(flight.do("k", work))
        await asyncio.sleep(0)

        first.cancel()
        with pytest.raises(asyncio.CancelledError):
            await first

        assert await second == "done"

    async def test_forget_detaches_running_call(self) -> None:
        flight: SingleFlight[str, str] = SingleFlight()
        release = asyncio.Event()

        async def slow() -> str:
            await release.wait()
            return "old"

        async def fast() -> str:
            return "new"

        old = asyncio.create_task(flight.do("k", slow))
        await asyncio.sleep(0)
        assert flight.in_flight("k")

        flight.forget()
        assert await flight.do("k", fast) == "new"

        release.set()
        assert await old == "old"
        assert not flight.in_flight("k")
