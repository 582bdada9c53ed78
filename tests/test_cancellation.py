import asyncio

import pytest

from intelligence.cancellation import CancellationToken, guarded
from utils.exceptions import AbortedError


def test_guard_returns_result_when_not_cancelled():
    async def scenario():
        token = CancellationToken()

        async def call():
            await asyncio.sleep(0)
            return "done"

        return await token.guard(call())

    assert asyncio.run(scenario()) == "done"


def test_guard_propagates_call_failure():
    async def scenario():
        token = CancellationToken()

        async def call():
            raise RuntimeError("boom")

        await token.guard(call())

    with pytest.raises(RuntimeError, match="boom"):
        asyncio.run(scenario())


def test_cancel_interrupts_pending_call():
    async def scenario():
        token = CancellationToken()
        started = asyncio.Event()
        interrupted = []

        async def call():
            started.set()
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                interrupted.append(True)
                raise

        guarded_call = asyncio.ensure_future(token.guard(call()))
        await started.wait()
        token.cancel("stopped by user")
        with pytest.raises(AbortedError):
            await guarded_call
        return interrupted

    assert asyncio.run(scenario()) == [True]


def test_already_cancelled_token_never_runs_the_call():
    async def scenario():
        token = CancellationToken()
        token.cancel()
        ran = []

        async def call():
            ran.append(True)

        with pytest.raises(AbortedError):
            await token.guard(call())
        return ran

    assert asyncio.run(scenario()) == []


def test_cancel_is_sticky_and_keeps_first_reason():
    async def scenario():
        token = CancellationToken()
        token.cancel("first")
        token.cancel("second")
        return token

    token = asyncio.run(scenario())
    assert token.cancelled
    assert token.reason == "first"
    with pytest.raises(AbortedError):
        token.raise_if_cancelled()


def test_guarded_without_token_is_plain_await():
    async def scenario():
        async def call():
            return 42

        return await guarded(None, call())

    assert asyncio.run(scenario()) == 42
