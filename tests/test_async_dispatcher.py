import asyncio

import pytest

from keyrotor import AllProvidersExhausted, AsyncDispatcher, KeyConfig, ProviderConfig, UpstreamFatal

from ._fakes import FakeClock, ScriptedUpstream, fatal_error, quota_error


def _providers():
    return [
        ProviderConfig("gemini", [KeyConfig("g0", "G0"), KeyConfig("g1", "G1")]),
        ProviderConfig("groq", [KeyConfig("q0", "Q0")]),
    ]


@pytest.mark.asyncio
async def test_async_fallback_to_second_provider():
    d = AsyncDispatcher(_providers(), clock=FakeClock())
    upstream = ScriptedUpstream({"g0": [quota_error()], "g1": [quota_error()], "q0": ["ok"]})
    assert await d.execute(upstream.acall) == "ok"
    assert upstream.calls == ["g0", "g1", "q0"]
    assert d.provider("groq").pool.keys[0].request_count == 1


@pytest.mark.asyncio
async def test_async_all_fatal():
    d = AsyncDispatcher(_providers(), clock=FakeClock())
    upstream = ScriptedUpstream({"g0": [fatal_error()], "q0": [fatal_error()]})
    result = await d.try_execute(upstream.acall)
    assert not result.ok
    assert isinstance(result.error, AllProvidersExhausted)
    assert isinstance(result.error, UpstreamFatal)
    assert result.error.provider == "groq"
    assert result.error.fatal
    assert upstream.calls == ["g0", "q0"]
    assert d.provider("gemini").pool.active_count() == 2  # noqa: PLR2004


@pytest.mark.asyncio
async def test_concurrent_callers_share_pool_state():
    clock = FakeClock()
    d = AsyncDispatcher(
        [ProviderConfig("gemini", [KeyConfig(f"g{i}", f"G{i}") for i in range(3)])], clock=clock
    )
    exhausted = {"g0"}

    async def request(handle):
        await asyncio.sleep(0)
        if handle.key_name in exhausted:
            raise quota_error()
        return handle.key_name

    results = await asyncio.gather(*(d.execute(request) for _ in range(20)))
    assert set(results) <= {"g1", "g2"}
    pool = d.provider("gemini").pool
    assert pool.keys[0].blacklisted
    assert sum(k.request_count for k in pool.keys) == 20  # noqa: PLR2004


@pytest.mark.asyncio
async def test_cancellation_is_not_swallowed():
    d = AsyncDispatcher(_providers(), clock=FakeClock())

    async def slow(handle):
        await asyncio.sleep(10)

    task = asyncio.ensure_future(d.execute(slow))
    await asyncio.sleep(0)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert d.provider("gemini").pool.active_count() == 2  # noqa: PLR2004
