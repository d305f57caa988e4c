from unittest.mock import AsyncMock, MagicMock

import pytest

from keyrotor import Credential, FailureKind, KeyConfig, Provider, ProviderConfig


def test_client_per_key_is_cached():
    factory = MagicMock(side_effect=lambda token, model: MagicMock(token=token, model=model))
    p = Provider(
        "gemini",
        [KeyConfig("a", "A"), KeyConfig("b", "B")],
        model_id="gemini-2.5-pro",
        endpoint_factory=factory,
    )
    key, client = p.handle()
    assert client.token == "A"
    assert client.model == "gemini-2.5-pro"
    assert p.client_for(key) is client
    p.pool.record_failure(key, FailureKind.QUOTA)
    key2, client2 = p.handle()
    assert key2.name == "b"
    assert client2.token == "B"
    assert factory.call_count == 2  # noqa: PLR2004


def test_without_factory_handle_is_credential():
    p = Provider.from_config(ProviderConfig("groq", [KeyConfig("q", "gsk_123456789")], model_id="m"))
    key, handle = p.handle()
    assert handle == Credential("groq", "m", "q", "gsk_123456789")
    assert "gsk_123456789" not in repr(handle)
    assert "gsk_12..." in repr(handle)


def test_close_closes_cached_clients():
    clients = []

    def factory(token, model):
        c = MagicMock()
        clients.append(c)
        return c

    p = Provider("gemini", [KeyConfig("a", "A")], endpoint_factory=factory)
    p.handle()
    p.close()
    clients[0].close.assert_called_once()
    # a fresh client is built after close
    p.handle()
    assert len(clients) == 2  # noqa: PLR2004


@pytest.mark.asyncio
async def test_aclose_awaits_async_clients():
    client = MagicMock()
    client.aclose = AsyncMock()
    p = Provider("gemini", [KeyConfig("a", "A")], endpoint_factory=lambda t, m: client)
    p.handle()
    await p.aclose()
    client.aclose.assert_awaited_once()
