import json

from keyrotor import Dispatcher, FailureKind, KeyConfig, ProviderConfig

from ._fakes import FakeClock


def _dispatcher(clock):
    return Dispatcher(
        [
            ProviderConfig(
                "gemini",
                [KeyConfig("g0", "AIzaSyAAAAsecret0"), KeyConfig("g1", "AIzaSyBBBBsecret1")],
                model_id="gemini-2.5-pro",
            ),
            ProviderConfig("groq", [KeyConfig("q0", "gsk_CCCCCCsecret2")], model_id="llama-3.1-8b-instant"),
        ],
        clock=clock,
    )


def test_status_snapshot_shape():
    clock = FakeClock()
    d = _dispatcher(clock)
    gemini = d.provider("gemini").pool
    gemini.record_success(gemini.keys[0])
    gemini.record_failure(gemini.keys[1], FailureKind.QUOTA)
    clock.advance(90 * 60)

    status = d.status_reporter().get_status()
    assert status["total_keys"] == 3  # noqa: PLR2004
    assert status["active_keys"] == 2  # noqa: PLR2004
    assert status["message"] == "2/3 API keys available"

    g, q = status["providers"]
    assert g["name"] == "gemini"
    assert g["model_id"] == "gemini-2.5-pro"
    assert (g["total_keys"], g["active_keys"], g["blacklisted_keys"]) == (2, 1, 1)
    assert g["current_key"] == "AIzaSyAA..."
    k0, k1 = g["keys"]
    assert k0 == {
        "name": "g0",
        "masked_id": "AIzaSyAA...",
        "blacklisted": False,
        "request_count": 1,
        "last_used_at": clock.now - 90 * 60,
    }
    assert k1["blacklisted"] is True
    assert k1["minutes_until_active"] == 24 * 60 - 90
    assert k1["reason"] == "quota"
    assert q["active_keys"] == 1


def test_status_never_contains_tokens():
    d = _dispatcher(FakeClock())
    for p in d.providers:
        for k in p.pool.keys:
            p.pool.record_failure(k, FailureKind.RATE_LIMIT)
    dumped = json.dumps(d.status_reporter().get_status())
    for secret in ("secret0", "secret1", "secret2"):
        assert secret not in dumped


def test_status_is_read_only():
    clock = FakeClock()
    d = _dispatcher(clock)
    before = [(k.blacklisted, k.request_count) for p in d.providers for k in p.pool.keys]
    status = d.status_reporter().get_status()
    status["providers"][0]["keys"][0]["blacklisted"] = True
    after = [(k.blacklisted, k.request_count) for p in d.providers for k in p.pool.keys]
    assert before == after


def test_short_tokens_are_never_shown_in_full():
    clock = FakeClock()
    d = Dispatcher(
        [ProviderConfig("groq", [KeyConfig("q", "abc123"), KeyConfig("r", "x")])], clock=clock
    )
    pool = d.provider("groq").pool
    assert [k.masked_id for k in pool.keys] == ["abc...", "..."]
    pool.record_failure(pool.keys[0], FailureKind.QUOTA)
    status = d.status_reporter().get_status()
    (groq,) = status["providers"]
    assert [k["masked_id"] for k in groq["keys"]] == ["abc...", "..."]
    assert "abc123" not in json.dumps(status)
