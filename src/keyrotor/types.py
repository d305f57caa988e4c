from dataclasses import dataclass
from typing import Any, Callable, Literal

# 24 hours, in seconds
DEFAULT_BLACKLIST_TTL = 24 * 60 * 60.0


@dataclass
class KeyConfig:
    name: str
    token: str


@dataclass(frozen=True)
class AuthConfig:
    header: str = "Authorization"
    scheme: str = "Bearer"
    in_: Literal["header", "query"] = "header"
    query_param: str = "api_key"

    def headers_for(self, token: str) -> dict[str, str]:
        if self.in_ == "query":
            return {}
        return {self.header: f"{self.scheme} {token}".strip()}

    def params_for(self, token: str) -> dict[str, str]:
        if self.in_ != "query":
            return {}
        return {self.query_param: token}


@dataclass
class ProviderConfig:
    name: str
    keys: list[KeyConfig]
    model_id: str | None = None
    # Called as endpoint_factory(token, model_id); result is handed to request functions.
    endpoint_factory: Callable[[str, str | None], Any] | None = None


@dataclass(frozen=True)
class DispatchConfig:
    blacklist_ttl: float = DEFAULT_BLACKLIST_TTL
    # None means "one attempt per key"; larger values are clamped to the key count.
    max_attempts_per_provider: int | None = None
    # Try the soonest-to-recover key of a fully blacklisted provider instead of skipping it.
    attempt_when_exhausted: bool = False
