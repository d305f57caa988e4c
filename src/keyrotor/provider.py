import contextlib
import inspect
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Union

from .events import EventHook
from .pool import KeyPool
from .state import KeyState, mask_token
from .types import DEFAULT_BLACKLIST_TTL, KeyConfig, ProviderConfig

EndpointFactory = Callable[[str, Union[str, None]], Any]


@dataclass(frozen=True)
class Credential:
    """Handle passed to request functions when a provider has no endpoint factory."""

    provider: str
    model_id: str | None
    key_name: str
    token: str

    def __repr__(self) -> str:
        # keep tokens out of tracebacks and logs
        return (
            f"Credential(provider={self.provider!r}, model_id={self.model_id!r}, "
            f"key_name={self.key_name!r}, token='{mask_token(self.token)}')"
        )


class Provider:
    """One upstream text-generation target bound to its own key pool."""

    def __init__(
        self,
        name: str,
        keys: Union[list[KeyConfig], None] = None,
        model_id: Union[str, None] = None,
        endpoint_factory: Union[EndpointFactory, None] = None,
        pool: Union[KeyPool, None] = None,
        **pool_kwargs,
    ):
        self.name = name
        self.model_id = model_id
        self.endpoint_factory = endpoint_factory
        self.pool = pool if pool is not None else KeyPool(keys or [], name=name, **pool_kwargs)
        # one handle per key, created on first use
        self._clients: dict[str, Any] = {}
        self._clients_lock = threading.Lock()
        self._logger = logging.getLogger("keyrotor")

    @classmethod
    def from_config(
        cls,
        config: ProviderConfig,
        blacklist_ttl: float = DEFAULT_BLACKLIST_TTL,
        clock=None,
        on_event: Union[EventHook, None] = None,
    ) -> "Provider":
        return cls(
            config.name,
            config.keys,
            model_id=config.model_id,
            endpoint_factory=config.endpoint_factory,
            blacklist_ttl=blacklist_ttl,
            clock=clock,
            on_event=on_event,
        )

    def __repr__(self) -> str:
        return f"Provider(name={self.name!r}, model_id={self.model_id!r}, keys={len(self.pool)})"

    def client_for(self, key: KeyState) -> Any:
        if self.endpoint_factory is None:
            return Credential(self.name, self.model_id, key.name, key.token)
        with self._clients_lock:
            client = self._clients.get(key.name)
            if client is None:
                client = self.endpoint_factory(key.token, self.model_id)
                self._clients[key.name] = client
                self._logger.debug(f"provider={self.name} created client for key={key.masked_id}")
            return client

    def handle(self) -> tuple[KeyState, Any]:
        """Select a usable key and return it with its client handle."""
        key = self.pool.select_active()
        return key, self.client_for(key)

    def _drain_clients(self) -> list[Any]:
        with self._clients_lock:
            clients = list(self._clients.values())
            self._clients.clear()
        return clients

    def close(self) -> None:
        for client in self._drain_clients():
            close = getattr(client, "close", None)
            if close is not None and not inspect.iscoroutinefunction(close):
                with contextlib.suppress(Exception):
                    close()

    async def aclose(self) -> None:
        for client in self._drain_clients():
            closer = getattr(client, "aclose", None) or getattr(client, "close", None)
            if closer is None:
                continue
            try:
                result = closer()
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                self._logger.warning(f"provider={self.name} failed to close client: {e}")
