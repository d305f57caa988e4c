import contextlib
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, TypeVar, Union

from .classify import FailureKind, classify_error
from .env import load_dispatch_config_from_env, load_keyconfigs_from_env
from .errors import (
    AllProvidersExhausted,
    ConfigurationError,
    DispatchError,
    ProviderKeysExhausted,
    UpstreamFatal,
)
from .events import EventHook
from .provider import Provider
from .state import KeyState
from .types import DispatchConfig, ProviderConfig

T = TypeVar("T")

Classifier = Callable[[BaseException], FailureKind]


@dataclass
class DispatchResult(Generic[T]):
    value: Union[T, None] = None
    error: Union[DispatchError, None] = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


# ---------- shared logic (sync and async loops differ only in how they call request_fn) ----------


class _DispatchBase:
    def __init__(
        self,
        providers: list[Union[Provider, ProviderConfig]],
        config: Union[DispatchConfig, None] = None,
        classifier: Union[Classifier, None] = None,
        clock: Union[Callable[[], float], None] = None,
        on_event: Union[EventHook, None] = None,
        log_level: Union[int, None] = None,
    ):
        """Initialize a dispatcher.

        Args:
            providers (list[Provider | ProviderConfig]): fallback chain, highest priority first
            config (DispatchConfig | None): TTL and attempt limits
            classifier (Classifier | None): maps an upstream error to a FailureKind
            clock (Callable[[], float] | None): time source for pools built from ProviderConfig
            on_event (EventHook | None): key state transition hook for pools built here
            log_level (int | None): log level for the "keyrotor" logger

        Raises:
            ConfigurationError: on an empty chain, duplicate names or invalid limits
        """
        self.config = config or DispatchConfig()
        if not providers:
            raise ConfigurationError("keyrotor: at least one provider is required")
        max_attempts = self.config.max_attempts_per_provider
        if max_attempts is not None and max_attempts < 1:
            raise ConfigurationError("keyrotor: max_attempts_per_provider must be >= 1")
        self._providers: list[Provider] = [
            p
            if isinstance(p, Provider)
            else Provider.from_config(
                p, blacklist_ttl=self.config.blacklist_ttl, clock=clock, on_event=on_event
            )
            for p in providers
        ]
        names = [p.name for p in self._providers]
        if len(set(names)) != len(names):
            raise ConfigurationError(f"keyrotor: duplicate provider names in {names}")
        self._classify = classifier or classify_error
        self._logger = logging.getLogger("keyrotor")
        if log_level is not None:
            with contextlib.suppress(Exception):
                self._logger.setLevel(log_level)

    @classmethod
    def from_env(
        cls,
        providers: list[dict[str, Any]],
        env_path: Union[str, None] = None,
        config_prefix: str = "KEYROTOR_",
        **kwargs,
    ):
        """Build a dispatcher whose keys and limits come from environment variables.

        Each entry of ``providers`` is a dict with ``name`` and any of ``names``,
        ``prefix``, ``model_id``, ``endpoint_factory`` and the loader flags
        accepted by load_keyconfigs_from_env.
        """
        configs = []
        for entry in providers:
            entry = dict(entry)
            name = entry.pop("name")
            model_id = entry.pop("model_id", None)
            factory = entry.pop("endpoint_factory", None)
            keys = load_keyconfigs_from_env(env_path=env_path, **entry)
            configs.append(ProviderConfig(name, keys, model_id=model_id, endpoint_factory=factory))
        if "config" not in kwargs:
            kwargs["config"] = load_dispatch_config_from_env(config_prefix, env_path=env_path)
        return cls(configs, **kwargs)

    @property
    def providers(self) -> tuple[Provider, ...]:
        return tuple(self._providers)

    def provider(self, name: str) -> Provider:
        for p in self._providers:
            if p.name == name:
                return p
        raise KeyError(name)

    def _budget(self, provider: Provider) -> int:
        n = len(provider.pool)
        configured = self.config.max_attempts_per_provider
        return n if configured is None else min(configured, n)

    def _should_skip(self, provider: Provider) -> bool:
        if provider.pool.has_active() or self.config.attempt_when_exhausted:
            return False
        self._logger.info(f"provider={provider.name} has no active keys; falling through")
        return True

    def _on_success(self, provider: Provider, key: KeyState, used: int) -> None:
        provider.pool.record_success(key)
        if used > 1:
            self._logger.info(
                f"provider={provider.name} key={key.masked_id} succeeded after {used} attempts"
            )

    def _on_failure(
        self, provider: Provider, key: KeyState, error: Exception, used: int, budget: int
    ) -> Union[DispatchError, None]:
        """Record a failed attempt; None means try the provider again."""
        kind = self._classify(error)
        active = provider.pool.record_failure(key, kind)
        if not kind.blacklists:
            self._logger.warning(
                f"provider={provider.name} key={key.masked_id} upstream error: {error}"
            )
            return UpstreamFatal(provider.name, error, used)
        if active > 0 and used < budget:
            self._logger.info(
                f"{kind.value} on provider={provider.name} key={key.masked_id}; rotating"
            )
            return None
        self._logger.warning(f"provider={provider.name} keys exhausted after {used} attempts")
        return ProviderKeysExhausted(provider.name, used)

    def _exhausted(self, failures: list[DispatchError], attempts: int) -> AllProvidersExhausted:
        err = AllProvidersExhausted.from_failures(failures, attempts)
        self._logger.error(str(err))
        return err

    def status_reporter(self):
        from .status import StatusReporter  # noqa: PLC0415

        return StatusReporter(self._providers)


# ---------- sync ----------


class Dispatcher(_DispatchBase):
    """Runs a request function against the best available key, rotating and falling back."""

    def _run(self, request_fn: Callable[[Any], T]) -> tuple[T, int]:
        failures: list[DispatchError] = []
        attempts = 0
        last_exc: Union[BaseException, None] = None
        for provider in self._providers:
            if self._should_skip(provider):
                failures.append(ProviderKeysExhausted(provider.name, 0))
                continue
            budget = self._budget(provider)
            used = 0
            while used < budget:
                key, client = provider.handle()
                used += 1
                attempts += 1
                try:
                    result = request_fn(client)
                except Exception as e:
                    last_exc = e
                    failure = self._on_failure(provider, key, e, used, budget)
                    if failure is None:
                        continue
                    failures.append(failure)
                    break
                self._on_success(provider, key, used)
                return result, attempts
        raise self._exhausted(failures, attempts) from last_exc

    def execute(self, request_fn: Callable[[Any], T]) -> T:
        """Run ``request_fn(handle)`` until one provider succeeds.

        ``request_fn`` must make exactly one upstream call and raise on failure.

        Raises:
            AllProvidersExhausted: every provider failed; ``failures`` lists why. The
                error is also an UpstreamFatal or ProviderKeysExhausted, matching the
                last provider's failure, so callers can catch either.
        """
        return self._run(request_fn)[0]

    def try_execute(self, request_fn: Callable[[Any], T]) -> DispatchResult[T]:
        """Like execute, but returns a DispatchResult instead of raising."""
        try:
            value, attempts = self._run(request_fn)
        except AllProvidersExhausted as e:
            return DispatchResult(error=e, attempts=e.attempts)
        return DispatchResult(value=value, attempts=attempts)

    def close(self) -> None:
        for p in self._providers:
            p.close()


# ---------- async ----------


class AsyncDispatcher(_DispatchBase):
    """Async twin of Dispatcher; the awaited request is the only suspension point."""

    async def _run(self, request_fn: Callable[[Any], Awaitable[T]]) -> tuple[T, int]:
        failures: list[DispatchError] = []
        attempts = 0
        last_exc: Union[BaseException, None] = None
        for provider in self._providers:
            if self._should_skip(provider):
                failures.append(ProviderKeysExhausted(provider.name, 0))
                continue
            budget = self._budget(provider)
            used = 0
            while used < budget:
                key, client = provider.handle()
                used += 1
                attempts += 1
                try:
                    result = await request_fn(client)
                except Exception as e:
                    last_exc = e
                    failure = self._on_failure(provider, key, e, used, budget)
                    if failure is None:
                        continue
                    failures.append(failure)
                    break
                self._on_success(provider, key, used)
                return result, attempts
        raise self._exhausted(failures, attempts) from last_exc

    async def execute(self, request_fn: Callable[[Any], Awaitable[T]]) -> T:
        return (await self._run(request_fn))[0]

    async def try_execute(self, request_fn: Callable[[Any], Awaitable[T]]) -> DispatchResult[T]:
        try:
            value, attempts = await self._run(request_fn)
        except AllProvidersExhausted as e:
            return DispatchResult(error=e, attempts=e.attempts)
        return DispatchResult(value=value, attempts=attempts)

    async def aclose(self) -> None:
        for p in self._providers:
            await p.aclose()
