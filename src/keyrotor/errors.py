class ConfigurationError(ValueError):
    """Raised at construction time for configurations the dispatcher cannot run."""


class DispatchError(Exception):
    """Base class for every failure ``Dispatcher.execute`` surfaces."""


class ProviderKeysExhausted(DispatchError):
    def __init__(self, provider: str, attempts: int = 0):
        self.provider = provider
        self.attempts = attempts
        super().__init__(f"keyrotor: provider={provider} has no usable keys left")


class UpstreamFatal(DispatchError):
    def __init__(self, provider: str, cause: BaseException, attempts: int = 1):
        self.provider = provider
        self.cause = cause
        self.attempts = attempts
        super().__init__(f"keyrotor: provider={provider} failed: {cause!r}")


class AllProvidersExhausted(DispatchError):
    """Every configured provider failed.

    ``failures`` holds one ``ProviderKeysExhausted`` or ``UpstreamFatal`` per
    provider, in priority order; ``last_cause`` is the final one and
    ``attempts`` counts upstream calls across all providers. Build instances
    with :meth:`from_failures` so the raised error is also an instance of the
    last cause's class.
    """

    def __init__(self, failures: list[DispatchError], attempts: int):
        self.failures = list(failures)
        self.attempts = attempts
        self.last_cause = self.failures[-1] if self.failures else None
        self.provider = getattr(self.last_cause, "provider", None)
        self.cause = getattr(self.last_cause, "cause", None)
        names = ", ".join(getattr(f, "provider", "?") for f in self.failures)
        # the mixin parents take different arguments
        DispatchError.__init__(
            self, f"keyrotor: all providers exhausted after {attempts} attempts ({names})"
        )

    @classmethod
    def from_failures(cls, failures: list[DispatchError], attempts: int) -> "AllProvidersExhausted":
        last = failures[-1] if failures else None
        if isinstance(last, UpstreamFatal):
            return AllProvidersFailedFatally(failures, attempts)
        if isinstance(last, ProviderKeysExhausted):
            return AllProvidersOutOfKeys(failures, attempts)
        return cls(failures, attempts)

    @property
    def fatal(self) -> bool:
        """True when the last provider failed with a non-capacity error."""
        return isinstance(self.last_cause, UpstreamFatal)


class AllProvidersFailedFatally(AllProvidersExhausted, UpstreamFatal):
    """Raised when the last provider failed with a non-capacity upstream error."""


class AllProvidersOutOfKeys(AllProvidersExhausted, ProviderKeysExhausted):
    """Raised when the last provider ran out of usable keys."""
