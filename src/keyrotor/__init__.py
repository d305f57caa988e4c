from .adapters import AiohttpEndpoint, AsyncHttpxEndpoint, HttpxEndpoint, RequestsEndpoint
from .classify import FailureKind, classify_error
from .dispatcher import AsyncDispatcher, DispatchResult, Dispatcher
from .env import load_dispatch_config_from_env, load_keyconfigs_from_env
from .errors import (
    AllProvidersExhausted,
    AllProvidersFailedFatally,
    AllProvidersOutOfKeys,
    ConfigurationError,
    DispatchError,
    ProviderKeysExhausted,
    UpstreamFatal,
)
from .events import KeyEvent
from .pool import KeyPool
from .provider import Credential, Provider
from .state import KeyState
from .status import StatusReporter
from .types import AuthConfig, DispatchConfig, KeyConfig, ProviderConfig

__all__ = [
    "KeyConfig",
    "AuthConfig",
    "ProviderConfig",
    "DispatchConfig",
    "KeyState",
    "KeyEvent",
    "KeyPool",
    "Provider",
    "Credential",
    "Dispatcher",
    "AsyncDispatcher",
    "DispatchResult",
    "StatusReporter",
    "FailureKind",
    "classify_error",
    "DispatchError",
    "ProviderKeysExhausted",
    "UpstreamFatal",
    "AllProvidersExhausted",
    "AllProvidersFailedFatally",
    "AllProvidersOutOfKeys",
    "ConfigurationError",
    "RequestsEndpoint",
    "HttpxEndpoint",
    "AsyncHttpxEndpoint",
    "AiohttpEndpoint",
    "load_keyconfigs_from_env",
    "load_dispatch_config_from_env",
]
