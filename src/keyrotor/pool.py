import contextlib
import logging
import threading
import time
from dataclasses import replace
from typing import Callable, Union

from .classify import FailureKind
from .errors import ConfigurationError
from .events import KEY_BLACKLISTED, KEY_RECOVERED, KEY_RESET, EventHook, KeyEvent, emit
from .state import KeyState
from .types import DEFAULT_BLACKLIST_TTL, KeyConfig


class KeyPool:
    """Round-robin rotation and blacklist state for one provider's keys.

    The key set is fixed at construction. Every read or mutation goes through
    ``self._lock``; the lock is never held across I/O, so one pool can be shared
    by threads and by coroutines alike. Records handed out by ``keys``,
    ``current`` and ``select_active`` are copies; pass them back to
    ``record_success``/``record_failure``, which resolve them by name.
    """

    def __init__(
        self,
        keys: list[KeyConfig],
        name: str = "default",
        blacklist_ttl: float = DEFAULT_BLACKLIST_TTL,
        clock: Union[Callable[[], float], None] = None,
        on_event: Union[EventHook, None] = None,
        log_level: Union[int, None] = None,
    ):
        """Initialize a KeyPool.

        Args:
            keys (list[KeyConfig]): credentials in rotation order
            name (str): provider name used in logs and events
            blacklist_ttl (float): seconds a quota/rate-limited key stays out of rotation
            clock (Callable[[], float] | None): time source, defaults to time.time
            on_event (EventHook | None): receives a KeyEvent per state transition; it runs
                under the pool lock and must not call back into the pool
            log_level (int | None): log level for the "keyrotor" logger

        Raises:
            ConfigurationError: if keys is empty, key names repeat or blacklist_ttl is not positive
        """
        if not keys:
            raise ConfigurationError(f"keyrotor: provider={name} has no keys configured")
        if blacklist_ttl <= 0:
            raise ConfigurationError("keyrotor: blacklist_ttl must be positive")
        self.name = name
        self.blacklist_ttl = float(blacklist_ttl)
        self._keys: list[KeyState] = [KeyState(name=k.name, token=k.token) for k in keys]
        self._by_name = {k.name: k for k in self._keys}
        if len(self._by_name) != len(self._keys):
            raise ConfigurationError(f"keyrotor: provider={name} has duplicate key names")
        self._current_index = 0
        self._clock = clock or time.time
        self._on_event = on_event
        self._lock = threading.Lock()
        self._logger = logging.getLogger("keyrotor")
        if log_level is not None:
            with contextlib.suppress(Exception):
                self._logger.setLevel(log_level)
        self._logger.info(f"provider={name} key pool initialized with {len(self._keys)} keys")

    def _now(self) -> float:
        return self._clock()

    def __len__(self) -> int:
        return len(self._keys)

    @property
    def keys(self) -> tuple[KeyState, ...]:
        with self._lock:
            return tuple(replace(k) for k in self._keys)

    @property
    def current_index(self) -> int:
        return self._current_index

    @property
    def current(self) -> KeyState:
        with self._lock:
            return replace(self._keys[self._current_index])

    # ---------- lock-free internals (callers hold self._lock) ----------

    def _resolve(self, key: KeyState) -> KeyState:
        try:
            return self._by_name[key.name]
        except KeyError:
            raise KeyError(f"keyrotor: provider={self.name} has no key named {key.name!r}") from None

    def _cleanup_expired(self, now: float) -> int:
        cleaned = 0
        for k in self._keys:
            if k.is_expired(now):
                reason, until = k.last_reason, k.blacklisted_until
                k.blacklisted = False
                k.blacklisted_until = None
                k.last_reason = None
                cleaned += 1
                emit(
                    KeyEvent(KEY_RECOVERED, self.name, k.masked_id, reason=reason, until=until, at=now),
                    self._on_event,
                )
        if cleaned:
            self._logger.info(f"provider={self.name} cleaned up {cleaned} expired blacklisted keys")
        return cleaned

    def _active_count(self) -> int:
        return sum(1 for k in self._keys if not k.blacklisted)

    def _select_active(self, now: float) -> KeyState:
        self._cleanup_expired(now)
        n = len(self._keys)
        for i in range(n):
            idx = (self._current_index + i) % n
            if not self._keys[idx].blacklisted:
                self._current_index = idx
                return self._keys[idx]

        # All blacklisted: soonest to recover, lowest index on ties
        best = min(range(n), key=lambda i: (self._keys[i].blacklisted_until, i))
        self._current_index = best
        key = self._keys[best]
        self._logger.warning(
            f"provider={self.name} all keys blacklisted; using key={key.masked_id} "
            f"(active again in ~{key.minutes_until_active(now)} minutes)"
        )
        return key

    def _advance(self) -> None:
        n = len(self._keys)
        for step in range(1, n + 1):
            idx = (self._current_index + step) % n
            if not self._keys[idx].blacklisted:
                self._current_index = idx
                self._logger.info(f"provider={self.name} switched to key={self._keys[idx].masked_id}")
                return
        self._logger.warning(f"provider={self.name} all keys are blacklisted")

    # ---------- public API ----------

    def cleanup_expired(self) -> int:
        with self._lock:
            return self._cleanup_expired(self._now())

    def select_active(self) -> KeyState:
        """Return the next usable key in rotation order.

        When every key is blacklisted this returns the one whose blacklist
        expires first instead of raising; the caller decides whether to use it.
        """
        with self._lock:
            return replace(self._select_active(self._now()))

    def record_success(self, key: KeyState) -> None:
        with self._lock:
            key = self._resolve(key)
            key.last_used_at = self._now()
            key.request_count += 1

    def record_failure(self, key: KeyState, kind: FailureKind) -> int:
        """Record a failed call on ``key``; returns the number of active keys left."""
        with self._lock:
            key = self._resolve(key)
            now = self._now()
            if not kind.blacklists:
                self._logger.debug(
                    f"provider={self.name} key={key.masked_id} failed ({kind.value}); key stays active"
                )
                return self._active_count()
            key.blacklisted = True
            key.blacklisted_until = now + self.blacklist_ttl
            key.last_reason = kind
            emit(
                KeyEvent(
                    KEY_BLACKLISTED,
                    self.name,
                    key.masked_id,
                    reason=kind,
                    until=key.blacklisted_until,
                    at=now,
                ),
                self._on_event,
            )
            if self._keys[self._current_index].blacklisted:
                self._advance()
            active = self._active_count()
            self._logger.info(f"provider={self.name} remaining active keys: {active}/{len(self._keys)}")
            return active

    def active_count(self) -> int:
        with self._lock:
            self._cleanup_expired(self._now())
            return self._active_count()

    def has_active(self) -> bool:
        return self.active_count() > 0

    def snapshot(self) -> tuple[float, int, list[KeyState]]:
        """Consistent copy of (now, current_index, records) after expiry cleanup."""
        with self._lock:
            now = self._now()
            self._cleanup_expired(now)
            return now, self._current_index, [replace(k) for k in self._keys]

    def reset(self) -> None:
        with self._lock:
            now = self._now()
            for k in self._keys:
                was_blacklisted = k.blacklisted
                reason, until = k.last_reason, k.blacklisted_until
                k.blacklisted = False
                k.blacklisted_until = None
                k.last_reason = None
                k.request_count = 0
                if was_blacklisted:
                    emit(
                        KeyEvent(KEY_RESET, self.name, k.masked_id, reason=reason, until=until, at=now),
                        self._on_event,
                    )
        self._logger.info(f"provider={self.name} all keys reset and unblacklisted")
