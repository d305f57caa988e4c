import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from .classify import FailureKind

logger = logging.getLogger("keyrotor")

KEY_BLACKLISTED = "key_blacklisted"
KEY_RECOVERED = "key_recovered"
KEY_RESET = "key_reset"


@dataclass(frozen=True)
class KeyEvent:
    event: str
    provider: str
    key: str  # masked id, never the token
    reason: FailureKind | None = None
    until: float | None = None
    at: float | None = None

    def as_extra(self) -> dict:
        until_iso = (
            datetime.fromtimestamp(self.until, tz=timezone.utc).isoformat()
            if self.until is not None
            else None
        )
        return {
            "event": self.event,
            "provider": self.provider,
            "key": self.key,
            "reason": self.reason.value if self.reason is not None else None,
            "until": until_iso,
        }


EventHook = Callable[[KeyEvent], None]


def emit(ev: KeyEvent, hook: EventHook | None = None) -> None:
    extra = ev.as_extra()
    if ev.event == KEY_BLACKLISTED:
        logger.warning(
            f"provider={ev.provider} key={ev.key} blacklisted "
            f"reason={extra['reason']} until={extra['until']}",
            extra=extra,
        )
    else:
        logger.info(f"provider={ev.provider} key={ev.key} {ev.event}", extra=extra)
    if hook is None:
        return
    try:
        hook(ev)
    except Exception:
        logger.exception(f"event hook failed for {ev.event} provider={ev.provider}")
