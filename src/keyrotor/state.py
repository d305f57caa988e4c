import math
from dataclasses import dataclass

from .classify import FailureKind

MASK_PREFIX_LEN = 8


def mask_token(token: str) -> str:
    # at most half of a short token is shown
    return f"{token[: min(MASK_PREFIX_LEN, len(token) // 2)]}..."


@dataclass
class KeyState:
    name: str
    token: str
    blacklisted: bool = False
    blacklisted_until: float | None = None  # set iff blacklisted
    request_count: int = 0
    last_used_at: float | None = None
    last_reason: FailureKind | None = None

    @property
    def masked_id(self) -> str:
        return mask_token(self.token)

    def is_expired(self, now: float) -> bool:
        return (
            self.blacklisted
            and self.blacklisted_until is not None
            and now >= self.blacklisted_until
        )

    def minutes_until_active(self, now: float) -> int | None:
        if not self.blacklisted or self.blacklisted_until is None:
            return None
        return max(0, math.ceil((self.blacklisted_until - now) / 60.0))
