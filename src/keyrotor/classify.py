"""Classify upstream errors into the failure kinds the key pool acts on.

Only ``QUOTA`` and ``RATE_LIMIT`` blacklist a key. Everything else (timeouts,
transport errors, auth failures, malformed requests) is ``OTHER`` and leaves
the key active.
"""

from enum import Enum

QUOTA_STATUS = 429
UNAVAILABLE_STATUS = 503

QUOTA_MARKERS = (
    "quota",
    "resource exhausted",
    "resource_exhausted",
    "exceeded your current quota",
)
RATE_LIMIT_MARKERS = (
    "rate limit",
    "rate_limit",
    "too many requests",
    "overloaded",
)


class FailureKind(str, Enum):
    QUOTA = "quota"
    RATE_LIMIT = "rate_limit"
    OTHER = "other"

    @property
    def blacklists(self) -> bool:
        return self in (FailureKind.QUOTA, FailureKind.RATE_LIMIT)


def _as_status(value) -> int | None:
    # bool is an int subclass; it is never a status code
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def extract_status(error: BaseException) -> int | None:
    """Best-effort HTTP status of an error raised by an SDK or HTTP client.

    Looks at ``status`` (aiohttp), ``status_code`` and ``code`` on the error,
    then at ``response.status_code`` (requests, httpx) and ``response.status``.
    """
    for attr in ("status", "status_code", "code"):
        status = _as_status(getattr(error, attr, None))
        if status is not None:
            return status
    response = getattr(error, "response", None)
    if response is not None:
        for attr in ("status_code", "status"):
            status = _as_status(getattr(response, attr, None))
            if status is not None:
                return status
    return None


def classify_error(error: BaseException) -> FailureKind:
    status = extract_status(error)
    message = str(error).lower()
    if status == QUOTA_STATUS or any(m in message for m in QUOTA_MARKERS):
        return FailureKind.QUOTA
    if status == UNAVAILABLE_STATUS or any(m in message for m in RATE_LIMIT_MARKERS):
        return FailureKind.RATE_LIMIT
    return FailureKind.OTHER
