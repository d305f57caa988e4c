import logging
from collections.abc import Iterable
from typing import Any

from .provider import Provider


class StatusReporter:
    """Read-only health view over provider pools, plus an administrative reset.

    Only masked key ids leave this class; tokens never do.
    """

    def __init__(self, providers: Iterable[Provider]):
        self._providers = list(providers)
        self._logger = logging.getLogger("keyrotor")

    def _provider_status(self, provider: Provider) -> dict[str, Any]:
        now, current_index, records = provider.pool.snapshot()
        keys = []
        for k in records:
            entry: dict[str, Any] = {
                "name": k.name,
                "masked_id": k.masked_id,
                "blacklisted": k.blacklisted,
                "request_count": k.request_count,
                "last_used_at": k.last_used_at,
            }
            if k.blacklisted:
                entry["minutes_until_active"] = k.minutes_until_active(now)
                entry["reason"] = k.last_reason.value if k.last_reason else None
            keys.append(entry)
        active = sum(1 for k in records if not k.blacklisted)
        return {
            "name": provider.name,
            "model_id": provider.model_id,
            "total_keys": len(records),
            "active_keys": active,
            "blacklisted_keys": len(records) - active,
            "current_key": records[current_index].masked_id,
            "keys": keys,
        }

    def get_status(self) -> dict[str, Any]:
        providers = [self._provider_status(p) for p in self._providers]
        total = sum(p["total_keys"] for p in providers)
        active = sum(p["active_keys"] for p in providers)
        return {
            "providers": providers,
            "total_keys": total,
            "active_keys": active,
            "message": f"{active}/{total} API keys available",
        }

    def reset_all(self) -> None:
        for p in self._providers:
            p.pool.reset()
        self._logger.info(f"reset all keys across {len(self._providers)} providers")
