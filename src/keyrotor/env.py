import os
import re
from collections.abc import Iterable

from .errors import ConfigurationError
from .types import DEFAULT_BLACKLIST_TTL, DispatchConfig, KeyConfig

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _parse_env_file(env_path: str) -> dict[str, str]:
    """Parse a simple .env file into a dict without modifying os.environ.

    Supports basic KEY=VALUE pairs, ignoring comments and blank lines.
    Surrounding single/double quotes are stripped if present.
    """
    values: dict[str, str] = {}
    try:
        with open(env_path) as f:
            for raw_line in f:
                line = raw_line.strip()
                if not line or line.startswith("#"):
                    continue
                if line.startswith("export "):
                    line = line[len("export ") :]
                if "=" not in line:
                    continue
                key, val = line.split("=", 1)
                key = key.strip()
                val = val.strip().strip('"').strip("'")
                if key:
                    values[key] = val
    except FileNotFoundError:
        # a missing .env file just means "environment only"
        pass
    return values


def _env_map(env_path: str | None) -> dict[str, str]:
    # actual environment takes precedence over the .env file
    file_env = _parse_env_file(env_path) if env_path else {}
    return {**file_env, **os.environ}


def _natural_key(var: str):
    # GEMINI_API_KEY, GEMINI_API_KEY_2, ..., GEMINI_API_KEY_10
    return [int(p) if p.isdigit() else p for p in re.split(r"(\d+)", var)]


def load_keyconfigs_from_env(
    names: Iterable[str] | None = None,
    prefix: str | None = None,
    env_path: str | None = None,
    **kwargs,
) -> list[KeyConfig]:
    """Create KeyConfig objects from environment variables.

    - If 'names' is provided, look up each explicit env var name in the given order.
    - If 'prefix' is provided, take every env var whose name starts with the prefix,
        in natural name order (KEY, KEY_2, ..., KEY_10), so rotation order is stable.
    - If both are provided, results are combined, names first.
    - Empty values are skipped, and a token seen twice is only kept once.
    - If 'env_path' is provided, variables from the .env file augment lookups
        (without mutating the process environment). The real environment wins.

    kwargs keywords:
    to_lower_names: make names lowercase (default False)
    split_commas: split comma-separated values (default True)
    strip_prefix: strip prefix from names (default False)
    """
    env_map = _env_map(env_path)

    split_commas = kwargs.get("split_commas", True)
    to_lower_names = kwargs.get("to_lower_names", False)
    strip_prefix = kwargs.get("strip_prefix", False)

    found: list[tuple[str, str]] = []
    if names:
        found.extend((var, var) for var in names)
    if prefix:
        matches = sorted((v for v in env_map if v.startswith(prefix)), key=_natural_key)
        found.extend((var, var[len(prefix) :] if strip_prefix else var) for var in matches)

    results: list[KeyConfig] = []
    seen: set[str] = set()
    for var, name_part in found:
        raw = (env_map.get(var) or "").strip()
        if not raw:
            continue
        cfg_name = name_part.lower() if to_lower_names else name_part
        if split_commas and "," in raw:
            parts = [t.strip() for t in raw.split(",") if t.strip()]
            named = [(f"{cfg_name}_{idx + 1}", part) for idx, part in enumerate(parts)]
        else:
            named = [(cfg_name, raw)]
        for name, token in named:
            if token in seen:
                continue
            seen.add(token)
            results.append(KeyConfig(name=name, token=token))
    return results


def _parse_bool(var: str, raw: str) -> bool:
    val = raw.strip().lower()
    if val in _TRUE:
        return True
    if val in _FALSE:
        return False
    raise ConfigurationError(f"keyrotor: {var} must be a boolean, got {raw!r}")


def load_dispatch_config_from_env(
    prefix: str = "KEYROTOR_", env_path: str | None = None
) -> DispatchConfig:
    """Read DispatchConfig from <prefix>BLACKLIST_TTL (seconds), <prefix>MAX_ATTEMPTS
    and <prefix>ATTEMPT_WHEN_EXHAUSTED. Unset or empty variables keep the defaults.
    """
    env_map = _env_map(env_path)

    def _get(name: str) -> str | None:
        raw = env_map.get(f"{prefix}{name}")
        return raw if raw and raw.strip() else None

    ttl = DEFAULT_BLACKLIST_TTL
    max_attempts = None
    attempt_when_exhausted = False
    raw_ttl = _get("BLACKLIST_TTL")
    raw_attempts = _get("MAX_ATTEMPTS")
    raw_exhausted = _get("ATTEMPT_WHEN_EXHAUSTED")
    try:
        if raw_ttl is not None:
            ttl = float(raw_ttl)
        if raw_attempts is not None:
            max_attempts = int(raw_attempts)
    except ValueError as e:
        raise ConfigurationError(f"keyrotor: invalid numeric setting: {e}") from e
    if raw_exhausted is not None:
        attempt_when_exhausted = _parse_bool(f"{prefix}ATTEMPT_WHEN_EXHAUSTED", raw_exhausted)
    if ttl <= 0:
        raise ConfigurationError(f"keyrotor: {prefix}BLACKLIST_TTL must be positive")
    if max_attempts is not None and max_attempts < 1:
        raise ConfigurationError(f"keyrotor: {prefix}MAX_ATTEMPTS must be >= 1")
    return DispatchConfig(
        blacklist_ttl=ttl,
        max_attempts_per_provider=max_attempts,
        attempt_when_exhausted=attempt_when_exhausted,
    )
