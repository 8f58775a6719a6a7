"""Store configuration for herdstore."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from herdstore.exceptions import HerdConfigError

BACKEND_MEMORY = "memory"
BACKEND_REMOTE = "remote"
BACKENDS = frozenset({BACKEND_MEMORY, BACKEND_REMOTE})


def _env_float(name: str, value: str) -> float:
    try:
        return float(value)
    except ValueError as exc:
        raise HerdConfigError(f"{name} must be a number, got {value!r}") from exc


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class StoreConfig:
    """Store configuration.

    Parameters
    ----------
    backend : str
        ``"memory"`` for the in-memory reference stores or ``"remote"``
        for stores backed by a document database.
    project_id : str or None
        Firestore project id.  Required when ``backend`` is ``"remote"``
        and no backend instance is supplied.
    database : str
        Firestore database id.
    base_url : str
        Firestore REST API base URL (override for the local emulator).
    poll_interval : float
        Seconds between collection polls used by REST listeners.
    http_timeout : float
        Total timeout in seconds for one REST request.
    trace_snapshots : bool
        Log one DEBUG line per snapshot delivered to a listener.
    """

    backend: str = BACKEND_MEMORY
    project_id: str | None = None
    database: str = "(default)"
    base_url: str = "https://firestore.googleapis.com"
    poll_interval: float = 2.0
    http_timeout: float = 10.0
    trace_snapshots: bool = False

    @classmethod
    def from_env(cls, **overrides: Any) -> StoreConfig:
        """Create configuration from ``HERDSTORE_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        env = os.environ

        _ENV_CONFIG_MAP = {
            "HERDSTORE_BACKEND": "backend",
            "HERDSTORE_PROJECT_ID": "project_id",
            "HERDSTORE_DATABASE": "database",
            "HERDSTORE_BASE_URL": "base_url",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val.strip()

        poll_env = env.get("HERDSTORE_POLL_INTERVAL")
        if poll_env is not None and "poll_interval" not in overrides:
            config_kwargs["poll_interval"] = _env_float("HERDSTORE_POLL_INTERVAL", poll_env)

        timeout_env = env.get("HERDSTORE_HTTP_TIMEOUT")
        if timeout_env is not None and "http_timeout" not in overrides:
            config_kwargs["http_timeout"] = _env_float("HERDSTORE_HTTP_TIMEOUT", timeout_env)

        if "trace_snapshots" not in overrides:
            config_kwargs["trace_snapshots"] = _env_bool(env.get("HERDSTORE_TRACE_SNAPSHOTS"), False)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
