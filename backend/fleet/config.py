"""Runtime configuration for the fleet dashboard."""

from __future__ import annotations

import dataclasses
import os
from pathlib import Path
from typing import Any

DEFAULT_MAX_UPLOAD_BYTES = 5 * 1024 * 1024
DEFAULT_SESSION_TTL_MINUTES = 12 * 60


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
class DashboardConfig:
    """Dashboard configuration.

    Parameters
    ----------
    database_path : Path
        SQLite file holding vehicles, readings, complaints and documents.
    storage_dir : Path
        Directory where uploaded SOP and retro documents are written.
    max_upload_bytes : int
        Largest accepted document upload.
    session_ttl_minutes : int
        Lifetime of a sign-in token.
    seed_defaults : bool
        Create the default accounts and demo fleet on start-up.
    """

    database_path: Path = Path("fleet_dashboard.db")
    storage_dir: Path = Path("documents")
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
    session_ttl_minutes: int = DEFAULT_SESSION_TTL_MINUTES
    seed_defaults: bool = True

    @classmethod
    def from_env(cls, **overrides: Any) -> DashboardConfig:
        """Create configuration from ``FLEET_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        db_env = env.get("FLEET_DB_PATH")
        if db_env:
            config_kwargs["database_path"] = Path(db_env)
        storage_env = env.get("FLEET_STORAGE_DIR")
        if storage_env:
            config_kwargs["storage_dir"] = Path(storage_env)

        upload_env = env.get("FLEET_MAX_UPLOAD_BYTES")
        if upload_env is not None:
            config_kwargs["max_upload_bytes"] = int(upload_env)
        ttl_env = env.get("FLEET_SESSION_TTL_MINUTES")
        if ttl_env is not None:
            config_kwargs["session_ttl_minutes"] = int(ttl_env)
        config_kwargs["seed_defaults"] = _env_bool(env.get("FLEET_SEED_DEFAULTS"), True)

        for key in ("database_path", "storage_dir"):
            if key in overrides and overrides[key] is not None:
                overrides[key] = Path(overrides[key])
        config_kwargs.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**config_kwargs)
