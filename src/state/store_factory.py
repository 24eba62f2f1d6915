# src/state/store_factory.py — v1
"""Factory for state store instantiation."""

from __future__ import annotations

from sitepipe.config.settings import Settings
from sitepipe.state.base_state_store import BaseStateStore


def create_state_store(settings: Settings | None = None) -> BaseStateStore:
    """Instantiate the configured state backend.

    Args:
        settings: Application settings. Defaults to a JSON store under
            ``.sitepipe/state``.

    Returns:
        Configured BaseStateStore implementation.
    """
    backend = "json" if settings is None else settings.state_backend
    root = ".sitepipe/state" if settings is None else str(settings.state_root)

    if backend == "json":
        from sitepipe.state.json_store import JsonStateStore

        return JsonStateStore(root=root)

    if backend == "sqlite":
        from sitepipe.state.sqlite_store import SqliteStateStore

        return SqliteStateStore(db_path=f"{root}/sitepipe_state.db")

    if backend == "redis":
        from sitepipe.state.redis_store import RedisStateStore

        if settings is None or not settings.state_redis_url:
            raise ValueError("STATE_REDIS_URL must be set when STATE_BACKEND=redis")
        return RedisStateStore(
            redis_url=settings.state_redis_url, namespace=settings.pipeline_name
        )

    raise ValueError(f"Unsupported state backend: {backend!r}")
