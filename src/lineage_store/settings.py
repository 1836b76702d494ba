from __future__ import annotations

from pydantic import Field

try:
    from pydantic_settings import BaseSettings, SettingsConfigDict
except Exception as e:  # pragma: no cover
    raise RuntimeError(
        "pydantic-settings is required. Install with: pip install pydantic-settings"
    ) from e


class LineageStoreSettings(BaseSettings):
    """Unified configuration for the lineage store.

    Environment variables are prefixed with LINEAGE_STORE_.
    """

    model_config = SettingsConfigDict(env_prefix="LINEAGE_STORE_", extra="ignore")

    # --- Core ---
    log_level: str = Field(default="INFO", description="Python logging level")

    # --- Serializer ---
    dump_dir: str = Field(default="./lineage_dumps", description="Where dump_graph writes GraphML files")

    # --- Traversal ---
    max_hops: int = Field(default=256, ge=1, description="BFS depth budget for scoped traversals")
    time_budget_s: float = Field(default=10.0, gt=0, description="Wall-clock budget per traversal")
    cycle_policy: str = Field(default="include", description="include|prune")

    # --- Ingestion ---
    retry_attempts: int = Field(default=5, ge=1)
    retry_initial_wait_s: float = Field(default=0.05, ge=0)
    retry_max_wait_s: float = Field(default=2.0, ge=0)
    write_lock_timeout_s: float = Field(default=5.0, gt=0)

    # --- HTTP ---
    bind_host: str = "0.0.0.0"
    bind_port: int = 8090


settings = LineageStoreSettings()
