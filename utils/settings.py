"""Runtime configuration read once from the environment.

`Settings.from_env()` is called by the app lifespan (unless settings are
injected through `main.create_app()`) and the resulting
object is attached to `app.state.settings`. Services receive it (or the
individual values they need) through their constructors.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

DEFAULT_SCORING_MODELS: Tuple[str, ...] = (
    "gpt-4o-mini",
    "gpt-4o",
    "gpt-4.1-mini",
)


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    try:
        return float(raw) if raw is not None and raw.strip() else default
    except ValueError as exc:
        raise RuntimeError(f"{name} must be a number, got {raw!r}") from exc


def _env_models(name: str) -> Tuple[str, ...]:
    raw = os.getenv(name) or ""
    models = tuple(part.strip() for part in raw.split(",") if part.strip())
    return models or DEFAULT_SCORING_MODELS


@dataclass(frozen=True)
class Settings:
    """Application settings.

    Attributes:
        database_dir: Directory holding the SQLite file (`app.db`).
        storage_dir: Root directory of the object store buckets.
        public_base_url: Externally reachable base URL of this service.
        scoring_function_url: Endpoint the upload flow calls to score a post.
        storage_bucket: Bucket name for meal photos.
        scoring_models: Model priority list for the inference ladder.
        reset_database_on_startup: Drop the SQLite file on first use.
    """

    database_dir: Path
    storage_dir: Path
    public_base_url: str = "http://localhost:8000"
    scoring_function_url: str = "http://localhost:8000/functions/v1/score-food"
    storage_bucket: str = "food-photos"
    scoring_models: Tuple[str, ...] = field(default=DEFAULT_SCORING_MODELS)
    reset_database_on_startup: bool = False
    log_level: str = "INFO"

    upload_max_retries: int = 3
    scoring_max_attempts: int = 3
    overload_base_delay: float = 1.0
    body_parse_timeout: float = 5.0
    image_fetch_timeout: float = 15.0
    inference_timeout: float = 20.0
    database_timeout: float = 10.0
    trigger_timeout: float = 30.0
    shutdown_grace_period: float = 5.0

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables.

        Raises:
            RuntimeError: If DATABASE_DIR is missing or a value is malformed.
        """
        env_dir = os.getenv("DATABASE_DIR")
        if env_dir is None or not env_dir.strip():
            raise RuntimeError(
                "DATABASE_DIR environment variable must be set to a writable "
                "directory path where the SQLite database file will be stored."
            )
        database_dir = Path(env_dir).expanduser()

        storage_env: Optional[str] = os.getenv("STORAGE_DIR")
        storage_dir = Path(storage_env).expanduser() if storage_env else database_dir / "storage"

        public_base_url = (os.getenv("PUBLIC_BASE_URL") or "http://localhost:8000").rstrip("/")
        scoring_url = os.getenv("SCORING_FUNCTION_URL") or f"{public_base_url}/functions/v1/score-food"

        return cls(
            database_dir=database_dir,
            storage_dir=storage_dir,
            public_base_url=public_base_url,
            scoring_function_url=scoring_url,
            storage_bucket=os.getenv("STORAGE_BUCKET") or "food-photos",
            scoring_models=_env_models("SCORING_MODELS"),
            reset_database_on_startup=_env_bool("DATABASE_RESET_ON_STARTUP"),
            log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
            trigger_timeout=_env_float("SCORING_TRIGGER_TIMEOUT", 30.0),
            inference_timeout=_env_float("SCORING_INFERENCE_TIMEOUT", 20.0),
            shutdown_grace_period=_env_float("SHUTDOWN_GRACE_PERIOD", 5.0),
        )
