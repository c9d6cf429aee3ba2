"""Unified configuration for fleet payments.

Settings come from dataclass defaults and can be overridden from the
environment, the same way the HTTP extraction settings are read.

Environment (optional):
  FP_CHUNK_SIZE=30          # ids per reference query (provider "in" limit)
  FP_FETCH_TIMEOUT=5        # seconds to wait for a batch of reference queries
  FP_MAX_WORKERS            # cap on concurrent reference queries (default: one per chunk)
  FP_TZ=Africa/Blantyre     # timezone for "today" windows and export dates
  FP_FIRESTORE_PROJECT      # Firestore project id
  FP_FIRESTORE_DATABASE     # database id, default "(default)"
  FP_FIRESTORE_TOKEN        # OAuth bearer token
  FP_FIRESTORE_API_KEY      # API key (alternative to a token)
  FP_SCHEDULES_COLLECTION   # default "schedules"
  FP_HTTP_TIMEOUT=60        # seconds per HTTP request
  FP_HTTP_RETRIES=3
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

from fleet_payments.exceptions import ConfigError

# Firestore "in" queries accept at most 30 values
DEFAULT_CHUNK_SIZE = 30


def _env_number(
    env: Mapping[str, str], name: str, default: float, cast: type, allow_zero: bool = False
) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = cast(raw.strip().strip('"').strip("'"))
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from e
    if value < 0 or (value == 0 and not allow_zero):
        raise ConfigError(f"{name} must be positive, got {raw!r}")
    return value


def _env_workers(env: Mapping[str, str]) -> int | None:
    raw = env.get("FP_MAX_WORKERS")
    if raw is None or raw.strip() == "":
        return None
    return int(_env_number(env, "FP_MAX_WORKERS", 0, int))


@dataclass
class PipelineConfig:
    """Settings for the payment aggregation pipeline.

    Attributes:
        chunk_size: Maximum number of schedule ids per reference query.
        fetch_timeout: Seconds each reference chunk may run. All chunks start
            together, so one deadline covers the batch. Chunks still running
            at the deadline count as failed.
        max_workers: Optional cap on concurrently running reference queries.
            None starts every chunk at once. With a cap, chunks run in waves
            and the batch deadline grows to ``fetch_timeout`` per wave.
        timezone: IANA timezone name used for "today" windows, daily marts and
            export dates. None means the system local timezone.
    """

    chunk_size: int = DEFAULT_CHUNK_SIZE
    fetch_timeout: float = 5.0
    max_workers: int | None = None
    timezone: str | None = None

    def __post_init__(self) -> None:
        if self.chunk_size < 1:
            raise ConfigError(f"chunk_size must be at least 1, got {self.chunk_size}")
        if self.fetch_timeout <= 0:
            raise ConfigError(f"fetch_timeout must be positive, got {self.fetch_timeout}")
        if self.max_workers is not None and self.max_workers < 1:
            raise ConfigError(f"max_workers must be at least 1, got {self.max_workers}")

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> PipelineConfig:
        """Create a PipelineConfig from FP_* environment variables.

        Args:
            env: Mapping to read from. Defaults to os.environ.

        Returns:
            PipelineConfig instance.

        Raises:
            ConfigError: If a variable is set to an invalid value.

        Examples:
            >>> PipelineConfig.from_env({"FP_CHUNK_SIZE": "10"}).chunk_size
            10
        """
        if env is None:
            env = os.environ
        tz = (env.get("FP_TZ") or "").strip() or None
        return cls(
            chunk_size=int(_env_number(env, "FP_CHUNK_SIZE", DEFAULT_CHUNK_SIZE, int)),
            fetch_timeout=float(_env_number(env, "FP_FETCH_TIMEOUT", 5.0, float)),
            max_workers=_env_workers(env),
            timezone=tz,
        )


@dataclass
class FirestoreSettings:
    """Connection settings for the Firestore REST schedule source.

    Attributes:
        project_id: Google Cloud project id.
        database: Firestore database id.
        token: Optional OAuth bearer token.
        api_key: Optional API key, sent as the ``key`` query parameter.
        collection: Collection holding schedule documents.
        timeout: Default HTTP timeout in seconds.
        retries: Retry attempts for transient HTTP failures.
    """

    project_id: str
    database: str = "(default)"
    token: str | None = None
    api_key: str | None = None
    collection: str = "schedules"
    timeout: float = 60.0
    retries: int = 3

    @property
    def documents_root(self) -> str:
        """Resource name prefix of every document in the database."""
        return f"projects/{self.project_id}/databases/{self.database}/documents"

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> FirestoreSettings:
        """Create FirestoreSettings from FP_FIRESTORE_* environment variables.

        Raises:
            ConfigError: If FP_FIRESTORE_PROJECT is missing or numbers are invalid.
        """
        if env is None:
            env = os.environ
        project = (env.get("FP_FIRESTORE_PROJECT") or "").strip().strip('"').strip("'")
        if not project:
            raise ConfigError("FP_FIRESTORE_PROJECT is required for the Firestore schedule source")
        return cls(
            project_id=project,
            database=(env.get("FP_FIRESTORE_DATABASE") or "(default)").strip(),
            token=(env.get("FP_FIRESTORE_TOKEN") or "").strip() or None,
            api_key=(env.get("FP_FIRESTORE_API_KEY") or "").strip() or None,
            collection=(env.get("FP_SCHEDULES_COLLECTION") or "schedules").strip(),
            timeout=float(_env_number(env, "FP_HTTP_TIMEOUT", 60.0, float)),
            retries=int(_env_number(env, "FP_HTTP_RETRIES", 3, int, allow_zero=True)),
        )
