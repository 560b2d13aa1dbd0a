"""Application configuration.

Configuration is loaded from environment variables. For local development, you can provide a
`.env` file and set `DEVTRAIL_ENV_FILE` to point to it.
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """devtrail settings.

    All fields are environment-configurable. Prefix is `DEVTRAIL_`.
    """

    model_config = SettingsConfigDict(
        env_prefix="DEVTRAIL_",
        env_file=None,
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Core
    log_level: str = Field(default="INFO")

    # Reasoning collaborator (OpenAI-compatible)
    openai_api_key: str | None = Field(default=None)
    openai_base_url: str | None = Field(default=None)
    openai_timeout_s: float = Field(default=120.0)
    judge_model: str = Field(default="gpt-4o-mini")
    worker_model: str = Field(default="gpt-4o-mini")
    synthesis_model: str = Field(default="gpt-4o")
    embedding_model: str = Field(default="text-embedding-3-small")
    # Must match the width of the interaction_embeddings.embedding column
    embedding_dimensions: int = Field(default=1024, ge=1)

    # History datastore
    database_url: str | None = Field(default=None)

    # Durable event log (optional)
    redis_enabled: bool = Field(default=False)
    redis_url: str = Field(default="redis://localhost:6379/0")
    redis_key_prefix: str = Field(default="devtrail")
    redis_ttl_seconds: int = Field(default=60 * 60 * 24 * 7, ge=60)

    # Exploration loop
    max_iterations: int = Field(default=5, ge=1, le=50)
    max_workers: int = Field(default=5, ge=1, le=64)
    worker_stagger_s: float = Field(default=0.1, ge=0.0, le=10.0)

    # Relevance gate
    judge_batch_size: int = Field(default=10, ge=1, le=100)
    judge_admission_score: int = Field(default=7, ge=0, le=10)
    max_concurrent_judges: int = Field(default=8, ge=1, le=64)

    # Investigation
    max_leads_per_turn: int = Field(default=2, ge=0, le=10)
    peer_findings_window: int = Field(default=5, ge=0, le=100)

    # Synthesis
    synthesis_interval_s: float = Field(default=2.0, ge=0.01, le=600.0)
    final_findings_limit: int = Field(default=50, ge=1, le=1000)

    # Sessions held by one Explorer; finished ones beyond this are evicted
    max_retained_sessions: int = Field(default=100, ge=1)

    # Artifacts
    artifacts_dir: Path = Field(default=Path("artifacts"))


def load_settings() -> Settings:
    """Load settings from env.

    Returns:
        Settings: Parsed settings.
    """

    env_file_override = os.getenv("DEVTRAIL_ENV_FILE")
    if env_file_override:
        env_path = Path(env_file_override)
        return Settings(_env_file=env_path)

    default_env = Path.cwd() / ".env"
    if default_env.exists():
        return Settings(_env_file=default_env)

    return Settings()
