"""GenForge configuration.

Centralised, typed configuration for the service. All settings use Pydantic
v2 models so they are validated at construction time and can be built from
environment variables without boiler-plate.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from genforge.errors import ConfigError
from genforge.utils import ensure_dir

_TRUE_VALUES = {"1", "true", "yes", "on"}


class ModelConfig(BaseModel):
    """Configuration for the text-generation provider (Gemini REST API)."""

    url: str = Field(default="https://generativelanguage.googleapis.com/v1beta")
    name: str = Field(default="gemini-2.5-flash")
    timeout: int = Field(default=120, ge=10, description="Per-request timeout in seconds")
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)


class ServerConfig(BaseModel):
    """HTTP listener settings."""

    host: str = Field(default="0.0.0.0")
    port: int = Field(default=5000, ge=1, le=65535)
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])


class Config(BaseModel):
    """Global GenForge configuration.

    Holds every tuneable parameter and the derived on-disk layout. Built once
    by the CLI entry point (usually via :meth:`from_env`) and handed to
    :class:`~genforge.pipeline.GenerationPipeline`.
    """

    api_key: str = Field(default="", repr=False)
    data_dir: Path = Field(default=Path("./data"))
    dataset_dir: Path | None = Field(default=None)
    few_shot_limit: int = Field(default=30, ge=0, description="Dataset examples put in the prompt")
    max_history_messages: int | None = Field(
        default=None, ge=2, description="Trim session history past this many messages"
    )
    debug: bool = Field(default=False, description="Attach raw-output previews to failures")
    model: ModelConfig = Field(default_factory=ModelConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)

    # ------------------------------------------------------------------
    # Derived paths (read-only properties)
    # ------------------------------------------------------------------

    @property
    def projects_dir(self) -> Path:
        """Root of the materialized project trees."""
        return self.data_dir / "projects"

    @property
    def archives_dir(self) -> Path:
        """Directory holding ``<project_id>.zip`` archives."""
        return self.data_dir / "archives"

    @property
    def diagnostics_dir(self) -> Path:
        """Where unparseable model output is saved for inspection."""
        return self.data_dir / "debug"

    # ------------------------------------------------------------------
    # Construction / validation
    # ------------------------------------------------------------------

    @classmethod
    def from_env(cls) -> "Config":
        """Build a ``Config`` from environment variables.

        Recognised variables (all optional here; see :meth:`require_api_key`):
            GOOGLE_API_KEY, GENFORGE_DATA_DIR, GENFORGE_DATASET_DIR,
            GENFORGE_FEW_SHOT_LIMIT, GENFORGE_MAX_HISTORY, GENFORGE_DEBUG,
            GENFORGE_MODEL, GENFORGE_MODEL_URL, GENFORGE_MODEL_TIMEOUT,
            GENFORGE_TEMPERATURE, GENFORGE_HOST, PORT.
        """
        model_kwargs: dict[str, Any] = {}
        if os.environ.get("GENFORGE_MODEL"):
            model_kwargs["name"] = os.environ["GENFORGE_MODEL"]
        if os.environ.get("GENFORGE_MODEL_URL"):
            model_kwargs["url"] = os.environ["GENFORGE_MODEL_URL"]
        if os.environ.get("GENFORGE_MODEL_TIMEOUT"):
            model_kwargs["timeout"] = int(os.environ["GENFORGE_MODEL_TIMEOUT"])
        if os.environ.get("GENFORGE_TEMPERATURE"):
            model_kwargs["temperature"] = float(os.environ["GENFORGE_TEMPERATURE"])

        server_kwargs: dict[str, Any] = {}
        if os.environ.get("GENFORGE_HOST"):
            server_kwargs["host"] = os.environ["GENFORGE_HOST"]
        if os.environ.get("PORT"):
            server_kwargs["port"] = int(os.environ["PORT"])

        kwargs: dict[str, Any] = {}
        if os.environ.get("GENFORGE_DATASET_DIR"):
            kwargs["dataset_dir"] = Path(os.environ["GENFORGE_DATASET_DIR"])
        if os.environ.get("GENFORGE_FEW_SHOT_LIMIT"):
            kwargs["few_shot_limit"] = int(os.environ["GENFORGE_FEW_SHOT_LIMIT"])
        if os.environ.get("GENFORGE_MAX_HISTORY"):
            kwargs["max_history_messages"] = int(os.environ["GENFORGE_MAX_HISTORY"])

        return cls(
            api_key=os.environ.get("GOOGLE_API_KEY", ""),
            data_dir=Path(os.environ.get("GENFORGE_DATA_DIR", "./data")),
            debug=os.environ.get("GENFORGE_DEBUG", "").strip().lower() in _TRUE_VALUES,
            model=ModelConfig(**model_kwargs),
            server=ServerConfig(**server_kwargs),
            **kwargs,
        )

    def require_api_key(self) -> str:
        """Return the provider credential.

        Raises:
            ConfigError: If no key is configured. The service must not start
                without one.
        """
        if not self.api_key.strip():
            raise ConfigError(
                "Missing GOOGLE_API_KEY",
                hint="Set GOOGLE_API_KEY in the environment or in a .env file.",
            )
        return self.api_key

    def ensure_directories(self) -> None:
        """Create all derived directories that must exist before serving."""
        for directory in (self.projects_dir, self.archives_dir, self.diagnostics_dir):
            ensure_dir(directory)
