"""Typed settings for the workspace tooling.

Settings are read from ``UVWS_*`` environment variables through
``pydantic_settings.BaseSettings``. Validation failures surface as
:class:`~uvworkspace.errors.SettingsError` carrying the pydantic error list,
so the CLI can emit a Problem Details payload and fail fast.

``UV_PROJECT_ENVIRONMENT`` is honoured for the project environment location,
matching the variable uv itself reads.

Examples
--------
>>> from uvworkspace.settings import load_settings
>>> settings = load_settings()
>>> settings.docs_config
'mkdocs.yml'
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Final, Literal

from pydantic import AliasChoices, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from uvworkspace.errors import SettingsError

__all__: Final[list[str]] = [
    "WorkspaceToolSettings",
    "get_settings",
    "load_settings",
]

type LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class WorkspaceToolSettings(BaseSettings):
    """Runtime configuration for the ``uvws`` command suite."""

    model_config = SettingsConfigDict(
        env_prefix="UVWS_", case_sensitive=False, extra="ignore", populate_by_name=True
    )

    log_level: LogLevel = Field(default="WARNING", description="Root logging level")
    log_json: bool = Field(default=False, description="Emit JSON log lines on stderr")
    envelope_dir: Path | None = Field(
        default=None,
        description="Directory receiving CLI envelopes; envelopes are not written when unset",
    )
    docs_config: str = Field(
        default="mkdocs.yml",
        description="Documentation configuration file name, relative to the workspace root",
    )
    strict: bool = Field(default=False, description="Treat warnings as failures in `uvws check`")
    project_environment: Path | None = Field(
        default=None,
        validation_alias=AliasChoices("UV_PROJECT_ENVIRONMENT", "UVWS_PROJECT_ENVIRONMENT"),
        description=(
            "Project virtual environment path; relative paths resolve against the workspace root"
        ),
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalise_level(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().upper()
        return value


def load_settings(**overrides: object) -> WorkspaceToolSettings:
    """Instantiate settings with structured error handling.

    Parameters
    ----------
    **overrides : object
        Explicit field values taking precedence over the environment.

    Returns
    -------
    WorkspaceToolSettings
        Validated settings instance.

    Raises
    ------
    SettingsError
        Raised when validation fails; the pydantic errors are attached.
    """
    try:
        return WorkspaceToolSettings(**overrides)  # type: ignore[arg-type]
    except ValidationError as exc:
        errors: list[dict[str, object]] = [
            {
                "loc": ".".join(str(part) for part in error["loc"]),
                "msg": error["msg"],
                "type": error["type"],
            }
            for error in exc.errors()
        ]
        message = "Failed to load uvws settings"
        raise SettingsError(message, errors=errors, cause=exc) from exc


@lru_cache(maxsize=1)
def get_settings() -> WorkspaceToolSettings:
    """Return process-wide settings loaded from the environment."""
    return load_settings()
