"""Runtime configuration and logging setup."""

import logging
import os
import secrets
import tempfile
from typing import Mapping, Optional

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from errors import MalformedInputError


ENV_PREFIX = "DATATOOLKIT_"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class ToolkitConfig(BaseSettings):
    """Settings shared by the web app and the command line, read from DATATOOLKIT_* variables."""

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        case_sensitive=False,
        env_ignore_empty=True,
        extra="ignore",
    )

    upload_folder: str = Field(
        default_factory=lambda: os.path.join(tempfile.gettempdir(), "datatoolkit_uploads")
    )
    max_content_length: int = Field(default=16 * 1024 * 1024, gt=0)  # 16MB max upload
    log_level: str = "INFO"
    output_column: str = "Check Number"
    merged_sheet_name: str = "Merged Lag Report"
    report_sheet_name: str = "Validation Report"
    secret_key: str = Field(default_factory=lambda: secrets.token_hex(16))

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalise_level(cls, value: str) -> str:
        return str(value).strip().upper()

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ToolkitConfig":
        """
        Build a config from DATATOOLKIT_* environment variables.

        Args:
            environ: Mapping to read instead of os.environ

        Raises:
            MalformedInputError: If a setting fails validation
        """
        try:
            if environ is None:
                return cls()
            overrides = {
                key[len(ENV_PREFIX):].lower(): value
                for key, value in environ.items()
                if key.upper().startswith(ENV_PREFIX) and value not in (None, "")
            }
            return cls(**overrides)
        except ValidationError as e:
            fields = ", ".join(
                ENV_PREFIX + str(error["loc"][0]).upper() for error in e.errors() if error["loc"]
            )
            raise MalformedInputError(f"Invalid configuration for {fields}: {e}") from e


def configure_logging(level: str = "INFO"):
    """Send toolkit logs to stderr at the given level."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )
