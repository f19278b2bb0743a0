"""
extman Configuration Management

Provides validated configuration loaded from the environment, an optional
.env file and explicit overrides (usually the command-line options).
"""

from pathlib import Path
from typing import Any, List, Optional

from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .. import __version__
from .exceptions import ConfigurationError

DEFAULT_ROOT_PATH = Path.home() / ".extman"
DEFAULT_RETRIES = 5
DEV_SUCCESS_MESSAGE = "built extension successfully"


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Logging level")
    file_path: Optional[str] = Field(default=None, description="Log file path")
    max_file_size: int = Field(
        default=10_000_000, description="Max log file size in bytes"
    )
    backup_count: int = Field(default=5, description="Number of backup log files")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v.upper()


class ExtmanConfig(BaseSettings):
    """Main extman configuration."""

    # Storage
    root_path: Path = Field(
        default=DEFAULT_ROOT_PATH, description="Extensions root directory"
    )

    # Remote API
    api_url: str = Field(
        default="https://api.github.com", description="GitHub API base URL"
    )
    token: Optional[str] = Field(
        default=None,
        description="GitHub API token",
        validation_alias=AliasChoices("EXTMAN_TOKEN", "GITHUB_TOKEN"),
    )
    retries: int = Field(
        default=DEFAULT_RETRIES, description="Retries for failed remote requests"
    )
    request_timeout: float = Field(
        default=30.0, description="Remote request timeout in seconds"
    )
    user_agent: str = Field(
        default=f"extman/{__version__}", description="User-Agent header"
    )
    verify_tag_order: bool = Field(
        default=True,
        description="Confirm tag freshness with commit dates before updating",
    )

    # Decisions
    assume_yes: bool = Field(default=False, description="Skip confirmations")
    interactive: bool = Field(
        default=True, description="Ask the user when a choice is ambiguous"
    )

    # Install
    packages: List[str] = Field(
        default_factory=list, description="Monorepo package paths to install"
    )
    run_build: bool = Field(
        default=True, description="Run the package manager after installing"
    )
    dev_args: List[str] = Field(
        default_factory=lambda: ["ray", "develop"],
        description="Arguments of the development build command",
    )
    dev_success_message: str = Field(
        default=DEV_SUCCESS_MESSAGE,
        description="Output line that marks a finished development build",
    )

    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix="EXTMAN_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    @field_validator("root_path", mode="before")
    @classmethod
    def expand_root_path(cls, v: Any) -> Path:
        return Path(v).expanduser()

    @field_validator("retries")
    @classmethod
    def validate_retries(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"Invalid retries: {v}. Must be zero or more")
        return v

    @field_validator("packages", mode="before")
    @classmethod
    def normalize_packages(cls, v: Any) -> List[str]:
        if v is None:
            return []
        if isinstance(v, str):
            v = [v]
        return [p.strip("/") for p in v if p and p.strip("/")]

    @property
    def manifest_path(self) -> Path:
        return self.root_path / "manifest.json"


def load_config(**overrides: Any) -> ExtmanConfig:
    """
    Load configuration from the environment and apply explicit overrides.

    Overrides whose value is None are ignored so unset command-line options
    do not mask environment values.

    Args:
        **overrides: Configuration values that take precedence

    Returns:
        Loaded configuration instance

    Raises:
        ConfigurationError: If a value fails validation
    """
    try:
        return ExtmanConfig(**{k: v for k, v in overrides.items() if v is not None})
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid configuration: {e.error_count()} error(s)",
            {".".join(str(p) for p in err["loc"]): err["msg"] for err in e.errors()},
        ) from e
