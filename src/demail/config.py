"""Configuration for demail runs using pydantic-settings."""

import os
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from demail.exceptions import ConfigError
from demail.mail.config import IMAPConfig
from demail.mail.models import DateRange


class YamlConfigSettingsSource(PydanticBaseSettingsSource):
    """Settings source that loads connection defaults from a YAML file.

    Looks for config file in the following order:
    1. DEMAIL_CONFIG_FILE environment variable
    2. ./demail.yaml (current directory)
    3. $XDG_CONFIG_HOME/demail/config.yaml (defaults to ~/.config)
    """

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:
        """Get field value from YAML config."""
        yaml_data = self._load_yaml_config()
        field_value = yaml_data.get(field_name)
        return field_value, field_name, False

    def __call__(self) -> dict[str, Any]:
        """Return all settings from YAML config."""
        return self._load_yaml_config()

    def _load_yaml_config(self) -> dict[str, Any]:
        """Load and cache YAML config file."""
        if not hasattr(self, "_yaml_data"):
            self._yaml_data = self._read_yaml_file()
        return self._yaml_data

    def _read_yaml_file(self) -> dict[str, Any]:
        xdg_config = os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config")
        config_paths = [
            os.environ.get("DEMAIL_CONFIG_FILE"),
            Path.cwd() / "demail.yaml",
            Path(xdg_config) / "demail" / "config.yaml",
        ]

        for path in config_paths:
            if not path:
                continue
            path_obj = Path(path)
            if not path_obj.exists():
                continue
            try:
                with open(path_obj) as f:
                    data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                mark = getattr(e, "problem_mark", None)
                raise ConfigError(
                    f"Invalid YAML syntax: {getattr(e, 'problem', None) or e}",
                    file_path=str(path_obj),
                    line=mark.line + 1 if mark else None,
                    col=mark.column + 1 if mark else None,
                ) from e
            except OSError as e:
                raise ConfigError(
                    f"Cannot read config file: {e}",
                    file_path=str(path_obj),
                ) from e
            if data is None:
                return {}
            if not isinstance(data, dict):
                raise ConfigError("Top level must be a mapping", file_path=str(path_obj))
            return data

        return {}


class Settings(BaseSettings):
    """Connection defaults loaded from DEMAIL_* environment variables or YAML.

    Command line flags take precedence over anything loaded here, so a
    password never has to appear in the shell history:

        DEMAIL_HOST=imap.example.com DEMAIL_PASSWORD=... demail list-folders
    """

    model_config = SettingsConfigDict(env_prefix="DEMAIL_", extra="ignore")

    host: str | None = None
    port: int | None = None
    ssl: bool | None = None
    username: str | None = None
    password: SecretStr | None = None
    timeout: float | None = None
    log_level: str = "WARNING"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customize settings sources to include YAML config."""
        return (
            init_settings,
            env_settings,
            YamlConfigSettingsSource(settings_cls),
            dotenv_settings,
            file_secret_settings,
        )


class RunMode(str, Enum):
    """The operations a single invocation can perform."""

    LIST_FOLDERS = "list-folders"
    LIST_MESSAGES = "list-messages"
    DOWNLOAD_ATTACHMENTS = "download-attachments"
    DOWNLOAD_MESSAGES = "download-messages"

    @property
    def needs_folder(self) -> bool:
        return self is not RunMode.LIST_FOLDERS

    @property
    def downloads(self) -> bool:
        return self in (RunMode.DOWNLOAD_ATTACHMENTS, RunMode.DOWNLOAD_MESSAGES)


class RunOptions(BaseModel):
    """Validated input for one run."""

    mode: RunMode
    imap: IMAPConfig
    folder: str | None = None
    archive: str | None = None
    dates: DateRange = Field(default_factory=DateRange)
    directory: Path | None = None
    include_message: bool = False

    @field_validator("archive")
    @classmethod
    def _empty_archive_means_none(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            return None
        return v

    @model_validator(mode="after")
    def _check_mode_requirements(self) -> "RunOptions":
        if self.mode.needs_folder and not self.folder:
            raise ValueError(f"{self.mode.value} requires a folder")
        if self.mode.downloads:
            if self.directory is None:
                raise ValueError(f"{self.mode.value} requires a directory")
            if not self.directory.is_dir():
                raise ValueError(f"Not an existing directory: {self.directory}")
        return self
