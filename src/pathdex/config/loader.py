"""Configuration loading with PyYAML, pydantic and pydantic-settings.

The config document is read from (first match wins):
1. An explicit path passed by the caller
2. $PATHDEX_CONFIG
3. ~/.config/pathdex/config.yaml

Daemon settings precedence (highest first):
1. Direct kwargs
2. Environment variables (PATHDEX__SECTION__KEY)
3. The config document
4. Built-in defaults
"""

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from pathdex.config.constants import INDEX_KEYS, default_config_path
from pathdex.config.models import (
    IndexConfig,
    LoggingConfig,
    PathdexConfig,
    ServerConfig,
    TimeoutsConfig,
    WatcherConfig,
)
from pathdex.core.errors import ConfigError


def _load_yaml(path: Path) -> dict[str, Any]:
    """Read a YAML mapping. Missing file -> {}; empty or null document -> {}."""
    if not path.exists():
        return {}
    try:
        with path.open() as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError.parse_error(str(path), str(e)) from e
    except OSError as e:
        raise ConfigError.parse_error(str(path), e.strerror or str(e)) from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError.parse_error(
            str(path), f"top level must be a mapping, got {type(data).__name__}"
        )
    return data


def read_document(path: Path | None = None, *, required: bool = True) -> dict[str, Any]:
    """Load the raw config document.

    Raises:
        ConfigError: If the file is missing (when required) or not valid YAML.
    """
    path = path or default_config_path()
    if required and not path.exists():
        raise ConfigError.file_not_found(str(path))
    return _load_yaml(path)


def _error_field(loc: tuple[int | str, ...]) -> str:
    return ".".join(str(part) for part in loc) or "directories"


def _convert_validation_error(e: ValidationError) -> ConfigError:
    """Map the first pydantic error onto a typed ConfigError."""
    err = e.errors()[0]
    loc = tuple(err["loc"])
    field = _error_field(loc)
    reason = str(err["msg"]).removeprefix("Value error, ")
    value = err.get("input")

    if err["type"] == "missing":
        return ConfigError.missing_required(field)
    if "ignored" in loc:
        return ConfigError.invalid_pattern(field, value, reason)
    if not loc or loc[-1] == "path":
        return ConfigError.invalid_directory(field, value, reason)
    return ConfigError.invalid_value(field, value, reason)


def parse_index_config(document: dict[str, Any]) -> IndexConfig:
    """Build an IndexConfig from the ``ignored``/``directories`` keys of a document.

    Raises:
        ConfigError: On invalid patterns, unreadable directories, or bad structure.
    """
    data = {key: document[key] for key in INDEX_KEYS if key in document}
    for key in INDEX_KEYS:
        if key in data and data[key] is None:
            data[key] = []
    try:
        return IndexConfig.model_validate(data)
    except ValidationError as e:
        raise _convert_validation_error(e) from e


def load_index_config(path: Path | None = None) -> IndexConfig:
    """Read and validate the index part of the config document."""
    return parse_index_config(read_document(path))


class _YamlSource(PydanticBaseSettingsSource):
    """Settings source that reads from pre-loaded YAML config."""

    def __init__(self, settings_cls: type[BaseSettings], yaml_config: dict[str, Any]) -> None:
        super().__init__(settings_cls)
        self._yaml_config = yaml_config

    def get_field_value(
        self,
        field: Any,  # noqa: ARG002
        field_name: str,
    ) -> tuple[Any, str, bool]:
        val = self._yaml_config.get(field_name)
        return val, field_name, val is not None

    def __call__(self) -> dict[str, Any]:
        return self._yaml_config


def _make_settings_class(yaml_config: dict[str, Any]) -> type[BaseSettings]:
    """Create a Settings class with instance-based YAML source (thread-safe)."""

    class PathdexSettings(BaseSettings):
        """Root config. Env vars: PATHDEX__LOGGING__LEVEL, PATHDEX__SERVER__SOCKET_PATH, etc."""

        model_config = SettingsConfigDict(
            env_prefix="PATHDEX__",
            env_nested_delimiter="__",
            case_sensitive=False,
            extra="ignore",
        )

        logging: LoggingConfig = LoggingConfig()
        server: ServerConfig = ServerConfig()
        watcher: WatcherConfig = WatcherConfig()
        timeouts: TimeoutsConfig = TimeoutsConfig()

        @classmethod
        def settings_customise_sources(
            cls,
            settings_cls: type[BaseSettings],
            init_settings: PydanticBaseSettingsSource,
            env_settings: PydanticBaseSettingsSource,
            dotenv_settings: PydanticBaseSettingsSource,  # noqa: ARG003
            file_secret_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        ) -> tuple[PydanticBaseSettingsSource, ...]:
            # Precedence (first wins): init kwargs > env vars > yaml document
            return (init_settings, env_settings, _YamlSource(settings_cls, yaml_config))

    return PathdexSettings


def load_settings(
    path: Path | None = None,
    *,
    document: dict[str, Any] | None = None,
    **kwargs: Any,
) -> PathdexConfig:
    """Load daemon settings: defaults < document < env vars < kwargs.

    The document is optional here: clients only need the socket path and
    must work without a config file.

    Raises:
        ConfigError: On invalid YAML syntax or validation errors.
    """
    if document is None:
        document = read_document(path, required=False)
    yaml_config = {k: v for k, v in document.items() if k not in INDEX_KEYS}

    settings_cls = _make_settings_class(yaml_config)
    try:
        settings = settings_cls(**kwargs)
    except ValidationError as e:
        err = e.errors()[0]
        field = ".".join(str(loc) for loc in err["loc"])
        raise ConfigError.invalid_value(field, err.get("input"), err["msg"]) from e
    return PathdexConfig.model_validate(settings.model_dump())
