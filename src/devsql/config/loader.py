"""Configuration loading with pydantic-settings.

Supports loading configuration from multiple sources with precedence:
1. Direct kwargs (highest priority)
2. Environment variables (DEVSQL__SECTION__KEY)
3. CLAUDE_DATA_DIR / CODEX_HOME
4. Global config (~/.config/devsql/config.yaml)
5. Built-in defaults (lowest priority)
"""

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from devsql.config.models import (
    DevsqlConfig,
    LoggingConfig,
    MutationConfig,
    OutputConfig,
    SourcesConfig,
)
from devsql.core.errors import ConfigError

GLOBAL_CONFIG_PATH = Path("~/.config/devsql/config.yaml").expanduser()

# Variables the assistant CLIs themselves honor
_TOOL_ENV_VARS = {
    "CLAUDE_DATA_DIR": "data_dir",
    "CODEX_HOME": "codex_home",
}


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with path.open() as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError.parse_error(str(path), str(e)) from e
    if not isinstance(data, dict):
        raise ConfigError.parse_error(str(path), "top level must be a mapping")
    return data


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _tool_env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    sources = {
        field: environ[var] for var, field in _TOOL_ENV_VARS.items() if environ.get(var)
    }
    return {"sources": sources} if sources else {}


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
    """Create a Settings class bound to one pre-merged file layer."""

    class DevsqlSettings(BaseSettings):
        """Root config. Env vars: DEVSQL__LOGGING__LEVEL, DEVSQL__OUTPUT__FORMAT, etc."""

        model_config = SettingsConfigDict(
            env_prefix="DEVSQL__",
            env_nested_delimiter="__",
            case_sensitive=False,
        )

        logging: LoggingConfig = LoggingConfig()
        sources: SourcesConfig = SourcesConfig()
        output: OutputConfig = OutputConfig()
        mutation: MutationConfig = MutationConfig()

        @classmethod
        def settings_customise_sources(
            cls,
            settings_cls: type[BaseSettings],
            init_settings: PydanticBaseSettingsSource,
            env_settings: PydanticBaseSettingsSource,
            dotenv_settings: PydanticBaseSettingsSource,  # noqa: ARG003
            file_secret_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        ) -> tuple[PydanticBaseSettingsSource, ...]:
            # Precedence (first wins): init kwargs > env vars > yaml files
            return (init_settings, env_settings, _YamlSource(settings_cls, yaml_config))

    return DevsqlSettings


def load_config(config_path: Path | None = None, **kwargs: Any) -> DevsqlConfig:
    """Load config: defaults < yaml < tool env vars < DEVSQL__ env vars < kwargs.

    Args:
        config_path: YAML file to read. Defaults to the global config path.
        **kwargs: Override values (highest precedence), keyed by section.

    Returns:
        Fully resolved configuration object.

    Raises:
        ConfigError: On invalid YAML syntax or validation errors.
    """
    yaml_config = _load_yaml(config_path or GLOBAL_CONFIG_PATH)
    yaml_config = _deep_merge(yaml_config, _tool_env_overrides(os.environ))

    settings_cls = _make_settings_class(yaml_config)
    try:
        settings = settings_cls(**kwargs)
    except ValidationError as e:
        err = e.errors()[0]
        field = ".".join(str(loc) for loc in err["loc"])
        raise ConfigError.invalid_value(field, err.get("input"), err["msg"]) from e
    return DevsqlConfig.model_validate(settings.model_dump())
