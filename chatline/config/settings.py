"""Root settings model for chatline configuration."""

from typing import Any

from pydantic import Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from chatline.config.models.directline import DirectLineConfig
from chatline.config.models.observability import ObservabilityConfig
from chatline.config.models.session import SessionConfig

# Merged TOML tables, installed by get_settings() before Settings is built
_toml_config: dict[str, Any] = {}


def set_toml_config(config: dict[str, Any]) -> None:
    global _toml_config
    _toml_config = config


class TomlConfigSettingsSource(PydanticBaseSettingsSource):
    """Feeds the merged TOML tables to pydantic-settings."""

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:  # noqa: ARG002
        value = _toml_config.get(field_name)
        return value, field_name, value is not None

    def __call__(self) -> dict[str, Any]:
        return dict(_toml_config)


class Settings(BaseSettings):
    """chatline settings: one section per concern.

    Sources, lowest priority first: model defaults, config/default.toml,
    config/{CHATLINE_ENV}.toml, CHATLINE_* environment variables
    (``__`` separates nested keys, e.g. ``CHATLINE_SESSION__MODE=pull``).
    """

    model_config = SettingsConfigDict(
        env_prefix="CHATLINE_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    directline: DirectLineConfig = Field(
        default_factory=DirectLineConfig,
        description="Remote endpoint and HTTP client options",
    )
    session: SessionConfig = Field(
        default_factory=SessionConfig,
        description="Defaults for Conversation.start",
    )
    observability: ObservabilityConfig = Field(
        default_factory=ObservabilityConfig,
        description="Logging options",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        file_secret_settings: PydanticBaseSettingsSource,  # noqa: ARG003
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Earlier sources take precedence
        return (
            init_settings,
            env_settings,
            TomlConfigSettingsSource(settings_cls),
        )
