"""Host server configuration via environment variables."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from bingo.logic.settings import DEFAULT_CALL_INTERVAL_SECONDS
from shared.validators import OriginListEnvSettingsSource, is_valid_lobby_id, parse_origin_list

if TYPE_CHECKING:
    from pydantic_settings.sources.base import PydanticBaseSettingsSource


class HostServerSettings(BaseSettings):
    model_config = {"env_prefix": "BINGO_"}

    host_id: str = Field(default="local-host", min_length=1, max_length=100)
    host_name: str = Field(default="Host", min_length=1, max_length=50)
    # Unset means a fresh 6-digit id is generated at start-up.
    lobby_id: str | None = None
    database_path: str = Field(default="backend/data/bingo.db", min_length=1)
    log_dir: str = Field(default="backend/logs/bingo", min_length=1)
    cors_origins: list[str] = ["http://localhost:8712"]
    join_timeout_seconds: float = Field(default=15.0, gt=0)
    default_call_interval_seconds: float = Field(default=DEFAULT_CALL_INTERVAL_SECONDS, gt=0)

    @field_validator("lobby_id")
    @classmethod
    def validate_lobby_id(cls, v: str | None) -> str | None:
        if v is not None and not is_valid_lobby_id(v):
            raise ValueError("lobby_id must be 4 to 12 digits")
        return v

    @field_validator("cors_origins", mode="before")
    @classmethod
    def validate_cors_origins(cls, v: str | list[str]) -> list[str]:
        return parse_origin_list(v)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return init_settings, OriginListEnvSettingsSource(settings_cls), dotenv_settings, file_secret_settings
