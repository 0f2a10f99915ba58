"""Room server configuration via environment variables."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from shared.validators import StringListEnvSettingsSource, parse_optional_origin, parse_string_list

if TYPE_CHECKING:
    from pydantic_settings.sources.base import PydanticBaseSettingsSource


class MafiaServerSettings(BaseSettings):
    model_config = {"env_prefix": "MAFIA_"}

    log_dir: str | None = "backend/logs/mafia"
    cors_origins: list[str] = ["http://localhost:5173"]
    ws_allowed_origin: str | None = None  # None disables the WebSocket origin check

    disconnect_grace_seconds: float = Field(default=1800, gt=0)  # 30 minutes to come back
    room_max_idle_seconds: float = Field(default=7200, gt=0)
    sweep_interval_seconds: float = Field(default=300, gt=0)
    max_rooms: int = Field(default=500, ge=1)

    # Signs host and player session tickets; rotating it invalidates every ticket.
    session_secret: str = Field(min_length=1)

    @field_validator("cors_origins", mode="before")
    @classmethod
    def validate_cors_origins(cls, v: str | list[str]) -> list[str]:
        return parse_string_list(v, allow_empty=True)

    @field_validator("ws_allowed_origin", mode="before")
    @classmethod
    def validate_ws_allowed_origin(cls, v: str | None) -> str | None:
        return parse_optional_origin(v)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (init_settings, StringListEnvSettingsSource(settings_cls), dotenv_settings, file_secret_settings)
