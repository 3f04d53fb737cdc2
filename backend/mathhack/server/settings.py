"""Contest server configuration via environment variables."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from mathhack.logic.settings import ContestSettings
from shared.validators import StringListEnvSettingsSource, parse_string_list

if TYPE_CHECKING:
    from pydantic_settings.sources.base import PydanticBaseSettingsSource


class ContestServerSettings(BaseSettings):
    model_config = {"env_prefix": "MATHHACK_"}

    max_sessions: int = Field(default=100, ge=1)
    log_dir: str = Field(default="backend/logs/server", min_length=1)
    cors_origins: list[str] = ["http://localhost:5173"]

    heartbeat_timeout_seconds: float = Field(default=30, gt=0)
    heartbeat_check_interval_seconds: float = Field(default=5, gt=0)
    effect_sweep_interval_seconds: float = Field(default=30, gt=0)
    finished_session_retention_seconds: float = Field(default=300, ge=0)
    max_decode_errors: int = Field(default=5, ge=1)
    code_allocation_attempts: int = Field(default=10, ge=1)

    # Gameplay switches exposed to operators; the rest of ContestSettings keeps its defaults.
    skip_counts_as_wrong: bool = False

    @field_validator("cors_origins", mode="before")
    @classmethod
    def validate_cors_origins(cls, v: str | list[str]) -> list[str]:
        return parse_string_list(v)

    def contest_settings(self) -> ContestSettings:
        return ContestSettings(skip_counts_as_wrong=self.skip_counts_as_wrong)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return init_settings, StringListEnvSettingsSource(settings_cls), dotenv_settings, file_secret_settings
