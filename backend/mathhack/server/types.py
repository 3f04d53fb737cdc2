"""Request bodies for the REST endpoints."""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

_ID_FIELD = Field(min_length=1, max_length=64)
_NAME_FIELD = Field(min_length=1, max_length=32)


class _RequestModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        str_strip_whitespace=True,
    )


class CreateSessionRequest(_RequestModel):
    host_id: str = _ID_FIELD
    host_name: str = _NAME_FIELD
    max_players: int = Field(default=4, ge=2, le=8, strict=True)
    game_duration: int = Field(default=15, ge=1, le=60, strict=True)


class JoinSessionRequest(_RequestModel):
    code: str = Field(min_length=6, max_length=6)
    player_id: str = _ID_FIELD
    name: str = _NAME_FIELD
