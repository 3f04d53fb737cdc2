from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from mathhack.logic.enums import DuelOutcome, EffectKind, GameEndReason, PowerUpType, SessionErrorCode
from mathhack.logic.exceptions import MalformedMessageError

_PLAYER_ID_FIELD = Field(min_length=1, max_length=64)


class ClientMessageType(StrEnum):
    JOIN_SESSION = "joinSession"
    START_GAME = "startGame"
    TOGGLE_READY = "toggleReady"
    SUBMIT_ANSWER = "submitAnswer"
    USE_POWER_UP = "usePowerUp"
    START_HACK = "startHack"
    SKIP_QUESTION = "skipQuestion"
    END_GAME = "endGame"
    PING = "ping"


class ServerMessageType(StrEnum):
    GAME_STATE = "gameState"
    PLAYER_JOINED = "playerJoined"
    PLAYER_UPDATED = "playerUpdated"
    GAME_STARTED = "gameStarted"
    NEW_QUESTION = "newQuestion"
    ANSWER_SUBMITTED = "answerSubmitted"
    HACK_STARTED = "hackStarted"
    HACK_PROGRESS = "hackProgress"
    HACK_COMPLETED = "hackCompleted"
    POWER_UP_USED = "powerUpUsed"
    QUESTION_SKIPPED = "questionSkipped"
    GAME_LOG_UPDATED = "gameLogUpdated"
    GAME_ENDED = "gameEnded"
    ERROR = "session_error"
    PONG = "pong"


class _CamelModel(BaseModel):
    """camelCase on the wire, snake_case in Python. Unknown fields are ignored."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class _ServerMessage(_CamelModel):
    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# --- Client -> server ---


class _SessionScopedMessage(_CamelModel):
    """Messages that may repeat the sender's identity; it must match the binding."""

    session_id: int | None = None
    player_id: str | None = None


class JoinSessionMessage(_CamelModel):
    type: Literal[ClientMessageType.JOIN_SESSION] = ClientMessageType.JOIN_SESSION
    session_id: int = Field(ge=1)
    player_id: str = _PLAYER_ID_FIELD


class StartGameMessage(_SessionScopedMessage):
    type: Literal[ClientMessageType.START_GAME] = ClientMessageType.START_GAME


class ToggleReadyMessage(_SessionScopedMessage):
    type: Literal[ClientMessageType.TOGGLE_READY] = ClientMessageType.TOGGLE_READY


class SubmitAnswerMessage(_SessionScopedMessage):
    type: Literal[ClientMessageType.SUBMIT_ANSWER] = ClientMessageType.SUBMIT_ANSWER
    answer: int


class UsePowerUpMessage(_SessionScopedMessage):
    type: Literal[ClientMessageType.USE_POWER_UP] = ClientMessageType.USE_POWER_UP
    power_up_type: PowerUpType
    target_id: str | None = Field(default=None, max_length=64)


class StartHackMessage(_SessionScopedMessage):
    type: Literal[ClientMessageType.START_HACK] = ClientMessageType.START_HACK
    target_id: str = _PLAYER_ID_FIELD


class SkipQuestionMessage(_SessionScopedMessage):
    type: Literal[ClientMessageType.SKIP_QUESTION] = ClientMessageType.SKIP_QUESTION


class EndGameMessage(_SessionScopedMessage):
    type: Literal[ClientMessageType.END_GAME] = ClientMessageType.END_GAME


class PingMessage(_CamelModel):
    type: Literal[ClientMessageType.PING] = ClientMessageType.PING


ClientMessage = Annotated[
    JoinSessionMessage
    | StartGameMessage
    | ToggleReadyMessage
    | SubmitAnswerMessage
    | UsePowerUpMessage
    | StartHackMessage
    | SkipQuestionMessage
    | EndGameMessage
    | PingMessage,
    Field(discriminator="type"),
]

SessionScopedMessage = (
    StartGameMessage
    | ToggleReadyMessage
    | SubmitAnswerMessage
    | UsePowerUpMessage
    | StartHackMessage
    | SkipQuestionMessage
    | EndGameMessage
)

_client_message_adapter = TypeAdapter(ClientMessage)


def parse_client_message(data: dict[str, Any]) -> ClientMessage:
    """Parse a raw dict into a typed ClientMessage.

    Raises MalformedMessageError if the dict matches no client message.
    """
    try:
        return _client_message_adapter.validate_python(data)
    except ValidationError as e:
        raise MalformedMessageError("invalid message") from e


# --- Server -> client ---


class GameStateMessage(_ServerMessage):
    type: Literal[ServerMessageType.GAME_STATE] = ServerMessageType.GAME_STATE
    session: dict[str, Any]
    players: list[dict[str, Any]]
    current_question: dict[str, Any] | None = None
    active_effects: dict[str, dict[str, float]] = Field(default_factory=dict)  # player id -> effect kind -> seconds left
    duels: list[dict[str, Any]] = Field(default_factory=list)


class PlayerJoinedMessage(_ServerMessage):
    type: Literal[ServerMessageType.PLAYER_JOINED] = ServerMessageType.PLAYER_JOINED
    players: list[dict[str, Any]]


class PlayerUpdatedMessage(_ServerMessage):
    type: Literal[ServerMessageType.PLAYER_UPDATED] = ServerMessageType.PLAYER_UPDATED
    player: dict[str, Any]


class GameStartedMessage(_ServerMessage):
    type: Literal[ServerMessageType.GAME_STARTED] = ServerMessageType.GAME_STARTED
    session: dict[str, Any]


class NewQuestionMessage(_ServerMessage):
    type: Literal[ServerMessageType.NEW_QUESTION] = ServerMessageType.NEW_QUESTION
    question: dict[str, Any]


class AnswerSubmittedMessage(_ServerMessage):
    type: Literal[ServerMessageType.ANSWER_SUBMITTED] = ServerMessageType.ANSWER_SUBMITTED
    player_id: str
    is_correct: bool
    correct_answer: int
    player: dict[str, Any]


class HackStartedMessage(_ServerMessage):
    type: Literal[ServerMessageType.HACK_STARTED] = ServerMessageType.HACK_STARTED
    hacker_id: str
    target_id: str
    hacker_name: str
    target_name: str


class HackProgressMessage(_ServerMessage):
    type: Literal[ServerMessageType.HACK_PROGRESS] = ServerMessageType.HACK_PROGRESS
    hacker_id: str
    target_id: str
    attacker_progress: int
    defender_progress: int


class HackCompletedMessage(_ServerMessage):
    type: Literal[ServerMessageType.HACK_COMPLETED] = ServerMessageType.HACK_COMPLETED
    hacker_id: str
    target_id: str
    success: bool
    credits_stolen: int = 0
    reason: DuelOutcome | None = None  # set only for forfeit and gameEnded


class PowerUpUsedMessage(_ServerMessage):
    type: Literal[ServerMessageType.POWER_UP_USED] = ServerMessageType.POWER_UP_USED
    user_id: str
    effect: EffectKind
    target_id: str
    duration: int
    blocked: bool = False


class QuestionSkippedMessage(_ServerMessage):
    type: Literal[ServerMessageType.QUESTION_SKIPPED] = ServerMessageType.QUESTION_SKIPPED
    player_id: str
    player: dict[str, Any]


class GameLogUpdatedMessage(_ServerMessage):
    type: Literal[ServerMessageType.GAME_LOG_UPDATED] = ServerMessageType.GAME_LOG_UPDATED
    game_log: list[dict[str, Any]]


class GameEndedMessage(_ServerMessage):
    type: Literal[ServerMessageType.GAME_ENDED] = ServerMessageType.GAME_ENDED
    players: list[dict[str, Any]]
    reason: GameEndReason


class ErrorMessage(_ServerMessage):
    type: Literal[ServerMessageType.ERROR] = ServerMessageType.ERROR
    code: SessionErrorCode
    message: str


class PongMessage(_ServerMessage):
    type: Literal[ServerMessageType.PONG] = ServerMessageType.PONG
