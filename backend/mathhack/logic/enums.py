"""
String enum definitions for contest concepts.
"""

from enum import StrEnum


class SessionStatus(StrEnum):
    """Lifecycle of a contest session. FINISHED is terminal."""

    WAITING = "waiting"
    ACTIVE = "active"
    FINISHED = "finished"


class Operation(StrEnum):
    ADDITION = "addition"
    SUBTRACTION = "subtraction"
    MULTIPLICATION = "multiplication"
    DIVISION = "division"

    @property
    def symbol(self) -> str:
        return _OPERATION_SYMBOLS[self]


_OPERATION_SYMBOLS = {
    Operation.ADDITION: "+",
    Operation.SUBTRACTION: "-",
    Operation.MULTIPLICATION: "×",
    Operation.DIVISION: "÷",
}


class PowerUpType(StrEnum):
    """Power-ups a player can buy with credits."""

    SLOW = "slow"
    FREEZE = "freeze"
    SHIELD = "shield"
    HACK = "hack"


class EffectKind(StrEnum):
    """Timed status effects tracked per player. Hack starts a duel instead."""

    SLOW = "slow"
    FREEZE = "freeze"
    SHIELD = "shield"


class LogEntryType(StrEnum):
    POWERUP = "powerup"
    CREDIT_CHANGE = "credit_change"
    HACK_START = "hack_start"
    HACK_COMPLETE = "hack_complete"
    GAME_START = "game_start"
    GAME_END = "game_end"
    PLAYER_JOIN = "player_join"


class DuelOutcome(StrEnum):
    ATTACKER_WON = "attackerWon"
    DEFENDER_WON = "defenderWon"
    FORFEIT = "forfeit"
    GAME_ENDED = "gameEnded"


class GameEndReason(StrEnum):
    TIME_UP = "timeUp"
    HOST_ENDED = "hostEnded"


class SessionErrorCode(StrEnum):
    """Error codes sent to clients in session_error frames."""

    INVALID_MESSAGE = "invalid_message"
    INVALID_REQUEST = "invalid_request"
    INVALID_TARGET = "invalid_target"
    SESSION_NOT_FOUND = "session_not_found"
    PLAYER_NOT_FOUND = "player_not_found"
    NOT_IN_SESSION = "not_in_session"
    IDENTITY_MISMATCH = "identity_mismatch"
    ALREADY_JOINED = "already_joined"
    SESSION_FULL = "session_full"
    GAME_ALREADY_STARTED = "game_already_started"
    GAME_NOT_ACTIVE = "game_not_active"
    NOT_HOST = "not_host"
    PLAYERS_NOT_READY = "players_not_ready"
    NOT_ENOUGH_PLAYERS = "not_enough_players"
    DUEL_IN_PROGRESS = "duel_in_progress"
    TARGET_OFFLINE = "target_offline"
    PLAYER_FROZEN = "player_frozen"
    NO_ACTIVE_QUESTION = "no_active_question"
    INSUFFICIENT_CREDITS = "insufficient_credits"
    CODE_SPACE_EXHAUSTED = "code_space_exhausted"
    SERVER_AT_CAPACITY = "server_at_capacity"
    RATE_LIMITED = "rate_limited"
    INTERNAL_ERROR = "internal_error"
