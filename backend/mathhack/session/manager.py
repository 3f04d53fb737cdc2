from __future__ import annotations

import asyncio
import contextlib
import random
from typing import TYPE_CHECKING, Any

import structlog

from mathhack.logic import difficulty, game_log
from mathhack.logic.duels import DuelProgress, steal_amount
from mathhack.logic.enums import (
    DuelOutcome,
    EffectKind,
    GameEndReason,
    LogEntryType,
    PowerUpType,
    SessionErrorCode,
    SessionStatus,
)
from mathhack.logic.exceptions import (
    ConflictError,
    InsufficientFundsError,
    NotFoundError,
    RequestValidationError,
)
from mathhack.logic.powerups import POWER_UPS, get_power_up
from mathhack.logic.questions import generate_question
from mathhack.logic.settings import ContestSettings
from mathhack.logic.types import GameLogEntry, PlayerRecord, SessionRecord, utcnow
from mathhack.messaging.types import (
    AnswerSubmittedMessage,
    GameEndedMessage,
    GameLogUpdatedMessage,
    GameStartedMessage,
    GameStateMessage,
    HackCompletedMessage,
    HackProgressMessage,
    HackStartedMessage,
    NewQuestionMessage,
    PlayerJoinedMessage,
    PlayerUpdatedMessage,
    PongMessage,
    PowerUpUsedMessage,
    QuestionSkippedMessage,
)
from mathhack.session.broadcast import broadcast_to_players, send_to_player
from mathhack.session.codes import DEFAULT_ATTEMPTS
from mathhack.session.heartbeat import HEARTBEAT_CHECK_INTERVAL, HEARTBEAT_TIMEOUT, HeartbeatMonitor
from mathhack.session.lobby import LobbyService
from mathhack.session.models import Player, SessionRuntime
from mathhack.session.store import PlayerStore, SessionStore
from mathhack.session.timer_manager import TimerManager

if TYPE_CHECKING:
    from mathhack.logic.types import Question
    from mathhack.messaging.protocol import ConnectionProtocol

logger = structlog.get_logger()

EFFECT_SWEEP_INTERVAL = 30  # seconds between expired-effect sweeps
FINISHED_RETENTION = 300  # seconds a finished session stays readable before it is forgotten


class SessionManager:
    """Coordinate every live session: bindings, gameplay rules and broadcasts.

    Each session has a SessionRuntime whose lock serializes all mutating
    handlers for that session. Store writes complete before the broadcast that
    reports them, and broadcasts are emitted under the lock so every client
    sees events in causal order.
    """

    def __init__(
        self,
        settings: ContestSettings | None = None,
        *,
        sessions: SessionStore | None = None,
        players: PlayerStore | None = None,
        max_sessions: int = 100,
        code_attempts: int = DEFAULT_ATTEMPTS,
        heartbeat_timeout_seconds: float = HEARTBEAT_TIMEOUT,
        heartbeat_check_interval_seconds: float = HEARTBEAT_CHECK_INTERVAL,
        effect_sweep_interval_seconds: float = EFFECT_SWEEP_INTERVAL,
        finished_retention_seconds: float = FINISHED_RETENTION,
        rng: random.Random | None = None,
    ) -> None:
        self._settings = settings or ContestSettings()
        self._sessions = sessions or SessionStore()
        self._players = players or PlayerStore()
        self._rng = rng or random.Random()  # noqa: S311
        self._lobby = LobbyService(
            self._sessions,
            self._players,
            self._settings,
            max_sessions=max_sessions,
            code_attempts=code_attempts,
        )
        self._connections: dict[str, ConnectionProtocol] = {}
        self._bindings: dict[str, Player] = {}  # connection_id -> Player
        self._runtimes: dict[int, SessionRuntime] = {}  # session_id -> SessionRuntime
        self._timer_manager = TimerManager(on_timeout=self._handle_game_timeout)
        self._heartbeat = HeartbeatMonitor(
            timeout_seconds=heartbeat_timeout_seconds,
            check_interval_seconds=heartbeat_check_interval_seconds,
        )
        self._sweep_interval = effect_sweep_interval_seconds
        self._retention = finished_retention_seconds
        self._release_timers = TimerManager(on_timeout=self._release_session)

    @property
    def settings(self) -> ContestSettings:
        return self._settings

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def session_counts(self) -> dict[str, int]:
        return {status.value: count for status, count in self._sessions.count_by_status().items()}

    def get_runtime(self, session_id: int) -> SessionRuntime | None:
        return self._runtimes.get(session_id)

    def get_binding(self, connection_id: str) -> Player | None:
        return self._bindings.get(connection_id)

    def _runtime_for(self, session_id: int) -> SessionRuntime:
        runtime = self._runtimes.get(session_id)
        if runtime is None:
            runtime = SessionRuntime(session_id=session_id, duel_target=self._settings.duel_target)
            self._runtimes[session_id] = runtime
        return runtime

    # --- REST collaborators ---

    async def create_session(
        self,
        *,
        host_id: str,
        host_name: str,
        max_players: int = 4,
        game_duration: int = 15,
    ) -> tuple[SessionRecord, PlayerRecord]:
        session, host = await self._lobby.create_session(
            host_id=host_id,
            host_name=host_name,
            max_players=max_players,
            game_duration=game_duration,
        )
        self._runtime_for(session.id)
        return session, host

    async def join_by_code(self, *, code: str, player_id: str, name: str) -> tuple[SessionRecord, PlayerRecord]:
        session = await self._lobby.resolve_code(code)
        runtime = self._runtime_for(session.id)
        async with runtime.lock:
            return await self._lobby.join_session(session.id, player_id=player_id, name=name)

    async def get_state(self, session_id: int, player_id: str | None = None) -> dict[str, Any]:
        """Session snapshot for one viewer: their current question only, answer withheld."""
        runtime = self._runtimes.get(session_id)
        lock = runtime.lock if runtime is not None else contextlib.nullcontext()
        async with lock:
            session, players = await self._lobby.get_state(session_id)
            question = runtime.questions.get(player_id) if runtime is not None and player_id else None
            return self._state_payload(session, players, question, runtime)

    def _state_payload(
        self,
        session: SessionRecord,
        players: list[PlayerRecord],
        question: Question | None,
        runtime: SessionRuntime | None,
    ) -> dict[str, Any]:
        """Snapshot for a (re)joining client, including effects and duels already in progress."""
        effects: dict[str, dict[str, float]] = {}
        duels: list[dict[str, Any]] = []
        if runtime is not None:
            for player in players:
                active = runtime.effects.active_effects(player.player_id)
                if active:
                    effects[player.player_id] = {kind.value: round(left, 1) for kind, left in active.items()}
            duels = [duel.to_wire() for duel in runtime.duels.active()]
        return {
            "session": session.view(self._settings.log_broadcast_window),
            "players": [p.to_wire() for p in players],
            "currentQuestion": question.public_view() if question is not None else None,
            "activeEffects": effects,
            "duels": duels,
        }

    # --- Connection lifecycle ---

    def register_connection(self, connection: ConnectionProtocol) -> None:
        self._connections[connection.connection_id] = connection
        self._heartbeat.record_connect(connection.connection_id)

    def record_activity(self, connection: ConnectionProtocol) -> None:
        self._heartbeat.record_activity(connection.connection_id)

    async def handle_ping(self, connection: ConnectionProtocol) -> None:
        """Respond to client ping with pong."""
        self._heartbeat.record_activity(connection.connection_id)
        await connection.send_message(PongMessage().to_wire())

    async def handle_disconnect(self, connection: ConnectionProtocol) -> None:
        """Drop a connection's binding and forfeit duels its player can no longer play."""
        self._connections.pop(connection.connection_id, None)
        self._heartbeat.record_disconnect(connection.connection_id)
        binding = self._bindings.pop(connection.connection_id, None)
        if binding is None:
            return

        runtime = self._runtimes.get(binding.session_id)
        if runtime is None:
            return

        async with runtime.lock:
            runtime.players.pop(connection.connection_id, None)
            if not runtime.is_connected(binding.player_id):
                progress = runtime.duels.forfeit(binding.player_id)
                if progress is not None:
                    await self._finish_duel_without_transfer(runtime, [progress])
                    logger.info("hack duel forfeited", duel_id=progress.duel_id, player_id=binding.player_id)

        if runtime.is_empty:
            await self._heartbeat.stop_for_session(binding.session_id)
            session = await self._sessions.get(binding.session_id)
            if session is not None and session.status == SessionStatus.FINISHED:
                # Records stay readable until the retention timer releases them.
                self._runtimes.pop(binding.session_id, None)
                logger.info("finished session runtime dropped", session_id=binding.session_id)

    async def join_session(self, connection: ConnectionProtocol, session_id: int, player_id: str) -> None:
        """Bind a connection to a player and send them the current state.

        A newer connection for the same player replaces the older one, which
        is closed once the lock is released.
        """
        current = self._bindings.get(connection.connection_id)
        if current is not None and (current.session_id, current.player_id) != (session_id, player_id):
            raise ConflictError(
                "connection is already bound to another player",
                code=SessionErrorCode.IDENTITY_MISMATCH,
            )

        if self._runtimes.get(session_id) is None:
            await self._lobby.require_session(session_id)
        runtime = self._runtime_for(session_id)

        replaced: list[Player] = []
        async with runtime.lock:
            session = await self._lobby.require_session(session_id)
            player = await self._players.require(session_id, player_id)

            replaced = [p for p in runtime.connections_for(player_id) if p.connection_id != connection.connection_id]
            for old in replaced:
                runtime.players.pop(old.connection_id, None)
                self._bindings.pop(old.connection_id, None)

            binding = Player(connection=connection, session_id=session_id, player_id=player_id)
            runtime.players[connection.connection_id] = binding
            self._bindings[connection.connection_id] = binding
            structlog.contextvars.bind_contextvars(session_id=session_id, player_id=player_id)
            logger.info("player bound to session", name=player.name, replaced=len(replaced))

            players = await self._players.list_for_session(session_id)
            state = self._state_payload(session, players, runtime.questions.get(player_id), runtime)
            await connection.send_message(GameStateMessage.model_validate(state).to_wire())
            await self._broadcast(
                runtime,
                PlayerJoinedMessage(players=[p.to_wire() for p in players]).to_wire(),
            )

        self._heartbeat.start_for_session(session_id, self._runtimes.get)

        # Close outside the lock: the close triggers the disconnect handler.
        for old in replaced:
            with contextlib.suppress(RuntimeError, OSError, ConnectionError):
                await old.connection.close(code=1000, reason="replaced_by_reconnect")

    def require_binding(
        self,
        connection: ConnectionProtocol,
        session_id: int | None = None,
        player_id: str | None = None,
    ) -> Player:
        """Resolve who a connection speaks for, rejecting mismatched identities."""
        binding = self._bindings.get(connection.connection_id)
        if binding is None:
            raise ConflictError("join a session first", code=SessionErrorCode.NOT_IN_SESSION)
        if (session_id is not None and session_id != binding.session_id) or (
            player_id is not None and player_id != binding.player_id
        ):
            raise ConflictError(
                "message identity does not match this connection",
                code=SessionErrorCode.IDENTITY_MISMATCH,
            )
        return binding

    def _runtime_of(self, binding: Player) -> SessionRuntime:
        runtime = self._runtimes.get(binding.session_id)
        if runtime is None:
            raise NotFoundError(f"game session {binding.session_id} not found")
        return runtime

    async def _require_active(self, session_id: int) -> SessionRecord:
        session = await self._lobby.require_session(session_id)
        if session.status != SessionStatus.ACTIVE:
            raise ConflictError("game is not active", code=SessionErrorCode.GAME_NOT_ACTIVE)
        return session

    # --- Lobby actions ---

    async def toggle_ready(self, binding: Player) -> None:
        runtime = self._runtime_of(binding)
        async with runtime.lock:
            session = await self._lobby.require_session(binding.session_id)
            if session.status != SessionStatus.WAITING:
                raise ConflictError("game has already started", code=SessionErrorCode.GAME_ALREADY_STARTED)
            player = await self._players.require(binding.session_id, binding.player_id)
            player = await self._players.update(player.model_copy(update={"is_ready": not player.is_ready}))
            await self._broadcast(runtime, PlayerUpdatedMessage(player=player.to_wire()).to_wire())

    async def start_game(self, binding: Player) -> None:
        runtime = self._runtime_of(binding)
        async with runtime.lock:
            session = await self._lobby.require_session(binding.session_id)
            if session.status != SessionStatus.WAITING:
                raise ConflictError("game has already started", code=SessionErrorCode.GAME_ALREADY_STARTED)
            if binding.player_id != session.host_id:
                raise ConflictError("only the host can start the game", code=SessionErrorCode.NOT_HOST)

            players = await self._players.list_for_session(session.id)
            if len(players) < self._settings.min_players_to_start:
                raise ConflictError(
                    f"need at least {self._settings.min_players_to_start} players",
                    code=SessionErrorCode.NOT_ENOUGH_PLAYERS,
                )
            if not all(p.is_ready for p in players if p.player_id != session.host_id):
                raise ConflictError("all players must be ready", code=SessionErrorCode.PLAYERS_NOT_READY)

            for player in players:
                runtime.questions[player.player_id] = generate_question(player.difficulty_level, self._rng)

            host = next((p for p in players if p.player_id == session.host_id), None)
            entry = game_log.make_entry(LogEntryType.GAME_START, "The game has started", player=host)
            session = session.model_copy(
                update={
                    "status": SessionStatus.ACTIVE,
                    "game_start_time": utcnow(),
                    "question_number": session.question_number + len(players),
                },
            )
            session = await self._sessions.update(game_log.append(session, entry))

            self._timer_manager.start(session.id, session.game_duration * 60)
            self._start_effect_sweep(runtime)
            logger.info("game started", session_id=session.id, players=len(players))

            await self._broadcast(
                runtime,
                GameStartedMessage(session=session.view(self._settings.log_broadcast_window)).to_wire(),
            )
            for player in players:
                await send_to_player(
                    runtime.players,
                    player.player_id,
                    NewQuestionMessage(question=runtime.questions[player.player_id].public_view()).to_wire(),
                )
            await self._broadcast_log(runtime, session)

    # --- Gameplay ---

    async def submit_answer(self, binding: Player, answer: int) -> None:
        """Score an answer against the question this player was issued."""
        runtime = self._runtime_of(binding)
        if runtime.effects.is_active(binding.player_id, EffectKind.SLOW):
            # Slow delay is awaited outside the lock.
            await asyncio.sleep(self._settings.slow_answer_delay_seconds)

        async with runtime.lock:
            session = await self._require_active(binding.session_id)
            if runtime.effects.is_active(binding.player_id, EffectKind.FREEZE):
                raise ConflictError("you are frozen", code=SessionErrorCode.PLAYER_FROZEN)
            question = runtime.questions.get(binding.player_id)
            if question is None:
                raise ConflictError("no active question", code=SessionErrorCode.NO_ACTIVE_QUESTION)

            player = await self._players.require(binding.session_id, binding.player_id)
            is_correct = answer == question.answer
            entries: list[GameLogEntry] = []
            progress: DuelProgress | None = None
            robbed: PlayerRecord | None = None
            stolen = 0

            if is_correct:
                player, outcome = difficulty.apply_correct(player, self._settings)
                entries.append(
                    game_log.make_entry(
                        LogEntryType.CREDIT_CHANGE,
                        f"{player.name} answered correctly (+{outcome.credit_change})",
                        player=player,
                        credit_change=outcome.credit_change,
                    ),
                )
                progress = runtime.duels.record_correct(binding.player_id)
                if progress is not None and progress.outcome == DuelOutcome.ATTACKER_WON:
                    player, robbed, stolen, theft_entries = await self._transfer_theft(session, player, progress)
                    entries.extend(theft_entries)
                elif progress is not None and progress.outcome == DuelOutcome.DEFENDER_WON:
                    entries.append(await self._defence_entry(session, progress))
            else:
                player, outcome = difficulty.apply_wrong(player, self._settings)

            next_question = generate_question(player.difficulty_level, self._rng)
            runtime.questions[binding.player_id] = next_question
            player = await self._players.update(player)
            session = session.model_copy(update={"question_number": session.question_number + 1})
            session = await self._sessions.update(game_log.append(session, *entries))

            logger.info(
                "answer scored",
                correct=is_correct,
                credits=player.credits,
                difficulty_level=player.difficulty_level,
            )

            await self._broadcast(
                runtime,
                AnswerSubmittedMessage(
                    player_id=binding.player_id,
                    is_correct=is_correct,
                    correct_answer=question.answer,
                    player=player.to_wire(),
                ).to_wire(),
            )
            if progress is not None:
                await self._broadcast_duel_progress(runtime, progress, robbed=robbed, stolen=stolen)
            await send_to_player(
                runtime.players,
                binding.player_id,
                NewQuestionMessage(question=next_question.public_view()).to_wire(),
            )
            if entries:
                await self._broadcast_log(runtime, session)

    async def skip_question(self, binding: Player) -> None:
        runtime = self._runtime_of(binding)
        async with runtime.lock:
            session = await self._require_active(binding.session_id)
            if runtime.effects.is_active(binding.player_id, EffectKind.FREEZE):
                raise ConflictError("you are frozen", code=SessionErrorCode.PLAYER_FROZEN)
            if binding.player_id not in runtime.questions:
                raise ConflictError("no active question", code=SessionErrorCode.NO_ACTIVE_QUESTION)

            player = await self._players.require(binding.session_id, binding.player_id)
            if self._settings.skip_requires_credits and player.credits < self._settings.skip_cost:
                raise InsufficientFundsError(cost=self._settings.skip_cost, credits=player.credits)

            player, outcome = difficulty.apply_skip(player, self._settings)
            entry = game_log.make_entry(
                LogEntryType.CREDIT_CHANGE,
                f"{player.name} skipped a question ({outcome.credit_change})",
                player=player,
                credit_change=outcome.credit_change,
            )
            next_question = generate_question(player.difficulty_level, self._rng)
            runtime.questions[binding.player_id] = next_question
            player = await self._players.update(player)
            session = session.model_copy(update={"question_number": session.question_number + 1})
            session = await self._sessions.update(game_log.append(session, entry))

            await self._broadcast(
                runtime,
                QuestionSkippedMessage(player_id=binding.player_id, player=player.to_wire()).to_wire(),
            )
            await send_to_player(
                runtime.players,
                binding.player_id,
                NewQuestionMessage(question=next_question.public_view()).to_wire(),
            )
            await self._broadcast_log(runtime, session)

    async def use_power_up(self, binding: Player, power_up_type: PowerUpType, target_id: str | None) -> None:
        """Buy and apply a power-up. Every check runs before the caster is debited."""
        runtime = self._runtime_of(binding)
        async with runtime.lock:
            session = await self._require_active(binding.session_id)
            power_up = get_power_up(power_up_type)
            caster = await self._players.require(binding.session_id, binding.player_id)

            if power_up.self_only:
                if target_id not in (None, caster.player_id):
                    raise RequestValidationError(
                        f"{power_up.name} can only target yourself",
                        code=SessionErrorCode.INVALID_TARGET,
                    )
                target = caster
            else:
                if not target_id:
                    raise RequestValidationError("targetId is required", code=SessionErrorCode.INVALID_TARGET)
                if target_id == caster.player_id:
                    raise RequestValidationError(
                        f"{power_up.name} cannot target yourself",
                        code=SessionErrorCode.INVALID_TARGET,
                    )
                target = await self._players.require(binding.session_id, target_id)

            if power_up_type == PowerUpType.HACK:
                runtime.duels.ensure_can_start(caster.player_id, target.player_id)
                if not runtime.is_connected(target.player_id):
                    raise ConflictError(f"{target.name} is not connected", code=SessionErrorCode.TARGET_OFFLINE)
            if caster.credits < power_up.cost:
                raise InsufficientFundsError(cost=power_up.cost, credits=caster.credits)

            caster = caster.adjust_credits(-power_up.cost)
            if power_up_type == PowerUpType.HACK:
                await self._start_duel(runtime, session, caster, target)
            else:
                await self._apply_effect(runtime, session, caster, target, power_up_type)

    async def _apply_effect(
        self,
        runtime: SessionRuntime,
        session: SessionRecord,
        caster: PlayerRecord,
        target: PlayerRecord,
        power_up_type: PowerUpType,
    ) -> None:
        power_up = POWER_UPS[power_up_type]
        kind = power_up.effect_kind
        duration = power_up.duration_seconds or 0
        application = runtime.effects.apply(target.player_id, kind, duration)

        if not application.applied:
            details = f"{caster.name}'s {power_up.name} was blocked by {target.name}'s shield"
        elif target.player_id == caster.player_id:
            details = f"{caster.name} activated {power_up.name}"
        else:
            details = f"{caster.name} used {power_up.name} on {target.name}"
        entry = game_log.make_entry(
            LogEntryType.POWERUP,
            details,
            player=caster,
            target=target,
            credit_change=-power_up.cost,
        )

        caster = await self._players.update(caster)
        session = await self._sessions.update(game_log.append(session, entry))
        logger.info(
            "power-up used",
            power_up=power_up_type,
            target_id=target.player_id,
            blocked=not application.applied,
            cleansed=application.cleansed,
        )

        await self._broadcast(runtime, PlayerUpdatedMessage(player=caster.to_wire()).to_wire())
        await self._broadcast(
            runtime,
            PowerUpUsedMessage(
                user_id=caster.player_id,
                effect=kind,
                target_id=target.player_id,
                duration=duration,
                blocked=not application.applied,
            ).to_wire(),
        )
        await self._broadcast_log(runtime, session)

    async def _start_duel(
        self,
        runtime: SessionRuntime,
        session: SessionRecord,
        hacker: PlayerRecord,
        target: PlayerRecord,
    ) -> None:
        hacker = hacker.model_copy(update={"hack_attempts": hacker.hack_attempts + 1})
        duel = runtime.duels.start(hacker.player_id, target.player_id)
        entry = game_log.make_entry(
            LogEntryType.HACK_START,
            f"{hacker.name} started hacking {target.name}",
            player=hacker,
            target=target,
            credit_change=-get_power_up(PowerUpType.HACK).cost,
        )
        hacker = await self._players.update(hacker)
        session = await self._sessions.update(game_log.append(session, entry))
        logger.info("hack duel started", duel_id=duel.id, target_id=target.player_id)

        await self._broadcast(runtime, PlayerUpdatedMessage(player=hacker.to_wire()).to_wire())
        await self._broadcast(
            runtime,
            HackStartedMessage(
                hacker_id=hacker.player_id,
                target_id=target.player_id,
                hacker_name=hacker.name,
                target_name=target.name,
            ).to_wire(),
        )
        await self._broadcast_log(runtime, session)

    async def _transfer_theft(
        self,
        session: SessionRecord,
        hacker: PlayerRecord,
        progress: DuelProgress,
    ) -> tuple[PlayerRecord, PlayerRecord, int, list[GameLogEntry]]:
        """Move the stolen credits from target to hacker. The target is written here."""
        target = await self._players.require(session.id, progress.target_id)
        stolen = steal_amount(
            target.credits,
            self._rng,
            self._settings.theft_min_fraction,
            self._settings.theft_max_fraction,
        )
        target = await self._players.update(target.adjust_credits(-stolen))
        hacker = hacker.adjust_credits(stolen)
        entries = [
            game_log.make_entry(
                LogEntryType.HACK_COMPLETE,
                f"{hacker.name} hacked {target.name} and stole {stolen} credits",
                player=hacker,
                target=target,
                credit_change=stolen,
            ),
            game_log.make_entry(
                LogEntryType.CREDIT_CHANGE,
                f"{target.name} lost {stolen} credits to {hacker.name}",
                player=target,
                target=hacker,
                credit_change=-stolen,
            ),
        ]
        logger.info("hack duel won by attacker", duel_id=progress.duel_id, credits_stolen=stolen)
        return hacker, target, stolen, entries

    async def _defence_entry(self, session: SessionRecord, progress: DuelProgress) -> GameLogEntry:
        hacker = await self._players.require(session.id, progress.hacker_id)
        target = await self._players.require(session.id, progress.target_id)
        logger.info("hack duel won by defender", duel_id=progress.duel_id)
        return game_log.make_entry(
            LogEntryType.HACK_COMPLETE,
            f"{target.name} fended off {hacker.name}'s hack",
            player=hacker,
            target=target,
            credit_change=0,
        )

    async def _broadcast_duel_progress(
        self,
        runtime: SessionRuntime,
        progress: DuelProgress,
        *,
        robbed: PlayerRecord | None,
        stolen: int,
    ) -> None:
        await self._broadcast(
            runtime,
            HackProgressMessage(
                hacker_id=progress.hacker_id,
                target_id=progress.target_id,
                attacker_progress=progress.attacker_progress,
                defender_progress=progress.defender_progress,
            ).to_wire(),
        )
        if not progress.resolved:
            return
        if robbed is not None:
            await self._broadcast(runtime, PlayerUpdatedMessage(player=robbed.to_wire()).to_wire())
        await self._broadcast(
            runtime,
            HackCompletedMessage(
                hacker_id=progress.hacker_id,
                target_id=progress.target_id,
                success=progress.outcome == DuelOutcome.ATTACKER_WON,
                credits_stolen=stolen,
            ).to_wire(),
        )

    async def _finish_duel_without_transfer(self, runtime: SessionRuntime, cancelled: list[DuelProgress]) -> None:
        """Log and announce duels that ended by forfeit or session end. Must hold the lock."""
        if not cancelled:
            return
        session = await self._lobby.require_session(runtime.session_id)
        entries = []
        for progress in cancelled:
            hacker = await self._players.get(session.id, progress.hacker_id)
            target = await self._players.get(session.id, progress.target_id)
            reason = "forfeited" if progress.outcome == DuelOutcome.FORFEIT else "ended with the game"
            entries.append(
                game_log.make_entry(
                    LogEntryType.HACK_COMPLETE,
                    f"Hack on {target.name if target else progress.target_id} {reason}",
                    player=hacker,
                    target=target,
                    credit_change=0,
                ),
            )
        session = await self._sessions.update(game_log.append(session, *entries))
        for progress in cancelled:
            await self._broadcast(
                runtime,
                HackCompletedMessage(
                    hacker_id=progress.hacker_id,
                    target_id=progress.target_id,
                    success=False,
                    credits_stolen=0,
                    reason=progress.outcome,
                ).to_wire(),
            )
        await self._broadcast_log(runtime, session)

    # --- Game end ---

    async def end_game(self, binding: Player) -> None:
        """Host ends the game early."""
        runtime = self._runtime_of(binding)
        async with runtime.lock:
            session = await self._require_active(binding.session_id)
            if binding.player_id != session.host_id:
                raise ConflictError("only the host can end the game", code=SessionErrorCode.NOT_HOST)
            await self._finish_game(runtime, session, GameEndReason.HOST_ENDED)

    async def _handle_game_timeout(self, session_id: int) -> None:
        runtime = self._runtimes.get(session_id)
        if runtime is None:
            return
        async with runtime.lock:
            session = await self._sessions.get(session_id)
            if session is None or session.status != SessionStatus.ACTIVE:
                return
            await self._finish_game(runtime, session, GameEndReason.TIME_UP)

    async def _finish_game(self, runtime: SessionRuntime, session: SessionRecord, reason: GameEndReason) -> None:
        """Move an active session to finished. Must hold the session lock."""
        self._timer_manager.cancel(session.id)
        self._stop_effect_sweep(runtime)

        await self._finish_duel_without_transfer(runtime, runtime.duels.cancel_all())
        runtime.effects.clear()
        runtime.questions.clear()

        session = await self._lobby.require_session(session.id)
        entry = game_log.make_entry(LogEntryType.GAME_END, f"The game has ended ({reason.value})")
        session = session.model_copy(update={"status": SessionStatus.FINISHED, "game_end_time": utcnow()})
        session = await self._sessions.update(game_log.append(session, entry))

        self._release_timers.start(session.id, self._retention)

        players = await self._players.list_for_session(session.id)
        standings = sorted(players, key=lambda p: p.credits, reverse=True)
        logger.info("game ended", session_id=session.id, reason=reason, players=len(players))

        await self._broadcast_log(runtime, session)
        await self._broadcast(
            runtime,
            GameEndedMessage(players=[p.to_wire() for p in standings], reason=reason).to_wire(),
        )

    # --- Background work ---

    def _start_effect_sweep(self, runtime: SessionRuntime) -> None:
        self._stop_effect_sweep(runtime)
        runtime.sweep_task = asyncio.create_task(self._sweep_effects(runtime))

    @staticmethod
    def _stop_effect_sweep(runtime: SessionRuntime) -> None:
        if runtime.sweep_task is not None and not runtime.sweep_task.done():
            runtime.sweep_task.cancel()
        runtime.sweep_task = None

    async def _sweep_effects(self, runtime: SessionRuntime) -> None:
        """Drop expired effects. Reads never depend on this having run."""
        while True:
            await asyncio.sleep(self._sweep_interval)
            async with runtime.lock:
                removed = runtime.effects.prune_expired()
            if removed:
                logger.debug("expired effects pruned", session_id=runtime.session_id, removed=removed)

    async def _release_session(self, session_id: int) -> None:
        """Forget a finished session and its players once the retention window has passed.

        Connections still bound to it are unbound and stay open; their next
        session-scoped message is rejected with not_in_session.
        """
        runtime = self._runtimes.get(session_id)
        lock = runtime.lock if runtime is not None else contextlib.nullcontext()
        async with lock:
            session = await self._sessions.get(session_id)
            if session is None or session.status != SessionStatus.FINISHED:
                return
            if runtime is not None:
                for bound in runtime.players.values():
                    self._bindings.pop(bound.connection_id, None)
                runtime.players.clear()
            self._runtimes.pop(session_id, None)
            await self._sessions.delete(session_id)
            await self._players.delete_session(session_id)
        await self._heartbeat.stop_for_session(session_id)
        logger.info("finished session released", session_id=session_id)

    async def shutdown(self) -> None:
        """Cancel every timer and background loop."""
        self._timer_manager.cancel_all()
        self._release_timers.cancel_all()
        await self._heartbeat.stop_all()
        tasks = [r.sweep_task for r in self._runtimes.values() if r.sweep_task is not None]
        for runtime in self._runtimes.values():
            self._stop_effect_sweep(runtime)
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    # --- Broadcasting ---

    @staticmethod
    async def _broadcast(runtime: SessionRuntime, message: dict[str, Any]) -> None:
        await broadcast_to_players(runtime.players, message)

    async def _broadcast_log(self, runtime: SessionRuntime, session: SessionRecord) -> None:
        window = game_log.recent(session, self._settings.log_broadcast_window)
        await self._broadcast(
            runtime,
            GameLogUpdatedMessage(game_log=[entry.to_wire() for entry in window]).to_wire(),
        )
