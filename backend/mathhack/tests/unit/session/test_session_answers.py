import asyncio

import pytest

from mathhack.logic.enums import EffectKind, PowerUpType, SessionErrorCode
from mathhack.logic.exceptions import ConflictError, InsufficientFundsError
from mathhack.logic.settings import ContestSettings
from mathhack.session.manager import SessionManager
from mathhack.tests.helpers.session import (
    answer_correctly,
    answer_wrongly,
    binding,
    create_lobby,
    create_started_game,
    current_answer,
    get_player,
    set_credits,
)


class TestSubmitAnswer:
    async def test_correct_answer_at_level_one_earns_fifteen(self, manager):
        session, conns = await create_started_game(manager)

        await answer_correctly(manager, conns["alice"])

        alice = await get_player(manager, session.id, "alice")
        assert alice.credits == 15
        assert alice.consecutive_correct == 1
        assert alice.correct_answers == 1

        submitted = conns["bob"].last_of_type("answerSubmitted")
        assert submitted["playerId"] == "alice"
        assert submitted["isCorrect"] is True
        assert submitted["player"]["credits"] == 15

    async def test_new_question_goes_to_answering_player_only(self, manager):
        session, conns = await create_started_game(manager)
        before = manager.get_runtime(session.id).questions["alice"]

        await answer_wrongly(manager, conns["alice"])

        after = manager.get_runtime(session.id).questions["alice"]
        assert after.id != before.id
        assert conns["alice"].last_of_type("newQuestion")["question"]["id"] == after.id
        assert conns["bob"].messages_of_type("newQuestion") == []

    async def test_wrong_answer_reveals_correct_one(self, manager):
        session, conns = await create_started_game(manager)
        expected = current_answer(manager, session.id, "bob")

        await answer_wrongly(manager, conns["bob"])

        submitted = conns["alice"].last_of_type("answerSubmitted")
        assert submitted["isCorrect"] is False
        assert submitted["correctAnswer"] == expected
        bob = await get_player(manager, session.id, "bob")
        assert bob.wrong_answers == 1
        assert bob.credits == 0

    async def test_difficulty_follows_streaks(self, manager):
        session, conns = await create_started_game(manager)

        await answer_correctly(manager, conns["alice"], times=5)
        alice = await get_player(manager, session.id, "alice")
        assert alice.difficulty_level == 2
        assert alice.consecutive_correct == 0
        assert manager.get_runtime(session.id).questions["alice"].difficulty == 2

        await answer_wrongly(manager, conns["alice"], times=3)
        alice = await get_player(manager, session.id, "alice")
        assert alice.difficulty_level == 1
        assert alice.credits == 75

    async def test_difficulty_stays_in_bounds(self, manager):
        session, conns = await create_started_game(manager)
        await answer_wrongly(manager, conns["bob"], times=9)
        assert (await get_player(manager, session.id, "bob")).difficulty_level == 1

    async def test_requires_issued_question(self, manager):
        session, conns = await create_started_game(manager)
        manager.get_runtime(session.id).questions.pop("alice")
        with pytest.raises(ConflictError) as exc_info:
            await manager.submit_answer(binding(manager, conns["alice"]), 3)
        assert exc_info.value.code == SessionErrorCode.NO_ACTIVE_QUESTION

    async def test_rejected_before_start(self, manager):
        _, conns = await create_lobby(manager)
        with pytest.raises(ConflictError) as exc_info:
            await manager.submit_answer(binding(manager, conns["alice"]), 3)
        assert exc_info.value.code == SessionErrorCode.GAME_NOT_ACTIVE

    async def test_frozen_player_cannot_answer_or_skip(self, manager):
        session, conns = await create_started_game(manager)
        manager.get_runtime(session.id).effects.apply("bob", EffectKind.FREEZE, 8)
        bob = binding(manager, conns["bob"])

        with pytest.raises(ConflictError) as exc_info:
            await manager.submit_answer(bob, current_answer(manager, session.id, "bob"))
        assert exc_info.value.code == SessionErrorCode.PLAYER_FROZEN
        with pytest.raises(ConflictError) as exc_info:
            await manager.skip_question(bob)
        assert exc_info.value.code == SessionErrorCode.PLAYER_FROZEN
        assert (await get_player(manager, session.id, "bob")).credits == 0

    async def test_slowed_answer_is_delayed(self, rng):
        manager = SessionManager(ContestSettings(slow_answer_delay_seconds=0.05), rng=rng)
        try:
            session, conns = await create_started_game(manager)
            manager.get_runtime(session.id).effects.apply("bob", EffectKind.SLOW, 10)

            loop = asyncio.get_running_loop()
            started = loop.time()
            await answer_correctly(manager, conns["bob"])
            assert loop.time() - started >= 0.05
            assert (await get_player(manager, session.id, "bob")).credits == 15
        finally:
            await manager.shutdown()

    async def test_concurrent_answer_and_power_up_do_not_lose_credits(self, manager):
        session, conns = await create_started_game(manager)
        await set_credits(manager, session.id, "alice", 50)
        alice = binding(manager, conns["alice"])

        await asyncio.gather(
            manager.submit_answer(alice, current_answer(manager, session.id, "alice")),
            manager.use_power_up(alice, PowerUpType.SLOW, "bob"),
        )

        assert (await get_player(manager, session.id, "alice")).credits == 15


class TestSkipQuestion:
    async def test_skip_debits_and_issues_new_question(self, manager):
        session, conns = await create_started_game(manager)
        await set_credits(manager, session.id, "bob", 20)
        before = manager.get_runtime(session.id).questions["bob"]

        await manager.skip_question(binding(manager, conns["bob"]))

        bob = await get_player(manager, session.id, "bob")
        assert bob.credits == 15
        assert bob.questions_skipped == 1
        assert bob.wrong_answers == 0
        assert bob.consecutive_wrong == 1
        assert manager.get_runtime(session.id).questions["bob"].id != before.id

        skipped = conns["alice"].last_of_type("questionSkipped")
        assert skipped["playerId"] == "bob"
        assert skipped["player"]["credits"] == 15
        assert conns["bob"].last_of_type("newQuestion")
        assert conns["alice"].last_of_type("gameLogUpdated")["gameLog"][-1]["creditChange"] == -5

    async def test_skip_without_credits_is_rejected(self, manager):
        session, conns = await create_started_game(manager)
        await set_credits(manager, session.id, "bob", 4)
        before = manager.get_runtime(session.id).questions["bob"]

        with pytest.raises(InsufficientFundsError):
            await manager.skip_question(binding(manager, conns["bob"]))

        bob = await get_player(manager, session.id, "bob")
        assert bob.credits == 4
        assert bob.questions_skipped == 0
        assert manager.get_runtime(session.id).questions["bob"] is before
        assert conns["alice"].messages_of_type("questionSkipped") == []

    async def test_skip_can_count_as_wrong(self, rng):
        manager = SessionManager(ContestSettings(skip_counts_as_wrong=True), rng=rng)
        try:
            session, conns = await create_started_game(manager)
            await set_credits(manager, session.id, "bob", 10)
            await manager.skip_question(binding(manager, conns["bob"]))
            assert (await get_player(manager, session.id, "bob")).wrong_answers == 1
        finally:
            await manager.shutdown()
