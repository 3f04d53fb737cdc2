import random

import pytest

from mathhack.logic.duels import DuelCoordinator, steal_amount
from mathhack.logic.enums import DuelOutcome, SessionErrorCode
from mathhack.logic.exceptions import ConflictError, RequestValidationError


@pytest.fixture
def duels():
    return DuelCoordinator(target=5)


class TestStart:
    def test_start_creates_duel_at_zero(self, duels):
        duel = duels.start("alice", "bob")
        assert (duel.attacker_progress, duel.defender_progress) == (0, 0)
        assert duels.active() == [duel]
        assert duels.duel_for("bob") is duel

    def test_wire_snapshot(self, duels):
        duel = duels.start("alice", "bob")
        duels.record_correct("bob")
        wire = duel.to_wire()
        assert wire == {
            "duelId": duel.id,
            "hackerId": "alice",
            "targetId": "bob",
            "attackerProgress": 0,
            "defenderProgress": 1,
            "startedAt": duel.started_at,
        }
        assert wire["startedAt"] > 1_600_000_000_000

    def test_cannot_hack_yourself(self, duels):
        with pytest.raises(RequestValidationError) as exc_info:
            duels.start("alice", "alice")
        assert exc_info.value.code == SessionErrorCode.INVALID_TARGET

    @pytest.mark.parametrize(
        ("hacker", "target"),
        [("alice", "carol"), ("carol", "alice"), ("bob", "carol"), ("carol", "bob"), ("bob", "alice")],
    )
    def test_one_duel_per_player(self, duels, hacker, target):
        duels.start("alice", "bob")
        with pytest.raises(ConflictError) as exc_info:
            duels.start(hacker, target)
        assert exc_info.value.code == SessionErrorCode.DUEL_IN_PROGRESS
        assert len(duels) == 1

    def test_unrelated_players_can_duel(self, duels):
        duels.start("alice", "bob")
        duels.start("carol", "dave")
        assert len(duels) == 2


class TestProgress:
    def test_non_participant_is_ignored(self, duels):
        duels.start("alice", "bob")
        assert duels.record_correct("carol") is None

    def test_attacker_wins_at_target(self, duels):
        duels.start("alice", "bob")
        for _ in range(4):
            progress = duels.record_correct("alice")
            assert not progress.resolved
        duels.record_correct("bob")
        progress = duels.record_correct("alice")
        assert progress.outcome == DuelOutcome.ATTACKER_WON
        assert (progress.attacker_progress, progress.defender_progress) == (5, 1)
        assert len(duels) == 0

    def test_defender_wins_at_target(self, duels):
        duels.start("alice", "bob")
        for _ in range(5):
            progress = duels.record_correct("bob")
        assert progress.outcome == DuelOutcome.DEFENDER_WON
        assert progress.attacker_progress == 0
        assert duels.duel_for("alice") is None

    def test_players_free_after_resolution(self, duels):
        duels.start("alice", "bob")
        for _ in range(5):
            duels.record_correct("bob")
        duels.start("bob", "alice")
        assert duels.duel_for("alice").hacker_id == "bob"


class TestCancellation:
    def test_forfeit_removes_duel(self, duels):
        duels.start("alice", "bob")
        progress = duels.forfeit("bob")
        assert progress.outcome == DuelOutcome.FORFEIT
        assert progress.hacker_id == "alice"
        assert len(duels) == 0

    def test_forfeit_without_duel(self, duels):
        assert duels.forfeit("alice") is None

    def test_cancel_all(self, duels):
        duels.start("alice", "bob")
        duels.start("carol", "dave")
        cancelled = duels.cancel_all()
        assert {p.outcome for p in cancelled} == {DuelOutcome.GAME_ENDED}
        assert len(cancelled) == 2
        assert len(duels) == 0


class TestStealAmount:
    def test_within_fraction_bounds(self):
        rng = random.Random(5)
        for _ in range(200):
            stolen = steal_amount(1000, rng, 0.2, 0.5)
            assert 200 <= stolen <= 500

    def test_floors_result(self):
        class FixedRandom(random.Random):
            def uniform(self, a, b):
                return 0.33

        assert steal_amount(10, FixedRandom(), 0.2, 0.5) == 3

    def test_nothing_to_steal(self):
        assert steal_amount(0, random.Random(1), 0.2, 0.5) == 0
