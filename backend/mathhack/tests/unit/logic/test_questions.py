import random

import pytest

from mathhack.logic.enums import Operation
from mathhack.logic.questions import (
    OPTION_COUNT,
    build_options,
    clamp_difficulty,
    evaluate,
    generate_question,
    tier_for,
    time_limit_for,
)


class TestGenerateQuestion:
    @pytest.mark.parametrize("difficulty", range(1, 10))
    def test_options_are_distinct_and_contain_answer_once(self, difficulty):
        rng = random.Random(difficulty)
        for _ in range(200):
            question = generate_question(difficulty, rng)
            assert len(question.options) == OPTION_COUNT
            assert len(set(question.options)) == OPTION_COUNT
            assert question.options.count(question.answer) == 1

    @pytest.mark.parametrize("difficulty", range(1, 10))
    def test_answer_matches_displayed_expression(self, difficulty):
        rng = random.Random(100 + difficulty)
        for _ in range(200):
            question = generate_question(difficulty, rng)
            assert question.answer == evaluate(question.operation, question.left, question.right)
            assert question.text == f"{question.left} {question.operation.symbol} {question.right} = ?"
            assert question.left > 0
            assert question.right > 0

    def test_level_one_is_single_digit_addition(self):
        rng = random.Random(7)
        for _ in range(100):
            question = generate_question(1, rng)
            assert question.operation == Operation.ADDITION
            assert 1 <= question.left <= 9
            assert 1 <= question.right <= 9

    def test_subtraction_never_goes_negative(self):
        rng = random.Random(3)
        subtractions = [q for q in (generate_question(3, rng) for _ in range(300)) if q.operation == Operation.SUBTRACTION]
        assert subtractions
        assert all(q.left >= q.right for q in subtractions)
        assert all(q.answer >= 0 for q in subtractions)

    def test_division_is_exact(self):
        rng = random.Random(11)
        divisions = [q for q in (generate_question(6, rng) for _ in range(300)) if q.operation == Operation.DIVISION]
        assert divisions
        for q in divisions:
            assert q.left % q.right == 0
            assert 2 <= q.right <= 12
            assert 2 <= q.answer <= 20

    def test_high_levels_use_three_digit_operands(self):
        rng = random.Random(5)
        additions = [q for q in (generate_question(8, rng) for _ in range(200)) if q.operation == Operation.ADDITION]
        assert additions
        assert all(100 <= q.left <= 999 for q in additions)

    @pytest.mark.parametrize(("requested", "expected"), [(-4, 1), (0, 1), (12, 9)])
    def test_difficulty_is_clamped(self, requested, expected):
        question = generate_question(requested, random.Random(0))
        assert question.difficulty == expected

    def test_same_seed_gives_same_question(self):
        assert generate_question(5, random.Random(42)) == generate_question(5, random.Random(42))

    def test_public_view_withholds_answer(self):
        view = generate_question(4, random.Random(1)).public_view()
        assert "answer" not in view
        assert {"id", "text", "options", "difficulty", "timeLimit", "operation"} <= view.keys()


class TestTiers:
    @pytest.mark.parametrize(
        ("difficulty", "operations"),
        [
            (1, {Operation.ADDITION}),
            (2, {Operation.ADDITION, Operation.SUBTRACTION}),
            (3, {Operation.ADDITION, Operation.SUBTRACTION}),
            (4, {Operation.ADDITION, Operation.SUBTRACTION, Operation.MULTIPLICATION}),
            (5, set(Operation)),
            (9, set(Operation)),
        ],
    )
    def test_operation_pool_widens_with_difficulty(self, difficulty, operations):
        assert set(tier_for(difficulty).operations) == operations

    @pytest.mark.parametrize(("difficulty", "seconds"), [(1, 33), (5, 25), (9, 17), (10, 15)])
    def test_time_limit(self, difficulty, seconds):
        assert time_limit_for(difficulty) == seconds

    def test_clamp_difficulty(self):
        assert clamp_difficulty(0) == 1
        assert clamp_difficulty(5) == 5
        assert clamp_difficulty(99) == 9


class TestBuildOptions:
    def test_small_answers_still_get_four_non_negative_options(self):
        rng = random.Random(9)
        for answer in range(3):
            options = build_options(answer, Operation.DIVISION, rng)
            assert len(set(options)) == OPTION_COUNT
            assert answer in options
            assert all(o >= 0 for o in options)

    def test_division_distractors_stay_close(self):
        options = build_options(50, Operation.DIVISION, random.Random(2))
        assert all(abs(o - 50) <= 5 for o in options)

    def test_inexact_division_is_rejected(self):
        with pytest.raises(ValueError, match="not divisible"):
            evaluate(Operation.DIVISION, 7, 2)
