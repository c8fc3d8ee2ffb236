from __future__ import annotations

import random

from discdesk.services.demo.composer import generate_assessment_responses


def test_response_set_covers_every_question() -> None:
    responses = generate_assessment_responses("D", random.Random(1))
    assert list(responses) == [f"q{number}" for number in range(1, 25)]
    assert set(responses.values()) <= {"A", "B"}


def test_full_alignment_picks_the_type_answer() -> None:
    rng = random.Random(7)
    assert set(generate_assessment_responses("D", rng, alignment=1.0).values()) == {"A"}
    assert set(generate_assessment_responses("I", rng, alignment=1.0).values()) == {"A"}
    assert set(generate_assessment_responses("S", rng, alignment=1.0).values()) == {"B"}
    assert set(generate_assessment_responses("C", rng, alignment=1.0).values()) == {"B"}


def test_zero_alignment_picks_the_opposite_answer() -> None:
    responses = generate_assessment_responses("C", random.Random(3), alignment=0.0)
    assert set(responses.values()) == {"A"}


def test_alignment_rate_is_roughly_respected() -> None:
    rng = random.Random(2024)
    aligned = 0
    total = 0
    for _ in range(200):
        responses = generate_assessment_responses("S", rng)
        aligned += sum(1 for answer in responses.values() if answer == "B")
        total += len(responses)
    assert 0.65 <= aligned / total <= 0.75


def test_same_seed_reproduces_responses() -> None:
    first = generate_assessment_responses("I", random.Random(42), question_count=10)
    second = generate_assessment_responses("I", random.Random(42), question_count=10)
    assert first == second
    assert len(first) == 10
