"""
Scheduling engine: grading transitions and next-card selection.

This is a pure computation module with no I/O. Time is passed in as epoch
milliseconds and randomness comes from an injected ``random.Random``.
"""

import math
import random
from collections.abc import Mapping, Sequence
from dataclasses import replace

from reviewloop.domain.constants import (
    DAY_MS,
    DEFAULT_EASE,
    EASY_BONUS,
    GOOD_SECOND_INTERVAL,
    GRADUATION_SEEN_COUNT,
    LAPSE_WEIGHT,
    MIN_EASE,
)
from reviewloop.domain.models import CardState, Grade, Phase, QueueCounts

QUALITY_BY_GRADE = {
    Grade.AGAIN: 1,
    Grade.HARD: 2,
    Grade.GOOD: 4,
    Grade.EASY: 5,
}


def quality_for(grade: Grade) -> int:
    """Map a grade to its SM-2 quality score (0-5 scale)."""
    return QUALITY_BY_GRADE[grade]


def initial_state(now: int) -> CardState:
    """State for a card that has just entered the store."""
    return CardState(
        phase=Phase.LEARNING,
        seen_count=0,
        due_at=now,
        interval=0,
        repetition=0,
        ease=DEFAULT_EASE,
        lapses=0,
    )


def is_learning(state: CardState) -> bool:
    return state.phase == Phase.LEARNING and state.seen_count < GRADUATION_SEEN_COUNT


def is_due(state: CardState, now: int) -> bool:
    return state.phase == Phase.REVIEW and state.due_at <= now


def apply_grade(state: CardState, grade: Grade, now: int) -> CardState:
    """
    Compute the state that results from grading a card at ``now``.

    Learning cards count exposures and graduate to Review after the tenth
    grade, whatever the grades were. Review cards follow SM-2.
    """
    if state.phase == Phase.LEARNING:
        return _apply_learning_grade(state, now)
    return _apply_review_grade(state, grade, now)


def _apply_learning_grade(state: CardState, now: int) -> CardState:
    seen_count = state.seen_count + 1
    if seen_count < GRADUATION_SEEN_COUNT:
        return replace(state, seen_count=seen_count, due_at=now, last_reviewed_at=now)

    # Graduation uses a fixed first interval; ease is left untouched.
    return replace(
        state,
        phase=Phase.REVIEW,
        seen_count=seen_count,
        interval=1,
        repetition=1,
        due_at=now + DAY_MS,
        last_reviewed_at=now,
    )


def _apply_review_grade(state: CardState, grade: Grade, now: int) -> CardState:
    quality = quality_for(grade)
    interval = state.interval
    repetition = state.repetition
    lapses = state.lapses

    if quality < 3:
        repetition = 0
        interval = 1
        lapses += 1
    else:
        if repetition == 0:
            interval = 1
        elif repetition == 1:
            interval = GOOD_SECOND_INTERVAL
        else:
            bonus = EASY_BONUS if quality == 5 else 1.0
            interval = max(1, _round_half_up(interval * state.ease * bonus))
        repetition += 1

    return replace(
        state,
        phase=Phase.REVIEW,
        interval=interval,
        repetition=repetition,
        ease=next_ease(state.ease, quality),
        lapses=lapses,
        due_at=now + interval * DAY_MS,
        last_reviewed_at=now,
    )


def next_ease(ease: float, quality: int) -> float:
    """SM-2 ease update, floored at MIN_EASE."""
    miss = 5 - quality
    return max(MIN_EASE, ease + (0.1 - miss * (0.08 + miss * 0.02)))


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def overdue_weight(state: CardState, now: int) -> float:
    """
    Selection weight for a due card.

    Cards that are further overdue or have lapsed more often weigh more, but
    every due card keeps a weight of at least 1.
    """
    overdue_days = max(0.0, (now - state.due_at) / DAY_MS)
    return 1.0 + overdue_days + state.lapses * LAPSE_WEIGHT


def weighted_choice(weighted: Sequence[tuple[str, float]], rng: random.Random) -> str:
    """Draw one id with probability proportional to its weight."""
    if not weighted:
        raise ValueError("weighted_choice requires at least one candidate")

    total = sum(weight for _, weight in weighted)
    draw = rng.random() * total
    cumulative = 0.0
    for card_id, weight in weighted:
        cumulative += weight
        if draw < cumulative:
            return card_id
    # Float rounding can leave draw == total
    return weighted[-1][0]


def select_next(
    states: Mapping[str, CardState],
    now: int,
    rng: random.Random,
) -> str | None:
    """
    Pick the next card to present.

    1. Learning cards come first; only the least-seen ones are eligible and
       one of them is chosen uniformly.
    2. Otherwise a due Review card is drawn by overdue weight.
    3. If neither exists, returns None.
    """
    learning = [(card_id, st) for card_id, st in states.items() if is_learning(st)]
    if learning:
        min_seen = min(st.seen_count for _, st in learning)
        bucket = [card_id for card_id, st in learning if st.seen_count == min_seen]
        return rng.choice(bucket)

    due = [
        (card_id, overdue_weight(st, now)) for card_id, st in states.items() if is_due(st, now)
    ]
    if not due:
        return None
    return weighted_choice(due, rng)


def count_queues(states: Mapping[str, CardState], now: int) -> QueueCounts:
    learning_remaining = 0
    due_count = 0
    for st in states.values():
        if is_learning(st):
            learning_remaining += 1
        elif is_due(st, now):
            due_count += 1
    return QueueCounts(learning_remaining=learning_remaining, due_count=due_count)
