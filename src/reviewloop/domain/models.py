"""
Domain models for the review scheduler.

These are pure data structures with no I/O or external dependencies.
Card content is immutable; only CardState changes over a card's lifetime.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Literal

from .constants import DEFAULT_EASE


class Phase(str, Enum):
    LEARNING = "learning"
    REVIEW = "review"


class Grade(str, Enum):
    """Learner self-assessment for one presentation of a card."""

    AGAIN = "again"
    HARD = "hard"
    GOOD = "good"
    EASY = "easy"


CardOrigin = Literal["seed", "ai"]
Difficulty = Literal["Easy", "Medium", "Hard"]


@dataclass(frozen=True)
class Unit:
    """A learning unit that cards are attached to."""

    id: str
    title: str
    external_url: str | None = None


@dataclass(frozen=True)
class CodeBlock:
    """One line of a code-reordering exercise."""

    id: str
    text: str
    indent_level: int = 0


@dataclass(frozen=True)
class ConceptCard:
    """Question/answer card."""

    id: str
    unit_id: str
    front: str
    back: str
    tags: tuple[str, ...] = ()
    source: CardOrigin = "seed"


@dataclass(frozen=True)
class CodeReorderCard:
    """
    Code-reordering exercise: the learner puts shuffled blocks back in order.

    Attributes:
        blocks: Code fragments in their canonical order.
        solution_order: Block ids in the correct sequence.
        external_url: Link to the problem the solution belongs to.
    """

    id: str
    unit_id: str
    prompt: str
    explanation: str
    external_url: str
    difficulty: Difficulty
    blocks: tuple[CodeBlock, ...]
    solution_order: tuple[str, ...]
    function_name: str | None = None
    source: CardOrigin = "ai"


Card = ConceptCard | CodeReorderCard


@dataclass(frozen=True)
class CardState:
    """
    Scheduling metadata for one card.

    Attributes:
        phase: Learning (repeated exposure) or Review (SM-2 spacing).
        seen_count: Times graded during the Learning phase.
        due_at: Epoch milliseconds when the card becomes eligible again.
        interval: Current spacing in days.
        repetition: Consecutive successful reviews.
        ease: SM-2 ease factor, never below 1.3.
        lapses: Failing grades (Again or Hard) recorded in the Review phase.
        last_reviewed_at: Epoch milliseconds of the last grade, if any.
    """

    phase: Phase
    seen_count: int
    due_at: int
    interval: int = 0
    repetition: int = 0
    ease: float = DEFAULT_EASE
    lapses: int = 0
    last_reviewed_at: int | None = None


@dataclass(frozen=True)
class QueueCounts:
    learning_remaining: int
    due_count: int


@dataclass
class ReviewSnapshot:
    """Everything the remote store holds for one session."""

    cards: list[Card] = field(default_factory=list)
    states: dict[str, CardState] = field(default_factory=dict)


@dataclass
class GenerationResult:
    """What a card source returns for one batch request."""

    cards: list[Card] = field(default_factory=list)
    error: str | None = None


@dataclass
class GenerationOutcome:
    """Result of a queue monitor generation attempt."""

    status: Literal["added", "skipped", "failed"]
    added: list[str] = field(default_factory=list)
    message: str | None = None
