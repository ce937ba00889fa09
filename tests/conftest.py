import random
from collections.abc import Mapping, Sequence

import pytest

from reviewloop.domain.errors import PersistenceError
from reviewloop.domain.models import (
    Card,
    CardState,
    CodeBlock,
    CodeReorderCard,
    ConceptCard,
    GenerationResult,
    ReviewSnapshot,
    Unit,
)
from reviewloop.domain.ports import CardSource, RemotePersistence

START_MS = 1_700_000_000_000


class FakeClock:
    """Manually advanced epoch-millisecond clock."""

    def __init__(self, now: int = START_MS):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class InMemoryPersistence(RemotePersistence):
    """Records every write; can be told to fail."""

    def __init__(self, snapshot: ReviewSnapshot | None = None):
        self.snapshot = snapshot or ReviewSnapshot()
        self.saved_cards: list[tuple[str, list[Card], int]] = []
        self.saved_states: list[tuple[str, dict[str, CardState]]] = []
        self.fail_writes = False
        self.fetch_error: Exception | None = None
        self.closed = False

    async def fetch_snapshot(self, session_id: str) -> ReviewSnapshot:
        if self.fetch_error is not None:
            raise self.fetch_error
        return self.snapshot

    async def save_cards_batch(
        self, session_id: str, cards: Sequence[Card], max_cards: int
    ) -> None:
        if self.fail_writes:
            raise PersistenceError("server unavailable")
        self.saved_cards.append((session_id, list(cards), max_cards))

    async def save_states(self, session_id: str, states: Mapping[str, CardState]) -> None:
        if self.fail_writes:
            raise PersistenceError("server unavailable")
        self.saved_states.append((session_id, dict(states)))

    async def aclose(self) -> None:
        self.closed = True


class StubCardSource(CardSource):
    """Returns queued results in order; records calls."""

    def __init__(self, *results: GenerationResult | Exception):
        self.results = list(results)
        self.calls: list[list[Unit]] = []

    async def generate_batch(self, units: Sequence[Unit]) -> GenerationResult:
        self.calls.append(list(units))
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


def concept(card_id: str, unit_id: str = "two-sum") -> ConceptCard:
    return ConceptCard(
        id=card_id,
        unit_id=unit_id,
        front=f"Question {card_id}",
        back=f"Answer {card_id}",
        tags=("Two Sum",),
    )


def code_card(card_id: str, unit_id: str = "two-sum", n_blocks: int = 4) -> CodeReorderCard:
    blocks = tuple(
        CodeBlock(id=f"l{i}", text=f"line {i}", indent_level=min(i, 1)) for i in range(n_blocks)
    )
    return CodeReorderCard(
        id=card_id,
        unit_id=unit_id,
        prompt="Rebuild the solution",
        explanation="Hash map lookup of the complement.",
        external_url="https://leetcode.com/problems/two-sum/",
        difficulty="Easy",
        blocks=blocks,
        solution_order=tuple(b.id for b in blocks),
        function_name="twoSum",
    )


def valid_batch(prefix: str = "gen", unit_id: str = "two-sum") -> list[Card]:
    return [
        concept(f"{prefix}-c1", unit_id),
        concept(f"{prefix}-c2", unit_id),
        concept(f"{prefix}-c3", unit_id),
        code_card(f"{prefix}-p1", unit_id),
        code_card(f"{prefix}-p2", unit_id),
    ]


UNITS = [Unit(id="two-sum", title="Two Sum", external_url="https://leetcode.com/problems/two-sum/")]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def units():
    return list(UNITS)


@pytest.fixture
def make_concept():
    return concept


@pytest.fixture
def make_code_card():
    return code_card


@pytest.fixture
def make_batch():
    return valid_batch


@pytest.fixture
def persistence():
    return InMemoryPersistence()


@pytest.fixture
def stub_source_cls():
    return StubCardSource


@pytest.fixture
def mock_home(tmp_path, monkeypatch):
    """Mocks Path.home() to point to a temp dir."""
    home = tmp_path / "home"
    home.mkdir()

    # Mocking HOME to a temp directory to isolate config and session files
    monkeypatch.setenv("HOME", str(home))
    for key in [
        "REVIEWLOOP_SESSION_ID",
        "REVIEWLOOP_API_BASE_URL",
        "REVIEWLOOP_GENERATION_URL",
        "REVIEWLOOP_GENERATION_API_KEY",
        "REVIEWLOOP_SEED_DECK",
        "REVIEWLOOP_DATA_DIR",
    ]:
        monkeypatch.delenv(key, raising=False)
    return home
