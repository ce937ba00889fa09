"""
Ports (interfaces) for content generation and persistence.

These define the contract that infrastructure adapters must implement.
Application services depend on these abstractions, not concrete implementations.
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence

from .models import Card, CardState, GenerationResult, ReviewSnapshot, Unit


class CardSource(ABC):
    """
    Port for producing new batches of cards.

    Implementations:
        - HttpCardSource: Calls a generation endpoint over HTTP.
    """

    @abstractmethod
    async def generate_batch(self, units: Sequence[Unit]) -> GenerationResult:
        """
        Request a new batch of cards for the given units.

        Args:
            units: Units the generated cards may reference.

        Returns:
            GenerationResult with validated cards, or an error message.

        Raises:
            GenerationError: On transport failures.
        """
        pass

    async def aclose(self) -> None:
        """Release network resources. Default: nothing to release."""
        return None


class RemotePersistence(ABC):
    """
    Port for the per-session card and state store.

    Implementations:
        - HttpPersistence: Talks to the review API over HTTP.
        - JsonFilePersistence: Stores sessions in a local JSON file.
    """

    @abstractmethod
    async def fetch_snapshot(self, session_id: str) -> ReviewSnapshot:
        """
        Fetch all cards and states stored for a session.

        Raises:
            PersistenceError: If the store is unreachable.
            SnapshotError: If the stored data cannot be parsed.
        """
        pass

    @abstractmethod
    async def save_cards_batch(
        self, session_id: str, cards: Sequence[Card], max_cards: int
    ) -> None:
        """Upsert card bodies; the store keeps at most ``max_cards`` of them."""
        pass

    @abstractmethod
    async def save_states(self, session_id: str, states: Mapping[str, CardState]) -> None:
        """Upsert states, one row per card id (last writer wins)."""
        pass

    async def aclose(self) -> None:
        """Release network resources. Default: nothing to release."""
        return None
