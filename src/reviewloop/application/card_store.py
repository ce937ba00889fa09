"""
Card store: card id -> (immutable card, scheduling state).

Every mutation runs under one lock so grading and re-selection never interleave
when the store is shared between tasks or threads.
"""

import logging
import threading
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass

from reviewloop.application.scheduler import initial_state
from reviewloop.application.utils.clock import Clock, now_ms
from reviewloop.domain.errors import UnknownCardError
from reviewloop.domain.models import Card, CardState

logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    card: Card
    state: CardState
    created_at: int


class CardStore:
    def __init__(self, clock: Clock = now_ms):
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, card_id: object) -> bool:
        return card_id in self._entries

    def upsert_cards(self, cards: Iterable[Card]) -> list[str]:
        """
        Add cards whose id is not yet known.

        Existing ids are left untouched: card content is immutable and the
        card keeps its scheduling state.

        Returns:
            Ids that were newly inserted, in input order.
        """
        inserted: list[str] = []
        with self._lock:
            now = self._clock()
            for card in cards:
                if card.id in self._entries:
                    continue
                self._entries[card.id] = _Entry(card=card, state=initial_state(now), created_at=now)
                inserted.append(card.id)
        if inserted:
            logger.debug(f"Inserted {len(inserted)} new card(s)")
        return inserted

    def merge_remote_state(self, states: Mapping[str, CardState]) -> int:
        """
        Hydrate local state from the remote store.

        Remote state wins for ids known locally. Local ids missing remotely keep
        their state; remote states without a local card are ignored.

        Returns:
            Number of local states replaced.
        """
        merged = 0
        with self._lock:
            for card_id, state in states.items():
                entry = self._entries.get(card_id)
                if entry is None:
                    logger.debug(f"Ignoring remote state for unknown card {card_id}")
                    continue
                entry.state = state
                merged += 1
        return merged

    def get_card(self, card_id: str) -> Card | None:
        entry = self._entries.get(card_id)
        return entry.card if entry else None

    def get_state(self, card_id: str) -> CardState | None:
        entry = self._entries.get(card_id)
        return entry.state if entry else None

    def update_state(
        self, card_id: str, transform: Callable[[CardState], CardState]
    ) -> CardState:
        """Read, transform and write a state as one step under the store lock."""
        with self._lock:
            entry = self._entries.get(card_id)
            if entry is None:
                raise UnknownCardError(card_id)
            entry.state = transform(entry.state)
            return entry.state

    def cards(self) -> list[Card]:
        with self._lock:
            return [entry.card for entry in self._entries.values()]

    def states(self) -> dict[str, CardState]:
        """Point-in-time copy of every card's state."""
        with self._lock:
            return {card_id: entry.state for card_id, entry in self._entries.items()}

    def remove(self, card_ids: Iterable[str]) -> list[str]:
        removed = []
        with self._lock:
            for card_id in card_ids:
                if self._entries.pop(card_id, None) is not None:
                    removed.append(card_id)
        return removed

    def prune(self, now: int, retention_ms: int, max_cards: int) -> list[str]:
        """
        Apply the retention policy.

        1. Drop cards created before the window, together with their state.
        2. If more than ``max_cards`` remain, drop the oldest-created ones.

        Returns:
            Ids removed, oldest first.
        """
        cutoff = now - retention_ms
        with self._lock:
            stale = [
                card_id for card_id, entry in self._entries.items() if entry.created_at < cutoff
            ]
            removed = self.remove(stale)

            overflow = len(self._entries) - max_cards
            if overflow > 0:
                # dict order breaks created_at ties by insertion
                by_age = sorted(self._entries, key=lambda cid: self._entries[cid].created_at)
                removed.extend(self.remove(by_age[:overflow]))

        if removed:
            logger.info(f"Pruned {len(removed)} card(s) by retention policy")
        return removed
