"""
Sync coordinator: debounced, local-first persistence of cards and states.

Local state is authoritative. A failed write is never retried on a timer; the
ids stay pending and go out with the next flush triggered by a later grade.
"""

import logging
from collections.abc import Iterable, Mapping

from reviewloop.application.card_store import CardStore
from reviewloop.application.debounce import Debouncer
from reviewloop.application.utils.clock import Clock, now_ms
from reviewloop.domain.constants import (
    CARD_SYNC_DELAY,
    DAY_MS,
    MAX_REVIEW_CARDS,
    RETENTION_DAYS,
    STATE_SYNC_DELAY,
)
from reviewloop.domain.errors import PersistenceError
from reviewloop.domain.models import Card, CardState
from reviewloop.domain.ports import RemotePersistence

logger = logging.getLogger(__name__)


class SyncCoordinator:
    def __init__(
        self,
        session_id: str,
        store: CardStore,
        persistence: RemotePersistence,
        state_delay: float = STATE_SYNC_DELAY,
        card_delay: float = CARD_SYNC_DELAY,
        max_cards: int = MAX_REVIEW_CARDS,
        retention_days: int = RETENTION_DAYS,
        clock: Clock = now_ms,
    ):
        self.session_id = session_id
        self._store = store
        self._persistence = persistence
        self._clock = clock
        self.max_cards = max_cards
        self.retention_ms = retention_days * DAY_MS

        self._pending_ids: set[str] = set()
        self._last_card_count: int | None = None
        self._state_debounce = Debouncer(state_delay, self.flush_states, name="state-sync")
        self._card_debounce = Debouncer(card_delay, self.flush_cards, name="card-sync")

    @property
    def pending_ids(self) -> frozenset[str]:
        return frozenset(self._pending_ids)

    def mark_dirty(self, *card_ids: str) -> None:
        """Queue states for the next batched write and restart the state timer."""
        self._pending_ids.update(card_ids)
        self._state_debounce.trigger()

    def notify_card_count(self, count: int) -> None:
        """Schedule a card batch write if the number of cards changed."""
        if count == self._last_card_count:
            return
        self._last_card_count = count
        self._card_debounce.trigger()

    async def flush_states(self) -> bool:
        """
        Write the states of all pending ids in a single call.

        Returns:
            True if nothing was pending or the write succeeded.
        """
        ids = list(self._pending_ids)
        self._pending_ids.clear()
        if not ids:
            return True

        payload: dict[str, CardState] = {}
        for card_id in ids:
            state = self._store.get_state(card_id)
            if state is not None:
                payload[card_id] = state
        if not payload:
            return True

        try:
            await self._persistence.save_states(self.session_id, payload)
        except PersistenceError as e:
            # Keep them for the next flush; ids re-dirtied meanwhile are already there
            self._pending_ids.update(payload)
            logger.warning(f"State sync failed for {len(payload)} card(s), will resend: {e}")
            return False
        except Exception as e:
            self._pending_ids.update(payload)
            logger.error(f"State sync crashed, will resend: {e}", exc_info=True)
            return False

        logger.debug(f"Synced {len(payload)} card state(s)")
        return True

    async def flush_cards(self) -> bool:
        removed = self._store.prune(self._clock(), self.retention_ms, self.max_cards)
        self._pending_ids.difference_update(removed)
        cards = self._store.cards()
        self._last_card_count = len(cards)
        try:
            await self._persistence.save_cards_batch(self.session_id, cards, self.max_cards)
        except PersistenceError as e:
            self._last_card_count = None
            logger.warning(f"Card batch sync failed: {e}")
            return False
        except Exception as e:
            self._last_card_count = None
            logger.error(f"Card batch sync crashed: {e}", exc_info=True)
            return False

        logger.debug(f"Synced {len(cards)} card(s)")
        return True

    async def bootstrap(self, cards: Iterable[Card], states: Mapping[str, CardState]) -> bool:
        """One-time push of the local deck to an empty remote store."""
        cards = list(cards)
        try:
            await self._persistence.save_cards_batch(self.session_id, cards, self.max_cards)
            await self._persistence.save_states(self.session_id, dict(states))
        except PersistenceError as e:
            logger.warning(f"Bootstrap push failed, continuing locally: {e}")
            return False
        except Exception as e:
            logger.error(f"Bootstrap push crashed, continuing locally: {e}", exc_info=True)
            return False

        self._last_card_count = len(cards)
        logger.info(f"Bootstrapped remote store with {len(cards)} card(s)")
        return True

    async def aclose(self, flush: bool = True) -> None:
        """
        Cancel pending timers.

        With ``flush``, an unsent card batch and pending states get one last
        write attempt instead of waiting for a grade that will never come.
        """
        cards_pending = self._card_debounce.pending
        self._card_debounce.cancel()
        self._state_debounce.cancel()
        await self._state_debounce.wait_idle()
        await self._card_debounce.wait_idle()
        if not flush:
            return
        if cards_pending:
            await self._card_debounce.flush()
        if self._pending_ids:
            await self._state_debounce.flush()
