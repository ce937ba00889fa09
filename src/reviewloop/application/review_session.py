"""
Review session: application layer orchestrator.

One instance per learner session. Owns the card store and wires the scheduling
engine, queue monitor and sync coordinator together behind the surface the UI
uses: next card, grade, counts, request more cards.
"""

import logging
import random
from collections.abc import Sequence

from reviewloop.application import scheduler
from reviewloop.application.card_store import CardStore
from reviewloop.application.queue_monitor import QueueMonitor
from reviewloop.application.sync_coordinator import SyncCoordinator
from reviewloop.application.utils.clock import Clock, now_ms
from reviewloop.domain.errors import PersistenceError
from reviewloop.domain.models import Card, CardState, GenerationOutcome, Grade, QueueCounts
from reviewloop.domain.ports import RemotePersistence

logger = logging.getLogger(__name__)


class ReviewSession:
    """
    Follows Dependency Inversion: depends on the persistence and card source
    ports, never on concrete adapters.
    """

    def __init__(
        self,
        session_id: str,
        store: CardStore,
        persistence: RemotePersistence,
        monitor: QueueMonitor,
        sync: SyncCoordinator,
        seed_cards: Sequence[Card] = (),
        rng: random.Random | None = None,
        clock: Clock = now_ms,
    ):
        self.session_id = session_id
        self.store = store
        self.monitor = monitor
        self.sync = sync
        self._persistence = persistence
        self._seed_cards = list(seed_cards)
        self._rng = rng or random.Random()
        self._clock = clock
        self.is_hydrated = False

    async def start(self) -> None:
        """
        Load the seed deck and hydrate from the remote store.

        Remote state wins for known cards. An unreachable or malformed remote
        leaves the local deck in charge. An empty remote gets the local deck
        pushed to it once.
        """
        self.store.upsert_cards(self._seed_cards)

        try:
            snapshot = await self._persistence.fetch_snapshot(self.session_id)
        except PersistenceError as e:
            logger.warning(f"Hydration failed, using local deck: {e}")
            self._finish_hydration()
            return

        self.store.upsert_cards(snapshot.cards)
        merged = self.store.merge_remote_state(snapshot.states)
        logger.info(
            f"Hydrated session {self.session_id}: "
            f"{len(snapshot.cards)} remote card(s), {merged} state(s) merged"
        )

        if not snapshot.cards:
            await self.sync.bootstrap(self.store.cards(), self.store.states())
        self._finish_hydration()

    def _finish_hydration(self) -> None:
        self.is_hydrated = True
        self.sync.notify_card_count(len(self.store))

    def get_card(self, card_id: str) -> Card | None:
        return self.store.get_card(card_id)

    def get_state(self, card_id: str) -> CardState | None:
        return self.store.get_state(card_id)

    def get_next_card(self) -> str | None:
        """
        Id of the card to show next, or None when nothing is eligible.

        None also asks the queue monitor for a new batch.
        """
        card_id = scheduler.select_next(self.store.states(), self._clock(), self._rng)
        if card_id is None:
            self.monitor.notify_exhausted()
        return card_id

    def grade_card(self, card_id: str, grade: Grade | str) -> CardState:
        """
        Record a grade and schedule the state for sync.

        Raises:
            UnknownCardError: If the store has no state for ``card_id``.
            ValueError: If ``grade`` is not a valid grade.
        """
        grade = Grade(grade)
        now = self._clock()
        new_state = self.store.update_state(
            card_id, lambda state: scheduler.apply_grade(state, grade, now)
        )
        self.sync.mark_dirty(card_id)
        return new_state

    def counts(self) -> QueueCounts:
        return scheduler.count_queues(self.store.states(), self._clock())

    async def request_more_cards(self) -> GenerationOutcome:
        """Manual generation trigger; same guards as the automatic one."""
        return await self.monitor.maybe_generate()

    def on_cards_added(self, card_ids: list[str]) -> None:
        self.sync.notify_card_count(len(self.store))
        self.sync.mark_dirty(*card_ids)

    async def aclose(self, flush: bool = True) -> None:
        await self.monitor.aclose()
        await self.sync.aclose(flush=flush)
        await self._persistence.aclose()
