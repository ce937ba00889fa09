"""
Queue monitor: requests more cards when the learner runs out.

Guards against hammering the card source:
1. A cooldown since the last attempt (successful or not)
2. At most one generation in flight; extra requests are dropped
3. No attempt at all without a configured source
Failures are reported, never retried automatically.
"""

import asyncio
import logging
from collections.abc import Callable, Sequence

from reviewloop.application.card_store import CardStore
from reviewloop.application.utils.clock import Clock, now_ms
from reviewloop.application.validation import validate_batch
from reviewloop.domain.constants import BATCH_SIZE, GENERATION_COOLDOWN_SECONDS, MIN_CODE_CARDS
from reviewloop.domain.errors import GenerationError
from reviewloop.domain.models import GenerationOutcome, Unit
from reviewloop.domain.ports import CardSource

logger = logging.getLogger(__name__)


class QueueMonitor:
    def __init__(
        self,
        store: CardStore,
        source: CardSource | None,
        units: Sequence[Unit],
        on_cards_added: Callable[[list[str]], None] | None = None,
        cooldown_seconds: float = GENERATION_COOLDOWN_SECONDS,
        batch_size: int = BATCH_SIZE,
        min_code_cards: int = MIN_CODE_CARDS,
        clock: Clock = now_ms,
    ):
        """
        Args:
            store: Card store that receives generated cards.
            source: Card source, or None when no credential is configured.
            units: Units generated cards may reference.
            on_cards_added: Called with the ids inserted by a successful batch.
        """
        self._store = store
        self._source = source
        self.units = list(units)
        self.on_cards_added = on_cards_added
        self.cooldown_ms = int(cooldown_seconds * 1000)
        self.batch_size = batch_size
        self.min_code_cards = min_code_cards
        self._clock = clock

        self.last_generation_at: int | None = None
        self.is_generating = False
        self.last_error: str | None = None
        self._task: asyncio.Task | None = None

    @property
    def has_source(self) -> bool:
        return self._source is not None

    async def maybe_generate(self) -> GenerationOutcome:
        now = self._clock()
        if self.last_generation_at is not None and now - self.last_generation_at < self.cooldown_ms:
            logger.debug("Generation skipped: cooling down")
            return GenerationOutcome(status="skipped", message="cooldown")
        if self.is_generating:
            logger.debug("Generation skipped: already in flight")
            return GenerationOutcome(status="skipped", message="in_flight")
        if self._source is None:
            logger.debug("Generation skipped: no card source configured")
            return GenerationOutcome(status="skipped", message="no_credentials")

        self.last_generation_at = now
        self.is_generating = True
        try:
            return await self._generate(self._source)
        finally:
            self.is_generating = False

    async def _generate(self, source: CardSource) -> GenerationOutcome:
        try:
            result = await source.generate_batch(self.units)
            if result.error:
                raise GenerationError(result.error)
            cards = validate_batch(
                result.cards,
                (u.id for u in self.units),
                batch_size=self.batch_size,
                min_code_cards=self.min_code_cards,
            )
        except GenerationError as e:
            self.last_error = f"Card generation failed: {e}"
            logger.warning(self.last_error)
            return GenerationOutcome(status="failed", message=self.last_error)
        except Exception as e:
            self.last_error = f"Card generation failed: {e}"
            logger.error(self.last_error, exc_info=True)
            return GenerationOutcome(status="failed", message=self.last_error)

        added = self._store.upsert_cards(cards)
        self.last_error = None
        logger.info(f"Generated {len(cards)} card(s), {len(added)} new")
        if added and self.on_cards_added is not None:
            self.on_cards_added(added)
        return GenerationOutcome(
            status="added", added=added, message=f"{len(added)} new cards added"
        )

    def notify_exhausted(self) -> None:
        """
        Start a background generation if none is running.

        Safe to call repeatedly; the guards in maybe_generate still apply.
        """
        if self._source is None or self.is_generating:
            return
        if self._task is not None and not self._task.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; background generation not started")
            return
        self._task = loop.create_task(self.maybe_generate())
        self._task.add_done_callback(self._log_task_failure)

    @staticmethod
    def _log_task_failure(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Background generation crashed: {exc}", exc_info=exc)

    async def wait_idle(self) -> None:
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    async def aclose(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
        self._task = None
        if self._source is not None:
            await self._source.aclose()
