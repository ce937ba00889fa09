import asyncio
from unittest.mock import AsyncMock

import pytest

from reviewloop.application.card_store import CardStore
from reviewloop.application.scheduler import apply_grade
from reviewloop.application.sync_coordinator import SyncCoordinator
from reviewloop.domain.constants import DAY_MS
from reviewloop.domain.models import Grade
from reviewloop.domain.ports import RemotePersistence

DELAY = 0.01


@pytest.fixture
def store(clock):
    return CardStore(clock=clock)


@pytest.fixture
def sync(store, persistence, clock):
    return SyncCoordinator(
        "s1", store, persistence, state_delay=DELAY, card_delay=DELAY, max_cards=3, clock=clock
    )


def grade(store, card_id, clock):
    store.update_state(card_id, lambda s: apply_grade(s, Grade.GOOD, clock.now))


@pytest.mark.asyncio
async def test_grades_are_coalesced_into_one_write(sync, store, persistence, clock, make_concept):
    store.upsert_cards([make_concept("a"), make_concept("b")])
    for card_id in ["a", "b", "a"]:
        grade(store, card_id, clock)
        sync.mark_dirty(card_id)

    assert persistence.saved_states == []
    await asyncio.sleep(DELAY * 5)

    assert len(persistence.saved_states) == 1
    session_id, states = persistence.saved_states[0]
    assert session_id == "s1"
    assert set(states) == {"a", "b"}
    assert states["a"].seen_count == 2
    assert sync.pending_ids == frozenset()


@pytest.mark.asyncio
async def test_failed_write_keeps_ids_pending(sync, store, persistence, clock, make_concept):
    store.upsert_cards([make_concept("a"), make_concept("b")])
    persistence.fail_writes = True
    sync.mark_dirty("a")

    assert await sync.flush_states() is False
    assert sync.pending_ids == {"a"}
    # Local state is untouched by the failure
    assert store.get_state("a") is not None

    persistence.fail_writes = False
    sync.mark_dirty("b")
    assert await sync.flush_states() is True
    assert set(persistence.saved_states[-1][1]) == {"a", "b"}
    assert sync.pending_ids == frozenset()


@pytest.mark.asyncio
async def test_flush_states_skips_removed_cards(sync, persistence):
    sync.mark_dirty("gone")
    assert await sync.flush_states() is True
    assert persistence.saved_states == []


@pytest.mark.asyncio
async def test_card_count_change_triggers_batch_write(sync, store, persistence, make_concept):
    store.upsert_cards([make_concept("a")])
    sync.notify_card_count(1)
    sync.notify_card_count(1)
    await asyncio.sleep(DELAY * 5)
    assert len(persistence.saved_cards) == 1
    _, cards, max_cards = persistence.saved_cards[0]
    assert [c.id for c in cards] == ["a"]
    assert max_cards == 3

    # Same count again: nothing new to write
    sync.notify_card_count(1)
    await asyncio.sleep(DELAY * 5)
    assert len(persistence.saved_cards) == 1


@pytest.mark.asyncio
async def test_flush_cards_prunes_before_writing(sync, store, persistence, clock, make_concept):
    for i in range(5):
        store.upsert_cards([make_concept(f"c{i}")])
        clock.advance(1000)
    sync.mark_dirty("c0")
    sync._state_debounce.cancel()

    assert await sync.flush_cards() is True

    _, cards, _ = persistence.saved_cards[0]
    assert [c.id for c in cards] == ["c2", "c3", "c4"]
    assert "c0" not in sync.pending_ids


@pytest.mark.asyncio
async def test_flush_cards_drops_stale_cards(sync, store, persistence, clock, make_concept):
    store.upsert_cards([make_concept("old")])
    clock.advance(91 * DAY_MS)
    store.upsert_cards([make_concept("new")])

    await sync.flush_cards()

    assert [c.id for c in store.cards()] == ["new"]


@pytest.mark.asyncio
async def test_bootstrap_pushes_cards_and_states(sync, store, persistence, make_concept):
    store.upsert_cards([make_concept("a"), make_concept("b")])
    assert await sync.bootstrap(store.cards(), store.states()) is True
    assert len(persistence.saved_cards[0][1]) == 2
    assert set(persistence.saved_states[0][1]) == {"a", "b"}


@pytest.mark.asyncio
async def test_bootstrap_failure_is_tolerated(sync, store, persistence, make_concept):
    store.upsert_cards([make_concept("a")])
    persistence.fail_writes = True
    assert await sync.bootstrap(store.cards(), store.states()) is False


@pytest.mark.asyncio
async def test_aclose_flushes_pending_work(store, persistence, clock, make_concept):
    sync = SyncCoordinator("s1", store, persistence, state_delay=60, card_delay=60, clock=clock)
    store.upsert_cards([make_concept("a")])
    sync.notify_card_count(1)
    grade(store, "a", clock)
    sync.mark_dirty("a")

    await sync.aclose()

    assert len(persistence.saved_cards) == 1
    assert set(persistence.saved_states[0][1]) == {"a"}


@pytest.mark.asyncio
async def test_aclose_without_flush_drops_timers(store, persistence, clock, make_concept):
    sync = SyncCoordinator("s1", store, persistence, state_delay=60, card_delay=60, clock=clock)
    store.upsert_cards([make_concept("a")])
    sync.mark_dirty("a")

    await sync.aclose(flush=False)

    assert persistence.saved_states == []
    assert sync.pending_ids == {"a"}


@pytest.mark.asyncio
async def test_unexpected_write_error_keeps_ids_pending(store, clock, make_concept):
    persistence = AsyncMock(spec=RemotePersistence)
    persistence.save_states.side_effect = UnicodeDecodeError("utf-8", b"\xff", 0, 1, "bad")
    sync = SyncCoordinator("s1", store, persistence, state_delay=60, clock=clock)
    store.upsert_cards([make_concept("c1")])
    sync.mark_dirty("c1")

    assert await sync.flush_states() is False
    assert sync.pending_ids == {"c1"}

    persistence.save_states.side_effect = None
    assert await sync.flush_states() is True
    assert sync.pending_ids == frozenset()
    await sync.aclose(flush=False)


@pytest.mark.asyncio
async def test_failed_card_write_is_retried_on_next_count(sync, store, persistence, make_concept):
    store.upsert_cards([make_concept("a")])
    persistence.fail_writes = True
    assert await sync.flush_cards() is False

    persistence.fail_writes = False
    sync.notify_card_count(1)
    await asyncio.sleep(DELAY * 5)
    assert len(persistence.saved_cards) == 1
