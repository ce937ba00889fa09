import asyncio
from unittest.mock import MagicMock

import httpx
import pytest

from reviewloop.application.card_store import CardStore
from reviewloop.application.queue_monitor import QueueMonitor
from reviewloop.application.serialization import card_to_dict
from reviewloop.domain.errors import GenerationError
from reviewloop.domain.models import GenerationResult
from reviewloop.infrastructure.adapters.http_card_source import HttpCardSource


@pytest.fixture
def store(clock):
    return CardStore(clock=clock)


def make_monitor(store, source, units, clock, **kwargs):
    return QueueMonitor(store, source, units, cooldown_seconds=15, clock=clock, **kwargs)


@pytest.mark.asyncio
async def test_successful_batch_is_added(store, units, clock, make_batch, stub_source_cls):
    source = stub_source_cls(GenerationResult(cards=make_batch()))
    callback = MagicMock()
    monitor = make_monitor(store, source, units, clock, on_cards_added=callback)

    outcome = await monitor.maybe_generate()

    assert outcome.status == "added"
    assert len(outcome.added) == 5
    assert outcome.message == "5 new cards added"
    assert len(store) == 5
    callback.assert_called_once_with(outcome.added)
    assert source.calls == [units]
    assert monitor.last_generation_at == clock.now
    assert not monitor.is_generating


@pytest.mark.asyncio
async def test_cooldown_blocks_second_attempt(store, units, clock, make_batch, stub_source_cls):
    source = stub_source_cls(
        GenerationResult(cards=make_batch("one")), GenerationResult(cards=make_batch("two"))
    )
    monitor = make_monitor(store, source, units, clock)

    await monitor.maybe_generate()
    clock.advance(14_999)
    outcome = await monitor.maybe_generate()
    assert outcome.status == "skipped"
    assert outcome.message == "cooldown"
    assert len(source.calls) == 1

    clock.advance(1)
    outcome = await monitor.maybe_generate()
    assert outcome.status == "added"
    assert len(store) == 10


@pytest.mark.asyncio
async def test_failure_also_starts_cooldown(store, units, clock, stub_source_cls):
    source = stub_source_cls(GenerationResult(error="quota exceeded"))
    monitor = make_monitor(store, source, units, clock)

    outcome = await monitor.maybe_generate()
    assert outcome.status == "failed"
    assert "quota exceeded" in outcome.message
    assert monitor.last_error == outcome.message

    again = await monitor.maybe_generate()
    assert again.message == "cooldown"
    assert len(source.calls) == 1


@pytest.mark.asyncio
async def test_source_exception_is_reported(store, units, clock, stub_source_cls):
    source = stub_source_cls(GenerationError("network down"))
    monitor = make_monitor(store, source, units, clock)

    outcome = await monitor.maybe_generate()

    assert outcome.status == "failed"
    assert outcome.message == "Card generation failed: network down"
    assert not monitor.is_generating


@pytest.mark.asyncio
async def test_no_source_is_skipped(store, units, clock):
    monitor = make_monitor(store, None, units, clock)
    outcome = await monitor.maybe_generate()
    assert outcome.status == "skipped"
    assert outcome.message == "no_credentials"
    assert monitor.last_generation_at is None
    assert not monitor.has_source


@pytest.mark.asyncio
async def test_in_flight_request_is_dropped(store, units, clock, make_batch):
    release = asyncio.Event()

    class SlowSource:
        calls = 0

        async def generate_batch(self, units):
            SlowSource.calls += 1
            await release.wait()
            return GenerationResult(cards=make_batch())

        async def aclose(self):
            pass

    monitor = QueueMonitor(store, SlowSource(), units, cooldown_seconds=0, clock=clock)
    first = asyncio.create_task(monitor.maybe_generate())
    await asyncio.sleep(0)
    assert monitor.is_generating

    second = await monitor.maybe_generate()
    assert second.message == "in_flight"

    release.set()
    assert (await first).status == "added"
    assert SlowSource.calls == 1


@pytest.mark.asyncio
async def test_invalid_batch_adds_nothing(store, units, clock, make_batch, stub_source_cls):
    cards = make_batch()[:3]
    source = stub_source_cls(GenerationResult(cards=cards))
    monitor = make_monitor(store, source, units, clock)

    outcome = await monitor.maybe_generate()

    assert outcome.status == "failed"
    assert "Expected 5 cards" in outcome.message
    assert len(store) == 0


@pytest.mark.asyncio
async def test_unknown_unit_rejects_batch(store, units, clock, make_batch, stub_source_cls):
    source = stub_source_cls(GenerationResult(cards=make_batch(unit_id="other")))
    monitor = make_monitor(store, source, units, clock)

    outcome = await monitor.maybe_generate()

    assert outcome.status == "failed"
    assert "unknown units" in outcome.message
    assert len(store) == 0


@pytest.mark.asyncio
async def test_notify_exhausted_runs_in_background(
    store, units, clock, make_batch, stub_source_cls
):
    source = stub_source_cls(GenerationResult(cards=make_batch()))
    monitor = make_monitor(store, source, units, clock)

    monitor.notify_exhausted()
    monitor.notify_exhausted()
    await monitor.wait_idle()

    assert len(source.calls) == 1
    assert len(store) == 5


def test_notify_exhausted_without_loop_is_noop(store, units, clock, stub_source_cls):
    monitor = make_monitor(store, stub_source_cls(), units, clock)
    monitor.notify_exhausted()
    assert monitor._task is None


@pytest.mark.asyncio
async def test_aclose_closes_source(store, units, clock):
    source = MagicMock()

    async def aclose():
        source.closed = True

    source.aclose = aclose
    monitor = make_monitor(store, source, units, clock)
    await monitor.aclose()
    assert source.closed is True


@pytest.mark.asyncio
async def test_unexpected_source_error_is_a_failed_outcome(store, units, clock, stub_source_cls):
    source = stub_source_cls(RuntimeError("boom"))
    monitor = make_monitor(store, source, units, clock)

    outcome = await monitor.maybe_generate()

    assert outcome.status == "failed"
    assert outcome.message == "Card generation failed: boom"
    assert not monitor.is_generating
    assert len(store) == 0


@pytest.mark.asyncio
async def test_card_with_numeric_url_fails_generation(store, units, clock, make_batch):
    entries = [card_to_dict(c) for c in make_batch()]
    entries[3]["externalUrl"] = 12345
    client = httpx.AsyncClient(
        transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"cards": entries}))
    )
    source = HttpCardSource("https://gen.local/cards", "k", client=client)
    monitor = make_monitor(store, source, units, clock)

    outcome = await monitor.maybe_generate()

    assert outcome.status == "failed"
    assert "Expected 5 cards, got 4" in outcome.message
    assert len(store) == 0
    await monitor.aclose()
