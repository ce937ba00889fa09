"""
Session Factory
Centralizes the logic for selecting adapters and wiring a review session.
"""

import logging
import random

from reviewloop.application.card_store import CardStore
from reviewloop.application.config import AppConfig
from reviewloop.application.queue_monitor import QueueMonitor
from reviewloop.application.review_session import ReviewSession
from reviewloop.application.sync_coordinator import SyncCoordinator
from reviewloop.application.utils.clock import Clock, now_ms
from reviewloop.domain.ports import CardSource, RemotePersistence
from reviewloop.infrastructure.adapters.file_persistence import JsonFilePersistence
from reviewloop.infrastructure.adapters.http_card_source import HttpCardSource
from reviewloop.infrastructure.adapters.http_persistence import HttpPersistence
from reviewloop.infrastructure.adapters.seed_deck import load_seed_deck

logger = logging.getLogger(__name__)

REVIEW_FILE = "review.json"


def get_persistence(config: AppConfig, clock: Clock = now_ms) -> RemotePersistence:
    """
    Returns the remote store for the configured session.
    """
    if config.api_base_url:
        logger.debug(f"Persistence: HTTP ({config.api_base_url})")
        return HttpPersistence(config.api_base_url, timeout=config.request_timeout)

    path = config.data_dir / REVIEW_FILE
    logger.debug(f"Persistence: local file ({path})")
    return JsonFilePersistence(path, retention_days=config.retention_days, clock=clock)


def get_card_source(config: AppConfig) -> CardSource | None:
    """
    Returns the card generator, or None when no credential is configured.
    """
    if not config.has_generation_credentials:
        return None
    return HttpCardSource(
        config.generation_url,
        config.generation_api_key,
        batch_size=config.batch_size,
        timeout=config.request_timeout,
    )


def build_session(
    config: AppConfig,
    rng: random.Random | None = None,
    clock: Clock = now_ms,
    persistence: RemotePersistence | None = None,
    source: CardSource | None = None,
) -> ReviewSession:
    """
    Wire a review session from configuration.

    ``persistence`` and ``source`` override the configured adapters.
    """
    if config.session_id is None:
        raise ValueError("config.session_id must be resolved before building a session")

    seed = load_seed_deck(config.seed_deck)
    store = CardStore(clock=clock)
    persistence = persistence or get_persistence(config, clock)
    source = source or get_card_source(config)

    monitor = QueueMonitor(
        store,
        source,
        seed.units,
        cooldown_seconds=config.generation_cooldown_seconds,
        batch_size=config.batch_size,
        min_code_cards=config.min_code_cards,
        clock=clock,
    )
    sync = SyncCoordinator(
        config.session_id,
        store,
        persistence,
        state_delay=config.state_sync_delay,
        card_delay=config.card_sync_delay,
        max_cards=config.max_cards,
        retention_days=config.retention_days,
        clock=clock,
    )
    session = ReviewSession(
        config.session_id,
        store,
        persistence,
        monitor,
        sync,
        seed_cards=seed.cards,
        rng=rng,
        clock=clock,
    )
    monitor.on_cards_added = session.on_cards_added
    return session
