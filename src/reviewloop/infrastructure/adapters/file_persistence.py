"""
JSON file persistence: local stand-in for the review API.

Stores every session in one JSON document and applies the same data hygiene
as the server: upserts keyed by card id, a retention window, and a card cap
that drops the oldest cards together with their states. File access runs in a
worker thread so the event loop stays responsive.
"""

import asyncio
import json
import logging
import os
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

from reviewloop.application.serialization import (
    card_to_dict,
    snapshot_from_payload,
    state_to_dict,
)
from reviewloop.application.utils.clock import Clock, now_ms
from reviewloop.domain.constants import DAY_MS, RETENTION_DAYS
from reviewloop.domain.errors import PersistenceError, SnapshotError
from reviewloop.domain.models import Card, CardState, ReviewSnapshot
from reviewloop.domain.ports import RemotePersistence

logger = logging.getLogger(__name__)


class JsonFilePersistence(RemotePersistence):
    def __init__(
        self,
        path: Path,
        retention_days: int = RETENTION_DAYS,
        clock: Clock = now_ms,
    ):
        self.path = path
        self.retention_ms = retention_days * DAY_MS
        self._clock = clock
        self._lock = asyncio.Lock()

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {"sessions": {}}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except OSError as e:
            raise PersistenceError(f"Could not read {self.path}: {e}") from e
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise SnapshotError(f"Corrupt review file {self.path}: {e}") from e
        if not isinstance(data, dict) or not isinstance(data.get("sessions"), dict):
            raise SnapshotError(f"Unexpected layout in {self.path}")
        return data

    def _save(self, data: dict[str, Any]) -> None:
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as e:
            raise PersistenceError(f"Could not write {self.path}: {e}") from e

    def _session(self, data: dict[str, Any], session_id: str) -> dict[str, Any]:
        session = data["sessions"].setdefault(session_id, {})
        session.setdefault("cards", {})
        session.setdefault("states", {})
        return session

    def _prune(self, session: dict[str, Any], max_cards: int | None = None) -> list[str]:
        """
        Drop cards created and states updated before the retention window,
        each by its own timestamp, then the oldest cards beyond ``max_cards``.

        Returns:
            Card ids removed.
        """
        cards: dict[str, Any] = session["cards"]
        states: dict[str, Any] = session["states"]
        cutoff = self._clock() - self.retention_ms

        for cid in [cid for cid, row in states.items() if row.get("updatedAt", 0) < cutoff]:
            del states[cid]

        dropped = [cid for cid, row in cards.items() if row.get("createdAt", 0) < cutoff]

        if max_cards is not None:
            survivors = [cid for cid in cards if cid not in dropped]
            if len(survivors) > max_cards:
                # Newest first; everything past the cap goes
                survivors.sort(key=lambda cid: cards[cid].get("createdAt", 0), reverse=True)
                dropped.extend(survivors[max_cards:])

        for cid in dropped:
            cards.pop(cid, None)
            states.pop(cid, None)

        if dropped:
            logger.info(f"Pruned {len(dropped)} stored card(s)")
        return dropped

    def _read_session(self, session_id: str) -> tuple[list[Any], dict[str, Any]]:
        data = self._load()
        session = data["sessions"].get(session_id)
        if session is None:
            return [], {}
        try:
            if self._prune(self._session(data, session_id)):
                self._save(data)
            rows = sorted(
                session["cards"].values(), key=lambda row: row.get("createdAt", 0), reverse=True
            )
            payload_cards = [row["data"] for row in rows]
            payload_states = {cid: row["data"] for cid, row in session["states"].items()}
        except (KeyError, TypeError, AttributeError) as e:
            raise SnapshotError(f"Malformed session {session_id}: {e}") from e
        return payload_cards, payload_states

    def _write_cards(self, session_id: str, cards: Sequence[Card], max_cards: int) -> None:
        data = self._load()
        try:
            session = self._session(data, session_id)
            now = self._clock()
            for card in cards:
                row = session["cards"].get(card.id)
                created_at = row.get("createdAt", now) if isinstance(row, dict) else now
                session["cards"][card.id] = {"createdAt": created_at, "data": card_to_dict(card)}
            self._prune(session, max_cards)
        except (KeyError, TypeError, AttributeError) as e:
            raise SnapshotError(f"Malformed session {session_id}: {e}") from e
        self._save(data)

    def _write_states(self, session_id: str, states: Mapping[str, CardState]) -> None:
        data = self._load()
        try:
            session = self._session(data, session_id)
            now = self._clock()
            for card_id, state in states.items():
                session["states"][card_id] = {"updatedAt": now, "data": state_to_dict(state)}
        except (KeyError, TypeError, AttributeError) as e:
            raise SnapshotError(f"Malformed session {session_id}: {e}") from e
        self._save(data)

    async def fetch_snapshot(self, session_id: str) -> ReviewSnapshot:
        async with self._lock:
            cards, states = await asyncio.to_thread(self._read_session, session_id)
        return snapshot_from_payload(cards, states)

    async def save_cards_batch(
        self, session_id: str, cards: Sequence[Card], max_cards: int
    ) -> None:
        if not cards:
            return
        async with self._lock:
            await asyncio.to_thread(self._write_cards, session_id, list(cards), max_cards)

    async def save_states(self, session_id: str, states: Mapping[str, CardState]) -> None:
        if not states:
            return
        async with self._lock:
            await asyncio.to_thread(self._write_states, session_id, dict(states))
