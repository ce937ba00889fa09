import asyncio
import logging
from collections.abc import Mapping, Sequence
from typing import Any

import httpx

from reviewloop.application.serialization import (
    card_to_dict,
    snapshot_from_payload,
    states_to_dict,
)
from reviewloop.domain.constants import REQUEST_TIMEOUT
from reviewloop.domain.errors import PersistenceError, SnapshotError
from reviewloop.domain.models import Card, CardState, ReviewSnapshot
from reviewloop.domain.ports import RemotePersistence


class HttpPersistence(RemotePersistence):
    """Adapter for the review API (per-session card and state rows over HTTP)."""

    def __init__(
        self,
        base_url: str,
        timeout: float = REQUEST_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ):
        self.logger = logging.getLogger(__name__)
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client
        self.logger.debug(f"HttpPersistence initialized with base_url={self.base_url}")

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(
        self, method: str, path: str, parse_json: bool = True, **kwargs: Any
    ) -> Any:
        url = f"{self.base_url}{path}"
        try:
            resp = await self._get_client().request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise PersistenceError(f"{method} {path} failed: {e}") from e

        if resp.status_code >= 400:
            detail = resp.text or resp.reason_phrase
            raise PersistenceError(f"{method} {path} returned {resp.status_code}: {detail}")

        if not parse_json:
            return None

        try:
            return resp.json()
        except ValueError as e:
            raise SnapshotError(f"{method} {path} returned invalid JSON") from e

    async def fetch_snapshot(self, session_id: str) -> ReviewSnapshot:
        cards, states = await asyncio.gather(
            self._request("GET", f"/api/review/cards/{session_id}"),
            self._request("GET", f"/api/review/state/{session_id}"),
        )
        return snapshot_from_payload(cards, states)

    async def save_cards_batch(
        self, session_id: str, cards: Sequence[Card], max_cards: int
    ) -> None:
        if not cards:
            return
        await self._request(
            "POST",
            "/api/review/cards/batch",
            parse_json=False,
            json={
                "sessionId": session_id,
                "cards": [card_to_dict(c) for c in cards],
                "maxCards": max_cards,
            },
        )
        self.logger.debug(f"Saved {len(cards)} card(s) for session {session_id}")

    async def save_states(self, session_id: str, states: Mapping[str, CardState]) -> None:
        if not states:
            return
        await self._request(
            "POST",
            "/api/review/state",
            parse_json=False,
            json={"sessionId": session_id, "states": states_to_dict(states)},
        )
        self.logger.debug(f"Saved {len(states)} state(s) for session {session_id}")
