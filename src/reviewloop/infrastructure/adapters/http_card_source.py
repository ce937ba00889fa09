import logging
from collections.abc import Sequence
from typing import Any

import httpx

from reviewloop.application.validation import extract_json_object, validate_cards
from reviewloop.domain.constants import BATCH_SIZE, MAX_PROMPT_UNITS, REQUEST_TIMEOUT
from reviewloop.domain.errors import GenerationError
from reviewloop.domain.models import GenerationResult, Unit
from reviewloop.domain.ports import CardSource


class HttpCardSource(CardSource):
    """
    Adapter for a card generation endpoint.

    The endpoint receives the available units and answers either with
    ``{"cards": [...]}`` or with raw model output under ``"text"`` that contains
    such an object. Entries that fail the card schema are dropped here; batch
    composition is checked by the queue monitor.
    """

    def __init__(
        self,
        url: str,
        api_key: str,
        batch_size: int = BATCH_SIZE,
        timeout: float = REQUEST_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ):
        self.logger = logging.getLogger(__name__)
        self.url = url
        self._api_key = api_key
        self.batch_size = batch_size
        self.timeout = timeout
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def generate_batch(self, units: Sequence[Unit]) -> GenerationResult:
        payload = {
            "batchSize": self.batch_size,
            "units": [
                {"id": u.id, "title": u.title, "externalUrl": u.external_url}
                for u in units[:MAX_PROMPT_UNITS]
            ],
        }
        try:
            resp = await self._get_client().post(
                self.url,
                json=payload,
                headers={"Authorization": f"Bearer {self._api_key}"},
            )
        except httpx.HTTPError as e:
            raise GenerationError(f"Request to card generator failed: {e}") from e

        if resp.status_code == 429:
            return GenerationResult(error="Card generator quota exceeded, try again later.")
        if resp.status_code >= 400:
            return GenerationResult(
                error=f"Card generator returned {resp.status_code}: {resp.text[:200]}"
            )

        body = self._parse_body(resp)
        if body is None or not isinstance(body.get("cards"), list):
            return GenerationResult(error="Card generator did not return valid card JSON.")

        cards = validate_cards(body["cards"])
        self.logger.debug(f"Generator returned {len(body['cards'])} entries, {len(cards)} valid")
        return GenerationResult(cards=cards)

    @staticmethod
    def _parse_body(resp: httpx.Response) -> dict[str, Any] | None:
        try:
            data = resp.json()
        except ValueError:
            return extract_json_object(resp.text)

        if isinstance(data, dict) and isinstance(data.get("text"), str):
            return extract_json_object(data["text"])
        return data if isinstance(data, dict) else None
