"""
Validation for generated card batches.

Generated content is untrusted: individual entries that do not match the card
schema are dropped, and a batch that does not have the expected composition is
rejected as a whole.
"""

import json
import logging
import re
from collections.abc import Iterable, Sequence
from typing import Any

from reviewloop.application.serialization import card_from_dict
from reviewloop.domain.constants import (
    BATCH_SIZE,
    MIN_CODE_BLOCKS,
    MIN_CODE_CARDS,
    PROBLEM_URL_MARKER,
)
from reviewloop.domain.errors import BatchValidationError
from reviewloop.domain.models import Card, CodeReorderCard, ConceptCard

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*\n?([\s\S]*?)\n?\s*```")


def extract_json_object(text: str) -> dict[str, Any] | None:
    """
    Pull the outermost JSON object out of model output.

    Handles markdown code fences and leading/trailing prose.
    """
    cleaned = _FENCE_RE.sub(r"\1", text).strip()
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start == -1 or end == -1:
        return None
    try:
        parsed = json.loads(cleaned[start : end + 1])
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


def parse_card(raw: Any, url_marker: str = PROBLEM_URL_MARKER) -> Card | None:
    """Parse one generated entry, or return None if it is not a valid card."""
    if not isinstance(raw, dict):
        return None

    raw = {"source": "ai", **raw}
    try:
        card = card_from_dict(raw)
    except (KeyError, TypeError, ValueError):
        return None

    if isinstance(card, ConceptCard):
        if not (card.id and card.unit_id and card.front and card.back):
            return None
        return card

    if not is_valid_code_card(card, url_marker):
        return None
    return card


def is_valid_code_card(card: CodeReorderCard, url_marker: str = PROBLEM_URL_MARKER) -> bool:
    if not card.id or not card.unit_id:
        return False
    if len(card.blocks) < MIN_CODE_BLOCKS:
        return False
    if len(card.solution_order) != len(card.blocks):
        return False
    if {b.id for b in card.blocks} != set(card.solution_order):
        return False
    if not isinstance(card.prompt, str) or not isinstance(card.explanation, str):
        return False
    return url_marker in card.external_url


def validate_cards(raw_cards: Iterable[Any], url_marker: str = PROBLEM_URL_MARKER) -> list[Card]:
    """Keep only the entries that parse as valid cards."""
    cards = []
    for raw in raw_cards:
        card = parse_card(raw, url_marker)
        if card is None:
            logger.debug(f"Dropping invalid generated card: {str(raw)[:100]}")
            continue
        cards.append(card)
    return cards


def validate_batch(
    cards: Sequence[Card],
    unit_ids: Iterable[str],
    batch_size: int = BATCH_SIZE,
    min_code_cards: int = MIN_CODE_CARDS,
    url_marker: str = PROBLEM_URL_MARKER,
) -> list[Card]:
    """
    Check a whole batch before it is added to the store.

    Raises:
        BatchValidationError: If the batch size is wrong, there are too few
            code cards, a card references an unknown unit, or a card is invalid.
    """
    known_units = set(unit_ids)

    if len(cards) != batch_size:
        raise BatchValidationError(f"Expected {batch_size} cards, got {len(cards)}.")

    code_cards = [c for c in cards if isinstance(c, CodeReorderCard)]
    if len(code_cards) < min_code_cards:
        raise BatchValidationError(
            f"Expected at least {min_code_cards} code cards, got {len(code_cards)}."
        )

    unknown = sorted({c.unit_id for c in cards if c.unit_id not in known_units})
    if unknown:
        raise BatchValidationError(f"Cards reference unknown units: {', '.join(unknown)}")

    for card in code_cards:
        if not is_valid_code_card(card, url_marker):
            raise BatchValidationError(f"Code card {card.id} failed schema checks.")
    for card in cards:
        if isinstance(card, ConceptCard) and not (card.front and card.back):
            raise BatchValidationError(f"Concept card {card.id} has an empty side.")

    return list(cards)
