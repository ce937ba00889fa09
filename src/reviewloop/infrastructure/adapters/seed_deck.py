"""
Seed deck loader.

A seed deck is a YAML file listing units and their starter flashcards:

    units:
      - id: two-sum
        title: Two Sum
        externalUrl: https://leetcode.com/problems/two-sum/
        flashcards:
          - id: two-sum-1
            front: What does the hash map store?
            back: value -> index of numbers seen so far
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from reviewloop.domain.models import ConceptCard, Unit

logger = logging.getLogger(__name__)


@dataclass
class SeedDeck:
    units: list[Unit] = field(default_factory=list)
    cards: list[ConceptCard] = field(default_factory=list)


def load_seed_deck(path: Path | None) -> SeedDeck:
    """
    Read units and seed cards from a YAML file.

    A missing path yields an empty deck. Malformed entries are skipped with a
    warning rather than failing the whole deck.

    Raises:
        yaml.YAMLError: If the file is not valid YAML.
    """
    if path is None:
        return SeedDeck()
    if not path.exists():
        logger.warning(f"Seed deck {path} not found, starting empty")
        return SeedDeck()

    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    deck = SeedDeck()

    for raw_unit in data.get("units") or []:
        if not isinstance(raw_unit, dict) or not raw_unit.get("id"):
            logger.warning(f"Skipping malformed unit in {path.name}: {raw_unit!r}")
            continue

        unit = Unit(
            id=str(raw_unit["id"]),
            title=str(raw_unit.get("title") or raw_unit["id"]),
            external_url=raw_unit.get("externalUrl"),
        )
        deck.units.append(unit)

        for raw_card in raw_unit.get("flashcards") or []:
            if not isinstance(raw_card, dict):
                continue
            if not (raw_card.get("id") and raw_card.get("front") and raw_card.get("back")):
                logger.warning(f"Skipping incomplete flashcard in unit {unit.id}")
                continue
            deck.cards.append(
                ConceptCard(
                    id=str(raw_card["id"]),
                    unit_id=unit.id,
                    front=str(raw_card["front"]),
                    back=str(raw_card["back"]),
                    tags=(unit.title,),
                    source="seed",
                )
            )

    logger.debug(f"Loaded seed deck {path.name}: {len(deck.units)} units, {len(deck.cards)} cards")
    return deck
