"""JSON-shaped dict codec for cards and states (camelCase wire names)."""

from collections.abc import Mapping
from typing import Any

from reviewloop.domain.constants import DEFAULT_EASE
from reviewloop.domain.errors import SnapshotError
from reviewloop.domain.models import (
    Card,
    CardState,
    CodeBlock,
    CodeReorderCard,
    ConceptCard,
    Phase,
    ReviewSnapshot,
)

CONCEPT_TYPE = "concept"
CODE_REORDER_TYPE = "code_reorder"
# Older payloads name the code card type after Parsons problems
_CODE_TYPE_ALIASES = {CODE_REORDER_TYPE, "code_parsons"}

_DIFFICULTIES = ("Easy", "Medium", "Hard")
_PHASE_ALIASES = {"learn": Phase.LEARNING.value}


def normalize_difficulty(value: Any) -> str:
    return value if value in _DIFFICULTIES else "Medium"


def card_to_dict(card: Card) -> dict[str, Any]:
    if isinstance(card, ConceptCard):
        return {
            "id": card.id,
            "unitId": card.unit_id,
            "type": CONCEPT_TYPE,
            "source": card.source,
            "front": card.front,
            "back": card.back,
            "tags": list(card.tags),
        }
    return {
        "id": card.id,
        "unitId": card.unit_id,
        "type": CODE_REORDER_TYPE,
        "source": card.source,
        "prompt": card.prompt,
        "explanation": card.explanation,
        "externalUrl": card.external_url,
        "difficulty": card.difficulty,
        "functionName": card.function_name,
        "blocks": [
            {"id": b.id, "text": b.text, "indentLevel": b.indent_level} for b in card.blocks
        ],
        "solutionOrder": list(card.solution_order),
    }


def _text(data: Mapping[str, Any], key: str) -> str:
    value = data[key]
    if not isinstance(value, str):
        raise TypeError(f"{key} must be a string, got {type(value).__name__}")
    return value


def card_from_dict(data: Mapping[str, Any]) -> Card:
    """
    Build a card from its wire form.

    Raises:
        KeyError: If a required field is missing.
        ValueError: If the type is unknown.
        TypeError: If a field has the wrong shape.
    """
    card_type = data.get("type")
    if card_type == CONCEPT_TYPE:
        tags = data.get("tags") or []
        return ConceptCard(
            id=str(data["id"]),
            unit_id=str(data["unitId"]),
            front=_text(data, "front"),
            back=_text(data, "back"),
            tags=tuple(tags) if isinstance(tags, list) else (),
            source=data.get("source", "seed"),
        )

    if card_type in _CODE_TYPE_ALIASES:
        blocks = data["blocks"]
        order = data["solutionOrder"]
        if not isinstance(blocks, list) or not isinstance(order, list):
            raise TypeError("blocks and solutionOrder must be lists")
        external_url = data.get("externalUrl") or data.get("leetcodeUrl") or ""
        if not isinstance(external_url, str):
            raise TypeError("externalUrl must be a string")
        return CodeReorderCard(
            id=str(data["id"]),
            unit_id=str(data["unitId"]),
            prompt=_text(data, "prompt"),
            explanation=_text(data, "explanation"),
            external_url=external_url,
            difficulty=normalize_difficulty(data.get("difficulty")),
            blocks=tuple(
                CodeBlock(
                    id=str(b["id"]),
                    text=_text(b, "text"),
                    indent_level=int(b.get("indentLevel", b.get("indent", 0))),
                )
                for b in blocks
            ),
            solution_order=tuple(str(x) for x in order),
            function_name=data.get("functionName"),
            source=data.get("source", "ai"),
        )

    raise ValueError(f"Unknown card type: {card_type!r}")


def state_to_dict(state: CardState) -> dict[str, Any]:
    data: dict[str, Any] = {
        "phase": state.phase.value,
        "seenCount": state.seen_count,
        "dueAt": state.due_at,
        "interval": state.interval,
        "repetition": state.repetition,
        "ease": state.ease,
        "lapses": state.lapses,
    }
    if state.last_reviewed_at is not None:
        data["lastReviewedAt"] = state.last_reviewed_at
    return data


def state_from_dict(data: Mapping[str, Any]) -> CardState:
    last = data.get("lastReviewedAt")
    phase = data["phase"]
    return CardState(
        phase=Phase(_PHASE_ALIASES.get(phase, phase)),
        seen_count=int(data["seenCount"]),
        due_at=int(data["dueAt"]),
        interval=int(data.get("interval", 0)),
        repetition=int(data.get("repetition", 0)),
        ease=float(data.get("ease", data.get("efactor", DEFAULT_EASE))),
        lapses=int(data.get("lapses", 0)),
        last_reviewed_at=int(last) if last is not None else None,
    )


def states_to_dict(states: Mapping[str, CardState]) -> dict[str, dict[str, Any]]:
    return {card_id: state_to_dict(st) for card_id, st in states.items()}


def snapshot_from_payload(cards: Any, states: Any) -> ReviewSnapshot:
    """
    Parse a remote snapshot.

    Raises:
        SnapshotError: If either part is not in the expected shape.
    """
    if not isinstance(cards, list) or not isinstance(states, dict):
        raise SnapshotError("Snapshot must be a card list and a state mapping")
    try:
        return ReviewSnapshot(
            cards=[card_from_dict(c) for c in cards],
            states={str(k): state_from_dict(v) for k, v in states.items()},
        )
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise SnapshotError(f"Malformed snapshot: {e}") from e
