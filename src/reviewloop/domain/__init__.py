# Domain Package
from .models import (
    Card,
    CardState,
    CodeBlock,
    CodeReorderCard,
    ConceptCard,
    Grade,
    Phase,
    QueueCounts,
    ReviewSnapshot,
    Unit,
)
from .ports import CardSource, RemotePersistence

__all__ = [
    "Card",
    "CardSource",
    "CardState",
    "CodeBlock",
    "CodeReorderCard",
    "ConceptCard",
    "Grade",
    "Phase",
    "QueueCounts",
    "RemotePersistence",
    "ReviewSnapshot",
    "Unit",
]
