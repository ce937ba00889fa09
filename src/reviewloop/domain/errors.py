"""Exception hierarchy for the review scheduler."""


class ReviewLoopError(Exception):
    """Base class for all reviewloop errors."""


class UnknownCardError(ReviewLoopError, LookupError):
    """A card id has no entry in the card store."""

    def __init__(self, card_id: str):
        super().__init__(f"Unknown card id: {card_id}")
        self.card_id = card_id


class GenerationError(ReviewLoopError):
    """The card source could not produce a usable batch."""


class BatchValidationError(GenerationError):
    """A generated batch failed schema or composition checks."""


class PersistenceError(ReviewLoopError):
    """Reading from or writing to the remote store failed."""


class SnapshotError(PersistenceError):
    """The remote snapshot could not be parsed."""
