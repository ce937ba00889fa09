# Infrastructure Adapters Package
from .file_persistence import JsonFilePersistence
from .http_card_source import HttpCardSource
from .http_persistence import HttpPersistence
from .seed_deck import SeedDeck, load_seed_deck

__all__ = [
    "HttpCardSource",
    "HttpPersistence",
    "JsonFilePersistence",
    "SeedDeck",
    "load_seed_deck",
]
