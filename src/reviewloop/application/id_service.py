"""Service for stable review session IDs."""

import logging
from pathlib import Path

from ulid import ULID

logger = logging.getLogger(__name__)

SESSION_FILE = "session_id"


def generate_session_id() -> str:
    """Generate a session ID using ULID."""
    return f"session_{ULID()}"


def load_or_create_session_id(data_dir: Path) -> str:
    """
    Return the session ID stored in ``data_dir``, creating one if missing.
    """
    path = data_dir / SESSION_FILE
    if path.exists():
        existing = path.read_text(encoding="utf-8").strip()
        if existing:
            return existing

    session_id = generate_session_id()
    data_dir.mkdir(parents=True, exist_ok=True)
    path.write_text(session_id + "\n", encoding="utf-8")
    logger.info(f"Created new review session {session_id}")
    return session_id
