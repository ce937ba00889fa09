import logging
import time
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel

from reviewloop.application.serialization import card_to_dict, state_to_dict
from reviewloop.consts import VERSION
from reviewloop.domain.errors import UnknownCardError
from reviewloop.domain.models import Grade

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("reviewloop.server")


@asynccontextmanager
async def lifespan(app: FastAPI):
    from reviewloop.application.config import resolve_config
    from reviewloop.application.factory import build_session

    # Startup
    logger.info(f"reviewloop server v{VERSION} starting up...")
    config = resolve_config(getattr(app.state, "config_overrides", None))
    session = build_session(config)
    await session.start()
    app.state.session = session
    yield
    # Shutdown
    logger.info("reviewloop server shutting down...")
    await session.aclose()


app = FastAPI(
    title="reviewloop",
    description="Spaced-repetition review scheduler.",
    version=VERSION,
    lifespan=lifespan,
)


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float


class CountsResponse(BaseModel):
    learning_remaining: int
    due_count: int


class NextCardResponse(BaseModel):
    card_id: str | None
    card: dict[str, Any] | None = None
    counts: CountsResponse


class GradeRequest(BaseModel):
    grade: Grade


class GradeResponse(BaseModel):
    card_id: str
    state: dict[str, Any]


class GenerateResponse(BaseModel):
    status: str
    added: list[str]
    message: str | None = None


start_time = time.time()


def _session(request: Request):
    session = getattr(request.app.state, "session", None)
    if session is None:
        raise HTTPException(status_code=503, detail="Review session is not ready")
    return session


def _counts(session) -> CountsResponse:
    counts = session.counts()
    return CountsResponse(
        learning_remaining=counts.learning_remaining, due_count=counts.due_count
    )


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Simple health check to verify server is reachable.
    """
    return HealthResponse(status="ok", version=VERSION, uptime_seconds=time.time() - start_time)


@app.get("/counts", response_model=CountsResponse)
async def get_counts(request: Request):
    return _counts(_session(request))


@app.get("/cards/next", response_model=NextCardResponse)
async def next_card(request: Request):
    """
    Pick the next card. ``card_id`` is null when the deck is exhausted;
    generation of a new batch starts in the background if configured.
    """
    session = _session(request)
    card_id = session.get_next_card()
    card = session.get_card(card_id) if card_id else None
    return NextCardResponse(
        card_id=card_id,
        card=card_to_dict(card) if card else None,
        counts=_counts(session),
    )


@app.post("/cards/{card_id}/grade", response_model=GradeResponse)
async def grade_card(card_id: str, req: GradeRequest, request: Request):
    session = _session(request)
    try:
        state = session.grade_card(card_id, req.grade)
    except UnknownCardError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return GradeResponse(card_id=card_id, state=state_to_dict(state))


@app.post("/cards/generate", response_model=GenerateResponse)
async def generate_cards(request: Request):
    """
    Manually request a new batch. Subject to the same cooldown and
    in-flight rules as automatic generation.
    """
    session = _session(request)
    outcome = await session.request_more_cards()
    if outcome.status == "failed":
        logger.warning(f"Manual generation failed: {outcome.message}")
    return GenerateResponse(status=outcome.status, added=outcome.added, message=outcome.message)
