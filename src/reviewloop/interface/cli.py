"""reviewloop CLI: study loop, queue status, manual generation and server."""

import asyncio
import json
import logging
import random
import sys
from pathlib import Path
from typing import Annotated

import typer

from reviewloop.application.config import AppConfig, resolve_config
from reviewloop.domain.models import Card, CodeReorderCard, Grade

# ---------------------------------------------------------------------------
# Root app
# ---------------------------------------------------------------------------

app = typer.Typer(
    help="reviewloop: infinite spaced-repetition review.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

config_app = typer.Typer(help="Manage reviewloop configuration.")
app.add_typer(config_app, name="config")

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.WARNING,
    format="%(levelname)s:%(name)s:%(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)

GRADE_KEYS = {
    "a": Grade.AGAIN,
    "1": Grade.AGAIN,
    "h": Grade.HARD,
    "2": Grade.HARD,
    "g": Grade.GOOD,
    "3": Grade.GOOD,
    "e": Grade.EASY,
    "4": Grade.EASY,
}
QUIT_KEYS = {"q", "quit"}


def _resolve_with_overrides(**overrides) -> AppConfig:
    verbose = overrides.get("verbose") or 1
    if verbose >= 3:
        logging.getLogger().setLevel(logging.DEBUG)
    elif verbose >= 2:
        logging.getLogger().setLevel(logging.INFO)
    return resolve_config(overrides)


def parse_grade(answer: str) -> Grade | None:
    answer = answer.strip().lower()
    if answer in GRADE_KEYS:
        return GRADE_KEYS[answer]
    try:
        return Grade(answer)
    except ValueError:
        return None


def render_card(card: Card, rng: random.Random) -> tuple[str, str]:
    """Return (question, answer) text for terminal display."""
    if isinstance(card, CodeReorderCard):
        shuffled = list(card.blocks)
        rng.shuffle(shuffled)
        lines = [card.prompt, ""]
        lines += [f"  [{b.id}] {b.text}" for b in shuffled]
        by_id = {b.id: b for b in card.blocks}
        solution = [
            "    " * by_id[bid].indent_level + by_id[bid].text
            for bid in card.solution_order
            if bid in by_id
        ]
        answer = "\n".join(solution + ["", card.explanation, card.external_url])
        return "\n".join(lines), answer
    return card.front, card.back


# ---------------------------------------------------------------------------
# Global callback
# ---------------------------------------------------------------------------


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose", "-v", count=True, help="Increase verbosity. Repeat for more detail."
        ),
    ] = 1,
):
    """Global settings for reviewloop."""
    ctx.ensure_object(dict)
    ctx.obj["verbose_bonus"] = verbose


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def study(
    ctx: typer.Context,
    seed_deck: Annotated[
        Path | None, typer.Option(help="YAML seed deck with units and flashcards.")
    ] = None,
    session_id: Annotated[str | None, typer.Option(help="Review session id.")] = None,
    api_base_url: Annotated[
        str | None, typer.Option(help="Review API base URL (default: local file).")
    ] = None,
    limit: Annotated[int | None, typer.Option(help="Stop after this many grades.")] = None,
):
    """[bold green]Study[/bold green] cards until the queue is empty."""
    config = _resolve_with_overrides(
        seed_deck=seed_deck,
        session_id=session_id,
        api_base_url=api_base_url,
        verbose=ctx.obj.get("verbose_bonus", 1),
    )
    asyncio.run(run_study(config, limit))


async def run_study(config: AppConfig, limit: int | None = None) -> int:
    """Interactive study loop. Returns the number of grades recorded."""
    from reviewloop.application.factory import build_session

    session = build_session(config)
    await session.start()
    rng = random.Random()
    reviewed = 0
    try:
        while limit is None or reviewed < limit:
            card_id = session.get_next_card()
            if card_id is None and session.monitor.has_source:
                typer.echo("Queue empty, generating new cards...")
                await session.monitor.wait_idle()
                if session.monitor.last_error:
                    typer.secho(session.monitor.last_error, fg=typer.colors.RED, err=True)
                card_id = session.get_next_card()
            if card_id is None:
                typer.secho("You are done for now.", fg=typer.colors.GREEN)
                break

            card = session.get_card(card_id)
            counts = session.counts()
            question, answer = render_card(card, rng)
            typer.echo(
                f"\nLearning: {counts.learning_remaining}  Due: {counts.due_count}\n"
                f"{'-' * 40}\n{question}"
            )
            await asyncio.to_thread(
                typer.prompt, "Press enter to reveal", default="", show_default=False
            )
            typer.echo(f"{'-' * 40}\n{answer}")

            grade = None
            while grade is None:
                raw = await asyncio.to_thread(
                    typer.prompt, "Grade [a]gain/[h]ard/[g]ood/[e]asy, [q]uit", default="g"
                )
                if raw.strip().lower() in QUIT_KEYS:
                    return reviewed
                grade = parse_grade(raw)
            session.grade_card(card_id, grade)
            reviewed += 1
    finally:
        await session.aclose()
    return reviewed


@app.command()
def status(
    ctx: typer.Context,
    seed_deck: Annotated[Path | None, typer.Option(help="YAML seed deck.")] = None,
    session_id: Annotated[str | None, typer.Option(help="Review session id.")] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """Show learning and due counts for the session."""
    config = _resolve_with_overrides(
        seed_deck=seed_deck, session_id=session_id, verbose=ctx.obj.get("verbose_bonus", 1)
    )
    counts, total = asyncio.run(_load_counts(config))
    if json_output:
        typer.echo(
            json.dumps(
                {
                    "sessionId": config.session_id,
                    "cards": total,
                    "learningRemaining": counts.learning_remaining,
                    "dueCount": counts.due_count,
                }
            )
        )
        return
    typer.echo(f"Session:  {config.session_id}")
    typer.echo(f"Cards:    {total}")
    typer.echo(f"Learning: {counts.learning_remaining}")
    typer.echo(f"Due:      {counts.due_count}")


async def _load_counts(config: AppConfig):
    from reviewloop.application.factory import build_session

    session = build_session(config)
    await session.start()
    try:
        return session.counts(), len(session.store)
    finally:
        await session.aclose()


@app.command()
def generate(
    ctx: typer.Context,
    seed_deck: Annotated[Path | None, typer.Option(help="YAML seed deck.")] = None,
    session_id: Annotated[str | None, typer.Option(help="Review session id.")] = None,
):
    """Request a new batch of cards from the configured generator."""
    config = _resolve_with_overrides(
        seed_deck=seed_deck, session_id=session_id, verbose=ctx.obj.get("verbose_bonus", 1)
    )
    if not config.has_generation_credentials:
        typer.secho(
            "No generator configured. Set REVIEWLOOP_GENERATION_URL and "
            "REVIEWLOOP_GENERATION_API_KEY.",
            fg=typer.colors.YELLOW,
            err=True,
        )
        raise typer.Exit(code=1)

    outcome = asyncio.run(_generate(config))
    if outcome.status == "failed":
        typer.secho(outcome.message or "Generation failed.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    typer.echo(outcome.message or outcome.status)


async def _generate(config: AppConfig):
    from reviewloop.application.factory import build_session

    session = build_session(config)
    await session.start()
    try:
        return await session.request_more_cards()
    finally:
        await session.aclose()


@app.command()
def serve(
    ctx: typer.Context,
    host: Annotated[str, typer.Option(help="Bind address.")] = "127.0.0.1",
    port: Annotated[int, typer.Option(help="Bind port.")] = 8777,
    seed_deck: Annotated[Path | None, typer.Option(help="YAML seed deck.")] = None,
    session_id: Annotated[str | None, typer.Option(help="Review session id.")] = None,
):
    """Run the HTTP review server."""
    import uvicorn

    from reviewloop.server import app as server_app

    overrides = {"seed_deck": seed_deck, "session_id": session_id}
    server_app.state.config_overrides = {k: v for k, v in overrides.items() if v is not None}
    uvicorn.run(server_app, host=host, port=port)


@config_app.command("show")
def config_show():
    """Print the resolved configuration."""
    config = resolve_config()
    data = config.model_dump(mode="json")
    if data.get("generation_api_key"):
        data["generation_api_key"] = "***"
    typer.echo(json.dumps(data, indent=2))


if __name__ == "__main__":
    app()
