"""mneme CLI — review recording, optimization and configuration commands."""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Annotated, Any

import typer

from mneme.application.config import AppConfig, resolve_config
from mneme.domain.errors import (
    ConcurrentOptimization,
    InsufficientData,
    InvalidInput,
    ValidationFailed,
)
from mneme.domain.models import Rating
from mneme.interface.serializers import (
    card_to_dict,
    effectiveness_to_dict,
    parameters_to_dict,
    preview_to_dict,
    report_to_dict,
    result_to_dict,
    status_to_dict,
)

# ---------------------------------------------------------------------------
# Root app
# ---------------------------------------------------------------------------

app = typer.Typer(
    help="mneme: adaptive spaced-repetition scheduling.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

config_app = typer.Typer(help="Manage mneme configuration.")
app.add_typer(config_app, name="config")

params_app = typer.Typer(help="Inspect and change a learner's scheduling settings.")
app.add_typer(params_app, name="params")

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:%(name)s:%(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)

DatabaseOption = Annotated[
    Path | None, typer.Option("--db", help="SQLite database path. Defaults to config.")
]


def _configure_logging(verbose: int) -> None:
    level = logging.WARNING if verbose <= 0 else logging.INFO if verbose == 1 else logging.DEBUG
    logging.getLogger().setLevel(level)


def _resolve_with_overrides(ctx: typer.Context, **overrides: Any) -> AppConfig:
    # only an explicit -v overrides MNEME_VERBOSE and the config file
    overrides["verbose"] = ctx.obj.get("verbose") if ctx.obj else None
    config = resolve_config(overrides)
    _configure_logging(config.verbose)
    logger.debug(f"Using database {config.database_path}")
    return config


def _echo_json(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2))


def _run(config: AppConfig, work):
    """Build services for one command, run the coroutine factory, always close the store."""
    from mneme.application.factory import build_services

    async def main():
        services = build_services(config)
        try:
            return await work(services)
        finally:
            await services.close()

    return asyncio.run(main())


# ---------------------------------------------------------------------------
# Global callback
# ---------------------------------------------------------------------------


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: Annotated[
        int | None,
        typer.Option(
            "--verbose", "-v", count=True, help="Increase verbosity. Repeat for more detail."
        ),
    ] = None,
):
    """Global settings for mneme."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose or None


# ---------------------------------------------------------------------------
# Reviews
# ---------------------------------------------------------------------------


@app.command()
def review(
    ctx: typer.Context,
    learner: Annotated[str, typer.Argument(help="Learner ID.")],
    card: Annotated[str, typer.Argument(help="Card ID.")],
    rating: Annotated[str, typer.Argument(help="again, hard, good, easy (or 1-4).")],
    response_time_ms: Annotated[int, typer.Option(help="Time to answer in ms.")] = 0,
    db: DatabaseOption = None,
):
    """[bold green]Record[/bold green] a review and print the card's new schedule."""
    try:
        parsed = Rating.parse(rating)
    except InvalidInput as e:
        typer.secho(str(e), fg="red", err=True)
        raise typer.Exit(2)

    config = _resolve_with_overrides(ctx, database_path=db)
    try:
        outcome = _run(
            config,
            lambda s: s.reviews.record_review(learner, card, parsed, response_time_ms),
        )
    except InvalidInput as e:
        typer.secho(str(e), fg="red", err=True)
        raise typer.Exit(2)
    _echo_json(card_to_dict(outcome.card))


@app.command()
def preview(
    ctx: typer.Context,
    learner: Annotated[str, typer.Argument(help="Learner ID.")],
    card: Annotated[str, typer.Argument(help="Card ID.")],
    db: DatabaseOption = None,
):
    """Show the due date each rating would produce for a card."""
    config = _resolve_with_overrides(ctx, database_path=db)
    try:
        result = _run(config, lambda s: s.reviews.preview(learner, card))
    except InvalidInput as e:
        typer.secho(str(e), fg="red", err=True)
        raise typer.Exit(2)
    _echo_json(preview_to_dict(result))


@app.command()
def due(
    ctx: typer.Context,
    learner: Annotated[str, typer.Argument(help="Learner ID.")],
    db: DatabaseOption = None,
):
    """List the learner's cards that are due now."""
    config = _resolve_with_overrides(ctx, database_path=db)
    cards = _run(config, lambda s: s.reviews.due_cards(learner))
    _echo_json([card_to_dict(c) for c in cards])


# ---------------------------------------------------------------------------
# Optimization
# ---------------------------------------------------------------------------


@app.command()
def status(
    ctx: typer.Context,
    learner: Annotated[str, typer.Argument(help="Learner ID.")],
    db: DatabaseOption = None,
):
    """Check whether a learner's parameters are due for optimization."""
    config = _resolve_with_overrides(ctx, database_path=db)
    result = _run(config, lambda s: s.optimization.check(learner))
    _echo_json(status_to_dict(result))


@app.command()
def analyze(
    ctx: typer.Context,
    learner: Annotated[str, typer.Argument(help="Learner ID.")],
    db: DatabaseOption = None,
):
    """Analyze review history and show suggested adjustments without applying them."""
    config = _resolve_with_overrides(ctx, database_path=db)
    try:
        report, suggestions, confidence = _run(config, lambda s: s.optimization.analyze(learner))
    except InsufficientData as e:
        typer.secho(str(e), fg="yellow")
        raise typer.Exit(0)
    _echo_json(report_to_dict(report, suggestions, confidence))


@app.command()
def optimize(
    ctx: typer.Context,
    learner: Annotated[str, typer.Argument(help="Learner ID.")],
    aggressive: Annotated[
        bool, typer.Option("--aggressive", help="Apply full deltas instead of halved ones.")
    ] = False,
    db: DatabaseOption = None,
):
    """[bold green]Optimize[/bold green] a learner's parameters from their review history."""
    config = _resolve_with_overrides(ctx, database_path=db)
    conservative = False if aggressive else None
    try:
        result = _run(
            config, lambda s: s.optimization.optimize_with_retry(learner, conservative)
        )
    except ConcurrentOptimization as e:
        typer.secho(f"Optimization conflict: {e}", fg="red", err=True)
        raise typer.Exit(1)

    _echo_json(result_to_dict(result))
    if result.validation_errors:
        raise typer.Exit(1)


@app.command("optimize-all")
def optimize_all(
    ctx: typer.Context,
    db: DatabaseOption = None,
    batch_size: Annotated[int | None, typer.Option(help="Learners optimized concurrently.")] = None,
):
    """Optimize every learner that is due, in parallel batches."""
    config = _resolve_with_overrides(ctx, database_path=db, batch_size=batch_size)

    async def work(services):
        learners = await services.store.list_learners()
        return await services.batch.run(learners)

    result = _run(config, work)
    _echo_json(
        {
            "total_learners": result.total_learners,
            "optimized": result.optimized,
            "skipped": result.skipped,
            "errors": result.errors,
            "details": result.details,
        }
    )


@app.command()
def effectiveness(
    ctx: typer.Context,
    learner: Annotated[str, typer.Argument(help="Learner ID.")],
    db: DatabaseOption = None,
):
    """Compare the learner's committed weights with the defaults on their own history."""
    config = _resolve_with_overrides(ctx, database_path=db)
    report = _run(config, lambda s: s.optimization.effectiveness(learner))
    _echo_json(effectiveness_to_dict(report))


# ---------------------------------------------------------------------------
# Learner parameters
# ---------------------------------------------------------------------------


@params_app.command("show")
def params_show(
    ctx: typer.Context,
    learner: Annotated[str, typer.Argument(help="Learner ID.")],
    db: DatabaseOption = None,
):
    """Display the learner's committed parameters and version."""
    config = _resolve_with_overrides(ctx, database_path=db)
    versioned = _run(config, lambda s: s.parameters.get(learner))
    _echo_json(parameters_to_dict(versioned))


@params_app.command("set")
def params_set(
    ctx: typer.Context,
    learner: Annotated[str, typer.Argument(help="Learner ID.")],
    desired_retention: Annotated[
        float | None, typer.Option(help="Target recall probability at the due date.")
    ] = None,
    learning_step: Annotated[
        list[float] | None,
        typer.Option("--learning-step", help="Learning step in minutes. Repeat for each step."),
    ] = None,
    relearning_step: Annotated[
        list[float] | None,
        typer.Option("--relearning-step", help="Relearning step in minutes. Repeat for each step."),
    ] = None,
    graduating_interval: Annotated[int | None, typer.Option(help="Days.")] = None,
    easy_interval: Annotated[int | None, typer.Option(help="Days.")] = None,
    minimum_interval: Annotated[int | None, typer.Option(help="Days.")] = None,
    maximum_interval: Annotated[int | None, typer.Option(help="Days.")] = None,
    relearning_penalty: Annotated[
        float | None, typer.Option(help="Stability multiplier after relearning.")
    ] = None,
    easy_skips_learning: Annotated[
        bool | None,
        typer.Option("--easy-skips-learning/--easy-enters-learning", help="Easy on a new card."),
    ] = None,
    db: DatabaseOption = None,
):
    """[bold green]Update[/bold green] scheduling settings; weights stay with the optimizer."""
    config = _resolve_with_overrides(ctx, database_path=db)
    changes = {
        "desired_retention": desired_retention,
        "learning_steps": learning_step or None,
        "relearning_steps": relearning_step or None,
        "graduating_interval_days": graduating_interval,
        "easy_interval_days": easy_interval,
        "minimum_interval_days": minimum_interval,
        "maximum_interval_days": maximum_interval,
        "relearning_stability_penalty": relearning_penalty,
        "easy_skips_learning": easy_skips_learning,
    }
    try:
        versioned = _run(config, lambda s: s.parameters.update_settings(learner, **changes))
    except ValidationFailed as e:
        for error in e.errors:
            typer.secho(error, fg="red", err=True)
        raise typer.Exit(1)
    except ConcurrentOptimization as e:
        typer.secho(f"Parameter conflict: {e}", fg="red", err=True)
        raise typer.Exit(1)
    _echo_json(parameters_to_dict(versioned))


# ---------------------------------------------------------------------------
# Config & server
# ---------------------------------------------------------------------------


@config_app.command("show")
def config_show():
    """Display the resolved configuration as JSON."""
    config = resolve_config()
    _echo_json(config.model_dump(mode="json"))


@app.command()
def server(
    host: Annotated[str | None, typer.Option(help="Interface to bind.")] = None,
    port: Annotated[int | None, typer.Option(help="Port to listen on.")] = None,
    reload: Annotated[bool, typer.Option("--reload", help="Auto-reload on code changes.")] = False,
):
    """Run the HTTP service layer."""
    import uvicorn

    config = resolve_config({"host": host, "port": port})
    uvicorn.run("mneme.server:app", host=config.host, port=config.port, reload=reload)


if __name__ == "__main__":
    app()
