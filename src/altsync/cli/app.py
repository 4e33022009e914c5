"""Command line interface for Altsync."""

from __future__ import annotations

import contextlib
import json
import logging
import mimetypes
import os
import pathlib
from typing import Iterator, List, Optional

import typer
import yaml
from dotenv import load_dotenv

from altsync import get_version
from altsync.access import RoleAccessPolicy
from altsync.config import Config, load_config
from altsync.config.loader import LOCAL_CONFIG_PATH
from altsync.core import (
    AltTextHandlers,
    AltTextSyncService,
    BackfillSweeper,
    Forbidden,
    SkipReason,
    SyncError,
    SyncOutcome,
    build_handlers,
    strip_extension,
)
from altsync.core.normalizer import alt_text_for_filename
from altsync.logging import configure_logging
from altsync.reports import write_stats_report
from altsync.storage import Database, StoreUnavailable
from altsync.ui import Page, default_console, render_image_table, render_outcome, render_stats

ACTOR_ENV_VAR = "ALTSYNC_ACTOR"
EXIT_REJECTED = 1
EXIT_STORE_UNAVAILABLE = 2

app = typer.Typer(
    name="altsync",
    help="Set image alt text from uploaded filenames.",
    no_args_is_help=True,
    add_completion=False,
)

config_app = typer.Typer(help="Configuration utilities.", no_args_is_help=True)
app.add_typer(config_app, name="config")


def _load_environment(env_file: Optional[pathlib.Path]) -> None:
    """Load environment variables from .env files."""

    if env_file is not None:
        load_dotenv(dotenv_path=env_file, override=True)
    else:
        load_dotenv(override=False)


def _prepare_logging(
    config: Config,
    override_path: Optional[pathlib.Path],
    override_level: Optional[str],
) -> tuple[logging.Logger, pathlib.Path]:
    """Configure logging based on configuration and overrides."""

    configured_path = override_path or config.logging.path
    configured_level = (override_level or config.logging.level).upper()
    try:
        logger = configure_logging(log_path=configured_path, level=configured_level)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--log-level") from exc
    file_handler = next((h for h in logger.handlers if hasattr(h, "baseFilename")), None)
    if file_handler is not None:
        return logger, pathlib.Path(file_handler.baseFilename)
    return logger, pathlib.Path.cwd() / "altsync.log"


def _resolve_actor(option: Optional[str], config: Config) -> Optional[str]:
    for candidate in (option, os.environ.get(ACTOR_ENV_VAR), config.access.default_actor):
        if candidate and candidate.strip():
            return candidate.strip()
    return None


@contextlib.contextmanager
def _store_errors(logger: logging.Logger) -> Iterator[None]:
    """Report record store failures and exit with a dedicated code."""

    try:
        yield
    except StoreUnavailable as exc:
        logger.error("Record store unavailable: %s", exc)
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=EXIT_STORE_UNAVAILABLE) from exc


def _get_database(ctx: typer.Context) -> Database:
    """Get or initialize the record store for this invocation."""

    if "database" in ctx.obj:
        return ctx.obj["database"]

    config: Config = ctx.obj["config"]
    database = Database(config.storage_path())
    with _store_errors(ctx.obj["logger"]):
        database.initialize()
    ctx.obj["database"] = database
    return database


def _get_handlers(ctx: typer.Context) -> AltTextHandlers:
    """Build the handler table once per invocation."""

    if "handlers" in ctx.obj:
        return ctx.obj["handlers"]

    config: Config = ctx.obj["config"]
    database = _get_database(ctx)
    service = AltTextSyncService(
        store=database,
        access=RoleAccessPolicy(settings=config.access, records=database),
        logger=ctx.obj["logger"],
    )
    handlers = build_handlers(service)
    ctx.obj["service"] = service
    ctx.obj["handlers"] = handlers
    return handlers


def _require_admin(ctx: typer.Context) -> None:
    _get_handlers(ctx)
    service: AltTextSyncService = ctx.obj["service"]
    if not service.access.is_admin(ctx.obj["actor"]):
        typer.echo("Insufficient permissions.", err=True)
        raise typer.Exit(code=EXIT_REJECTED)


def _version_callback(value: bool) -> None:
    """Print the package version and exit when requested."""

    if value:
        typer.echo(get_version())
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[pathlib.Path] = typer.Option(
        None,
        "--config",
        metavar="PATH",
        help="Path to YAML configuration file (used exclusively).",
    ),
    env_file: Optional[pathlib.Path] = typer.Option(
        None,
        "--env-file",
        metavar="PATH",
        help="Load environment variables from .env-style file before execution.",
    ),
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        metavar="LEVEL",
        help="Override the configured log level (debug, info, warn, error).",
    ),
    log_path: Optional[pathlib.Path] = typer.Option(
        None,
        "--log-path",
        metavar="PATH",
        help="Override the base directory or file for log output.",
    ),
    actor: Optional[str] = typer.Option(
        None,
        "--actor",
        metavar="NAME",
        help=f"User performing the action (default: ${ACTOR_ENV_VAR}, then access.default_actor).",
    ),
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show Altsync version and exit.",
    ),
) -> None:
    """CLI root; loads configuration, logging, and shared context."""

    ctx.ensure_object(dict)

    _load_environment(env_file)

    if ctx.invoked_subcommand == "init":
        return

    try:
        config_obj = load_config(config)
    except (FileNotFoundError, ValueError) as exc:
        raise typer.BadParameter(str(exc), param_hint="--config") from exc

    logger, log_file = _prepare_logging(config_obj, log_path, log_level)

    ctx.obj.update(
        {
            "config": config_obj,
            "log_file": log_file,
            "logger": logger,
            "actor": _resolve_actor(actor, config_obj),
        }
    )


@app.command()
def upload(
    ctx: typer.Context,
    filenames: List[str] = typer.Argument(..., metavar="FILENAME...", help="Uploaded file names."),
    alt: Optional[str] = typer.Option(None, "--alt", help="Alt text supplied with the upload."),
    mime: Optional[str] = typer.Option(
        None, "--mime", metavar="TYPE", help="MIME type (guessed from the extension if omitted)."
    ),
    title: Optional[str] = typer.Option(
        None, "--title", help="Title (defaults to the file name without extension)."
    ),
    caption: str = typer.Option("", "--caption", help="Caption stored with the record."),
    description: str = typer.Option("", "--description", help="Description stored with the record."),
) -> None:
    """Record uploaded files and set their alt text from the filename."""

    logger: logging.Logger = ctx.obj["logger"]
    actor: Optional[str] = ctx.obj["actor"]
    database = _get_database(ctx)
    handlers = _get_handlers(ctx)

    total = SyncOutcome()
    with _store_errors(logger):
        for filename in filenames:
            name = pathlib.PurePath(filename.split("?", 1)[0]).name
            mime_type = mime or mimetypes.guess_type(name)[0] or "application/octet-stream"
            record = database.add_image(
                name,
                mime_type,
                alt_text=alt,
                title=title if title is not None else strip_extension(name),
                caption=caption,
                description=description,
                owner=actor,
            )
            logger.info("Uploaded %s as record %s (%s).", name, record.id, mime_type)
            outcome = handlers.on_upload(record.id)
            total = total.merge(outcome)

            if outcome.updated:
                stored = database.get_image(record.id)
                typer.echo(f"{record.id}\t{name}\tALT: {stored.alt_text if stored else ''}")
            else:
                reason = next(iter(outcome.skipped), SkipReason.UNRESOLVABLE_FILENAME)
                typer.echo(f"{record.id}\t{name}\tALT unchanged ({reason})")

    typer.echo(f"Uploaded {len(filenames)} file(s); ALT set for {total.updated}.")


@app.command("set-alt")
def set_alt(
    ctx: typer.Context,
    record_id: int = typer.Argument(..., metavar="ID", help="Image id."),
) -> None:
    """Set ALT text from the filename, replacing any existing text."""

    logger: logging.Logger = ctx.obj["logger"]
    handlers = _get_handlers(ctx)

    with _store_errors(logger):
        try:
            outcome = handlers.on_single_action(record_id, ctx.obj["actor"])
        except SyncError as exc:
            logger.warning("Rejected single action on %s: %s", record_id, exc)
            typer.echo("Invalid request.", err=True)
            typer.echo(str(exc), err=True)
            raise typer.Exit(code=EXIT_REJECTED) from exc

    if outcome.updated:
        typer.echo("ALT set from filename.")
    else:
        typer.echo("Could not derive ALT from filename.")


@app.command("bulk-set-alt")
def bulk_set_alt(
    ctx: typer.Context,
    record_ids: List[int] = typer.Argument(..., metavar="ID...", help="Image ids."),
) -> None:
    """Set ALT text from the filename for several images."""

    logger: logging.Logger = ctx.obj["logger"]
    handlers = _get_handlers(ctx)

    with _store_errors(logger):
        outcome = handlers.on_bulk_action(record_ids, ctx.obj["actor"])

    typer.echo(f"ALT updated for {outcome.updated} item(s).")
    if outcome.skipped:
        default_console().print(render_outcome(outcome))


@app.command()
def backfill(
    ctx: typer.Context,
    batch_size: Optional[int] = typer.Option(
        None,
        "--batch-size",
        min=1,
        help="Images per batch (default: sync.batch_limit).",
    ),
    restart: bool = typer.Option(
        False, "--restart", help="Abandon any unfinished sweep and start from the first image."
    ),
    run_all: bool = typer.Option(
        False, "--all", help="Keep running batches until every image has been visited."
    ),
) -> None:
    """Set ALT text for images that have none, resuming the last sweep."""

    config: Config = ctx.obj["config"]
    logger: logging.Logger = ctx.obj["logger"]
    handlers = _get_handlers(ctx)
    sweeper = BackfillSweeper(handlers=handlers, database=_get_database(ctx), logger=logger)
    limit = batch_size or config.sync.batch_limit

    with _store_errors(logger):
        try:
            if run_all:
                progress = sweeper.run(ctx.obj["actor"], limit, restart=restart)
            else:
                progress = sweeper.step(ctx.obj["actor"], limit, restart=restart)
        except Forbidden as exc:
            logger.warning("Rejected backfill: %s", exc)
            typer.echo("Insufficient permissions.", err=True)
            raise typer.Exit(code=EXIT_REJECTED) from exc

    typer.echo(f"Backfilled {progress.total.updated if run_all else progress.batch.updated} image(s).")
    state = "complete" if progress.completed else f"paused after image {progress.cursor}"
    typer.echo(
        f"Sweep {progress.sweep_id} {state}: attempted={progress.total.attempted} "
        f"updated={progress.total.updated} skipped={progress.total.skipped_total}"
    )
    if not progress.completed:
        typer.echo("Run 'altsync backfill' again to continue.")


@app.command()
def stats(ctx: typer.Context) -> None:
    """Show alt text statistics for the media library."""

    database = _get_database(ctx)
    _require_admin(ctx)

    with _store_errors(ctx.obj["logger"]):
        library_stats = database.get_library_stats()
    default_console().print(render_stats(library_stats))


@app.command("list")
def list_images(
    ctx: typer.Context,
    page: int = typer.Option(1, "--page", min=1, help="Page number."),
    per_page: Optional[int] = typer.Option(
        None, "--per-page", min=1, help="Images per page (default: sync.page_size)."
    ),
) -> None:
    """List images newest first, one page at a time."""

    config: Config = ctx.obj["config"]
    database = _get_database(ctx)
    _require_admin(ctx)

    with _store_errors(ctx.obj["logger"]):
        window = Page.clamp(page, per_page or config.sync.page_size, database.count_images())
        records = database.list_images(limit=window.per_page, offset=window.offset)
    default_console().print(render_image_table(records, window))


@app.command()
def preview(
    filenames: List[str] = typer.Argument(..., metavar="FILENAME...", help="File names to preview."),
) -> None:
    """Print the ALT text a filename would produce, without saving anything."""

    for filename in filenames:
        typer.echo(alt_text_for_filename(filename))


@app.command()
def report(
    ctx: typer.Context,
    output: pathlib.Path = typer.Option(
        pathlib.Path("altsync-report.md"), "--output", metavar="PATH", help="Report destination."
    ),
) -> None:
    """Write the statistics page as a Markdown report."""

    database = _get_database(ctx)
    _require_admin(ctx)

    with _store_errors(ctx.obj["logger"]):
        write_stats_report(
            database.get_library_stats(), output, open_sweep=database.get_open_sweep()
        )
    typer.echo(f"Wrote {output}")


def _starter_destination(path: Optional[pathlib.Path]) -> pathlib.Path:
    chosen = path or pathlib.Path(typer.prompt("Config path", default=str(LOCAL_CONFIG_PATH)))
    chosen = chosen.expanduser()
    if not chosen.is_absolute():
        chosen = pathlib.Path.cwd() / chosen
    if chosen.is_dir():
        chosen = chosen / LOCAL_CONFIG_PATH
        typer.echo(f"{chosen.parent.parent} is a directory; using {chosen}", err=True)
    return chosen


def _prompt_admin() -> str:
    while True:
        admin = typer.prompt("Admin user name").strip()
        if admin:
            return admin
        typer.echo("An admin user name is required.")


@app.command()
def init(
    path: Optional[pathlib.Path] = typer.Option(
        None,
        "--path",
        metavar="PATH",
        help=f"Where to write the starter configuration (default: {LOCAL_CONFIG_PATH}).",
    ),
    force: bool = typer.Option(False, "--force", help="Replace an existing file without asking."),
) -> None:
    """Write a starter configuration naming the store and the first admin."""

    destination = _starter_destination(path)
    if destination.exists() and not force:
        if not typer.confirm(f"Replace {destination}?", default=False):
            typer.echo("Aborted.")
            raise typer.Exit(code=EXIT_REJECTED)

    storage_path = typer.prompt("Database path", default="altsync.sqlite").strip()
    admin = _prompt_admin()
    batch_limit = typer.prompt("Backfill batch size", default=500, type=int)
    while batch_limit < 1:
        typer.echo("Backfill batch size must be at least 1.")
        batch_limit = typer.prompt("Backfill batch size", default=500, type=int)

    document = {
        "version": 1,
        "storage": {"path": storage_path or "altsync.sqlite"},
        "sync": {"batch_limit": batch_limit},
        "access": {"admins": [admin], "default_actor": admin},
    }
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_text(yaml.safe_dump(document, sort_keys=False), encoding="utf-8")
    except OSError as exc:
        typer.echo(f"Could not write {destination}: {exc}", err=True)
        raise typer.Exit(code=EXIT_REJECTED) from exc

    typer.echo(f"Wrote {destination}")


_DUMPERS = {
    "json": lambda data: json.dumps(data, indent=2),
    "yaml": lambda data: yaml.safe_dump(data, sort_keys=False).rstrip("\n"),
}


@config_app.command("show")
def config_show(
    ctx: typer.Context,
    output_format: str = typer.Option("yaml", "--format", help="yaml or json."),
    paths: bool = typer.Option(
        False, "--paths", help="Also list the merged files and the log file on stderr."
    ),
) -> None:
    """Print the effective configuration."""

    config: Config = ctx.obj["config"]
    dumper = _DUMPERS.get(output_format.strip().lower())
    if dumper is None:
        raise typer.BadParameter("Format must be 'yaml' or 'json'.", param_hint="--format")

    if paths:
        for entry in config.loaded_from:
            typer.echo(f"config: {entry}", err=True)
        typer.echo(f"log: {ctx.obj['log_file']}", err=True)
    typer.echo(dumper(config.model.model_dump(mode="json")))


@app.command()
def version() -> None:
    """Print the Altsync version."""

    typer.echo(get_version())
