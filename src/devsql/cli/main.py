"""devsql CLI - ccql, vcsql and devsql commands.

All three run one SQL statement against a catalog; they differ only in which
tables the catalog holds:

    ccql    assistant data (history, transcripts, todos, stats)
    vcsql   git metadata of one or more repositories
    devsql  both, unified
"""

import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

import click
import structlog

from devsql import __version__
from devsql.catalog.builders import (
    build_assistant_catalog,
    build_git_catalog,
    build_unified_catalog,
)
from devsql.catalog.catalog import Catalog
from devsql.config.loader import load_config
from devsql.config.models import OUTPUT_FORMATS, DevsqlConfig
from devsql.core.errors import DevsqlError, InternalError
from devsql.core.logging import configure_logging, set_request_id
from devsql.mutation.ops import MutationGuard
from devsql.output.encoders import encode
from devsql.sources.jsonl import ReadReport

log = structlog.get_logger(__name__)

CatalogFactory = Callable[[DevsqlConfig], Catalog]


def _assistant(config: DevsqlConfig) -> Catalog:
    return build_assistant_catalog(config.sources)


def _git(config: DevsqlConfig) -> Catalog:
    return build_git_catalog(config.sources.repos)


def _unified(config: DevsqlConfig) -> Catalog:
    return build_unified_catalog(config.sources)


def _split_repos(repos: str | None, repo: tuple[Path, ...]) -> list[Path]:
    paths = [Path(p.strip()) for p in (repos or "").split(",") if p.strip()]
    return [*paths, *repo]


def _overrides(
    *,
    data_dir: Path | None,
    repos: list[Path],
    fmt: str | None,
    no_header: bool,
) -> dict[str, Any]:
    """CLI flags as load_config kwargs; unset flags leave config alone."""
    overrides: dict[str, Any] = {}
    sources: dict[str, Any] = {}
    if data_dir is not None:
        sources["data_dir"] = data_dir
    if repos:
        sources["repos"] = repos
    if sources:
        overrides["sources"] = sources
    output: dict[str, Any] = {}
    if fmt is not None:
        output["format"] = fmt
    if no_header:
        output["header"] = False
    if output:
        overrides["output"] = output
    return overrides


def run_statement(
    sql: str,
    config: DevsqlConfig,
    factory: CatalogFactory,
    *,
    dry_run: bool = False,
    write: bool = False,
) -> None:
    """Execute one statement and render its result to stdout.

    Skipped-record warnings and the dry-run note go to stderr so stdout stays
    machine-readable.
    """
    report = ReadReport()
    catalog = factory(config)
    try:
        with MutationGuard(
            catalog, require_where=config.mutation.require_where, report=report
        ) as guard:
            outcome = guard.run(sql, dry_run=dry_run, write=write)
            encode(
                outcome.stream,
                config.output.format,
                sys.stdout,
                header=config.output.header,
                null_display=config.output.null_display,
            )
            mutation = outcome.mutation
            if mutation is not None and mutation.dry_run:
                click.echo(
                    f"dry run: {mutation.rows_affected} row(s) would be affected by "
                    f"{mutation.operation} on {mutation.source_path}; nothing was written",
                    err=True,
                )
    finally:
        for warning in report.warnings():
            click.echo(warning, err=True)


def _invoke(
    ctx: click.Context,
    factory: CatalogFactory,
    sql: str,
    *,
    fmt: str | None,
    data_dir: Path | None = None,
    repos: list[Path] | None = None,
    dry_run: bool,
    write: bool,
    no_header: bool,
    verbose: bool,
) -> None:
    configure_logging(level="DEBUG" if verbose else "WARNING")
    set_request_id()

    exit_code = 0
    try:
        config = load_config(
            **_overrides(data_dir=data_dir, repos=repos or [], fmt=fmt, no_header=no_header)
        )
        logging_config = config.logging
        if verbose:
            logging_config = logging_config.model_copy(update={"level": "DEBUG"})
        configure_logging(config=logging_config)
        run_statement(sql, config, factory, dry_run=dry_run, write=write)
    except DevsqlError as e:
        log.debug("statement_failed", error=e.error_name, details=e.details)
        click.echo(str(e), err=True)
        exit_code = e.exit_code
    except Exception as e:
        log.exception("unexpected_error")
        error = InternalError.unexpected(f"{type(e).__name__}: {e}")
        click.echo(str(error), err=True)
        exit_code = error.exit_code
    if exit_code:
        ctx.exit(exit_code)


def _query_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Options every command shares."""
    for option in reversed(
        [
            click.argument("sql"),
            click.option(
                "-f",
                "--format",
                "fmt",
                type=click.Choice(OUTPUT_FORMATS),
                default=None,
                help="Output format (default: table)",
            ),
            click.option("--dry-run", is_flag=True, help="Preview a mutation without writing"),
            click.option("--write", is_flag=True, help="Apply a mutation (a backup is kept)"),
            click.option("--no-header", is_flag=True, help="Omit the header row (table, csv)"),
            click.option("-v", "--verbose", is_flag=True, help="Enable debug logging"),
            click.version_option(version=__version__),
        ]
    ):
        func = option(func)
    return func


_data_dir_option = click.option(
    "--data-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Assistant data directory (default: $CLAUDE_DATA_DIR or ~/.claude)",
)
_repos_option = click.option(
    "--repos",
    default=None,
    metavar="PATH[,PATH...]",
    help="Comma-separated repositories (default: .)",
)
_repo_option = click.option(
    "-r",
    "--repo",
    multiple=True,
    type=click.Path(file_okay=False, path_type=Path),
    help="Repository path; may be repeated",
)


@click.command()
@_query_options
@_data_dir_option
@click.pass_context
def ccql(
    ctx: click.Context,
    sql: str,
    fmt: str | None,
    dry_run: bool,
    write: bool,
    no_header: bool,
    verbose: bool,
    data_dir: Path | None,
) -> None:
    """Query AI coding-assistant history with SQL.

    Tables: history, jhistory (alias codex_history), transcripts, todos,
    stats, model_usage.
    """
    _invoke(
        ctx,
        _assistant,
        sql,
        fmt=fmt,
        data_dir=data_dir,
        dry_run=dry_run,
        write=write,
        no_header=no_header,
        verbose=verbose,
    )


@click.command()
@_query_options
@_repos_option
@_repo_option
@click.pass_context
def vcsql(
    ctx: click.Context,
    sql: str,
    fmt: str | None,
    dry_run: bool,
    write: bool,
    no_header: bool,
    verbose: bool,
    repos: str | None,
    repo: tuple[Path, ...],
) -> None:
    """Query git repository metadata with SQL.

    Every git table is read-only; rows carry the repository in ``_repo``.
    """
    _invoke(
        ctx,
        _git,
        sql,
        fmt=fmt,
        repos=_split_repos(repos, repo),
        dry_run=dry_run,
        write=write,
        no_header=no_header,
        verbose=verbose,
    )


@click.command()
@_query_options
@_data_dir_option
@_repos_option
@_repo_option
@click.pass_context
def devsql(
    ctx: click.Context,
    sql: str,
    fmt: str | None,
    dry_run: bool,
    write: bool,
    no_header: bool,
    verbose: bool,
    data_dir: Path | None,
    repos: str | None,
    repo: tuple[Path, ...],
) -> None:
    """Query assistant history and git metadata together, joins included."""
    _invoke(
        ctx,
        _unified,
        sql,
        fmt=fmt,
        data_dir=data_dir,
        repos=_split_repos(repos, repo),
        dry_run=dry_run,
        write=write,
        no_header=no_header,
        verbose=verbose,
    )


if __name__ == "__main__":
    devsql()
