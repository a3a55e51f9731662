"""Command-line interface for Folio.

This module defines the CLI commands using the Click framework.

Commands:
- build: Build a source directory into an output directory.
- watch: Build, then rebuild incrementally whenever sources change.
- post: Create a new document interactively.

Exit codes for build: 0 when every document built, 1 when any document
failed, 2 when the run was aborted by a fatal error.
"""

from __future__ import annotations

import logging
from datetime import date
from pathlib import Path

import click
import questionary

from . import __version__
from .extractors import serialize
from .layouts import LAYOUT_DIR, layout_name_for
from .utils import slugify


@click.group()
@click.version_option(version=__version__, prog_name="folio")
def cli():
    """Folio static site builder."""


@cli.command()
@click.argument(
    "source_dir",
    type=click.Path(file_okay=False, path_type=Path),
)
@click.argument("output_dir", type=click.Path(file_okay=False, path_type=Path))
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, exists=True, path_type=Path),
    help="Config file (defaults to SOURCE_DIR/folio.yaml)",
)
@click.option("--drafts", is_flag=True, help="Include draft documents")
@click.option("--force", is_flag=True, help="Render every document, ignoring the manifest")
@click.option("--workers", type=click.IntRange(min=1), help="Number of render threads")
@click.option("-v", "--verbose", is_flag=True, help="Log every rendered document")
def build(
    source_dir: Path,
    output_dir: Path,
    config_path: Path | None,
    drafts: bool,
    force: bool,
    workers: int | None,
    verbose: bool,
):
    """Build SOURCE_DIR into OUTPUT_DIR."""
    _configure_logging(verbose)
    from .build import build_site

    report = build_site(
        source_dir,
        output_dir,
        config_path=config_path,
        include_drafts=True if drafts else None,
        workers=workers,
        force=force,
    )
    _print_report(report, output_dir)
    raise SystemExit(report.exit_code)


@cli.command()
@click.argument("source_dir", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.argument("output_dir", type=click.Path(file_okay=False, path_type=Path))
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, exists=True, path_type=Path),
    help="Config file (defaults to SOURCE_DIR/folio.yaml)",
)
@click.option("--drafts", is_flag=True, help="Include draft documents")
@click.option("-v", "--verbose", is_flag=True, help="Log every rendered document")
def watch(
    source_dir: Path,
    output_dir: Path,
    config_path: Path | None,
    drafts: bool,
    verbose: bool,
):
    """Build SOURCE_DIR, then rebuild whenever it changes."""
    _configure_logging(verbose)
    from .watcher import SiteWatcher

    watcher = SiteWatcher(
        source_dir,
        output_dir,
        config_path=config_path,
        include_drafts=True if drafts else None,
        on_build=lambda report: _print_report(report, output_dir),
    )
    click.echo(f"Watching {source_dir} (Ctrl+C to stop)")
    watcher.serve_forever()


@cli.command()
@click.argument("source_dir", type=click.Path(exists=True, file_okay=False, path_type=Path))
def post(source_dir: Path):
    """Create a new document in SOURCE_DIR interactively."""
    folders = _get_content_folders(source_dir)
    folder = questionary.select(
        "Select folder:",
        choices=folders,
        style=_questionary_style(),
    ).ask()
    if folder is None:
        raise click.Abort()

    title = questionary.text(
        "Title:",
        validate=lambda x: len(x.strip()) > 0 or "Title cannot be empty",
        style=_questionary_style(),
    ).ask()
    if title is None:
        raise click.Abort()
    title = title.strip()

    layouts = _get_layout_names(source_dir)
    layout = None
    if layouts:
        layout = questionary.select(
            "Layout:",
            choices=["(default)"] + layouts,
            style=_questionary_style(),
        ).ask()
        if layout is None:
            raise click.Abort()
        if layout == "(default)":
            layout = None

    add_date = questionary.confirm(
        "Date it today? (YYYY-MM-DD- prefix)",
        default=True,
        style=_questionary_style(),
    ).ask()
    if add_date is None:
        raise click.Abort()

    slug = slugify(title)
    today = date.today()
    filename = f"{today.isoformat()}-{slug}.md" if add_date else f"{slug}.md"
    target_dir = source_dir if folder == ". (root)" else source_dir / folder
    target_path = target_dir / filename
    if target_path.exists():
        raise click.ClickException(f"File already exists: {target_path}")

    metadata: dict = {"title": title}
    if layout:
        metadata["layout"] = layout
    if add_date:
        metadata["date"] = today
    target_dir.mkdir(parents=True, exist_ok=True)
    target_path.write_text(serialize(metadata, "\n"), encoding="utf-8")
    click.echo(f"Created {target_path}")


def _print_report(report, output_dir: Path) -> None:
    """Print a build summary, failures and warnings."""
    if report.fatal is not None:
        click.echo(click.style("Build failed:", fg="red", bold=True), err=True)
        click.echo(click.style(f"  Error: {report.fatal}", fg="white"), err=True)
        return
    for failure in report.failures:
        click.echo(click.style(f"  File: {failure.source_path}", fg="yellow"), err=True)
        click.echo(click.style(f"  Error: {failure.message}", fg="white"), err=True)
    for warning in report.warnings:
        click.echo(click.style(f"  Warning: {warning}", fg="yellow"), err=True)
    summary = (
        f"Built {len(report.rendered)} documents into {output_dir}"
        f" ({len(report.skipped)} up to date"
    )
    if report.failures:
        summary += f", {len(report.failures)} failed"
    summary += ")"
    if report.cancelled:
        summary += " [cancelled]"
    color = "green" if report.ok else "red"
    click.echo(click.style(summary, fg=color))


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _get_content_folders(source_dir: Path) -> list[str]:
    """Get list of content folders in the source directory.

    Returns folders that don't start with _ or . (excludes _layouts, _data).
    """
    folders = []
    for path in source_dir.iterdir():
        if path.is_dir() and not path.name.startswith(("_", ".")):
            folders.append(path.name)
    folders.sort()
    folders.insert(0, ". (root)")
    return folders


def _get_layout_names(source_dir: Path) -> list[str]:
    layout_dir = source_dir / LAYOUT_DIR
    if not layout_dir.is_dir():
        return []
    names = {
        layout_name_for(path.relative_to(layout_dir))
        for path in layout_dir.rglob("*")
        if path.is_file() and not path.name.startswith(".")
    }
    return sorted(names)


def _questionary_style():
    """Return consistent questionary style."""
    return questionary.Style(
        [
            ("qmark", "fg:cyan bold"),
            ("question", "bold"),
            ("answer", "fg:cyan"),
            ("pointer", "fg:cyan bold"),
            ("highlighted", "fg:cyan bold"),
            ("selected", "fg:cyan"),
        ]
    )


def main():
    """Entry point for the CLI application."""
    cli()
