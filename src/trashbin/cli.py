"""CLI interface for trash-bin.

Two programs share this module: ``trash`` moves files to the trash, and
``trash-bin`` lists, restores and purges what is in it.
"""

from __future__ import annotations

import json
import logging
import sys
from dataclasses import dataclass

import click

from trashbin.core.entry import DiscoveredTrashedItem, ItemKind
from trashbin.core.trashbin import SortOrder, TrashBin
from trashbin.errors import (
    EXIT_EXTERNAL,
    EXIT_INVALID_ARGS,
    EXIT_OK,
    EXIT_UNSUPPORTED,
    TrashError,
)
from trashbin.settings import Settings
from trashbin.utils import bytes_to_human, format_relative_time

log = logging.getLogger(__name__)

_PACKAGE = "trash-bin"
_CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}

_TRASH_EPILOG = """\b
trash does not traverse symbolic links. It only moves the link to the
trash bin, not the target.

\b
To trash a file whose name starts with a '-', for example '-foo',
use one of these commands:
  trash -- -foo
  trash ./-foo

To restore a trashed file, use 'trash-bin restore' or any other
freedesktop.org trash specification compatible tool, such as the file
manager of your desktop environment.
"""


def _setup_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


def _reason(exc: Exception) -> str:
    if isinstance(exc, OSError) and exc.strerror:
        return exc.strerror
    return str(exc)


@dataclass(frozen=True, slots=True)
class Reporter:
    """Writes user-facing messages prefixed with the program name."""

    prog_name: str

    def error(self, message: str) -> None:
        click.echo(f"{self.prog_name}: {message}", err=True)

    def cannot(self, verb: str, name: str, reason: str) -> None:
        self.error(f"cannot {verb} '{name}': {reason}")


def _run(command: click.Command, prog_name: str, args: list[str] | None) -> None:
    """Run *command* with this tool's exit codes.

    click reports usage errors with exit code 2, which is reserved here for
    refused operations.
    """
    try:
        code = command.main(args=args, prog_name=prog_name, standalone_mode=False)
    except click.UsageError as exc:
        exc.show()
        click.echo(f"{prog_name}: try '-h' for more information.", err=True)
        sys.exit(EXIT_INVALID_ARGS)
    except click.ClickException as exc:
        exc.show()
        sys.exit(EXIT_UNSUPPORTED)
    except click.Abort:
        click.echo(f"{prog_name}: input/output error", err=True)
        sys.exit(EXIT_EXTERNAL)
    sys.exit(code if isinstance(code, int) else EXIT_OK)


# ── trash ────────────────────────────────────────────────────────────────

@click.command(context_settings=_CONTEXT_SETTINGS, epilog=_TRASH_EPILOG)
@click.option("-i", "--interactive", is_flag=True, help="Prompt before every move")
@click.option("-v", "--verbose", count=True, help="Explain what is being done (-vv debug)")
@click.version_option(None, "-V", "--version", package_name=_PACKAGE, message="%(prog)s (%(version)s)")
@click.argument("files", nargs=-1, required=True, type=click.Path())
@click.pass_context
def trash(ctx: click.Context, interactive: bool, verbose: int, files: tuple[str, ...]) -> None:
    """Move the FILE(s) to the trash bin without unlinking."""
    _setup_logging(verbose)
    reporter = Reporter(ctx.info_name or "trash")
    settings = Settings()
    trash_bin = TrashBin(update_directorysizes=bool(settings.get("trash.directorysizes", True)))

    for name in files:
        try:
            item = trash_bin.prepare(name)
        except TrashError as exc:
            reporter.cannot("trash", name, str(exc))
            ctx.exit(exc.exit_code)
        except OSError as exc:
            reporter.cannot("trash", name, _reason(exc))
            ctx.exit(EXIT_UNSUPPORTED)

        if interactive:
            try:
                answer = click.prompt(
                    f"trash file '{name}'? (y/n)", default="", show_default=False, prompt_suffix=": "
                )
            except click.Abort:
                reporter.error("input/output error")
                ctx.exit(EXIT_EXTERNAL)
            if answer.strip().lower() != "y":
                log.info("Not trashing '%s'", name)
                continue

        try:
            trash_bin.commit(item)
        except TrashError as exc:
            reporter.cannot("trash", name, str(exc))
            ctx.exit(EXIT_UNSUPPORTED)
        except OSError as exc:
            reporter.cannot("trash", name, _reason(exc))
            ctx.exit(EXIT_UNSUPPORTED)


def trash_main(args: list[str] | None = None) -> None:
    """Entry point of the ``trash`` program."""
    _run(trash, "trash", args)


# ── trash-bin ────────────────────────────────────────────────────────────

@dataclass(slots=True)
class AppContext:
    reporter: Reporter
    settings: Settings
    trash_bin: TrashBin


pass_app = click.make_pass_decorator(AppContext)


@click.group(context_settings=_CONTEXT_SETTINGS)
@click.option("-v", "--verbose", count=True, help="Increase verbosity (-v info, -vv debug)")
@click.version_option(None, "-V", "--version", package_name=_PACKAGE, message="%(prog)s (%(version)s)")
@click.pass_context
def main(ctx: click.Context, verbose: int) -> None:
    """Trash Bin: list, restore and purge trashed files on every mounted drive."""
    _setup_logging(verbose)
    settings = Settings()
    ctx.obj = AppContext(
        reporter=Reporter(ctx.info_name or "trash-bin"),
        settings=settings,
        trash_bin=TrashBin(update_directorysizes=bool(settings.get("trash.directorysizes", True))),
    )


def bin_main(args: list[str] | None = None) -> None:
    """Entry point of the ``trash-bin`` program."""
    _run(main, "trash-bin", args)


def _sort_order(app: AppContext, requested: str | None) -> SortOrder:
    value = requested or app.settings.get("list.sort", SortOrder.DATE.value)
    try:
        return SortOrder(value)
    except ValueError:
        log.warning("Unknown sort order %r in %s, sorting by date", value, app.settings.path)
        return SortOrder.DATE


def _size_or_none(item: DiscoveredTrashedItem) -> int | None:
    try:
        return item.size()
    except OSError:
        log.debug("Cannot size %s", item.files_entry)
        return None


def _format_item(index: int, item: DiscoveredTrashedItem) -> str:
    size = _size_or_none(item)
    size_str = bytes_to_human(size) if size is not None else "?"
    date_str = item.deletion_date.strftime("%Y-%m-%d %H:%M:%S")
    path = item.display_path()
    match item.kind:
        case ItemKind.DIRECTORY:
            path = click.style(f"{path}/", fg="blue", bold=True)
        case ItemKind.SYMLINK:
            path = click.style(f"{path}@", fg="cyan")
    return f"  [{index}] {date_str}  {size_str:>10s}  {path}"


def _interactive_select(items: list[DiscoveredTrashedItem]) -> DiscoveredTrashedItem | None:
    """Let the user pick one of several matching items."""
    click.echo("\nSeveral trashed items match (enter a number):\n")
    for i, item in enumerate(items, 1):
        click.echo(f"{_format_item(i, item)}  ({format_relative_time(item.deletion_date)})")
    click.echo()
    raw = click.prompt("Selection", default="", show_default=False)
    part = raw.strip()
    if part.isdigit():
        idx = int(part) - 1
        if 0 <= idx < len(items):
            return items[idx]
    return None


# ── list ─────────────────────────────────────────────────────────────────

@main.command("list")
@click.option(
    "--sort", "-s", "sort_by", default=None,
    type=click.Choice([o.value for o in SortOrder]), help="Sort order (default from settings)",
)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@pass_app
def list_cmd(app: AppContext, sort_by: str | None, as_json: bool) -> None:
    """List trashed items from every reachable trash."""
    items = app.trash_bin.list_items(_sort_order(app, sort_by))

    if as_json:
        data = [
            {
                "original_path": str(item.original_path),
                "deletion_date": item.deletion_date.isoformat(),
                "kind": item.kind.value,
                "size_bytes": _size_or_none(item),
                "trash_root": str(item.root.path),
                "root_kind": item.root.kind.value,
                "entry": item.name,
            }
            for item in items
        ]
        click.echo(json.dumps(data, indent=2))
        return

    if not items:
        click.echo("Trash is empty.")
        return

    for i, item in enumerate(items, 1):
        click.echo(_format_item(i, item))


# ── restore ──────────────────────────────────────────────────────────────

@main.command()
@click.argument("queries", nargs=-1, required=True)
@click.option("--yes", "-y", is_flag=True, help="Pick the most recent match without asking")
@pass_app
@click.pass_context
def restore(ctx: click.Context, app: AppContext, queries: tuple[str, ...], yes: bool) -> None:
    """Restore trashed items to their original location.

    Each QUERY is an original path (absolute, relative or with '~') or a
    file name.
    """
    items = app.trash_bin.list_items(SortOrder.DATE)
    failures = 0

    for query in queries:
        matches = app.trash_bin.find(query, items)
        if not matches:
            app.reporter.cannot("restore", query, "not found in trash")
            failures += 1
            continue

        item = matches[0] if (yes or len(matches) == 1) else _interactive_select(matches)
        if item is None:
            click.echo("Nothing selected.")
            continue

        try:
            app.trash_bin.restore(item)
        except (TrashError, OSError) as exc:
            app.reporter.cannot("restore", query, _reason(exc))
            failures += 1
            continue
        items.remove(item)
        click.echo(f"  {click.style('✓', fg='green')} restored {item.display_path()}")

    if failures:
        ctx.exit(EXIT_UNSUPPORTED)


# ── purge ────────────────────────────────────────────────────────────────

@main.command()
@click.argument("queries", nargs=-1, required=True)
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@pass_app
@click.pass_context
def purge(ctx: click.Context, app: AppContext, queries: tuple[str, ...], yes: bool) -> None:
    """Delete matching trashed items forever."""
    items = app.trash_bin.list_items(SortOrder.DATE)
    selected: list[DiscoveredTrashedItem] = []
    failures = 0

    for query in queries:
        matches = app.trash_bin.find(query, items)
        if not matches:
            app.reporter.cannot("purge", query, "not found in trash")
            failures += 1
        selected.extend(m for m in matches if m not in selected)

    if selected and not yes:
        for i, item in enumerate(selected, 1):
            click.echo(_format_item(i, item))
        if not click.confirm(f"\nDelete {len(selected)} item(s) forever?", default=False):
            click.echo("Aborted.")
            return

    for item in selected:
        try:
            app.trash_bin.delete(item)
        except (TrashError, OSError) as exc:
            app.reporter.cannot("purge", item.display_path(), _reason(exc))
            failures += 1
            continue
        click.echo(f"  {click.style('✓', fg='green')} deleted {item.display_path()}")

    if failures:
        ctx.exit(EXIT_UNSUPPORTED)


# ── empty ────────────────────────────────────────────────────────────────

@main.command()
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@pass_app
@click.pass_context
def empty(ctx: click.Context, app: AppContext, yes: bool) -> None:
    """Delete everything in every reachable trash forever."""
    if not yes and not click.confirm("Empty the trash? This cannot be undone.", default=False):
        click.echo("Aborted.")
        return

    result = app.trash_bin.empty()
    for error in result.errors:
        click.echo(f"  {click.style('!', fg='yellow')} {error}", err=True)

    click.echo(
        f"Removed {result.removed:,} item(s), freed "
        f"{click.style(bytes_to_human(result.freed_bytes), fg='green', bold=True)}"
    )
    if not result.ok:
        app.reporter.error(f"{len(result.errors)} item(s) could not be deleted")
        ctx.exit(EXIT_UNSUPPORTED)


# ── roots ────────────────────────────────────────────────────────────────

@main.command()
@pass_app
def roots(app: AppContext) -> None:
    """Show the trash directories currently in use."""
    found = app.trash_bin.roots()
    if not found:
        click.echo("No trash directories found.")
        return
    for root in found:
        mount = f" on {root.device.mount_point}" if root.device.mount_point else ""
        click.echo(f"  {click.style(str(root.path), fg='cyan', bold=True)}  [{root.kind.value}]{mount}")


# ── config ───────────────────────────────────────────────────────────────

@main.command()
@click.argument("key")
@click.argument("value", required=False)
@pass_app
def config(app: AppContext, key: str, value: str | None) -> None:
    """Show or change a setting, e.g. 'list.sort size'."""
    if value is None:
        click.echo(json.dumps(app.settings.get(key)))
        return
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError:
        parsed = value
    app.settings.set(key, parsed)
