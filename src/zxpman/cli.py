"""CLI interface for zxpman."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

import click

from zxpman.core.manager import ExtensionManager
from zxpman.errors import ZxpmanError
from zxpman.models.extension import Category, ExtensionEntry, Scope
from zxpman.models.results import RemoveStatus
from zxpman.utils import bytes_to_human

_SCOPE_CHOICE = click.Choice([s.value for s in Scope])


def _setup_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


def _build_manager() -> ExtensionManager:
    return ExtensionManager()


def _scan_or_exit(manager: ExtensionManager) -> tuple[ExtensionEntry, ...]:
    try:
        return manager.scan()
    except ZxpmanError as exc:
        click.echo(click.style(f"Error: {exc}", fg="red"), err=True)
        sys.exit(1)


def _entry_to_dict(entry: ExtensionEntry) -> dict:
    return {
        "id": entry.id,
        "name": entry.name,
        "version": entry.version,
        "path": str(entry.path),
        "scope": entry.scope.value,
        "category": entry.category.value,
        "removable": entry.removable,
        "size_bytes": entry.size_bytes,
        "hosts": [{"name": h.name, "version": h.version} for h in entry.hosts],
        "extension_ids": list(entry.extension_ids),
        "manifest_error": entry.manifest_error,
    }


@click.group()
@click.option("-v", "--verbose", count=True, help="Increase verbosity (-v info, -vv debug)")
def main(verbose: int) -> None:
    """zxpman: manage Adobe CEP extensions."""
    _setup_logging(verbose)


# ── list ─────────────────────────────────────────────────────────────────

@main.command("list")
@click.option("--scope", "-s", type=_SCOPE_CHOICE, default=None, help="Only show one scope")
@click.option("--third-party", is_flag=True, help="Hide native Adobe extensions")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def list_cmd(scope: str | None, third_party: bool, as_json: bool) -> None:
    """List installed extensions."""
    entries = _scan_or_exit(_build_manager())
    if scope:
        entries = tuple(e for e in entries if e.scope.value == scope)
    if third_party:
        entries = tuple(e for e in entries if e.category is Category.THIRD_PARTY)

    if as_json:
        click.echo(json.dumps([_entry_to_dict(e) for e in entries], indent=2))
        return

    if not entries:
        click.echo("No extensions installed.")
        return

    for entry in entries:
        native_tag = click.style(" [native]", fg="blue") if entry.is_native else ""
        root_tag = "" if entry.removable else click.style(" [requires admin]", fg="yellow")
        broken_tag = click.style(" [no manifest]", fg="red") if entry.is_degraded else ""
        click.echo(
            f"  {click.style(entry.id, fg='cyan', bold=True):45s}  {entry.name} "
            f"{click.style(entry.version, fg='bright_black')}{native_tag}{root_tag}{broken_tag}"
        )
        click.echo(f"    {entry.scope.value:6s}  {entry.size_human:>9s}  {entry.path}")

    total = sum(e.size_bytes for e in entries)
    click.echo(f"\n{len(entries)} extensions, {click.style(bytes_to_human(total), bold=True)}\n")


# ── info ─────────────────────────────────────────────────────────────────

@main.command()
@click.argument("extension_id")
def info(extension_id: str) -> None:
    """Show details about an installed extension."""
    entries = _scan_or_exit(_build_manager())
    entry = next((e for e in entries if e.id == extension_id), None)
    if entry is None:
        click.echo(f"Extension '{extension_id}' not found.", err=True)
        sys.exit(1)

    click.echo(f"\n  {click.style('ID:', bold=True)}        {entry.id}")
    click.echo(f"  {click.style('Name:', bold=True)}      {entry.name}")
    click.echo(f"  {click.style('Version:', bold=True)}   {entry.version}")
    click.echo(f"  {click.style('Category:', bold=True)}  {entry.category.value}")
    click.echo(f"  {click.style('Scope:', bold=True)}     {entry.scope.value}")
    click.echo(f"  {click.style('Path:', bold=True)}      {entry.path}")
    click.echo(f"  {click.style('Size:', bold=True)}      {entry.size_human}")
    click.echo(f"  {click.style('Removable:', bold=True)} {entry.removable}")
    if entry.hosts:
        hosts = ", ".join(f"{h.name} {h.version}".strip() for h in entry.hosts)
        click.echo(f"  {click.style('Hosts:', bold=True)}     {hosts}")
    if entry.extension_ids:
        click.echo(f"  {click.style('Panels:', bold=True)}    {', '.join(entry.extension_ids)}")
    if entry.manifest_error:
        click.echo(f"  {click.style('Manifest:', bold=True)}  {click.style(entry.manifest_error, fg='red')}")
    click.echo()


# ── install ──────────────────────────────────────────────────────────────

@main.command()
@click.argument("archive", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--scope", "-s", type=_SCOPE_CHOICE, default=None, help="Install for all users or just you")
def install(archive: Path, scope: str | None) -> None:
    """Install a .zxp package."""
    manager = _build_manager()
    try:
        result = manager.install(archive, scope)
    except ZxpmanError as exc:
        click.echo(click.style(f"Error: {exc}", fg="red"), err=True)
        sys.exit(1)

    if not result.ok:
        click.echo(f"  {click.style('✗', fg='red')} {result.message}", err=True)
        sys.exit(1)
    click.echo(
        f"  {click.style('✓', fg='green')} Installed {click.style(result.extension_id, bold=True)} "
        f"({result.scope.value}) to {result.path}"
    )


# ── remove ───────────────────────────────────────────────────────────────

@main.command()
@click.argument("target")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
def remove(target: str, yes: bool) -> None:
    """Remove an extension by id or directory path."""
    manager = _build_manager()
    path = Path(target)
    if not path.is_dir():
        entry = next((e for e in _scan_or_exit(manager) if e.id == target), None)
        if entry is None:
            click.echo(f"Extension '{target}' not found.", err=True)
            sys.exit(1)
        path = entry.path

    if not yes and not click.confirm(f"Remove {path}?", default=False):
        click.echo("Aborted.")
        return

    result = manager.remove(path)
    if result.status is RemoveStatus.USER_CANCELLED:
        click.echo("Authorization cancelled, nothing was removed.")
        return
    if result.is_error:
        click.echo(f"  {click.style('✗', fg='red')} {result.message}", err=True)
        sys.exit(1)
    elevated = " (as administrator)" if result.elevated else ""
    click.echo(f"  {click.style('✓', fg='green')} Removed {result.path}{elevated}")


# ── paths ────────────────────────────────────────────────────────────────

@main.command()
def paths() -> None:
    """Show the extension directories and settings file in use."""
    manager = _build_manager()
    try:
        roots = manager.roots()
    except ZxpmanError as exc:
        click.echo(click.style(f"Error: {exc}", fg="red"), err=True)
        sys.exit(1)
    for scope, root in roots.items():
        state = click.style("present", fg="green") if root.is_dir() else click.style("missing", fg="bright_black")
        click.echo(f"  {scope.value:6s}  {root}  {state}")
    click.echo(f"  config  {manager.settings.path}")
