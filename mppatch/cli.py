"""mppatch CLI — the main entry point for the Rockchip MPP patch lifecycle."""

from __future__ import annotations

import logging
import signal
import threading
from contextlib import contextmanager

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from mppatch import __version__
from mppatch.config import Settings, load_settings
from mppatch.errors import ConfigurationError, EnvironmentFailure
from mppatch.models.run import Action, RunMode, RunSummary, UnitOutcome, UnitState

console = Console()
err_console = Console(stderr=True)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_UNKNOWN = 2
EXIT_INCOMPLETE = 130

STATE_STYLE = {
    UnitState.UNAPPLIED: "yellow",
    UnitState.APPLIED: "green",
    UnitState.CONFLICTED: "red",
}

ACTION_LABEL = {
    RunMode.APPLY: "Applied",
    RunMode.REVERSE: "Reversed",
    RunMode.DRY_RUN: "Would apply",
    RunMode.DRY_RUN_REVERSE: "Would reverse",
}

TITLE = {
    RunMode.APPLY: "Applying Rockchip MPP patches",
    RunMode.REVERSE: "Reverting Rockchip MPP patches",
    RunMode.DRY_RUN: "Dry-run: checking Rockchip MPP patches",
    RunMode.DRY_RUN_REVERSE: "Dry-run: checking Rockchip MPP patch reversal",
}


# ── Usage errors exit 1 (configuration errors), not click's default 2 ─


class _UsageExitMixin:
    def parse_args(self, ctx, args):
        try:
            return super().parse_args(ctx, args)
        except click.UsageError as e:
            e.exit_code = EXIT_FAILED
            raise


class PatchCommand(_UsageExitMixin, click.Command):
    pass


class PatchGroup(_UsageExitMixin, click.Group):
    command_class = PatchCommand
    group_class = type

    def resolve_command(self, ctx, args):
        try:
            return super().resolve_command(ctx, args)
        except click.UsageError as e:
            e.exit_code = EXIT_FAILED
            raise


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _configuration_error(ctx: click.Context, error: Exception) -> None:
    """Print the cause and usage, then exit without a summary."""
    err_console.print(f"[red]Error:[/] {escape(str(error))}")
    err_console.print(ctx.get_usage(), markup=False, highlight=False)
    ctx.exit(EXIT_FAILED)


def _settings(ctx: click.Context) -> Settings:
    return ctx.find_object(Settings) or Settings()


@click.group(cls=PatchGroup)
@click.version_option(version=__version__)
@click.option("--config", "-c", "config_path", default=None, help="Path to mppatch.yaml")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, verbose: bool):
    """mppatch — Rockchip MPP patches for LiveKit rust-sdks.

    Apply, revert, and probe the ordered set of modification units that
    register the Rockchip hardware encoder/decoder factories, and watch the
    upstream tree for drift that would break them.
    """
    _configure_logging(verbose)
    try:
        ctx.obj = load_settings(config_path)
    except ConfigurationError as e:
        _configuration_error(ctx, e)


# ── Apply ────────────────────────────────────────────────────────────


@main.command()
@click.argument("tree_root")
@click.option("--dry-run", is_flag=True, help="Only check what would happen; do not modify files.")
@click.option("--reverse", is_flag=True, help="Revert the patches instead of applying them.")
@click.option("--patches-dir", "-p", default=None, help="Directory holding the .patch units")
@click.option("--marker", default=None, help="Subdirectory that identifies a valid tree root")
@click.pass_context
def apply(
    ctx: click.Context,
    tree_root: str,
    dry_run: bool,
    reverse: bool,
    patches_dir: str | None,
    marker: str | None,
):
    """Apply (or revert, or dry-run) all patches against TREE_ROOT.

    Exit status is 0 when no unit failed and 1 when any unit is conflicted.
    """
    from mppatch.engine.lifecycle import LifecycleEngine
    from mppatch.units.loader import load_units

    settings = _settings(ctx).with_overrides(patches_dir=patches_dir, marker_dir=marker)
    mode = RunMode.from_flags(dry_run=dry_run, reverse=reverse)

    try:
        units = load_units(settings.patches_dir)
        engine = LifecycleEngine(marker_dir=settings.marker_dir)
        cancel = threading.Event()

        console.print(f"\n[bold blue]mppatch[/] — {TITLE[mode]}")
        console.print(f"  Target:  {tree_root}")
        console.print(f"  Patches: {len(units)} unit(s) from {settings.patches_dir}\n")

        with _cancel_on_interrupt(cancel):
            summary = engine.run(
                tree_root,
                units,
                mode,
                cancel_event=cancel,
                on_outcome=lambda unit, outcome: _print_outcome(outcome, mode),
            )
    except ConfigurationError as e:
        _configuration_error(ctx, e)
    except EnvironmentFailure as e:
        err_console.print(f"[red]Run aborted:[/] {escape(str(e))}")
        ctx.exit(EXIT_FAILED)

    _print_summary(summary)
    ctx.exit(_exit_code(summary))


def _print_outcome(outcome: UnitOutcome, mode: RunMode) -> None:
    style = STATE_STYLE[outcome.state]
    if outcome.action is Action.APPLIED:
        action = ACTION_LABEL[mode].lower()
    else:
        action = outcome.action.value
    result = "[green]OK[/]" if outcome.outcome == "OK" else "[red]FAIL[/]"
    label = escape(f"[{outcome.name}]")
    line = f"  {label} [{style}]{outcome.state.value}[/] -> {action} {result}"
    console.print(line, soft_wrap=True)
    if outcome.reason:
        console.print(f"      {outcome.reason}", soft_wrap=True, markup=False)


def _print_summary(summary: RunSummary) -> None:
    lines = [
        f"{ACTION_LABEL[summary.mode]}: {summary.applied}",
        f"Skipped: {summary.skipped}",
        f"Failed:  {summary.failed}",
    ]
    if not summary.completed:
        lines.append("Status:  INCOMPLETE (cancelled)")
    console.print()
    console.print(Panel("\n".join(lines), title="Summary", expand=False))

    if not summary.completed:
        console.print("[yellow]Run was cancelled; only the units listed above were processed.[/]")
    elif summary.failed:
        console.print(
            "[red]Some patches failed.[/] Reconcile the conflicted units against "
            "the current upstream content."
        )


def _exit_code(summary: RunSummary) -> int:
    if not summary.completed:
        return EXIT_INCOMPLETE
    return EXIT_OK if summary.failed == 0 else EXIT_FAILED


@contextmanager
def _cancel_on_interrupt(event: threading.Event):
    """Turn SIGINT into a between-units cancellation while a run is active."""
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def handle(signum, frame):
        err_console.print("[yellow]Interrupted — stopping after the current unit[/]")
        event.set()

    previous = signal.signal(signal.SIGINT, handle)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


# ── Status ───────────────────────────────────────────────────────────


@main.command()
@click.argument("tree_root")
@click.option("--patches-dir", "-p", default=None, help="Directory holding the .patch units")
@click.option("--marker", default=None, help="Subdirectory that identifies a valid tree root")
@click.pass_context
def status(ctx: click.Context, tree_root: str, patches_dir: str | None, marker: str | None):
    """Show what apply and reverse would each do for every unit (no writes)."""
    from mppatch.engine.lifecycle import LifecycleEngine
    from mppatch.units.loader import load_units

    settings = _settings(ctx).with_overrides(patches_dir=patches_dir, marker_dir=marker)
    try:
        units = load_units(settings.patches_dir)
        engine = LifecycleEngine(marker_dir=settings.marker_dir)
        forward = engine.run(tree_root, units, RunMode.DRY_RUN)
        backward = engine.run(tree_root, units, RunMode.DRY_RUN_REVERSE)
    except ConfigurationError as e:
        _configuration_error(ctx, e)
    except EnvironmentFailure as e:
        err_console.print(f"[red]Status failed:[/] {escape(str(e))}")
        ctx.exit(EXIT_FAILED)

    table = Table(title=f"Patch status ({tree_root})")
    table.add_column("#", style="dim", width=3)
    table.add_column("Unit", style="cyan")
    table.add_column("Target")
    table.add_column("State")
    table.add_column("Apply")
    table.add_column("Reverse")

    reverse_actions = {o.name: o.action for o in backward.outcomes}
    for unit, fwd in zip(units, forward.outcomes):
        style = STATE_STYLE[fwd.state]
        table.add_row(
            str(unit.index + 1),
            unit.name,
            unit.target,
            f"[{style}]{fwd.state.value}[/]",
            fwd.action.value,
            reverse_actions[unit.name].value,
        )

    console.print(table)
    for outcome in forward.outcomes:
        if outcome.reason:
            console.print(f"  [red]![/] {escape(outcome.name)}: {escape(outcome.reason)}", soft_wrap=True)

    ctx.exit(EXIT_OK if forward.failed == 0 else EXIT_FAILED)


# ── Units ────────────────────────────────────────────────────────────


@main.command()
@click.option("--patches-dir", "-p", default=None, help="Directory holding the .patch units")
@click.pass_context
def units(ctx: click.Context, patches_dir: str | None):
    """List the ordered modification units."""
    from mppatch.units.loader import load_units

    settings = _settings(ctx).with_overrides(patches_dir=patches_dir)
    try:
        loaded = load_units(settings.patches_dir)
    except ConfigurationError as e:
        _configuration_error(ctx, e)

    table = Table(title=f"Modification units ({len(loaded)})")
    table.add_column("#", style="dim", width=3)
    table.add_column("Unit", style="cyan")
    table.add_column("Target")
    table.add_column("Description")

    for unit in loaded:
        table.add_row(str(unit.index + 1), unit.name, unit.target, unit.description[:60])

    console.print(table)


# ── Drift ────────────────────────────────────────────────────────────


@main.group()
def drift():
    """Check upstream revisions for drift that breaks the patches."""


@drift.command(name="check")
@click.option("--ref", "-r", default=None, help="Upstream branch, tag, or commit (default from config)")
@click.option("--url", "-u", default=None, help="Upstream repository URL")
@click.option("--timeout", "-t", type=float, default=None, help="Fetch timeout in seconds")
@click.option("--ledger", "-l", "ledger_path", default=None, help="Ledger file")
@click.option("--patches-dir", "-p", default=None, help="Directory holding the .patch units")
@click.pass_context
def drift_check(
    ctx: click.Context,
    ref: str | None,
    url: str | None,
    timeout: float | None,
    ledger_path: str | None,
    patches_dir: str | None,
):
    """Dry-run the patches against a fresh upstream snapshot and record the verdict.

    Exit status: 0 clean, 1 conflict, 2 unknown (fetch failed or timed out).
    """
    from mppatch.sync.drift import DriftMonitor
    from mppatch.sync.ledger import VersionLedger
    from mppatch.units.loader import load_units

    settings = _settings(ctx).with_overrides(
        upstream_ref=ref,
        upstream_url=url,
        fetch_timeout=timeout,
        ledger_path=ledger_path,
        patches_dir=patches_dir,
    )

    console.print(
        f"\n[bold blue]mppatch[/] — Drift check: {settings.upstream_url}@{settings.upstream_ref}\n"
    )

    try:
        monitor = DriftMonitor(
            load_units(settings.patches_dir),
            VersionLedger(settings.ledger_path),
            upstream_url=settings.upstream_url,
            notifier=settings.notifier(),
            marker_dir=settings.marker_dir,
            fetch_timeout=settings.fetch_timeout,
        )
        entry = monitor.check(settings.upstream_ref)
    except ConfigurationError as e:
        _configuration_error(ctx, e)
    except EnvironmentFailure as e:
        console.print(f"  [yellow]UNKNOWN[/] {escape(str(e))}", soft_wrap=True)
        console.print("  Nothing was recorded in the ledger.")
        ctx.exit(EXIT_UNKNOWN)

    if entry.is_clean:
        console.print(f"  [green]CLEAN[/] {entry.revision} ({entry.ref})", soft_wrap=True)
        ctx.exit(EXIT_OK)

    console.print(f"  [red]CONFLICT[/] {entry.revision} ({entry.ref})", soft_wrap=True)
    for name in entry.failed_units:
        console.print(f"    - {name}", soft_wrap=True)
    ctx.exit(EXIT_FAILED)


# ── Ledger ───────────────────────────────────────────────────────────


@main.group()
def ledger():
    """Inspect the version ledger of checked upstream revisions."""


@ledger.command(name="show")
@click.option("--revision", "-r", default=None, help="Only show entries for this revision (prefix ok)")
@click.option("--ledger", "-l", "ledger_path", default=None, help="Ledger file")
@click.option(
    "--limit", "-n", type=click.IntRange(min=1), default=20, help="Show at most N most recent entries"
)
@click.pass_context
def ledger_show(ctx: click.Context, revision: str | None, ledger_path: str | None, limit: int):
    """List ledger entries, most recent last."""
    from mppatch.sync.ledger import VersionLedger

    settings = _settings(ctx).with_overrides(ledger_path=ledger_path)
    try:
        entries = VersionLedger(settings.ledger_path).history(revision)
    except ConfigurationError as e:
        _configuration_error(ctx, e)

    if not entries:
        console.print("[yellow]Ledger is empty.[/]")
        return

    table = Table(title=f"Version ledger ({len(entries)} entries)")
    table.add_column("Revision", style="cyan", no_wrap=True)
    table.add_column("Ref")
    table.add_column("Checked at")
    table.add_column("Verdict", justify="center")
    table.add_column("Failed units")

    for entry in entries[-limit:]:
        verdict = "[green]clean[/]" if entry.is_clean else "[red]conflict[/]"
        table.add_row(
            entry.revision[:12],
            entry.ref,
            entry.timestamp[:19],
            verdict,
            ", ".join(entry.failed_units),
        )

    console.print(table)


@ledger.command(name="verify")
@click.argument("revision")
@click.option("--ledger", "-l", "ledger_path", default=None, help="Ledger file")
@click.pass_context
def ledger_verify(ctx: click.Context, revision: str, ledger_path: str | None):
    """Answer "is REVISION known good?".

    Exit status: 0 known good, 1 known conflict, 2 never checked or an
    ambiguous revision prefix.
    """
    from mppatch.sync.ledger import VersionLedger

    settings = _settings(ctx).with_overrides(ledger_path=ledger_path)
    try:
        entry = VersionLedger(settings.ledger_path).latest(revision)
    except ConfigurationError as e:
        console.print(f"[yellow]UNKNOWN[/] {escape(str(e))}", soft_wrap=True)
        ctx.exit(EXIT_UNKNOWN)

    if entry is None:
        console.print(f"[yellow]UNKNOWN[/] {escape(revision)}: never checked", soft_wrap=True)
        ctx.exit(EXIT_UNKNOWN)
    if entry.is_clean:
        console.print(f"[green]GOOD[/] {entry.revision} (checked {entry.timestamp})", soft_wrap=True)
        ctx.exit(EXIT_OK)
    console.print(
        f"[red]CONFLICT[/] {entry.revision} (checked {entry.timestamp}): "
        f"{', '.join(entry.failed_units)}",
        soft_wrap=True,
    )
    ctx.exit(EXIT_FAILED)


if __name__ == "__main__":
    main()
