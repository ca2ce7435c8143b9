"""One-shot reconcile command.

Runs a single resync tick for every enabled rule set. Useful:
- At boot, before the long-running loop starts
- After a manual iptables flush
- With --dry-run, to see what a tick would change
"""

from pathlib import Path
from typing import Annotated, Optional

import typer

from ofw.core import FirewallError, OFWError, create_context
from ofw.commands import _check_root, _get_engine, _get_rule_sets, _handle_error
from ofw.services.reconciler import RuleReconciler


def sync(
    config: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Path to configuration file"),
    ] = None,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", "-n", help="Show what would be done"),
    ] = False,
    verbose: Annotated[
        int,
        typer.Option("--verbose", "-v", count=True, help="Increase verbosity"),
    ] = 0,
    quiet: Annotated[
        bool,
        typer.Option("--quiet", "-q", help="Suppress non-error output"),
    ] = False,
    no_color: Annotated[
        bool,
        typer.Option("--no-color", help="Disable colored output"),
    ] = False,
) -> None:
    """Reconcile every enabled rule set once.

    Rule sets already in place are left untouched. A rule set with any rule
    missing is deleted and re-applied in full.

    Examples:
        sudo ofw sync
        sudo ofw sync --dry-run -vvv
    """
    ctx = create_context(
        dry_run=dry_run,
        verbose=verbose,
        quiet=quiet,
        no_color=no_color,
        config=config,
    )
    _check_root(ctx, "sync")

    try:
        engine = _get_engine(ctx)
        rule_sets = _get_rule_sets(ctx, engine)
    except OFWError as e:
        _handle_error(e)
        return

    failed = []
    for name, rule_set in rule_sets:
        reconciler = RuleReconciler(engine, rule_set, name=name)
        try:
            state = reconciler.reconcile()
        except FirewallError as e:
            ctx.console.error(f"Failed to ensure {name} rules: {e.message}")
            for detail in e.details:
                ctx.console.print(f"  [dim]{detail}[/dim]")
            failed.append(name)
            continue
        ctx.console.success(f"{name} rules {state.value}")

    if failed:
        raise typer.Exit(FirewallError.exit_code)
