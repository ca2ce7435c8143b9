"""Report whether each rule set is present on the live firewall."""

from pathlib import Path
from typing import Annotated, Optional

import typer

from ofw.core import OFWError, create_context
from ofw.commands import _check_root, _get_engine, _get_rule_sets, _handle_error
from ofw.services.reconciler import RuleReconciler


def check(
    config: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Path to configuration file"),
    ] = None,
    verbose: Annotated[
        int,
        typer.Option("--verbose", "-v", count=True, help="Increase verbosity"),
    ] = 0,
    no_color: Annotated[
        bool,
        typer.Option("--no-color", help="Disable colored output"),
    ] = False,
) -> None:
    """Check rule sets against iptables without changing anything.

    Exits with status 1 if any rule set has drifted.

    Examples:
        sudo ofw check
    """
    ctx = create_context(verbose=verbose, no_color=no_color, config=config)
    _check_root(ctx, "check")

    try:
        engine = _get_engine(ctx)
        rule_sets = _get_rule_sets(ctx, engine)

        results = {}
        for name, rule_set in rule_sets:
            reconciler = RuleReconciler(engine, rule_set, name=name)
            results[name] = reconciler.is_synced()
    except OFWError as e:
        _handle_error(e)
        return

    ctx.console.summary("Rule sets in sync", results)

    if not all(results.values()):
        ctx.console.hint("Run 'sudo ofw sync' to restore missing rules")
        raise typer.Exit(1)
