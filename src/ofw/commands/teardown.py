"""Remove every managed rule set once."""

from pathlib import Path
from typing import Annotated, Optional

import typer

from ofw.core import OFWError, create_context
from ofw.commands import _check_root, _get_engine, _get_rule_sets, _handle_error
from ofw.services.resync import delete_rules


def teardown(
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
    no_color: Annotated[
        bool,
        typer.Option("--no-color", help="Disable colored output"),
    ] = False,
) -> None:
    """Delete all rules ofw manages.

    Rules that are already gone are skipped silently. Custom chains are
    left in place (empty).

    Examples:
        sudo ofw teardown
    """
    ctx = create_context(dry_run=dry_run, verbose=verbose, no_color=no_color, config=config)
    _check_root(ctx, "teardown")

    try:
        engine = _get_engine(ctx)
        rule_sets = _get_rule_sets(ctx, engine)
        for name, rule_set in rule_sets:
            ctx.console.step(f"Removing {name} rules")
            delete_rules(ctx, rule_set, binary=engine.binary)
    except OFWError as e:
        _handle_error(e)
        return

    ctx.console.success("Overlay rules removed")
