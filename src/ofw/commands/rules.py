"""Show the desired rule sets without touching the firewall."""

from pathlib import Path
from typing import Annotated, Optional

import typer

from ofw.core import OFWError, create_context
from ofw.commands import _get_engine, _get_rule_sets, _handle_error


def rules(
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
    """Print the rule sets ofw keeps in place.

    Rules are listed in application order. A position means the rule is
    inserted at that index of its chain; otherwise it is appended.

    Examples:
        ofw rules
        ofw rules -c /etc/ofw/overlay.yaml
    """
    ctx = create_context(verbose=verbose, no_color=no_color, config=config)

    try:
        engine = _get_engine(ctx, required=False)
        rule_sets = _get_rule_sets(ctx, engine)
    except OFWError as e:
        _handle_error(e)
        return

    for name, rule_set in rule_sets:
        rows = [
            [
                str(index),
                rule.table,
                rule.chain,
                str(rule.position) if rule.position else "-",
                " ".join(rule.rulespec),
            ]
            for index, rule in enumerate(rule_set, start=1)
        ]
        ctx.console.table(
            f"{name} rules",
            ["#", "Table", "Chain", "Position", "Rule"],
            rows,
        )
