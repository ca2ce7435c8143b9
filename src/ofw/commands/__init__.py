"""Rule set commands.

Shared helpers for the rules, check, sync, run and teardown commands.
"""

import os
from typing import Optional

import typer

from ofw.core import (
    OFWError,
    EngineUnavailableError,
    ExecutionContext,
    console,
)
from ofw.services.iptables import IptablesEngine
from ofw.services.rules import RuleSet, build_rule_sets


def _check_root(ctx: ExecutionContext, command: str) -> None:
    """Check for root privileges."""
    if os.geteuid() != 0 and not ctx.dry_run:
        ctx.console.error("This operation requires root privileges")
        ctx.console.hint(f"Run with: sudo ofw {command}")
        raise typer.Exit(6)


def _handle_error(error: OFWError) -> None:
    """Handle an OFWError by printing formatted error and exiting."""
    console.error(error.message)

    if error.details:
        for detail in error.details:
            console.print(f"  [dim]{detail}[/dim]")

    if error.hint:
        console.hint(error.hint)

    raise typer.Exit(error.exit_code)


def _get_engine(ctx: ExecutionContext, *, required: bool = True) -> Optional[IptablesEngine]:
    """Locate iptables using the configured binary.

    Args:
        ctx: Execution context
        required: Raise if iptables is unavailable, otherwise return None

    Raises:
        EngineUnavailableError: If required and iptables is unavailable
    """
    try:
        return IptablesEngine.create(ctx, binary=ctx.config.config.iptables.binary)
    except EngineUnavailableError:
        if required:
            raise
        ctx.console.verbose("iptables unavailable; assuming no --random-fully support")
        return None


def _get_rule_sets(
    ctx: ExecutionContext,
    engine: Optional[IptablesEngine],
) -> list[tuple[str, RuleSet]]:
    """Build the enabled rule sets, warning if none are enabled."""
    rule_sets = build_rule_sets(ctx.config, engine)
    if not rule_sets:
        ctx.console.warn("No rule sets enabled (ip_masq, forward_rules, input_rules)")
    return rule_sets
