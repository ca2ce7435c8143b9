"""Long-running resync command.

Keeps every enabled rule set in place until the process is told to stop,
then removes them so no stale overlay rules are left behind.
"""

import signal
from pathlib import Path
from typing import Annotated, Optional

import typer

from ofw.core import OFWError, create_context
from ofw.core.validation import validate_resync_period
from ofw.commands import _check_root, _get_engine, _get_rule_sets, _handle_error
from ofw.services.resync import ResyncSupervisor


def run(
    config: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Path to configuration file"),
    ] = None,
    resync_period: Annotated[
        Optional[int],
        typer.Option(
            "--resync-period",
            "-p",
            help="Seconds between drift checks (overrides config)",
        ),
    ] = None,
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
    """Keep rule sets in place until stopped (SIGTERM or Ctrl+C).

    One resync loop runs per rule set. Each loop checks its rules every
    resync period and re-applies the whole set when anything is missing.
    On exit every loop removes its rules.

    Examples:
        sudo ofw run
        sudo ofw run --resync-period 10
    """
    ctx = create_context(verbose=verbose, quiet=quiet, no_color=no_color, config=config)
    _check_root(ctx, "run")

    try:
        if resync_period is None:
            resync_period = ctx.config.resync_period
        period = validate_resync_period(resync_period)
        engine = _get_engine(ctx)
        rule_sets = _get_rule_sets(ctx, engine)
    except OFWError as e:
        _handle_error(e)
        return

    if not rule_sets:
        raise typer.Exit(0)

    supervisor = ResyncSupervisor(
        ctx,
        rule_sets,
        period,
        binary=engine.binary,
    )

    def _on_sigterm(signum, frame) -> None:
        ctx.console.info("Received SIGTERM, stopping")
        supervisor.stop()

    signal.signal(signal.SIGTERM, _on_sigterm)

    try:
        supervisor.start()
        supervisor.wait()
    except KeyboardInterrupt:
        ctx.console.info("Interrupted, stopping")
    finally:
        supervisor.stop()
        supervisor.wait()

    ctx.console.success("All rule sets removed")
