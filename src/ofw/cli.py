"""Main CLI entry point using Typer.

This module defines the root CLI application and global options.
Rule set commands are registered from ofw.commands.
"""

from pathlib import Path
from typing import Optional, Annotated

import typer
from rich.console import Console

from ofw import __version__
from ofw.core.context import ExecutionContext, create_context
from ofw.core.output import console as app_console
from ofw.core.config import (
    DEFAULT_CONFIG_PATH,
    AppConfig,
    get_example_config,
    init_config,
)
from ofw.core.exceptions import OFWError


# Create the main Typer app
app = typer.Typer(
    name="ofw",
    help="Overlay Firewall - keep overlay network iptables rules in place.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    pretty_exceptions_enable=True,
    pretty_exceptions_show_locals=False,
)

config_app = typer.Typer(
    name="config",
    help="Configuration management.",
    no_args_is_help=True,
)

# Import sub-commands
from ofw.commands.rules import rules as rules_command
from ofw.commands.check import check as check_command
from ofw.commands.sync import sync as sync_command
from ofw.commands.run import run as run_command
from ofw.commands.teardown import teardown as teardown_command

app.command("rules")(rules_command)
app.command("check")(check_command)
app.command("sync")(sync_command)
app.command("run")(run_command)
app.command("teardown")(teardown_command)

app.add_typer(config_app, name="config")


# Type aliases for common options
VerboseOption = Annotated[
    int,
    typer.Option(
        "--verbose",
        "-v",
        count=True,
        help="Increase output verbosity. Can be repeated (-v, -vv).",
    ),
]

ForceOption = Annotated[
    bool,
    typer.Option(
        "--force",
        "-f",
        help="Overwrite existing files.",
        is_flag=True,
    ),
]

NoColorOption = Annotated[
    bool,
    typer.Option(
        "--no-color",
        help="Disable colored output.",
        is_flag=True,
    ),
]

ConfigOption = Annotated[
    Optional[Path],
    typer.Option(
        "--config",
        "-c",
        help=f"Path to configuration file. Default: {DEFAULT_CONFIG_PATH}",
        exists=False,
        file_okay=True,
        dir_okay=False,
    ),
]


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console = Console()
        console.print(f"ofw version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """Overlay Firewall - keep overlay network iptables rules in place.

    Manages the masquerade, forward and input rules of one overlay network
    and restores them whenever they drift.

    [bold]Examples:[/bold]
        ofw rules
        sudo ofw check
        sudo ofw sync --dry-run
        sudo ofw run
        sudo ofw teardown
    """
    pass


def get_context(
    verbose: int = 0,
    no_color: bool = False,
    config: Optional[Path] = None,
) -> ExecutionContext:
    """Create execution context from CLI options."""
    return create_context(
        verbose=verbose,
        no_color=no_color,
        config=config,
    )


def handle_error(error: OFWError) -> None:
    """Handle an OFWError by printing formatted error and exiting."""
    app_console.error(error.message)

    if error.details:
        for detail in error.details:
            app_console.print(f"  [dim]{detail}[/dim]")

    if error.hint:
        app_console.hint(error.hint)

    raise typer.Exit(error.exit_code)


# ============================================================================
# Config commands
# ============================================================================

@config_app.command("show")
def config_show(
    config: ConfigOption = None,
    verbose: VerboseOption = 0,
    no_color: NoColorOption = False,
) -> None:
    """Show current configuration.

    Displays the configuration file merged with environment overrides.
    """
    ctx = get_context(verbose=verbose, no_color=no_color, config=config)

    try:
        app_config = ctx.config

        ctx.console.print()
        ctx.console.print(f"[bold]Configuration file:[/bold] {ctx.config_path}")
        ctx.console.print(f"[bold]File exists:[/bold] {ctx.config_path.exists()}")
        ctx.console.print()

        ctx.console.yaml(app_config.config.to_yaml(), title="Configuration")

        ctx.console.summary("Environment overrides", {
            "OFW_NETWORK": app_config.env.network or "Not set",
            "OFW_SUBNET": app_config.env.subnet or "Not set",
            "OFW_RESYNC_PERIOD": app_config.env.resync_period or "Not set",
        })

    except OFWError as e:
        handle_error(e)


@config_app.command("init")
def config_init(
    config: ConfigOption = None,
    force: ForceOption = False,
    no_color: NoColorOption = False,
) -> None:
    """Initialize a new configuration file.

    Creates a configuration file with example addressing and comments.
    """
    ctx = get_context(no_color=no_color, config=config)
    config_path = ctx.config_path

    try:
        init_config(config_path, force=force)
        ctx.console.success(f"Configuration file created: {config_path}")
        ctx.console.info("Set 'network' and 'subnet' for this host, then run: ofw rules")
    except OFWError as e:
        handle_error(e)


@config_app.command("validate")
def config_validate(
    config: ConfigOption = None,
    verbose: VerboseOption = 0,
    no_color: NoColorOption = False,
) -> None:
    """Validate configuration file.

    Checks that the configuration file exists, is valid YAML,
    and all values pass validation.
    """
    ctx = get_context(verbose=verbose, no_color=no_color, config=config)

    try:
        if not ctx.config_path.exists():
            raise OFWError(
                f"Configuration file not found: {ctx.config_path}",
                hint="Create it with: ofw config init",
            )

        app_config = AppConfig(config_path=ctx.config_path)
        ctx.console.success(f"Configuration is valid: {ctx.config_path}")

        if ctx.is_verbose:
            ctx.console.yaml(app_config.config.to_yaml())

        cfg = app_config.config
        warnings = []

        if not cfg.network:
            warnings.append("'network' is not set; no rule set can be built")
        if cfg.ip_masq and not cfg.subnet:
            warnings.append("ip_masq is enabled but 'subnet' is not set")
        if not (cfg.ip_masq or cfg.forward_rules or cfg.input_rules):
            warnings.append("All rule sets are disabled")

        if warnings:
            ctx.console.print()
            for warning in warnings:
                ctx.console.warn(warning)

    except OFWError as e:
        handle_error(e)


@config_app.command("example")
def config_example(no_color: NoColorOption = False) -> None:
    """Print example configuration file."""
    ctx = get_context(no_color=no_color)
    ctx.console.print(get_example_config())


# Entry point
if __name__ == "__main__":
    app()
