"""Core framework components for the overlay firewall reconciler."""

from ofw.core.exceptions import (
    OFWError,
    ConfigurationError,
    ValidationError,
    ExecutionError,
    PrerequisiteError,
    EngineUnavailableError,
    FirewallError,
    EngineCommandError,
    ChainCreateError,
    RuleCheckError,
    RuleApplyError,
)

from ofw.core.context import ExecutionContext, create_context
from ofw.core.output import console, Console, Verbosity
from ofw.core.config import AppConfig, OverlayConfig
from ofw.core.executor import CommandExecutor, CommandResult

__all__ = [
    # Exceptions
    "OFWError",
    "ConfigurationError",
    "ValidationError",
    "ExecutionError",
    "PrerequisiteError",
    "EngineUnavailableError",
    "FirewallError",
    "EngineCommandError",
    "ChainCreateError",
    "RuleCheckError",
    "RuleApplyError",
    # Context
    "ExecutionContext",
    "create_context",
    # Output
    "console",
    "Console",
    "Verbosity",
    # Config
    "AppConfig",
    "OverlayConfig",
    # Executor
    "CommandExecutor",
    "CommandResult",
]
