"""Custom exceptions for the overlay firewall reconciler.

All exceptions provide:
- Clear error messages
- Optional hints for resolution
- Optional details for debugging
- Exit codes for proper shell integration
"""

from typing import Optional


class OFWError(Exception):
    """Base exception for all ofw errors.

    Attributes:
        message: Human-readable error description
        hint: Suggested action to resolve the error
        details: Additional context for debugging
        exit_code: Shell exit code (1-127)
    """

    exit_code: int = 1

    def __init__(
        self,
        message: str,
        *,
        hint: Optional[str] = None,
        details: Optional[list[str]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint
        self.details = details or []

    def __str__(self) -> str:
        return self.message


class ConfigurationError(OFWError):
    """Configuration file or settings errors.

    Raised when:
    - Config file not found or unreadable
    - Invalid YAML syntax
    - Missing required configuration values
    - Invalid configuration values
    """
    exit_code = 2


class ValidationError(OFWError):
    """Input validation errors.

    Raised when:
    - Invalid CIDR notation
    - Invalid chain names
    - Resync period out of range
    """
    exit_code = 3


class ExecutionError(OFWError):
    """Command execution failures.

    Raised when:
    - Shell command returns non-zero exit code
    - Command times out
    """
    exit_code = 5

    def __init__(
        self,
        message: str,
        *,
        command: Optional[str] = None,
        return_code: Optional[int] = None,
        stderr: Optional[str] = None,
        hint: Optional[str] = None,
        details: Optional[list[str]] = None,
    ) -> None:
        if not details:
            details = []
        if return_code is not None:
            details.append(f"Exit code: {return_code}")
        if stderr:
            details.append(f"Error output: {stderr.strip()}")
        super().__init__(message, hint=hint, details=details)
        self.command = command
        self.return_code = return_code
        self.stderr = stderr


class PrerequisiteError(OFWError):
    """Missing prerequisites.

    Raised when:
    - Required command not found
    - Insufficient permissions
    """
    exit_code = 6


class EngineUnavailableError(PrerequisiteError):
    """The iptables engine cannot be located or initialized.

    Fatal to rule management: the resync loop never starts.
    """


# Domain-specific exceptions

class FirewallError(OFWError):
    """Firewall/iptables errors.

    Raised when:
    - iptables command fails
    - A reconciliation step cannot complete
    """
    exit_code = 15

    def __init__(
        self,
        message: str,
        *,
        table: Optional[str] = None,
        chain: Optional[str] = None,
        hint: Optional[str] = None,
        details: Optional[list[str]] = None,
    ) -> None:
        super().__init__(message, hint=hint, details=details)
        self.table = table
        self.chain = chain


class EngineCommandError(FirewallError):
    """A single iptables invocation returned a failure status."""

    def __init__(
        self,
        message: str,
        *,
        command: Optional[str] = None,
        return_code: Optional[int] = None,
        stderr: Optional[str] = None,
        table: Optional[str] = None,
        chain: Optional[str] = None,
    ) -> None:
        details = []
        if return_code is not None:
            details.append(f"Exit code: {return_code}")
        if stderr:
            details.append(f"Error output: {stderr.strip()}")
        super().__init__(message, table=table, chain=chain, details=details)
        self.command = command
        self.return_code = return_code
        self.stderr = stderr


class ChainCreateError(FirewallError):
    """Creating a custom chain failed for a reason other than it existing."""


class RuleCheckError(FirewallError):
    """Querying rule existence failed (not the same as the rule being absent)."""


class RuleApplyError(FirewallError):
    """Inserting or appending a rule failed; the set may be partially applied."""
