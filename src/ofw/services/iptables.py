"""Iptables engine.

The reconciler talks to the firewall only through FirewallEngine: five rule
operations plus a capability probe. IptablesEngine implements it by running
the iptables binary; tests substitute an in-memory engine.
"""

import re
from abc import ABC, abstractmethod
from typing import Optional

from ofw.core.context import ExecutionContext
from ofw.core.executor import CommandExecutor, CommandResult
from ofw.core.exceptions import (
    EngineCommandError,
    EngineUnavailableError,
    ExecutionError,
    PrerequisiteError,
)


# iptables -N exits with this status when the chain is already there
CHAIN_EXISTS_EXIT_CODE = 1

# iptables -C/-D exit with status 1 and one of these when nothing matches
NOT_EXIST_MESSAGES = (
    "Bad rule (does a matching rule exist in that chain?)",
    "No chain/target/match by that name",
    "does a matching rule exist",
)

# A jump to a custom chain that does not exist yet fails with status 2;
# the jump rule cannot be present either
MISSING_TARGET_MESSAGES = (
    "Couldn't load target",
    "does not exist",
)

# First releases supporting -w (xtables lock wait) and --random-fully
WAIT_MIN_VERSION = (1, 4, 20)
RANDOM_FULLY_MIN_VERSION = (1, 6, 2)

VERSION_PATTERN = re.compile(r"v(\d+)\.(\d+)\.(\d+)")


def parse_version(output: str) -> Optional[tuple[int, int, int]]:
    """Extract (major, minor, patch) from `iptables --version` output.

    Args:
        output: e.g. "iptables v1.8.7 (nf_tables)"

    Returns:
        Version tuple, or None if no version is present
    """
    match = VERSION_PATTERN.search(output)
    if not match:
        return None
    major, minor, patch = (int(part) for part in match.groups())
    return (major, minor, patch)


class FirewallEngine(ABC):
    """Narrow capability interface the reconciler depends on."""

    @abstractmethod
    def new_chain(self, table: str, chain: str) -> None:  # pragma: no cover
        """Create a chain.

        Raises:
            EngineCommandError: return_code == CHAIN_EXISTS_EXIT_CODE if it exists
        """

    @abstractmethod
    def append_unique(self, table: str, chain: str, *rulespec: str) -> None:  # pragma: no cover
        """Append a rule to the end of a chain unless it is already present."""

    @abstractmethod
    def delete(self, table: str, chain: str, *rulespec: str) -> None:  # pragma: no cover
        """Delete a rule."""

    @abstractmethod
    def exists(self, table: str, chain: str, *rulespec: str) -> bool:  # pragma: no cover
        """Check whether a rule is present."""

    @abstractmethod
    def insert(self, table: str, chain: str, pos: int, *rulespec: str) -> None:  # pragma: no cover
        """Insert a rule at a 1-based position."""

    @abstractmethod
    def has_random_fully(self) -> bool:  # pragma: no cover
        """Check whether MASQUERADE --random-fully is supported."""


class IptablesEngine(FirewallEngine):
    """FirewallEngine backed by the iptables command.

    Every call is a blocking subprocess invocation. When the installed
    iptables supports it, -w makes concurrent callers queue on the xtables
    lock instead of failing.
    """

    def __init__(
        self,
        ctx: ExecutionContext,
        executor: CommandExecutor,
        *,
        binary: str = "iptables",
        version: Optional[tuple[int, int, int]] = None,
    ) -> None:
        """Initialize the engine.

        Args:
            ctx: Execution context
            executor: Command executor
            binary: iptables binary name or path
            version: Known iptables version (probed lazily if None)
        """
        self.ctx = ctx
        self.executor = executor
        self.binary = binary
        self._version = version

    @classmethod
    def create(
        cls,
        ctx: ExecutionContext,
        executor: Optional[CommandExecutor] = None,
        *,
        binary: str = "iptables",
    ) -> "IptablesEngine":
        """Locate iptables and read its version.

        Raises:
            EngineUnavailableError: If iptables is missing or does not run
        """
        executor = executor or CommandExecutor(ctx)

        try:
            path = executor.which(binary)
        except PrerequisiteError as e:
            raise EngineUnavailableError(
                f"iptables binary was not found: {binary}",
                hint="Install iptables (apt-get install iptables) or set iptables.binary",
            ) from e

        engine = cls(ctx, executor, binary=path)
        ctx.console.debug(f"Using {path} (v{'.'.join(map(str, engine.version))})")
        return engine

    @property
    def version(self) -> tuple[int, int, int]:
        """Installed iptables version.

        Raises:
            EngineUnavailableError: If the version cannot be determined
        """
        if self._version is None:
            try:
                result = self.executor.run(
                    [self.binary, "--version"],
                    check=False,
                    mutates=False,
                )
            except ExecutionError as e:
                raise EngineUnavailableError(
                    f"Cannot run {self.binary}",
                    details=[e.message] + e.details,
                ) from e

            version = parse_version(result.stdout) if result.success else None
            if version is None:
                raise EngineUnavailableError(
                    f"Cannot determine iptables version from {self.binary}",
                    details=[result.stderr or result.stdout],
                )
            self._version = version
        return self._version

    @property
    def supports_wait(self) -> bool:
        return self.version >= WAIT_MIN_VERSION

    def has_random_fully(self) -> bool:
        return self.version >= RANDOM_FULLY_MIN_VERSION

    # =========================================================================
    # Rule operations
    # =========================================================================

    def new_chain(self, table: str, chain: str) -> None:
        result = self._run(table, ["-N", chain])
        if not result.success:
            raise self._error(f"Failed to create chain {chain}", result, table, chain)

    def append_unique(self, table: str, chain: str, *rulespec: str) -> None:
        if self.exists(table, chain, *rulespec):
            return

        result = self._run(table, ["-A", chain, *rulespec])
        if not result.success:
            raise self._error(f"Failed to append rule to {chain}", result, table, chain)

    def delete(self, table: str, chain: str, *rulespec: str) -> None:
        result = self._run(table, ["-D", chain, *rulespec])
        if not result.success:
            raise self._error(f"Failed to delete rule from {chain}", result, table, chain)

    def exists(self, table: str, chain: str, *rulespec: str) -> bool:
        # -C is read-only and runs even in dry-run mode
        result = self._run(table, ["-C", chain, *rulespec], mutates=False)
        if result.success:
            return True
        if self._is_not_exist(result):
            return False
        raise self._error(f"Failed to check rule in {chain}", result, table, chain)

    def insert(self, table: str, chain: str, pos: int, *rulespec: str) -> None:
        result = self._run(table, ["-I", chain, str(pos), *rulespec])
        if not result.success:
            raise self._error(f"Failed to insert rule into {chain}", result, table, chain)

    # =========================================================================
    # Private Helpers
    # =========================================================================

    def _run(
        self,
        table: str,
        args: list[str],
        *,
        mutates: bool = True,
    ) -> CommandResult:
        """Run iptables against a table without raising on exit status."""
        cmd = [self.binary]
        if self.supports_wait:
            cmd.append("-w")
        cmd.extend(["-t", table])
        cmd.extend(args)

        try:
            return self.executor.run(cmd, check=False, mutates=mutates)
        except ExecutionError as e:
            raise EngineCommandError(
                e.message,
                command=e.command,
                table=table,
            ) from e

    @staticmethod
    def _is_not_exist(result: CommandResult) -> bool:
        if result.return_code == 1:
            return any(message in result.stderr for message in NOT_EXIST_MESSAGES)
        if result.return_code == 2:
            return any(message in result.stderr for message in MISSING_TARGET_MESSAGES)
        return False

    @staticmethod
    def _error(
        message: str,
        result: CommandResult,
        table: str,
        chain: str,
    ) -> EngineCommandError:
        return EngineCommandError(
            message,
            command=" ".join(result.command),
            return_code=result.return_code,
            stderr=result.stderr,
            table=table,
            chain=chain,
        )
