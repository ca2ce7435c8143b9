"""Resync loops that keep rule sets in place for the life of the process.

Each rule set gets its own loop (and thread when several run together).
A loop reconciles, waits the resync period and repeats until stopped. On
every exit path it tears its rules down once.
"""

import threading
from typing import Optional

from ofw.core.context import ExecutionContext
from ofw.core.exceptions import EngineUnavailableError, FirewallError
from ofw.core.output import console
from ofw.services.iptables import FirewallEngine, IptablesEngine
from ofw.services.reconciler import RuleReconciler, SyncState, teardown_rules
from ofw.services.rules import RuleSet


class ResyncLoop:
    """Periodic reconcile loop for one rule set."""

    def __init__(
        self,
        engine: FirewallEngine,
        rules: RuleSet,
        resync_period: int,
        *,
        name: str = "iptables",
        stop_event: Optional[threading.Event] = None,
    ) -> None:
        """Initialize the loop.

        Args:
            engine: Firewall engine
            rules: Rule set to keep in place
            resync_period: Seconds to wait between ticks
            name: Rule set name used in log lines
            stop_event: Shared event that ends the loop when set
        """
        self.reconciler = RuleReconciler(engine, rules, name=name)
        self.resync_period = resync_period
        self.name = name
        self.ticks = 0
        self._stop = stop_event or threading.Event()

    @property
    def state(self) -> SyncState:
        return self.reconciler.state

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def stop(self) -> None:
        """Ask the loop to finish after the current tick."""
        self._stop.set()

    def tick(self) -> Optional[SyncState]:
        """Reconcile once; failures are logged and retried next tick.

        Returns:
            Resulting state, or None if the tick failed
        """
        self.ticks += 1
        try:
            return self.reconciler.reconcile()
        except FirewallError as e:
            console.error(f"Failed to ensure {self.name} rules: {e.message}")
            for detail in e.details:
                console.verbose(f"  {detail}")
            return None

    def run(self) -> None:
        """Tick every resync_period seconds until stopped, then tear down."""
        console.info(
            f"Managing {len(self.reconciler.rules)} {self.name} rule(s), "
            f"resync every {self.resync_period}s"
        )
        try:
            while not self._stop.is_set():
                self.tick()
                self._stop.wait(self.resync_period)
        finally:
            console.info(f"Removing {self.name} rules")
            self.reconciler.teardown()


def setup_and_ensure(
    ctx: ExecutionContext,
    rules: RuleSet,
    resync_period: int,
    *,
    name: str = "iptables",
    binary: str = "iptables",
    stop_event: Optional[threading.Event] = None,
) -> bool:
    """Locate iptables and keep the rule set in place until stopped.

    Blocks for the lifetime of the loop.

    Returns:
        False if iptables was unavailable and the loop never started
    """
    try:
        engine = IptablesEngine.create(ctx, binary=binary)
    except EngineUnavailableError as e:
        ctx.console.error(f"Failed to set up {name} rules: {e.message}")
        if e.hint:
            ctx.console.hint(e.hint)
        return False

    ResyncLoop(
        engine,
        rules,
        resync_period,
        name=name,
        stop_event=stop_event,
    ).run()
    return True


def delete_rules(
    ctx: ExecutionContext,
    rules: RuleSet,
    *,
    binary: str = "iptables",
) -> None:
    """Remove a rule set once, outside any loop.

    Raises:
        EngineUnavailableError: If iptables cannot be located
    """
    try:
        engine = IptablesEngine.create(ctx, binary=binary)
    except EngineUnavailableError as e:
        ctx.console.error(f"Failed to set up iptables: {e.message}")
        raise

    teardown_rules(engine, rules)


class ResyncSupervisor:
    """Runs one resync loop thread per rule set, sharing a stop event.

    Rule sets address disjoint chains, so their loops never coordinate.
    """

    def __init__(
        self,
        ctx: ExecutionContext,
        rule_sets: list[tuple[str, RuleSet]],
        resync_period: int,
        *,
        binary: str = "iptables",
    ) -> None:
        self.ctx = ctx
        self.rule_sets = rule_sets
        self.resync_period = resync_period
        self.binary = binary
        self._stop = threading.Event()
        self._threads: list[threading.Thread] = []

    def start(self) -> None:
        """Start a loop thread for every rule set."""
        for name, rules in self.rule_sets:
            thread = threading.Thread(
                target=setup_and_ensure,
                args=(self.ctx, rules, self.resync_period),
                kwargs={
                    "name": name,
                    "binary": self.binary,
                    "stop_event": self._stop,
                },
                name=f"ofw-resync-{name}",
            )
            thread.start()
            self._threads.append(thread)

    def stop(self) -> None:
        """Signal every loop to stop; each tears down its own rules."""
        self._stop.set()

    def wait(self, poll_interval: float = 1.0) -> None:
        """Block until all loops have exited.

        Joins with a timeout so signal handlers keep running in the main
        thread.
        """
        for thread in self._threads:
            while thread.is_alive():
                thread.join(timeout=poll_interval)

    @property
    def running(self) -> bool:
        return any(thread.is_alive() for thread in self._threads)
