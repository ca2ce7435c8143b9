"""Drift detection and repair for an ordered iptables rule set.

iptables has no "replace these N rules atomically" operation and no diff.
When any rule of a set is missing, the whole set is deleted and re-applied
so rules with a fixed position land correctly relative to each other.
"""

from enum import Enum
from typing import Iterable

from ofw.core.exceptions import (
    ChainCreateError,
    EngineCommandError,
    FirewallError,
    OFWError,
    RuleApplyError,
    RuleCheckError,
)
from ofw.core.output import console
from ofw.services.iptables import CHAIN_EXISTS_EXIT_CODE, FirewallEngine
from ofw.services.rules import IptablesRule, RuleSet


class SyncState(str, Enum):
    """Reconciliation state of a rule set."""
    UNSYNCED = "unsynced"
    SYNCED = "synced"


def unique_chains(rules: Iterable[IptablesRule]) -> list[tuple[str, str]]:
    """Distinct (table, chain) pairs in first-seen order."""
    return list(dict.fromkeys((rule.table, rule.chain) for rule in rules))


def ensure_chain(engine: FirewallEngine, table: str, chain: str) -> bool:
    """Create a chain unless it already exists.

    Returns:
        True if the chain was created, False if it was already there

    Raises:
        ChainCreateError: On any failure other than "already exists"
    """
    try:
        engine.new_chain(table, chain)
    except EngineCommandError as e:
        if e.return_code == CHAIN_EXISTS_EXIT_CODE:
            return False
        raise ChainCreateError(
            f"Failed to create chain {chain} in table {table}",
            table=table,
            chain=chain,
            details=[e.message] + e.details,
        ) from e

    # A dry-run -N never ran, so nothing was created
    if console.dry_run:
        console.debug(f"Chain {chain} ({table}) would be created if missing")
    else:
        console.info(f"New chain created: {chain} ({table})")
    return True


def rules_exist(engine: FirewallEngine, rules: Iterable[IptablesRule]) -> bool:
    """Check whether every rule is present, stopping at the first absent one.

    Raises:
        RuleCheckError: If the engine cannot answer
    """
    for rule in rules:
        try:
            exists = engine.exists(rule.table, rule.chain, *rule.rulespec)
        except EngineCommandError as e:
            raise RuleCheckError(
                f"Failed to check rule existence: {rule}",
                table=rule.table,
                chain=rule.chain,
                details=[e.message] + e.details,
            ) from e
        if not exists:
            return False
    return True


def apply_rules(engine: FirewallEngine, rules: Iterable[IptablesRule]) -> None:
    """Apply rules in order.

    Positioned rules are inserted only when absent; the rest are appended
    if absent. The first failure stops the walk, leaving earlier rules in
    place.

    Raises:
        RuleApplyError: If the engine rejects a check, insert or append
    """
    for rule in rules:
        try:
            if rule.position:
                console.debug(f"Inserting iptables rule: {rule}")
                if engine.exists(rule.table, rule.chain, *rule.rulespec):
                    continue
                engine.insert(rule.table, rule.chain, rule.position, *rule.rulespec)
            else:
                console.debug(f"Appending iptables rule: {rule}")
                engine.append_unique(rule.table, rule.chain, *rule.rulespec)
        except EngineCommandError as e:
            raise RuleApplyError(
                f"Failed to apply iptables rule: {rule}",
                table=rule.table,
                chain=rule.chain,
                details=[e.message] + e.details,
            ) from e


def teardown_rules(engine: FirewallEngine, rules: Iterable[IptablesRule]) -> None:
    """Delete every rule, ignoring failures.

    A failed delete almost always means the rule was not there, which is
    the desired end state.
    """
    for rule in rules:
        console.debug(f"Deleting iptables rule: {rule}")
        try:
            engine.delete(rule.table, rule.chain, *rule.rulespec)
        except OFWError as e:
            console.debug(f"Ignoring delete failure: {e}")


class RuleReconciler:
    """Keeps one rule set present on the live firewall.

    Usage:
        reconciler = RuleReconciler(engine, forward_rules("10.1.0.0/16"))
        reconciler.reconcile()   # once per resync tick
        reconciler.teardown()    # on shutdown
    """

    def __init__(
        self,
        engine: FirewallEngine,
        rules: RuleSet,
        *,
        name: str = "iptables",
    ) -> None:
        self.engine = engine
        self.rules: RuleSet = tuple(rules)
        self.name = name
        self.state = SyncState.UNSYNCED
        self._chains = unique_chains(self.rules)

    def ensure_chains(self) -> None:
        """Create each distinct chain the rule set references, once."""
        for table, chain in self._chains:
            ensure_chain(self.engine, table, chain)

    def is_synced(self) -> bool:
        """Check the live firewall without changing it."""
        return rules_exist(self.engine, self.rules)

    def reconcile(self) -> SyncState:
        """Run one drift check and repair.

        Returns:
            The resulting state

        Raises:
            FirewallError: If chain creation, the existence check or
                re-application fails; the state is UNSYNCED afterwards
        """
        try:
            self.ensure_chains()

            if rules_exist(self.engine, self.rules):
                self.state = SyncState.SYNCED
                return self.state

            self.state = SyncState.UNSYNCED
            console.warn(
                f"Some {self.name} rules are missing; deleting and recreating rules"
            )
            teardown_rules(self.engine, self.rules)
            apply_rules(self.engine, self.rules)
        except FirewallError:
            self.state = SyncState.UNSYNCED
            raise

        self.state = SyncState.SYNCED
        console.info(f"Restored {len(self.rules)} {self.name} rule(s)")
        return self.state

    def teardown(self) -> None:
        """Remove the whole rule set, best effort."""
        teardown_rules(self.engine, self.rules)
        self.state = SyncState.UNSYNCED
