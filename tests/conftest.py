"""Shared fixtures: an in-memory iptables engine."""

from typing import Optional

import pytest

from ofw.core.exceptions import EngineCommandError
from ofw.services.iptables import FirewallEngine


BUILTIN_CHAINS = [
    ("filter", "INPUT"),
    ("filter", "FORWARD"),
    ("filter", "OUTPUT"),
    ("nat", "PREROUTING"),
    ("nat", "POSTROUTING"),
]

MUTATING_CALLS = {"append_unique", "insert", "delete"}

OVERLAY_ENV_VARS = ("OFW_NETWORK", "OFW_SUBNET", "OFW_RESYNC_PERIOD")


class FakeEngine(FirewallEngine):
    """In-memory FirewallEngine that behaves like iptables.

    Chains are ordered lists of rulespecs. Every call is recorded in
    `calls` as (operation, table, chain, ...). Set `failures[op]` to an
    exception to make that operation fail.
    """

    binary = "iptables"

    def __init__(self, random_fully: bool = False) -> None:
        self.tables: dict[tuple[str, str], list[tuple[str, ...]]] = {
            key: [] for key in BUILTIN_CHAINS
        }
        self.random_fully = random_fully
        self.calls: list[tuple] = []
        self.failures: dict[str, Exception] = {}

    # Helpers for assertions
    def rules_in(self, table: str, chain: str) -> list[tuple[str, ...]]:
        return list(self.tables.get((table, chain), []))

    def count(self, operation: str) -> int:
        return sum(1 for call in self.calls if call[0] == operation)

    def mutations(self) -> list[tuple]:
        return [call for call in self.calls if call[0] in MUTATING_CALLS]

    def remove(self, table: str, chain: str, *rulespec: str) -> None:
        """Simulate an external actor deleting a rule."""
        self.tables[(table, chain)].remove(tuple(rulespec))

    # FirewallEngine
    def _record(self, operation: str, *args) -> None:
        self.calls.append((operation,) + args)
        if operation in self.failures:
            raise self.failures[operation]

    def _chain(self, table: str, chain: str) -> list[tuple[str, ...]]:
        if (table, chain) not in self.tables:
            raise EngineCommandError(
                "No chain/target/match by that name.",
                return_code=1,
                table=table,
                chain=chain,
            )
        return self.tables[(table, chain)]

    def new_chain(self, table: str, chain: str) -> None:
        self._record("new_chain", table, chain)
        if (table, chain) in self.tables:
            raise EngineCommandError(
                "Chain already exists.",
                return_code=1,
                table=table,
                chain=chain,
            )
        self.tables[(table, chain)] = []

    def append_unique(self, table: str, chain: str, *rulespec: str) -> None:
        self._record("append_unique", table, chain, rulespec)
        rules = self._chain(table, chain)
        if tuple(rulespec) not in rules:
            rules.append(tuple(rulespec))

    def delete(self, table: str, chain: str, *rulespec: str) -> None:
        self._record("delete", table, chain, rulespec)
        rules = self._chain(table, chain)
        if tuple(rulespec) not in rules:
            raise EngineCommandError(
                "Bad rule (does a matching rule exist in that chain?).",
                return_code=1,
                table=table,
                chain=chain,
            )
        rules.remove(tuple(rulespec))

    def exists(self, table: str, chain: str, *rulespec: str) -> bool:
        self._record("exists", table, chain, rulespec)
        return tuple(rulespec) in self.tables.get((table, chain), [])

    def insert(self, table: str, chain: str, pos: int, *rulespec: str) -> None:
        self._record("insert", table, chain, pos, rulespec)
        rules = self._chain(table, chain)
        if pos < 1 or pos > len(rules) + 1:
            raise EngineCommandError(
                "Index of insertion too big.",
                return_code=1,
                table=table,
                chain=chain,
            )
        rules.insert(pos - 1, tuple(rulespec))

    def has_random_fully(self) -> bool:
        self._record("has_random_fully")
        return self.random_fully


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the host's OFW_* variables out of every test."""
    for name in OVERLAY_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def engine() -> FakeEngine:
    """Fresh in-memory engine with only the built-in chains."""
    return FakeEngine()


@pytest.fixture
def make_engine():
    """Factory for engines with a given random-fully capability."""
    def _make(random_fully: bool = False, failures: Optional[dict] = None) -> FakeEngine:
        fake = FakeEngine(random_fully=random_fully)
        fake.failures.update(failures or {})
        return fake
    return _make
