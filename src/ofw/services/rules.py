"""Overlay rule model and rule set builders.

Three rule sets are managed, each an ordered, immutable tuple:
- masquerade: nat/POSTROUTING NAT for traffic leaving the overlay
- forward: filter/FORWARD admission through a custom chain
- input: filter/INPUT admission through a custom chain
"""

from dataclasses import dataclass
from typing import Optional

from ofw.core.config import AppConfig, DEFAULT_FORWARD_CHAIN, DEFAULT_INPUT_CHAIN
from ofw.core.exceptions import OFWError
from ofw.core.output import console
from ofw.services.iptables import FirewallEngine


MULTICAST_NETWORK = "224.0.0.0/4"

FORWARD_COMMENT = "overlay forwarding rules"
INPUT_COMMENT = "overlay input rules"

# Jump rules always go to the top of the built-in chain
JUMP_POSITION = 1


@dataclass(frozen=True)
class IptablesRule:
    """One iptables rule, as its table, chain and rulespec.

    position 0 means "append"; any other value is the 1-based index the rule
    must occupy in its chain. rulespec is passed to iptables untouched.
    """
    table: str
    chain: str
    rulespec: tuple[str, ...]
    position: int = 0

    def __post_init__(self) -> None:
        if not isinstance(self.rulespec, tuple):
            object.__setattr__(self, "rulespec", tuple(self.rulespec))

    def __str__(self) -> str:
        """Render as the iptables arguments that would add this rule."""
        if self.position:
            action = f"-I {self.chain} {self.position}"
        else:
            action = f"-A {self.chain}"
        return f"-t {self.table} {action} {' '.join(self.rulespec)}"


RuleSet = tuple[IptablesRule, ...]


def probe_random_fully(engine: Optional[FirewallEngine]) -> bool:
    """Ask the engine whether MASQUERADE --random-fully is available.

    A missing engine or a failed probe means "not supported".
    """
    if engine is None:
        return False
    try:
        return engine.has_random_fully()
    except OFWError as e:
        console.debug(f"random-fully probe failed, using plain MASQUERADE: {e}")
        return False


def masq_rules(
    network: str,
    lease_subnet: str,
    supports_random_fully: Optional[bool] = None,
    *,
    engine: Optional[FirewallEngine] = None,
) -> RuleSet:
    """Build the nat/POSTROUTING masquerade rules for an overlay.

    Args:
        network: Overlay network CIDR
        lease_subnet: Subnet leased to this host
        supports_random_fully: Capability flag; probed from engine if None
        engine: Engine to probe when the flag is not given
    """
    if supports_random_fully is None:
        supports_random_fully = probe_random_fully(engine)

    masquerade = ("-j", "MASQUERADE")
    if supports_random_fully:
        masquerade += ("--random-fully",)

    n, sn = network, lease_subnet
    return (
        # Overlay-internal traffic keeps its source address
        IptablesRule("nat", "POSTROUTING", ("-s", n, "-d", n, "-j", "RETURN")),
        # Leaving the overlay, except multicast
        IptablesRule("nat", "POSTROUTING", ("-s", n, "!", "-d", MULTICAST_NETWORK) + masquerade),
        # Traffic from a peer node already addressed to our lease keeps its source
        IptablesRule("nat", "POSTROUTING", ("!", "-s", n, "-d", sn, "-j", "RETURN")),
        # Masquerade anything headed towards the overlay from the host
        IptablesRule("nat", "POSTROUTING", ("!", "-s", n, "-d", n) + masquerade),
    )


def _admission_rules(network: str, builtin: str, chain: str, comment: str) -> RuleSet:
    return (
        IptablesRule(
            "filter",
            builtin,
            ("-m", "comment", "--comment", comment, "-j", chain),
            position=JUMP_POSITION,
        ),
        IptablesRule("filter", chain, ("-s", network, "-j", "ACCEPT")),
        IptablesRule("filter", chain, ("-d", network, "-j", "ACCEPT")),
    )


def forward_rules(network: str, chain: str = DEFAULT_FORWARD_CHAIN) -> RuleSet:
    """Allow forwarding of traffic to or from the overlay network."""
    return _admission_rules(network, "FORWARD", chain, FORWARD_COMMENT)


def input_rules(network: str, chain: str = DEFAULT_INPUT_CHAIN) -> RuleSet:
    """Allow traffic addressed to the overlay network range into the host."""
    return _admission_rules(network, "INPUT", chain, INPUT_COMMENT)


def build_rule_sets(
    app_config: AppConfig,
    engine: Optional[FirewallEngine] = None,
) -> list[tuple[str, RuleSet]]:
    """Build every rule set enabled in the configuration.

    Args:
        app_config: Merged application configuration
        engine: Engine used for the random-fully probe

    Returns:
        (name, rules) pairs in masquerade, forward, input order

    Raises:
        ConfigurationError: If addressing needed by an enabled set is missing
    """
    cfg = app_config.config
    rule_sets: list[tuple[str, RuleSet]] = []

    if cfg.ip_masq:
        rule_sets.append((
            "masquerade",
            masq_rules(app_config.network, app_config.subnet, engine=engine),
        ))
    if cfg.forward_rules:
        rule_sets.append(("forward", forward_rules(app_config.network, cfg.chains.forward)))
    if cfg.input_rules:
        rule_sets.append(("input", input_rules(app_config.network, cfg.chains.input)))

    return rule_sets
