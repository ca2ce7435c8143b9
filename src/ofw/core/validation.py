"""Input validation utilities.

Provides validation for:
- Overlay network and lease subnet CIDRs
- Custom iptables chain names
- Resync periods

All validators return the validated value or raise ValidationError.
"""

import ipaddress
import re

from ofw.core.exceptions import ValidationError


# iptables rejects chain names longer than this (XT_EXTENSION_MAXNAMELEN - 1)
MAX_CHAIN_NAME_LENGTH = 28

CHAIN_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.-]*$")

# Built-in targets that cannot be used as custom chain names
RESERVED_CHAIN_NAMES: frozenset[str] = frozenset({
    "ACCEPT", "DROP", "REJECT", "RETURN", "QUEUE", "MASQUERADE",
    "SNAT", "DNAT", "LOG", "MARK",
    "INPUT", "OUTPUT", "FORWARD", "PREROUTING", "POSTROUTING",
})

MIN_RESYNC_PERIOD = 1
MAX_RESYNC_PERIOD = 3600


def validate_cidr(value: str) -> str:
    """Validate IPv4 CIDR notation for the overlay network or a lease.

    Args:
        value: CIDR string to validate (e.g., "10.1.0.0/16")

    Returns:
        The canonical CIDR string (host bits cleared)

    Raises:
        ValidationError: If validation fails
    """
    value = value.strip()

    try:
        network = ipaddress.ip_network(value, strict=False)
    except ValueError as e:
        raise ValidationError(
            f"Invalid CIDR notation: {value}",
            hint="Use format like 10.1.0.0/16 or 10.1.15.0/24",
            details=[str(e)],
        ) from e

    if network.version != 4:
        raise ValidationError(
            f"Only IPv4 networks are supported: {value}",
            hint="iptables manages IPv4 only; use an IPv4 overlay range",
        )

    if network.prefixlen == 0:
        raise ValidationError(
            f"'{value}' covers every address and cannot be an overlay network",
            hint="Use the overlay's own range (e.g., 10.1.0.0/16)",
        )

    return str(network)


def validate_subnet_in_network(subnet: str, network: str) -> str:
    """Ensure a leased subnet lies inside the overlay network.

    Args:
        subnet: Leased subnet CIDR
        network: Overlay network CIDR

    Returns:
        The canonical subnet CIDR

    Raises:
        ValidationError: If the subnet is outside the network
    """
    subnet = validate_cidr(subnet)
    network = validate_cidr(network)

    if not ipaddress.ip_network(subnet).subnet_of(ipaddress.ip_network(network)):
        raise ValidationError(
            f"Lease subnet {subnet} is not inside overlay network {network}",
            hint="Check the subnet handed out by the overlay's lease source",
        )

    return subnet


def validate_chain_name(value: str) -> str:
    """Validate a custom iptables chain name.

    Rules:
    - 1 to 28 characters
    - Letters, digits, underscore, dot and dash
    - Not a built-in chain or target

    Raises:
        ValidationError: If validation fails
    """
    if not value:
        raise ValidationError("Chain name cannot be empty")

    if len(value) > MAX_CHAIN_NAME_LENGTH:
        raise ValidationError(
            f"Chain name exceeds maximum length of {MAX_CHAIN_NAME_LENGTH}: {value}",
        )

    if not CHAIN_NAME_PATTERN.match(value):
        raise ValidationError(
            f"Invalid chain name: {value}",
            hint="Use letters, digits, '_', '.' and '-' only",
        )

    if value.upper() in RESERVED_CHAIN_NAMES:
        raise ValidationError(
            f"'{value}' is a built-in chain or target",
            hint="Pick a dedicated name such as OVERLAY-FORWARD",
        )

    return value


def validate_resync_period(value: int) -> int:
    """Validate the resync period in seconds.

    Raises:
        ValidationError: If the period is out of range
    """
    if not MIN_RESYNC_PERIOD <= value <= MAX_RESYNC_PERIOD:
        raise ValidationError(
            f"Invalid resync period: {value}",
            hint=f"Must be between {MIN_RESYNC_PERIOD} and {MAX_RESYNC_PERIOD} seconds",
        )
    return value
