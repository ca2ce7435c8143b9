"""
Overlay Firewall - keeps a host's overlay network iptables rules in place.

Builds the masquerade, forward and input rule sets for one overlay network,
detects drift against the live firewall and restores them in order.
"""

__version__ = "1.0.0"
__author__ = "Overlay Firewall Team"
