"""Overlay rule model, iptables engine, reconciler and resync loops."""
