"""Redundant multi-interface UDP relay for WireGuard tunnels: client service, server and their configuration."""

__version__ = "0.1.0"