"""Shared-frame pose fusion, anchor failover and collision safety for drone swarms."""

__version__ = "0.1.0"
