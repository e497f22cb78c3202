"""
Connection parameters and host inventory.
"""

from .profile import ConnectionConfig
from .io import load_hosts, parse_hosts

__all__ = [
    "ConnectionConfig",
    "load_hosts",
    "parse_hosts",
]
