"""
Host inventory loading.

Inventory format (YAML):

    defaults:
      username: deploy
      private_key_path: ~/.ssh/id_ed25519
    hosts:
      web-1:
        host: 10.0.0.5
      db-1:
        host: 10.0.0.9
        port: 2222
"""

from __future__ import annotations
import logging
from pathlib import Path

import yaml

from .profile import ConnectionConfig

logger = logging.getLogger(__name__)


def parse_hosts(data) -> dict[str, ConnectionConfig]:
    """
    Build named connection configs from parsed inventory data.

    Raises:
        ValueError: If the structure is wrong or an entry is incomplete
    """
    if not isinstance(data, dict):
        raise ValueError("Invalid inventory format: expected a mapping")

    defaults = data.get("defaults") or {}
    hosts = data.get("hosts")
    if not isinstance(defaults, dict):
        raise ValueError("Invalid inventory format: 'defaults' must be a mapping")
    if not isinstance(hosts, dict):
        raise ValueError("Invalid inventory format: 'hosts' must be a mapping")

    configs = {}
    for name, entry in hosts.items():
        entry = entry or {}
        if not isinstance(entry, dict):
            raise ValueError(f"Host '{name}': expected a mapping")

        merged = {**defaults, **entry}
        merged.setdefault("host", name)
        try:
            configs[str(name)] = ConnectionConfig.from_dict(merged)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Host '{name}': {e}") from e

    return configs


def load_hosts(path: Path) -> dict[str, ConnectionConfig]:
    """
    Load a YAML host inventory.

    Args:
        path: Inventory file

    Returns:
        Mapping of host name to ConnectionConfig
    """
    path = Path(path).expanduser()
    with open(path) as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid inventory YAML in {path}: {e}") from e

    configs = parse_hosts(data)
    logger.debug(f"Loaded {len(configs)} hosts from {path}")
    return configs
