"""
Connection parameters for a remote host.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


@dataclass(frozen=True)
class ConnectionConfig:
    """
    Everything needed to open (and re-open) one SSH connection.

    Immutable: the reconnect policy re-uses the exact instance the
    caller passed to connect().

    Either private_key_path or private_key (PEM text) must be given.
    """
    host: str
    username: str
    port: int = 22
    private_key_path: Optional[str] = None
    private_key: Optional[str] = field(default=None, repr=False)
    passphrase: Optional[str] = field(default=None, repr=False)

    def __post_init__(self):
        if not self.host:
            raise ValueError("host is required")
        if not self.username:
            raise ValueError("username is required")
        if not 0 < int(self.port) < 65536:
            raise ValueError(f"port out of range: {self.port}")
        if not self.private_key_path and not self.private_key:
            raise ValueError("private_key_path or private_key is required")
        object.__setattr__(self, "port", int(self.port))

    @property
    def key_file(self) -> Optional[Path]:
        """Expanded private key path, if one was given."""
        if not self.private_key_path:
            return None
        return Path(self.private_key_path).expanduser()

    def read_private_key(self) -> str:
        """Key material, inline or read from disk."""
        if self.private_key:
            return self.private_key
        return self.key_file.read_text()

    @property
    def target(self) -> str:
        return f"{self.username}@{self.host}:{self.port}"

    def to_dict(self) -> dict:
        """Serialize to dict. Secrets are never included."""
        data = {
            "host": self.host,
            "port": self.port,
            "username": self.username,
        }
        if self.private_key_path:
            data["private_key_path"] = self.private_key_path
        return data

    @classmethod
    def from_dict(cls, data: dict) -> ConnectionConfig:
        """Deserialize from dict, ignoring unknown keys."""
        valid_fields = {f.name for f in cls.__dataclass_fields__.values()}
        filtered = {k: v for k, v in data.items() if k in valid_fields}
        return cls(**filtered)
