"""
YAML configuration for readers, batch runs and the CLI.

Example servicemap.yaml:

    service_attr_key: service.name
    peer_service_keys: [peer.service, net.peer.name]
    messaging_as_rpc: false
    partitions: 4
    workers: 4
    log_level: INFO
"""
from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import List, Optional

import yaml  # PyYAML

LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


class ConfigError(ValueError):
    pass


@dataclass
class LinkerConfig:
    service_attr_key: str = "service.name"
    peer_service_keys: List[str] = field(default_factory=lambda: ["peer.service"])
    messaging_as_rpc: bool = False
    partitions: int = 1
    workers: Optional[int] = None
    log_level: str = "WARNING"

    def __post_init__(self) -> None:
        if not isinstance(self.service_attr_key, str) or not self.service_attr_key:
            raise ConfigError("service_attr_key must be a non-empty string")
        if isinstance(self.peer_service_keys, str):
            self.peer_service_keys = [self.peer_service_keys]
        if not all(isinstance(k, str) for k in self.peer_service_keys or []):
            raise ConfigError("peer_service_keys must be a list of strings")
        if not isinstance(self.messaging_as_rpc, bool):
            raise ConfigError("messaging_as_rpc must be true or false")
        if not isinstance(self.partitions, int) or self.partitions < 1:
            raise ConfigError(f"partitions must be a positive integer, got {self.partitions!r}")
        if self.workers is not None and (not isinstance(self.workers, int) or self.workers < 1):
            raise ConfigError(f"workers must be a positive integer, got {self.workers!r}")
        self.log_level = str(self.log_level).upper()
        if self.log_level not in LOG_LEVELS:
            raise ConfigError(f"log_level must be one of {', '.join(LOG_LEVELS)}")


def load_config(path: Optional[Path]) -> LinkerConfig:
    if path is None or not Path(path).exists():
        return LinkerConfig()
    try:
        data = yaml.safe_load(Path(path).read_text()) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"cannot parse {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: expected a mapping at the top level")

    known = {f.name for f in fields(LinkerConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"{path}: unknown keys {unknown}")
    return LinkerConfig(**data)
