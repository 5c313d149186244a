"""
Interface to configuration as persisted in .yaml file.
"""
from __future__ import annotations

from logging import Logger
from pathlib import Path
from typing import Self

import yaml
from pydantic import BaseModel, Field, field_validator

from ..core import (
    BaseClient,
    KazooClient,
    MemoryClient,
    MemoryNamespace,
    ZooSync,
)
from ..core.client.kazoo_client import DEFAULT_TIMEOUT
from ..core.dispatcher import DEFAULT_MAX_RETRIES, DEFAULT_RETRY_DELAY

__all__ = [
    "Config",
    "InstanceConfig",
    "MEMORY_HOSTS",
]

MEMORY_HOSTS = "memory"
"""
Value of `hosts` selecting the in-process backend.
"""

memory_namespace = MemoryNamespace()
"""
Namespace shared by all in-process clients created from config.
"""


class Config(BaseModel):
    """
    Encapsulates configuration for use in tools.
    """

    instances: dict[str, InstanceConfig]
    """
    Mapping of instance names to configs.
    """

    @classmethod
    def load_yaml(cls, file: Path) -> Self:
        """
        Load config from .yaml file.
        """
        with file.open() as fh:
            model = yaml.safe_load(fh)

        if not isinstance(model, dict):
            raise ValueError(f"Invalid yaml contents: {model}")

        return cls(**model)

    def dump_yaml(self, file: Path):
        """
        Dump config to .yaml file.
        """
        model = self.model_dump(by_alias=True)
        model_yaml = yaml.safe_dump(
            model, default_flow_style=False, sort_keys=False
        )
        file.write_text(model_yaml)


class InstanceConfig(BaseModel):
    """
    Encapsulates info for a ZooKeeper ensemble.
    """

    hosts: str
    """
    Comma-separated `host:port` list, or `memory` for the in-process backend.
    """

    timeout: float = Field(DEFAULT_TIMEOUT, gt=0)
    retry_delay: float = Field(DEFAULT_RETRY_DELAY, ge=0)
    max_retries: int = Field(DEFAULT_MAX_RETRIES, ge=1)

    @field_validator("hosts")
    def validate_hosts(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("hosts must not be empty")
        return value

    @property
    def is_memory(self) -> bool:
        return self.hosts == MEMORY_HOSTS

    def create_client(self, *, logger: Logger) -> BaseClient:
        """
        Connect to this instance.
        """
        if self.is_memory:
            return MemoryClient(memory_namespace, logger=logger)

        return KazooClient(self.hosts, timeout=self.timeout, logger=logger)

    def create_sync(self, client: BaseClient, *, logger: Logger) -> ZooSync:
        """
        Get mirror of this instance's namespace using the given client.
        """
        return ZooSync(
            client,
            retry_delay=self.retry_delay,
            max_retries=self.max_retries,
            logger=logger,
        )
