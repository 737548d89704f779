"""Enumerations, small value types and flag parsers used by the configuration."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import timedelta
from enum import IntEnum


class ConfigError(ValueError):
    """Raised when a configuration is invalid."""

    def __init__(self, message: str) -> None:
        super().__init__(f"invalid configuration: {message}")
        self.detail = message


class RedisRole(IntEnum):
    ALL = 1
    MASTER = 2
    SLAVE = 4

    @classmethod
    def parse(cls, text: str) -> "RedisRole":
        """Lenient parse; anything unrecognised means ``ALL``."""
        if text == "slave":
            return cls.SLAVE
        if text == "master":
            return cls.MASTER
        return cls.ALL

    @classmethod
    def from_yaml(cls, text: str) -> "RedisRole":
        """Strict parse used for configuration files."""
        for role in cls:
            if str(role) == text:
                return role
        raise ConfigError(f"invalid redis role : {text}")

    def __str__(self) -> str:
        return {RedisRole.ALL: "all", RedisRole.MASTER: "master", RedisRole.SLAVE: "slave"}[self]


_REDIS_TYPE_NAMES = {1: "standalone", 2: "sentinel", 3: "cluster"}


class RedisType(IntEnum):
    UNKNOWN = 0
    STANDALONE = 1
    SENTINEL = 2
    CLUSTER = 3

    @classmethod
    def parse(cls, text: str) -> "RedisType":
        """Parse a type name; unknown names mean ``STANDALONE``."""
        for value, name in _REDIS_TYPE_NAMES.items():
            if name == text:
                return cls(value)
        return cls.STANDALONE

    def __str__(self) -> str:
        return _REDIS_TYPE_NAMES.get(int(self), "")


class InputMode(IntEnum):
    DYNAMIC = 0
    STATIC = 1
    AUTO = 3

    @classmethod
    def parse(cls, text: str) -> "InputMode":
        """Parse a mode name; unknown names mean ``DYNAMIC``."""
        if text == "static":
            return cls.STATIC
        if text == "auto":
            return cls.AUTO
        return cls.DYNAMIC

    def __str__(self) -> str:
        return {InputMode.STATIC: "static", InputMode.DYNAMIC: "dynamic", InputMode.AUTO: "auto"}[self]


class SelNodeStrategy(IntEnum):
    SLAVE = 1
    PREFER_SLAVE = 3
    MASTER = 4

    @classmethod
    def parse(cls, text: str) -> "SelNodeStrategy":
        """Parse a strategy name; unknown names mean ``PREFER_SLAVE``."""
        return {"prefer_slave": cls.PREFER_SLAVE, "master": cls.MASTER, "slave": cls.SLAVE}.get(
            text, cls.PREFER_SLAVE
        )

    def __str__(self) -> str:
        return {
            SelNodeStrategy.PREFER_SLAVE: "prefer_slave",
            SelNodeStrategy.MASTER: "master",
            SelNodeStrategy.SLAVE: "slave",
        }[self]


@dataclass
class FlushPolicy:
    duration: timedelta = timedelta(0)
    every_write: bool = False
    dirty_size: int = 0
    auto: bool = False


@dataclass
class EtcdConfig:
    endpoints: list[str] = field(default_factory=list)
    auto_sync_interval: timedelta = timedelta(0)
    dial_timeout: timedelta = timedelta(0)
    dial_keep_alive_time: timedelta = timedelta(0)
    dial_keep_alive_timeout: timedelta = timedelta(0)
    username: str = ""
    password: str = ""
    reject_old_cluster: bool = False
    ttl: int = 0

    def fix(self) -> None:
        """Validate and fill in defaults."""
        if not self.endpoints:
            raise ConfigError("no etcd endpoint")
        if self.ttl == 0:
            self.ttl = 30
        if self.dial_timeout == timedelta(0):
            self.dial_timeout = timedelta(seconds=10)


_INT_RE = re.compile(r"[+-]?[0-9]+")
_UINT_RE = re.compile(r"[0-9]+")


def parse_slice_string(value: str) -> list[str]:
    """Split a comma separated flag value."""
    return value.split(",")


def parse_slice_int(value: str) -> list[int]:
    """Split a comma separated flag value into integers."""
    numbers = []
    for part in value.split(","):
        if not _INT_RE.fullmatch(part):
            raise ValueError(f"invalid integer: {part!r}")
        numbers.append(int(part))
    return numbers


def parse_double_slice_uint16(value: str) -> list[list[int]]:
    """Parse a flag such as ``[0,1000],[1005,1006],[1995]``."""
    groups = []
    for index, group in enumerate(value.strip("[]").split("],[")):
        numbers = []
        for raw in group.strip().split(","):
            text = raw.strip()
            if not _UINT_RE.fullmatch(text) or int(text) > 0xFFFF:
                raise ConfigError(f"invalid number {text} in slice at index {index}")
            numbers.append(int(text))
        groups.append(numbers)
    return groups