"""Redis deployment topology: nodes, shards, slot ranges and node selection."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field, replace
from datetime import timedelta
from typing import Iterable

from .options import ConfigError, RedisRole, RedisType, SelNodeStrategy

HEALTH_ONLINE = "online"
HEALTH_OFFLINE = "offline"

_SLOT_COUNT = 16384


@dataclass
class RedisSlotRange:
    left: int = 0
    right: int = 0


@dataclass(eq=False)
class RedisSlots:
    """An ordered list of slot ranges."""

    ranges: list[RedisSlotRange] = field(default_factory=list)

    def clone(self) -> "RedisSlots":
        """Return an independent copy."""
        return RedisSlots([replace(r) for r in self.ranges])

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RedisSlots):
            return NotImplemented
        if len(self.ranges) != len(other.ranges):
            return False
        return all(
            a.left == b.left and a.right == b.right
            for a, b in zip(self.ranges, other.ranges)
        )

    __hash__ = None  # type: ignore[assignment]

    def __len__(self) -> int:
        return len(self.ranges)

    def sort(self) -> None:
        """Sort the ranges by their left bound, in place."""
        self.ranges.sort(key=lambda r: r.left)


@dataclass
class RedisNode:
    id: str = ""
    ip: str = ""
    port: int = 0
    tls_port: int = 0
    endpoint: str = ""
    address: str = ""
    host_name: str = ""
    role: RedisRole | None = None
    repl_offset: int = 0
    health: str = ""

    def is_healthy(self) -> bool:
        return self.health == HEALTH_ONLINE

    def address_equal(self, other: "RedisNode") -> bool:
        """True if both nodes listen on the same ip and ports."""
        return self.ip == other.ip and self.port == other.port and self.tls_port == other.tls_port


@dataclass
class RedisClusterShard:
    slots: RedisSlots = field(default_factory=RedisSlots)
    master: RedisNode = field(default_factory=RedisNode)
    slaves: list[RedisNode] = field(default_factory=list)
    shard_id: int = 0

    def all_addresses(self) -> list[str]:
        """The master's address followed by the slaves' addresses."""
        return [self.master.address, *(s.address for s in self.slaves)]

    def clone(self) -> "RedisClusterShard":
        return RedisClusterShard(
            slots=self.slots.clone(),
            master=replace(self.master),
            slaves=[replace(s) for s in self.slaves],
            shard_id=self.shard_id,
        )

    def compare_typology(self, other: "RedisClusterShard") -> bool:
        """True if both shards have the same master and the same slots."""
        return self.master.address_equal(other.master) and self.slots == other.slots

    def get(self, strategy: SelNodeStrategy) -> RedisNode | None:
        """Pick a node of this shard according to ``strategy``."""
        if strategy == SelNodeStrategy.MASTER:
            return self.master
        if strategy == SelNodeStrategy.PREFER_SLAVE:
            for slave in self.slaves:
                if slave.health == HEALTH_ONLINE:
                    return slave
            return self.master
        return self.slaves[0] if self.slaves else None


@dataclass
class RedisClusterOptions:
    handle_move_err: bool = False
    handle_ask_err: bool = False

    def clone(self) -> "RedisClusterOptions":
        return replace(self)

    def fix(self) -> None:
        self.handle_ask_err = True
        self.handle_move_err = True


def _clone_options(options: RedisClusterOptions | None) -> RedisClusterOptions | None:
    return options.clone() if options is not None else None


@dataclass(eq=False)
class RedisConfig:
    """Connection settings and discovered topology of a Redis deployment."""

    addresses: list[str] = field(default_factory=list)
    user_name: str = ""
    password: str = ""
    tls_enable: bool = False
    type: RedisType = RedisType.UNKNOWN
    otype: RedisType = RedisType.UNKNOWN
    version: str = ""
    internal_service: str | None = None
    external_service: str | None = None
    cluster_options: RedisClusterOptions | None = None
    keep_alive: int = 0
    alive_time: timedelta = timedelta(0)
    _shards: list[RedisClusterShard] = field(default_factory=list, init=False, repr=False)
    _slot_left: int = field(default=0, init=False, repr=False)
    _slot_right: int = field(default=0, init=False, repr=False)
    _slots_map: dict[str, RedisSlots] | None = field(default=None, init=False, repr=False)
    _slots: RedisSlots = field(default_factory=RedisSlots, init=False, repr=False)
    _migrating: bool = field(default=False, init=False, repr=False)

    def clone(self) -> "RedisConfig":
        """Return a deep, independent copy of this configuration."""
        cloned = RedisConfig(
            addresses=list(self.addresses),
            user_name=self.user_name,
            password=self.password,
            tls_enable=self.tls_enable,
            type=self.type,
            otype=self.type,
            version=self.version,
            cluster_options=_clone_options(self.cluster_options),
            keep_alive=self.keep_alive,
            alive_time=self.alive_time,
        )
        cloned._shards = [s.clone() for s in self._shards]
        cloned._slot_left = self._slot_left
        cloned._slot_right = self._slot_right
        cloned._slots_map = {k: v.clone() for k, v in (self._slots_map or {}).items()}
        cloned._slots = self._slots.clone()
        cloned._migrating = self._migrating
        return cloned

    def is_migrating(self) -> bool:
        return self._migrating

    def set_migrating(self, migrating: bool) -> None:
        self._migrating = migrating

    def set_slots(self, slots: dict[str, RedisSlots], sorted_slots: RedisSlots) -> None:
        """Record per-address slots and the sorted slots of the whole deployment."""
        self._slots_map = slots
        left, right = _SLOT_COUNT, -1
        for r in slots.values():
            if r.ranges:
                left = min(left, r.ranges[0].left)
                right = max(right, r.ranges[-1].right)
        self._slot_left = left
        self._slot_right = right
        self._slots = sorted_slots

    def get_slots(self, address: str) -> RedisSlots | None:
        if self._slots_map is None:
            return None
        return self._slots_map.get(address)

    def get_all_slots(self) -> RedisSlots:
        return self._slots

    def set_cluster_shards(self, shards: list[RedisClusterShard]) -> None:
        """Install the shards, numbering them and indexing their slots."""
        self._shards = shards
        slot_map: dict[str, RedisSlots] = {}
        all_slots = RedisSlots()
        for index, shard in enumerate(shards):
            shard.shard_id = index
            all_slots.ranges.extend(shard.slots.ranges)
            shard_slots = RedisSlots(list(shard.slots.ranges))
            slot_map[shard.master.address] = shard_slots
            for slave in shard.slaves:
                slot_map[slave.address] = shard_slots
        all_slots.sort()
        self.set_slots(slot_map, all_slots)

    def get_cluster_shard(self, address: str) -> RedisClusterShard | None:
        for shard in self._shards:
            if shard.master.address == address:
                return shard
            if any(s.address == address for s in shard.slaves):
                return shard
        return None

    def get_cluster_shards(self) -> list[RedisClusterShard]:
        return self._shards

    def fix(self) -> None:
        """Validate and fill in defaults."""
        if not self.addresses:
            raise ConfigError("no redis address")
        if self.type == RedisType.UNKNOWN:
            self.type = RedisType.STANDALONE
        if self.cluster_options is None:
            self.cluster_options = RedisClusterOptions()
            self.cluster_options.fix()
        self.otype = self.type
        if self.keep_alive < 1:
            self.keep_alive = 32
        if self.alive_time < timedelta(minutes=1):
            self.alive_time = timedelta(minutes=1)

    def address(self) -> str:
        return self.addresses[0]

    def is_cluster(self) -> bool:
        return self.type == RedisType.CLUSTER

    def is_standalone(self) -> bool:
        return self.type == RedisType.STANDALONE

    def index(self, i: int) -> "RedisConfig":
        """A configuration for the ``i``-th configured address only."""
        addr = self.addresses[i]
        result = RedisConfig(
            addresses=[addr],
            user_name=self.user_name,
            password=self.password,
            tls_enable=self.tls_enable,
            type=self.type,
            otype=self.type,
            version=self.version,
            keep_alive=self.keep_alive,
            alive_time=self.alive_time,
        )
        result._migrating = self._migrating
        slots = self.get_slots(addr)
        if slots is not None:
            result._slots = slots
            if slots.ranges:
                result._slot_left = slots.ranges[0].left
                result._slot_right = slots.ranges[-1].right
        return result

    def find_node(self, address: str) -> RedisNode | None:
        for shard in self._shards:
            if shard.master.address == address:
                return shard.master
            for slave in shard.slaves:
                if slave.address == address:
                    return slave
        return None

    def _derive(self, address: str) -> "RedisConfig":
        derived = RedisConfig(
            addresses=[address],
            user_name=self.user_name,
            password=self.password,
            tls_enable=self.tls_enable,
            type=self.type,
            otype=self.type,
            cluster_options=_clone_options(self.cluster_options),
            version=self.version,
            keep_alive=self.keep_alive,
        )
        derived._migrating = self._migrating
        return derived

    def sel_node_by_address(self, address: str) -> "RedisConfig | None":
        """A configuration for the node at ``address`` and its shard."""
        shard = self.get_cluster_shard(address)
        if shard is None:
            return None
        selected = self._derive(address)
        selected.set_cluster_shards([shard])
        return selected

    def _shard_of(self, address: str, taken: set[int]) -> RedisClusterShard | None:
        for shard in self._shards:
            if address == shard.master.address or any(
                s.address == address for s in shard.slaves
            ):
                if shard.shard_id not in taken:
                    taken.add(shard.shard_id)
                    return shard
        return None

    def sel_nodes(self, all_shards: bool, strategy: SelNodeStrategy) -> list["RedisConfig"]:
        """One configuration per selected node, at most one node per shard."""
        picked: list[tuple[str, RedisClusterShard | None]] = []
        if self.is_standalone():
            shards = [s.clone() for s in self._shards]
            picked = [
                (addr, shards[i] if i < len(shards) else None)
                for i, addr in enumerate(self.addresses)
            ]
        elif all_shards:
            for shard in self._shards:
                node = shard.get(strategy)
                if node is not None:
                    picked.append((node.address, shard.clone()))
        else:
            taken: set[int] = set()
            for addr in self.addresses:
                shard = self._shard_of(addr, taken)
                if shard is None:
                    continue
                node = shard.get(strategy)
                if node is not None:
                    picked.append((node.address, shard.clone()))

        result = []
        for addr, shard in picked:
            selected = self._derive(addr)
            selected.alive_time = self.alive_time
            if shard is not None:
                selected.set_cluster_shards([shard])
            result.append(selected)
        return result

    def __deepcopy__(self, memo: dict) -> "RedisConfig":
        cloned = self.clone()
        cloned.internal_service = copy.deepcopy(self.internal_service, memo)
        cloned.external_service = copy.deepcopy(self.external_service, memo)
        cloned.otype = self.otype
        return cloned


def addresses_of(configs: Iterable[RedisConfig]) -> list[str]:
    """All addresses of ``configs``, in order."""
    return [addr for cfg in configs for addr in cfg.addresses]