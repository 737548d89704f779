from datetime import timedelta

import pytest

from gunyu.options import ConfigError, RedisRole, RedisType, SelNodeStrategy
from gunyu.topology import (
    HEALTH_OFFLINE,
    HEALTH_ONLINE,
    RedisClusterOptions,
    RedisClusterShard,
    RedisConfig,
    RedisNode,
    RedisSlotRange,
    RedisSlots,
    addresses_of,
)

LOCALHOST = "127.0.0.1"


def _node(port, role):
    return RedisNode(address=f"{LOCALHOST}:{port}", role=role, health=HEALTH_ONLINE)


@pytest.fixture
def cfg():
    config = RedisConfig(cluster_options=RedisClusterOptions())
    config.set_cluster_shards(
        [
            RedisClusterShard(
                master=_node(6400, RedisRole.MASTER),
                slaves=[_node(6401, RedisRole.SLAVE), _node(6402, RedisRole.SLAVE)],
            ),
            RedisClusterShard(
                master=_node(6410, RedisRole.MASTER),
                slaves=[_node(6411, RedisRole.SLAVE)],
            ),
            RedisClusterShard(master=_node(6510, RedisRole.MASTER), slaves=[]),
        ]
    )
    return config


def test_ignore_non_existent_address(cfg):
    shards = cfg.get_cluster_shards()
    addrs = ["x", shards[0].slaves[0].address]
    cfg.addresses = addrs
    act = cfg.sel_nodes(False, SelNodeStrategy.SLAVE)
    assert len(act) == 1
    assert act[0].addresses[0] == addrs[1]

    act = cfg.sel_nodes(False, SelNodeStrategy.MASTER)
    assert len(act) == 1
    assert act[0].addresses[0] == shards[0].master.address


def test_select_one_address_per_shard(cfg):
    shards = cfg.get_cluster_shards()
    addrs = [shards[0].master.address, shards[0].slaves[0].address]
    cfg.addresses = addrs
    act = cfg.sel_nodes(False, SelNodeStrategy.SLAVE)
    assert len(act) == 1
    assert act[0].addresses[0] == addrs[1]

    act = cfg.sel_nodes(False, SelNodeStrategy.MASTER)
    assert len(act) == 1
    assert act[0].addresses[0] == addrs[0]


def test_select_multi_shards(cfg):
    shards = cfg.get_cluster_shards()
    cfg.addresses = [shards[0].master.address, shards[1].slaves[0].address]
    act = cfg.sel_nodes(False, SelNodeStrategy.SLAVE)
    assert len(act) == 2
    assert act[0].addresses[0] == shards[0].slaves[0].address
    assert act[1].addresses[0] == shards[1].slaves[0].address

    act = cfg.sel_nodes(False, SelNodeStrategy.MASTER)
    assert len(act) == 2
    assert act[0].addresses[0] == shards[0].master.address
    assert act[1].addresses[0] == shards[1].master.address


def test_prefer_slave(cfg):
    shards = cfg.get_cluster_shards()
    cfg.addresses = [shards[1].master.address, shards[2].master.address]
    act = cfg.sel_nodes(False, SelNodeStrategy.PREFER_SLAVE)
    assert len(act) == 2
    assert act[0].addresses[0] == shards[1].slaves[0].address
    assert act[1].addresses[0] == shards[2].master.address

    for slave in shards[1].slaves:
        slave.health = HEALTH_OFFLINE

    act = cfg.sel_nodes(False, SelNodeStrategy.PREFER_SLAVE)
    assert len(act) == 2
    assert act[0].addresses[0] == shards[1].master.address
    assert act[1].addresses[0] == shards[2].master.address


def test_all_shards_skips_shards_without_node(cfg):
    act = cfg.sel_nodes(True, SelNodeStrategy.SLAVE)
    shards = cfg.get_cluster_shards()
    assert addresses_of(act) == [shards[0].slaves[0].address, shards[1].slaves[0].address]
    assert len(cfg.sel_nodes(True, SelNodeStrategy.MASTER)) == len(shards)


def test_selected_config_carries_its_shard(cfg):
    shards = cfg.get_cluster_shards()
    cfg.addresses = [shards[1].master.address]
    (selected,) = cfg.sel_nodes(False, SelNodeStrategy.MASTER)
    assert selected.get_cluster_shard(shards[1].slaves[0].address) is not None
    assert selected.get_cluster_shard(shards[0].master.address) is None


def test_set_cluster_shards_sorts_all_slots():
    config = RedisConfig(type=RedisType.CLUSTER)
    high = RedisSlots([RedisSlotRange(201, 300)])
    low = RedisSlots([RedisSlotRange(0, 100), RedisSlotRange(101, 200)])
    config.set_cluster_shards(
        [
            RedisClusterShard(slots=high, master=RedisNode(address="a"), slaves=[RedisNode(address="a1")]),
            RedisClusterShard(slots=low, master=RedisNode(address="b")),
        ]
    )
    lefts = [r.left for r in config.get_all_slots().ranges]
    assert lefts == sorted(lefts)
    assert len(config.get_all_slots()) == 3
    assert config.get_slots("a1") == high
    assert config.get_slots("b") == low
    assert config.get_slots("missing") is None
    assert [s.shard_id for s in config.get_cluster_shards()] == [0, 1]


def test_slots_equality():
    a = RedisSlots([RedisSlotRange(0, 100)])
    b = a.clone()
    assert a == b
    b.ranges[0].right = 50
    assert a != b
    assert a.ranges[0].right == 100


def test_clone_is_independent(cfg):
    cfg.addresses = ["x"]
    cfg.set_migrating(True)
    cloned = cfg.clone()
    assert cloned.is_migrating()
    cloned.get_cluster_shards()[0].slaves[0].address = "changed"
    cloned.addresses.append("y")
    assert cfg.get_cluster_shards()[0].slaves[0].address == f"{LOCALHOST}:6401"
    assert cfg.addresses == ["x"]


def test_shard_get_and_addresses(cfg):
    shard = cfg.get_cluster_shards()[0]
    assert shard.all_addresses() == [f"{LOCALHOST}:6400", f"{LOCALHOST}:6401", f"{LOCALHOST}:6402"]
    assert shard.get(SelNodeStrategy.MASTER) is shard.master
    assert cfg.get_cluster_shards()[2].get(SelNodeStrategy.SLAVE) is None


def test_compare_typology():
    a = RedisClusterShard(slots=RedisSlots([RedisSlotRange(0, 10)]), master=RedisNode(ip="h", port=1))
    b = a.clone()
    assert a.compare_typology(b)
    b.master.port = 2
    assert not a.compare_typology(b)


def test_find_node_and_sel_node_by_address(cfg):
    node = cfg.find_node(f"{LOCALHOST}:6411")
    assert node is not None and node.role == RedisRole.SLAVE
    assert cfg.find_node("nowhere") is None
    selected = cfg.sel_node_by_address(f"{LOCALHOST}:6411")
    assert selected.addresses == [f"{LOCALHOST}:6411"]
    assert selected.get_cluster_shards()[0].master.address == f"{LOCALHOST}:6410"
    assert cfg.sel_node_by_address("nowhere") is None


def test_index_standalone():
    config = RedisConfig(addresses=["a:1", "b:2"], type=RedisType.STANDALONE, keep_alive=7)
    second = config.index(1)
    assert second.addresses == ["b:2"]
    assert second.is_standalone()
    assert second.keep_alive == 7


def test_fix_defaults():
    config = RedisConfig(addresses=["a:1"])
    config.fix()
    assert config.type == RedisType.STANDALONE
    assert config.otype == RedisType.STANDALONE
    assert config.keep_alive == 32
    assert config.alive_time == timedelta(minutes=1)
    assert config.cluster_options.handle_ask_err and config.cluster_options.handle_move_err
    assert config.address() == "a:1"


def test_fix_without_address():
    with pytest.raises(ConfigError):
        RedisConfig().fix()


def test_node_health_and_address_equal():
    a = RedisNode(ip="h", port=1, health=HEALTH_ONLINE)
    assert a.is_healthy()
    assert not RedisNode(health=HEALTH_OFFLINE).is_healthy()
    assert a.address_equal(RedisNode(ip="h", port=1))
    assert not a.address_equal(RedisNode(ip="h", port=1, tls_port=5))