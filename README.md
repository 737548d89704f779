# gunyu

Building blocks for keeping one Redis deployment in step with another. The
package covers four things:

- syncer configuration, with the same defaults and limits the syncer applies;
- modelling of Redis cluster topology;
- planning of which syncers to run;
- the CRC checksums Redis uses.

It has no dependencies outside the standard library.

## Installing

Install the package with pip. It needs Python 3.10 or newer. The `test` extra
adds `pytest`.

## Configuration

`gunyu.settings.SyncConfig` holds a syncer configuration. It has an `input`,
an `output` and a `channel` section, and optional `cluster`, `log` and
`server` sections.

`SyncConfig.from_mapping` builds a configuration from a mapping that you have
already parsed, for example from YAML or JSON. The keys use the same names as
the configuration file (`addresses`, `syncFrom`, `dirPath`, `batchCmdCount`,
...). Durations may be given as strings such as `"1m30s"` or as integers of
nanoseconds.

`SyncConfig.fix` validates every section and fills in defaults. It raises
`gunyu.options.ConfigError` when the configuration is invalid. Some examples:

- a section is missing;
- a Redis has no address;
- `server.listen` is malformed;
- the output is a cluster but a target database other than 0 is requested.

It also creates the storer directory if it does not exist.

```python
from gunyu.settings import SyncConfig

config = SyncConfig.from_mapping({
    "input": {"redis": {"addresses": ["10.0.0.1:6379"]}},
    "output": {"redis": {"addresses": ["10.0.0.2:6379"]}},
    "channel": {"storer": {"dirPath": "/tmp/gunyu"}},
})
config.fix()
print(config.server.listen)                  # 127.0.0.1:18001
print(config.output.replay.batch_cmd_count)  # 100
```

Each section can also be used on its own. Each has its own `fix` method:

- `ServerConfig`
- `InputConfig`
- `StorerConfig`
- `ChannelConfig`
- `ReplayConfig`
- `OutputConfig`
- `LogConfig`
- `ClusterConfig`

`log_module_name(prefix, log_config)` returns the prefix a logger should use.

`gunyu.options` holds the enumerations:

- `RedisRole`
- `RedisType`
- `InputMode`
- `SelNodeStrategy`

Each has a lenient `parse`. `RedisRole.from_yaml` is strict and raises
`ConfigError` for an unknown role.

The module also holds `EtcdConfig`, `FlushPolicy` and three parsers for
list-valued options:

- `parse_slice_string` reads `"a,b"`.
- `parse_slice_int` reads `"1,2"`.
- `parse_double_slice_uint16` reads `"[0,1000],[1005,1006],[1995]"`.

## Topology

`gunyu.topology.RedisConfig` describes a standalone or cluster deployment.
Give it its shards with `set_cluster_shards`. Each shard is a
`RedisClusterShard` with a master `RedisNode`, slave nodes and `RedisSlots`.

`sel_nodes(all_shards, strategy)` then returns one `RedisConfig` per selected
node, at most one per shard, picked by strategy:

- `SelNodeStrategy.MASTER` picks the master of each shard.
- `SelNodeStrategy.SLAVE` picks the first slave of each shard.
- `SelNodeStrategy.PREFER_SLAVE` picks an online slave if the shard has one,
  and the master otherwise.

When `all_shards` is false, only the shards of the configured addresses are
used.

```python
from gunyu.options import RedisType, SelNodeStrategy
from gunyu.topology import RedisClusterShard, RedisConfig, RedisNode

cfg = RedisConfig(addresses=["10.0.0.1:6379"], type=RedisType.CLUSTER)
cfg.set_cluster_shards([
    RedisClusterShard(
        master=RedisNode(address="10.0.0.1:6379", health="online"),
        slaves=[RedisNode(address="10.0.0.2:6379", health="online")],
    ),
])
nodes = cfg.sel_nodes(False, SelNodeStrategy.PREFER_SLAVE)
print(nodes[0].address())   # 10.0.0.2:6379
```

Other methods look up nodes and shards and copy configurations:

- `find_node`
- `get_cluster_shard`
- `sel_node_by_address`
- `index`
- `clone`

`addresses_of(configs)` flattens the addresses of a list of configurations.

## Planning syncers

`gunyu.planner.plan_syncers(...)` turns an input and an output deployment
into a `SyncerPlan`. The plan contains:

- one `SyncerSpec` per input node, holding its id, input, output, own channel
  copy and whether it may replay transactions;
- whether the input and the output have to be watched for topology changes;
- whether transaction mode is on.

`plan_syncers` takes these arguments:

- the input and output deployments;
- the channel configuration;
- the node selection strategy;
- the input mode;
- whether transactions are enabled;
- a `check_migrating(redis_config)` callable that you supply. It reports
  whether a cluster is migrating slots.

Transactions are switched off while either cluster is migrating. An error
raised by the callable counts as migrating. The storer size limit is split
evenly between the syncers. Layouts that cannot be synced raise
`SyncerQuitError`.

```python
from gunyu.planner import plan_syncers

plan = plan_syncers(
    config.input.redis, config.output.redis, config.channel,
    config.input.sync_from, config.input.mode,
    config.output.replay.replay_transaction,
    lambda redis_config: False,
)
print(len(plan.specs), plan.txn_mode)   # 1 True
```

`stale_check_interval(stale)` returns how often stale checkpoints should be
collected. It is half the stale age, and at least five minutes.

## Checksums

`gunyu.digest.crc16` computes the XMODEM CRC that Redis uses for cluster key
slots. `crc64` and the incremental `Crc64` hasher compute the Jones CRC-64
used by RDB files. `Crc64` offers `update`, `digest` (8 little-endian bytes)
and `reset`.

```python
from gunyu.digest import crc16

assert crc16(b"123456789") == 0x31C3
```

## What the package does not do

- It does not read configuration files itself. Parse the file with a library
  of your choice and pass the result to `SyncConfig.from_mapping`.
- It has no command line.
- It opens no connections to Redis. It does not discover topology from live
  servers, replicate data, elect leaders or register services.
- It does not watch a running deployment for topology changes. Migration
  checks are whatever callable you pass to `plan_syncers`.