from datetime import timedelta

import pytest

from gunyu.options import ConfigError, EtcdConfig, InputMode, RedisType, SelNodeStrategy
from gunyu.settings import (
    ChannelConfig,
    ClusterConfig,
    InputConfig,
    LogConfig,
    LogHandlerConfig,
    LogHandlerFileConfig,
    OutputConfig,
    ReplayConfig,
    ServerConfig,
    StorerConfig,
    SyncConfig,
    log_module_name,
)
from gunyu.topology import RedisConfig


def _mapping(tmp_path, output_type="standalone", replay=None):
    return {
        "input": {"redis": {"addresses": ["127.0.0.1:6379"]}},
        "output": {
            "redis": {"addresses": ["127.0.0.1:6380"], "type": output_type},
            "replay": replay or {},
        },
        "channel": {"storer": {"dirPath": str(tmp_path / "store")}},
    }


def test_server_defaults():
    server = ServerConfig()
    server.fix()
    assert server.listen == "127.0.0.1:18001"
    assert server.listen_peer == server.listen
    assert server.listen_port == int(server.listen.split(":")[1])
    assert server.metric_route_path == "/prometheus"
    assert server.gracefull_stop_timeout == timedelta(seconds=5)
    assert server.check_redis_typology_ticker == timedelta(seconds=10)


def test_server_metric_path_and_ticker_clamp():
    server = ServerConfig(metric_route_path="metrics", check_redis_typology_ticker=timedelta(milliseconds=5))
    server.fix()
    assert server.metric_route_path == "/metrics"
    assert server.check_redis_typology_ticker == timedelta(seconds=1)


@pytest.mark.parametrize("listen", ["localhost", "host:port", "a:1:2"])
def test_server_invalid_listen(listen):
    with pytest.raises(ConfigError):
        ServerConfig(listen=listen).fix()


def test_replay_defaults():
    replay = ReplayConfig()
    replay.fix()
    assert replay.resume_from_break_point is True
    assert replay.target_db == -1
    assert replay.key_exists == "replace"
    assert replay.batch_cmd_count == 100
    assert replay.max_proto_bulk_len == 512 * 1024 * 1024
    assert replay.batch_buffer_size == 65535
    assert replay.replay_transaction is True
    assert replay.replay_rdb_enable_restore is True
    assert 1 <= replay.replay_rdb_parallel <= 512 and replay.replay_rdb_parallel % 4 == 0
    assert replay.stats.log_interval == timedelta(seconds=5)


def test_replay_target_db_requires_no_resume():
    with pytest.raises(ConfigError):
        ReplayConfig(target_db_cfg=3, resume_from_break_point=True).fix()
    replay = ReplayConfig(target_db_cfg=3, resume_from_break_point=False)
    replay.fix()
    assert replay.target_db == 3


def test_replay_key_exists_lowercased():
    replay = ReplayConfig(key_exists="IGNORE", function_exists="FLUSH")
    replay.fix()
    assert replay.key_exists == "ignore"
    assert replay.function_exists == "flush"


def test_replay_buffer_too_large():
    with pytest.raises(ValueError):
        ReplayConfig(batch_buffer_size=1024 * 1024 * 100).fix()


def test_storer_creates_directory(tmp_path):
    target = tmp_path / "a" / "b"
    storer = StorerConfig(dir_path=str(target))
    storer.fix()
    assert target.is_dir()
    assert storer.max_size == 50 * 1024 * 1024 * 1024
    assert storer.log_size == 100 * 1024 * 1024
    assert storer.flush.auto is True
    assert storer.flush.duration == timedelta(milliseconds=100)


def test_channel_fix_and_clone(tmp_path):
    channel = ChannelConfig(
        storer=StorerConfig(dir_path=str(tmp_path)),
        stale_checkpoint_duration=timedelta(minutes=1),
    )
    channel.fix()
    assert channel.stale_checkpoint_duration == timedelta(minutes=5)
    cloned = channel.clone()
    assert cloned.storer == channel.storer
    cloned.storer.max_size = 1
    assert channel.storer.max_size != 1
    assert cloned.stale_checkpoint_duration == timedelta(hours=12)


def test_input_config(tmp_path):
    with pytest.raises(ConfigError):
        InputConfig().fix()
    cfg = InputConfig(redis=RedisConfig(addresses=["a:1"]))
    cfg.fix()
    assert cfg.rdb_parallel == 100
    assert cfg.sync_from == SelNodeStrategy.PREFER_SLAVE
    assert cfg.rdb_limiter.acquire(blocking=False)


def test_output_requires_redis():
    with pytest.raises(ConfigError):
        OutputConfig().fix()


def test_cluster_config():
    with pytest.raises(ConfigError):
        ClusterConfig().fix()
    cluster = ClusterConfig(group_name="g", meta_etcd=EtcdConfig(endpoints=["e:1"]))
    cluster.fix()
    assert cluster.lease_timeout == timedelta(seconds=10)
    assert cluster.lease_renew_interval == cluster.lease_timeout / 3
    assert cluster.meta_etcd.ttl == int(cluster.lease_timeout.total_seconds())

    clamped = ClusterConfig(group_name="g", lease_timeout=timedelta(seconds=1))
    clamped.fix()
    assert clamped.lease_timeout == timedelta(seconds=3)
    assert clamped.lease_renew_interval == timedelta(seconds=1)


def test_log_handler_and_log_defaults():
    handler = LogHandlerConfig(file=LogHandlerFileConfig(file_name=""))
    handler.fix()
    assert handler.stdout is True and handler.file is None
    log = LogConfig()
    log.fix()
    assert (log.caller, log.func, log.module_name) == (True, False, True)


def test_log_module_name():
    assert log_module_name("[X] ", None) == "[X] "
    assert log_module_name("[X] ", LogConfig(module_name=True)) == "[X] "
    assert log_module_name("[X] ", LogConfig(module_name=False)) == ""


def test_sync_from_mapping(tmp_path):
    data = _mapping(tmp_path, output_type="cluster")
    data["input"]["mode"] = "static"
    data["input"]["syncFrom"] = "master"
    data["server"] = {"checkRedisTypologyTicker": "1m30s", "listen": "0.0.0.0:9000"}
    data["cluster"] = {"groupName": ""}
    cfg = SyncConfig.from_mapping(data)
    cfg.fix()
    assert cfg.input.mode == InputMode.STATIC
    assert cfg.input.sync_from == SelNodeStrategy.MASTER
    assert cfg.output.redis.type == RedisType.CLUSTER
    assert cfg.input.redis.type == RedisType.STANDALONE
    assert cfg.server.check_redis_typology_ticker == timedelta(seconds=90)
    assert cfg.server.listen_port == 9000
    assert cfg.cluster is None
    assert cfg.log is not None and cfg.log.handler.stdout
    assert (tmp_path / "store").is_dir()


def test_sync_missing_section():
    with pytest.raises(ConfigError):
        SyncConfig.from_mapping({"input": {"redis": {"addresses": ["a:1"]}}}).fix()


def test_sync_cluster_output_rejects_target_db(tmp_path):
    replay = {"targetDb": 2, "resumeFromBreakPoint": False}
    with pytest.raises(ConfigError):
        SyncConfig.from_mapping(_mapping(tmp_path, "cluster", replay)).fix()
    replay = {"targetDbMap": {1: 3}}
    with pytest.raises(ConfigError):
        SyncConfig.from_mapping(_mapping(tmp_path, "cluster", replay)).fix()


def test_sync_invalid_duration(tmp_path):
    data = _mapping(tmp_path)
    data["server"] = {"gracefullStopTimeout": "soon"}
    with pytest.raises(ConfigError):
        SyncConfig.from_mapping(data)