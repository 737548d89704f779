"""Syncer configuration sections, their defaults and validation."""

from __future__ import annotations

import copy
import os
import re
import tempfile
import threading
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Mapping

from .options import ConfigError, EtcdConfig, FlushPolicy, InputMode, RedisType, SelNodeStrategy
from .topology import RedisClusterOptions, RedisConfig

_STALE_CHECKPOINT_DURATION = timedelta(hours=12)
_MIB = 1024 * 1024
_GIB = 1024 * _MIB
_KEY_EXISTS_MODES = ("replace", "ignore", "error")


@dataclass
class ServerConfig:
    listen: str = ""
    listen_port: int = 0
    listen_peer: str = ""
    metric_route_path: str = ""
    check_redis_typology_ticker: timedelta = timedelta(0)
    gracefull_stop_timeout: timedelta = timedelta(0)

    def fix(self) -> None:
        if self.check_redis_typology_ticker == timedelta(0):
            self.check_redis_typology_ticker = timedelta(seconds=10)
        elif self.check_redis_typology_ticker < timedelta(seconds=1):
            self.check_redis_typology_ticker = timedelta(seconds=1)

        if self.gracefull_stop_timeout < timedelta(seconds=1):
            self.gracefull_stop_timeout = timedelta(seconds=5)

        if not self.listen:
            self.listen = "127.0.0.1:18001"
        if not self.listen_peer:
            self.listen_peer = self.listen

        parts = self.listen.split(":")
        if len(parts) != 2 or not re.fullmatch(r"[+-]?[0-9]+", parts[1]):
            raise ConfigError("invalid http.listen")
        self.listen_port = int(parts[1])

        if not self.metric_route_path:
            self.metric_route_path = "/prometheus"
        elif not self.metric_route_path.startswith("/"):
            self.metric_route_path = "/" + self.metric_route_path


@dataclass
class InputConfig:
    redis: RedisConfig | None = None
    rdb_parallel: int = 0
    mode: InputMode = InputMode.DYNAMIC
    sync_from: SelNodeStrategy | None = None
    sync_delay_test_key: str = ""
    rdb_limiter: threading.BoundedSemaphore | None = field(
        default=None, init=False, repr=False, compare=False
    )

    def fix(self) -> None:
        if self.redis is None:
            raise ConfigError("input.redis is nil")
        self.redis.fix()
        if self.rdb_parallel <= 0:
            self.rdb_parallel = 100
        self.rdb_limiter = threading.BoundedSemaphore(self.rdb_parallel)
        if self.sync_from is None:
            self.sync_from = SelNodeStrategy.PREFER_SLAVE


@dataclass
class StorerConfig:
    dir_path: str = ""
    max_size: int = 0
    log_size: int = 0
    flush: FlushPolicy = field(default_factory=FlushPolicy)

    def fix(self) -> None:
        """Fill in defaults and make sure the directory exists."""
        if not self.dir_path:
            self.dir_path = tempfile.gettempdir() + "/redis-gunyu/"
        if self.max_size == 0:
            self.max_size = 50 * _GIB
        if self.log_size <= 0:
            self.log_size = 100 * _MIB
        flush = self.flush
        if flush.duration == timedelta(0) and not flush.every_write and flush.dirty_size == 0:
            flush.auto = True
        if flush.duration < timedelta(milliseconds=100):
            flush.duration = timedelta(milliseconds=100)
        if not os.path.exists(self.dir_path):
            os.makedirs(self.dir_path, exist_ok=True)


@dataclass
class ChannelConfig:
    storer: StorerConfig | None = None
    verify_crc: bool = False
    stale_checkpoint_duration: timedelta = timedelta(0)

    def clone(self) -> "ChannelConfig":
        """Copy with its own storer; the stale duration is reset to the default."""
        return ChannelConfig(
            storer=copy.deepcopy(self.storer),
            verify_crc=self.verify_crc,
            stale_checkpoint_duration=_STALE_CHECKPOINT_DURATION,
        )

    def fix(self) -> None:
        if self.storer is None:
            self.storer = StorerConfig()
        if self.stale_checkpoint_duration == timedelta(0):
            self.stale_checkpoint_duration = _STALE_CHECKPOINT_DURATION
        if self.stale_checkpoint_duration < timedelta(minutes=5):
            self.stale_checkpoint_duration = timedelta(minutes=5)
        self.storer.fix()


@dataclass
class OutputStats:
    disable_log: bool = False
    log_interval: timedelta = timedelta(0)


@dataclass
class ReplayConfig:
    resume_from_break_point: bool | None = None
    replace_hash_tag: bool = False
    key_exists: str = ""
    key_exists_log: bool = False
    function_exists: str = ""
    max_proto_bulk_len: int = 0
    target_db_cfg: int | None = None
    target_db: int = 0
    target_db_map: dict[int, int] = field(default_factory=dict)
    batch_cmd_count: int = 0
    batch_ticker: timedelta = timedelta(0)
    batch_buffer_size: int = 0
    keepalive_ticker: timedelta = timedelta(0)
    replay_rdb_parallel: int = 0
    replay_rdb_enable_restore: bool | None = None
    update_checkpoint_ticker: timedelta = timedelta(0)
    replay_transaction: bool | None = None
    stats: OutputStats = field(default_factory=OutputStats)
    aof_pipeline_mode: bool = False

    def fix(self) -> None:
        self.target_db = -1 if self.target_db_cfg is None else self.target_db_cfg
        if self.resume_from_break_point is None:
            self.resume_from_break_point = True
            self.target_db = -1
        if self.replay_rdb_enable_restore is None:
            self.replay_rdb_enable_restore = True

        if self.resume_from_break_point and self.target_db != -1:
            raise ConfigError(
                f"resume from breakpoint, but targetdb is not -1 : db({self.target_db})"
            )

        if self.replay_rdb_parallel <= 0:
            self.replay_rdb_parallel = min((os.cpu_count() or 1) * 4, 128 * 4)

        if self.replay_transaction is None:
            self.replay_transaction = True

        self.key_exists = self.key_exists.lower()
        if self.key_exists not in _KEY_EXISTS_MODES:
            self.key_exists = "replace"
        if self.max_proto_bulk_len <= 0:
            self.max_proto_bulk_len = 512 * _MIB

        if self.batch_cmd_count <= 0 or self.batch_cmd_count > 200:
            self.batch_cmd_count = 100
        if self.batch_ticker <= timedelta(milliseconds=1) or self.batch_ticker > timedelta(seconds=10):
            self.batch_ticker = timedelta(milliseconds=10)
        if self.keepalive_ticker <= timedelta(seconds=1):
            self.keepalive_ticker = timedelta(seconds=3)
        if (
            self.update_checkpoint_ticker <= timedelta(milliseconds=1)
            or self.update_checkpoint_ticker > timedelta(seconds=10)
        ):
            self.update_checkpoint_ticker = timedelta(seconds=1)

        if self.batch_buffer_size == 0:
            self.batch_buffer_size = 65535
        elif self.batch_buffer_size >= 100 * _MIB:
            raise ValueError(f"BatchBufferSize[{self.batch_buffer_size}] should in (0, 100MiB]")
        if self.target_db_map is None:
            self.target_db_map = {}
        self.function_exists = self.function_exists.lower()

        if self.stats.log_interval < timedelta(seconds=1):
            self.stats.log_interval = timedelta(seconds=5)


@dataclass
class FilterKeyConfig:
    prefix_key_whitelist: list[str] = field(default_factory=list)
    prefix_key_blacklist: list[str] = field(default_factory=list)


@dataclass
class FilterSlotConfig:
    key_slot_whitelist: list[list[int]] = field(default_factory=list)
    key_slot_blacklist: list[list[int]] = field(default_factory=list)


@dataclass
class FilterConfig:
    db_blacklist: list[int] = field(default_factory=list)
    cmd_blacklist: list[str] = field(default_factory=list)
    key_filter: FilterKeyConfig | None = None
    slot_filter: FilterSlotConfig | None = None


@dataclass
class OutputConfig:
    redis: RedisConfig | None = None
    replay: ReplayConfig = field(default_factory=ReplayConfig)
    filter: FilterConfig = field(default_factory=FilterConfig)

    def fix(self) -> None:
        if self.redis is None:
            raise ConfigError("output.redis is nil")
        self.redis.fix()
        self.replay.fix()


@dataclass
class LogHandlerFileConfig:
    file_name: str = ""
    max_size: int = 0
    max_backups: int = 0
    max_age: int = 0


@dataclass
class LogHandlerConfig:
    file: LogHandlerFileConfig | None = None
    stdout: bool = False

    def fix(self) -> None:
        if (self.file is None or not self.file.file_name) and not self.stdout:
            self.stdout = True
            self.file = None


@dataclass
class LogConfig:
    level_str: str = ""
    stacktrace_level_str: str = ""
    handler: LogHandlerConfig = field(default_factory=LogHandlerConfig)
    caller: bool | None = None
    func: bool | None = None
    module_name: bool | None = None

    def fix(self) -> None:
        self.handler.fix()
        if self.caller is None:
            self.caller = True
        if self.func is None:
            self.func = False
        if self.module_name is None:
            self.module_name = True


def log_module_name(prefix: str, log_config: LogConfig | None) -> str:
    """The logger prefix to use, or an empty string if module names are off."""
    if log_config is None or log_config.module_name is None or log_config.module_name:
        return prefix
    return ""


@dataclass
class ClusterConfig:
    group_name: str = ""
    meta_etcd: EtcdConfig | None = None
    lease_timeout: timedelta = timedelta(0)
    lease_renew_interval: timedelta = timedelta(0)

    def fix(self) -> None:
        if not self.group_name:
            raise ConfigError("cluster.groupName is empty")
        if self.meta_etcd is not None:
            self.meta_etcd.fix()

        if self.lease_timeout == timedelta(0):
            self.lease_timeout = timedelta(seconds=10)
        if self.lease_timeout < timedelta(seconds=3):
            self.lease_timeout = timedelta(seconds=3)
        elif self.lease_timeout > timedelta(seconds=600):
            self.lease_timeout = timedelta(seconds=600)

        third = self.lease_timeout / 3
        if self.lease_renew_interval == timedelta(0):
            self.lease_renew_interval = third
        if self.lease_renew_interval < timedelta(seconds=1):
            self.lease_renew_interval = timedelta(seconds=1)
        elif self.lease_renew_interval > third:
            self.lease_renew_interval = third

        if self.meta_etcd is not None:
            self.meta_etcd.ttl = int(self.lease_timeout.total_seconds())


@dataclass
class SyncConfig:
    input: InputConfig | None = None
    output: OutputConfig | None = None
    channel: ChannelConfig | None = None
    cluster: ClusterConfig | None = None
    log: LogConfig | None = None
    server: ServerConfig = field(default_factory=ServerConfig)

    def fix(self) -> None:
        """Validate every section and fill in defaults."""
        if self.input is None or self.output is None or self.channel is None:
            raise ConfigError("one of input, output and channel is nil")
        if self.log is None:
            self.log = LogConfig()

        for section in (self.input, self.output, self.channel, self.log):
            section.fix()

        if self.output.redis.type == RedisType.CLUSTER:
            if self.output.replay.target_db in (-1, 0):
                self.output.filter.db_blacklist = []
            else:
                raise ConfigError("redis is cluster, but targetdb is not 0")
            for db in self.output.replay.target_db_map.values():
                if db != 0:
                    raise ConfigError(f"redis is cluster, but targetdb is not 0 : {db}")

        if self.cluster is not None:
            if self.cluster.group_name:
                self.cluster.fix()
            else:
                self.cluster = None
        self.server.fix()

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "SyncConfig":
        """Build an unfixed configuration from a parsed YAML document."""
        data = data or {}
        return cls(
            input=_input_from_mapping(data.get("input")),
            output=_output_from_mapping(data.get("output")),
            channel=_channel_from_mapping(data.get("channel")),
            cluster=_cluster_from_mapping(data.get("cluster")),
            log=_log_from_mapping(data.get("log")),
            server=_server_from_mapping(data.get("server")),
        )


_DURATION_UNITS_US = {
    "ns": 1e-3,
    "us": 1.0,
    "µs": 1.0,
    "μs": 1.0,
    "ms": 1e3,
    "s": 1e6,
    "m": 60e6,
    "h": 3600e6,
}
_DURATION_RE = re.compile(r"([0-9]+(?:\.[0-9]*)?|\.[0-9]+)(ns|us|µs|μs|ms|s|m|h)")


def _duration(value: Any) -> timedelta:
    """Read a duration: a string such as ``1m30s`` or an integer of nanoseconds."""
    if value is None:
        return timedelta(0)
    if isinstance(value, timedelta):
        return value
    if isinstance(value, bool):
        raise ConfigError(f"invalid duration : {value}")
    if isinstance(value, (int, float)):
        return timedelta(microseconds=value / 1000)
    text = str(value).strip()
    sign = 1
    if text and text[0] in "+-":
        sign = -1 if text[0] == "-" else 1
        text = text[1:]
    if text == "0":
        return timedelta(0)
    total = 0.0
    pos = 0
    for match in _DURATION_RE.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _DURATION_UNITS_US[match.group(2)]
        pos = match.end()
    if pos == 0 or pos != len(text):
        raise ConfigError(f"invalid duration : {value}")
    return timedelta(microseconds=sign * total)


def _strings(value: Any) -> list[str]:
    return [] if value is None else [str(v) for v in value]


def _ints(value: Any) -> list[int]:
    return [] if value is None else [int(v) for v in value]


def _opt_bool(value: Any) -> bool | None:
    return None if value is None else bool(value)


def _redis_from_mapping(data: Mapping[str, Any] | None) -> RedisConfig | None:
    if data is None:
        return None
    options = data.get("clusterOptions")
    return RedisConfig(
        addresses=_strings(data.get("addresses")),
        user_name=str(data.get("userName") or ""),
        password=str(data.get("password") or ""),
        tls_enable=bool(data.get("tlsEnable", False)),
        type=RedisType.parse(str(data["type"])) if data.get("type") is not None else RedisType.UNKNOWN,
        otype=RedisType.parse(str(data["otype"])) if data.get("otype") is not None else RedisType.UNKNOWN,
        version=str(data.get("version") or ""),
        internal_service=data.get("internalService"),
        external_service=data.get("externalService"),
        cluster_options=None
        if options is None
        else RedisClusterOptions(
            handle_move_err=bool(options.get("handleMoveErr", False)),
            handle_ask_err=bool(options.get("handleAskErr", False)),
        ),
        keep_alive=int(data.get("keepAlive") or 0),
        alive_time=_duration(data.get("aliveTime")),
    )


def _input_from_mapping(data: Mapping[str, Any] | None) -> InputConfig | None:
    if data is None:
        return None
    sync_from = data.get("syncFrom")
    return InputConfig(
        redis=_redis_from_mapping(data.get("redis")),
        rdb_parallel=int(data.get("rdbParallel") or 0),
        mode=InputMode.parse(str(data.get("mode") or "")),
        sync_from=None if sync_from is None else SelNodeStrategy.parse(str(sync_from)),
        sync_delay_test_key=str(data.get("syncDelayTestKey") or ""),
    )


def _storer_from_mapping(data: Mapping[str, Any] | None) -> StorerConfig | None:
    if data is None:
        return None
    flush = data.get("flushPolicy") or {}
    return StorerConfig(
        dir_path=str(data.get("dirPath") or ""),
        max_size=int(data.get("maxSize") or 0),
        log_size=int(data.get("logSize") or 0),
        flush=FlushPolicy(
            duration=_duration(flush.get("duration")),
            every_write=bool(flush.get("everywrite", False)),
            dirty_size=int(flush.get("dirtysize") or 0),
            auto=bool(flush.get("auto", False)),
        ),
    )


def _channel_from_mapping(data: Mapping[str, Any] | None) -> ChannelConfig | None:
    if data is None:
        return None
    return ChannelConfig(
        storer=_storer_from_mapping(data.get("storer")),
        verify_crc=bool(data.get("verifycrc", False)),
        stale_checkpoint_duration=_duration(data.get("staleCheckpointDuration")),
    )


def _replay_from_mapping(data: Mapping[str, Any] | None) -> ReplayConfig:
    data = data or {}
    stats = data.get("stats") or {}
    target_db = data.get("targetDb")
    return ReplayConfig(
        resume_from_break_point=_opt_bool(data.get("resumeFromBreakPoint")),
        replace_hash_tag=bool(data.get("replaceHashTag", False)),
        key_exists=str(data.get("keyExists") or ""),
        key_exists_log=bool(data.get("keyExistsLog", False)),
        function_exists=str(data.get("functionExists") or ""),
        max_proto_bulk_len=int(data.get("maxProtoBulkLen") or 0),
        target_db_cfg=None if target_db is None else int(target_db),
        target_db_map={int(k): int(v) for k, v in (data.get("targetDbMap") or {}).items()},
        batch_cmd_count=int(data.get("batchCmdCount") or 0),
        batch_ticker=_duration(data.get("batchTicker")),
        batch_buffer_size=int(data.get("batchBufferSize") or 0),
        keepalive_ticker=_duration(data.get("keepaliveTicker")),
        replay_rdb_parallel=int(data.get("replayRdbParallel") or 0),
        replay_rdb_enable_restore=_opt_bool(data.get("replayRdbEnableRestore")),
        update_checkpoint_ticker=_duration(data.get("updateCheckpointTicker")),
        replay_transaction=_opt_bool(data.get("replayTransaction")),
        stats=OutputStats(
            disable_log=bool(stats.get("disableLog", False)),
            log_interval=_duration(stats.get("logInterval")),
        ),
        aof_pipeline_mode=bool(data.get("enableAofPipeline", False)),
    )


def _filter_from_mapping(data: Mapping[str, Any] | None) -> FilterConfig:
    data = data or {}
    key_filter = data.get("keyFilter")
    slot_filter = data.get("slotFilter")
    return FilterConfig(
        db_blacklist=_ints(data.get("dbBlacklist")),
        cmd_blacklist=_strings(data.get("commandBlacklist")),
        key_filter=None
        if key_filter is None
        else FilterKeyConfig(
            prefix_key_whitelist=_strings(key_filter.get("prefixKeyWhitelist")),
            prefix_key_blacklist=_strings(key_filter.get("prefixKeyBlacklist")),
        ),
        slot_filter=None
        if slot_filter is None
        else FilterSlotConfig(
            key_slot_whitelist=[_ints(g) for g in slot_filter.get("keySlotWhitelist") or []],
            key_slot_blacklist=[_ints(g) for g in slot_filter.get("keySlotBlacklist") or []],
        ),
    )


def _output_from_mapping(data: Mapping[str, Any] | None) -> OutputConfig | None:
    if data is None:
        return None
    return OutputConfig(
        redis=_redis_from_mapping(data.get("redis")),
        replay=_replay_from_mapping(data.get("replay")),
        filter=_filter_from_mapping(data.get("filter")),
    )


def _log_from_mapping(data: Mapping[str, Any] | None) -> LogConfig | None:
    if data is None:
        return None
    handler = data.get("handler") or {}
    file_data = handler.get("file")
    return LogConfig(
        level_str=str(data.get("level") or ""),
        stacktrace_level_str=str(data.get("StacktraceLevel") or ""),
        handler=LogHandlerConfig(
            file=None
            if file_data is None
            else LogHandlerFileConfig(
                file_name=str(file_data.get("fileName") or ""),
                max_size=int(file_data.get("maxSize") or 0),
                max_backups=int(file_data.get("maxBackups") or 0),
                max_age=int(file_data.get("maxAge") or 0),
            ),
            stdout=bool(handler.get("stdout", False)),
        ),
        caller=_opt_bool(data.get("withCaller")),
        func=_opt_bool(data.get("withFunc")),
        module_name=_opt_bool(data.get("withModuleName")),
    )


def _etcd_from_mapping(data: Mapping[str, Any] | None) -> EtcdConfig | None:
    if data is None:
        return None
    return EtcdConfig(
        endpoints=_strings(data.get("endpoints")),
        auto_sync_interval=_duration(data.get("autosyncinterval")),
        dial_timeout=_duration(data.get("dialtimeout")),
        dial_keep_alive_time=_duration(data.get("dialkeepalivetime")),
        dial_keep_alive_timeout=_duration(data.get("dialkeepalivetimeout")),
        username=str(data.get("username") or ""),
        password=str(data.get("password") or ""),
        reject_old_cluster=bool(data.get("rejectoldcluster", False)),
        ttl=int(data.get("ttl") or 0),
    )


def _cluster_from_mapping(data: Mapping[str, Any] | None) -> ClusterConfig | None:
    if data is None:
        return None
    return ClusterConfig(
        group_name=str(data.get("groupName") or ""),
        meta_etcd=_etcd_from_mapping(data.get("metaEtcd")),
        lease_timeout=_duration(data.get("leaseTimeout")),
        lease_renew_interval=_duration(data.get("leaseRenewInterval")),
    )


def _server_from_mapping(data: Mapping[str, Any] | None) -> ServerConfig:
    data = data or {}
    return ServerConfig(
        listen=str(data.get("listen") or ""),
        listen_peer=str(data.get("listenPeer") or ""),
        metric_route_path=str(data.get("metricRoutePath") or ""),
        check_redis_typology_ticker=_duration(data.get("checkRedisTypologyTicker")),
        gracefull_stop_timeout=_duration(data.get("gracefullStopTimeout")),
    )