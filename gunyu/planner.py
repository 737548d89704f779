"""Work out which syncers to run for a pair of input and output deployments."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Callable

from .options import InputMode, RedisType, SelNodeStrategy
from .settings import ChannelConfig
from .topology import RedisConfig

_log = logging.getLogger(__name__)

_MIN_STALE_CHECK = timedelta(minutes=5)

CheckMigrating = Callable[[RedisConfig], bool]


class SyncerQuitError(Exception):
    """The configured deployments cannot be synced; the syncer must quit."""


@dataclass
class SyncerSpec:
    """Settings of one syncer: where it reads from and where it writes to."""

    id: int
    can_transaction: bool
    output: RedisConfig
    input: RedisConfig
    channel: ChannelConfig


@dataclass
class SyncerPlan:
    """The syncers to run and which deployments must be watched for changes."""

    specs: list[SyncerSpec] = field(default_factory=list)
    watch_input: bool = False
    watch_output: bool = False
    txn_mode: bool = False


def _as_standalone(cfg: RedisConfig) -> RedisConfig:
    cfg.type = RedisType.STANDALONE
    return cfg


def _div_trunc(a: int, b: int) -> int:
    quotient = abs(a) // abs(b)
    return quotient if (a >= 0) == (b > 0) else -quotient


def _unsupported(input_redis: RedisConfig) -> SyncerQuitError:
    return SyncerQuitError(
        f"does not support redis type : addr({input_redis.address()}), type({input_redis.type})"
    )


def _standalone_output(
    input_redis: RedisConfig,
    output_redis: RedisConfig,
    channel: ChannelConfig,
    sync_from: SelNodeStrategy,
    input_mode: InputMode,
    enable_transaction: bool,
    plan: SyncerPlan,
) -> None:
    if input_redis.is_standalone():
        if len(input_redis.addresses) != len(output_redis.addresses):
            raise SyncerQuitError(
                "the amount of input redis does not equal output redis : "
                f"{len(input_redis.addresses)} != {len(output_redis.addresses)}"
            )
        for i, source in enumerate(input_redis.sel_nodes(False, sync_from)):
            plan.specs.append(
                SyncerSpec(i, enable_transaction, output_redis.index(i), source, channel.clone())
            )
    elif input_redis.is_cluster():
        if len(output_redis.addresses) != 1:
            raise SyncerQuitError(
                "input redis is cluster typology, but output redis is not standalone : "
                f"{output_redis.addresses}"
            )
        all_shards = input_mode != InputMode.STATIC
        for i, source in enumerate(input_redis.sel_nodes(all_shards, sync_from)):
            plan.specs.append(
                SyncerSpec(
                    i,
                    enable_transaction,
                    copy.deepcopy(output_redis),
                    _as_standalone(source),
                    channel.clone(),
                )
            )
        plan.watch_input = True
    else:
        raise _unsupported(input_redis)


def _cluster_output(
    input_redis: RedisConfig,
    output_redis: RedisConfig,
    channel: ChannelConfig,
    sync_from: SelNodeStrategy,
    input_mode: InputMode,
    enable_transaction: bool,
    plan: SyncerPlan,
) -> None:
    if input_redis.is_standalone():
        for i, source in enumerate(input_redis.sel_nodes(False, sync_from)):
            plan.specs.append(
                SyncerSpec(i, False, copy.deepcopy(output_redis), source, channel.clone())
            )
    elif input_redis.is_cluster():
        plan.watch_input = True
        all_shards = input_mode != InputMode.STATIC
        aligned = (
            len(input_redis.get_cluster_shards()) == len(output_redis.get_cluster_shards())
            and not output_redis.is_migrating()
            and not input_redis.is_migrating()
            and input_redis.get_all_slots() == output_redis.get_all_slots()
        )
        inputs = input_redis.sel_nodes(all_shards, sync_from)
        matched: list[RedisConfig] = []
        if aligned:
            outputs = output_redis.sel_nodes(all_shards, SelNodeStrategy.MASTER)
            for source in inputs:
                slots = source.get_all_slots()
                match = next((o for o in outputs if slots == o.get_all_slots()), None)
                if match is None:
                    break
                matched.append(match)

        if aligned and len(matched) == len(inputs):
            for i, (source, target) in enumerate(zip(inputs, matched)):
                plan.specs.append(
                    SyncerSpec(i, enable_transaction, target, _as_standalone(source), channel.clone())
                )
        else:
            for i, source in enumerate(inputs):
                plan.specs.append(
                    SyncerSpec(
                        i,
                        False,
                        copy.deepcopy(output_redis),
                        _as_standalone(source),
                        channel.clone(),
                    )
                )
    else:
        raise _unsupported(input_redis)
    plan.watch_output = True


def _disable_if_migrating(
    plan: SyncerPlan, redis_cfg: RedisConfig, check_migrating: CheckMigrating
) -> None:
    failed = False
    try:
        migrating = bool(check_migrating(redis_cfg))
    except Exception as exc:
        _log.error("check migrating : %s", exc)
        migrating = True
        failed = True
    if not migrating:
        return
    for spec in plan.specs:
        spec.can_transaction = False
    if not failed:
        redis_cfg.set_migrating(True)
    plan.txn_mode = False


def plan_syncers(
    input_redis: RedisConfig,
    output_redis: RedisConfig,
    channel: ChannelConfig,
    sync_from: SelNodeStrategy,
    input_mode: InputMode,
    enable_transaction: bool,
    check_migrating: CheckMigrating,
) -> SyncerPlan:
    """Build one syncer spec per input node.

    Raises :class:`SyncerQuitError` when the pair of deployments is not
    supported. ``check_migrating`` reports whether a cluster is migrating slots
    and may raise; an error counts as migrating. Transactions are disabled
    while either cluster migrates, and a confirmed migration is recorded on
    the deployment.
    """
    plan = SyncerPlan()
    args = (input_redis, output_redis, channel, sync_from, input_mode, enable_transaction, plan)
    try:
        if output_redis.is_standalone():
            _standalone_output(*args)
        elif output_redis.is_cluster():
            _cluster_output(*args)
    except SyncerQuitError as exc:
        _log.error("%s", exc)
        raise

    if plan.specs and channel.storer is not None:
        share = _div_trunc(channel.storer.max_size, len(plan.specs))
        for spec in plan.specs:
            if spec.channel.storer is not None:
                spec.channel.storer.max_size = share

    plan.txn_mode = any(spec.can_transaction for spec in plan.specs)

    if input_redis.is_cluster() and plan.txn_mode:
        _disable_if_migrating(plan, input_redis, check_migrating)
    if output_redis.is_cluster() and plan.txn_mode:
        _disable_if_migrating(plan, output_redis, check_migrating)
    return plan


def stale_check_interval(stale: timedelta) -> timedelta:
    """How often to collect stale checkpoints: half the stale age, at least 5 minutes."""
    return max(stale / 2, _MIN_STALE_CHECK)