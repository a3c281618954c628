"""
Cluster Reconciler - Ephemeral Kubernetes clusters on the vendor platform.

Clusters are create-only: every shape field forces replacement, and update
only re-persists the declared TTL and wait duration. Create can optionally
block until the cluster is running so its kubeconfig lands in state.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, replace
from datetime import timedelta
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Type

from errors import (
    NotFoundError,
    ProvisionFailure,
    ReconcileError,
    RemoteServerError,
    ValidationError,
)
from models import (
    Cluster,
    ClusterConfig,
    ClusterState,
    ClusterStatus,
    CreateClusterOpts,
    record_to_dict,
)
from plugins.reconcilers.base import ReconcilerPlugin, ReconcileResult
from validation import parse_duration
from vendor_client import VendorAPIClient

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 5

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[Any]]


class WaitPhase(Enum):
    """States of the wait-until-ready protocol."""

    POLLING = "polling"
    READY = "ready"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass
class WaitOutcome:
    """Terminal phase reached by a wait and the last cluster observed."""

    phase: WaitPhase
    cluster: Cluster
    elapsed: float = 0.0


def next_wait_phase(cluster: Cluster, elapsed: float, timeout: float) -> WaitPhase:
    """Transition rule evaluated once per poll."""
    if cluster.status is ClusterStatus.RUNNING:
        return WaitPhase.READY
    if cluster.status.is_failed:
        return WaitPhase.FAILED
    if elapsed > timeout:
        return WaitPhase.TIMED_OUT
    return WaitPhase.POLLING


class ClusterWaiter:
    """
    Polls a cluster until it is running, has failed, or the deadline passes.

    Polls are a fixed interval apart with no backoff. Running out of time is
    not an error: the last observed cluster is returned as TIMED_OUT. A
    failed status raises ProvisionFailure, and any API error aborts the wait.
    """

    def __init__(
        self,
        client: VendorAPIClient,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ):
        self.client = client
        self.poll_interval = poll_interval
        self.clock = clock
        self.sleep = sleep

    async def wait(self, cluster_id: str, timeout: float) -> WaitOutcome:
        """
        Wait for a cluster to reach a terminal phase.

        Args:
            cluster_id: The cluster to poll.
            timeout: Seconds to wait before giving up.

        Returns:
            WaitOutcome with phase READY or TIMED_OUT.

        Raises:
            ProvisionFailure: If the cluster reports an error status.
        """
        start = self.clock()

        while True:
            cluster = await self.client.get_cluster(cluster_id)
            elapsed = self.clock() - start
            phase = next_wait_phase(cluster, elapsed, timeout)

            if phase is WaitPhase.FAILED:
                raise ProvisionFailure(
                    f"cluster failed to provision (status: {cluster.status.value})",
                    remote_object=cluster,
                )
            if phase is not WaitPhase.POLLING:
                return WaitOutcome(phase=phase, cluster=cluster, elapsed=elapsed)

            logger.debug(
                f"Cluster {cluster_id} status: {cluster.status.value}, "
                f"waiting {self.poll_interval}s..."
            )
            await self.sleep(self.poll_interval)


class ClusterReconciler(ReconcilerPlugin):
    """Reconciler for the 'replicated_cluster' kind."""

    replace_fields = frozenset(
        {"distribution", "name", "version", "instance_type", "disk", "nodes"}
    )
    computed_fields = frozenset({"name", "version", "instance_type", "disk", "nodes"})

    def __init__(
        self,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ):
        super().__init__()
        self.poll_interval = poll_interval
        self.clock = clock
        self.sleep = sleep

    @property
    def name(self) -> str:
        return "replicated_cluster"

    @property
    def config_type(self) -> Type:
        return ClusterConfig

    @property
    def state_type(self) -> Type:
        return ClusterState

    @property
    def schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "required": ["distribution"],
            "additionalProperties": False,
            "properties": {
                "distribution": {"type": "string", "minLength": 1},
                "name": {"type": "string"},
                "version": {"type": "string"},
                "instance_type": {"type": "string"},
                "disk": {"type": "integer", "minimum": 0},
                "nodes": {"type": "integer", "minimum": 0},
                "ttl": {"type": "string"},
                "wait_duration": {"type": "string"},
            },
        }

    async def create(self, config: ClusterConfig) -> ReconcileResult:
        if not config.distribution:
            raise ValidationError("Unable to create cluster: distribution is required")

        wait_duration = _parse_duration_field("wait duration", config.wait_duration)
        ttl = _parse_duration_field("ttl", config.ttl)

        opts = CreateClusterOpts(
            kubernetes_distribution=config.distribution,
            name=config.name,
            kubernetes_version=config.version,
            instance_type=config.instance_type,
            disk_gib=config.disk if config.disk > 0 else 0,
            node_count=config.nodes if config.nodes > 0 else 0,
            ttl=config.ttl if ttl > timedelta(0) else "",
        )

        result = await self.client.create_cluster(opts)
        if result.validation_errors:
            raise ValidationError(
                "Unable to create cluster, got error: "
                + "; ".join(result.validation_errors),
                errors=result.validation_errors,
                remote_object=result.cluster,
            )
        if result.cluster is None:
            raise RemoteServerError("Unable to create cluster: no cluster returned")

        cluster = result.cluster
        state = ClusterState(
            distribution=config.distribution,
            name=cluster.name,
            version=cluster.kubernetes_version,
            instance_type=cluster.instance_type or config.instance_type,
            disk=cluster.disk_gib,
            nodes=cluster.node_count,
            ttl=config.ttl,
            wait_duration=config.wait_duration,
            id=cluster.id,
            kubeconfig="",
        )
        logger.info(f"Created cluster {cluster.id} ({cluster.name})")

        if wait_duration > timedelta(0):
            waiter = ClusterWaiter(
                self.client,
                poll_interval=self.poll_interval,
                clock=self.clock,
                sleep=self.sleep,
            )
            try:
                outcome = await waiter.wait(cluster.id, wait_duration.total_seconds())
                if outcome.phase is WaitPhase.READY:
                    state.kubeconfig = await self._fetch_kubeconfig(cluster.id)
            except ReconcileError as e:
                if e.remote_object is None:
                    e.remote_object = cluster
                raise

            if outcome.phase is WaitPhase.READY:
                logger.info(f"Cluster {cluster.id} is running")
            else:
                logger.info(
                    f"Cluster {cluster.id} not running after {config.wait_duration} "
                    f"(status: {outcome.cluster.status.value}); continuing without kubeconfig"
                )

        return ReconcileResult(state=state, message="created")

    async def read(self, state: ClusterState) -> ReconcileResult:
        try:
            cluster = await self.client.get_cluster(state.id)
        except NotFoundError:
            logger.warning(f"Cluster {state.id} no longer exists, dropping from state")
            return ReconcileResult.drop(f"cluster {state.id} not found")

        refreshed = replace(
            state,
            id=cluster.id,
            name=cluster.name,
            distribution=cluster.kubernetes_distribution,
            version=cluster.kubernetes_version,
            instance_type=cluster.instance_type or state.instance_type,
            disk=cluster.disk_gib,
            nodes=cluster.node_count,
            kubeconfig="",
        )
        if cluster.status is ClusterStatus.RUNNING:
            refreshed.kubeconfig = await self._fetch_kubeconfig(cluster.id)

        return ReconcileResult(state=refreshed, message="refreshed")

    async def update(self, state: ClusterState, config: ClusterConfig) -> ReconcileResult:
        # Clusters cannot be changed in place; only the declaration is persisted.
        updated = ClusterState(
            **record_to_dict(config), id=state.id, kubeconfig=state.kubeconfig
        )
        for name in self.computed_fields:
            if not getattr(updated, name):
                setattr(updated, name, getattr(state, name))

        logger.info(f"Cluster {state.id} updated in state only")
        return ReconcileResult(state=updated, message="updated")

    async def delete(self, state: ClusterState) -> None:
        await self.client.remove_cluster(state.id)

    async def discard(self, remote_object: Cluster) -> None:
        logger.info(f"Removing cluster {remote_object.id} left by a failed create")
        await self.client.remove_cluster(remote_object.id)

    async def import_state(self, resource_id: str) -> ReconcileResult:
        if not resource_id:
            raise ValidationError("Cannot import cluster: empty id")
        return await self.read(ClusterState(distribution="", id=resource_id))

    async def _fetch_kubeconfig(self, cluster_id: str) -> str:
        kubeconfig = await self.client.get_cluster_kubeconfig(cluster_id)
        try:
            return kubeconfig.decode("utf-8")
        except UnicodeDecodeError as e:
            raise RemoteServerError(
                f"Kubeconfig for cluster {cluster_id} is not valid UTF-8: {e}"
            ) from e


def _parse_duration_field(label: str, value: str) -> timedelta:
    """Parse an optional duration field; empty means zero."""
    if not value:
        return timedelta(0)
    try:
        return parse_duration(value)
    except ValueError as e:
        raise ValidationError(f"Invalid {label}: unable to parse {value!r}: {e}") from e
