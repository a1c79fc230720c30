"""
Build plan

Derives the creation order of the declared resources from their reference
edges and drives plan / apply / destroy against an ``IEc2Client``.
"""

from dataclasses import dataclass, field
from graphlib import CycleError, TopologicalSorter
from typing import Dict, Iterable, List, Optional

from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger

from utils.wait_until import WaitUntilTimeoutError

from .desired_state import DesiredState
from .errors import PlanError, ResourceCreationError, ResourceDeletionError
from .provider_interface import IEc2Client
from .readiness import wait_for_running, wait_for_ssh_port_ready
from .resources import HANDLER_TYPES, Refs, ResourceHandler
from .types import Action, InstanceInfo, ResourceKind

# failures of the cloud API or of a bounded readiness wait
CLOUD_ERRORS = (ClientError, BotoCoreError, WaitUntilTimeoutError, RuntimeError)


@dataclass
class PlannedChange:
    kind: ResourceKind
    name: str
    action: Action
    reason: str
    resource_id: Optional[str] = None

    def __str__(self):
        rid = f" ({self.resource_id})" if self.resource_id else ""
        return f"{self.action.value:<8} {self.kind.value:<24} {self.name}{rid}: {self.reason}"


@dataclass
class Plan:
    changes: List[PlannedChange] = field(default_factory=list)

    @property
    def mutations(self) -> List[PlannedChange]:
        return [c for c in self.changes if c.action != Action.NOOP]

    def is_empty(self) -> bool:
        return len(self.mutations) == 0

    def get(self, kind: ResourceKind) -> PlannedChange:
        for change in self.changes:
            if change.kind == kind:
                return change
        raise KeyError(kind)


@dataclass
class ApplyResult:
    resource_ids: Dict[ResourceKind, str]
    instance: InstanceInfo
    changes: List[PlannedChange]
    ssh_ready: Optional[bool] = None

    @property
    def mutations(self) -> int:
        return sum(1 for c in self.changes if c.action != Action.NOOP)

    @property
    def instance_id(self) -> str:
        return self.instance.instance_id

    @property
    def public_ip(self) -> str:
        assert self.instance.public_ip is not None
        return self.instance.public_ip

    @property
    def host_replaced(self) -> bool:
        return any(c.kind == ResourceKind.INSTANCE and c.action in (Action.CREATE, Action.REPLACE)
                   for c in self.changes)


def resource_graph(state: DesiredState, handler_types: Iterable[type] = HANDLER_TYPES) -> Dict[ResourceKind, ResourceHandler]:
    handlers = [handler_type(state) for handler_type in handler_types]
    return {handler.kind: handler for handler in handlers}


def ordered(graph: Dict[ResourceKind, ResourceHandler]) -> List[ResourceHandler]:
    """Order handlers so that every resource comes after the resources it references."""
    sorter = TopologicalSorter()
    for kind, handler in graph.items():
        for dep in handler.depends_on:
            if dep not in graph:
                raise PlanError(f"{kind.value} references undeclared resource {dep.value}")
        sorter.add(kind, *handler.depends_on)

    try:
        order = list(sorter.static_order())
    except CycleError as e:
        raise PlanError(f"Resource references form a cycle: {e.args[1]}") from e
    return [graph[kind] for kind in order]


def _check_access_policy(state: DesiredState):
    if state.instance.ssh_port not in state.access_policy.open_ports():
        logger.warning(f"Access policy does not open management port {state.instance.ssh_port}, "
                       f"the configuration stage will not be able to connect")


def plan(client: IEc2Client, state: DesiredState, graph: Optional[Dict[ResourceKind, ResourceHandler]] = None) -> Plan:
    """Compute the changes ``apply`` would make, without mutating anything."""
    graph = graph or resource_graph(state)
    _check_access_policy(state)

    refs: Refs = {}
    result = Plan()
    for handler in ordered(graph):
        live = handler.lookup(client, refs)
        action, reason = handler.diff(client, live, refs)
        resource_id = handler.resource_id(live) if live is not None else None
        # 需要新建或替换的资源在 plan 阶段还没有 id
        refs[handler.kind] = resource_id if action in (Action.NOOP, Action.UPDATE) else None
        result.changes.append(PlannedChange(handler.kind, handler.name, action, reason, resource_id))
    return result


def apply(client: IEc2Client, state: DesiredState, *, wait_ssh: bool = False, ssh_timeout: int = 300,
          graph: Optional[Dict[ResourceKind, ResourceHandler]] = None) -> ApplyResult:
    """Converge live resources to ``state`` in dependency order.

    The first failure raises ``ResourceCreationError``; resources created
    before it stay live.
    """
    graph = graph or resource_graph(state)
    _check_access_policy(state)

    refs: Refs = {}
    changes: List[PlannedChange] = []
    for handler in ordered(graph):
        try:
            live = handler.lookup(client, refs)
            action, reason = handler.diff(client, live, refs)

            if action == Action.CREATE:
                logger.info(f"Creating {handler.kind.value} {handler.name}: {reason}")
                resource_id = handler.create(client, refs)
                logger.success(f"Created {handler.kind.value} {handler.name}: {resource_id}")
            elif action == Action.UPDATE:
                resource_id = handler.resource_id(live)
                logger.info(f"Updating {handler.kind.value} {handler.name} ({resource_id}): {reason}")
                handler.update(client, live, refs)
            elif action == Action.REPLACE:
                logger.info(f"Replacing {handler.kind.value} {handler.name} ({handler.resource_id(live)}): {reason}")
                handler.delete(client, live, refs)
                resource_id = handler.create(client, refs)
                logger.success(f"Replaced {handler.kind.value} {handler.name}: {resource_id}")
            else:
                resource_id = handler.resource_id(live)
                logger.debug(f"{handler.kind.value} {handler.name} up to date: {resource_id}")
        except CLOUD_ERRORS as e:
            logger.error(f"Failed to converge {handler.kind.value} {handler.name}: {e}")
            raise ResourceCreationError(handler.kind.value, str(e)) from e

        refs[handler.kind] = resource_id
        changes.append(PlannedChange(handler.kind, handler.name, action, reason, resource_id))

    instance_id = refs[ResourceKind.INSTANCE]
    assert instance_id is not None
    try:
        instance = wait_for_running(client, instance_id)
    except CLOUD_ERRORS as e:
        raise ResourceCreationError(ResourceKind.INSTANCE.value, f"instance {instance_id} not running: {e}") from e

    result = ApplyResult(resource_ids={k: v for k, v in refs.items() if v is not None}, instance=instance, changes=changes)
    if wait_ssh:
        assert instance.public_ip is not None
        result.ssh_ready = wait_for_ssh_port_ready(instance.public_ip, state.instance.ssh_port, timeout=ssh_timeout)

    logger.success(f"Apply complete: {result.mutations} change(s), host {instance.instance_id} at {instance.public_ip}")
    return result


def destroy(client: IEc2Client, state: DesiredState, graph: Optional[Dict[ResourceKind, ResourceHandler]] = None) -> List[PlannedChange]:
    """Tear down every live resource of ``state`` in reverse dependency order."""
    graph = graph or resource_graph(state)
    order = ordered(graph)

    refs: Refs = {}
    lives = {}
    for handler in order:
        live = handler.lookup(client, refs)
        lives[handler.kind] = live
        refs[handler.kind] = handler.resource_id(live) if live is not None else None

    deleted: List[PlannedChange] = []
    for handler in reversed(order):
        live = lives[handler.kind]
        if live is None:
            logger.debug(f"{handler.kind.value} {handler.name} already absent")
            continue
        resource_id = handler.resource_id(live)
        logger.info(f"Deleting {handler.kind.value} {handler.name}: {resource_id}")
        try:
            handler.delete(client, live, refs)
        except CLOUD_ERRORS as e:
            logger.error(f"Failed to delete {handler.kind.value} {handler.name}: {e}")
            raise ResourceDeletionError(handler.kind.value, str(e)) from e
        deleted.append(PlannedChange(handler.kind, handler.name, Action.NOOP, "deleted", resource_id))

    logger.success(f"Destroy complete: {len(deleted)} resource(s) deleted")
    return deleted
