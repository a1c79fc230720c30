from enum import Enum
from typing import Dict, FrozenSet

from .errors import InvalidStateTransition


class PipelineStatus(str, Enum):
    PENDING = "PENDING"
    PROVISIONING = "PROVISIONING"
    PROVISIONED = "PROVISIONED"
    PROVISION_FAILED = "PROVISION_FAILED"
    CONFIGURING = "CONFIGURING"
    DONE = "DONE"
    CONFIGURE_FAILED = "CONFIGURE_FAILED"


TRANSITIONS: Dict[PipelineStatus, FrozenSet[PipelineStatus]] = {
    PipelineStatus.PENDING: frozenset({PipelineStatus.PROVISIONING}),
    PipelineStatus.PROVISIONING: frozenset({PipelineStatus.PROVISIONED, PipelineStatus.PROVISION_FAILED}),
    PipelineStatus.PROVISIONED: frozenset({PipelineStatus.CONFIGURING}),
    PipelineStatus.CONFIGURING: frozenset({PipelineStatus.DONE, PipelineStatus.CONFIGURE_FAILED}),
}

# 失败状态也是终态，不会自动重试
TERMINAL = frozenset({PipelineStatus.DONE, PipelineStatus.PROVISION_FAILED, PipelineStatus.CONFIGURE_FAILED})


def transition(current: PipelineStatus, target: PipelineStatus) -> PipelineStatus:
    if target not in TRANSITIONS.get(current, frozenset()):
        raise InvalidStateTransition(current.value, target.value)
    return target


def is_terminal(status: PipelineStatus) -> bool:
    return status in TERMINAL
