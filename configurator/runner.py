import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from loguru import logger

from host_handoff.artifact import HandoffArtifact
from host_handoff.fetch import fetch_host_record

from .errors import RemoteConnectionError, TaskFailedError
from .remote import RemoteSession, run_sync
from .steps import build_command, changed
from .task_list import TaskList


@dataclass
class TaskOutcome:
    name: str
    type: str
    changed: bool
    elapsed: float


@dataclass
class RunReport:
    host: str
    outcomes: List[TaskOutcome] = field(default_factory=list)

    @property
    def changed_tasks(self) -> List[str]:
        return [o.name for o in self.outcomes if o.changed]

    @property
    def changed(self) -> bool:
        return len(self.changed_tasks) > 0


def default_session(artifact: HandoffArtifact) -> RemoteSession:
    return RemoteSession(
        artifact.public_ip,
        ssh_user=artifact.ssh_user,
        ssh_key_path=artifact.ssh_key_path,
        port=artifact.ssh_port,
    )


def check_management_port(artifact: HandoffArtifact):
    if artifact.open_ports and artifact.ssh_port not in artifact.open_ports:
        raise RemoteConnectionError(
            artifact.public_ip,
            f"management port {artifact.ssh_port} is not opened by the access policy (open: {artifact.open_ports})")


async def run_tasks(
    artifact: HandoffArtifact,
    task_list: TaskList,
    *,
    session_factory: Optional[Callable[[HandoffArtifact], RemoteSession]] = None,
    record_timeout: float = 300,
    record_retry_interval: float = 5,
    task_timeout: float = 1800,
) -> RunReport:
    """Apply ``task_list`` to the host named by ``artifact``, in order.

    The host's own record is confirmed before the first task. The first
    failing task raises ``TaskFailedError`` and the remaining tasks are not
    run.
    """
    check_management_port(artifact)
    session = (session_factory or default_session)(artifact)
    report = RunReport(host=artifact.public_ip)

    with logger.contextualize(host=artifact.public_ip):
        async with session:
            await fetch_host_record(session, artifact, timeout=record_timeout, retry_interval=record_retry_interval)

            total = len(task_list.tasks)
            for index, task in enumerate(task_list.tasks, start=1):
                command = build_command(task, become=task_list.become)
                start = time.time()
                res = await session.run(command.script, input=command.stdin, timeout=task_timeout)
                elapsed = time.time() - start

                if not res.success:
                    logger.error(f"[{index}/{total}] {task.name} failed (exit {res.return_code}): {res.stderr.strip()}")
                    raise TaskFailedError(task.name, artifact.public_ip, res.return_code, res.stderr)

                outcome = TaskOutcome(task.name, task.type, changed(res.stdout), elapsed)
                report.outcomes.append(outcome)
                status = "changed" if outcome.changed else "ok"
                logger.info(f"[{index}/{total}] {task.name}: {status} ({elapsed:.1f}s)")

    logger.success(f"Configured {artifact.public_ip}: {len(report.changed_tasks)} of {len(report.outcomes)} task(s) changed")
    return report


def run_tasks_sync(artifact: HandoffArtifact, task_list: TaskList, **kwargs) -> RunReport:
    return run_sync(run_tasks(artifact, task_list, **kwargs))
