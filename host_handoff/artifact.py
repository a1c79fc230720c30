"""Versioned hand-off artifact and the registry that stores it."""
from __future__ import annotations

import json
import os
import tempfile
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from loguru import logger

from .errors import HandoffError, HandoffMissingError, StaleHandoffError
from .host_record import DEFAULT_LOGIN_ACCOUNT_KEY, HostRecord

DEFAULT_RECORD_PATH = "/var/lib/host-handoff/hosts"
# registry directory shared by the provisioner, configurator and registry CLIs
DEFAULT_HANDOFF_DIR = "./handoff"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class HandoffArtifact:
    deployment_id: str
    instance_id: str
    public_ip: str
    ssh_user: str
    ssh_port: int = 22
    ssh_key_path: Optional[str] = None
    login_account_key: str = DEFAULT_LOGIN_ACCOUNT_KEY
    # where the host writes its own record at first boot
    record_path: str = DEFAULT_RECORD_PATH
    # inbound ports the access policy opens
    open_ports: List[int] = field(default_factory=list)
    region: Optional[str] = None
    run_id: Optional[str] = None
    generation: int = 0
    created_at: Optional[str] = None
    published_at: Optional[str] = None

    @property
    def host_record(self) -> HostRecord:
        return HostRecord(address=self.public_ip, login_account=self.ssh_user, login_account_key=self.login_account_key)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HandoffArtifact":
        return cls(**data)


class HandoffStore:
    """Registry of hand-off artifacts keyed by deployment id.

    One JSON file per deployment inside ``directory``. Publishing the same
    host again keeps its generation, publishing a different host bumps it.
    """

    def __init__(self, directory: str | os.PathLike):
        self.directory = Path(directory)

    def path(self, deployment_id: str) -> Path:
        return self.directory / f"{deployment_id}.json"

    def exists(self, deployment_id: str) -> bool:
        return self.path(deployment_id).exists()

    def load(self, deployment_id: str) -> HandoffArtifact:
        path = self.path(deployment_id)
        if not path.exists():
            raise HandoffMissingError(f"No hand-off artifact for deployment {deployment_id} in {self.directory}")
        try:
            with open(path, "r") as f:
                return HandoffArtifact.from_dict(json.load(f))
        except (json.JSONDecodeError, TypeError) as e:
            raise HandoffError(f"Invalid hand-off artifact {path}: {e}")

    def publish(self, artifact: HandoffArtifact) -> HandoffArtifact:
        previous = self.load(artifact.deployment_id) if self.exists(artifact.deployment_id) else None

        if previous is not None and previous.instance_id == artifact.instance_id:
            artifact.generation = previous.generation
            artifact.created_at = previous.created_at
        else:
            artifact.generation = (previous.generation if previous else 0) + 1
            artifact.created_at = _now()
            if previous is not None:
                logger.info(f"Host of {artifact.deployment_id} replaced: {previous.instance_id} ({previous.public_ip}) "
                            f"-> {artifact.instance_id} ({artifact.public_ip})")
        artifact.published_at = _now()

        self.directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.directory, prefix=f".{artifact.deployment_id}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(artifact.to_dict(), f, ensure_ascii=True, indent=2)
            os.replace(tmp_path, self.path(artifact.deployment_id))
        except BaseException:
            os.unlink(tmp_path)
            raise

        logger.success(f"Published hand-off for {artifact.deployment_id}: {artifact.host_record.to_line()} "
                       f"(generation {artifact.generation})")
        return artifact

    def invalidate(self, deployment_id: str):
        path = self.path(deployment_id)
        if path.exists():
            path.unlink()
            logger.info(f"Invalidated hand-off for {deployment_id}")


def check_fresh(artifact: HandoffArtifact, *, run_id: Optional[str] = None, instance_id: Optional[str] = None,
                deployment_id: Optional[str] = None):
    """Reject an artifact produced by another run, for another host or another deployment."""
    if deployment_id is not None and artifact.deployment_id != deployment_id:
        raise StaleHandoffError(f"Hand-off belongs to deployment {artifact.deployment_id}, expected {deployment_id}")
    if run_id is not None and artifact.run_id != run_id:
        raise StaleHandoffError(f"Hand-off for {artifact.deployment_id} was produced by run {artifact.run_id}, "
                                f"expected run {run_id}")
    if instance_id is not None and artifact.instance_id != instance_id:
        raise StaleHandoffError(f"Hand-off for {artifact.deployment_id} points to {artifact.instance_id}, "
                                f"current host is {instance_id}")
