"""Pipeline run state persisted as JSON after every change."""

import json
import os
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from .errors import StateFileError
from .state_machine import PipelineStatus, transition


@dataclass
class StageRecord:
    name: str
    kind: str
    status: str = "running"  # running, succeeded, failed
    exit_code: Optional[int] = None
    error: Optional[str] = None
    # hand-off artifact published by the stage
    output: Optional[Dict[str, Any]] = None
    started_at: Optional[str] = None
    finished_at: Optional[str] = None


@dataclass
class PipelineState:
    pipeline: str
    deployment_id: str
    run_id: str
    status: PipelineStatus = PipelineStatus.PENDING
    stages: List[StageRecord] = field(default_factory=list)
    # public address of the configured host
    published_output: Optional[str] = None
    errors: List[str] = field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PipelineState":
        return cls(
            pipeline=data["pipeline"],
            deployment_id=data["deployment_id"],
            run_id=data["run_id"],
            status=PipelineStatus(data.get("status", PipelineStatus.PENDING.value)),
            stages=[StageRecord(**s) for s in data.get("stages", [])],
            published_output=data.get("published_output"),
            errors=data.get("errors", []),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )

    def stage(self, name: str) -> Optional[StageRecord]:
        for record in self.stages:
            if record.name == name:
                return record
        return None


class PipelineStateStore:
    """Persists the state of the latest pipeline run"""

    def __init__(self, state_file_path: str):
        self.state_file_path = state_file_path
        self._state: Optional[PipelineState] = None

    def initialize(self, pipeline: str, deployment_id: str, run_id: str) -> PipelineState:
        self._state = PipelineState(
            pipeline=pipeline,
            deployment_id=deployment_id,
            run_id=run_id,
            created_at=datetime.now().isoformat(),
            updated_at=datetime.now().isoformat(),
        )
        self.save()
        return self._state

    def load(self) -> Optional[PipelineState]:
        if not os.path.exists(self.state_file_path):
            return None

        try:
            with open(self.state_file_path, 'r') as f:
                data = json.load(f)
            self._state = PipelineState.from_dict(data)
            return self._state
        except (json.JSONDecodeError, KeyError, ValueError) as e:
            raise StateFileError(f"Invalid state file {self.state_file_path}: {e}") from e

    def save(self) -> None:
        if self._state is None:
            return

        self._state.updated_at = datetime.now().isoformat()
        os.makedirs(os.path.dirname(self.state_file_path) or ".", exist_ok=True)

        with open(self.state_file_path, 'w') as f:
            json.dump(self._state.to_dict(), f, indent=2)

    @property
    def state(self) -> PipelineState:
        assert self._state is not None, "state not initialized"
        return self._state

    def transition(self, target: PipelineStatus) -> None:
        self.state.status = transition(self.state.status, target)
        self.save()

    def start_stage(self, name: str, kind: str) -> StageRecord:
        record = StageRecord(name=name, kind=kind, started_at=datetime.now().isoformat())
        self.state.stages.append(record)
        self.save()
        return record

    def finish_stage(self, name: str, *, exit_code: int, error: Optional[str] = None,
                     output: Optional[Dict[str, Any]] = None) -> None:
        record = self.state.stage(name)
        assert record is not None, f"stage {name} not started"
        record.exit_code = exit_code
        record.status = "succeeded" if exit_code == 0 and error is None else "failed"
        record.error = error
        if output is not None:
            record.output = output
        record.finished_at = datetime.now().isoformat()
        self.save()

    def set_published_output(self, value: str) -> None:
        self.state.published_output = value
        self.save()

    def add_error(self, error: str) -> None:
        self.state.errors.append(f"{datetime.now().isoformat()}: {error}")
        self.save()
