import uuid
from datetime import datetime
from pathlib import Path
from typing import Optional

from loguru import logger

from host_handoff.artifact import HandoffArtifact, HandoffStore, check_fresh
from host_handoff.errors import HandoffError

from .errors import RunExistsError
from .pipeline import PipelineConfig, StageConfig
from .stage_runner import StageResult, StageRunner
from .state import PipelineStateStore
from .state_machine import PipelineStatus

HANDOFF_FAILURE_EXIT_CODE = 1


def new_run_id() -> str:
    return f"{datetime.now().strftime('%Y%m%d-%H%M%S')}-{uuid.uuid4().hex[:8]}"


class PipelineRunner:
    """Run the provision stage, hand the host over, run the configure stage.

    Each run gets its own hand-off directory under ``runs_dir``, so an
    artifact left behind by an earlier run can never be picked up.
    """

    def __init__(self, config: PipelineConfig, *, stage_runner: Optional[StageRunner] = None,
                 store: Optional[PipelineStateStore] = None, run_id: Optional[str] = None):
        self.config = config
        self.stage_runner = stage_runner or StageRunner(config.workspace)
        self.store = store or PipelineStateStore(config.state_file)
        self.run_id = run_id or new_run_id()
        self.handoff_dir = Path(config.runs_dir) / self.run_id / "handoff"

    def _run_stage(self, stage: StageConfig) -> StageResult:
        self.store.start_stage(stage.name, stage.kind.value)
        with logger.contextualize(stage=stage.name):
            result = self.stage_runner.run(stage, run_id=self.run_id, deployment_id=self.config.deployment_id,
                                           handoff_dir=str(self.handoff_dir))
            if result.success:
                logger.success(f"Stage {stage.name} succeeded ({result.elapsed:.1f}s)")
            else:
                logger.error(f"Stage {stage.name} failed with exit code {result.exit_code}: {result.error}")
        return result

    def _fail(self, stage: StageConfig, status: PipelineStatus, exit_code: int, error: str) -> int:
        self.store.finish_stage(stage.name, exit_code=exit_code, error=error)
        self.store.add_error(f"{stage.name}: {error}")
        self.store.transition(status)
        logger.error(f"Pipeline {self.config.name} halted at stage {stage.name}: {error}")
        return exit_code

    def _receive_handoff(self) -> HandoffArtifact:
        artifact = HandoffStore(self.handoff_dir).load(self.config.deployment_id)
        check_fresh(artifact, run_id=self.run_id, deployment_id=self.config.deployment_id)
        return artifact

    def run(self) -> int:
        """Returns the exit code of the failing stage, 0 when every stage succeeded."""
        config = self.config
        provision, configure = config.provision_stage, config.configure_stage

        try:
            self.handoff_dir.mkdir(parents=True, exist_ok=False)
        except FileExistsError as e:
            raise RunExistsError(self.run_id, str(self.handoff_dir)) from e
        self.store.initialize(config.name, config.deployment_id, self.run_id)

        with logger.contextualize(deployment=config.deployment_id):
            logger.info(f"Pipeline {config.name} run {self.run_id}, hand-off directory {self.handoff_dir}")

            self.store.transition(PipelineStatus.PROVISIONING)
            result = self._run_stage(provision)
            if not result.success:
                return self._fail(provision, PipelineStatus.PROVISION_FAILED, result.exit_code, result.error)
            self.store.transition(PipelineStatus.PROVISIONED)

            self.store.transition(PipelineStatus.CONFIGURING)
            try:
                artifact = self._receive_handoff()
            except HandoffError as e:
                self.store.finish_stage(provision.name, exit_code=0)
                self.store.start_stage(configure.name, configure.kind.value)
                return self._fail(configure, PipelineStatus.CONFIGURE_FAILED, HANDOFF_FAILURE_EXIT_CODE,
                                  f"hand-off failure: {e}")

            self.store.finish_stage(provision.name, exit_code=0, output=artifact.to_dict())
            self.store.set_published_output(artifact.public_ip)
            logger.info(f"Host hand-off received: {artifact.host_record.to_line()} (generation {artifact.generation})")

            result = self._run_stage(configure)
            if not result.success:
                return self._fail(configure, PipelineStatus.CONFIGURE_FAILED, result.exit_code, result.error)
            self.store.finish_stage(configure.name, exit_code=0)
            self.store.transition(PipelineStatus.DONE)

        logger.success(f"Pipeline {config.name} done, host {artifact.public_ip}")
        return 0
