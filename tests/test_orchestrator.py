from pathlib import Path
from typing import List

import pytest

from host_handoff.artifact import HandoffArtifact, HandoffStore
from orchestrator.__main__ import main
from orchestrator.errors import InvalidStateTransition, PipelineDefinitionError, RunExistsError, StateFileError
from orchestrator.pipeline import PipelineConfig, StageConfig, load_pipeline
from orchestrator.runner import PipelineRunner
from orchestrator.stage_runner import StageResult, StageRunner
from orchestrator.state import PipelineStateStore
from orchestrator.state_machine import PipelineStatus, is_terminal, transition

REPO_ROOT = Path(__file__).resolve().parent.parent


def _config(tmp_path: Path) -> PipelineConfig:
    return PipelineConfig(
        name="nexus",
        deployment_id="nexus",
        workspace=str(tmp_path),
        state_file=str(tmp_path / "state.json"),
        runs_dir=str(tmp_path / "runs"),
        stages=[
            {"name": "provision", "kind": "provision", "commands": ["python -m infra_provisioner apply"]},
            {"name": "configure", "kind": "configure", "commands": ["python -m configurator run"]},
        ],
    )


class _FakeStageRunner:
    """Stands in for the container runner; provision publishes a hand-off."""

    def __init__(self, *, provision_exit: int = 0, configure_exit: int = 0, publish: bool = True,
                 publish_run_id: str = None):
        self.provision_exit = provision_exit
        self.configure_exit = configure_exit
        self.publish = publish
        self.publish_run_id = publish_run_id
        self.calls: List[dict] = []

    def run(self, stage: StageConfig, *, run_id: str, deployment_id: str, handoff_dir: str) -> StageResult:
        self.calls.append({"stage": stage.name, "run_id": run_id, "handoff_dir": handoff_dir})
        if stage.kind.value == "provision":
            if self.provision_exit:
                return StageResult(stage.name, self.provision_exit, 0.1, "apply failed")
            if self.publish:
                HandoffStore(handoff_dir).publish(HandoffArtifact(
                    deployment_id=deployment_id, instance_id="i-0001", public_ip="54.0.0.10", ssh_user="ubuntu",
                    open_ports=[22, 8081], run_id=self.publish_run_id or run_id))
            return StageResult(stage.name, 0, 0.1)
        if self.configure_exit:
            return StageResult(stage.name, self.configure_exit, 0.1, "task failed")
        return StageResult(stage.name, 0, 0.1)


def test_transitions():
    assert transition(PipelineStatus.PENDING, PipelineStatus.PROVISIONING) == PipelineStatus.PROVISIONING
    assert transition(PipelineStatus.PROVISIONED, PipelineStatus.CONFIGURING) == PipelineStatus.CONFIGURING
    assert is_terminal(PipelineStatus.DONE)
    assert is_terminal(PipelineStatus.PROVISION_FAILED)
    assert not is_terminal(PipelineStatus.PROVISIONED)


@pytest.mark.parametrize("current,target", [
    (PipelineStatus.PENDING, PipelineStatus.CONFIGURING),
    (PipelineStatus.PROVISION_FAILED, PipelineStatus.CONFIGURING),
    (PipelineStatus.PROVISION_FAILED, PipelineStatus.PROVISIONING),
    (PipelineStatus.DONE, PipelineStatus.PROVISIONING),
    (PipelineStatus.PROVISIONING, PipelineStatus.DONE),
])
def test_invalid_transitions(current, target):
    with pytest.raises(InvalidStateTransition):
        transition(current, target)


def test_sample_pipeline_loads():
    config = load_pipeline(str(REPO_ROOT / "pipeline.toml"))

    assert config.provision_stage.kind.value == "provision"
    assert config.configure_stage.kind.value == "configure"


def test_pipeline_needs_provision_then_configure(tmp_path: Path):
    path = tmp_path / "pipeline.toml"
    path.write_text(
        'name = "p"\ndeployment_id = "d"\n'
        '[[stages]]\nname = "configure"\nkind = "configure"\ncommands = ["true"]\n'
        '[[stages]]\nname = "provision"\nkind = "provision"\ncommands = ["true"]\n'
    )
    with pytest.raises(PipelineDefinitionError):
        load_pipeline(str(path))


def test_pipeline_rejects_unknown_stage_kind(tmp_path: Path):
    path = tmp_path / "pipeline.toml"
    path.write_text('name = "p"\ndeployment_id = "d"\n[[stages]]\nname = "x"\nkind = "deploy"\ncommands = ["true"]\n')
    with pytest.raises(PipelineDefinitionError):
        load_pipeline(str(path))


def test_successful_run(tmp_path: Path):
    config = _config(tmp_path)
    stages = _FakeStageRunner()
    runner = PipelineRunner(config, stage_runner=stages, run_id="run-1")

    assert runner.run() == 0

    state = PipelineStateStore(config.state_file).load()
    assert state.status == PipelineStatus.DONE
    assert state.published_output == "54.0.0.10"
    assert state.stage("provision").output["public_ip"] == "54.0.0.10"
    assert state.stage("configure").status == "succeeded"
    assert [c["stage"] for c in stages.calls] == ["provision", "configure"]
    assert stages.calls[0]["handoff_dir"] == str(tmp_path / "runs" / "run-1" / "handoff")


def test_provision_failure_halts_pipeline(tmp_path: Path):
    config = _config(tmp_path)
    stages = _FakeStageRunner(provision_exit=3)

    assert PipelineRunner(config, stage_runner=stages, run_id="run-1").run() == 3

    state = PipelineStateStore(config.state_file).load()
    assert state.status == PipelineStatus.PROVISION_FAILED
    assert [c["stage"] for c in stages.calls] == ["provision"]
    assert "provision: apply failed" in state.errors[0]
    assert state.published_output is None


def test_missing_handoff_fails_configuration(tmp_path: Path):
    config = _config(tmp_path)
    stages = _FakeStageRunner(publish=False)

    assert PipelineRunner(config, stage_runner=stages, run_id="run-1").run() == 1

    state = PipelineStateStore(config.state_file).load()
    assert state.status == PipelineStatus.CONFIGURE_FAILED
    assert "hand-off failure" in state.stage("configure").error
    assert [c["stage"] for c in stages.calls] == ["provision"]


def test_handoff_from_other_run_is_stale(tmp_path: Path):
    config = _config(tmp_path)
    stages = _FakeStageRunner(publish_run_id="run-0")

    assert PipelineRunner(config, stage_runner=stages, run_id="run-1").run() == 1

    state = PipelineStateStore(config.state_file).load()
    assert state.status == PipelineStatus.CONFIGURE_FAILED
    assert "run-0" in state.stage("configure").error


def test_each_run_gets_fresh_handoff_directory(tmp_path: Path):
    config = _config(tmp_path)
    assert PipelineRunner(config, stage_runner=_FakeStageRunner(), run_id="run-1").run() == 0

    # the first run's artifact must not be picked up
    second = PipelineRunner(config, stage_runner=_FakeStageRunner(publish=False), run_id="run-2")
    assert second.run() == 1
    assert PipelineStateStore(config.state_file).load().status == PipelineStatus.CONFIGURE_FAILED


def test_configure_failure_exit_code_is_propagated(tmp_path: Path):
    config = _config(tmp_path)

    assert PipelineRunner(config, stage_runner=_FakeStageRunner(configure_exit=5), run_id="run-1").run() == 5

    state = PipelineStateStore(config.state_file).load()
    assert state.status == PipelineStatus.CONFIGURE_FAILED
    assert state.stage("provision").status == "succeeded"
    assert state.stage("configure").exit_code == 5


def _stage(commands, **kwargs) -> StageConfig:
    return StageConfig(name="s", kind="provision", commands=commands, **kwargs)


def test_docker_stage_argv(tmp_path: Path):
    runner = StageRunner(str(tmp_path))
    argv = runner.build_argv(_stage(["make plan"], image="python:3.12-slim"), run_id="run-1", deployment_id="nexus",
                             handoff_dir=str(tmp_path / "handoff"))

    assert argv[:3] == ["docker", "run", "--rm"]
    assert f"{tmp_path.resolve()}:/workspace" in argv
    assert f"{(tmp_path / 'handoff').resolve()}:/handoff" in argv
    assert "PIPELINE_RUN_ID=run-1" in argv
    assert "HANDOFF_DIR=/handoff" in argv
    assert "DEPLOYMENT_ID=nexus" in argv
    assert argv[-4:] == ["python:3.12-slim", "bash", "-c", "set -e\nmake plan"]


def test_local_stage_stops_at_first_failing_command(tmp_path: Path):
    handoff = tmp_path / "handoff"
    handoff.mkdir()
    runner = StageRunner(str(tmp_path))
    stage = _stage(['echo "$PIPELINE_RUN_ID $DEPLOYMENT_ID" > out.txt', "exit 7", "touch never.txt"])

    result = runner.run(stage, run_id="run-1", deployment_id="nexus", handoff_dir=str(handoff))

    assert result.exit_code == 7
    assert (tmp_path / "out.txt").read_text().strip() == "run-1 nexus"
    assert not (tmp_path / "never.txt").exists()


def test_local_stage_has_clean_environment(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("NEXUS_SECRET", "s3cret")
    runner = StageRunner(str(tmp_path))

    hidden = runner.run(_stage(['test -z "${NEXUS_SECRET:-}"']), run_id="r", deployment_id="d",
                        handoff_dir=str(tmp_path))
    passed = runner.run(_stage(['test "$NEXUS_SECRET" = s3cret'], env_passthrough=["NEXUS_SECRET"]),
                        run_id="r", deployment_id="d", handoff_dir=str(tmp_path))

    assert hidden.success
    assert passed.success


def test_local_stage_timeout(tmp_path: Path):
    runner = StageRunner(str(tmp_path))

    result = runner.run(_stage(["sleep 5"], timeout=1), run_id="r", deployment_id="d", handoff_dir=str(tmp_path))

    assert result.exit_code == 124
    assert "timed out" in result.error


def test_failing_stage_error_carries_its_stderr(tmp_path: Path):
    runner = StageRunner(str(tmp_path))
    stage = _stage(['echo "Provisioning failed: instance: InsufficientInstanceCapacity" >&2', "exit 3"])

    result = runner.run(stage, run_id="r", deployment_id="d", handoff_dir=str(tmp_path))

    assert result.exit_code == 3
    assert result.error.startswith("command exited with status 3")
    assert "Provisioning failed: instance: InsufficientInstanceCapacity" in result.error


def test_pipeline_records_underlying_stage_message(tmp_path: Path):
    config = _config(tmp_path)
    config.stages[0].commands = ['echo "Provisioning failed: vpc: VpcLimitExceeded" >&2', "exit 3"]

    assert PipelineRunner(config, run_id="run-1").run() == 3

    state = PipelineStateStore(config.state_file).load()
    assert state.status == PipelineStatus.PROVISION_FAILED
    assert "Provisioning failed: vpc: VpcLimitExceeded" in state.stage("provision").error
    assert state.errors[0].startswith("provision: command exited with status 3")
    assert "VpcLimitExceeded" in state.errors[0]


def test_missing_pipeline_document_is_a_definition_error(tmp_path: Path):
    with pytest.raises(PipelineDefinitionError, match="not found"):
        load_pipeline(str(tmp_path / "missing.toml"))


def test_corrupt_state_file(tmp_path: Path):
    path = tmp_path / "state.json"
    path.write_text("{not json")

    with pytest.raises(StateFileError):
        PipelineStateStore(str(path)).load()


def test_reused_run_id_is_rejected(tmp_path: Path):
    config = _config(tmp_path)
    assert PipelineRunner(config, stage_runner=_FakeStageRunner(), run_id="run-1").run() == 0

    with pytest.raises(RunExistsError, match="run-1"):
        PipelineRunner(config, stage_runner=_FakeStageRunner(), run_id="run-1").run()


def test_cli_reports_errors_with_exit_code(tmp_path: Path):
    assert main(["-p", str(tmp_path / "missing.toml"), "status"]) == 2

    pipeline = tmp_path / "pipeline.toml"
    pipeline.write_text(
        'name = "p"\ndeployment_id = "d"\n'
        f'state_file = "{tmp_path / "state.json"}"\n'
        '[[stages]]\nname = "provision"\nkind = "provision"\ncommands = ["true"]\n'
        '[[stages]]\nname = "configure"\nkind = "configure"\ncommands = ["true"]\n'
    )
    (tmp_path / "state.json").write_text("{not json")
    assert main(["-p", str(pipeline), "status"]) == 2
