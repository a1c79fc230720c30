"""
Stage execution

A stage runs its commands in a disposable environment: a ``docker run --rm``
container of the stage image, or a local ``bash`` with a clean environment
when the stage has no image. Only the workspace and the run's hand-off
directory are shared with the stage.
"""

import os
import subprocess
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List

from loguru import logger

from .pipeline import StageConfig

CONTAINER_WORKSPACE = "/workspace"
CONTAINER_HANDOFF_DIR = "/handoff"

# variables a local stage keeps from the host environment
LOCAL_BASE_ENV = ("PATH", "HOME", "LANG", "LC_ALL", "TMPDIR")

TIMEOUT_EXIT_CODE = 124
NOT_FOUND_EXIT_CODE = 127

# lines of a failing stage's stderr kept in its error message
STDERR_TAIL_LINES = 20


def _echo_stderr(stderr) -> str:
    """Pass captured stderr through to the console and return it as text."""
    if stderr is None:
        return ""
    if isinstance(stderr, bytes):
        stderr = stderr.decode(errors="replace")
    sys.stderr.write(stderr)
    sys.stderr.flush()
    return stderr


def _with_tail(message: str, stderr: str) -> str:
    tail = [line for line in stderr.splitlines() if line.strip()][-STDERR_TAIL_LINES:]
    if not tail:
        return message
    return message + ": " + "\n".join(tail)


@dataclass
class StageResult:
    stage: str
    exit_code: int
    elapsed: float
    error: str = ""

    @property
    def success(self) -> bool:
        return self.exit_code == 0


def stage_script(stage: StageConfig) -> str:
    # the first failing command stops the stage
    return "\n".join(["set -e", *stage.commands])


class StageRunner:
    def __init__(self, workspace: str, docker_bin: str = "docker"):
        self.workspace = str(Path(workspace).resolve())
        self.docker_bin = docker_bin

    def stage_env(self, stage: StageConfig, *, run_id: str, deployment_id: str, handoff_dir: str) -> Dict[str, str]:
        env = {
            "PIPELINE_RUN_ID": run_id,
            "DEPLOYMENT_ID": deployment_id,
            "HANDOFF_DIR": handoff_dir,
        }
        for name in stage.env_passthrough:
            if name in os.environ:
                env[name] = os.environ[name]
        return env

    def build_argv(self, stage: StageConfig, *, run_id: str, deployment_id: str, handoff_dir: str) -> List[str]:
        script = stage_script(stage)
        if stage.image is None:
            return ["bash", "-c", script]

        env = self.stage_env(stage, run_id=run_id, deployment_id=deployment_id, handoff_dir=CONTAINER_HANDOFF_DIR)
        argv = [
            self.docker_bin, "run", "--rm",
            "-v", f"{self.workspace}:{CONTAINER_WORKSPACE}",
            "-v", f"{Path(handoff_dir).resolve()}:{CONTAINER_HANDOFF_DIR}",
            "-w", CONTAINER_WORKSPACE,
        ]
        for key, value in env.items():
            argv += ["-e", f"{key}={value}"]
        argv += [stage.image, "bash", "-c", script]
        return argv

    def run(self, stage: StageConfig, *, run_id: str, deployment_id: str, handoff_dir: str) -> StageResult:
        argv = self.build_argv(stage, run_id=run_id, deployment_id=deployment_id, handoff_dir=handoff_dir)

        env = None
        if stage.image is None:
            env = {k: os.environ[k] for k in LOCAL_BASE_ENV if k in os.environ}
            env.update(self.stage_env(stage, run_id=run_id, deployment_id=deployment_id,
                                      handoff_dir=str(Path(handoff_dir).resolve())))

        where = stage.image or "local shell"
        logger.info(f"Running {len(stage.commands)} command(s) in {where}")
        start = time.time()
        try:
            proc = subprocess.run(argv, cwd=self.workspace, env=env, timeout=stage.timeout,
                                  stderr=subprocess.PIPE, text=True)
        except subprocess.TimeoutExpired as e:
            stderr = _echo_stderr(e.stderr)
            return StageResult(stage.name, TIMEOUT_EXIT_CODE, time.time() - start,
                               _with_tail(f"stage timed out after {stage.timeout}s", stderr))
        except FileNotFoundError as e:
            return StageResult(stage.name, NOT_FOUND_EXIT_CODE, time.time() - start, str(e))

        elapsed = time.time() - start
        stderr = _echo_stderr(proc.stderr)
        if proc.returncode != 0:
            return StageResult(stage.name, proc.returncode, elapsed,
                               _with_tail(f"command exited with status {proc.returncode}", stderr))
        return StageResult(stage.name, 0, elapsed)
