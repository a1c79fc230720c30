import tomllib
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ValidationError

from .errors import PipelineDefinitionError


class StageKind(str, Enum):
    PROVISION = "provision"
    CONFIGURE = "configure"


class StageConfig(BaseModel):
    name: str
    kind: StageKind
    # container image of the stage toolchain; runs locally when unset
    image: Optional[str] = None
    commands: List[str]
    timeout: int = 3600
    # host environment variables forwarded into the stage
    env_passthrough: List[str] = []


class PipelineConfig(BaseModel):
    name: str
    deployment_id: str
    workspace: str = "."
    state_file: str = ".pipeline/state.json"
    runs_dir: str = ".pipeline/runs"
    stages: List[StageConfig]

    @property
    def provision_stage(self) -> StageConfig:
        return self.stages[0]

    @property
    def configure_stage(self) -> StageConfig:
        return self.stages[1]


def validate_pipeline(config: PipelineConfig):
    kinds = [stage.kind for stage in config.stages]
    if kinds != [StageKind.PROVISION, StageKind.CONFIGURE]:
        raise PipelineDefinitionError(
            f"Pipeline {config.name} must have one provision stage followed by one configure stage, "
            f"got {[k.value for k in kinds]}")
    for stage in config.stages:
        if not stage.commands:
            raise PipelineDefinitionError(f"Stage {stage.name} has no commands")
    names = [stage.name for stage in config.stages]
    if len(set(names)) != len(names):
        raise PipelineDefinitionError(f"Stage names must be unique: {names}")


def load_pipeline(path: str) -> PipelineConfig:
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except FileNotFoundError as e:
        raise PipelineDefinitionError(f"Pipeline document {path} not found") from e
    except tomllib.TOMLDecodeError as e:
        raise PipelineDefinitionError(f"Invalid pipeline document {path}: {e}") from e
    try:
        config = PipelineConfig(**data)
    except ValidationError as e:
        raise PipelineDefinitionError(f"Invalid pipeline document {path}: {e}") from e
    validate_pipeline(config)
    return config
