"""
Task list document

An ordered ``[[tasks]]`` list in TOML, each entry tagged with its step type.
Step types must appear in the fixed order of ``STEP_ORDER``, and steps that
consume another step's output must come after it.
"""

import tomllib
from pathlib import PurePosixPath
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from .errors import TaskOrderError

STEP_ORDER = (
    "install-package",
    "create-account",
    "fetch-artifact",
    "extract-archive",
    "set-ownership",
    "install-unit-file",
    "manage-service",
)


class _Task(BaseModel):
    name: str


class InstallPackageTask(_Task):
    type: Literal["install-package"]
    packages: List[str]
    manager: Literal["apt", "yum", "dnf"] = "apt"


class CreateAccountTask(_Task):
    type: Literal["create-account"]
    account: str
    home: Optional[str] = None
    shell: str = "/bin/bash"
    system: bool = True


class FetchArtifactTask(_Task):
    type: Literal["fetch-artifact"]
    url: str
    dest: str
    sha256: Optional[str] = None


class ExtractArchiveTask(_Task):
    type: Literal["extract-archive"]
    src: str
    dest: str
    # path that exists once the archive has been extracted
    creates: str
    strip_components: int = 0


class SetOwnershipTask(_Task):
    type: Literal["set-ownership"]
    paths: List[str]
    owner: str
    group: Optional[str] = None
    recursive: bool = True


class InstallUnitFileTask(_Task):
    type: Literal["install-unit-file"]
    unit: str
    exec_start: str
    exec_stop: Optional[str] = None
    description: str = ""
    user: str = "root"
    service_type: str = "simple"
    restart: str = "on-abort"
    limit_nofile: Optional[int] = None
    after: List[str] = ["network.target"]
    environment: Dict[str, str] = {}

    @property
    def unit_path(self) -> str:
        return f"/etc/systemd/system/{self.unit}.service"

    @property
    def binary(self) -> str:
        return self.exec_start.split()[0]


class ManageServiceTask(_Task):
    type: Literal["manage-service"]
    service: str
    state: Literal["started", "restarted", "stopped"] = "started"
    enabled: bool = True


Task = Annotated[
    Union[
        InstallPackageTask,
        CreateAccountTask,
        FetchArtifactTask,
        ExtractArchiveTask,
        SetOwnershipTask,
        InstallUnitFileTask,
        ManageServiceTask,
    ],
    Field(discriminator="type"),
]


class TaskList(BaseModel):
    # run every step through sudo
    become: bool = True
    tasks: List[Task]


def _under(path: str, directory: str) -> bool:
    return PurePosixPath(path).is_relative_to(PurePosixPath(directory))


def validate_task_order(task_list: TaskList):
    names = set()
    fetched: List[str] = []
    extracted: List[str] = []
    has_extraction = any(isinstance(t, ExtractArchiveTask) for t in task_list.tasks)
    previous_rank = 0

    for task in task_list.tasks:
        if task.name in names:
            raise TaskOrderError(f"duplicate task name {task.name!r}")
        names.add(task.name)

        rank = STEP_ORDER.index(task.type)
        if rank < previous_rank:
            raise TaskOrderError(
                f"task {task.name!r} ({task.type}) must not come after a {STEP_ORDER[previous_rank]} step; "
                f"steps run in the order {', '.join(STEP_ORDER)}")
        previous_rank = rank

        if isinstance(task, FetchArtifactTask):
            fetched.append(task.dest)
        elif isinstance(task, ExtractArchiveTask):
            if task.src not in fetched:
                raise TaskOrderError(f"task {task.name!r} extracts {task.src}, which no earlier fetch-artifact task produces")
            extracted.append(task.dest)
        elif isinstance(task, InstallUnitFileTask) and has_extraction:
            if not any(_under(task.binary, dest) for dest in extracted):
                raise TaskOrderError(f"task {task.name!r} starts {task.binary}, which is not under an earlier extraction "
                                     f"({', '.join(extracted) or 'none'})")


def load_task_list(path: str) -> TaskList:
    with open(path, "rb") as f:
        data = tomllib.load(f)
    task_list = TaskList(**data)
    validate_task_order(task_list)
    return task_list
