"""
Remote commands for each step type

Every command checks the host first and only mutates it when the desired
state is not already there, printing ``CHANGED_MARKER`` when it did.
"""

import shlex
from dataclasses import dataclass
from typing import List, Optional

from .task_list import (
    CreateAccountTask,
    ExtractArchiveTask,
    FetchArtifactTask,
    InstallPackageTask,
    InstallUnitFileTask,
    ManageServiceTask,
    SetOwnershipTask,
)

CHANGED_MARKER = "__CONFIGURATOR_CHANGED__"

_CHANGED = f"echo {CHANGED_MARKER}"


@dataclass
class StepCommand:
    script: str
    # fed to the remote command's standard input
    stdin: Optional[str] = None


def _q(value: str) -> str:
    return shlex.quote(value)


def _install_package(task: InstallPackageTask) -> str:
    lines: List[str] = ["missing=()"]
    for package in task.packages:
        if task.manager == "apt":
            check = f"dpkg-query -W -f='${{Status}}' {_q(package)} 2>/dev/null | grep -q 'install ok installed'"
        else:
            check = f"rpm -q {_q(package)} >/dev/null 2>&1"
        lines.append(f"{check} || missing+=({_q(package)})")

    if task.manager == "apt":
        install = 'DEBIAN_FRONTEND=noninteractive apt-get update -q && DEBIAN_FRONTEND=noninteractive apt-get install -y -q "${missing[@]}"'
    else:
        install = f'{task.manager} install -y "${{missing[@]}}"'
    lines.append(f'if [ "${{#missing[@]}}" -gt 0 ]; then {install}; {_CHANGED}; fi')
    return "\n".join(lines)


def _create_account(task: CreateAccountTask) -> str:
    args = ["useradd", "--shell", task.shell]
    if task.system:
        args.append("--system")
    if task.home:
        args += ["--create-home", "--home-dir", task.home]
    args.append(task.account)
    create = " ".join(_q(a) for a in args)
    return f"if ! id -u {_q(task.account)} >/dev/null 2>&1; then {create}; {_CHANGED}; fi"


def _fetch_artifact(task: FetchArtifactTask) -> str:
    dest = _q(task.dest)
    part = _q(task.dest + ".part")
    lines = [
        f"if [ ! -s {dest} ]; then",
        f"  mkdir -p \"$(dirname {dest})\"",
        f"  curl -fsSL --retry 3 -o {part} {_q(task.url)}",
    ]
    if task.sha256:
        lines.append(f"  echo {_q(task.sha256 + '  ' + task.dest + '.part')} | sha256sum -c --quiet -")
    lines += [
        f"  mv {part} {dest}",
        f"  {_CHANGED}",
        "fi",
    ]
    return "\n".join(lines)


def _extract_archive(task: ExtractArchiveTask) -> str:
    tar = f"tar -xzf {_q(task.src)} -C {_q(task.dest)}"
    if task.strip_components:
        tar += f" --strip-components={task.strip_components}"
    return "\n".join([
        f"if [ ! -e {_q(task.creates)} ]; then",
        f"  mkdir -p {_q(task.dest)}",
        f"  {tar}",
        f"  {_CHANGED}",
        "fi",
    ])


def _set_ownership(task: SetOwnershipTask) -> str:
    owner = task.owner if task.group is None else f"{task.owner}:{task.group}"
    # files not yet owned by the account
    mismatch = f"! -user {_q(task.owner)}"
    if task.group is not None:
        mismatch = f"\\( ! -user {_q(task.owner)} -o ! -group {_q(task.group)} \\)"
    depth = "" if task.recursive else " -maxdepth 0"
    chown = "chown -R" if task.recursive else "chown"

    lines = []
    for path in task.paths:
        # an unknown owner or group must fail the step
        lines += [
            f"[ -e {_q(path)} ] || {{ echo \"missing path: \"{_q(path)} >&2; exit 1; }}",
            f"unowned=$(find {_q(path)}{depth} {mismatch} -print -quit)",
            f"if [ -n \"$unowned\" ]; then {chown} {_q(owner)} {_q(path)}; {_CHANGED}; fi",
        ]
    return "\n".join(lines)


def render_unit(task: InstallUnitFileTask) -> str:
    unit = [
        "[Unit]",
        f"Description={task.description or task.unit}",
        f"After={' '.join(task.after)}",
        "",
        "[Service]",
        f"Type={task.service_type}",
    ]
    if task.limit_nofile is not None:
        unit.append(f"LimitNOFILE={task.limit_nofile}")
    for key, value in sorted(task.environment.items()):
        unit.append(f"Environment={key}={value}")
    unit.append(f"ExecStart={task.exec_start}")
    if task.exec_stop:
        unit.append(f"ExecStop={task.exec_stop}")
    unit += [
        f"User={task.user}",
        f"Restart={task.restart}",
        "",
        "[Install]",
        "WantedBy=multi-user.target",
    ]
    return "\n".join(unit) + "\n"


def _install_unit_file(task: InstallUnitFileTask) -> str:
    path = _q(task.unit_path)
    return "\n".join([
        "tmp=$(mktemp)",
        "trap 'rm -f \"$tmp\"' EXIT",
        "cat > \"$tmp\"",
        f"if ! cmp -s \"$tmp\" {path}; then",
        f"  install -m 0644 \"$tmp\" {path}",
        "  systemctl daemon-reload",
        f"  {_CHANGED}",
        "fi",
    ])


def _manage_service(task: ManageServiceTask) -> str:
    service = _q(task.service)
    lines = []
    if task.enabled:
        lines.append(f"if ! systemctl is-enabled --quiet {service}; then systemctl enable {service}; {_CHANGED}; fi")
    else:
        lines.append(f"if systemctl is-enabled --quiet {service}; then systemctl disable {service}; {_CHANGED}; fi")

    if task.state == "started":
        lines.append(f"if ! systemctl is-active --quiet {service}; then systemctl start {service}; {_CHANGED}; fi")
    elif task.state == "stopped":
        lines.append(f"if systemctl is-active --quiet {service}; then systemctl stop {service}; {_CHANGED}; fi")
    else:
        lines.append(f"systemctl restart {service}; {_CHANGED}")
    return "\n".join(lines)


def _wrap(script: str, become: bool) -> str:
    prefix = "sudo -n " if become else ""
    return f"{prefix}bash -euo pipefail -c {_q(script)}"


def build_command(task, become: bool = True) -> StepCommand:
    """Render the remote command that converges ``task`` on the host."""
    if isinstance(task, InstallPackageTask):
        script = _install_package(task)
    elif isinstance(task, CreateAccountTask):
        script = _create_account(task)
    elif isinstance(task, FetchArtifactTask):
        script = _fetch_artifact(task)
    elif isinstance(task, ExtractArchiveTask):
        script = _extract_archive(task)
    elif isinstance(task, SetOwnershipTask):
        script = _set_ownership(task)
    elif isinstance(task, InstallUnitFileTask):
        return StepCommand(_wrap(_install_unit_file(task), become), stdin=render_unit(task))
    elif isinstance(task, ManageServiceTask):
        script = _manage_service(task)
    else:
        raise TypeError(f"Unknown task type: {type(task).__name__}")
    return StepCommand(_wrap(script, become))


def changed(stdout: str) -> bool:
    return CHANGED_MARKER in stdout
