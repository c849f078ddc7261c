from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass
from typing import Sequence

from .errors import ComposeError, ManifestError, PrerequisiteError
from .plan import DEFAULT_DOCKER_GATEWAY
from .targets import ExecutionTarget

log = logging.getLogger(__name__)

VALIDATION_TAIL = 5
PULL_TAIL = 12


@dataclass
class PrereqResult:
    docker_installed: bool
    docker_running: bool
    compose_command: tuple[str, ...] | None
    docker_version: str | None = None

    @property
    def compose_installed(self) -> bool:
        return self.compose_command is not None


def check_prereqs(target: ExecutionTarget) -> PrereqResult:
    docker_installed = target.command_exists("docker")
    docker_running = False
    compose_command = None
    version = None
    if docker_installed:
        version = target.output(["docker", "--version"])
        docker_running = target.succeeds(["docker", "info"])
        if target.succeeds(["docker", "compose", "version"]):
            compose_command = ("docker", "compose")
        elif target.command_exists("docker-compose"):
            compose_command = ("docker-compose",)
    return PrereqResult(
        docker_installed=docker_installed,
        docker_running=docker_running,
        compose_command=compose_command,
        docker_version=version,
    )


def require_prereqs(target: ExecutionTarget) -> PrereqResult:
    prereqs = check_prereqs(target)
    if not prereqs.docker_installed:
        raise PrerequisiteError(
            f"Docker is not installed on {target.label}.",
            hint="Install Docker first: curl -fsSL https://get.docker.com | sh",
        )
    if not prereqs.docker_running:
        raise PrerequisiteError(
            "Docker daemon is not running.",
            hint="Start it with: systemctl start docker",
        )
    if not prereqs.compose_installed:
        raise PrerequisiteError(
            "Docker Compose is not installed.",
            hint="Install the docker compose plugin (v2) or docker-compose.",
        )
    return prereqs


def tail_lines(text: str, *, limit: int) -> list[str]:
    lines = [line for line in (text or "").splitlines() if line.strip()]
    return lines[-limit:] if lines else []


class ComposeProject:
    """Compose commands scoped to one install directory on one target."""

    def __init__(self, target: ExecutionTarget, install_dir: str, command: Sequence[str]):
        self.target = target
        self.install_dir = install_dir
        self.command = tuple(command)

    @property
    def command_str(self) -> str:
        return " ".join(self.command)

    def run(self, *args: str, stream: bool = False) -> subprocess.CompletedProcess[str]:
        return self.target.run([*self.command, *args], cwd=self.install_dir, stream=stream)

    def validate(self) -> None:
        res = self.run("config", "--quiet")
        if res.returncode == 0:
            return
        diagnostics = tail_lines((res.stderr or "") + "\n" + (res.stdout or ""), limit=VALIDATION_TAIL)
        raise ManifestError(
            "Docker Compose file has errors:\n" + "\n".join(diagnostics),
            hint=f"Inspect with: cd {self.install_dir} && {self.command_str} config",
        )

    def pull(self) -> None:
        res = self.run("pull", stream=True)
        if res.returncode == 0:
            return
        detail = "\n".join(tail_lines(res.stderr or "", limit=PULL_TAIL))
        raise ComposeError(
            "Failed to pull images." + (f"\n{detail}" if detail else ""),
            hint="Likely causes: registry rate limits, network/DNS issues, or an invalid image tag.",
        )

    def up(self, *services: str) -> None:
        res = self.run("up", "-d", *services)
        if res.returncode == 0:
            return
        what = ", ".join(services) if services else "all services"
        detail = "\n".join(tail_lines(res.stderr or "", limit=PULL_TAIL))
        raise ComposeError(
            f"Failed to start {what}." + (f"\n{detail}" if detail else ""),
            hint=f"Check logs: cd {self.install_dir} && {self.command_str} logs",
        )

    def down(self) -> subprocess.CompletedProcess[str]:
        return self.run("down")

    def ps_table(self) -> str:
        res = self.run("ps", "--format", "table {{.Name}}\t{{.Status}}\t{{.Ports}}")
        if res.returncode != 0:
            res = self.run("ps")
        return (res.stdout or "").rstrip()

    def logs_command(self, service: str) -> str:
        return f"cd {shlex.quote(self.install_dir)} && {self.command_str} logs {service}"


def container_health(target: ExecutionTarget, container: str) -> str | None:
    res = target.run(["docker", "inspect", "--format", "{{.State.Health.Status}}", container])
    if res.returncode != 0:
        return None
    status = (res.stdout or "").strip()
    if not status or status in {"<no value>", "null", "none"}:
        return None
    return status


def container_running(target: ExecutionTarget, container: str) -> bool:
    res = target.run(["docker", "inspect", "--format", "{{.State.Running}}", container])
    return res.returncode == 0 and (res.stdout or "").strip() == "true"


def docker_gateway(target: ExecutionTarget) -> str:
    gateway = target.output(
        ["docker", "network", "inspect", "bridge", "--format", "{{range .IPAM.Config}}{{.Gateway}}{{end}}"]
    )
    return gateway or DEFAULT_DOCKER_GATEWAY
