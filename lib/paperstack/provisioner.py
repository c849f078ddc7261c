from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from .credentials import CREDENTIALS_MODE, PVE_CREDENTIALS_DIR, container_credentials_path, render_container_credentials
from .errors import ContainerIdInUse, NetworkUnreachable, ProxmoxError, TemplateUnavailable
from .plan import ContainerHostSpec, InstallOutcome, InstallRequest, generate_password
from .polling import PollPolicy, PollTimeout, poll_until
from .proxmox import ProxmoxHost
from .report import LogReporter, Reporter
from .targets import ExecutionTarget

log = logging.getLogger(__name__)

TEMPLATE_CANDIDATES = (
    "debian-12-standard_12.12-1_amd64.tar.zst",
    "debian-12-standard_12.7-1_amd64.tar.zst",
)
PING_TARGET = "8.8.8.8"
DOCKER_INSTALL_URL = "https://get.docker.com"

InstallFn = Callable[[ExecutionTarget, InstallRequest], InstallOutcome]


@dataclass(frozen=True)
class ProvisionTimings:
    boot_delay: float = 5.0
    net_interval: float = 2.0
    net_ceiling: int = 30


@dataclass(frozen=True)
class ProvisionedContainer:
    ctid: int
    ip: str
    root_password: str


class ContainerHostProvisioner:
    """Creates a Docker-capable LXC and hands it to the stack installer.

    Nothing here ever destroys a container: on failure it is left running so
    the operator can ``pct enter`` it.
    """

    def __init__(
            self,
            host: ProxmoxHost,
            *,
            reporter: Reporter | None = None,
            timings: ProvisionTimings = ProvisionTimings(),
            sleep: Callable[[float], None] = time.sleep,
            credentials_dir: str = PVE_CREDENTIALS_DIR,
            password_factory: Callable[[], str] = generate_password,
    ):
        self.host = host
        self.reporter = reporter or LogReporter()
        self.timings = timings
        self.sleep = sleep
        self.credentials_dir = credentials_dir
        self.password_factory = password_factory

    def ensure_free_id(self, ctid: int) -> None:
        if self.host.container_exists(ctid):
            raise ContainerIdInUse(f"CT {ctid} already exists!", hint="Pick another container ID.")

    def resolve_templates(self, storage: str) -> list[str]:
        templates = self.host.templates(storage)
        if templates:
            return templates
        self.reporter.info("No templates found. Downloading Debian 12...")
        for name in TEMPLATE_CANDIDATES:
            if self.host.download_template(storage, name):
                templates = self.host.templates(storage)
                if templates:
                    return templates
            log.debug("template download %s failed", name)
        raise TemplateUnavailable(
            "Failed to download a container template.",
            hint=f"Download one manually: pveam update && pveam download {storage} {TEMPLATE_CANDIDATES[0]}",
        )

    def create(self, spec: ContainerHostSpec) -> str:
        self.ensure_free_id(spec.ctid)
        root_password = self.password_factory()
        self.reporter.info(f"Creating CT {spec.ctid} ({spec.hostname})...")
        self.host.create(spec, root_password)
        self.reporter.ok(f"CT {spec.ctid} created")
        self.reporter.info("Configuring LXC for Docker support...")
        self.host.enable_nesting(spec.ctid)
        self.reporter.ok("Docker support configured")
        return root_password

    def start(self, spec: ContainerHostSpec) -> str:
        self.reporter.info(f"Starting CT {spec.ctid}...")
        self.host.start(spec.ctid)
        self.sleep(self.timings.boot_delay)
        self.reporter.info("Waiting for network...")
        try:
            poll_until(
                lambda: self.host.has_network(spec.ctid, PING_TARGET),
                label=f"CT {spec.ctid} network",
                interval=self.timings.net_interval,
                ceiling=self.timings.net_ceiling,
                policy=PollPolicy.FATAL,
                sleep=self.sleep,
            )
        except PollTimeout as exc:
            raise NetworkUnreachable(
                f"CT {spec.ctid} has no network connectivity",
                hint=f"The container is still running. Debug with: pct enter {spec.ctid}",
            ) from exc
        ip = self.host.container_ip(spec.ctid) or "unknown"
        self.reporter.ok(f"CT {spec.ctid} is online at {ip}")
        return ip

    def install_runtime(self, ctid: int) -> None:
        self.reporter.info("Updating packages...")
        res = self.host.exec(
            ctid,
            ["bash", "-c", "apt-get update -qq && apt-get install -y -qq curl ca-certificates gnupg"],
        )
        if res.returncode == 0:
            self.reporter.ok("Base packages installed")
        else:
            self.reporter.warn(
                f"Base package install failed. Install curl manually: pct exec {ctid} -- apt-get install -y curl"
            )

        self.reporter.info("Installing Docker (this takes 1-2 minutes)...")
        res = self.host.exec(ctid, ["bash", "-c", f"curl -fsSL {DOCKER_INSTALL_URL} | sh"])
        if res.returncode != 0:
            raise ProxmoxError(
                f"Docker installation failed inside CT {ctid}.",
                hint=f"Debug with: pct enter {ctid}",
            )
        res = self.host.exec(ctid, ["systemctl", "enable", "--now", "docker"])
        if res.returncode != 0:
            raise ProxmoxError(
                f"Failed to start Docker inside CT {ctid}.",
                hint=f"Debug with: pct exec {ctid} -- systemctl status docker",
            )
        self.reporter.ok("Docker installed")

        if self.host.exec(ctid, ["docker", "run", "--rm", "hello-world"]).returncode == 0:
            self.reporter.ok(f"Docker is working inside CT {ctid}")
        else:
            self.reporter.warn("Docker test failed. Containers may still work.")

    def provision(self, spec: ContainerHostSpec) -> ProvisionedContainer:
        root_password = self.create(spec)
        ip = self.start(spec)
        self.install_runtime(spec.ctid)
        return ProvisionedContainer(ctid=spec.ctid, ip=ip, root_password=root_password)

    def run(self, spec: ContainerHostSpec, install: InstallFn) -> tuple[ProvisionedContainer, InstallOutcome]:
        container = self.provision(spec)
        hint = self.host.host_ip(spec.bridge)
        outcome = install(self.host.target(spec.ctid), InstallRequest(hint_address=hint))
        self.finish(spec, container, outcome)
        return container, outcome

    def finish(self, spec: ContainerHostSpec, container: ProvisionedContainer, outcome: InstallOutcome) -> str | None:
        if not outcome.ok:
            self.reporter.err(f"Installation inside CT {spec.ctid} failed (exit code: {outcome.exit_code})")
            self.reporter.warn(f"Container is still running. Debug with: pct enter {spec.ctid}")
            return None
        path = container_credentials_path(spec.ctid, self.credentials_dir)
        content = render_container_credentials(spec, ip=container.ip, root_password=container.root_password)
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
        os.chmod(target, CREDENTIALS_MODE)
        self.reporter.ok(f"LXC credentials saved to {path}")
        return path
