from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Sequence

from .errors import ProxmoxError
from .plan import ContainerHostSpec
from .targets import ContainerTarget, Runner, local_run

log = logging.getLogger(__name__)

DEFAULT_CTID = 200
DEFAULT_STORAGE = "local"
DEFAULT_BRIDGE = "vmbr0"
LXC_CONF_DIR = "/etc/pve/lxc"

NESTING_DIRECTIVES = (
    "lxc.apparmor.profile: unconfined",
    "lxc.cgroup2.devices.allow: a",
    "lxc.cap.drop: ",
    "lxc.mount.auto: proc:rw sys:rw",
)

_INET_RE = re.compile(r"inet (\d+\.\d+\.\d+\.\d+)")
_BRIDGE_RE = re.compile(r"^\d+:\s+([^:@\s]+)")


def _version_key(name: str) -> list:
    return [int(part) if part.isdigit() else part for part in re.split(r"(\d+)", name)]


def pick_default_template(templates: Sequence[str]) -> str | None:
    """Newest Debian 12 template, else whatever is listed first."""
    debian = [t for t in templates if "debian-12" in t.lower()]
    if debian:
        return sorted(debian, key=_version_key)[-1]
    return templates[0] if templates else None


def _first_address(text: str | None) -> str | None:
    parts = (text or "").split()
    return parts[0] if parts else None


class ProxmoxHost:
    """Thin wrapper over pct/pvesh/pveam/pvesm on the local Proxmox node."""

    def __init__(self, runner: Runner = local_run, *, conf_dir: str = LXC_CONF_DIR):
        self._runner = runner
        self.conf_dir = conf_dir

    def _run(self, args: Sequence[str], *, stream: bool = False):
        return self._runner(list(args), stream=stream)

    def _check(self, args: Sequence[str], message: str, *, hint: str | None = None) -> str:
        res = self._run(args)
        if res.returncode != 0:
            detail = (res.stderr or res.stdout or "").strip()
            raise ProxmoxError(f"{message}: {detail}" if detail else message, hint=hint)
        return res.stdout or ""

    def next_id(self) -> int:
        res = self._run(["pvesh", "get", "/cluster/nextid"])
        text = (res.stdout or "").strip().strip('"')
        if res.returncode != 0 or not text.isdigit():
            return DEFAULT_CTID
        return int(text)

    def container_exists(self, ctid: int) -> bool:
        return self._run(["pct", "status", str(ctid)]).returncode == 0

    def storages(self) -> list[str]:
        res = self._run(["pvesm", "status", "--content", "rootdir"])
        if res.returncode != 0:
            return [DEFAULT_STORAGE]
        names = [line.split()[0] for line in (res.stdout or "").splitlines()[1:] if line.strip()]
        return names or [DEFAULT_STORAGE]

    def templates(self, storage: str) -> list[str]:
        res = self._run(["pveam", "list", storage])
        if res.returncode != 0:
            return []
        return [line.split()[0] for line in (res.stdout or "").splitlines()[1:] if line.strip()]

    def download_template(self, storage: str, name: str) -> bool:
        return self._run(["pveam", "download", storage, name]).returncode == 0

    def bridges(self) -> list[str]:
        res = self._run(["ip", "-o", "link", "show", "type", "bridge"])
        names = []
        if res.returncode == 0:
            for line in (res.stdout or "").splitlines():
                match = _BRIDGE_RE.match(line)
                if match:
                    names.append(match.group(1))
        return names or [DEFAULT_BRIDGE]

    def default_gateway(self) -> str | None:
        res = self._run(["ip", "route", "show", "default"])
        for line in (res.stdout or "").splitlines():
            parts = line.split()
            if "via" in parts:
                idx = parts.index("via")
                if idx + 1 < len(parts):
                    return parts[idx + 1]
        return None

    def host_ip(self, bridge: str = DEFAULT_BRIDGE) -> str | None:
        res = self._run(["ip", "-4", "-o", "addr", "show", bridge])
        if res.returncode == 0:
            match = _INET_RE.search(res.stdout or "")
            if match:
                return match.group(1)
        res = self._run(["hostname", "-I"])
        return _first_address(res.stdout) if res.returncode == 0 else None

    def create(self, spec: ContainerHostSpec, root_password: str) -> None:
        self._check(
            [
                "pct", "create", str(spec.ctid), spec.template,
                "--hostname", spec.hostname,
                "--cores", str(spec.cores),
                "--memory", str(spec.memory_mb),
                "--swap", str(spec.swap_mb),
                "--rootfs", spec.rootfs,
                "--net0", spec.net0,
                "--ostype", "debian",
                "--password", root_password,
                "--features", "nesting=1,keyctl=1",
                "--onboot", "1",
                "--unprivileged", "0",
                "--start", "0",
            ],
            f"Failed to create CT {spec.ctid}",
        )

    def conf_path(self, ctid: int) -> Path:
        return Path(self.conf_dir) / f"{ctid}.conf"

    def enable_nesting(self, ctid: int) -> None:
        path = self.conf_path(ctid)
        try:
            with open(path, "a", encoding="utf-8") as f:
                f.write("\n".join(NESTING_DIRECTIVES) + "\n")
        except OSError as exc:
            raise ProxmoxError(f"Failed to update {path}: {exc}") from exc

    def start(self, ctid: int) -> None:
        self._check(["pct", "start", str(ctid)], f"Failed to start CT {ctid}")

    def exec(self, ctid: int, args: Sequence[str], *, stream: bool = False):
        return self._run(["pct", "exec", str(ctid), "--", *args], stream=stream)

    def has_network(self, ctid: int, ping_target: str) -> bool:
        return self.exec(ctid, ["ping", "-c1", "-W2", ping_target]).returncode == 0

    def container_ip(self, ctid: int) -> str | None:
        res = self.exec(ctid, ["hostname", "-I"])
        return _first_address(res.stdout) if res.returncode == 0 else None

    def target(self, ctid: int) -> ContainerTarget:
        return ContainerTarget(ctid, runner=self._runner)
