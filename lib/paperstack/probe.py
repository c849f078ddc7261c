from __future__ import annotations

import enum
import shutil
from typing import Callable

from .targets import Runner, local_run


class Environment(str, enum.Enum):
    PROXMOX = "proxmox"
    PLAIN = "plain"


def detect_environment(which: Callable[[str], str | None] = shutil.which) -> Environment:
    if which("pveversion"):
        return Environment.PROXMOX
    return Environment.PLAIN


def proxmox_version(runner: Runner = local_run) -> str | None:
    res = runner(["pveversion", "--verbose"])
    if res.returncode == 0:
        for line in (res.stdout or "").splitlines():
            if line.startswith("pve-manager"):
                parts = line.split()
                if len(parts) >= 2:
                    return parts[1]
    res = runner(["pveversion"])
    if res.returncode != 0:
        return None
    return (res.stdout or "").strip() or None
