"""Where the stack gets installed: this machine, or inside a Proxmox LXC.

Both targets expose the same small surface (run a command, write a file,
probe a URL) so the deployment sequencer never needs to know which one it is
talking to.
"""
from __future__ import annotations

import json
import logging
import os
import shlex
import shutil
import subprocess
from pathlib import Path
from typing import Callable, Iterable, Sequence

import httpx

from .errors import PaperstackError, ProbeError

log = logging.getLogger(__name__)

Runner = Callable[..., "subprocess.CompletedProcess[str]"]


def local_run(
        args: Sequence[str],
        *,
        input: str | None = None,
        cwd: str | None = None,
        stream: bool = False,
) -> subprocess.CompletedProcess[str]:
    log.debug("run: %s", " ".join(shlex.quote(a) for a in args))
    try:
        if stream:
            return subprocess.run(list(args), text=True, input=input, cwd=cwd, check=False)
        return subprocess.run(
            list(args),
            text=True,
            input=input,
            cwd=cwd,
            capture_output=True,
            encoding="utf-8",
            errors="replace",
            check=False,
        )
    except FileNotFoundError as exc:
        return subprocess.CompletedProcess(list(args), 127, "", str(exc))


def _with_cwd(command: str, cwd: str | None) -> str:
    if not cwd:
        return command
    return f"cd {shlex.quote(cwd)} && {command}"


class ExecutionTarget:
    label = "target"

    def run(
            self,
            args: Sequence[str],
            *,
            cwd: str | None = None,
            input: str | None = None,
            stream: bool = False,
    ) -> subprocess.CompletedProcess[str]:
        raise NotImplementedError

    def succeeds(self, args: Sequence[str], *, cwd: str | None = None) -> bool:
        return self.run(args, cwd=cwd).returncode == 0

    def output(self, args: Sequence[str]) -> str | None:
        res = self.run(args)
        if res.returncode != 0:
            return None
        text = (res.stdout or "").strip()
        return text or None

    def command_exists(self, name: str) -> bool:
        return self.succeeds(["sh", "-c", f"command -v {shlex.quote(name)} >/dev/null 2>&1"])

    def exists(self, path: str) -> bool:
        return self.succeeds(["test", "-e", path])

    def make_dirs(self, paths: Iterable[str]) -> None:
        paths = list(paths)
        res = self.run(["mkdir", "-p", *paths])
        if res.returncode != 0:
            raise PaperstackError(f"Failed to create directories on {self.label}: {(res.stderr or '').strip()}")

    def write_text(self, path: str, content: str, *, mode: int | None = None) -> None:
        script = f"cat > {shlex.quote(path)}"
        if mode is not None:
            script = f"umask 077 && {script} && chmod {mode:o} {shlex.quote(path)}"
        res = self.run(["sh", "-c", script], input=content)
        if res.returncode != 0:
            raise PaperstackError(f"Failed to write {path} on {self.label}: {(res.stderr or '').strip()}")

    def http_ok(self, url: str, *, timeout: float = 3.0) -> bool:
        """True when anything answers over HTTP, whatever the status code."""
        res = self.run(["curl", "-sS", "-o", "/dev/null", "-m", str(int(timeout)), url])
        return res.returncode == 0

    def http_get_json(self, url: str, *, timeout: float = 5.0) -> object:
        res = self.run(["curl", "-sS", "-f", "-m", str(int(timeout)), url])
        if res.returncode != 0:
            raise ProbeError((res.stderr or "").strip() or f"GET {url} failed")
        try:
            return json.loads(res.stdout or "")
        except ValueError as exc:
            raise ProbeError(f"GET {url} returned invalid JSON") from exc


class LocalTarget(ExecutionTarget):
    label = "this host"

    def __init__(self, runner: Runner = local_run):
        self._runner = runner

    def run(self, args, *, cwd=None, input=None, stream=False):
        return self._runner(args, input=input, cwd=cwd, stream=stream)

    def command_exists(self, name: str) -> bool:
        return shutil.which(name) is not None

    def exists(self, path: str) -> bool:
        return Path(path).exists()

    def make_dirs(self, paths: Iterable[str]) -> None:
        for path in paths:
            Path(path).mkdir(parents=True, exist_ok=True)

    def write_text(self, path: str, content: str, *, mode: int | None = None) -> None:
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
        if mode is not None:
            os.chmod(target, mode)

    def http_ok(self, url: str, *, timeout: float = 3.0) -> bool:
        try:
            httpx.get(url, timeout=timeout)
        except (httpx.HTTPError, httpx.InvalidURL):
            return False
        return True

    def http_get_json(self, url: str, *, timeout: float = 5.0) -> object:
        try:
            response = httpx.get(url, timeout=timeout)
            response.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise ProbeError(f"GET {url} failed: {exc}") from exc
        try:
            return response.json()
        except ValueError as exc:
            raise ProbeError(f"GET {url} returned invalid JSON") from exc


class ContainerTarget(ExecutionTarget):
    """Runs everything through ``pct exec`` inside an LXC container."""

    def __init__(self, ctid: int, runner: Runner = local_run):
        self.ctid = ctid
        self._runner = runner

    @property
    def label(self) -> str:
        return f"CT {self.ctid}"

    def run(self, args, *, cwd=None, input=None, stream=False):
        if cwd:
            command = _with_cwd(" ".join(shlex.quote(a) for a in args), cwd)
            inner = ["sh", "-c", command]
        else:
            inner = list(args)
        return self._runner(["pct", "exec", str(self.ctid), "--", *inner], input=input, stream=stream)
