from __future__ import annotations

import subprocess
from typing import Callable

import pytest

from paperstack.errors import ProbeError
from paperstack.targets import ExecutionTarget

TOKEN = "0123456789abcdef0123456789abcdef01234567"


class FakeRunner:
    """Command runner driven by prefix rules; the latest matching rule wins."""

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self.cwds: list[str | None] = []
        self.inputs: list[str | None] = []
        self._rules: list[tuple[tuple[str, ...], Callable[[list[str]], subprocess.CompletedProcess]]] = []

    def on(self, *prefix: str, rc: int = 0, stdout: str = "", stderr: str = "", handler=None) -> None:
        if handler is None:
            def handler(args, _rc=rc, _out=stdout, _err=stderr):
                return subprocess.CompletedProcess(args, _rc, _out, _err)
        self._rules.insert(0, (tuple(prefix), handler))

    def __call__(self, args, *, input=None, cwd=None, stream=False):
        args = [str(a) for a in args]
        self.calls.append(args)
        self.cwds.append(cwd)
        self.inputs.append(input)
        for prefix, handler in self._rules:
            if tuple(args[: len(prefix)]) == prefix:
                return handler(args)
        return subprocess.CompletedProcess(args, 0, "", "")

    def count(self, *prefix: str) -> int:
        return sum(1 for args in self.calls if tuple(args[: len(prefix)]) == prefix)


class FakeTarget(ExecutionTarget):
    label = "fake host"

    def __init__(self) -> None:
        self.runner = FakeRunner()
        self.files: dict[str, str] = {}
        self.modes: dict[str, int | None] = {}
        self.dirs: list[str] = []
        self.live = True
        self.http_probes: list[str] = []
        self.json: dict[str, object] = {}

    def on(self, *prefix: str, **kwargs) -> None:
        self.runner.on(*prefix, **kwargs)

    def run(self, args, *, cwd=None, input=None, stream=False):
        return self.runner(args, input=input, cwd=cwd, stream=stream)

    def exists(self, path: str) -> bool:
        return path in self.files

    def make_dirs(self, paths) -> None:
        self.dirs.extend(paths)

    def write_text(self, path: str, content: str, *, mode: int | None = None) -> None:
        self.files[path] = content
        self.modes[path] = mode

    def http_ok(self, url: str, *, timeout: float = 3.0) -> bool:
        self.http_probes.append(url)
        return self.live

    def http_get_json(self, url: str, *, timeout: float = 5.0) -> object:
        self.http_probes.append(url)
        if url in self.json:
            return self.json[url]
        raise ProbeError(f"GET {url} failed")


class RecordingReporter:
    def __init__(self) -> None:
        self.messages: list[tuple[str, str]] = []

    def info(self, msg: str) -> None:
        self.messages.append(("info", msg))

    def ok(self, msg: str) -> None:
        self.messages.append(("ok", msg))

    def warn(self, msg: str) -> None:
        self.messages.append(("warn", msg))

    def err(self, msg: str) -> None:
        self.messages.append(("err", msg))

    def text(self, level: str | None = None) -> str:
        return "\n".join(msg for lvl, msg in self.messages if level is None or lvl == level)


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def fake_target() -> FakeTarget:
    return FakeTarget()


@pytest.fixture
def stack_target() -> FakeTarget:
    """A target where docker works, every container is healthy and a token is issued."""
    target = FakeTarget()
    target.on("docker", "inspect", "--format", "{{.State.Health.Status}}", stdout="healthy\n")
    target.on("docker", "inspect", "--format", "{{.State.Running}}", stdout="true\n")
    target.on("docker", "exec", "paperless-ngx", stdout=f"{TOKEN}\n")
    return target


@pytest.fixture
def reporter() -> RecordingReporter:
    return RecordingReporter()


class Sleeper:
    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def sleeper() -> Sleeper:
    return Sleeper()
