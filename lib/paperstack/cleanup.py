from __future__ import annotations

import logging
from dataclasses import dataclass

from .report import LogReporter, Reporter
from .targets import ExecutionTarget

log = logging.getLogger(__name__)


@dataclass
class RunState:
    failed: bool = False
    compose_command: str | None = None
    install_dir: str | None = None

    def arm(self) -> None:
        self.failed = True

    def clear(self) -> None:
        self.failed = False


class FailureCleanup:
    """Stops whatever was started when the run ends with the failure flag set.

    Used as a context manager around the deployment. It runs once, whatever the
    exit path, and never replaces the exception that ended the run.
    """

    def __init__(self, state: RunState, target: ExecutionTarget, *, reporter: Reporter | None = None):
        self.state = state
        self.target = target
        self.reporter = reporter or LogReporter()
        self._done = False
        self.triggered = False

    def __enter__(self) -> "FailureCleanup":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.run()
        return False

    def run(self) -> None:
        if self._done:
            return
        self._done = True
        state = self.state
        if not (state.failed and state.compose_command and state.install_dir):
            return
        self.triggered = True
        self.reporter.warn("Installation failed. Cleaning up containers...")
        try:
            res = self.target.run([*state.compose_command.split(), "down"], cwd=state.install_dir)
            if res.returncode != 0:
                log.debug("cleanup down failed: %s", (res.stderr or "").strip())
        except Exception:
            log.debug("cleanup raised", exc_info=True)
