from __future__ import annotations

import logging
from typing import Protocol

log = logging.getLogger("paperstack")


class Reporter(Protocol):
    def info(self, msg: str) -> None: ...

    def ok(self, msg: str) -> None: ...

    def warn(self, msg: str) -> None: ...

    def err(self, msg: str) -> None: ...


class LogReporter:
    """Default reporter when no console is attached."""

    def info(self, msg: str) -> None:
        log.info(msg)

    def ok(self, msg: str) -> None:
        log.info(msg)

    def warn(self, msg: str) -> None:
        log.warning(msg)

    def err(self, msg: str) -> None:
        log.error(msg)
