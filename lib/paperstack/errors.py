from __future__ import annotations


class PaperstackError(RuntimeError):
    """Fatal installer error. Aborts the run and arms the failure cleanup."""

    exit_code = 1

    def __init__(self, message: str, *, hint: str | None = None):
        super().__init__(message)
        self.hint = hint


class PrerequisiteError(PaperstackError):
    """A required external capability is missing."""


class ManifestError(PaperstackError):
    """The generated compose manifest was rejected."""


class ComposeError(PaperstackError):
    """A compose command failed."""


class ReadinessError(PaperstackError):
    """A service never became reachable."""


class ProxmoxError(PaperstackError):
    """A Proxmox host command failed."""


class ContainerIdInUse(ProxmoxError):
    pass


class TemplateUnavailable(ProxmoxError):
    pass


class NetworkUnreachable(ProxmoxError):
    pass


class ProbeError(RuntimeError):
    """An HTTP probe failed. Never fatal on its own."""


class InstallDeclined(Exception):
    """The operator answered no at a confirmation prompt."""
