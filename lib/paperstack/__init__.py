from .deploy import DeploymentSequencer, DeployOutcome, DeployTimings
from .errors import InstallDeclined, PaperstackError, ProbeError
from .manifest import Manifest, build_manifest, render_manifest
from .plan import ContainerHostSpec, InstallationPlan, InstallOutcome, InstallRequest
from .provisioner import ContainerHostProvisioner
from .targets import ContainerTarget, ExecutionTarget, LocalTarget

__all__ = [
    "ContainerHostProvisioner",
    "ContainerHostSpec",
    "ContainerTarget",
    "DeployOutcome",
    "DeployTimings",
    "DeploymentSequencer",
    "ExecutionTarget",
    "InstallDeclined",
    "InstallOutcome",
    "InstallRequest",
    "InstallationPlan",
    "LocalTarget",
    "Manifest",
    "PaperstackError",
    "ProbeError",
    "build_manifest",
    "render_manifest",
]
