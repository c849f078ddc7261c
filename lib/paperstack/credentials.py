from __future__ import annotations

import posixpath
from datetime import datetime, timezone

from .plan import ContainerHostSpec, InstallationPlan, ProvisioningCredentials, service_urls
from .targets import ExecutionTarget

CREDENTIALS_MODE = 0o600
PVE_CREDENTIALS_DIR = "/etc/pve/local"


def _stamp(generated_at: datetime | None) -> str:
    return (generated_at or datetime.now(timezone.utc)).isoformat(timespec="seconds")


def render_credentials(
        plan: InstallationPlan,
        creds: ProvisioningCredentials,
        *,
        generated_at: datetime | None = None,
) -> str:
    lines = [
        "# Paperless AI Stack - Credentials",
        f"# Generated: {_stamp(generated_at)}",
        f"Admin Username:  {creds.admin_username}",
        f"Admin Password:  {creds.admin_password}",
        f"API Token:       {creds.api_token_display}",
        f"Secret Key:      {creds.secret_key}",
        "",
    ]
    for name, url in plan.service_urls.items():
        lines.append(f"{name + ':':<17}{url}")
    return "\n".join(lines) + "\n"


def write_credentials(target: ExecutionTarget, path: str, content: str) -> str:
    target.write_text(path, content, mode=CREDENTIALS_MODE)
    return path


def container_credentials_path(ctid: int, directory: str = PVE_CREDENTIALS_DIR) -> str:
    return posixpath.join(directory, f"paperless-ct{ctid}.creds")


def render_container_credentials(
        spec: ContainerHostSpec,
        *,
        ip: str,
        root_password: str,
        generated_at: datetime | None = None,
) -> str:
    lines = [
        f"# Paperless AI Stack - LXC {spec.ctid}",
        f"# Generated: {_stamp(generated_at)}",
        f"CT ID:        {spec.ctid}",
        f"Hostname:     {spec.hostname}",
        f"IP:           {ip}",
        f"Root pass:    {root_password}",
    ]
    for name, url in service_urls(ip).items():
        lines.append(f"{name + ':':<14}{url}")
    return "\n".join(lines) + "\n"
