import io
import os
from functools import partial

import pytest
from rich.console import Console
from typer.testing import CliRunner

from paperstack.deploy import DeployTimings
from paperstack.plan import InstallOutcome, InstallRequest
from paperstack.probe import Environment
from paperstack.provisioner import ContainerHostProvisioner
from paperstack.proxmox import ProxmoxHost
from paperstack.targets import ContainerTarget
from paperstack_cli import collector, config, console, main
from paperstack_cli.collector import CollectorOptions, ContainerOptions
from paperstack_cli.commands import install_cmd
from paperstack_cli.commands.install_cmd import install_in_container, run_install
from paperstack_cli.config import AppConfig

MANIFEST = "/opt/paperless/docker-compose.yaml"
CREDENTIALS = "/opt/paperless/.credentials"
TEMPLATE = "local:vztmpl/debian-12-standard_12.7-1_amd64.tar.zst"
ROOT_PASSWORD = "RootPass12345678"


@pytest.fixture
def output(monkeypatch) -> io.StringIO:
    buf = io.StringIO()
    monkeypatch.setattr(console, "console", Console(file=buf, width=200, color_system=None))
    monkeypatch.delenv(config.ENV_INSTALL_DIR, raising=False)
    return buf


def _options(**overrides) -> CollectorOptions:
    values = dict(non_interactive=True, admin_password="pw", use_ollama=False)
    values.update(overrides)
    return CollectorOptions(**values)


def _install(target, **kwargs):
    return run_install(
        target,
        InstallRequest(),
        _options(),
        cfg=AppConfig(),
        sleep=lambda seconds: None,
        **kwargs,
    )


def test_install_without_ollama_asks_for_manual_llm_setup(stack_target, output) -> None:
    outcome = _install(stack_target)

    assert outcome.ok
    assert outcome.credentials_path == CREDENTIALS
    assert outcome.service_urls["Paperless-ngx"] == "http://localhost:8000"
    assert "LLM_PROVIDER" not in stack_target.files[MANIFEST]
    text = output.getvalue()
    assert "Configure an LLM provider" in text
    assert "All services healthy." in text


def test_unresponsive_paperless_fails_and_stops_containers(stack_target, output) -> None:
    stack_target.live = False
    outcome = _install(stack_target, timings=DeployTimings(web_ceiling=3))

    assert outcome.exit_code == 1
    assert len(stack_target.http_probes) == 3
    assert stack_target.runner.calls[-1] == ["docker", "compose", "down"]
    assert stack_target.runner.cwds[-1] == "/opt/paperless"
    assert CREDENTIALS not in stack_target.files
    text = output.getvalue()
    assert "Paperless-ngx not ready after 3 attempts" in text
    assert "Cleaning up containers" in text


def test_missing_docker_fails_before_anything_runs(fake_target, output) -> None:
    fake_target.on("sh", "-c", "command -v docker >/dev/null 2>&1", rc=1)
    outcome = _install(fake_target)

    assert outcome.exit_code == 1
    assert fake_target.files == {}
    assert fake_target.runner.count("docker", "compose", "down") == 0
    assert "Docker is not installed" in output.getvalue()


def test_declined_overwrite_exits_cleanly(stack_target, output) -> None:
    stack_target.files[MANIFEST] = "services: {}\n"
    outcome = _install(stack_target)

    assert outcome.exit_code == 0
    assert outcome.service_urls is None
    assert stack_target.runner.count("docker", "compose", "config") == 0
    assert stack_target.runner.count("docker", "compose", "down") == 0
    assert "Installation cancelled." in output.getvalue()


def test_lxc_mode_needs_proxmox(monkeypatch) -> None:
    monkeypatch.setattr(install_cmd, "detect_environment", lambda: Environment.PLAIN)
    result = CliRunner().invoke(main.app, ["install", "--mode", "lxc", "--non-interactive"])
    assert result.exit_code == 1
    assert "Proxmox" in result.output


def test_local_install_exit_code_comes_from_outcome(tmp_path, monkeypatch) -> None:
    monkeypatch.setattr(config, "user_config_dir", lambda _: str(tmp_path))
    monkeypatch.setattr(install_cmd, "detect_environment", lambda: Environment.PROXMOX)
    monkeypatch.setattr(install_cmd, "proxmox_version", lambda: "8.2.2")
    seen = {}

    def _run_install(target, request, options, **kwargs):
        seen["target"] = target
        seen["options"] = options
        return InstallOutcome(exit_code=3)

    monkeypatch.setattr(install_cmd, "run_install", _run_install)
    result = CliRunner().invoke(
        main.app,
        ["install", "--mode", "local", "--non-interactive", "--no-ollama", "--ocr-languages", "deu+eng"],
    )
    assert result.exit_code == 3
    assert seen["target"].label == "this host"
    assert seen["options"].use_ollama is False
    assert seen["options"].ocr_languages == "deu+eng"


@pytest.fixture
def pve(fake_runner, tmp_path) -> ProxmoxHost:
    """A Proxmox node where CT 210 is free, boots with network and runs docker."""
    fake_runner.on("pct", "status", rc=2, stderr="Configuration file does not exist")
    fake_runner.on("pct", "exec", "210", "--", "hostname", "-I", stdout="192.168.1.60\n")
    fake_runner.on("ip", "-4", stdout="inet 192.168.1.2/24 scope global vmbr0\n")
    (tmp_path / "lxc").mkdir()
    return ProxmoxHost(fake_runner, conf_dir=str(tmp_path / "lxc"))


@pytest.fixture
def nested_cli(pve, sleeper, tmp_path, monkeypatch):
    """Routes ``paperstack install --mode lxc`` to the fake node; returns the inner-run log."""
    monkeypatch.setattr(config, "user_config_dir", lambda _: str(tmp_path / "cfg"))
    monkeypatch.setattr(install_cmd, "detect_environment", lambda: Environment.PROXMOX)
    monkeypatch.setattr(install_cmd, "proxmox_version", lambda: "8.2.2")
    monkeypatch.setattr(install_cmd, "ProxmoxHost", lambda: pve)
    monkeypatch.setattr(
        install_cmd,
        "ContainerHostProvisioner",
        partial(
            ContainerHostProvisioner,
            sleep=sleeper,
            credentials_dir=str(tmp_path / "creds"),
            password_factory=lambda: ROOT_PASSWORD,
        ),
    )
    calls = []

    def _inner(exit_code, **extra):
        def _run_install(target, request, options, **kwargs):
            calls.append((target, request))
            return InstallOutcome(exit_code=exit_code, **extra)

        monkeypatch.setattr(install_cmd, "run_install", _run_install)
        return calls

    return _inner


def _lxc(*extra: str):
    return CliRunner().invoke(
        main.app,
        ["install", "--mode", "lxc", "--non-interactive", "--ctid", "210", "--template", TEMPLATE, *extra],
    )


def test_nested_exit_code_is_propagated(nested_cli, fake_runner, tmp_path) -> None:
    calls = nested_cli(3)
    result = _lxc()

    assert result.exit_code == 3
    assert fake_runner.count("pct", "create", "210") == 1
    target, request = calls[0]
    assert isinstance(target, ContainerTarget)
    assert target.ctid == 210
    assert request.hint_address == "192.168.1.2"
    assert fake_runner.count("pct", "destroy") == 0
    assert not (tmp_path / "creds" / "paperless-ct210.creds").exists()
    assert "pct enter 210" in result.output


def test_nested_success_saves_container_credentials(nested_cli, tmp_path) -> None:
    nested_cli(0, service_urls={"Paperless-ngx": "http://192.168.1.60:8000"}, credentials_path=CREDENTIALS)
    result = _lxc()

    assert result.exit_code == 0, result.output
    creds = tmp_path / "creds" / "paperless-ct210.creds"
    assert ROOT_PASSWORD in creds.read_text(encoding="utf-8")
    assert "http://192.168.1.60:8000" in creds.read_text(encoding="utf-8")
    assert (os.stat(creds).st_mode & 0o777) == 0o600


def test_container_id_in_use_stops_before_templates(nested_cli, fake_runner) -> None:
    calls = nested_cli(0)
    fake_runner.on("pct", "status", stdout="status: running\n")
    result = CliRunner().invoke(main.app, ["install", "--mode", "lxc", "--non-interactive", "--ctid", "210"])

    assert result.exit_code == 1
    assert "CT 210 already exists" in result.output
    assert fake_runner.count("pveam") == 0
    assert fake_runner.count("pct", "create") == 0
    assert calls == []


def test_static_ip_without_gateway_is_rejected(nested_cli, fake_runner) -> None:
    calls = nested_cli(0)
    result = _lxc("--ip", "192.168.1.70/24")

    assert result.exit_code == 1
    assert "gateway is required" in result.output
    assert fake_runner.count("pct", "create") == 0
    assert calls == []


def test_declining_container_creation_changes_nothing(
        pve, fake_runner, sleeper, tmp_path, monkeypatch, output
) -> None:
    monkeypatch.setattr(collector.Confirm, "ask", lambda *args, **kwargs: False)
    container = ContainerOptions(
        ctid=210,
        hostname="paperless",
        cores=2,
        memory_mb=4096,
        disk_gb=20,
        swap_mb=512,
        storage="local",
        template=TEMPLATE,
        bridge="vmbr0",
        ip="dhcp",
    )
    provisioner = ContainerHostProvisioner(pve, sleep=sleeper, credentials_dir=str(tmp_path / "creds"))

    code = install_in_container(
        CollectorOptions(),
        container,
        cfg=AppConfig(),
        host=pve,
        provisioner=provisioner,
    )

    assert code == 0
    assert fake_runner.count("pct", "create") == 0
    assert "Installation cancelled." in output.getvalue()
