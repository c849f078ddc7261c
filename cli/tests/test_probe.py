import subprocess

from paperstack.probe import Environment, detect_environment, proxmox_version


def test_detect_environment() -> None:
    assert detect_environment(lambda name: "/usr/bin/pveversion") is Environment.PROXMOX
    assert detect_environment(lambda name: None) is Environment.PLAIN


def test_proxmox_version_from_verbose(fake_runner) -> None:
    fake_runner.on(
        "pveversion", "--verbose",
        stdout="proxmox-ve: 8.2.0 (running kernel: 6.8.4-2-pve)\npve-manager: 8.2.2 (running version: 8.2.2/9355359cd7afbae4)\n",
    )
    assert proxmox_version(fake_runner) == "8.2.2"


def test_proxmox_version_plain_fallback(fake_runner) -> None:
    fake_runner.on("pveversion", "--verbose", rc=1)
    fake_runner.on("pveversion", handler=lambda args: subprocess.CompletedProcess(
        args, 1 if "--verbose" in args else 0, "pve-manager/8.2.2/9355359cd7afbae4\n", ""
    ))
    assert proxmox_version(fake_runner) == "pve-manager/8.2.2/9355359cd7afbae4"
