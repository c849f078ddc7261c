from __future__ import annotations

import enum
import os
import time
from typing import Callable

import typer

from paperstack.cleanup import FailureCleanup, RunState
from paperstack.compose import ComposeProject, require_prereqs
from paperstack.deploy import DeployOutcome, DeploymentSequencer, DeployTimings
from paperstack.errors import InstallDeclined, PaperstackError
from paperstack.manifest import GPT
from paperstack.plan import InstallationPlan, InstallOutcome, InstallRequest
from paperstack.probe import Environment, detect_environment, proxmox_version
from paperstack.provisioner import ContainerHostProvisioner
from paperstack.proxmox import ProxmoxHost
from paperstack.targets import ExecutionTarget, LocalTarget

from .. import console, prompts
from ..collector import CollectorOptions, ContainerOptions, collect_container_spec, collect_plan
from ..config import AppConfig, load_config


class InstallMode(str, enum.Enum):
    auto = "auto"
    lxc = "lxc"
    local = "local"


def _report(exc: PaperstackError) -> None:
    for line in str(exc).splitlines() or [exc.__class__.__name__]:
        console.err(line)
    if exc.hint:
        console.info(exc.hint)


def _show_terminal_output(text: str) -> None:
    console.print(text, markup=False, highlight=False)


def run_install(
        target: ExecutionTarget,
        request: InstallRequest,
        options: CollectorOptions,
        *,
        cfg: AppConfig | None = None,
        timings: DeployTimings = DeployTimings(),
        sleep: Callable[[float], None] = time.sleep,
) -> InstallOutcome:
    """The stack-install pipeline on one target. Never raises for expected failures."""
    cfg = cfg or load_config()
    try:
        console.rule(f"Preflight checks ({target.label})")
        prereqs = require_prereqs(target)
        console.ok(prereqs.docker_version or "Docker installed")
        console.ok(f"Compose: {' '.join(prereqs.compose_command)}")
        console.rule("Configuration")
        plan = collect_plan(target, request, options, cfg=cfg)
    except InstallDeclined:
        console.warn("Installation cancelled.")
        return InstallOutcome(exit_code=0)
    except PaperstackError as exc:
        _report(exc)
        return InstallOutcome(exit_code=exc.exit_code)
    except typer.Exit as exc:
        return InstallOutcome(exit_code=exc.exit_code)

    state = RunState()
    compose = ComposeProject(target, plan.install_dir, prereqs.compose_command)
    sequencer = DeploymentSequencer(
        target,
        plan,
        compose,
        state,
        reporter=console,
        timings=timings,
        sleep=sleep,
        show=_show_terminal_output,
    )
    try:
        with FailureCleanup(state, target, reporter=console):
            console.rule("Setting up")
            outcome = sequencer.run()
    except PaperstackError as exc:
        _report(exc)
        return InstallOutcome(exit_code=exc.exit_code)
    except KeyboardInterrupt:
        console.err("Interrupted.")
        return InstallOutcome(exit_code=130)

    show_completion(plan, outcome, compose)
    return InstallOutcome(
        exit_code=0,
        service_urls=plan.service_urls,
        credentials_path=outcome.credentials_path,
    )


def show_completion(plan: InstallationPlan, outcome: DeployOutcome, compose: ComposeProject) -> None:
    console.rule("Installation Complete!")
    console.print("[bold green]Paperless AI Stack is ready![/]")
    for name, url in plan.service_urls.items():
        console.print(f"  {name:<15} → [cyan]{url}[/]")
    console.print(f"  Login:          {plan.admin_username} / {plan.admin_password}", markup=False)
    console.print(f"  API token:      {outcome.api_token or f'see {outcome.credentials_path}'}", markup=False)
    console.print(f"  Config:         {plan.manifest_path}", markup=False)
    console.print(f"  Credentials:    {outcome.credentials_path}", markup=False)
    console.print(f"  Documents:      {plan.install_dir}/consume/ (drop files here)", markup=False)
    if plan.use_ollama:
        console.print(f"  Ollama:         {plan.ollama_url}", markup=False)
        console.print(f"  LLM model:      {plan.llm_model}", markup=False)
        console.print(f"  Vision model:   {plan.vision_model}", markup=False)
    else:
        console.warn("Ollama is disabled. Configure an LLM provider for the AI services yourself:")
        console.info(f"Add LLM_PROVIDER/LLM_MODEL (and OPENAI_API_KEY if needed) to {GPT} in {plan.manifest_path}")
        console.info(f"Run the Paperless-AI setup at {plan.service_urls['Paperless-AI']}")
    console.print("[bold]Next steps:[/]")
    console.print("  1. Open Paperless-ngx and upload a document")
    console.print(f"  2. Tag it with '{GPT}' to trigger AI processing", markup=False)
    console.print(f"  3. Configure Paperless-AI at {plan.service_urls['Paperless-AI']} (first-run setup)", markup=False)
    console.print("[bold]Commands:[/]")
    console.print(f"  cd {plan.install_dir}", markup=False)
    for args, note in (("logs -f", "View logs"), ("restart", "Restart all"), ("down", "Stop all"), ("up -d", "Start all")):
        console.print(f"  {compose.command_str} {args:<10} # {note}", markup=False)
    if outcome.all_running:
        console.ok("All services healthy.")
    else:
        console.warn(f"Some services may need attention: {', '.join(outcome.degraded)}. Check logs above.")


def resolve_mode(mode: InstallMode, options: CollectorOptions) -> str:
    environment = detect_environment()
    if environment is Environment.PROXMOX:
        console.ok(f"Proxmox VE detected: {proxmox_version() or 'unknown version'}")
    if mode is InstallMode.local:
        return prompts.MODE_LOCAL
    if mode is InstallMode.lxc:
        if environment is not Environment.PROXMOX:
            console.err("--mode lxc needs a Proxmox VE host (pveversion not found).")
            raise typer.Exit(code=1)
        return prompts.MODE_LXC
    if environment is not Environment.PROXMOX:
        return prompts.MODE_LOCAL
    if options.non_interactive or options.assume_yes:
        return prompts.MODE_LXC
    return prompts.select_install_mode()


def install_in_container(
        options: CollectorOptions,
        container: ContainerOptions,
        *,
        cfg: AppConfig,
        host: ProxmoxHost | None = None,
        provisioner: ContainerHostProvisioner | None = None,
) -> int:
    host = host or ProxmoxHost()
    provisioner = provisioner or ContainerHostProvisioner(host, reporter=console)
    console.rule("LXC Container Setup")
    try:
        spec = collect_container_spec(host, provisioner, container, options, defaults=cfg.container)
        provisioned, outcome = provisioner.run(
            spec,
            lambda target, request: run_install(target, request, options, cfg=cfg),
        )
    except InstallDeclined:
        console.warn("Installation cancelled.")
        return 0
    except PaperstackError as exc:
        _report(exc)
        return exc.exit_code

    if outcome.ok and outcome.service_urls:
        console.rule(f"CT {spec.ctid} ready")
        console.print(f"  Container:      CT {spec.ctid} ({spec.hostname}) at {provisioned.ip}", markup=False)
        console.print(f"  Enter:          pct enter {spec.ctid}", markup=False)
    return outcome.exit_code


def install(
        mode: InstallMode = typer.Option(InstallMode.auto, "--mode", help="Where to install: auto, lxc or local."),
        install_dir: str | None = typer.Option(None, "--install-dir", help="Install directory."),
        host_ip: str | None = typer.Option(None, "--host-ip", help="Address the services are published on."),
        admin_username: str | None = typer.Option(None, "--admin-username", help="Paperless admin username."),
        admin_password: str | None = typer.Option(None, "--admin-password", help="Paperless admin password."),
        timezone: str | None = typer.Option(None, "--timezone", help="Timezone, e.g. Europe/Berlin."),
        ocr_languages: str | None = typer.Option(None, "--ocr-languages", help="Tesseract languages, e.g. deu+eng."),
        use_ollama: bool | None = typer.Option(None, "--ollama/--no-ollama", help="Wire the AI services to Ollama."),
        ollama_url: str | None = typer.Option(None, "--ollama-url", help="Ollama URL."),
        llm_model: str | None = typer.Option(None, "--llm-model", help="LLM model for tagging & OCR."),
        vision_model: str | None = typer.Option(None, "--vision-model", help="Vision model for OCR."),
        llm_language: str | None = typer.Option(None, "--llm-language", help="LLM response language."),
        ctid: int | None = typer.Option(None, "--ctid", help="LXC container ID (lxc mode)."),
        hostname: str | None = typer.Option(None, "--hostname", help="LXC hostname (lxc mode)."),
        cores: int | None = typer.Option(None, "--cores", help="LXC CPU cores (lxc mode)."),
        memory: int | None = typer.Option(None, "--memory", help="LXC memory in MB (lxc mode)."),
        disk: int | None = typer.Option(None, "--disk", help="LXC disk size in GB (lxc mode)."),
        swap: int | None = typer.Option(None, "--swap", help="LXC swap in MB (lxc mode)."),
        storage: str | None = typer.Option(None, "--storage", help="Storage for the LXC rootfs (lxc mode)."),
        template: str | None = typer.Option(None, "--template", help="LXC template volume (lxc mode)."),
        bridge: str | None = typer.Option(None, "--bridge", help="LXC network bridge (lxc mode)."),
        ip: str | None = typer.Option(None, "--ip", help="LXC IP config: dhcp or IP/CIDR (lxc mode)."),
        gateway: str | None = typer.Option(None, "--gateway", help="LXC gateway for a static IP (lxc mode)."),
        assume_yes: bool = typer.Option(False, "--yes", "-y", help="Answer yes at confirmations."),
        non_interactive: bool = typer.Option(False, "--non-interactive", help="Accept every default without prompting."),
):
    """Install Paperless-ngx, Paperless-GPT and Paperless-AI."""
    options = CollectorOptions(
        install_dir=install_dir,
        host_ip=host_ip,
        admin_username=admin_username,
        admin_password=admin_password,
        timezone=timezone,
        ocr_languages=ocr_languages,
        use_ollama=use_ollama,
        ollama_url=ollama_url,
        llm_model=llm_model,
        vision_model=vision_model,
        llm_language=llm_language,
        assume_yes=assume_yes,
        non_interactive=non_interactive,
    )
    cfg = load_config()
    console.rule("Paperless AI Stack Installer")
    if hasattr(os, "geteuid") and os.geteuid() != 0:
        console.warn("Running without root, some operations may fail")
    selected = resolve_mode(mode, options)
    if selected == prompts.MODE_LOCAL:
        outcome = run_install(LocalTarget(), InstallRequest(), options, cfg=cfg)
        raise typer.Exit(code=outcome.exit_code)

    container = ContainerOptions(
        ctid=ctid,
        hostname=hostname,
        cores=cores,
        memory_mb=memory,
        disk_gb=disk,
        swap_mb=swap,
        storage=storage,
        template=template,
        bridge=bridge,
        ip=ip,
        gateway=gateway,
    )
    raise typer.Exit(code=install_in_container(options, container, cfg=cfg))
