"""Interactive questions that turn into an :class:`InstallationPlan`.

Every question has a matching option; a value passed on the command line is
used as-is and the question is skipped. ``non_interactive`` accepts each
default, ``assume_yes`` answers yes at confirmations.
"""
from __future__ import annotations

import posixpath
from dataclasses import dataclass
from typing import Callable

import typer
from rich.prompt import Confirm
from rich.table import Table

from paperstack import ollama
from paperstack.compose import docker_gateway
from paperstack.errors import InstallDeclined
from paperstack.plan import (
    DEFAULT_LLM_MODEL,
    MANIFEST_FILENAME,
    ContainerHostSpec,
    InstallationPlan,
    InstallRequest,
    generate_password,
    generate_secret,
    internal_ollama_url,
    normalize_ollama_url,
    parse_ocr_languages,
)
from paperstack.provisioner import ContainerHostProvisioner
from paperstack.proxmox import ProxmoxHost, pick_default_template
from paperstack.targets import ExecutionTarget

from . import console, prompts
from .config import AppConfig, ContainerDefaults, resolve_install_dir


@dataclass
class CollectorOptions:
    install_dir: str | None = None
    host_ip: str | None = None
    admin_username: str | None = None
    admin_password: str | None = None
    timezone: str | None = None
    ocr_languages: str | None = None
    use_ollama: bool | None = None
    ollama_url: str | None = None
    llm_model: str | None = None
    vision_model: str | None = None
    llm_language: str | None = None
    assume_yes: bool = False
    non_interactive: bool = False


@dataclass
class ContainerOptions:
    ctid: int | None = None
    hostname: str | None = None
    cores: int | None = None
    memory_mb: int | None = None
    disk_gb: int | None = None
    swap_mb: int | None = None
    storage: str | None = None
    template: str | None = None
    bridge: str | None = None
    ip: str | None = None
    gateway: str | None = None


def ask(label: str, value, default, options: CollectorOptions, *, hide_input: bool = False, value_type=str):
    if value is not None:
        return value
    if options.non_interactive:
        return default
    if hide_input:
        return typer.prompt(label, default=default, hide_input=True, show_default=False, type=value_type)
    return typer.prompt(label, default=default, type=value_type)


def confirm(message: str, *, default: bool, options: CollectorOptions) -> bool:
    if options.assume_yes:
        return True
    if options.non_interactive:
        return default
    return Confirm.ask(message, default=default)


def ask_valid(
        label: str,
        value: str | None,
        default: str,
        options: CollectorOptions,
        parse: Callable[[str], object],
):
    """Prompt until ``parse`` accepts the answer.

    A bad value given on the command line, or any bad value when nothing can
    be asked, ends the run with exit code 1.
    """
    while True:
        raw = ask(label, value, default, options)
        try:
            return parse(raw)
        except ValueError as exc:
            console.err(str(exc))
            if value is not None or options.non_interactive:
                raise typer.Exit(code=1)


def _first_word(text: str | None) -> str | None:
    parts = (text or "").split()
    return parts[0] if parts else None


def detect_host_ip(target: ExecutionTarget) -> str:
    return _first_word(target.output(["hostname", "-I"])) or "localhost"


def detect_timezone(target: ExecutionTarget) -> str:
    tz = target.output(["timedatectl", "show", "-p", "Timezone", "--value"])
    if not tz:
        tz = target.output(["cat", "/etc/timezone"])
    return (tz or "").strip() or "UTC"


def _choose_model(catalog: ollama.ModelCatalog, options: CollectorOptions) -> str:
    if options.llm_model is not None:
        return options.llm_model
    if options.non_interactive:
        return catalog.default_model
    if catalog.models:
        return prompts.select_model("LLM model for tagging & OCR", catalog.models, catalog.default_model)
    return typer.prompt("LLM model for tagging & OCR", default=catalog.default_model)


def collect_ollama(
        target: ExecutionTarget,
        request: InstallRequest,
        host_ip: str,
        options: CollectorOptions,
        *,
        default_model: str = DEFAULT_LLM_MODEL,
) -> tuple[str, str, str, str]:
    """Returns (url, url seen from containers, llm model, vision model)."""
    default_url = options.ollama_url
    if default_url is None:
        console.info("Detecting Ollama...")
        detected = ollama.detect_endpoint(target, ollama.candidate_urls(host_ip, request.hint_address))
        if detected:
            console.ok(f"Ollama found at {detected}")
            default_url = detected
        else:
            default_url = ollama.fallback_url(host_ip, request.hint_address)
            console.warn(f"Ollama not detected. Make sure it is running and reachable at {default_url}")
    url = ask_valid("Ollama URL", options.ollama_url, default_url, options, normalize_ollama_url)

    gateway = docker_gateway(target)
    internal = internal_ollama_url(url, gateway)
    if internal != url:
        console.info(f"Containers will reach Ollama at {internal}")

    catalog = ollama.discover_models(target, url, default_model=default_model)
    if catalog.ok:
        console.ok(f"Found {len(catalog.models)} model(s): {', '.join(catalog.models)}")
    else:
        console.warn(f"Could not list Ollama models ({catalog.error}). Defaulting to {catalog.default_model}")
    llm_model = _choose_model(catalog, options).strip() or catalog.default_model
    vision_model = ask("Vision model for OCR (or same as LLM)", options.vision_model, llm_model, options)
    return url, internal, llm_model, (vision_model or llm_model).strip()


def collect_plan(
        target: ExecutionTarget,
        request: InstallRequest,
        options: CollectorOptions,
        *,
        cfg: AppConfig,
) -> InstallationPlan:
    stack = cfg.stack
    install_dir = ask("Install directory", options.install_dir, resolve_install_dir(cfg), options).strip()
    if not install_dir.startswith("/"):
        console.err("Install directory must be an absolute path.")
        raise typer.Exit(code=1)

    if target.exists(posixpath.join(install_dir, MANIFEST_FILENAME)):
        console.warn(f"Existing installation found at {install_dir}")
        if not confirm("Overwrite config? Data volumes are preserved.", default=False, options=options):
            raise InstallDeclined()

    host_ip = ask("Host IP address", options.host_ip, detect_host_ip(target), options).strip()
    admin_username = ask("Paperless admin username", options.admin_username, stack.admin_username, options).strip()
    admin_password = ask(
        "Paperless admin password (Enter to generate)",
        options.admin_password,
        "",
        options,
        hide_input=True,
    )
    if not admin_password:
        admin_password = generate_password()
        console.info("Generated a random admin password (saved with the credentials).")
    timezone = ask("Timezone", options.timezone, detect_timezone(target), options).strip()
    ocr_languages = ask_valid(
        "OCR languages (tesseract format, e.g. deu+eng)",
        options.ocr_languages,
        stack.ocr_languages,
        options,
        parse_ocr_languages,
    )

    if options.use_ollama is not None:
        use_ollama = options.use_ollama
    elif options.non_interactive:
        use_ollama = True
    else:
        use_ollama = Confirm.ask("Use Ollama for AI?", default=True)

    ollama_url = internal_url = llm_model = vision_model = None
    if use_ollama:
        ollama_url, internal_url, llm_model, vision_model = collect_ollama(
            target, request, host_ip, options, default_model=stack.default_model
        )
    llm_language = ask("LLM response language", options.llm_language, stack.llm_language, options).strip()

    if not admin_username:
        console.err("Admin username cannot be empty.")
        raise typer.Exit(code=1)
    try:
        plan = InstallationPlan(
            install_dir=install_dir.rstrip("/") or "/",
            host_ip=host_ip or "localhost",
            admin_username=admin_username,
            admin_password=admin_password,
            timezone=timezone or "UTC",
            ocr_languages=ocr_languages,
            secret_key=generate_secret(),
            use_ollama=use_ollama,
            ollama_url=ollama_url,
            ollama_internal_url=internal_url,
            llm_model=llm_model,
            vision_model=vision_model,
            llm_language=llm_language or stack.llm_language,
        )
    except ValueError as exc:
        console.err(str(exc))
        raise typer.Exit(code=1)

    show_summary(plan)
    if not confirm("Proceed with installation?", default=True, options=options):
        raise InstallDeclined()
    return plan


def show_summary(plan: InstallationPlan) -> None:
    table = Table(title="Installation Summary", show_header=False)
    table.add_column("setting", style="bold")
    table.add_column("value")
    table.add_row("Directory", plan.install_dir)
    table.add_row("Host IP", plan.host_ip)
    table.add_row("Admin", f"{plan.admin_username} / {plan.admin_password}")
    table.add_row("Timezone", plan.timezone)
    table.add_row("OCR languages", plan.ocr_language_setting)
    if plan.use_ollama:
        table.add_row("Ollama URL", plan.ollama_url or "-")
        table.add_row("Docker URL", plan.ollama_internal_url or "-")
        table.add_row("LLM model", plan.llm_model or "-")
        table.add_row("Vision model", plan.vision_model or "-")
    else:
        table.add_row("Ollama", "disabled")
    table.add_row("LLM language", plan.llm_language)
    for name, url in plan.service_urls.items():
        table.add_row(name, url)
    console.print(table)


def collect_container_spec(
        host: ProxmoxHost,
        provisioner: ContainerHostProvisioner,
        container: ContainerOptions,
        options: CollectorOptions,
        *,
        defaults: ContainerDefaults,
) -> ContainerHostSpec:
    ctid = ask("Container ID", container.ctid, host.next_id(), options, value_type=int)
    provisioner.ensure_free_id(ctid)

    hostname = ask("Hostname", container.hostname, defaults.hostname, options).strip()
    cores = ask("CPU cores", container.cores, defaults.cores, options, value_type=int)
    memory_mb = ask("Memory (MB)", container.memory_mb, defaults.memory_mb, options, value_type=int)
    disk_gb = ask("Disk size (GB)", container.disk_gb, defaults.disk_gb, options, value_type=int)
    swap_mb = ask("Swap (MB)", container.swap_mb, defaults.swap_mb, options, value_type=int)

    storages = host.storages()
    console.info(f"Available storage: {', '.join(storages)}")
    default_storage = defaults.storage if defaults.storage in storages else storages[0]
    storage = ask("Storage for rootfs", container.storage, default_storage, options).strip()

    template = container.template
    if template is None:
        templates = provisioner.resolve_templates(storage)
        console.info("Available templates:")
        for name in templates:
            console.print(f"  {name}", markup=False, highlight=False)
        template = ask("Template", None, pick_default_template(templates), options)

    bridge = ask("Network bridge", container.bridge, host.bridges()[0], options).strip()
    ip = ask("IP config (dhcp or IP/CIDR)", container.ip, "dhcp", options).strip()
    gateway = container.gateway
    if ip != "dhcp":
        gateway = ask("Gateway", gateway, host.default_gateway() or "", options).strip() or None

    try:
        spec = ContainerHostSpec(
            ctid=ctid,
            hostname=hostname,
            cores=cores,
            memory_mb=memory_mb,
            disk_gb=disk_gb,
            swap_mb=swap_mb,
            storage=storage,
            template=template,
            bridge=bridge,
            ip=ip,
            gateway=gateway,
        )
    except ValueError as exc:
        console.err(str(exc))
        raise typer.Exit(code=1)

    table = Table(title="LXC Container", show_header=False)
    table.add_column("setting", style="bold")
    table.add_column("value")
    table.add_row("CT ID", str(spec.ctid))
    table.add_row("Hostname", spec.hostname)
    table.add_row("Resources", f"{spec.cores} cores, {spec.memory_mb} MB RAM, {spec.swap_mb} MB swap")
    table.add_row("Disk", f"{spec.disk_gb} GB on {spec.storage}")
    table.add_row("Template", spec.template)
    table.add_row("Network", spec.net0)
    console.print(table)
    if not confirm("Create container?", default=True, options=options):
        raise InstallDeclined()
    return spec
