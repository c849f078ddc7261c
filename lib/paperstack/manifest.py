from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import yaml

from .plan import AI_PORT, GPT_PORT, PAPERLESS_PORT, InstallationPlan
from .targets import ExecutionTarget

PLACEHOLDER_TOKEN = "__PAPERLESS_TOKEN__"

POSTGRES = "postgres"
REDIS = "redis"
PAPERLESS = "paperless-ngx"
GPT = "paperless-gpt"
AI = "paperless-ai"
SERVICE_ORDER = (POSTGRES, REDIS, PAPERLESS, GPT, AI)

AI_VOLUME = "paperless-ai_data"
_HOST_GATEWAY = "host.docker.internal:host-gateway"
_DB = "paperless"

_GENERATED_PREFIX = "# Generated: "


@dataclass(frozen=True)
class Dependency:
    service: str
    condition: str

    def __post_init__(self) -> None:
        if self.condition not in {"started", "healthy"}:
            raise ValueError(f"Unknown dependency condition: {self.condition}")


@dataclass(frozen=True)
class HealthCheck:
    test: tuple[str, ...]
    interval: str
    timeout: str
    retries: int
    start_period: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "test": list(self.test),
            "interval": self.interval,
            "timeout": self.timeout,
            "retries": self.retries,
        }
        if self.start_period:
            data["start_period"] = self.start_period
        return data


@dataclass(frozen=True)
class ServiceDescriptor:
    key: str
    container_name: str
    image: str
    ports: tuple[str, ...] = ()
    environment: dict[str, str] = field(default_factory=dict)
    volumes: tuple[str, ...] = ()
    depends_on: tuple[Dependency, ...] = ()
    healthcheck: HealthCheck | None = None
    extra_hosts: tuple[str, ...] = ()
    restart: str = "unless-stopped"

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "image": self.image,
            "container_name": self.container_name,
            "restart": self.restart,
        }
        if self.ports:
            data["ports"] = list(self.ports)
        if self.environment:
            data["environment"] = dict(self.environment)
        if self.volumes:
            data["volumes"] = list(self.volumes)
        if self.depends_on:
            data["depends_on"] = {
                dep.service: {"condition": f"service_{dep.condition}"} for dep in self.depends_on
            }
        if self.healthcheck:
            data["healthcheck"] = self.healthcheck.to_dict()
        if self.extra_hosts:
            data["extra_hosts"] = list(self.extra_hosts)
        return data


@dataclass(frozen=True)
class Manifest:
    services: tuple[ServiceDescriptor, ...]
    volumes: tuple[str, ...] = ()

    def service(self, key: str) -> ServiceDescriptor:
        for svc in self.services:
            if svc.key == key:
                return svc
        raise KeyError(key)

    @property
    def container_names(self) -> list[str]:
        return [svc.container_name for svc in self.services]

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"services": {svc.key: svc.to_dict() for svc in self.services}}
        if self.volumes:
            data["volumes"] = {name: None for name in self.volumes}
        return data


def _postgres() -> ServiceDescriptor:
    return ServiceDescriptor(
        key=POSTGRES,
        container_name="paperless-postgres",
        image="docker.io/postgres:16",
        environment={
            "POSTGRES_DB": _DB,
            "POSTGRES_USER": _DB,
            "POSTGRES_PASSWORD": _DB,
            "PGDATA": "/var/lib/postgresql/data/pgdata",
        },
        volumes=("./pgdata:/var/lib/postgresql/data",),
        healthcheck=HealthCheck(
            test=("CMD-SHELL", f"pg_isready -U {_DB} -d {_DB}"),
            interval="5s",
            timeout="10s",
            retries=5,
        ),
    )


def _redis() -> ServiceDescriptor:
    return ServiceDescriptor(
        key=REDIS,
        container_name="paperless-redis",
        image="docker.io/redis:7-alpine",
        volumes=("./redis:/data",),
        healthcheck=HealthCheck(test=("CMD", "redis-cli", "ping"), interval="5s", timeout="10s", retries=5),
    )


def _paperless(plan: InstallationPlan) -> ServiceDescriptor:
    return ServiceDescriptor(
        key=PAPERLESS,
        container_name="paperless-ngx",
        image="ghcr.io/paperless-ngx/paperless-ngx:latest",
        ports=(f"{PAPERLESS_PORT}:8000",),
        environment={
            "PAPERLESS_DBHOST": POSTGRES,
            "PAPERLESS_DBNAME": _DB,
            "PAPERLESS_DBUSER": _DB,
            "PAPERLESS_DBPASS": _DB,
            "PAPERLESS_REDIS": f"redis://{REDIS}:6379",
            "PAPERLESS_SECRET_KEY": plan.secret_key,
            "PAPERLESS_ADMIN_USER": plan.admin_username,
            "PAPERLESS_ADMIN_PASSWORD": plan.admin_password,
            "PAPERLESS_TIME_ZONE": plan.timezone,
            "PAPERLESS_OCR_LANGUAGE": plan.ocr_language_setting,
            "PAPERLESS_OCR_LANGUAGES": plan.ocr_languages_space,
            "PAPERLESS_TASK_WORKERS": "2",
            "PAPERLESS_THREADS_PER_WORKER": "2",
            "PAPERLESS_URL": plan.service_urls["Paperless-ngx"],
        },
        volumes=(
            "./data:/usr/src/paperless/data",
            "./media:/usr/src/paperless/media",
            "./export:/usr/src/paperless/export",
            "./consume:/usr/src/paperless/consume",
        ),
        depends_on=(Dependency(POSTGRES, "healthy"), Dependency(REDIS, "started")),
        healthcheck=HealthCheck(
            test=("CMD-SHELL", "curl -f http://localhost:8000 || exit 1"),
            interval="30s",
            timeout="10s",
            retries=5,
            start_period="60s",
        ),
    )


def _llm_environment(plan: InstallationPlan) -> dict[str, str]:
    if not plan.use_ollama:
        return {}
    return {
        "LLM_PROVIDER": "ollama",
        "LLM_MODEL": plan.llm_model or "",
        "LLM_LANGUAGE": plan.llm_language,
        "OCR_PROVIDER": "llm",
        "VISION_LLM_PROVIDER": "ollama",
        "VISION_LLM_MODEL": plan.vision_model or plan.llm_model or "",
        "OLLAMA_HOST": plan.ollama_internal_url or "",
        "OLLAMA_CONTEXT_LENGTH": "8192",
    }


def _gpt(plan: InstallationPlan, api_token: str | None) -> ServiceDescriptor:
    environment = {
        "PAPERLESS_BASE_URL": f"http://{PAPERLESS}:8000",
        "PAPERLESS_API_TOKEN": api_token or PLACEHOLDER_TOKEN,
    }
    environment.update(_llm_environment(plan))
    environment.update(
        {
            "OCR_PROCESS_MODE": "image",
            "PDF_SKIP_EXISTING_OCR": "false",
            "LOG_LEVEL": "info",
            "MANUAL_TAG": "paperless-gpt",
            "AUTO_TAG": "paperless-gpt-auto",
            "AUTO_OCR_TAG": "paperless-gpt-ocr-auto",
            "CREATE_LOCAL_PDF": "false",
            "CREATE_LOCAL_HOCR": "false",
            "PDF_UPLOAD": "false",
            "PDF_REPLACE": "false",
            "PDF_COPY_METADATA": "true",
            "PDF_OCR_TAGGING": "true",
            "PDF_OCR_COMPLETE_TAG": "paperless-gpt-ocr-complete",
            "TOKEN_LIMIT": "4000",
        }
    )
    return ServiceDescriptor(
        key=GPT,
        container_name="paperless-gpt",
        image="icereed/paperless-gpt:latest",
        ports=(f"{GPT_PORT}:8080",),
        environment=environment,
        volumes=("./prompts:/app/prompts",),
        depends_on=(Dependency(PAPERLESS, "healthy"),),
        extra_hosts=(_HOST_GATEWAY,) if plan.use_ollama else (),
    )


def _ai(plan: InstallationPlan) -> ServiceDescriptor:
    return ServiceDescriptor(
        key=AI,
        container_name="paperless-ai",
        image="clusterzx/paperless-ai:latest",
        ports=(f"{AI_PORT}:3000",),
        environment={"PUID": "1000", "PGID": "1000"},
        volumes=(f"{AI_VOLUME}:/app/data",),
        extra_hosts=(_HOST_GATEWAY,) if plan.use_ollama else (),
    )


def build_manifest(plan: InstallationPlan, *, api_token: str | None = None) -> Manifest:
    return Manifest(
        services=(_postgres(), _redis(), _paperless(plan), _gpt(plan, api_token), _ai(plan)),
        volumes=(AI_VOLUME,),
    )


def render_manifest(manifest: Manifest, *, generated_at: datetime | None = None) -> str:
    stamp = (generated_at or datetime.now(timezone.utc)).isoformat(timespec="seconds")
    header = "\n".join(
        [
            "# Paperless AI Stack - generated by paperstack",
            f"{_GENERATED_PREFIX}{stamp}",
            "# Re-running the installer overwrites this file; data directories are kept.",
        ]
    )
    body = yaml.safe_dump(manifest.to_dict(), sort_keys=False, default_flow_style=False)
    # "volumes: {name: null}" reads better as a bare key.
    body = body.replace(f"  {AI_VOLUME}: null\n", f"  {AI_VOLUME}:\n")
    return f"{header}\n\n{body}"


def write_manifest(target: ExecutionTarget, plan: InstallationPlan, manifest: Manifest) -> str:
    content = render_manifest(manifest)
    target.write_text(plan.manifest_path, content)
    return content
