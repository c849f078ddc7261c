from __future__ import annotations

import posixpath
import re
import secrets
import string
import urllib.parse
from dataclasses import dataclass

DEFAULT_INSTALL_DIR = "/opt/paperless"
MANIFEST_FILENAME = "docker-compose.yaml"
CREDENTIALS_FILENAME = ".credentials"
DATA_DIRS = ("data", "media", "export", "consume", "pgdata", "redis", "prompts")

PAPERLESS_PORT = 8000
GPT_PORT = 8081
AI_PORT = 3000

OLLAMA_PORT = 11434
DEFAULT_LLM_MODEL = "llama3:8b"
DEFAULT_LLM_LANGUAGE = "English"
DEFAULT_OCR_LANGUAGES = "eng"
DEFAULT_DOCKER_GATEWAY = "172.17.0.1"
NOT_GENERATED = "NOT_GENERATED"

_LOOPBACK_HOSTS = {"localhost", "127.0.0.1", "::1"}
_OCR_TOKEN_RE = re.compile(r"^[a-z][a-z_-]*$")
_STATIC_IP_RE = re.compile(r"^\d{1,3}(\.\d{1,3}){3}/\d{1,2}$")
_ALNUM = string.ascii_letters + string.digits


def generate_secret(length: int = 32) -> str:
    return "".join(secrets.choice(_ALNUM) for _ in range(length))


def generate_password(length: int = 16) -> str:
    return generate_secret(length)


def parse_ocr_languages(raw: str) -> tuple[str, ...]:
    """Split a tesseract-style ``deu+eng+ara`` list, keeping order."""
    tokens = tuple(part.strip() for part in (raw or "").split("+") if part.strip())
    if not tokens:
        raise ValueError("At least one OCR language is required.")
    for token in tokens:
        if not _OCR_TOKEN_RE.match(token):
            raise ValueError(f"Invalid OCR language: {token!r}")
    return tokens


def url_host(host: str) -> str:
    """Host part of a URL; IPv6 literals go in brackets."""
    if ":" in host and not host.startswith("["):
        return f"[{host}]"
    return host


def normalize_ollama_url(raw: str) -> str:
    value = (raw or "").strip().rstrip("/")
    if not value:
        raise ValueError("Ollama URL cannot be empty.")
    if "://" not in value:
        value = f"http://{value}"
    parsed = urllib.parse.urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.hostname:
        raise ValueError(f"Invalid Ollama URL: {raw}")
    try:
        port = parsed.port
    except ValueError as exc:
        raise ValueError(f"Invalid Ollama URL port: {raw}") from exc
    host = url_host(parsed.hostname)
    return f"{parsed.scheme}://{host}:{OLLAMA_PORT if port is None else port}"


def internal_ollama_url(external_url: str, gateway: str) -> str:
    """URL containers use to reach Ollama.

    Containers cannot reach the installer's loopback interface, so loopback
    hosts are swapped for the container-network gateway.
    """
    url = normalize_ollama_url(external_url)
    parsed = urllib.parse.urlparse(url)
    if (parsed.hostname or "").lower() in _LOOPBACK_HOSTS:
        return f"{parsed.scheme}://{url_host(gateway)}:{parsed.port or OLLAMA_PORT}"
    return url


@dataclass(frozen=True)
class InstallationPlan:
    install_dir: str
    host_ip: str
    admin_username: str
    admin_password: str
    timezone: str
    ocr_languages: tuple[str, ...]
    secret_key: str
    use_ollama: bool = False
    ollama_url: str | None = None
    ollama_internal_url: str | None = None
    llm_model: str | None = None
    vision_model: str | None = None
    llm_language: str = DEFAULT_LLM_LANGUAGE

    def __post_init__(self) -> None:
        if not self.ocr_languages:
            raise ValueError("At least one OCR language is required.")
        if self.use_ollama and not (self.ollama_url and self.ollama_internal_url and self.llm_model):
            raise ValueError("Ollama settings are incomplete.")

    # Paths stay POSIX because they may point inside a container.
    @property
    def manifest_path(self) -> str:
        return posixpath.join(self.install_dir, MANIFEST_FILENAME)

    @property
    def credentials_path(self) -> str:
        return posixpath.join(self.install_dir, CREDENTIALS_FILENAME)

    @property
    def data_paths(self) -> list[str]:
        return [posixpath.join(self.install_dir, name) for name in DATA_DIRS]

    @property
    def ocr_language_setting(self) -> str:
        return "+".join(self.ocr_languages)

    @property
    def ocr_languages_space(self) -> str:
        return " ".join(self.ocr_languages)

    @property
    def service_urls(self) -> dict[str, str]:
        return service_urls(self.host_ip)


def service_urls(host: str) -> dict[str, str]:
    host = url_host(host)
    return {
        "Paperless-ngx": f"http://{host}:{PAPERLESS_PORT}",
        "Paperless-GPT": f"http://{host}:{GPT_PORT}",
        "Paperless-AI": f"http://{host}:{AI_PORT}",
    }


@dataclass(frozen=True)
class ContainerHostSpec:
    ctid: int
    hostname: str
    cores: int
    memory_mb: int
    disk_gb: int
    swap_mb: int
    storage: str
    template: str
    bridge: str
    ip: str = "dhcp"
    gateway: str | None = None

    def __post_init__(self) -> None:
        if self.ctid < 100:
            raise ValueError("Container ID must be 100 or greater.")
        if min(self.cores, self.memory_mb, self.disk_gb) <= 0 or self.swap_mb < 0:
            raise ValueError("Container resources must be positive.")
        if not self.is_dhcp:
            if not _STATIC_IP_RE.match(self.ip):
                raise ValueError(f"IP config must be 'dhcp' or IP/CIDR, got {self.ip!r}")
            if not self.gateway:
                raise ValueError("A gateway is required for a static IP.")

    @property
    def is_dhcp(self) -> bool:
        return self.ip == "dhcp"

    @property
    def net0(self) -> str:
        if self.is_dhcp:
            return f"name=eth0,bridge={self.bridge},ip=dhcp"
        return f"name=eth0,bridge={self.bridge},ip={self.ip},gw={self.gateway}"

    @property
    def rootfs(self) -> str:
        return f"{self.storage}:{self.disk_gb}"


@dataclass(frozen=True)
class ProvisioningCredentials:
    admin_username: str
    admin_password: str
    secret_key: str
    api_token: str | None = None

    @property
    def api_token_display(self) -> str:
        return self.api_token or NOT_GENERATED


@dataclass(frozen=True)
class InstallRequest:
    """What the nested provisioner hands to the stack installer."""

    hint_address: str | None = None


@dataclass(frozen=True)
class InstallOutcome:
    exit_code: int
    service_urls: dict[str, str] | None = None
    credentials_path: str | None = None

    @property
    def ok(self) -> bool:
        return self.exit_code == 0
