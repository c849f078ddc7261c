from __future__ import annotations

import logging
from dataclasses import dataclass

from .errors import ProbeError
from .plan import DEFAULT_LLM_MODEL, OLLAMA_PORT, url_host
from .targets import ExecutionTarget

log = logging.getLogger(__name__)

CATALOG_PATH = "/api/tags"
DETECT_TIMEOUT = 3.0
CATALOG_TIMEOUT = 5.0


def candidate_urls(host_ip: str | None, hint: str | None = None) -> list[str]:
    """Endpoints to try, in priority order: loopback name, loopback literal,
    the detected host address, then the hint from an enclosing provisioner."""
    hosts = ["localhost", "127.0.0.1"]
    if host_ip:
        hosts.append(host_ip)
    if hint and hint != host_ip:
        hosts.append(hint)
    urls: list[str] = []
    for host in hosts:
        url = f"http://{url_host(host)}:{OLLAMA_PORT}"
        if url not in urls:
            urls.append(url)
    return urls


def fallback_url(host_ip: str | None, hint: str | None = None) -> str:
    return f"http://{url_host(hint or host_ip or 'localhost')}:{OLLAMA_PORT}"


def detect_endpoint(
        target: ExecutionTarget,
        candidates: list[str],
        *,
        timeout: float = DETECT_TIMEOUT,
) -> str | None:
    for url in candidates:
        try:
            target.http_get_json(url.rstrip("/") + CATALOG_PATH, timeout=timeout)
        except ProbeError as exc:
            log.debug("ollama probe %s failed: %s", url, exc)
            continue
        return url
    return None


def parse_models(payload: object) -> list[str]:
    if not isinstance(payload, dict):
        raise ProbeError("Model catalog is not a JSON object.")
    raw = payload.get("models")
    if not isinstance(raw, list):
        raise ProbeError("Model catalog has no 'models' list.")
    names: list[str] = []
    for item in raw:
        if isinstance(item, dict) and isinstance(item.get("name"), str) and item["name"].strip():
            names.append(item["name"].strip())
    return names


def list_models(target: ExecutionTarget, url: str, *, timeout: float = CATALOG_TIMEOUT) -> list[str]:
    payload = target.http_get_json(url.rstrip("/") + CATALOG_PATH, timeout=timeout)
    return parse_models(payload)


@dataclass(frozen=True)
class ModelCatalog:
    models: tuple[str, ...]
    default_model: str
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def discover_models(
        target: ExecutionTarget,
        url: str,
        *,
        default_model: str = DEFAULT_LLM_MODEL,
        timeout: float = CATALOG_TIMEOUT,
) -> ModelCatalog:
    """Never raises: any failure falls back to ``default_model``."""
    try:
        models = list_models(target, url, timeout=timeout)
    except ProbeError as exc:
        return ModelCatalog(models=(), default_model=default_model, error=str(exc))
    if not models:
        return ModelCatalog(models=(), default_model=default_model, error="Ollama reported no models.")
    return ModelCatalog(models=tuple(models), default_model=models[0])
