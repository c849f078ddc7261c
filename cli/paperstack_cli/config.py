from __future__ import annotations

import os
import tomllib
from dataclasses import asdict, dataclass, field, fields
from typing import Any

import tomli_w
from platformdirs import user_config_dir

from paperstack.plan import DEFAULT_INSTALL_DIR, DEFAULT_LLM_LANGUAGE, DEFAULT_LLM_MODEL, DEFAULT_OCR_LANGUAGES

APP_NAME = "paperstack"
CONFIG_FILENAME = "config.toml"
ENV_INSTALL_DIR = "PAPERSTACK_INSTALL_DIR"


@dataclass
class StackDefaults:
    install_dir: str = DEFAULT_INSTALL_DIR
    admin_username: str = "admin"
    ocr_languages: str = DEFAULT_OCR_LANGUAGES
    llm_language: str = DEFAULT_LLM_LANGUAGE
    default_model: str = DEFAULT_LLM_MODEL


@dataclass
class ContainerDefaults:
    hostname: str = "paperless"
    cores: int = 2
    memory_mb: int = 4096
    disk_gb: int = 20
    swap_mb: int = 512
    storage: str = "local"


@dataclass
class AppConfig:
    stack: StackDefaults = field(default_factory=StackDefaults)
    container: ContainerDefaults = field(default_factory=ContainerDefaults)


# "section.key" -> python type, for settings get/set
SETTING_KEYS: dict[str, type] = {
    **{f"stack.{f.name}": str for f in fields(StackDefaults)},
    **{f"container.{f.name}": (int if f.type in ("int", int) else str) for f in fields(ContainerDefaults)},
}


def config_path() -> str:
    return f"{user_config_dir(APP_NAME)}/{CONFIG_FILENAME}"


def default_config() -> AppConfig:
    return AppConfig()


def ensure_parent_dir(path: str) -> None:
    os.makedirs(os.path.dirname(path), exist_ok=True)


def to_toml(cfg: AppConfig) -> dict[str, Any]:
    return {"stack": asdict(cfg.stack), "container": asdict(cfg.container)}


def _section(raw: Any, cls):
    defaults = cls()
    if not isinstance(raw, dict):
        return defaults
    values = {}
    for f in fields(cls):
        if f.name not in raw:
            continue
        current = getattr(defaults, f.name)
        value = raw[f.name]
        if isinstance(current, int):
            try:
                value = int(value)
            except (TypeError, ValueError):
                continue
            if value < 0:
                continue
        else:
            value = str(value).strip()
            if not value:
                continue
        values[f.name] = value
    return cls(**values)


def from_toml(data: dict[str, Any]) -> AppConfig:
    return AppConfig(
        stack=_section(data.get("stack"), StackDefaults),
        container=_section(data.get("container"), ContainerDefaults),
    )


def load_config() -> AppConfig:
    path = config_path()
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
        return from_toml(data)
    except FileNotFoundError:
        return default_config()


def save_config(cfg: AppConfig) -> str:
    path = config_path()
    ensure_parent_dir(path)
    with open(path, "wb") as f:
        f.write(tomli_w.dumps(to_toml(cfg)).encode("utf-8"))
    os.chmod(path, 0o600)
    return path


def resolve_install_dir(cfg: AppConfig) -> str:
    env_value = os.getenv(ENV_INSTALL_DIR, "").strip()
    if env_value:
        return env_value.rstrip("/") or "/"
    return cfg.stack.install_dir


def get_setting(cfg: AppConfig, key: str) -> Any:
    section, name = _split_key(key)
    return getattr(getattr(cfg, section), name)


def set_setting(cfg: AppConfig, key: str, raw: str) -> None:
    section, name = _split_key(key)
    kind = SETTING_KEYS[f"{section}.{name}"]
    value: Any = raw.strip()
    if kind is int:
        try:
            value = int(value)
        except ValueError as exc:
            raise ValueError(f"{key} must be an integer") from exc
        if value < 0 or (value == 0 and name != "swap_mb"):
            raise ValueError(f"{key} must be positive")
    elif not value:
        raise ValueError(f"{key} cannot be empty")
    setattr(getattr(cfg, section), name, value)


def _split_key(key: str) -> tuple[str, str]:
    k = key.strip().lower()
    if k not in SETTING_KEYS:
        raise KeyError(key)
    section, name = k.split(".", 1)
    return section, name
