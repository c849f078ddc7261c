from datetime import datetime, timezone

import pytest
import yaml

from paperstack.manifest import (
    AI,
    GPT,
    PAPERLESS,
    PLACEHOLDER_TOKEN,
    SERVICE_ORDER,
    Dependency,
    build_manifest,
    render_manifest,
)
from paperstack.plan import InstallationPlan

TOKEN = "0123456789abcdef0123456789abcdef01234567"


def strip_generated_line(text: str) -> str:
    return "\n".join(line for line in text.splitlines() if not line.startswith("# Generated: "))


def _plan(**overrides) -> InstallationPlan:
    values = dict(
        install_dir="/opt/paperless",
        host_ip="192.168.1.20",
        admin_username="admin",
        admin_password="secret-pass",
        timezone="Europe/Berlin",
        ocr_languages=("deu", "eng"),
        secret_key="k" * 32,
        use_ollama=True,
        ollama_url="http://localhost:11434",
        ollama_internal_url="http://172.17.0.1:11434",
        llm_model="llama3:8b",
        vision_model="minicpm-v",
    )
    values.update(overrides)
    return InstallationPlan(**values)


def test_render_is_deterministic_apart_from_timestamp() -> None:
    plan = _plan()
    first = render_manifest(build_manifest(plan), generated_at=datetime(2024, 1, 1, tzinfo=timezone.utc))
    second = render_manifest(build_manifest(plan), generated_at=datetime(2025, 6, 1, tzinfo=timezone.utc))
    assert first != second
    assert strip_generated_line(first) == strip_generated_line(second)


def test_manifest_services_and_dependencies() -> None:
    data = yaml.safe_load(render_manifest(build_manifest(_plan())))
    services = data["services"]
    assert tuple(services) == SERVICE_ORDER
    assert services[PAPERLESS]["depends_on"] == {
        "postgres": {"condition": "service_healthy"},
        "redis": {"condition": "service_started"},
    }
    assert services[GPT]["depends_on"] == {PAPERLESS: {"condition": "service_healthy"}}
    assert "depends_on" not in services[AI]
    assert services[PAPERLESS]["environment"]["PAPERLESS_OCR_LANGUAGE"] == "deu+eng"
    assert services[PAPERLESS]["environment"]["PAPERLESS_OCR_LANGUAGES"] == "deu eng"
    assert services[PAPERLESS]["environment"]["PAPERLESS_URL"] == "http://192.168.1.20:8000"
    assert data["volumes"] == {"paperless-ai_data": None}


def test_ollama_settings_reach_the_tagger() -> None:
    services = build_manifest(_plan()).to_dict()["services"]
    env = services[GPT]["environment"]
    assert env["OLLAMA_HOST"] == "http://172.17.0.1:11434"
    assert env["VISION_LLM_MODEL"] == "minicpm-v"
    assert services[GPT]["extra_hosts"] == ["host.docker.internal:host-gateway"]
    assert services[AI]["extra_hosts"] == ["host.docker.internal:host-gateway"]


def test_no_llm_environment_without_ollama() -> None:
    plan = _plan(use_ollama=False, ollama_url=None, ollama_internal_url=None, llm_model=None, vision_model=None)
    services = build_manifest(plan).to_dict()["services"]
    env = services[GPT]["environment"]
    for key in ("LLM_PROVIDER", "LLM_MODEL", "VISION_LLM_PROVIDER", "VISION_LLM_MODEL", "OLLAMA_HOST"):
        assert key not in env
    assert "extra_hosts" not in services[GPT]
    assert "extra_hosts" not in services[AI]


@pytest.mark.parametrize("use_ollama", [True, False])
def test_placeholder_until_token_is_known(use_ollama) -> None:
    overrides = {} if use_ollama else dict(use_ollama=False, ollama_url=None, ollama_internal_url=None, llm_model=None)
    plan = _plan(**overrides)
    fresh = render_manifest(build_manifest(plan))
    assert fresh.count(PLACEHOLDER_TOKEN) == 1

    final = render_manifest(build_manifest(plan, api_token=TOKEN))
    assert PLACEHOLDER_TOKEN not in final
    assert yaml.safe_load(final)["services"][GPT]["environment"]["PAPERLESS_API_TOKEN"] == TOKEN


def test_values_needing_quotes_survive_serialization() -> None:
    plan = _plan(admin_password="p@ss: #word 'x'", timezone="America/Argentina/Buenos_Aires")
    env = yaml.safe_load(render_manifest(build_manifest(plan)))["services"][PAPERLESS]["environment"]
    assert env["PAPERLESS_ADMIN_PASSWORD"] == "p@ss: #word 'x'"


def test_dependency_condition_is_checked() -> None:
    with pytest.raises(ValueError):
        Dependency("postgres", "ready")
