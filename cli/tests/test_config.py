import os

import pytest

from paperstack_cli import config


@pytest.fixture
def config_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(config, "user_config_dir", lambda _: str(tmp_path))
    return tmp_path


def test_save_and_load_round_trip(config_dir) -> None:
    cfg = config.default_config()
    cfg.stack.install_dir = "/srv/paperless"
    cfg.container.cores = 4

    path = config.save_config(cfg)

    assert path.endswith("config.toml")
    assert (os.stat(path).st_mode & 0o777) == 0o600
    loaded = config.load_config()
    assert loaded.stack.install_dir == "/srv/paperless"
    assert loaded.container.cores == 4
    assert loaded.container.memory_mb == 4096


def test_missing_file_gives_defaults(config_dir) -> None:
    cfg = config.load_config()
    assert cfg.stack.install_dir == "/opt/paperless"
    assert cfg.container.hostname == "paperless"


def test_bad_values_fall_back_to_defaults() -> None:
    cfg = config.from_toml({"stack": {"install_dir": "  "}, "container": {"cores": "many", "disk_gb": -1}, "extra": 1})
    assert cfg.stack.install_dir == "/opt/paperless"
    assert cfg.container.cores == 2
    assert cfg.container.disk_gb == 20


def test_env_overrides_install_dir(monkeypatch) -> None:
    cfg = config.default_config()
    monkeypatch.setenv(config.ENV_INSTALL_DIR, "/data/paperless/")
    assert config.resolve_install_dir(cfg) == "/data/paperless"
    monkeypatch.delenv(config.ENV_INSTALL_DIR)
    assert config.resolve_install_dir(cfg) == "/opt/paperless"


def test_set_setting_validates() -> None:
    cfg = config.default_config()
    config.set_setting(cfg, "container.swap_mb", "0")
    assert cfg.container.swap_mb == 0
    with pytest.raises(ValueError):
        config.set_setting(cfg, "container.cores", "0")
    with pytest.raises(ValueError):
        config.set_setting(cfg, "container.memory_mb", "lots")
    with pytest.raises(KeyError):
        config.set_setting(cfg, "stack.nope", "x")
