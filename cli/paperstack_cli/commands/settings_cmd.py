from __future__ import annotations

import os

import typer

from paperstack.plan import DEFAULT_INSTALL_DIR

from .. import console
from ..config import (
    SETTING_KEYS,
    config_path,
    default_config,
    get_setting,
    load_config,
    save_config,
    set_setting,
    to_toml,
)

app = typer.Typer(help="Manage installer defaults (~/.config/paperstack/config.toml).")


@app.command("init")
def init_settings(
        force: bool = typer.Option(False, "--force", help="Overwrite existing config."),
        install_dir: str = typer.Option(
            DEFAULT_INSTALL_DIR,
            "--install-dir",
            prompt="Default install directory",
            help="Where the stack is installed by default.",
        ),
):
    path = config_path()
    if os.path.exists(path) and not force:
        console.info(f"Config already exists: {path}")
        console.info("Use --force to overwrite.")
        return

    cfg = default_config()
    try:
        set_setting(cfg, "stack.install_dir", install_dir)
    except ValueError as exc:
        console.err(str(exc))
        raise typer.Exit(code=2)
    saved = save_config(cfg)
    console.ok(f"Config written: {saved}")


@app.command("show")
def show_settings(
        json_out: bool = typer.Option(False, "--json", help="Print as JSON."),
):
    cfg = load_config()
    if json_out:
        console.print_json(to_toml(cfg))
        return
    for key in SETTING_KEYS:
        console.console.print(f"{key}={get_setting(cfg, key)}")


@app.command("get")
def get_value(
        key: str = typer.Argument(..., help="Setting key, e.g. stack.install_dir or container.cores."),
):
    cfg = load_config()
    try:
        value = get_setting(cfg, key)
    except KeyError:
        console.err(f"Unknown setting: {key}")
        raise typer.Exit(code=2)
    console.console.print(value)


@app.command("set")
def set_value(
        key: str = typer.Argument(..., help="Setting key, e.g. stack.install_dir or container.cores."),
        value: str = typer.Argument(..., help="New value."),
):
    cfg = load_config()
    try:
        set_setting(cfg, key, value)
    except KeyError:
        console.err(f"Unknown setting: {key}")
        raise typer.Exit(code=2)
    except ValueError as exc:
        console.err(str(exc))
        raise typer.Exit(code=2)
    saved = save_config(cfg)
    console.ok(f"Settings updated: {saved}")
