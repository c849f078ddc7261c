from __future__ import annotations

import typer

from .commands import install_cmd, settings_cmd
from .logging_ import setup_logging


def _build_app() -> typer.Typer:
    app = typer.Typer(
        name="paperstack",
        help="Installer for the Paperless AI stack (Paperless-ngx + Paperless-GPT + Paperless-AI).",
        no_args_is_help=True,
    )

    app.command("install")(install_cmd.install)
    app.add_typer(settings_cmd.app, name="settings")

    @app.callback()
    def _main(
            verbose: bool = typer.Option(False, "-v", "--verbose", help="Verbose logs."),
    ):
        setup_logging(verbose)

    return app


app = _build_app()
