"""Command-line interface for comicizer."""

from __future__ import annotations

import sys
from pathlib import Path

import click
from dotenv import load_dotenv

# Load .env file from current directory and parent directories
load_dotenv()

from comicizer.cli.commands.config import config  # noqa: E402
from comicizer.cli.commands.convert import convert  # noqa: E402
from comicizer.cli.commands.keys import keys  # noqa: E402
from comicizer.cli.logging_config import print_version, setup_logging  # noqa: E402
from comicizer.config import ConfigManager  # noqa: E402
from comicizer.errors import ConfigError  # noqa: E402

# Fix Windows console encoding for Unicode output
if sys.platform == "win32":
    if hasattr(sys.stdout, "reconfigure"):
        sys.stdout.reconfigure(encoding="utf-8", errors="replace")
    if hasattr(sys.stderr, "reconfigure"):
        sys.stderr.reconfigure(encoding="utf-8", errors="replace")


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="Path to configuration file.",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option(
    "--quiet",
    "-q",
    is_flag=True,
    help="Suppress log messages on the console, only show errors.",
)
@click.option(
    "--version",
    "-V",
    is_flag=True,
    callback=print_version,
    expose_value=False,
    is_eager=True,
    help="Show version and exit.",
)
@click.pass_context
def app(
    ctx: click.Context, config_path: Path | None, verbose: bool, quiet: bool
) -> None:
    """Turn an academic paper (PDF) into a comic book."""
    manager = ConfigManager()
    try:
        cfg = manager.load(config_path=config_path)
    except ConfigError as e:
        raise click.ClickException(str(e)) from e

    setup_logging(
        verbose=verbose,
        log_dir=cfg.log.dir,
        log_level=cfg.log.level,
        rotation=cfg.log.rotation,
        retention=cfg.log.retention,
        quiet=quiet,
    )
    ctx.obj = {"manager": manager, "verbose": verbose, "quiet": quiet}


app.add_command(convert)
app.add_command(keys)
app.add_command(config)


if __name__ == "__main__":
    app()
