"""API key management commands.

- keys set: Validate and store OpenRouter/CRSAI keys
- keys show: Show stored keys (masked) and their validity
- keys clear: Remove stored keys
"""

from __future__ import annotations

import asyncio
from typing import Any

import click
from rich.table import Table

from comicizer.cli.console import get_console
from comicizer.config import ConfigManager
from comicizer.credentials import ApiKeyStore, KeyValidity, validate_api_keys
from comicizer.security import mask_secret


@click.group()
def keys() -> None:
    """API key management commands."""


@keys.command("set")
@click.option("--openrouter", "openrouter_key", default=None, help="OpenRouter key.")
@click.option("--crsai", "crsai_key", default=None, help="CRSAI key.")
@click.pass_obj
def keys_set(
    obj: dict[str, Any], openrouter_key: str | None, crsai_key: str | None
) -> None:
    """Validate and store API keys. Providers left blank keep their stored key."""
    console = get_console()
    if openrouter_key is None and crsai_key is None:
        openrouter_key = click.prompt(
            "OpenRouter API key", default="", hide_input=True, show_default=False
        )
        crsai_key = click.prompt(
            "CRSAI API key", default="", hide_input=True, show_default=False
        )
    openrouter_key = (openrouter_key or "").strip()
    crsai_key = (crsai_key or "").strip()
    if not openrouter_key and not crsai_key:
        raise click.UsageError("Please enter at least one API key.")

    manager: ConfigManager = obj["manager"]
    validity = asyncio.run(
        validate_api_keys(openrouter_key, crsai_key, config=manager.config)
    )

    # A provider left blank keeps its stored key and validity
    store = ApiKeyStore()
    previous = store.load()
    merged = KeyValidity(
        openrouter=(
            validity.openrouter if openrouter_key else previous.is_valid.openrouter
        ),
        crsai=validity.crsai if crsai_key else previous.is_valid.crsai,
    )
    storage = store.save(
        openrouter_key or previous.openrouter_api_key,
        crsai_key or previous.crsai_api_key,
        merged,
    )

    for name, key, ok in (
        ("OpenRouter", openrouter_key, validity.openrouter),
        ("CRSAI", crsai_key, validity.crsai),
    ):
        if not key:
            continue
        mark = "[green]valid[/green]" if ok else "[red]invalid[/red]"
        console.print(f"{name} key: {mark}")

    if storage.active_provider is None:
        console.print("[red]No valid API key. Please check your keys.[/red]")
        raise SystemExit(1)


@keys.command("show")
def keys_show() -> None:
    """Show stored API keys."""
    console = get_console()
    store = ApiKeyStore()
    storage = store.load()

    table = Table(title=f"API keys ({store.path})", show_header=True)
    table.add_column("Provider", style="cyan")
    table.add_column("Key", style="white")
    table.add_column("Valid", style="green")
    for name, key, ok in (
        ("openrouter", storage.openrouter_api_key, storage.is_valid.openrouter),
        ("crsai", storage.crsai_api_key, storage.is_valid.crsai),
    ):
        table.add_row(name, mask_secret(key) or "-", "yes" if ok else "no")
    console.print(table)
    if storage.last_updated:
        console.print(f"[dim]Last updated: {storage.last_updated}[/dim]")


@keys.command("clear")
def keys_clear() -> None:
    """Remove stored API keys."""
    ApiKeyStore().clear()
    get_console().print("API keys cleared.")
