"""The ``convert`` command: paper in, comic pages out."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import click
from loguru import logger

from comicizer.cli.console import get_console, get_stderr_console
from comicizer.cli.output import ComicWriter
from comicizer.cli.progress import ProgressRenderer
from comicizer.config import ComicizerConfig, ConfigManager
from comicizer.credentials import ApiKeyStore
from comicizer.errors import AuthError, ComicizerError
from comicizer.pipeline import PipelineOrchestrator
from comicizer.types import ComicPage, ProcessingStatus
from comicizer.upload import load_document

_PROVIDERS = click.Choice(["openrouter", "crsai"], case_sensitive=False)


async def _run_pipeline(
    cfg: ComicizerConfig,
    document_path: Path,
    output_dir: Path,
    show_progress: bool,
) -> tuple[PipelineOrchestrator, ComicWriter, Exception | None]:
    document = load_document(document_path)
    writer = ComicWriter(output_dir)
    orchestrator = PipelineOrchestrator.from_config(cfg, store=ApiKeyStore())

    def on_page(page: ComicPage) -> None:
        writer.write_page(page)
        renderer.on_page(page)

    failure: Exception | None = None
    async with orchestrator:
        with ProgressRenderer(get_stderr_console(), enabled=show_progress) as renderer:
            try:
                await orchestrator.run(
                    document.raw_bytes,
                    document.mime_type,
                    on_progress=renderer.on_progress,
                    on_page=on_page,
                )
            except (ComicizerError, OSError) as e:
                failure = e

    writer.write_manifest(document.name, orchestrator.pages, orchestrator.state)
    return orchestrator, writer, failure


@click.command()
@click.argument(
    "document", type=click.Path(exists=True, dir_okay=False, path_type=Path)
)
@click.option(
    "--output",
    "-o",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Output directory (default from config).",
)
@click.option(
    "--text-provider",
    type=_PROVIDERS,
    default=None,
    help="Provider for paper analysis and page planning.",
)
@click.option(
    "--image-provider",
    type=_PROVIDERS,
    default=None,
    help="Provider for page images (crsai uses the async draw API).",
)
@click.pass_obj
def convert(
    obj: dict[str, Any],
    document: Path,
    output: Path | None,
    text_provider: str | None,
    image_provider: str | None,
) -> None:
    """Convert a PDF paper into comic pages."""
    console = get_console()
    manager: ConfigManager = obj["manager"]

    overrides: dict[str, Any] = {}
    if text_provider:
        overrides["text_provider"] = text_provider.lower()
    if image_provider:
        overrides["image_provider"] = image_provider.lower()
    cfg = manager.merge(overrides) if overrides else manager.config

    output_dir = output or Path(cfg.output_dir) / document.stem
    show_progress = not obj.get("quiet", False)

    try:
        orchestrator, writer, failure = asyncio.run(
            _run_pipeline(cfg, document, output_dir, show_progress)
        )
    except AuthError as e:
        console.print(f"[yellow]Authentication required:[/yellow] {e}")
        console.print(f"[dim]{e.resolution_hint}[/dim]")
        raise SystemExit(2) from e
    except (ComicizerError, OSError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1) from e

    if failure is not None:
        state = orchestrator.state
        if isinstance(failure, AuthError):
            console.print(f"[yellow]Authentication required:[/yellow] {failure}")
            console.print(f"[dim]{failure.resolution_hint}[/dim]")
        else:
            console.print(f"[red]Error:[/red] {state.error}")
        if orchestrator.pages:
            console.print(
                f"[dim]{len(orchestrator.pages)} page(s) written to {output_dir}[/dim]"
            )
        logger.debug(f"[CLI] Run ended in {state.status.value}")
        raise SystemExit(2 if state.status is ProcessingStatus.IDLE else 1)

    console.print(
        f"[green]Done:[/green] {len(orchestrator.pages)} page(s) written to "
        f"{output_dir} ({len(writer.files)} image file(s))"
    )
