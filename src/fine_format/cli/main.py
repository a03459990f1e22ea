"""Main CLI entry point for fine-format.

This module defines the Typer application and all CLI commands.
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
import mimetypes
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any

import typer
from pydantic import ValidationError

from fine_format import __version__

if TYPE_CHECKING:
    from fine_format.core.config import Settings
    from fine_format.core.progress import ProgressUpdate
    from fine_format.core.types import ProcessedData, SourceDocument

# Extensions read as text; anything else is sent as binary inline data
TEXT_EXTENSIONS = frozenset({".txt", ".md", ".markdown", ".html", ".htm", ".csv", ".json", ".xml", ".rst"})

# Create the main Typer app
app = typer.Typer(
    name="fine-format",
    help="fine-format: Turn documents into Q&A datasets for fine-tuning language models.",
    add_completion=False,
    no_args_is_help=True,
)

# Global state for options
state: dict[str, bool] = {
    "json": False,
}


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"fine-format v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[  # noqa: ARG001
        bool | None,
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            help="Output results in JSON format.",
        ),
    ] = False,
) -> None:
    """fine-format: Turn documents into Q&A datasets for fine-tuning.

    Cleans sources, identifies themes, generates Q&A pairs and optionally
    fills knowledge gaps with cross-validated synthetic pairs.
    """
    state["json"] = json_output


def _envelope(command: str, status: str, data: dict[str, Any]) -> str:
    return json.dumps(
        {"command": command, "status": status, "version": __version__, "data": data},
        indent=2,
    )


def _load_settings(command: str) -> Settings:
    from fine_format.core.config import Settings

    try:
        settings = Settings()
    except ValidationError as e:
        if state["json"]:
            typer.echo(_envelope(command, "error", {"error": f"Invalid configuration: {e}"}))
        else:
            typer.echo(f"Error: Invalid configuration: {e}", err=True)
        raise typer.Exit(1) from e

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return settings


def read_source(path: Path) -> SourceDocument:
    """Read a local file into a SourceDocument.

    Text files are decoded as UTF-8; other files are base64-encoded with
    their guessed MIME type.
    """
    from fine_format.core.types import SourceDocument

    mime_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    if path.suffix.lower() in TEXT_EXTENSIONS:
        return SourceDocument(
            kind="file",
            name=path.name,
            content=path.read_text(encoding="utf-8", errors="replace"),
            mime_type=mime_type if mime_type.startswith("text/") else "text/plain",
        )
    return SourceDocument(
        kind="file",
        name=path.name,
        content=base64.b64encode(path.read_bytes()).decode("ascii"),
        mime_type=mime_type,
        is_binary=True,
    )


@app.command()
def version() -> None:
    """Show the current version."""
    typer.echo(f"fine-format v{__version__}")


@app.command()
def providers() -> None:
    """List configured providers and their number of API keys.

    Example:
        fine-format providers
        fine-format --json providers
    """
    from fine_format.adapters.llm.keys import KeyPool
    from fine_format.adapters.llm.types import Provider

    settings = _load_settings("providers")
    pool = KeyPool.from_settings(settings)
    counts = {provider.value: pool.count(provider) for provider in Provider}

    if state["json"]:
        typer.echo(_envelope("providers", "success", {"providers": counts}))
        return

    typer.echo()
    for provider, count in counts.items():
        status = f"{count} key(s)" if count else "not configured"
        typer.echo(f"  {provider:<12} {status}")
    typer.echo()


@app.command()
def generate(
    paths: Annotated[
        list[Path] | None,
        typer.Argument(
            help="Files to build the dataset from.",
            exists=True,
            dir_okay=False,
            readable=True,
        ),
    ] = None,
    text: Annotated[
        list[str] | None,
        typer.Option(
            "--text",
            "-t",
            help="Inline text source (repeatable).",
        ),
    ] = None,
    goal: Annotated[
        str,
        typer.Option(
            "--goal",
            "-g",
            help="Fine-tuning goal: topic, knowledge or style.",
        ),
    ] = "knowledge",
    augment: Annotated[
        bool,
        typer.Option(
            "--augment",
            help="Augment the content with web search.",
        ),
    ] = False,
    gap_filling: Annotated[
        bool,
        typer.Option(
            "--gap-filling",
            help="Fill knowledge gaps with validated synthetic pairs.",
        ),
    ] = False,
    num_pairs: Annotated[
        int | None,
        typer.Option(
            "--num-pairs",
            "-n",
            help="Number of Q&A pairs to generate from the content.",
        ),
    ] = None,
    output: Annotated[
        Path,
        typer.Option(
            "--output",
            "-o",
            help="Output file path for the generated dataset.",
        ),
    ] = Path("dataset.json"),
    offline_clean: Annotated[
        bool,
        typer.Option(
            "--offline-clean",
            help="Clean text sources locally instead of through the provider.",
        ),
    ] = False,
) -> None:
    """Generate a Q&A dataset from documents.

    Examples:
        fine-format generate notes.md report.pdf
        fine-format generate handbook.txt --gap-filling --num-pairs 50
        fine-format generate --text "..." --goal style --offline-clean
        fine-format --json generate notes.md -o out/dataset.json
    """
    from fine_format.core.types import FineTuningGoal, SourceDocument

    try:
        fine_tuning_goal = FineTuningGoal(goal.lower())
    except ValueError as e:
        typer.echo(f"Error: Unknown goal '{goal}'. Use topic, knowledge or style.", err=True)
        raise typer.Exit(1) from e

    sources = [read_source(path) for path in paths or []]
    sources.extend(
        SourceDocument(kind="file", name=f"text-{index}", content=value)
        for index, value in enumerate(text or [], start=1)
    )
    if not sources:
        typer.echo("Error: Provide at least one file or --text source.", err=True)
        typer.echo("Run 'fine-format generate --help' for usage.", err=True)
        raise typer.Exit(1)

    settings = _load_settings("generate")
    data, error = asyncio.run(
        _run_generation(
            settings,
            sources,
            goal=fine_tuning_goal,
            augment=augment,
            gap_filling=gap_filling,
            num_pairs=num_pairs,
            offline_clean=offline_clean,
        )
    )

    if data is None:
        if state["json"]:
            typer.echo(_envelope("generate", "error", {"error": error}))
        else:
            typer.echo(f"Error: {error}", err=True)
        raise typer.Exit(1)

    from fine_format.generators.io import save_dataset

    save_dataset(data, output)
    _print_summary(data, output)


async def _run_generation(
    settings: Settings,
    sources: list[SourceDocument],
    *,
    goal: Any,
    augment: bool,
    gap_filling: bool,
    num_pairs: int | None,
    offline_clean: bool,
) -> tuple[ProcessedData | None, str | None]:
    """Run the pipeline and return (data, error)."""
    from fine_format.adapters.cleaning import PlainTextCleaner
    from fine_format.adapters.registry import ServiceRegistry
    from fine_format.core.pipeline import PipelineOrchestrator
    from fine_format.generators.models import GenerationConfig

    config = GenerationConfig.from_settings(
        settings,
        goal=goal,
        web_augmentation=augment,
        gap_filling=gap_filling,
        qa_pair_target=num_pairs,
    )

    def on_progress(update: ProgressUpdate) -> None:
        if state["json"]:
            return
        remaining = f" (~{update.estimate.remaining_label} left)" if update.estimate else ""
        typer.echo(f"  [{update.percent:3d}%] {update.message}{remaining}")

    async with ServiceRegistry.from_settings(settings) as registry:
        orchestrator = PipelineOrchestrator(registry, cleaner=PlainTextCleaner() if offline_clean else None)
        data = await orchestrator.run(sources, config, on_progress=on_progress)
        return data, orchestrator.state.error


def _print_summary(data: ProcessedData, output: Path) -> None:
    stats = data.statistics
    if state["json"]:
        payload = {
            "output": str(output),
            "statistics": stats.model_dump(mode="json"),
            "themes": data.themes,
            "warnings": data.warnings,
        }
        typer.echo(_envelope("generate", "success", payload))
        return

    typer.echo()
    typer.echo("  " + "-" * 40)
    typer.echo("  Dataset Summary")
    typer.echo("  " + "-" * 40)
    typer.echo(f"    Q&A pairs:        {stats.total_pairs}")
    typer.echo(f"    Original:         {stats.original_pairs}")
    typer.echo(f"    Synthetic:        {stats.synthetic_pairs}")
    typer.echo(f"    Incorrect:        {stats.incorrect_answers} ({stats.incorrect_ratio:.0%})")
    if data.gap_filling_enabled:
        typer.echo(f"    Gaps addressed:   {stats.gaps_addressed}/{stats.gaps_identified}")
        typer.echo(f"    Rejected:         {stats.rejected_pairs}")
    if data.themes:
        typer.echo(f"    Themes:           {', '.join(data.themes)}")
    for warning in data.warnings:
        typer.echo(f"    Warning: {warning}")
    typer.echo("  " + "-" * 40)
    typer.echo(f"  Dataset saved to: {output}")
    typer.echo()


if __name__ == "__main__":
    app()
