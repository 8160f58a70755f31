"""
Typer CLI for the difficulty gate.

Commands:
    difficulty-gate score 0.4 0.3 0.5 0.25      - D from raw components
    difficulty-gate weights                     - Show the configured default weights
    difficulty-gate target TEXT [TEXT ...]      - Target profile from 1-3 reference texts
    difficulty-gate structure TEXT              - Classify text and recover its blanks/choices
    difficulty-gate generate-cloze SOURCE       - Run the cloze generation pipeline
    difficulty-gate generate-mc SOURCE          - Run the multiple-choice generation pipeline
    difficulty-gate serve                       - Start the HTTP API

Usage:
    difficulty-gate --help
    difficulty-gate target "The weather is sunny and warm today." --task cloze
    difficulty-gate generate-cloze "The weather is sunny and warm today." --json
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, NoReturn, TypeVar

import typer
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from config import Settings, get_settings
from difficulty_gate.api.dependencies import get_extractor, get_target_estimator
from difficulty_gate.errors import DifficultyGateError
from difficulty_gate.extraction.format_classifier import ItemFormat, classify_format
from difficulty_gate.extraction.glyph_rules import normalize_glyphs
from difficulty_gate.extraction.mc_parser import parse_multiple_choice
from difficulty_gate.generation.candidates import TaskType
from difficulty_gate.generation.cloze_pipeline import ClozePipeline
from difficulty_gate.generation.llm_client import TextGenerator, create_text_generator
from difficulty_gate.generation.mc_pipeline import MultipleChoicePipeline
from difficulty_gate.generation.pipeline import GenerationRequest, GenerationResult
from difficulty_gate.logging_config import setup_logging
from difficulty_gate.profile.target_profile import TargetProfile
from difficulty_gate.scoring.difficulty_score import AXES, DifficultyComponents, DifficultyWeights, score
from difficulty_gate.semantic.embedding_service import EmbeddingService, create_embedding_service

app = typer.Typer(
    help="difficulty-gate CLI: score, profile and generate language-learning items",
    no_args_is_help=True,
)

console = Console()

T = TypeVar("T")


# ========================================
# Helpers
# ========================================


def _fail(error: DifficultyGateError) -> NoReturn:
    rprint(f"[bold red]✗ {error.error_type}[/bold red]: {error.message}")
    if error.reason:
        rprint(f"  reason: {error.reason}")
    if error.similarity is not None or error.jaccard is not None:
        rprint(f"  similarity: {error.similarity}  jaccard: {error.jaccard}")
    if error.run is not None:
        rprint(f"  run: {error.run.run_id}  stage: {error.run.stage.value}")
    raise typer.Exit(code=error.exit_code)


def _run(action: Callable[[], T]) -> T:
    """Run a command body, mapping domain errors to exit codes."""
    try:
        return action()
    except DifficultyGateError as e:
        _fail(e)


async def _with_generator(body: Callable[[TextGenerator | None], Awaitable[T]]) -> T:
    generator = create_text_generator(get_settings().get_llm_config())
    try:
        return await body(generator)
    finally:
        if generator is not None:
            await generator.close()


def _read_text(text: str | None, file: Path | None) -> str:
    if file is not None:
        return file.read_text(encoding="utf-8")
    if text is None:
        rprint("[red]Provide TEXT or --file[/red]")
        raise typer.Exit(code=2)
    return text


def _weights(wl: float | None, ws: float | None, wa: float | None, wr: float | None) -> DifficultyWeights:
    defaults = get_settings().get_difficulty_weights()
    return DifficultyWeights(
        wL=defaults.wL if wl is None else wl,
        wS=defaults.wS if ws is None else ws,
        wA=defaults.wA if wa is None else wa,
        wR=defaults.wR if wr is None else wr,
    )


def _print_json(payload: dict[str, Any]) -> None:
    console.print_json(json.dumps(payload, default=str))


def _components_table(title: str, rows: dict[str, DifficultyComponents]) -> Table:
    table = Table(title=title, show_header=True)
    table.add_column("", style="cyan")
    for axis in AXES:
        table.add_column(axis, justify="right")
    for name, components in rows.items():
        table.add_row(name, *(f"{components.get(axis):.3f}" for axis in AXES))
    return table


def _target_profile(
    texts: list[str], task: TaskType, embeddings: EmbeddingService, settings: Settings
) -> TargetProfile | None:
    if not texts:
        return None
    return get_target_estimator(embeddings, settings).estimate(texts, task)


def _print_generation(result: GenerationResult) -> None:
    payload = result.to_dict()
    item = payload["item"]

    rprint(f"\n[bold cyan]Accepted[/bold cyan] ({result.tier.value}, run {result.run.run_id})")
    if "choices" in item:
        if item.get("passage"):
            rprint(f"  [dim]{item['passage']}[/dim]")
        rprint(f"  {item['question']}")
        for index, choice in enumerate(item["choices"]):
            marker = "[green]✓[/green]" if index == item["correctIndex"] else " "
            rprint(f"   {marker} {chr(ord('A') + index)}. {choice}")
    else:
        rprint(f"  {item['text']}")
        rprint(f"  answers: [green]{', '.join(item['answers'])}[/green]")
        rprint(f"  distractors: {', '.join(item['distractors'])}")

    table = Table(show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("D", f"{result.accepted.score.D:.3f}")
    table.add_row("similarity", f"{result.accepted.similarity_to_source:.3f}")
    table.add_row("jaccard", f"{result.accepted.jaccard_to_source:.3f}")
    if result.accepted.distance_to_target is not None:
        table.add_row("distance to target", f"{result.accepted.distance_to_target:.3f}")
    if result.comparison is not None:
        table.add_row("target compliance", result.comparison.overall.value)
    console.print(table)

    if result.similarity_warning:
        rprint(f"\n[yellow]⚠[/yellow] {result.similarity_warning}")


# ========================================
# Commands
# ========================================


@app.command("score")
def score_command(
    lexical: float = typer.Argument(..., help="L in [0, 1]"),
    structural: float = typer.Argument(..., help="S in [0, 1]"),
    ambiguity: float = typer.Argument(..., help="A in [0, 1]"),
    reasoning: float = typer.Argument(..., help="R in [0, 1]"),
    wl: float | None = typer.Option(None, "--wl", help="Lexical weight"),
    ws: float | None = typer.Option(None, "--ws", help="Structural weight"),
    wa: float | None = typer.Option(None, "--wa", help="Ambiguity weight"),
    wr: float | None = typer.Option(None, "--wr", help="Reasoning weight"),
) -> None:
    """Combine four components into D."""
    result = _run(
        lambda: score(
            DifficultyComponents(L=lexical, S=structural, A=ambiguity, R=reasoning),
            _weights(wl, ws, wa, wr),
        )
    )
    rprint(f"[bold]D = {result.D:.4f}[/bold]")
    console.print(_components_table("Components", {"clamped": result.components}))


@app.command("weights")
def weights_command() -> None:
    """Show the configured default weights."""
    weights = get_settings().get_difficulty_weights()
    table = Table(title="Default Weights", show_header=True)
    table.add_column("Weight", style="cyan")
    table.add_column("Value", justify="right")
    for name, value in weights.to_dict().items():
        table.add_row(name, f"{value:.2f}")
    console.print(table)
    if abs(weights.total - 1.0) > 1e-9:
        rprint(f"[yellow]⚠[/yellow] weights sum to {weights.total:.3f}, D may exceed [0, 1]")


@app.command("target")
def target_command(
    texts: list[str] = typer.Argument(..., help="One to three reference texts"),
    task: TaskType = typer.Option(TaskType.CLOZE, "--task", "-t", help="cloze or multiple_choice"),
    as_json: bool = typer.Option(False, "--json", help="Print the raw profile"),
) -> None:
    """Estimate a target profile from reference texts."""
    settings = get_settings()
    estimator = get_target_estimator(create_embedding_service(settings), settings)
    profile = _run(lambda: estimator.estimate(texts, task))

    if as_json:
        _print_json(profile.to_dict())
        return

    console.print(
        _components_table(
            f"Target from {profile.sample_count} source(s)",
            {
                "mean": profile.mean,
                "std": profile.std,
                "tolerance": profile.axis_tolerance,
                "band min": profile.target_band.min,
                "band max": profile.target_band.max,
            },
        )
    )
    rprint(f"  Stability: [bold]{profile.stability.value}[/bold]")
    rprint(f"  Effective tolerance: {profile.effective_tolerance}")


@app.command("structure")
def structure_command(
    text: str | None = typer.Argument(None, help="Raw item text"),
    file: Path | None = typer.Option(None, "--file", "-f", exists=True, help="Read the text from a file"),
    as_json: bool = typer.Option(False, "--json", help="Print the raw structure"),
) -> None:
    """Classify raw text and recover its blanks or multiple-choice parts."""
    raw = _read_text(text, file)
    detected = classify_format(normalize_glyphs(raw))

    async def recover(generator: TextGenerator | None) -> dict[str, Any]:
        if detected == ItemFormat.MULTIPLE_CHOICE:
            parsed = await parse_multiple_choice(raw, generator)
            return {"item": parsed.item.to_dict(), "parseMethod": parsed.method.value}
        extraction = await get_extractor().extract_with_repair(raw, None, generator)
        return extraction.to_dict()

    payload = _run(lambda: asyncio.run(_with_generator(recover)))
    payload = {"format": detected.value, **payload}

    if as_json:
        _print_json(payload)
        return

    rprint(f"\n[bold cyan]Format:[/bold cyan] {detected.value}")
    if "item" in payload:
        item = payload["item"]
        rprint(f"  Parsed with: {payload['parseMethod']}")
        rprint(f"  Question: {item['question']}")
        for index, choice in enumerate(item["choices"]):
            marker = "[green]✓[/green]" if index == item["correctIndex"] else " "
            rprint(f"   {marker} {choice}")
        return

    rprint(f"  Slot source: {payload['slotSource']}")
    rprint(f"  {payload['displayText']}")
    table = Table(show_header=True)
    table.add_column("#", justify="right")
    table.add_column("Prefix", style="cyan")
    table.add_column("Missing", justify="right")
    table.add_column("Confidence", justify="right")
    for index, slot in enumerate(payload["slots"], start=1):
        table.add_row(str(index), slot["prefix"] or "-", str(slot["missingCount"]), f"{slot['confidence']:.2f}")
    console.print(table)


@app.command("generate-cloze")
def generate_cloze_command(
    source: str | None = typer.Argument(None, help="Reference cloze item"),
    file: Path | None = typer.Option(None, "--file", "-f", exists=True, help="Read the source from a file"),
    answer: list[str] = typer.Option([], "--answer", "-a", help="Known answer for a source blank (repeatable)"),
    target_source: list[str] = typer.Option(
        [], "--target-source", help="Reference text to estimate a target profile from (repeatable)"
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the raw response"),
) -> None:
    """Generate a cloze item near the source's difficulty."""
    source_text = _read_text(source, file)
    settings = get_settings()
    async def generate(generator: TextGenerator | None) -> GenerationResult:
        embeddings = create_embedding_service(settings)
        request = GenerationRequest(
            source_text=source_text,
            target_profile=_target_profile(target_source, TaskType.CLOZE, embeddings, settings),
            source_answers=tuple(answer),
        )
        pipeline = ClozePipeline(embeddings, generator, settings.get_pipeline_config(), get_extractor(settings))
        return await pipeline.run(request)

    result = _run(lambda: asyncio.run(_with_generator(generate)))
    if as_json:
        _print_json(result.to_dict())
    else:
        _print_generation(result)


@app.command("generate-mc")
def generate_mc_command(
    source: str | None = typer.Argument(None, help="Reference multiple-choice item"),
    file: Path | None = typer.Option(None, "--file", "-f", exists=True, help="Read the source from a file"),
    style: str = typer.Option("fact_based", "--style", help="fact_based, intent_based or emotional"),
    target_source: list[str] = typer.Option(
        [], "--target-source", help="Reference text to estimate a target profile from (repeatable)"
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the raw response"),
) -> None:
    """Generate a multiple-choice item near the source's difficulty."""
    source_text = _read_text(source, file)
    settings = get_settings()
    async def generate(generator: TextGenerator | None) -> GenerationResult:
        embeddings = create_embedding_service(settings)
        request = GenerationRequest(
            source_text=source_text,
            target_profile=_target_profile(target_source, TaskType.MULTIPLE_CHOICE, embeddings, settings),
            inference_style=style,
        )
        pipeline = MultipleChoicePipeline(embeddings, generator, settings.get_pipeline_config())
        return await pipeline.run(request)

    result = _run(lambda: asyncio.run(_with_generator(generate)))
    if as_json:
        _print_json(result.to_dict())
    else:
        _print_generation(result)


@app.command("serve")
def serve_command(
    host: str | None = typer.Option(None, "--host", help="Bind address (default: from config)"),
    port: int | None = typer.Option(None, "--port", "-p", help="Port (default: from config)"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
) -> None:
    """Start the HTTP API."""
    import uvicorn

    settings = get_settings()
    setup_logging(settings)
    uvicorn.run(
        "difficulty_gate.api.main:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


# =============================================================================
# Entry Point
# =============================================================================


def main() -> None:
    """CLI entry point."""
    setup_logging(level="WARNING")
    app()


if __name__ == "__main__":
    main()
