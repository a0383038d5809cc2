"""DiamondForge CLI - typer application entry point."""

from __future__ import annotations

import asyncio
import atexit
from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import typer
from dotenv import load_dotenv
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from diamondforge.observability import close_file_logging, configure_logging, get_logger

if TYPE_CHECKING:
    from diamondforge.diamond.validation import PathValidationReport
    from diamondforge.export.base import StoryExport
    from diamondforge.providers.base import StructuredGenerator

# Load environment variables from .env file
load_dotenv()

app = typer.Typer(
    name="diamondforge",
    help="DiamondForge: diamond-shaped interactive story generation.",
    no_args_is_help=True,
)
console = Console()
log = get_logger(__name__)

DEFAULT_OUTPUT_DIR = "output"
VISUALIZE_FORMATS = ("dot", "mermaid")

# Global state for logging flags (set by callback, used by commands)
_verbose: int = 0
_log_enabled: bool = False


@app.callback()
def main(
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose",
            "-v",
            count=True,
            help="Increase verbosity: -v for INFO, -vv for DEBUG.",
        ),
    ] = 0,
    log_to_file: Annotated[
        bool,
        typer.Option(
            "--log",
            help="Enable file logging to {project}/logs/generation.jsonl.",
        ),
    ] = False,
) -> None:
    """DiamondForge: diamond-shaped interactive story generation."""
    global _verbose, _log_enabled
    _verbose = verbose
    _log_enabled = log_to_file

    # Console only; file logging is configured once the project is known
    configure_logging(verbosity=verbose)


def _configure_project_logging(project_path: Path) -> None:
    """Configure file logging if --log flag was set."""
    if _log_enabled:
        configure_logging(verbosity=_verbose, log_to_file=True, project_path=project_path)
        atexit.register(close_file_logging)


def _build_generator(provider_string: str) -> StructuredGenerator:
    """Create the LLM collaborator for a ``provider/model`` string.

    Raises:
        ProviderError: If the provider is unknown or not configured.
    """
    from diamondforge.providers import LangChainGenerator, create_chat_model, parse_provider_string

    provider, model = parse_provider_string(provider_string)
    chat_model = create_chat_model(provider, model)
    return LangChainGenerator(chat_model, provider)


def _print_progress(percent: int, message: str) -> None:
    console.print(f"[dim]{percent:>3}%[/dim] {message}")


def _print_summary(story: StoryExport, report: PathValidationReport | None, output_file: Path) -> None:
    table = Table(title=story.title, show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Genre", f"{story.genre} / {story.tone} / {story.difficulty}")
    table.add_row("Preset", story.preset)
    table.add_row("Scenes", str(story.total_scenes))
    table.add_row("Endings", str(story.total_endings))
    table.add_row("Words", str(story.total_words))
    if report is not None:
        table.add_row("Path repairs", report.summary)
        if report.warnings:
            table.add_row("Warnings", "\n".join(report.warnings))
    table.add_row("Output", str(output_file))

    console.print()
    console.print(table)
    console.print()


# =============================================================================
# Commands
# =============================================================================


@app.command()
def generate(
    genre: Annotated[
        str,
        typer.Option("--genre", "-g", help="fantasy, mystery, scifi, romance or horror."),
    ],
    premise: Annotated[str, typer.Option("--premise", help="One or two sentences to build the story on.")],
    player_name: Annotated[str, typer.Option("--player-name", help="Name of the protagonist.")],
    tone: Annotated[str, typer.Option("--tone", help="light, balanced or dark.")] = "balanced",
    difficulty: Annotated[
        str, typer.Option("--difficulty", help="forgiving, normal or punishing.")
    ] = "normal",
    player_gender: Annotated[
        str, typer.Option("--player-gender", help="male, female or neutral.")
    ] = "neutral",
    personality: Annotated[
        str | None, typer.Option("--personality", help="Short personality note for the protagonist.")
    ] = None,
    preset: Annotated[
        str | None, typer.Option("--preset", help="quick, standard or epic (default from project.yaml).")
    ] = None,
    mode: Annotated[str | None, typer.Option("--mode", "-m", help="draft or polished.")] = None,
    provider: Annotated[
        str | None, typer.Option("--provider", help="LLM provider, e.g. openai/gpt-5-mini.")
    ] = None,
    seed: Annotated[int | None, typer.Option("--seed", help="Seed for branch topology.")] = None,
    output: Annotated[
        Path | None, typer.Option("--output", "-o", help="Directory receiving story.json.")
    ] = None,
    project: Annotated[
        Path | None, typer.Option("--project", "-p", help="Project directory holding project.yaml.")
    ] = None,
) -> None:
    """Generate a complete branching story and write story.json."""
    from diamondforge.export import JsonExporter, build_story_export
    from diamondforge.models.story import PlayerCustomization, create_generation_state
    from diamondforge.pipeline import (
        DiamondOrchestrator,
        ProjectConfigError,
        SceneSynthesisError,
        WorldBuildingError,
        get_diamond_preset,
        load_or_default_config,
    )
    from diamondforge.providers import ProviderError

    project_path = project or Path()
    _configure_project_logging(project_path)

    try:
        config = load_or_default_config(project)
        run_mode = config.resolve_mode(mode)
        preset_name = preset or config.generation.preset
        state = create_generation_state(
            genre=genre.lower(),
            premise=premise,
            player=PlayerCustomization(name=player_name, gender=player_gender, personality=personality),
            diamond_config=get_diamond_preset(preset_name),
            tone=tone.lower(),
            difficulty=difficulty.lower(),
            preset=preset_name,
        )
    except ProjectConfigError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e
    except ValidationError as e:
        console.print(f"[red]Error:[/red] Invalid story settings ({e.error_count()} errors)")
        for error in e.errors():
            console.print(f"  {'.'.join(str(p) for p in error['loc'])}: {error['msg']}")
        raise typer.Exit(1) from e
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    provider_string = config.resolve_provider(provider)
    run_seed = seed if seed is not None else config.generation.seed
    log.info("cli_generate", provider=provider_string, preset=preset_name, mode=str(run_mode))

    try:
        generator = _build_generator(provider_string)
        orchestrator = DiamondOrchestrator(generator, on_progress=_print_progress, seed=run_seed)
        asyncio.run(orchestrator.run(state, run_mode))
    except ProviderError as e:
        console.print(f"[red]Provider error:[/red] {e}")
        raise typer.Exit(1) from e
    except (WorldBuildingError, SceneSynthesisError) as e:
        console.print(f"[red]Generation failed:[/red] {e}")
        raise typer.Exit(1) from e

    story = build_story_export(state)
    output_file = JsonExporter().export(story, output or project_path / DEFAULT_OUTPUT_DIR)
    _print_summary(story, orchestrator.last_report, output_file)
    console.print(f"[green]✓[/green] Story written to [bold]{output_file}[/bold]")


@app.command()
def shape(
    preset: Annotated[str | None, typer.Option("--preset", help="quick, standard or epic.")] = None,
    levels: Annotated[int | None, typer.Option("--levels", help="Diamond depth (3-6).")] = None,
    width: Annotated[int | None, typer.Option("--width", help="Widest level (2-6).")] = None,
    min_endings: Annotated[int | None, typer.Option("--min-endings", help="2-4.")] = None,
    max_endings: Annotated[int | None, typer.Option("--max-endings", help="3-8.")] = None,
) -> None:
    """Show the scene count of each level for a preset or custom diamond."""
    from diamondforge.diamond.shape import calculate_diamond_shape, diamond_midpoint, total_scene_count
    from diamondforge.models.story import DiamondConfig
    from diamondforge.pipeline.presets import DEFAULT_PRESET, get_diamond_preset

    custom = {
        "max_levels": levels,
        "max_width": width,
        "min_endings": min_endings,
        "max_endings": max_endings,
    }
    try:
        if any(value is not None for value in custom.values()):
            base = get_diamond_preset(preset or DEFAULT_PRESET)
            overrides = {k: v for k, v in custom.items() if v is not None}
            config = DiamondConfig.model_validate({**base.model_dump(), **overrides})
            title = "Custom diamond"
        else:
            config = get_diamond_preset(preset or DEFAULT_PRESET)
            title = f"Preset: {preset or DEFAULT_PRESET}"
    except ValidationError as e:
        console.print(f"[red]Error:[/red] Invalid diamond ({e.error_count()} errors)")
        for error in e.errors():
            console.print(f"  {error['msg']}")
        raise typer.Exit(1) from e
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    widths = calculate_diamond_shape(config)
    mid = diamond_midpoint(config)

    table = Table(title=title)
    table.add_column("Level", style="cyan", justify="right")
    table.add_column("Scenes", justify="right")
    table.add_column("Phase", style="dim")
    for level, count in enumerate(widths):
        if level == 0:
            phase = "intro"
        elif level == len(widths) - 1:
            phase = "endings"
        elif level <= mid:
            phase = "expanding"
        else:
            phase = "contracting"
        table.add_row(str(level), str(count), phase)

    console.print()
    console.print(table)
    console.print(f"Total scenes: [bold]{total_scene_count(widths)}[/bold]")


@app.command()
def visualize(
    story_file: Annotated[Path, typer.Argument(help="Path to a story.json written by generate.")],
    fmt: Annotated[str, typer.Option("--format", "-f", help="dot or mermaid.")] = "dot",
    output: Annotated[
        Path | None, typer.Option("--output", "-o", help="Write to a file instead of stdout.")
    ] = None,
    no_labels: Annotated[bool, typer.Option("--no-labels", help="Omit choice text on edges.")] = False,
) -> None:
    """Render a generated story as a DOT or Mermaid graph."""
    from diamondforge.export import StoryNotFoundError, read_story_export
    from diamondforge.visualization import build_story_graph, render_dot, render_mermaid

    if fmt not in VISUALIZE_FORMATS:
        console.print(f"[red]Error:[/red] Unknown format '{fmt}'. Use one of: {', '.join(VISUALIZE_FORMATS)}")
        raise typer.Exit(1)

    try:
        story = read_story_export(story_file)
    except StoryNotFoundError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    graph = build_story_graph(story)
    text = render_mermaid(graph, no_labels=no_labels) if fmt == "mermaid" else render_dot(graph, no_labels=no_labels)

    if output is None:
        # Raw markup; rich would treat [..] as style tags
        typer.echo(text)
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(text + "\n", encoding="utf-8")
    console.print(f"[green]✓[/green] Wrote {fmt} graph ({len(graph.nodes)} scenes) to {output}")


@app.command()
def init(
    name: Annotated[str, typer.Argument(help="Project name (also the directory name).")],
    path: Annotated[Path, typer.Option("--path", help="Parent directory.")] = Path(),
    provider: Annotated[
        str | None, typer.Option("--provider", help="Default provider, e.g. openai/gpt-5-mini.")
    ] = None,
) -> None:
    """Create a project directory with a default project.yaml."""
    from ruamel.yaml import YAML

    from diamondforge.pipeline.config import CONFIG_FILE_NAME, create_default_config

    project_path = path / name
    if (project_path / CONFIG_FILE_NAME).exists():
        console.print(f"[red]Error:[/red] Project already exists at {project_path}")
        raise typer.Exit(1)

    config = create_default_config(name, provider)
    project_path.mkdir(parents=True, exist_ok=True)
    data = {
        "name": config.name,
        "version": config.version,
        "provider": config.provider,
        "generation": {
            "preset": config.generation.preset,
            "mode": str(config.generation.mode),
            "max_concurrency": config.generation.max_concurrency,
        },
    }
    yaml = YAML()
    yaml.default_flow_style = False
    with (project_path / CONFIG_FILE_NAME).open("w", encoding="utf-8") as f:
        yaml.dump(data, f)

    console.print(f"[green]✓[/green] Created project [bold]{name}[/bold] at {project_path}")


@app.command()
def version() -> None:
    """Show version information."""
    from diamondforge import __version__

    console.print(f"DiamondForge v{__version__}")


if __name__ == "__main__":
    app()
