"""Command-line interface for the Repair Assistant.

This module provides the terminal front end of the assistant: one-shot
diagnosis, case library import and browsing, opening an archived case, and an
interactive session that keeps the library loaded between questions.

The interface uses Rich for panels, tables and the rendering of the model's
report, which is first converted to display blocks by the text renderer.
"""

import asyncio
import logging
import time
from pathlib import Path
from typing import List, Optional, Sequence

import typer
from rich.console import Console, Group
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table
from rich.text import Text
from typing_extensions import Annotated

from .assistant import RepairAssistant
from .config import AssistantConfig
from .errors import AuthorizationError, RepairAssistantError
from .models import AnalysisResult, ImageAttachment
from .renderer import Blank, Header2, Header3, ListItem, Segment, render_blocks

app = typer.Typer(
    name="repair-assistant",
    help="AI Repair Assistant - hardware fault diagnosis with your own case archive",
    rich_markup_mode="rich",
)

console = Console()

QUIT_WORDS = ("quit", "exit", "q")


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("repair-assistant").setLevel(
        getattr(logging, level.upper(), logging.WARNING)
    )


@app.callback()
def main_callback(
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Show retry and import details")
    ] = False,
):
    """AI Repair Assistant."""
    configure_logging("INFO" if verbose else AssistantConfig().log_level)


def _append_segments(text: Text, segments: Sequence[Segment]) -> None:
    for segment in segments:
        text.append(segment.text, style="bold white" if segment.emphasized else None)


def blocks_to_renderable(report: str) -> Group:
    """Render report text through the block renderer into Rich text lines."""
    lines = []
    for block in render_blocks(report):
        if isinstance(block, Header2):
            lines.append(Text(block.text, style="bold cyan underline"))
        elif isinstance(block, Header3):
            lines.append(Text(block.text, style="bold blue"))
        elif isinstance(block, ListItem):
            line = Text("  • ")
            if block.label is not None:
                line.append(f"{block.label}: ", style="bold white")
            _append_segments(line, block.segments)
            lines.append(line)
        elif isinstance(block, Blank):
            lines.append(Text(""))
        else:
            line = Text()
            _append_segments(line, block.segments)
            lines.append(line)
    return Group(*lines)


def display_result(result: AnalysisResult) -> None:
    """Display a report and its grounding sources."""
    title = "Archived Solution" if result.from_archive else "Repair Analysis"
    console.print(
        Panel(blocks_to_renderable(result.summary_text), title=title, style="green")
    )

    if result.citations:
        sources = Text()
        for index, citation in enumerate(result.citations, 1):
            sources.append(f"{index}. {citation.title}\n", style="cyan")
            sources.append(f"   {citation.uri}\n", style="dim")
        console.print(Panel(sources, title="Sources", style="dim", border_style="dim"))


def display_error(error: Exception) -> None:
    console.print(
        Panel(Text.assemble("✗ ", (str(error), "red")), title="Error", style="red")
    )


def display_library(assistant: RepairAssistant) -> None:
    table = Table(title=f"Case Library ({len(assistant.records)} cases)")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Device", style="bold")
    table.add_column("Category")
    table.add_column("Symptom")
    table.add_column("Solution", justify="center")
    for index, record in enumerate(assistant.records, 1):
        table.add_row(
            str(index),
            Text(record.device_name),
            Text(record.category),
            Text(record.fault_description),
            "[green]✓[/green]" if record.solution_text else "",
        )
    console.print(table)


def _load_images(paths: Optional[List[Path]]) -> List[ImageAttachment]:
    return [ImageAttachment.from_path(path) for path in paths or []]


def _build_assistant(
    library: Optional[Path], max_attempts: Optional[int] = None
) -> RepairAssistant:
    config = AssistantConfig()
    if max_attempts is not None:
        config = AssistantConfig(
            retry=config.retry.model_copy(update={"max_attempts": max_attempts})
        )
    assistant = RepairAssistant(config)
    if library is not None:
        records = assistant.import_library(library)
        console.print(f"[dim]Loaded {len(records)} cases from {library.name}[/dim]")
    return assistant


async def run_analysis(
    assistant: RepairAssistant,
    description: str,
    images: Sequence[ImageAttachment] = (),
) -> Optional[AnalysisResult]:
    """Run one analysis, offering to re-enter the API key once if rejected."""
    console.print("\n[bold yellow]⏺ Analyzing fault[/bold yellow]")
    start_time = time.time()
    try:
        result = await assistant.analyze(description, images)
    except AuthorizationError as e:
        console.print(Text(str(e), style="yellow"))
        assistant.credentials.open_key_selection()
        result = await assistant.analyze(description, images)

    elapsed = time.time() - start_time
    if result is not None:
        console.print(
            f"  ⎓ Done ({len(result.citations)} sources · {elapsed:.1f}s)"
        )
    return result


@app.command()
def diagnose(
    description: Annotated[str, typer.Argument(help="Description of the fault")] = "",
    image: Annotated[
        Optional[List[Path]],
        typer.Option("--image", "-i", help="Photo of the fault (repeatable)"),
    ] = None,
    library: Annotated[
        Optional[Path],
        typer.Option("--library", "-l", help="Case archive (JSON or .xlsx)"),
    ] = None,
    max_attempts: Annotated[
        Optional[int],
        typer.Option("--max-attempts", min=1, help="Attempts before giving up"),
    ] = None,
):
    """Analyze a fault description and/or photos.

    If a case archive is given, similar historical cases are offered to the
    model first and cited in the report.
    """
    try:
        assistant = _build_assistant(library, max_attempts)
        images = _load_images(image)
        result = asyncio.run(run_analysis(assistant, description, images))
    except RepairAssistantError as e:
        display_error(e)
        raise typer.Exit(code=1)

    if result is not None:
        display_result(result)


@app.command("library")
def show_library(
    path: Annotated[Path, typer.Argument(help="Case archive (JSON or .xlsx)")],
):
    """Import a case archive and list the cases it contains."""
    assistant = RepairAssistant()
    try:
        assistant.import_library(path)
    except RepairAssistantError as e:
        display_error(e)
        raise typer.Exit(code=1)
    display_library(assistant)


@app.command()
def case(
    path: Annotated[Path, typer.Argument(help="Case archive (JSON or .xlsx)")],
    number: Annotated[int, typer.Argument(help="Case number as listed by 'library'")],
):
    """Open a case from the archive.

    Shows the archived solution when the case has one; otherwise the case's
    symptom is submitted for analysis against the rest of the archive.
    """
    try:
        assistant = _build_assistant(path)
        result = assistant.open_archived_case(number)
        if result is None:
            record = assistant.records[number - 1]
            console.print(
                f"[dim]Case #{number} has no archived solution, analyzing its symptom[/dim]"
            )
            result = asyncio.run(run_analysis(assistant, record.fault_description))
    except RepairAssistantError as e:
        display_error(e)
        raise typer.Exit(code=1)

    if result is not None:
        display_result(result)


@app.command()
def interactive(
    library: Annotated[
        Optional[Path],
        typer.Option("--library", "-l", help="Case archive (JSON or .xlsx)"),
    ] = None,
):
    """Run an interactive diagnosis session.

    Commands at the prompt: ':load <file>' replaces the case archive,
    ':image <file>' attaches a photo to the next question, 'quit' leaves.
    """
    try:
        assistant = _build_assistant(library)
    except RepairAssistantError as e:
        display_error(e)
        raise typer.Exit(code=1)

    console.print(
        Panel.fit(
            "[bold yellow]AI Repair Assistant[/bold yellow]\n"
            f"[dim]Model: {assistant.config.llm.model} | "
            f"Library: {len(assistant.records)} cases[/dim]",
            style="yellow",
        )
    )
    asyncio.run(run_interactive_session(assistant))


async def run_interactive_session(assistant: RepairAssistant):
    """Prompt loop; each question is analyzed with any attached photos."""
    images: List[ImageAttachment] = []

    while True:
        console.print("\n" + "=" * 60)
        line = Prompt.ask(
            "\n[bold yellow]Describe the fault[/bold yellow]\n"
            "[dim](':load <file>', ':image <file>', or 'quit' to exit)[/dim]"
        ).strip()

        if line.lower() in QUIT_WORDS:
            console.print("\nThanks for using the Repair Assistant!")
            break

        try:
            if line.startswith(":load "):
                assistant.import_library(Path(line[len(":load "):].strip()))
                display_library(assistant)
                continue
            if line.startswith(":image "):
                images.append(ImageAttachment.from_path(line[len(":image "):].strip()))
                console.print(f"[dim]{len(images)} photo(s) attached[/dim]")
                continue

            result = await run_analysis(assistant, line, images)
            images = []
        except RepairAssistantError as e:
            display_error(e)
            continue

        if result is not None:
            display_result(result)


@app.command()
def info():
    """Show the active configuration."""
    config = AssistantConfig()
    assistant = RepairAssistant(config)

    console.print("\n[bold]Configuration:[/bold]")
    console.print(f"Model: {config.llm.model}")
    console.print(f"API base: {config.llm.api_base}")
    console.print(f"Web search grounding: {'on' if config.llm.web_search else 'off'}")
    console.print(f"Report language: {config.llm.response_language}")
    console.print(
        f"Retry policy: {config.retry.max_attempts} attempts, "
        f"{config.retry.initial_delay:.1f}s initial delay, "
        f"x{config.retry.backoff_multiplier:g} backoff"
    )
    key_state = "[green]selected[/green]" if assistant.credentials.has_selected_key() else "[red]missing[/red]"
    console.print(f"API key: {key_state}")


def main():
    """Main entry point for the CLI application."""
    app()


if __name__ == "__main__":
    main()
