"""
CLI view formatters using Rich for pretty console output.

Handles table formatting and display of tracks, workout results, master
breakdowns and rules.
"""

from rich.console import Console
from rich.table import Table

from ..core.aggregator import MasterProgress
from ..core.models import ProgramGain, ProgressionRule, UserProgression, WorkoutCompletionResult

console = Console()


def _fmt_progress(level: int, percent: float) -> str:
    return f"L{level} {percent:5.2f}%"


def _fmt_gain_row(gain: ProgramGain) -> list[str]:
    change = (
        f"{_fmt_progress(gain.previous_level, gain.previous_percent)} → "
        f"{_fmt_progress(gain.new_level, gain.new_percent)}"
    )
    level_up = f"[bold green]+{gain.levels_gained}[/bold green]" if gain.leveled_up else ""
    return [
        gain.program_id,
        gain.source,
        f"×{gain.multiplier:.2f}",
        f"+{gain.gain:.2f}%",
        change,
        level_up,
    ]


def format_tracks_table(document: UserProgression) -> Table:
    """
    Format a user's tracks as a Rich table.

    Args:
        document: User progression document

    Returns:
        Rich Table object
    """
    table = Table(title=f"Tracks: {document.user_id}")

    table.add_column("Program", style="cyan")
    table.add_column("Level", justify="right", style="bold")
    table.add_column("Percent", justify="right")
    table.add_column("Sessions", justify="right")
    table.add_column("Last activity", style="dim")
    table.add_column("Active", justify="center")

    active = set(document.active_programs)
    for program_id in sorted(document.tracks):
        track = document.tracks[program_id]
        table.add_row(
            program_id,
            str(track.current_level),
            f"{track.percent:.2f}%",
            str(track.total_sessions_completed),
            track.last_activity_at.strftime("%Y-%m-%d %H:%M") if track.last_activity_at else "-",
            "✓" if program_id in active else "",
        )

    return table


def print_tracks(document: UserProgression) -> None:
    """Print a user's tracks, or a hint when there are none yet."""
    if not document.tracks:
        print_info(f"No tracks yet for {document.user_id}. Log a workout to start one.")
        if document.active_programs:
            console.print(f"Active programs: {', '.join(document.active_programs)}")
        return
    console.print(format_tracks_table(document))


def print_completion(result: WorkoutCompletionResult) -> None:
    """Print everything a workout completion changed."""
    volume = result.volume
    console.print()
    console.print(
        f"[bold]Volume[/bold] {volume.sets_performed}/{volume.required_sets_for_full_gain} sets "
        f"(ratio {volume.volume_ratio:.2f}), reps {volume.total_reps}/{volume.total_target_reps} "
        f"(performance {volume.performance_ratio:.2f})"
    )
    console.print(
        f"[bold]Gain[/bold] base {volume.base_gain:.2f}% + bonus {volume.bonus_gain:.2f}% "
        f"= [bold]{volume.total_gain:.2f}%[/bold]"
    )

    table = Table(show_header=True, header_style="dim")
    table.add_column("Program", style="cyan")
    table.add_column("Source", style="magenta")
    table.add_column("Mult", justify="right")
    table.add_column("Gain", justify="right")
    table.add_column("Progress")
    table.add_column("Up", justify="right")
    for gain in [result.primary_gain, *result.linked_gains]:
        table.add_row(*_fmt_gain_row(gain))
    console.print(table)

    for gain in result.leveled_up_programs:
        print_success(f"LEVEL UP: {gain.program_id} reached level {gain.new_level}")
    if result.masters_updated:
        console.print(f"Masters updated: {', '.join(result.masters_updated)}")
    if result.equivalences_applied:
        console.print(f"Equivalences applied: {', '.join(result.equivalences_applied)}")
    if result.unlocked_programs:
        print_success(f"Unlocked: {', '.join(result.unlocked_programs)}")
    if result.ready_for_split is not None:
        split = result.ready_for_split
        print_info(
            f"{split.program_id} reached level {split.level}: ready to split into "
            f"{', '.join(split.suggested_programs)}"
        )
    for error in result.propagation_errors:
        print_warning(f"Propagation skipped ({error})")


def print_master(progress: MasterProgress) -> None:
    """Print a master program's derived progress and its children."""
    table = Table(title=f"Master: {progress.program_id}")
    table.add_column("Child", style="cyan")
    table.add_column("Level", justify="right")
    table.add_column("Percent", justify="right")
    table.add_column("Kind", style="dim")
    for child in progress.children:
        table.add_row(
            child.program_id,
            str(child.level),
            f"{child.percent:.2f}%",
            "master" if child.is_master else "track",
        )
    console.print(table)
    console.print(
        f"[bold]{progress.program_id}[/bold]: level {progress.display_level}, "
        f"{progress.display_percent:.2f}%"
    )


def print_rule(rule: ProgressionRule) -> None:
    """Print a resolved progression rule."""
    origin = "[yellow]built-in default[/yellow]" if rule.is_default else "[green]catalog[/green]"
    console.print(f"[bold]{rule.program_id}[/bold] level {rule.level} ({origin})")
    console.print(f"  Base session gain:   {rule.base_session_gain:.2f}%")
    console.print(f"  Bonus cap:           {rule.bonus_percent:.2f}%")
    console.print(f"  Sets for full gain:  {rule.required_sets_for_full_gain}")
    if rule.linked_programs:
        links = ", ".join(
            f"{link.target_program_id} ×{link.multiplier:.2f}" for link in rule.linked_programs
        )
        console.print(f"  Linked programs:     {links}")
    if rule.description:
        console.print(f"  [dim]{rule.description}[/dim]")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green]{message}[/green]")


def print_error(message: str) -> None:
    """Print an error message."""
    console.print(f"[red]Error: {message}[/red]")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[yellow]Warning: {message}[/yellow]")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[blue]{message}[/blue]")
