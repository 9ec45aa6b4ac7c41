"""Workout commands: log-workout."""

import json
from datetime import datetime
from pathlib import Path
from typing import Annotated, Optional

import typer

from ...core.models import CompletionFailure, WorkoutExerciseResult
from ...core.orchestrator import process_workout_completion
from ...io.serializers import ValidationError, completion_result_to_dict, parse_workout
from .. import views
from ..app import (
    CatalogDirOption,
    JsonOption,
    StoreDirOption,
    UserOption,
    app,
    get_catalog,
    get_settings,
    get_store,
)


def _read_workout(path: Path) -> list[WorkoutExerciseResult]:
    """
    Load exercises from a workout JSON file.

    Accepted shapes:
        [{"exercise_id": ..., "reps_per_set": [...], "target_reps": ...}, ...]
        {"exercises": [...]}
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise ValidationError(f"Cannot read {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ValidationError(f"Error parsing {path}: {e}") from e
    return parse_workout(data)


def _parse_date(value: str | None) -> datetime:
    if value is None:
        return datetime.now()
    try:
        return datetime.fromisoformat(value)
    except ValueError as e:
        raise ValidationError(f"Invalid date {value!r}, expected ISO format (YYYY-MM-DD[THH:MM])") from e


@app.command("log-workout")
def log_workout(
    user_id: UserOption,
    program_id: Annotated[
        str,
        typer.Option("--program", "-p", help="Program the workout was done in"),
    ],
    workout_path: Annotated[
        Path,
        typer.Option("--workout", "-w", help="Workout JSON file with exercise results"),
    ],
    date: Annotated[
        Optional[str],
        typer.Option("--date", "-d", help="Completion time, ISO format (default: now)"),
    ] = None,
    store_dir: StoreDirOption = None,
    catalog_dir: CatalogDirOption = None,
    json_out: JsonOption = False,
) -> None:
    """
    Apply a completed workout to the user's program tracks.

    Updates the program's track, linked programs, master programs above
    them and any level unlocks, then reports level-ups and split readiness.

      skill-tracks log-workout --user alice --program full_body --workout today.json
    """
    settings = get_settings()
    store = get_store(store_dir)
    catalog = get_catalog(catalog_dir, settings)

    try:
        exercises = _read_workout(workout_path)
        completed_at = _parse_date(date)
    except ValidationError as e:
        views.print_error(str(e))
        raise typer.Exit(1)

    outcome = process_workout_completion(
        store, catalog, user_id, program_id, exercises, completed_at, settings=settings
    )

    if isinstance(outcome, CompletionFailure):
        if json_out:
            print(json.dumps({"ok": False, "kind": outcome.kind, "reason": outcome.reason}, indent=2))
        else:
            views.print_error(outcome.reason)
            if outcome.kind == "conflict":
                views.print_info("The document changed meanwhile; run the command again.")
        raise typer.Exit(1)

    if json_out:
        print(json.dumps({"ok": True, **completion_result_to_dict(outcome.result)}, indent=2))
        return

    views.print_success(f"Workout logged for {user_id} in {program_id}")
    views.print_completion(outcome.result)
