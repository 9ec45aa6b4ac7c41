"""
JSON/YAML serialization for progression data models.

Handles conversion between dataclasses and JSON-compatible dicts.
"""

import re
from datetime import datetime
from typing import Any

from ..core.models import (
    DomainTrack,
    LevelEquivalenceRule,
    LinkedProgram,
    ProgramDefinition,
    ProgramGain,
    ProgressionRule,
    SplitReadiness,
    UserProgression,
    VolumeBreakdown,
    WorkoutCompletionResult,
    WorkoutExerciseResult,
)


class ValidationError(Exception):
    """Raised when data validation fails."""

    pass


_ID_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


def validate_identifier(value: Any, name: str) -> str:
    """
    Validate a user or program identifier.

    Identifiers double as file names and dict keys, so only letters,
    digits, underscore, dot and dash are accepted.

    Raises:
        ValidationError: If value is not a valid identifier
    """
    if not isinstance(value, str) or not _ID_RE.match(value):
        raise ValidationError(f"Invalid {name}: {value!r}")
    return value


def validate_non_negative(value: int | float, name: str) -> int | float:
    """
    Validate that a value is non-negative.

    Raises:
        ValidationError: If value is negative
    """
    if value < 0:
        raise ValidationError(f"{name} must be non-negative, got {value}")
    return value


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp; None stays None."""
    if value is None:
        return None
    try:
        return datetime.fromisoformat(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid timestamp: {value!r}") from e


def _build(cls, label: str, /, **kwargs):
    """Construct a model, turning its __post_init__ ValueError into ValidationError."""
    try:
        return cls(**kwargs)
    except ValueError as e:
        raise ValidationError(f"Invalid {label}: {e}") from e


# ---------------------------------------------------------------------------
# Tracks
# ---------------------------------------------------------------------------


def track_to_dict(track: DomainTrack) -> dict[str, Any]:
    """Convert DomainTrack to a JSON-compatible dict (program_id is the map key)."""
    return {
        "current_level": track.current_level,
        "percent": track.percent,
        "last_activity_at": (
            track.last_activity_at.isoformat() if track.last_activity_at else None
        ),
        "total_sessions_completed": track.total_sessions_completed,
    }


def dict_to_track(program_id: str, data: dict[str, Any]) -> DomainTrack:
    """
    Convert dict to DomainTrack.

    Raises:
        ValidationError: If data is invalid
    """
    validate_identifier(program_id, "program_id")
    return _build(
        DomainTrack,
        f"track {program_id}",
        program_id=program_id,
        current_level=int(data.get("current_level", 1)),
        percent=float(data.get("percent", 0.0)),
        last_activity_at=parse_timestamp(data.get("last_activity_at")),
        total_sessions_completed=int(data.get("total_sessions_completed", 0)),
    )


def split_readiness_to_dict(readiness: SplitReadiness) -> dict[str, Any]:
    return {
        "program_id": readiness.program_id,
        "is_ready": readiness.is_ready,
        "level": readiness.level,
        "threshold": readiness.threshold,
        "suggested_programs": list(readiness.suggested_programs),
    }


def dict_to_split_readiness(data: dict[str, Any]) -> SplitReadiness:
    return SplitReadiness(
        program_id=str(data["program_id"]),
        is_ready=bool(data["is_ready"]),
        level=int(data["level"]),
        threshold=int(data["threshold"]),
        suggested_programs=tuple(data.get("suggested_programs", ())),
    )


def user_progression_to_dict(document: UserProgression) -> dict[str, Any]:
    """
    Convert a user's progression document to a JSON-compatible dict.

    Tracks are keyed by program_id and sorted for stable diffs.
    """
    return {
        "user_id": document.user_id,
        "version": document.version,
        "tracks": {
            pid: track_to_dict(document.tracks[pid]) for pid in sorted(document.tracks)
        },
        "active_programs": list(document.active_programs),
        "ready_for_split": (
            split_readiness_to_dict(document.ready_for_split)
            if document.ready_for_split
            else None
        ),
    }


def dict_to_user_progression(data: dict[str, Any]) -> UserProgression:
    """
    Convert dict to UserProgression.

    Raises:
        ValidationError: If data is invalid
    """
    try:
        user_id = validate_identifier(data["user_id"], "user_id")
        tracks = {
            pid: dict_to_track(pid, raw) for pid, raw in (data.get("tracks") or {}).items()
        }
        ready = data.get("ready_for_split")
        return UserProgression(
            user_id=user_id,
            tracks=tracks,
            active_programs=list(dict.fromkeys(data.get("active_programs") or [])),
            ready_for_split=dict_to_split_readiness(ready) if ready else None,
            version=int(data.get("version", 0)),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationError(f"Invalid progression document: {e}") from e


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


def dict_to_program_definition(data: dict[str, Any]) -> ProgramDefinition:
    """
    Convert a catalog entry to ProgramDefinition.

    Raises:
        ValidationError: If data is invalid
    """
    program_id = validate_identifier(data.get("id"), "program id")
    is_master = bool(data.get("is_master", False))
    sub_programs = tuple(data.get("sub_programs") or ())
    for child in sub_programs:
        validate_identifier(child, f"sub-program of {program_id}")
    if sub_programs and not is_master:
        raise ValidationError(f"{program_id}: only master programs may list sub_programs")
    return _build(
        ProgramDefinition,
        f"program {program_id}",
        program_id=program_id,
        is_master=is_master,
        sub_programs=sub_programs,
        name=str(data.get("name", "")),
    )


def dict_to_progression_rule(data: dict[str, Any]) -> ProgressionRule:
    """
    Convert a catalog entry to ProgressionRule.

    Raises:
        ValidationError: If data is invalid
    """
    program_id = validate_identifier(data.get("program_id"), "program_id")
    try:
        level = int(data["level"])
        links = tuple(
            LinkedProgram(
                target_program_id=validate_identifier(
                    link["target_program_id"], "linked target_program_id"
                ),
                multiplier=float(link["multiplier"]),
            )
            for link in data.get("linked_programs") or []
        )
        base_gain = float(data["base_session_gain"])
        bonus = float(data.get("bonus_percent", 0.0))
        required = int(data["required_sets_for_full_gain"])
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationError(f"Invalid progression rule for {program_id}: {e}") from e

    return _build(
        ProgressionRule,
        f"progression rule {program_id} level {level}",
        program_id=program_id,
        level=level,
        base_session_gain=base_gain,
        bonus_percent=bonus,
        required_sets_for_full_gain=required,
        linked_programs=links,
        description=str(data.get("description", "")),
    )


def progression_rule_to_dict(rule: ProgressionRule) -> dict[str, Any]:
    return {
        "program_id": rule.program_id,
        "level": rule.level,
        "base_session_gain": rule.base_session_gain,
        "bonus_percent": rule.bonus_percent,
        "required_sets_for_full_gain": rule.required_sets_for_full_gain,
        "linked_programs": [
            {"target_program_id": lp.target_program_id, "multiplier": lp.multiplier}
            for lp in rule.linked_programs
        ],
        "description": rule.description,
        "is_default": rule.is_default,
    }


def dict_to_equivalence_rule(data: dict[str, Any]) -> LevelEquivalenceRule:
    """
    Convert a catalog entry to LevelEquivalenceRule.

    Raises:
        ValidationError: If data is invalid
    """
    try:
        source = validate_identifier(data["source_program_id"], "source_program_id")
        target = validate_identifier(data["target_program_id"], "target_program_id")
        kwargs = dict(
            source_program_id=source,
            source_level=int(data["source_level"]),
            target_program_id=target,
            target_level=int(data["target_level"]),
            target_percent=float(data.get("target_percent", 0.0)),
            add_to_active_programs=bool(data.get("add_to_active_programs", True)),
            is_enabled=bool(data.get("is_enabled", True)),
            description=str(data.get("description", "")),
            rule_id=str(data.get("id", "")),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationError(f"Invalid level equivalence rule: {e}") from e
    return _build(LevelEquivalenceRule, "level equivalence rule", **kwargs)


# ---------------------------------------------------------------------------
# Workout input
# ---------------------------------------------------------------------------


def dict_to_exercise_result(data: dict[str, Any]) -> WorkoutExerciseResult:
    """
    Convert one workout exercise entry to WorkoutExerciseResult.

    sets_completed defaults to len(reps_per_set) when omitted.

    Raises:
        ValidationError: If data is invalid
    """
    try:
        reps = tuple(int(r) for r in data.get("reps_per_set") or ())
        sets_completed = int(data.get("sets_completed", len(reps)))
        target_reps = int(data["target_reps"])
        program_levels = {
            validate_identifier(pid, "program_levels key"): int(level)
            for pid, level in (data.get("program_levels") or {}).items()
        }
        exercise_id = str(data["exercise_id"])
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationError(f"Invalid exercise entry: {e}") from e

    validate_non_negative(sets_completed, "sets_completed")
    validate_non_negative(target_reps, "target_reps")
    for r in reps:
        validate_non_negative(r, "reps_per_set")

    return _build(
        WorkoutExerciseResult,
        f"exercise {exercise_id}",
        exercise_id=exercise_id,
        sets_completed=sets_completed,
        reps_per_set=reps,
        target_reps=target_reps,
        program_levels=program_levels,
        category=data.get("category", "main"),
        exercise_name=str(data.get("exercise_name", "")),
    )


def parse_workout(data: Any) -> list[WorkoutExerciseResult]:
    """
    Parse a workout file body: a list of exercises or {"exercises": [...]}.

    Raises:
        ValidationError: If the structure or any entry is invalid
    """
    if isinstance(data, dict):
        data = data.get("exercises")
    if not isinstance(data, list):
        raise ValidationError("Workout must be a list of exercises or {'exercises': [...]}")
    return [dict_to_exercise_result(entry) for entry in data]


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


def program_gain_to_dict(gain: ProgramGain) -> dict[str, Any]:
    return {
        "program_id": gain.program_id,
        "gain": round(gain.gain, 4),
        "multiplier": round(gain.multiplier, 4),
        "source": gain.source,
        "previous_level": gain.previous_level,
        "previous_percent": gain.previous_percent,
        "new_level": gain.new_level,
        "new_percent": gain.new_percent,
        "leveled_up": gain.leveled_up,
        "levels_gained": gain.levels_gained,
    }


def volume_to_dict(volume: VolumeBreakdown) -> dict[str, Any]:
    return {
        "counted_exercises": volume.counted_exercises,
        "sets_performed": volume.sets_performed,
        "required_sets_for_full_gain": volume.required_sets_for_full_gain,
        "volume_ratio": round(volume.volume_ratio, 4),
        "total_reps": volume.total_reps,
        "total_target_reps": volume.total_target_reps,
        "performance_ratio": round(volume.performance_ratio, 4),
        "base_gain": round(volume.base_gain, 4),
        "bonus_gain": round(volume.bonus_gain, 4),
        "total_gain": round(volume.total_gain, 4),
    }


def completion_result_to_dict(result: WorkoutCompletionResult) -> dict[str, Any]:
    """Convert a WorkoutCompletionResult to a JSON-compatible dict."""
    return {
        "primary": program_gain_to_dict(result.primary_gain),
        "linked": [program_gain_to_dict(g) for g in result.linked_gains],
        "volume": volume_to_dict(result.volume),
        "ready_for_split": (
            split_readiness_to_dict(result.ready_for_split)
            if result.ready_for_split
            else None
        ),
        "masters_updated": list(result.masters_updated),
        "equivalences_applied": list(result.equivalences_applied),
        "unlocked_programs": list(result.unlocked_programs),
        "propagation_errors": list(result.propagation_errors),
    }
