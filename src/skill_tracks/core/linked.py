"""
Linked program distribution.

A workout in one program also counts, partially, toward programs that
share its exercises. Two sources of links:

1. Rule-declared: ProgressionRule.linked_programs with explicit multipliers.
2. Inferred: any other program named in a counted exercise's
   program_levels; multiplier = factor * (exercises touching it / counted).

Declared links win over inferred ones for the same program.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from .models import GainSource, ProgramGain, ProgressionRule, WorkoutExerciseResult
from .tracks import TrackUpdate, TrackView, apply_gain


@dataclass(frozen=True)
class ProgramLink:
    """A program that will receive total_gain * multiplier."""

    program_id: str
    multiplier: float
    source: GainSource


def infer_links(
    primary_program_id: str,
    counted: Sequence[WorkoutExerciseResult],
    factor: float,
    exclude: set[str] | frozenset[str] = frozenset(),
) -> list[ProgramLink]:
    """
    Links implied by shared exercises.

    Args:
        primary_program_id: The program the workout was done in
        counted: Counted exercises only
        factor: Inferred link factor (0.5 by default)
        exclude: Program ids already linked explicitly

    Returns:
        Links in order of first appearance in the workout
    """
    if not counted:
        return []

    references: dict[str, int] = {}
    for ex in counted:
        for program_id in ex.program_levels:
            if program_id == primary_program_id or program_id in exclude:
                continue
            references[program_id] = references.get(program_id, 0) + 1

    total = len(counted)
    return [
        ProgramLink(program_id, factor * (count / total), "inferred")
        for program_id, count in references.items()
    ]


def resolve_links(
    primary_program_id: str,
    rule: ProgressionRule,
    counted: Sequence[WorkoutExerciseResult],
    factor: float,
) -> list[ProgramLink]:
    """All links for a workout: declared (rule order) then inferred."""
    declared: list[ProgramLink] = []
    seen: set[str] = set()
    for link in rule.linked_programs:
        target = link.target_program_id
        if target == primary_program_id or target in seen:
            continue
        seen.add(target)
        declared.append(ProgramLink(target, link.multiplier, "rule"))

    return declared + infer_links(primary_program_id, counted, factor, exclude=seen)


def distribute_linked_gains(
    view: TrackView,
    links: Sequence[ProgramLink],
    total_gain: float,
    at: datetime,
) -> tuple[list[ProgramGain], dict[str, TrackUpdate]]:
    """
    Apply total_gain * multiplier to every linked program's track.

    Tracks are not written; the caller persists the returned updates
    together with the primary track.

    Returns:
        (gain summaries, {program_id: TrackUpdate})
    """
    gains: list[ProgramGain] = []
    updates: dict[str, TrackUpdate] = {}
    for link in links:
        update = apply_gain(view.read_or_default(link.program_id), total_gain * link.multiplier, at)
        updates[link.program_id] = update
        gains.append(update.to_program_gain(multiplier=link.multiplier, source=link.source))
    return gains, updates
