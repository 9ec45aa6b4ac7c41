"""
Workout completion orchestration.

Sequence for one workout, inside a single user transaction:

    resolve rule -> compute gain -> update primary -> distribute linked
    -> stage tracks -> recalculate ancestors -> equivalences (on level-up)
    -> split readiness -> commit

Propagation (ancestors, equivalences) is best-effort: a failure there is
logged, its staged writes are rolled back to a savepoint, and the primary
and linked gains still commit. Any failure before or at commit returns a
CompletionFailure and writes nothing.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from datetime import datetime
from typing import TYPE_CHECKING, TypeVar

from .aggregator import MasterAggregator
from .engine.config_loader import EngineSettings
from .equivalence import EquivalenceOutcome, LevelEquivalenceEngine
from .errors import ConcurrentUpdateError, NotFoundError, PersistenceError
from .gain import compute_session_gain, counted_exercises
from .hierarchy import ProgramCatalog, ProgramHierarchy
from .linked import distribute_linked_gains, resolve_links
from .models import (
    CompletionFailure,
    CompletionOutcome,
    CompletionSuccess,
    SplitReadiness,
    WorkoutCompletionResult,
    WorkoutExerciseResult,
)
from .split import detect_split_readiness
from .tracks import TrackUpdate, TrackView, apply_gain

if TYPE_CHECKING:
    from ..io.track_store import TrackStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


def process_workout_completion(
    store: TrackStore,
    catalog: ProgramCatalog,
    user_id: str,
    active_program_id: str,
    exercises: Sequence[WorkoutExerciseResult],
    completed_at: datetime,
    settings: EngineSettings | None = None,
) -> CompletionOutcome:
    """
    Apply one completed workout to a user's program tracks.

    Args:
        store: Track store holding the user's document
        catalog: Program definitions and rules
        user_id: User who trained
        active_program_id: Program the workout was done in
        exercises: Exercise results (warm-ups/stretches are ignored)
        completed_at: Workout completion time, stamped on updated tracks
        settings: Engine settings (defaults from config.py when None)

    Returns:
        CompletionSuccess with the result, or CompletionFailure with a reason
    """
    settings = settings or EngineSettings()
    hierarchy = ProgramHierarchy(catalog, settings.max_hierarchy_depth)

    try:
        hierarchy.definition(active_program_id)
        with store.transaction(user_id) as txn:
            result = _complete_workout(
                txn, hierarchy, settings, active_program_id, exercises, completed_at
            )
    except NotFoundError as exc:
        logger.warning("Workout completion aborted: %s", exc)
        return CompletionFailure(str(exc), "not_found")
    except ConcurrentUpdateError as exc:
        logger.warning("Workout completion lost a race: %s", exc)
        return CompletionFailure(str(exc), "conflict")
    except PersistenceError as exc:
        logger.error("Workout completion not persisted: %s", exc)
        return CompletionFailure(str(exc), "persistence")

    gain = result.primary_gain
    logger.info(
        "%s/%s: +%.2f%% -> level %d (%.2f%%)%s",
        user_id, active_program_id, gain.gain, gain.new_level, gain.new_percent,
        " LEVEL UP" if gain.leveled_up else "",
    )
    return CompletionSuccess(result)


def _complete_workout(
    txn: TrackView,
    hierarchy: ProgramHierarchy,
    settings: EngineSettings,
    program_id: str,
    exercises: Sequence[WorkoutExerciseResult],
    completed_at: datetime,
) -> WorkoutCompletionResult:
    primary_track = txn.read_or_default(program_id)
    rule = hierarchy.resolve_rule(program_id, primary_track.current_level)

    counted = counted_exercises(exercises, settings.counted_categories)
    volume = compute_session_gain(rule, counted, settings.counted_categories)
    primary = apply_gain(primary_track, volume.total_gain, completed_at)

    links = resolve_links(program_id, rule, counted, settings.inferred_link_factor)
    linked_gains, linked_updates = distribute_linked_gains(
        txn, links, volume.total_gain, completed_at
    )

    txn.write_tracks(
        {program_id: primary.track, **{pid: u.track for pid, u in linked_updates.items()}}
    )

    result = WorkoutCompletionResult(
        primary_gain=primary.to_program_gain(),
        volume=volume,
        linked_gains=linked_gains,
    )

    aggregator = MasterAggregator(hierarchy, txn)
    changed = [program_id, *linked_updates]

    masters = _best_effort(
        txn, result, "ancestor recalculation",
        lambda: [m for pid in changed for m in aggregator.recalculate_ancestor_masters(pid)],
    )
    if masters:
        result.masters_updated.extend(dict.fromkeys(masters))

    triggers = _level_up_triggers(primary, linked_updates.values())
    if triggers:
        outcome = _best_effort(
            txn, result, "level equivalence",
            lambda: LevelEquivalenceEngine(aggregator).apply(triggers),
        )
        if outcome is not None:
            _merge_equivalences(result, outcome)

    final_level = txn.read_or_default(program_id).current_level
    result.ready_for_split = _announce_split(txn, settings, program_id, final_level)
    return result


def _best_effort(
    txn: TrackView, result: WorkoutCompletionResult, stage: str, run: Callable[[], T]
) -> T | None:
    """
    Run a propagation stage; on failure undo its staged writes and record it.

    Propagation failures never fail the workout: they are logged for
    operators and listed in result.propagation_errors.
    """
    savepoint = txn.savepoint()
    try:
        return run()
    except Exception as exc:
        txn.rollback_to(savepoint)
        logger.exception("Best-effort %s failed; primary gain kept", stage)
        result.propagation_errors.append(f"{stage}: {exc}")
        return None


def _level_up_triggers(
    primary: TrackUpdate, linked: Iterable[TrackUpdate]
) -> list[tuple[str, int]]:
    updates = [primary, *linked]
    return [(u.track.program_id, u.track.current_level) for u in updates if u.leveled_up]


def _merge_equivalences(result: WorkoutCompletionResult, outcome: EquivalenceOutcome) -> None:
    result.equivalences_applied.extend(outcome.applied_rule_ids)
    result.unlocked_programs.extend(outcome.activated_programs)
    for master in outcome.masters_updated:
        if master not in result.masters_updated:
            result.masters_updated.append(master)


def _announce_split(
    txn: TrackView, settings: EngineSettings, program_id: str, level: int
) -> SplitReadiness | None:
    """Return the split milestone only the first time it is reached."""
    readiness = detect_split_readiness(
        program_id,
        level,
        allowed_programs=settings.split_ready_programs,
        threshold=settings.split_level_threshold,
        suggestions=settings.split_suggestions,
    )
    if readiness is None or not readiness.is_ready:
        return None
    recorded = txn.ready_for_split
    if recorded is not None and recorded.is_ready and recorded.program_id == program_id:
        return None
    txn.record_split_readiness(readiness)
    logger.info(
        "%s reached level %d: ready for split into %s",
        program_id, level, ", ".join(readiness.suggested_programs),
    )
    return readiness
