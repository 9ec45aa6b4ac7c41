"""
Session gain calculation.

Turns one workout's counted exercises plus the resolved progression rule
into a bounded percent gain for the primary program:

    volume_ratio      = min(1, sets_performed / required_sets)
    base_gain         = volume_ratio * base_session_gain
    performance_ratio = total_reps / total_target_reps   (1.0 when no target)
    bonus_gain        = min(excess% * bonus% / 100, bonus%) * volume_ratio

Pure functions only; no I/O.
"""

from collections.abc import Iterable

from .config import COUNTED_CATEGORIES
from .models import ProgressionRule, VolumeBreakdown, WorkoutExerciseResult


def counted_exercises(
    exercises: Iterable[WorkoutExerciseResult],
    categories: tuple[str, ...] = COUNTED_CATEGORIES,
) -> list[WorkoutExerciseResult]:
    """Drop warm-up and stretch entries; keep input order."""
    return [ex for ex in exercises if ex.category in categories]


def volume_ratio(sets_performed: int, required_sets: int) -> float:
    """
    Fraction of the required training volume performed, capped at 1.

    Args:
        sets_performed: Sets completed across all counted exercises
        required_sets: Sets needed for the full base gain (> 0)

    Returns:
        Ratio in [0, 1]
    """
    if required_sets <= 0:
        raise ValueError("required_sets must be positive")
    return min(1.0, sets_performed / required_sets)


def performance_ratio(total_reps: int, total_target_reps: int) -> float:
    """Actual reps over target reps; 1.0 (neutral) when nothing was targeted."""
    if total_target_reps <= 0:
        return 1.0
    return total_reps / total_target_reps


def bonus_gain(perf_ratio: float, bonus_percent: float, vol_ratio: float) -> float:
    """
    Bonus for beating the rep target.

    Each percent of over-performance is worth bonus_percent/100 points,
    capped at bonus_percent and scaled by volume so a single heroic set
    cannot earn the whole bonus.
    """
    if perf_ratio <= 1.0:
        return 0.0
    excess_percent = (perf_ratio - 1.0) * 100.0
    return min(excess_percent * bonus_percent / 100.0, bonus_percent) * vol_ratio


def compute_session_gain(
    rule: ProgressionRule,
    exercises: Iterable[WorkoutExerciseResult],
    categories: tuple[str, ...] = COUNTED_CATEGORIES,
) -> VolumeBreakdown:
    """
    Compute the primary program's gain for one workout.

    Args:
        rule: Progression rule resolved for the program's current level
        exercises: All exercises of the workout (non-counted ones are ignored)
        categories: Exercise categories that count toward volume

    Returns:
        VolumeBreakdown; its total_gain is always >= 0
    """
    counted = counted_exercises(exercises, categories)

    sets_performed = sum(ex.sets_completed for ex in counted)
    total_reps = sum(ex.actual_reps for ex in counted)
    total_target = sum(ex.expected_reps for ex in counted)

    v_ratio = volume_ratio(sets_performed, rule.required_sets_for_full_gain)
    p_ratio = performance_ratio(total_reps, total_target)

    return VolumeBreakdown(
        counted_exercises=len(counted),
        sets_performed=sets_performed,
        required_sets_for_full_gain=rule.required_sets_for_full_gain,
        volume_ratio=v_ratio,
        total_reps=total_reps,
        total_target_reps=total_target,
        performance_ratio=p_ratio,
        base_gain=v_ratio * rule.base_session_gain,
        bonus_gain=bonus_gain(p_ratio, rule.bonus_percent, v_ratio),
    )
