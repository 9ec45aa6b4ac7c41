"""
Data models for skill-tracks.

All core dataclasses representing program definitions, progression rules,
per-user tracks, workout input and the result of a workout completion.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Literal

ExerciseCategory = Literal["main", "superset", "warmup", "stretch"]
GainSource = Literal["primary", "rule", "inferred"]
FailureKind = Literal["not_found", "persistence", "conflict"]

# A fresh track starts here when a program receives its first gain.
DEFAULT_LEVEL = 1
DEFAULT_PERCENT = 0.0


@dataclass(frozen=True)
class DomainTrack:
    """
    One program's progress for one user.

    percent is always kept in [0, 100); overflow becomes whole levels.
    """

    program_id: str
    current_level: int = DEFAULT_LEVEL
    percent: float = DEFAULT_PERCENT
    last_activity_at: datetime | None = None
    total_sessions_completed: int = 0

    def __post_init__(self) -> None:
        """Validate track data."""
        if not self.program_id:
            raise ValueError("program_id must be non-empty")
        if self.current_level < 1:
            raise ValueError("current_level must be >= 1")
        if not 0 <= self.percent < 100:
            raise ValueError(f"percent must be in [0, 100), got {self.percent}")
        if self.total_sessions_completed < 0:
            raise ValueError("total_sessions_completed must be non-negative")

    def with_progress(self, level: int, percent: float) -> "DomainTrack":
        """Return a copy with level/percent replaced, other fields untouched."""
        return replace(self, current_level=level, percent=percent)


@dataclass(frozen=True)
class ProgramDefinition:
    """
    Static program definition.

    Master programs derive their level from sub_programs and are never
    trained directly.
    """

    program_id: str
    is_master: bool = False
    sub_programs: tuple[str, ...] = ()
    name: str = ""

    def __post_init__(self) -> None:
        if not self.program_id:
            raise ValueError("program_id must be non-empty")
        if len(set(self.sub_programs)) != len(self.sub_programs):
            raise ValueError(f"{self.program_id}: sub_programs contains duplicates")
        if self.program_id in self.sub_programs:
            raise ValueError(f"{self.program_id}: a program cannot contain itself")

    @property
    def has_children(self) -> bool:
        return self.is_master and bool(self.sub_programs)


@dataclass(frozen=True)
class LinkedProgram:
    """A program that receives total_gain * multiplier from another program's session."""

    target_program_id: str
    multiplier: float

    def __post_init__(self) -> None:
        if self.multiplier < 0:
            raise ValueError("multiplier must be non-negative")


@dataclass(frozen=True)
class ProgressionRule:
    """
    How much one session is worth for a program at a given level.

    is_default marks rules synthesised from the built-in table because
    no authored rule exists.
    """

    program_id: str
    level: int
    base_session_gain: float
    bonus_percent: float
    required_sets_for_full_gain: int
    linked_programs: tuple[LinkedProgram, ...] = ()
    description: str = ""
    is_default: bool = False

    def __post_init__(self) -> None:
        """Validate rule data."""
        if self.level < 1:
            raise ValueError("level must be >= 1")
        if self.base_session_gain < 0:
            raise ValueError("base_session_gain must be non-negative")
        if self.bonus_percent < 0:
            raise ValueError("bonus_percent must be non-negative")
        if self.required_sets_for_full_gain <= 0:
            raise ValueError("required_sets_for_full_gain must be positive")


@dataclass(frozen=True)
class LevelEquivalenceRule:
    """
    Cross-program unlock: once source reaches source_level, target is
    raised to target_level (never lowered).
    """

    source_program_id: str
    source_level: int
    target_program_id: str
    target_level: int
    target_percent: float = 0.0
    add_to_active_programs: bool = True
    is_enabled: bool = True
    description: str = ""
    rule_id: str = ""

    def __post_init__(self) -> None:
        if self.source_level < 1 or self.target_level < 1:
            raise ValueError("source_level and target_level must be >= 1")
        if not 0 <= self.target_percent < 100:
            raise ValueError("target_percent must be in [0, 100)")
        if self.source_program_id == self.target_program_id:
            raise ValueError(f"{self.source_program_id}: equivalence rule targets itself")
        if not self.rule_id:
            object.__setattr__(
                self,
                "rule_id",
                f"{self.source_program_id}_L{self.source_level}"
                f"_to_{self.target_program_id}_L{self.target_level}",
            )


@dataclass(frozen=True)
class WorkoutExerciseResult:
    """
    One exercise as performed in a workout.

    program_levels declares which programs the exercise counts toward
    (program_id -> level the exercise belongs to).
    """

    exercise_id: str
    sets_completed: int
    reps_per_set: tuple[int, ...]
    target_reps: int
    program_levels: dict[str, int] = field(default_factory=dict)
    category: ExerciseCategory = "main"
    exercise_name: str = ""

    def __post_init__(self) -> None:
        """Validate exercise data."""
        if self.sets_completed < 0:
            raise ValueError("sets_completed must be non-negative")
        if self.target_reps < 0:
            raise ValueError("target_reps must be non-negative")
        if any(r < 0 for r in self.reps_per_set):
            raise ValueError("reps_per_set must be non-negative")
        if self.category not in ("main", "superset", "warmup", "stretch"):
            raise ValueError(f"Invalid category: {self.category}")

    @property
    def actual_reps(self) -> int:
        return sum(self.reps_per_set)

    @property
    def expected_reps(self) -> int:
        """Target reps over all completed sets."""
        return self.target_reps * self.sets_completed


@dataclass(frozen=True)
class VolumeBreakdown:
    """Intermediate values of the session gain calculation."""

    counted_exercises: int
    sets_performed: int
    required_sets_for_full_gain: int
    volume_ratio: float
    total_reps: int
    total_target_reps: int
    performance_ratio: float
    base_gain: float
    bonus_gain: float

    @property
    def total_gain(self) -> float:
        return self.base_gain + self.bonus_gain


@dataclass(frozen=True)
class ProgramGain:
    """Gain applied to one program's track during a workout completion."""

    program_id: str
    gain: float
    multiplier: float
    previous_level: int
    previous_percent: float
    new_level: int
    new_percent: float
    source: GainSource = "primary"

    @property
    def leveled_up(self) -> bool:
        return self.new_level > self.previous_level

    @property
    def levels_gained(self) -> int:
        return self.new_level - self.previous_level


@dataclass(frozen=True)
class SplitReadiness:
    """Milestone: a generalized program should be split into specialised ones."""

    program_id: str
    is_ready: bool
    level: int
    threshold: int
    suggested_programs: tuple[str, ...] = ()


@dataclass
class UserProgression:
    """
    Per-user persisted document.

    version is bumped on every successful commit and used for
    compare-and-swap.
    """

    user_id: str
    tracks: dict[str, DomainTrack] = field(default_factory=dict)
    active_programs: list[str] = field(default_factory=list)
    ready_for_split: SplitReadiness | None = None
    version: int = 0


@dataclass
class WorkoutCompletionResult:
    """Everything a workout completion changed, for the caller to display."""

    primary_gain: ProgramGain
    volume: VolumeBreakdown
    linked_gains: list[ProgramGain] = field(default_factory=list)
    ready_for_split: SplitReadiness | None = None
    masters_updated: list[str] = field(default_factory=list)
    equivalences_applied: list[str] = field(default_factory=list)
    unlocked_programs: list[str] = field(default_factory=list)
    propagation_errors: list[str] = field(default_factory=list)

    @property
    def leveled_up_programs(self) -> list[ProgramGain]:
        return [g for g in [self.primary_gain, *self.linked_gains] if g.leveled_up]


@dataclass(frozen=True)
class CompletionSuccess:
    result: WorkoutCompletionResult
    ok: Literal[True] = True


@dataclass(frozen=True)
class CompletionFailure:
    reason: str
    kind: FailureKind
    ok: Literal[False] = False


CompletionOutcome = CompletionSuccess | CompletionFailure
