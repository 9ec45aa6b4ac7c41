"""
Track updater: applies a percent gain to a DomainTrack with level carryover.

Gains of 200+ produce several level-ups at once; the overflow is always
carried into the new percent.
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any

from .config import PERCENT_PRECISION
from .models import DomainTrack, GainSource, ProgramGain, SplitReadiness


class TrackView(ABC):
    """
    Read/write access to one user's tracks inside a single transaction.

    Implementations stage writes; nothing is durable until the owning
    transaction commits. Every engine stage reads through the same view so
    it sees earlier stages' staged writes.
    """

    @abstractmethod
    def read_track(self, program_id: str) -> DomainTrack | None:
        """Return the (possibly staged) track, or None if it never existed."""
        ...

    @abstractmethod
    def write_tracks(self, tracks: Mapping[str, DomainTrack]) -> None:
        """Stage a batch of track writes keyed by program_id."""
        ...

    @property
    @abstractmethod
    def active_programs(self) -> list[str]:
        ...

    @abstractmethod
    def add_active_program(self, program_id: str) -> bool:
        """Register a program as active; False if it already was."""
        ...

    @property
    @abstractmethod
    def ready_for_split(self) -> SplitReadiness | None:
        """The split milestone already recorded for this user, if any."""
        ...

    @abstractmethod
    def record_split_readiness(self, readiness: SplitReadiness) -> None:
        ...

    @abstractmethod
    def savepoint(self) -> Any:
        """Capture staged state so a failed stage can be undone."""
        ...

    @abstractmethod
    def rollback_to(self, savepoint: Any) -> None:
        ...

    def read_or_default(self, program_id: str) -> DomainTrack:
        """Read a track, falling back to a fresh level-1 track."""
        return self.read_track(program_id) or DomainTrack(program_id=program_id)


@dataclass(frozen=True)
class TrackUpdate:
    """Result of applying one gain to one track."""

    previous: DomainTrack
    track: DomainTrack
    gain: float

    @property
    def leveled_up(self) -> bool:
        return self.track.current_level > self.previous.current_level

    @property
    def levels_gained(self) -> int:
        return self.track.current_level - self.previous.current_level

    @property
    def new_level(self) -> int | None:
        """The level reached, or None when no level-up happened."""
        return self.track.current_level if self.leveled_up else None

    def to_program_gain(self, multiplier: float = 1.0, source: GainSource = "primary") -> ProgramGain:
        return ProgramGain(
            program_id=self.track.program_id,
            gain=self.gain,
            multiplier=multiplier,
            previous_level=self.previous.current_level,
            previous_percent=self.previous.percent,
            new_level=self.track.current_level,
            new_percent=self.track.percent,
            source=source,
        )


def carry_over(level: int, percent: float) -> tuple[int, float]:
    """
    Normalize percent into [0, 100), converting every full 100 into a level.

    Args:
        level: Current level (>= 1)
        percent: Accumulated percent, may be >= 100

    Returns:
        (level, percent) with percent in [0, 100)
    """
    percent = round(percent, PERCENT_PRECISION)
    while percent >= 100:
        level += 1
        percent = round(percent - 100, PERCENT_PRECISION)
    return level, percent


def apply_gain(track: DomainTrack, gain: float, at: datetime) -> TrackUpdate:
    """
    Apply a session gain to a track.

    Counts the session and stamps last_activity_at even when gain is zero.

    Raises:
        ValueError: If gain is negative
    """
    if gain < 0:
        raise ValueError(f"gain must be non-negative, got {gain}")

    level, percent = carry_over(track.current_level, track.percent + gain)
    updated = replace(
        track,
        current_level=level,
        percent=percent,
        total_sessions_completed=track.total_sessions_completed + 1,
        last_activity_at=at,
    )
    return TrackUpdate(previous=track, track=updated, gain=gain)
