"""Exception hierarchy for the progression engine."""

from __future__ import annotations


class ProgressionError(Exception):
    """Base exception for all skill_tracks engine errors."""


class NotFoundError(ProgressionError):
    """A user or program the caller referenced does not exist."""


class UserNotFoundError(NotFoundError):
    def __init__(self, user_id: str) -> None:
        super().__init__(f"User not found: {user_id}")
        self.user_id = user_id


class ProgramNotFoundError(NotFoundError):
    def __init__(self, program_id: str) -> None:
        super().__init__(f"Program not found: {program_id}")
        self.program_id = program_id


class PersistenceError(ProgressionError):
    """Writing the user's progression document failed."""


class ConcurrentUpdateError(PersistenceError):
    """The document changed between read and commit (version mismatch)."""

    def __init__(self, user_id: str, expected: int, found: int) -> None:
        super().__init__(
            f"Concurrent update for user {user_id}: expected version {expected}, found {found}"
        )
        self.user_id = user_id
        self.expected = expected
        self.found = found


class AggregationError(ProgressionError):
    """Ancestor recomputation or equivalence propagation failed."""


class HierarchyCycleError(AggregationError):
    def __init__(self, program_id: str, path: list[str] | tuple[str, ...]) -> None:
        chain = " -> ".join([*path, program_id])
        super().__init__(f"Program hierarchy cycle detected: {chain}")
        self.program_id = program_id
        self.path = tuple(path)


class HierarchyDepthError(AggregationError):
    def __init__(self, program_id: str, max_depth: int) -> None:
        super().__init__(
            f"Program hierarchy deeper than {max_depth} levels at {program_id}"
        )
        self.program_id = program_id
        self.max_depth = max_depth


class NotAMasterProgramError(AggregationError):
    """compute_master_progress was called on a leaf or an empty master."""

    def __init__(self, program_id: str) -> None:
        super().__init__(f"Not a master program with sub-programs: {program_id}")
        self.program_id = program_id
