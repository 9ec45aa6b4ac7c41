"""
Split readiness detection.

A generalized program (e.g. full_body) that reaches the threshold level is
ready to be split into specialised programs. The detector is stateless; the
orchestrator decides whether the milestone is new for the user.
"""

from collections.abc import Mapping, Sequence

from .config import SPLIT_LEVEL_THRESHOLD, SPLIT_READY_PROGRAMS, SPLIT_SUGGESTIONS
from .models import SplitReadiness


def detect_split_readiness(
    program_id: str,
    level: int,
    allowed_programs: Sequence[str] = SPLIT_READY_PROGRAMS,
    threshold: int = SPLIT_LEVEL_THRESHOLD,
    suggestions: Mapping[str, Sequence[str]] = SPLIT_SUGGESTIONS,
) -> SplitReadiness | None:
    """
    Evaluate the split milestone for one program.

    Returns:
        None for programs outside the allow-list, otherwise a SplitReadiness
        whose is_ready reflects level >= threshold
    """
    if program_id not in allowed_programs:
        return None
    is_ready = level >= threshold
    return SplitReadiness(
        program_id=program_id,
        is_ready=is_ready,
        level=level,
        threshold=threshold,
        suggested_programs=tuple(suggestions.get(program_id, ())) if is_ready else (),
    )
