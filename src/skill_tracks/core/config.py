"""
Configuration constants for the progression engine.

All adjustable parameters are centralized here. Values can be overridden
per installation through engine.yaml (see core/engine/config_loader.py).
"""

from typing import Final

# =============================================================================
# DEFAULT PROGRESSION RULES
# =============================================================================

# level -> (base_session_gain, bonus_percent). Used when no rule is authored
# for a (program, level) pair. Levels above the table use the last row.
DEFAULT_PROGRESSION_BY_LEVEL: Final[dict[int, tuple[float, float]]] = {
    1: (12.0, 5.0),
    2: (11.0, 5.0),
    3: (10.0, 5.0),
    4: (9.0, 4.0),
    5: (8.0, 4.0),
    6: (7.0, 4.0),
    7: (6.0, 3.0),
    8: (5.0, 3.0),
    9: (5.0, 2.0),
    10: (4.0, 2.0),
}
DEFAULT_TABLE_MAX_LEVEL: Final[int] = 10

# =============================================================================
# SESSION GAIN
# =============================================================================

# Only these exercise categories contribute volume and reps.
COUNTED_CATEGORIES: Final[tuple[str, ...]] = ("main", "superset")

# =============================================================================
# LINKED PROGRAMS
# =============================================================================

# Inferred link multiplier = factor * share of counted exercises touching the program
INFERRED_LINK_FACTOR: Final[float] = 0.5

# =============================================================================
# HIERARCHY
# =============================================================================

MAX_HIERARCHY_DEPTH: Final[int] = 16

# =============================================================================
# SPLIT READINESS
# =============================================================================

SPLIT_READY_PROGRAMS: Final[tuple[str, ...]] = ("full_body",)
SPLIT_LEVEL_THRESHOLD: Final[int] = 10
SPLIT_SUGGESTIONS: Final[dict[str, tuple[str, ...]]] = {
    "full_body": ("push", "pull", "legs"),
}

# =============================================================================
# RULE CACHE
# =============================================================================

RULE_CACHE_TTL_SECONDS: Final[float] = 300.0

# Decimal places kept on stored percents to absorb float noise.
PERCENT_PRECISION: Final[int] = 4


def default_required_sets(level: int) -> int:
    """
    Sets needed in one session to earn the full base gain.

    Grows with level: 3 sets at levels 1-3, 4 at 4-6, 5 from level 7.
    """
    if level <= 3:
        return 3
    if level <= 6:
        return 4
    return 5


def default_progression(level: int) -> tuple[float, float]:
    """Return (base_session_gain, bonus_percent) from the built-in table."""
    return DEFAULT_PROGRESSION_BY_LEVEL[min(max(level, 1), DEFAULT_TABLE_MAX_LEVEL)]
