"""
Program hierarchy resolver.

ProgramCatalog is the read-only contract for externally authored program
data (definitions, progression rules, equivalence rules). ProgramHierarchy
wraps a catalog with the lookups the engine needs: rule resolution with
deterministic defaults, parent (reverse) lookup and structural validation.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from .config import default_progression, default_required_sets
from .errors import HierarchyCycleError, HierarchyDepthError, ProgramNotFoundError
from .models import LevelEquivalenceRule, ProgramDefinition, ProgressionRule

logger = logging.getLogger(__name__)


class ProgramCatalog(ABC):
    """Source of static program data. Implementations may hit a remote store."""

    @abstractmethod
    def get_program_definition(self, program_id: str) -> ProgramDefinition | None:
        ...

    @abstractmethod
    def get_all_master_programs(self) -> list[ProgramDefinition]:
        ...

    @abstractmethod
    def get_progression_rule(self, program_id: str, level: int) -> ProgressionRule | None:
        """Return the authored rule, or None when none exists for this level."""
        ...

    @abstractmethod
    def get_level_equivalence_rules(
        self, source_program_id: str, min_level: int
    ) -> list[LevelEquivalenceRule]:
        """
        Enabled rules for source_program_id whose source_level <= min_level.

        min_level is the level the source just reached.
        """
        ...


def default_rule(program_id: str, level: int) -> ProgressionRule:
    """Build the deterministic fallback rule for (program, level)."""
    base_gain, bonus = default_progression(level)
    return ProgressionRule(
        program_id=program_id,
        level=level,
        base_session_gain=base_gain,
        bonus_percent=bonus,
        required_sets_for_full_gain=default_required_sets(level),
        description=f"Level {level} default",
        is_default=True,
    )


class ProgramHierarchy:
    """Engine-facing view over a ProgramCatalog."""

    def __init__(self, catalog: ProgramCatalog, max_depth: int) -> None:
        self.catalog = catalog
        self.max_depth = max_depth

    def definition(self, program_id: str) -> ProgramDefinition:
        """
        Return the definition of a program.

        Raises:
            ProgramNotFoundError: If the catalog has no such program
        """
        definition = self.catalog.get_program_definition(program_id)
        if definition is None:
            raise ProgramNotFoundError(program_id)
        return definition

    def resolve_rule(self, program_id: str, level: int) -> ProgressionRule:
        """Authored rule for (program, level), else the built-in default."""
        rule = self.catalog.get_progression_rule(program_id, level)
        if rule is None:
            logger.debug("No rule for %s level %d; using defaults", program_id, level)
            return default_rule(program_id, level)
        return rule

    def parents_of(self, program_id: str) -> list[ProgramDefinition]:
        """Master programs that list program_id as a direct child."""
        return [
            m for m in self.catalog.get_all_master_programs()
            if m.is_master and program_id in m.sub_programs
        ]

    def validate(self) -> list[str]:
        """
        Check the master graph for cycles, excessive depth and missing children.

        Returns:
            Human-readable problems; empty when the hierarchy is sound
        """
        problems: list[str] = []
        masters = self.catalog.get_all_master_programs()

        for master in masters:
            if not master.sub_programs:
                problems.append(f"{master.program_id}: master program has no sub-programs")
            for child in master.sub_programs:
                if self.catalog.get_program_definition(child) is None:
                    problems.append(f"{master.program_id}: unknown sub-program {child}")

        for master in masters:
            try:
                self._walk(master.program_id, ())
            except (HierarchyCycleError, HierarchyDepthError) as exc:
                problems.append(str(exc))

        return list(dict.fromkeys(problems))

    def _walk(self, program_id: str, path: tuple[str, ...]) -> None:
        if program_id in path:
            raise HierarchyCycleError(program_id, path)
        if len(path) >= self.max_depth:
            raise HierarchyDepthError(program_id, self.max_depth)
        definition = self.catalog.get_program_definition(program_id)
        if definition is None or not definition.is_master:
            return
        for child in definition.sub_programs:
            self._walk(child, (*path, program_id))
