"""
Master program aggregation.

A master program's displayed progress is derived from its children:

    display_level   = floor(mean(child levels))
    display_percent = round(mean(child percents), 2)

Children may themselves be masters, to any depth. Every traversal carries a
visited path (cycle detection) and is capped at max_depth, because the
hierarchy is external data and may be malformed.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field

from .errors import HierarchyCycleError, HierarchyDepthError, NotAMasterProgramError
from .hierarchy import ProgramHierarchy
from .models import DomainTrack
from .tracks import TrackView

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChildProgress:
    program_id: str
    level: int
    percent: float
    is_master: bool = False


@dataclass(frozen=True)
class MasterProgress:
    program_id: str
    display_level: int
    display_percent: float
    children: list[ChildProgress] = field(default_factory=list)


def aggregate(children: list[ChildProgress]) -> tuple[int, float]:
    """Floor of the mean level, mean percent rounded to 2 places."""
    if not children:
        raise ValueError("cannot aggregate an empty child list")
    n = len(children)
    level = math.floor(sum(c.level for c in children) / n)
    percent = round(sum(c.percent for c in children) / n, 2)
    # mean of values < 100 can round up to 100.0
    return level, min(percent, 99.99)


class MasterAggregator:
    """
    Recomputes master tracks inside one TrackView.

    With persist=False nothing is written, which lets read-only callers
    (e.g. the CLI) display a master's breakdown.
    """

    def __init__(self, hierarchy: ProgramHierarchy, view: TrackView, persist: bool = True) -> None:
        self.hierarchy = hierarchy
        self.view = view
        self.persist = persist

    def compute_master_progress(
        self, program_id: str, visited: tuple[str, ...] = ()
    ) -> MasterProgress:
        """
        Recompute (and persist) one master's level/percent from its children.

        Args:
            program_id: Master program to recompute
            visited: Masters already on the current path (outermost first)

        Raises:
            HierarchyCycleError: program_id is already on the path
            HierarchyDepthError: path exceeds the configured depth
            NotAMasterProgramError: program is a leaf or has no children
            ProgramNotFoundError: program is unknown
        """
        if program_id in visited:
            raise HierarchyCycleError(program_id, visited)
        if len(visited) >= self.hierarchy.max_depth:
            raise HierarchyDepthError(program_id, self.hierarchy.max_depth)

        definition = self.hierarchy.definition(program_id)
        if not definition.has_children:
            raise NotAMasterProgramError(program_id)

        path = (*visited, program_id)
        children: list[ChildProgress] = []
        for child_id in definition.sub_programs:
            child = self.hierarchy.catalog.get_program_definition(child_id)
            if child is not None and child.has_children:
                sub = self.compute_master_progress(child_id, path)
                children.append(
                    ChildProgress(child_id, sub.display_level, sub.display_percent, is_master=True)
                )
            else:
                track = self.view.read_or_default(child_id)
                children.append(ChildProgress(child_id, track.current_level, track.percent))

        level, percent = aggregate(children)

        if self.persist:
            current = self.view.read_track(program_id)
            if current is None or (current.current_level, current.percent) != (level, percent):
                base = current or DomainTrack(program_id=program_id)
                self.view.write_tracks({program_id: base.with_progress(level, percent)})
                logger.debug("Master %s -> level %d (%.2f%%)", program_id, level, percent)

        return MasterProgress(program_id, level, percent, children)

    def recalculate_ancestor_masters(
        self, changed_program_id: str, path: tuple[str, ...] = ()
    ) -> list[str]:
        """
        Recompute every master above changed_program_id, bottom-up.

        Args:
            changed_program_id: Program whose track just changed
            path: Programs already climbed through on this walk

        Returns:
            Master ids recomputed, in the order they were recomputed
        """
        if changed_program_id in path:
            raise HierarchyCycleError(changed_program_id, path)
        if len(path) >= self.hierarchy.max_depth:
            raise HierarchyDepthError(changed_program_id, self.hierarchy.max_depth)

        updated: list[str] = []
        climbed = (*path, changed_program_id)
        for parent in self.hierarchy.parents_of(changed_program_id):
            if not parent.sub_programs:
                logger.warning("Master %s has no sub-programs; skipping", parent.program_id)
                continue
            self.compute_master_progress(parent.program_id)
            updated.append(parent.program_id)
            updated.extend(self.recalculate_ancestor_masters(parent.program_id, climbed))
        return updated
