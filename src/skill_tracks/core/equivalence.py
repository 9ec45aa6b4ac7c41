"""
Level equivalence engine.

When a program levels up, enabled LevelEquivalenceRules keyed on it may
raise (never lower) another program's level, optionally registering that
program as active. A raised target can in turn be the source of further
rules; the closure is bounded by a visited-source set.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, field

from .aggregator import MasterAggregator
from .models import DomainTrack, LevelEquivalenceRule
from .tracks import TrackView

logger = logging.getLogger(__name__)


@dataclass
class EquivalenceOutcome:
    applied_rule_ids: list[str] = field(default_factory=list)
    updated_programs: list[str] = field(default_factory=list)
    activated_programs: list[str] = field(default_factory=list)
    masters_updated: list[str] = field(default_factory=list)


def select_rules(
    rules: Iterable[LevelEquivalenceRule], source_level: int
) -> dict[str, LevelEquivalenceRule]:
    """
    Pick one rule per target among those that fire at source_level.

    The highest target_level wins; ties keep the first rule seen.
    """
    chosen: dict[str, LevelEquivalenceRule] = {}
    for rule in rules:
        if not rule.is_enabled or rule.source_level > source_level:
            continue
        best = chosen.get(rule.target_program_id)
        if best is None or rule.target_level > best.target_level:
            chosen[rule.target_program_id] = rule
    return chosen


def raise_track(current: DomainTrack | None, rule: LevelEquivalenceRule) -> DomainTrack | None:
    """
    Apply one rule to one target track.

    A missing track counts as locked (below level 1), so a rule always
    unlocks it.

    Returns:
        The raised track, or None when the target is already at or above
        the rule's level
    """
    if current is not None and current.current_level >= rule.target_level:
        return None
    base = current or DomainTrack(program_id=rule.target_program_id)
    return base.with_progress(rule.target_level, rule.target_percent)


class LevelEquivalenceEngine:
    def __init__(self, aggregator: MasterAggregator) -> None:
        self.aggregator = aggregator
        self.catalog = aggregator.hierarchy.catalog
        self.view: TrackView = aggregator.view

    def apply(self, triggers: Iterable[tuple[str, int]]) -> EquivalenceOutcome:
        """
        Fire equivalence rules for every (program_id, new_level) trigger.

        Args:
            triggers: Programs that just leveled up, with the level reached

        Returns:
            What was applied, raised, activated and re-aggregated
        """
        outcome = EquivalenceOutcome()
        queue: deque[tuple[str, int]] = deque(triggers)
        visited_sources: set[str] = set()

        while queue:
            source_id, level = queue.popleft()
            if source_id in visited_sources:
                continue
            visited_sources.add(source_id)

            rules = self.catalog.get_level_equivalence_rules(source_id, level)
            batch: dict[str, DomainTrack] = {}
            for target_id, rule in select_rules(rules, level).items():
                raised = raise_track(self.view.read_track(target_id), rule)
                if raised is None:
                    continue
                batch[target_id] = raised
                outcome.applied_rule_ids.append(rule.rule_id)
                logger.info(
                    "Equivalence %s: %s -> level %d",
                    rule.rule_id, target_id, rule.target_level,
                )
                if rule.add_to_active_programs and self.view.add_active_program(target_id):
                    outcome.activated_programs.append(target_id)

            if not batch:
                continue

            self.view.write_tracks(batch)
            for target_id, track in batch.items():
                outcome.updated_programs.append(target_id)
                outcome.masters_updated.extend(
                    self.aggregator.recalculate_ancestor_masters(target_id)
                )
                queue.append((target_id, track.current_level))

        return outcome
