"""
YAML → program catalog loader.

A catalog directory holds three files:

    programs.yaml           programs: [{id, name, is_master, sub_programs}]
    progression_rules.yaml  rules: [{program_id, level, base_session_gain, ...}]
    level_equivalence.yaml  rules: [{source_program_id, source_level, ...}]

The bundled catalog lives in ``src/skill_tracks/catalog/``. User overrides
in ``~/.skill-tracks/catalog/`` are merged entry-by-entry: a program with
the same id, a rule with the same (program_id, level) or an equivalence
rule with the same id replaces the bundled one; anything else is added.
Invalid entries, and files that cannot be read or parsed, are skipped
with a warning.
"""

from __future__ import annotations

import logging
import os
import warnings
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any

import yaml

from ..core.hierarchy import ProgramCatalog
from ..core.models import LevelEquivalenceRule, ProgramDefinition, ProgressionRule
from .rule_cache import RuleCache
from .serializers import (
    ValidationError,
    dict_to_equivalence_rule,
    dict_to_program_definition,
    dict_to_progression_rule,
)

logger = logging.getLogger(__name__)

PROGRAMS_FILE = "programs.yaml"
RULES_FILE = "progression_rules.yaml"
EQUIVALENCE_FILE = "level_equivalence.yaml"


class StaticProgramCatalog(ProgramCatalog):
    """Catalog over in-memory definitions."""

    def __init__(
        self,
        programs: Iterable[ProgramDefinition] = (),
        rules: Iterable[ProgressionRule] = (),
        equivalences: Iterable[LevelEquivalenceRule] = (),
    ) -> None:
        self.programs: dict[str, ProgramDefinition] = {p.program_id: p for p in programs}
        self.rules: dict[tuple[str, int], ProgressionRule] = {
            (r.program_id, r.level): r for r in rules
        }
        self.equivalences: list[LevelEquivalenceRule] = list(equivalences)

    def get_program_definition(self, program_id: str) -> ProgramDefinition | None:
        return self.programs.get(program_id)

    def get_all_master_programs(self) -> list[ProgramDefinition]:
        return [p for p in self.programs.values() if p.is_master]

    def get_progression_rule(self, program_id: str, level: int) -> ProgressionRule | None:
        return self.rules.get((program_id, level))

    def get_level_equivalence_rules(
        self, source_program_id: str, min_level: int
    ) -> list[LevelEquivalenceRule]:
        return [
            r for r in self.equivalences
            if r.source_program_id == source_program_id
            and r.is_enabled
            and r.source_level <= min_level
        ]

    def all_rules_for(self, program_id: str) -> list[ProgressionRule]:
        return sorted(
            (r for (pid, _), r in self.rules.items() if pid == program_id),
            key=lambda r: r.level,
        )


class YamlProgramCatalog(ProgramCatalog):
    """
    Catalog backed by YAML files, re-read when the cache entry expires.

    Args:
        catalog_dir: Directory with the three catalog files
        cache: Cache owned by the caller; its TTL is the refresh policy
        user_dir: Optional override directory merged over catalog_dir
    """

    _CACHE_KEY = "catalog"

    def __init__(
        self,
        catalog_dir: str | Path,
        cache: RuleCache,
        user_dir: str | Path | None = None,
    ) -> None:
        self.catalog_dir = Path(catalog_dir)
        self.user_dir = Path(user_dir) if user_dir is not None else None
        self.cache = cache

    def _catalog(self) -> StaticProgramCatalog:
        return self.cache.get_or_load(self._CACHE_KEY, self.load)

    def load(self) -> StaticProgramCatalog:
        """Parse the catalog files (bundled then user) into a StaticProgramCatalog."""
        programs: dict[str, ProgramDefinition] = {}
        rules: dict[tuple[str, int], ProgressionRule] = {}
        equivalences: dict[str, LevelEquivalenceRule] = {}

        for directory in (self.catalog_dir, self.user_dir):
            if directory is None or not directory.is_dir():
                continue
            for p in _parse_entries(directory / PROGRAMS_FILE, "programs", dict_to_program_definition):
                programs[p.program_id] = p
            for r in _parse_entries(directory / RULES_FILE, "rules", dict_to_progression_rule):
                rules[(r.program_id, r.level)] = r
            for e in _parse_entries(directory / EQUIVALENCE_FILE, "rules", dict_to_equivalence_rule):
                equivalences[e.rule_id] = e

        logger.debug(
            "Loaded catalog: %d programs, %d rules, %d equivalences",
            len(programs), len(rules), len(equivalences),
        )
        return StaticProgramCatalog(programs.values(), rules.values(), equivalences.values())

    def get_program_definition(self, program_id: str) -> ProgramDefinition | None:
        return self._catalog().get_program_definition(program_id)

    def get_all_master_programs(self) -> list[ProgramDefinition]:
        return self._catalog().get_all_master_programs()

    def get_progression_rule(self, program_id: str, level: int) -> ProgressionRule | None:
        return self._catalog().get_progression_rule(program_id, level)

    def get_level_equivalence_rules(
        self, source_program_id: str, min_level: int
    ) -> list[LevelEquivalenceRule]:
        return self._catalog().get_level_equivalence_rules(source_program_id, min_level)

    def all_programs(self) -> list[ProgramDefinition]:
        return sorted(self._catalog().programs.values(), key=lambda p: p.program_id)

    def all_rules_for(self, program_id: str) -> list[ProgressionRule]:
        return self._catalog().all_rules_for(program_id)

    def all_equivalences(self) -> list[LevelEquivalenceRule]:
        """Every equivalence rule, enabled or not."""
        return list(self._catalog().equivalences)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file; a missing file is an empty catalog section."""
    if not path.exists():
        return {}
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except (OSError, yaml.YAMLError) as e:
        raise ValidationError(f"Cannot read {path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError(f"{path}: expected a mapping at top level")
    return data


def _parse_entries(path: Path, section: str, parse: Callable[[dict], Any]) -> list[Any]:
    """Parse every entry of one section, skipping invalid ones with a warning."""
    try:
        entries = _load_yaml_file(path).get(section) or []
    except ValidationError as exc:
        warnings.warn(f"skill-tracks: skipping {path.name}: {exc}", stacklevel=2)
        return []
    if not isinstance(entries, list):
        warnings.warn(f"skill-tracks: skipping {path.name}: {section} must be a list", stacklevel=2)
        return []
    parsed = []
    for i, raw in enumerate(entries):
        try:
            if not isinstance(raw, dict):
                raise ValidationError(f"entry must be a mapping, got {type(raw).__name__}")
            parsed.append(parse(raw))
        except ValidationError as exc:
            warnings.warn(
                f"skill-tracks: skipping {path.name} {section}[{i}]: {exc}",
                stacklevel=2,
            )
    return parsed


def get_bundled_catalog_dir() -> Path:
    """Return path to the bundled catalog/ data directory."""
    # catalog_store.py lives at src/skill_tracks/io/catalog_store.py
    # two levels up → src/skill_tracks/
    return Path(__file__).parent.parent / "catalog"


def get_user_catalog_dir() -> Path | None:
    """Return ~/.skill-tracks/catalog/ if it exists, else None."""
    home = Path(os.environ.get("HOME", "~")).expanduser()
    p = home / ".skill-tracks" / "catalog"
    return p if p.is_dir() else None


def get_default_catalog(ttl_seconds: float) -> YamlProgramCatalog:
    """Bundled catalog merged with the user's overrides."""
    return YamlProgramCatalog(
        get_bundled_catalog_dir(), RuleCache(ttl_seconds), user_dir=get_user_catalog_dir()
    )
