"""
YAML → typed engine settings loader.

Loads engine constants from engine.yaml (bundled with the package) and
optionally merges user overrides from ~/.skill-tracks/engine.yaml.

Usage:
    from skill_tracks.core.engine.config_loader import load_engine_settings
    settings = load_engine_settings()
    settings.max_hierarchy_depth

Missing keys fall back to the Python defaults in config.py. If the user
override file exists but cannot be parsed, a warning is emitted and the file
is ignored.
"""

from __future__ import annotations

import os
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .. import config

# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EngineSettings:
    """Tunable knobs of the progression engine."""

    inferred_link_factor: float = config.INFERRED_LINK_FACTOR
    max_hierarchy_depth: int = config.MAX_HIERARCHY_DEPTH
    counted_categories: tuple[str, ...] = config.COUNTED_CATEGORIES
    split_ready_programs: tuple[str, ...] = config.SPLIT_READY_PROGRAMS
    split_level_threshold: int = config.SPLIT_LEVEL_THRESHOLD
    split_suggestions: dict[str, tuple[str, ...]] = field(
        default_factory=lambda: dict(config.SPLIT_SUGGESTIONS)
    )
    rule_cache_ttl_seconds: float = config.RULE_CACHE_TTL_SECONDS

    def __post_init__(self) -> None:
        if self.inferred_link_factor < 0:
            raise ValueError("inferred_link_factor must be non-negative")
        if self.max_hierarchy_depth < 1:
            raise ValueError("max_hierarchy_depth must be >= 1")
        if self.split_level_threshold < 1:
            raise ValueError("split_level_threshold must be >= 1")
        if self.rule_cache_ttl_seconds < 0:
            raise ValueError("rule_cache_ttl_seconds must be non-negative")


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file; raises yaml.YAMLError / OSError on failure."""
    with open(path, "r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh)
    return data if isinstance(data, dict) else {}


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge *override* into *base* (non-destructive to base)."""
    result = dict(base)
    for k, v in override.items():
        if isinstance(v, dict) and isinstance(result.get(k), dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _as_tuple(key: str, value: Any) -> tuple:
    if not isinstance(value, (list, tuple)):
        raise ValueError(f"{key} must be a list, got {type(value).__name__}")
    return tuple(value)


def settings_from_dict(data: dict[str, Any]) -> EngineSettings:
    """Build EngineSettings from the ``engine`` section of a config dict."""
    section = data.get("engine", {}) or {}
    defaults = EngineSettings()

    suggestions = section.get("split_suggestions")
    return EngineSettings(
        inferred_link_factor=float(
            section.get("inferred_link_factor", defaults.inferred_link_factor)
        ),
        max_hierarchy_depth=int(
            section.get("max_hierarchy_depth", defaults.max_hierarchy_depth)
        ),
        counted_categories=_as_tuple(
            "counted_categories", section.get("counted_categories", defaults.counted_categories)
        ),
        split_ready_programs=_as_tuple(
            "split_ready_programs", section.get("split_ready_programs", defaults.split_ready_programs)
        ),
        split_level_threshold=int(
            section.get("split_level_threshold", defaults.split_level_threshold)
        ),
        split_suggestions=(
            {k: _as_tuple(f"split_suggestions.{k}", v) for k, v in suggestions.items()}
            if suggestions
            else defaults.split_suggestions
        ),
        rule_cache_ttl_seconds=float(
            section.get("rule_cache_ttl_seconds", defaults.rule_cache_ttl_seconds)
        ),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def get_bundled_yaml_path() -> Path | None:
    """Return the path to the bundled engine.yaml, or None if not found."""
    # config_loader.py lives at src/skill_tracks/core/engine/config_loader.py
    # three levels up → src/skill_tracks/
    candidate = Path(__file__).parent.parent.parent / "engine.yaml"
    return candidate if candidate.is_file() else None


def get_user_yaml_path() -> Path | None:
    """Return ~/.skill-tracks/engine.yaml if it exists, else None."""
    home = Path(os.environ.get("HOME", "~")).expanduser()
    p = home / ".skill-tracks" / "engine.yaml"
    return p if p.exists() else None


def load_model_config() -> dict[str, Any]:
    """
    Load and merge engine configuration from YAML sources.

    Load order (later overrides earlier):
    1. Bundled src/skill_tracks/engine.yaml
    2. User override at ~/.skill-tracks/engine.yaml

    Returns:
        Merged dict of config sections.  Empty dict if no YAML available.
    """
    merged: dict[str, Any] = {}

    bundled = get_bundled_yaml_path()
    if bundled is not None:
        merged = _deep_merge(merged, _load_yaml_file(bundled))

    user = get_user_yaml_path()
    if user is not None:
        try:
            user_cfg = _load_yaml_file(user)
        except (OSError, yaml.YAMLError) as exc:
            warnings.warn(
                f"skill-tracks: ignoring unreadable {user} ({exc})",
                stacklevel=2,
            )
            user_cfg = {}
        if user_cfg:
            merged = _deep_merge(merged, user_cfg)

    return merged


def load_engine_settings() -> EngineSettings:
    """Load EngineSettings from bundled + user YAML."""
    return settings_from_dict(load_model_config())
