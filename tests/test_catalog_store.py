"""
Tests for the YAML program catalog, the rule cache and engine settings.
"""

import textwrap

import pytest

from skill_tracks.cli.commands.catalog import catalog_problems
from skill_tracks.core.engine.config_loader import (
    EngineSettings,
    load_engine_settings,
    settings_from_dict,
)
from skill_tracks.core.hierarchy import ProgramHierarchy
from skill_tracks.io.catalog_store import (
    EQUIVALENCE_FILE,
    PROGRAMS_FILE,
    RULES_FILE,
    YamlProgramCatalog,
    get_bundled_catalog_dir,
)
from skill_tracks.io.rule_cache import RuleCache
from skill_tracks.io.serializers import (
    ValidationError,
    dict_to_equivalence_rule,
    dict_to_program_definition,
)


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _write(directory, name: str, body: str) -> None:
    directory.mkdir(parents=True, exist_ok=True)
    (directory / name).write_text(textwrap.dedent(body), encoding="utf-8")


def _bundled(ttl: float = 300.0) -> YamlProgramCatalog:
    return YamlProgramCatalog(get_bundled_catalog_dir(), RuleCache(ttl))


class TestBundledCatalog:
    def test_programs(self):
        catalog = _bundled()
        upper = catalog.get_program_definition("upper_body")
        assert upper.is_master
        assert upper.sub_programs == ("push", "pull")
        assert not catalog.get_program_definition("full_body").is_master
        assert catalog.get_program_definition("yoga") is None

    def test_rules_with_links(self):
        rule = _bundled().get_progression_rule("full_body", 1)
        assert rule.base_session_gain == 15
        assert rule.required_sets_for_full_gain == 6
        assert [l.target_program_id for l in rule.linked_programs] == ["push", "pull", "legs"]
        assert not rule.is_default

    def test_missing_rule_is_none(self):
        assert _bundled().get_progression_rule("planche", 7) is None

    def test_equivalences_filtered_by_level(self):
        catalog = _bundled()
        ids = lambda rules: sorted(r.rule_id for r in rules)
        assert ids(catalog.get_level_equivalence_rules("push", 8)) == ["push_L8_to_handstand_L2"]
        assert ids(catalog.get_level_equivalence_rules("push", 15)) == [
            "push_L15_to_planche_L4", "push_L8_to_handstand_L2",
        ]
        assert catalog.get_level_equivalence_rules("legs", 50) == []

    def test_bundled_catalog_is_sound(self):
        catalog = _bundled()
        assert catalog_problems(catalog, ProgramHierarchy(catalog, max_depth=16)) == []


class TestCatalogOverrides:
    def test_user_entries_merge_over_bundled(self, tmp_path):
        user = tmp_path / "user"
        _write(user, PROGRAMS_FILE, """
            programs:
              - id: rings
                name: Rings
              - id: upper_body
                is_master: true
                sub_programs: [push, pull, rings]
        """)
        _write(user, RULES_FILE, """
            rules:
              - program_id: push
                level: 1
                base_session_gain: 20
                required_sets_for_full_gain: 3
        """)
        catalog = YamlProgramCatalog(get_bundled_catalog_dir(), RuleCache(0), user_dir=user)

        assert catalog.get_program_definition("rings") is not None
        assert catalog.get_program_definition("upper_body").sub_programs == ("push", "pull", "rings")
        assert catalog.get_progression_rule("push", 1).base_session_gain == 20
        assert catalog.get_progression_rule("pull", 1).base_session_gain == 12

    def test_invalid_entries_skipped_with_warning(self, tmp_path):
        _write(tmp_path, PROGRAMS_FILE, """
            programs:
              - id: push
              - id: "bad id"
              - just-a-string
              - id: upper
                sub_programs: [push]
        """)
        catalog = YamlProgramCatalog(tmp_path, RuleCache(0))

        with pytest.warns(UserWarning, match="skipping"):
            programs = catalog.all_programs()
        assert [p.program_id for p in programs] == ["push"]

    def test_program_names_kept(self, tmp_path):
        _write(tmp_path, PROGRAMS_FILE, """
            programs:
              - id: push
                name: Push
        """)
        catalog = YamlProgramCatalog(tmp_path, RuleCache(0))
        assert catalog.get_program_definition("push").name == "Push"

    def test_malformed_file_skipped_with_warning(self, tmp_path):
        _write(tmp_path, PROGRAMS_FILE, "programs: [ {id: push\n")
        _write(tmp_path, RULES_FILE, """
            rules:
              - program_id: push
                level: 1
                base_session_gain: 10
                required_sets_for_full_gain: 3
        """)
        catalog = YamlProgramCatalog(tmp_path, RuleCache(0))

        with pytest.warns(UserWarning, match="skipping programs.yaml"):
            assert catalog.all_programs() == []
            assert catalog.get_progression_rule("push", 1).base_session_gain == 10

    def test_missing_files_are_empty(self, tmp_path):
        catalog = YamlProgramCatalog(tmp_path, RuleCache(0))
        assert catalog.all_programs() == []
        assert catalog.all_equivalences() == []

    def test_unknown_references_reported(self, tmp_path):
        _write(tmp_path, PROGRAMS_FILE, """
            programs:
              - id: push
        """)
        _write(tmp_path, RULES_FILE, """
            rules:
              - program_id: push
                level: 1
                base_session_gain: 10
                required_sets_for_full_gain: 3
                linked_programs:
                  - {target_program_id: core, multiplier: 0.2}
        """)
        _write(tmp_path, EQUIVALENCE_FILE, """
            rules:
              - source_program_id: push
                source_level: 5
                target_program_id: planche
                target_level: 2
        """)
        catalog = YamlProgramCatalog(tmp_path, RuleCache(0))
        problems = catalog_problems(catalog, ProgramHierarchy(catalog, max_depth=16))
        assert problems == [
            "push L1: linked program core does not exist",
            "push_L5_to_planche_L2: unknown program planche",
        ]


class TestCatalogCaching:
    def test_cached_until_ttl_expires(self, tmp_path):
        _write(tmp_path, PROGRAMS_FILE, "programs:\n  - id: push\n")
        clock = FakeClock()
        catalog = YamlProgramCatalog(tmp_path, RuleCache(60, clock=clock))

        assert catalog.get_program_definition("push") is not None
        _write(tmp_path, PROGRAMS_FILE, "programs:\n  - id: pull\n")

        clock.now = 59
        assert catalog.get_program_definition("push") is not None

        clock.now = 61
        assert catalog.get_program_definition("push") is None
        assert catalog.get_program_definition("pull") is not None

    def test_invalidate_forces_reload(self, tmp_path):
        _write(tmp_path, PROGRAMS_FILE, "programs:\n  - id: push\n")
        cache = RuleCache(300, clock=FakeClock())
        catalog = YamlProgramCatalog(tmp_path, cache)
        catalog.get_program_definition("push")

        _write(tmp_path, PROGRAMS_FILE, "programs:\n  - id: pull\n")
        cache.invalidate()
        assert catalog.get_program_definition("pull") is not None


class TestRuleCache:
    def test_hits_and_misses(self):
        clock = FakeClock()
        cache = RuleCache(10, clock=clock)
        calls = []
        load = lambda: calls.append(1) or len(calls)

        assert cache.get_or_load("k", load) == 1
        assert cache.get_or_load("k", load) == 1
        clock.now = 10
        assert cache.get_or_load("k", load) == 2
        assert (cache.hits, cache.misses) == (1, 2)

    def test_zero_ttl_disables_caching(self):
        cache = RuleCache(0)
        assert cache.get_or_load("k", lambda: 1) == 1
        assert len(cache) == 0

    def test_invalidate_one_key(self):
        cache = RuleCache(10, clock=FakeClock())
        cache.get_or_load("a", lambda: 1)
        cache.get_or_load("b", lambda: 2)
        cache.invalidate("a")
        assert len(cache) == 1

    def test_negative_ttl_rejected(self):
        with pytest.raises(ValueError):
            RuleCache(-1)


class TestProgramParsing:
    def test_name_and_defaults(self):
        program = dict_to_program_definition({"id": "push", "name": "Push"})
        assert program.name == "Push"
        assert not program.is_master
        assert program.sub_programs == ()

    def test_sub_programs_need_master(self):
        with pytest.raises(ValidationError):
            dict_to_program_definition({"id": "upper", "sub_programs": ["push"]})


class TestEquivalenceRuleParsing:
    def test_defaults_and_derived_id(self):
        rule = dict_to_equivalence_rule(
            {"source_program_id": "pull", "source_level": 10, "target_program_id": "front_lever", "target_level": 3}
        )
        assert rule.rule_id == "pull_L10_to_front_lever_L3"
        assert rule.add_to_active_programs
        assert rule.is_enabled

    def test_self_target_rejected(self):
        with pytest.raises(ValidationError):
            dict_to_equivalence_rule(
                {"source_program_id": "pull", "source_level": 1, "target_program_id": "pull", "target_level": 3}
            )


class TestEngineSettings:
    def test_defaults(self):
        settings = settings_from_dict({})
        assert settings == EngineSettings()
        assert settings.max_hierarchy_depth == 16
        assert settings.counted_categories == ("main", "superset")

    def test_section_overrides(self):
        settings = settings_from_dict({
            "engine": {
                "max_hierarchy_depth": 4,
                "split_suggestions": {"upper": ["push", "pull"]},
            }
        })
        assert settings.max_hierarchy_depth == 4
        assert settings.split_suggestions == {"upper": ("push", "pull")}
        assert settings.inferred_link_factor == 0.5

    def test_invalid_values_rejected(self):
        with pytest.raises(ValueError):
            settings_from_dict({"engine": {"max_hierarchy_depth": 0}})

    @pytest.mark.parametrize("key", ["counted_categories", "split_ready_programs"])
    def test_scalar_list_rejected(self, key):
        with pytest.raises(ValueError, match=key):
            settings_from_dict({"engine": {key: "main"}})

    def test_scalar_split_suggestion_rejected(self):
        with pytest.raises(ValueError):
            settings_from_dict({"engine": {"split_suggestions": {"full_body": "push"}}})

    def test_user_file_merged(self, tmp_path, monkeypatch):
        monkeypatch.setenv("HOME", str(tmp_path))
        _write(tmp_path / ".skill-tracks", "engine.yaml", """
            engine:
              split_level_threshold: 12
        """)
        settings = load_engine_settings()
        assert settings.split_level_threshold == 12
        assert settings.split_ready_programs == ("full_body",)

    def test_unreadable_user_file_ignored(self, tmp_path, monkeypatch):
        monkeypatch.setenv("HOME", str(tmp_path))
        _write(tmp_path / ".skill-tracks", "engine.yaml", "engine: [unclosed\n")
        with pytest.warns(UserWarning, match="ignoring"):
            settings = load_engine_settings()
        assert settings == EngineSettings()
