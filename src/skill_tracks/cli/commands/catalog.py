"""Catalog commands: rules, check-catalog."""

import json
from typing import Annotated, Optional

import typer

from ...core.errors import ProgramNotFoundError
from ...core.hierarchy import ProgramHierarchy, default_rule
from ...io.catalog_store import YamlProgramCatalog
from ...io.serializers import progression_rule_to_dict
from .. import views
from ..app import CatalogDirOption, JsonOption, app, get_catalog, get_settings


def catalog_problems(catalog: YamlProgramCatalog, hierarchy: ProgramHierarchy) -> list[str]:
    """
    Structural problems of a catalog.

    Covers the master hierarchy (cycles, depth, missing children) and
    references from rules to programs that do not exist.
    """
    problems = hierarchy.validate()
    known = {p.program_id for p in catalog.all_programs()}

    for program_id in sorted(known):
        for rule in catalog.all_rules_for(program_id):
            for link in rule.linked_programs:
                if link.target_program_id not in known:
                    problems.append(
                        f"{program_id} L{rule.level}: linked program "
                        f"{link.target_program_id} does not exist"
                    )

    for eq in catalog.all_equivalences():
        for ref in (eq.source_program_id, eq.target_program_id):
            if ref not in known:
                problems.append(f"{eq.rule_id}: unknown program {ref}")

    return problems


@app.command()
def rules(
    program_id: Annotated[str, typer.Argument(help="Program ID")],
    level: Annotated[
        Optional[int],
        typer.Option("--level", "-l", help="Resolve the rule for one level"),
    ] = None,
    catalog_dir: CatalogDirOption = None,
    json_out: JsonOption = False,
) -> None:
    """
    Show the progression rules of a program.

    With --level, shows the rule the engine would use at that level,
    including the built-in default when none is authored.
    """
    settings = get_settings()
    catalog = get_catalog(catalog_dir, settings)
    hierarchy = ProgramHierarchy(catalog, settings.max_hierarchy_depth)

    try:
        definition = hierarchy.definition(program_id)
    except ProgramNotFoundError as e:
        views.print_error(str(e))
        raise typer.Exit(1)

    if level is not None:
        if level < 1:
            views.print_error("Level must be >= 1")
            raise typer.Exit(1)
        rule = hierarchy.resolve_rule(program_id, level)
        if json_out:
            print(json.dumps(progression_rule_to_dict(rule), indent=2))
            return
        views.print_rule(rule)
        return

    if definition.is_master:
        views.print_info(
            f"{program_id} is a master program of {', '.join(definition.sub_programs)}; "
            "its level is derived, not trained"
        )
        return

    authored = catalog.all_rules_for(program_id)
    if json_out:
        print(json.dumps([progression_rule_to_dict(r) for r in authored], indent=2))
        return
    if not authored:
        views.print_info(f"No authored rules for {program_id}; every level uses the defaults")
        views.print_rule(default_rule(program_id, 1))
        return
    for rule in authored:
        views.print_rule(rule)
    views.console.print(
        f"[dim]Levels above {authored[-1].level} and gaps use the built-in defaults.[/dim]"
    )


@app.command("check-catalog")
def check_catalog(
    catalog_dir: CatalogDirOption = None,
) -> None:
    """
    Validate the program catalog.

    Reports hierarchy cycles, over-deep nesting, masters without
    sub-programs and rules pointing at unknown programs.
    """
    settings = get_settings()
    catalog = get_catalog(catalog_dir, settings)
    hierarchy = ProgramHierarchy(catalog, settings.max_hierarchy_depth)

    problems = catalog_problems(catalog, hierarchy)
    if problems:
        for problem in problems:
            views.print_error(problem)
        raise typer.Exit(1)

    programs = catalog.all_programs()
    masters = [p for p in programs if p.is_master]
    views.print_success(
        f"Catalog OK: {len(programs)} programs ({len(masters)} masters), "
        f"{len(catalog.all_equivalences())} equivalence rules"
    )
