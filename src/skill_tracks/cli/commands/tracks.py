"""Track commands: init, show-tracks, master."""

import json
from typing import Annotated, Optional

import typer

from ...core.aggregator import MasterAggregator
from ...core.errors import ProgressionError
from ...core.hierarchy import ProgramHierarchy
from ...io.serializers import ValidationError, user_progression_to_dict
from ...io.track_store import UserTransaction
from .. import views
from ..app import (
    CatalogDirOption,
    JsonOption,
    StoreDirOption,
    UserOption,
    app,
    get_catalog,
    get_settings,
    get_store,
)


@app.command()
def init(
    user_id: UserOption,
    store_dir: StoreDirOption = None,
    catalog_dir: CatalogDirOption = None,
    programs: Annotated[
        Optional[list[str]],
        typer.Option("--program", "-p", help="Initial active program (repeatable)"),
    ] = None,
) -> None:
    """
    Create an empty progression document for a user.

    Tracks are created lazily: a program gets its track the first time a
    workout (or a linked gain, or an unlock) touches it.

      skill-tracks init --user alice --program full_body
    """
    store = get_store(store_dir)
    catalog = get_catalog(catalog_dir, get_settings())
    active = programs or []

    unknown = [p for p in active if catalog.get_program_definition(p) is None]
    if unknown:
        views.print_error(f"Unknown program(s): {', '.join(unknown)}")
        raise typer.Exit(1)

    try:
        store.init_user(user_id, active_programs=active)
    except (ValidationError, ValueError, ProgressionError) as e:
        views.print_error(str(e))
        raise typer.Exit(1)

    views.print_success(f"Initialized {user_id} in {store.base_dir}")
    if active:
        views.console.print(f"Active programs: {', '.join(active)}")


@app.command("show-tracks")
def show_tracks(
    user_id: UserOption,
    store_dir: StoreDirOption = None,
    json_out: JsonOption = False,
) -> None:
    """
    Show every program track of a user.
    """
    store = get_store(store_dir)
    try:
        document = store.load(user_id)
    except ValidationError as e:
        views.print_error(str(e))
        raise typer.Exit(1)
    if document is None:
        views.print_error(f"User not found: {user_id}. Run 'init' first.")
        raise typer.Exit(1)

    if json_out:
        print(json.dumps(user_progression_to_dict(document), indent=2))
        return

    views.print_tracks(document)


@app.command()
def master(
    program_id: Annotated[str, typer.Argument(help="Master program ID")],
    user_id: UserOption,
    store_dir: StoreDirOption = None,
    catalog_dir: CatalogDirOption = None,
    json_out: JsonOption = False,
) -> None:
    """
    Show a master program's level derived from its sub-programs.

    The breakdown is computed from the current tracks and is not saved.
    """
    settings = get_settings()
    store = get_store(store_dir)
    hierarchy = ProgramHierarchy(get_catalog(catalog_dir, settings), settings.max_hierarchy_depth)

    try:
        document = store.load(user_id)
    except ValidationError as e:
        views.print_error(str(e))
        raise typer.Exit(1)
    if document is None:
        views.print_error(f"User not found: {user_id}. Run 'init' first.")
        raise typer.Exit(1)

    aggregator = MasterAggregator(hierarchy, UserTransaction(document), persist=False)
    try:
        progress = aggregator.compute_master_progress(program_id)
    except ProgressionError as e:
        views.print_error(str(e))
        raise typer.Exit(1)

    if json_out:
        print(json.dumps({
            "program_id": progress.program_id,
            "level": progress.display_level,
            "percent": progress.display_percent,
            "children": [
                {
                    "program_id": c.program_id,
                    "level": c.level,
                    "percent": c.percent,
                    "is_master": c.is_master,
                }
                for c in progress.children
            ],
        }, indent=2))
        return

    views.print_master(progress)
