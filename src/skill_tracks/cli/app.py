"""Shared Typer app object, shared option types, and store/catalog utilities."""

import logging
from pathlib import Path
from typing import Annotated, Optional

import typer

from ..core.engine.config_loader import EngineSettings, load_engine_settings
from ..io.catalog_store import YamlProgramCatalog, get_default_catalog
from ..io.rule_cache import RuleCache
from ..io.track_store import JsonTrackStore, get_default_store_dir

# Shared options used across commands
UserOption = Annotated[
    str,
    typer.Option("--user", "-u", help="User ID (one document per user)"),
]
StoreDirOption = Annotated[
    Optional[Path],
    typer.Option("--store-dir", "-s", help="Directory holding user documents"),
]
CatalogDirOption = Annotated[
    Optional[Path],
    typer.Option("--catalog-dir", "-c", help="Catalog directory (default: bundled catalog)"),
]
JsonOption = Annotated[
    bool,
    typer.Option("--json", "-j", help="Output as JSON for machine processing"),
]

app = typer.Typer(
    name="skill-tracks",
    help="Per-program skill progression: levels, linked gains, master programs and unlocks.",
    no_args_is_help=True,
)


@app.callback()
def main_callback(
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log engine decisions to stderr"),
    ] = False,
) -> None:
    """
    Track skill levels across training programs.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def get_settings() -> EngineSettings:
    """Engine settings from bundled + user engine.yaml."""
    return load_engine_settings()


def get_store(store_dir: Path | None) -> JsonTrackStore:
    """Get the track store from a directory or the default location."""
    return JsonTrackStore(store_dir if store_dir is not None else get_default_store_dir())


def get_catalog(catalog_dir: Path | None, settings: EngineSettings) -> YamlProgramCatalog:
    """
    Build the program catalog.

    An explicit --catalog-dir is used alone; otherwise the bundled catalog
    is merged with ~/.skill-tracks/catalog/.
    """
    if catalog_dir is not None:
        return YamlProgramCatalog(catalog_dir, RuleCache(settings.rule_cache_ttl_seconds))
    return get_default_catalog(settings.rule_cache_ttl_seconds)
