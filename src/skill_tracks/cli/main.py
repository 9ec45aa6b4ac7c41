"""
CLI entry point using Typer.

Provides commands for skill progression tracking:
- init: Create a user's progression document
- log-workout: Apply a completed workout to the user's tracks
- show-tracks: Display every program track
- master: Show a master program's derived level
- rules: Show progression rules for a program
- check-catalog: Validate the program catalog
"""

from .app import app
from .commands import catalog, tracks, workouts  # noqa: F401  (registers commands)

if __name__ == "__main__":
    app()
