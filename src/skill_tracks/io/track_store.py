"""
JSON-based storage for per-user progression tracks.

Each user has one document holding every program track keyed by
program_id, the active program list and the split milestone. Writes go
through a transaction: stage in memory, then commit with compare-and-swap
on the document version.
"""

import fcntl
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from copy import deepcopy
from pathlib import Path
from typing import Any

from ..core.errors import ConcurrentUpdateError, PersistenceError, UserNotFoundError
from ..core.models import DomainTrack, SplitReadiness, UserProgression
from ..core.tracks import TrackView
from .serializers import (
    ValidationError,
    dict_to_user_progression,
    user_progression_to_dict,
    validate_identifier,
)

logger = logging.getLogger(__name__)


class UserTransaction(TrackView):
    """
    Staged view of one user's document.

    Reads see earlier staged writes. Nothing reaches the store until the
    owning TrackStore.transaction() block exits cleanly.
    """

    def __init__(self, document: UserProgression):
        self.user_id = document.user_id
        self.base_version = document.version
        self._tracks: dict[str, DomainTrack] = dict(document.tracks)
        self._active: list[str] = list(document.active_programs)
        self._ready: SplitReadiness | None = document.ready_for_split
        self._changed = False

    def read_track(self, program_id: str) -> DomainTrack | None:
        return self._tracks.get(program_id)

    def write_tracks(self, tracks: Mapping[str, DomainTrack]) -> None:
        for program_id, track in tracks.items():
            if track.program_id != program_id:
                raise ValueError(
                    f"Track keyed {program_id!r} belongs to {track.program_id!r}"
                )
            self._tracks[program_id] = track
        if tracks:
            self._changed = True

    @property
    def active_programs(self) -> list[str]:
        return list(self._active)

    def add_active_program(self, program_id: str) -> bool:
        if program_id in self._active:
            return False
        self._active.append(program_id)
        self._changed = True
        return True

    @property
    def ready_for_split(self) -> SplitReadiness | None:
        return self._ready

    def record_split_readiness(self, readiness: SplitReadiness) -> None:
        self._ready = readiness
        self._changed = True

    def savepoint(self) -> tuple:
        return (dict(self._tracks), list(self._active), self._ready, self._changed)

    def rollback_to(self, savepoint: tuple) -> None:
        tracks, active, ready, changed = savepoint
        self._tracks = dict(tracks)
        self._active = list(active)
        self._ready = ready
        self._changed = changed

    @property
    def has_changes(self) -> bool:
        return self._changed

    def to_document(self) -> UserProgression:
        """Staged state as a document at the base version."""
        return UserProgression(
            user_id=self.user_id,
            tracks=dict(self._tracks),
            active_programs=list(self._active),
            ready_for_split=self._ready,
            version=self.base_version,
        )


class TrackStore(ABC):
    """Authoritative store of user progression documents."""

    @abstractmethod
    def load(self, user_id: str) -> UserProgression | None:
        """Return the user's document, or None if the user is unknown."""
        ...

    @abstractmethod
    def save(self, document: UserProgression, expected_version: int) -> int:
        """
        Persist a document if the stored version still equals expected_version.

        Returns:
            The new version

        Raises:
            ConcurrentUpdateError: The stored version moved on
            PersistenceError: The write itself failed
        """
        ...

    def exists(self, user_id: str) -> bool:
        return self.load(user_id) is not None

    def init_user(self, user_id: str, active_programs: Iterable[str] = ()) -> UserProgression:
        """
        Create an empty document for a new user.

        Raises:
            ValueError: If the user already exists
        """
        validate_identifier(user_id, "user_id")
        if self.exists(user_id):
            raise ValueError(f"User already exists: {user_id}")
        document = UserProgression(
            user_id=user_id, active_programs=list(dict.fromkeys(active_programs))
        )
        document.version = self.save(document, expected_version=0)
        return document

    @contextmanager
    def transaction(self, user_id: str) -> Iterator[UserTransaction]:
        """
        Read-modify-write one user's document atomically.

        Commits on clean exit when anything was staged; an exception inside
        the block discards all staged writes.

        Raises:
            UserNotFoundError: No document exists for user_id
            ConcurrentUpdateError: Another writer committed first
            PersistenceError: The stored document is unreadable or the commit failed
        """
        try:
            validate_identifier(user_id, "user_id")
        except ValidationError as e:
            raise UserNotFoundError(user_id) from e
        try:
            document = self.load(user_id)
        except ValidationError as e:
            raise PersistenceError(f"Corrupt progression document for {user_id}: {e}") from e
        except OSError as e:
            raise PersistenceError(f"Cannot read progression document for {user_id}: {e}") from e
        if document is None:
            raise UserNotFoundError(user_id)
        txn = UserTransaction(document)
        yield txn
        if txn.has_changes:
            new_version = self.save(txn.to_document(), expected_version=txn.base_version)
            logger.debug("Committed %s at version %d", user_id, new_version)


class JsonTrackStore(TrackStore):
    """
    One JSON file per user under a base directory.

    Writes go to a temporary file that atomically replaces the document,
    under an exclusive lock on <user_id>.lock shared by every writer.
    """

    def __init__(self, base_dir: str | Path):
        """
        Initialize the store.

        Args:
            base_dir: Directory holding <user_id>.json documents
        """
        self.base_dir = Path(base_dir)

    def path_for(self, user_id: str) -> Path:
        return self.base_dir / f"{validate_identifier(user_id, 'user_id')}.json"

    def load(self, user_id: str) -> UserProgression | None:
        """
        Load a user's document.

        Raises:
            ValidationError: If the file exists but is not a valid document
        """
        path = self.path_for(user_id)
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Error parsing {path}: {e}") from e
        return dict_to_user_progression(data)

    def _stored_version(self, path: Path) -> int:
        if not path.exists():
            return 0
        with open(path, "r", encoding="utf-8") as f:
            return int(json.load(f).get("version", 0))

    @contextmanager
    def _locked(self, user_id: str) -> Iterator[None]:
        """Hold an exclusive lock on <user_id>.lock for the duration of the block."""
        self.base_dir.mkdir(parents=True, exist_ok=True)
        with open(self.base_dir / f"{user_id}.lock", "w") as f:
            fcntl.flock(f, fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(f, fcntl.LOCK_UN)

    def save(self, document: UserProgression, expected_version: int) -> int:
        """Compare-and-swap write; the version check and the replace share one lock."""
        path = self.path_for(document.user_id)
        data = user_progression_to_dict(document)
        data["version"] = expected_version + 1
        try:
            with self._locked(document.user_id):
                try:
                    found = self._stored_version(path)
                except (json.JSONDecodeError, ValueError) as e:
                    raise PersistenceError(f"Cannot read {path}: {e}") from e
                if found != expected_version:
                    raise ConcurrentUpdateError(document.user_id, expected_version, found)
                self._write_atomic(path, data)
        except OSError as e:
            raise PersistenceError(f"Cannot write {path}: {e}") from e
        return expected_version + 1

    def _write_atomic(self, path: Path, data: dict[str, Any]) -> None:
        fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp, path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def list_users(self) -> list[str]:
        if not self.base_dir.exists():
            return []
        return sorted(p.stem for p in self.base_dir.glob("*.json"))


class MemoryTrackStore(TrackStore):
    """Process-local store; documents are deep-copied in and out."""

    def __init__(self) -> None:
        self._documents: dict[str, UserProgression] = {}

    def load(self, user_id: str) -> UserProgression | None:
        document = self._documents.get(user_id)
        return deepcopy(document) if document is not None else None

    def save(self, document: UserProgression, expected_version: int) -> int:
        current = self._documents.get(document.user_id)
        found = current.version if current is not None else 0
        if found != expected_version:
            raise ConcurrentUpdateError(document.user_id, expected_version, found)
        stored = deepcopy(document)
        stored.version = expected_version + 1
        self._documents[document.user_id] = stored
        return stored.version


def get_default_store_dir() -> Path:
    """Default store directory: ~/.skill-tracks/users."""
    return Path.home() / ".skill-tracks" / "users"
