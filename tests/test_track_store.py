"""
Tests for the JSON track store and its compare-and-swap transactions.
"""

import fcntl
import json
from datetime import datetime

import pytest

from skill_tracks.core.errors import ConcurrentUpdateError, PersistenceError, UserNotFoundError
from skill_tracks.core.models import DomainTrack, SplitReadiness
from skill_tracks.io.serializers import ValidationError
from skill_tracks.io.track_store import JsonTrackStore, MemoryTrackStore


def _track(program_id: str, level: int = 1, percent: float = 0.0, **kwargs) -> DomainTrack:
    return DomainTrack(program_id=program_id, current_level=level, percent=percent, **kwargs)


@pytest.fixture
def store(tmp_path):
    return JsonTrackStore(tmp_path / "users")


class TestInitUser:
    def test_creates_document(self, store):
        document = store.init_user("alice", active_programs=["full_body", "full_body"])

        assert document.version == 1
        assert store.path_for("alice").exists()
        loaded = store.load("alice")
        assert loaded.active_programs == ["full_body"]
        assert loaded.tracks == {}
        assert loaded.version == 1

    def test_existing_user_rejected(self, store):
        store.init_user("alice")
        with pytest.raises(ValueError):
            store.init_user("alice")

    def test_invalid_user_id(self, store):
        with pytest.raises(ValidationError):
            store.init_user("../etc/passwd")

    def test_unknown_user_loads_none(self, store):
        assert store.load("nobody") is None
        assert not store.exists("nobody")

    def test_list_users(self, store):
        assert store.list_users() == []
        store.init_user("bob")
        store.init_user("alice")
        assert store.list_users() == ["alice", "bob"]


class TestTransaction:
    def test_commit_persists_and_bumps_version(self, store):
        store.init_user("alice")
        at = datetime(2026, 3, 2, 18, 30)
        track = _track("push", 3, 42.5, last_activity_at=at, total_sessions_completed=4)

        with store.transaction("alice") as txn:
            txn.write_tracks({"push": track})
            txn.add_active_program("push")
            txn.record_split_readiness(SplitReadiness("full_body", True, 10, 10, ("push",)))

        document = store.load("alice")
        assert document.version == 2
        assert document.tracks["push"] == track
        assert document.active_programs == ["push"]
        assert document.ready_for_split.suggested_programs == ("push",)

    def test_reads_see_staged_writes(self, store):
        store.init_user("alice")
        with store.transaction("alice") as txn:
            txn.write_tracks({"push": _track("push", 2)})
            assert txn.read_track("push").current_level == 2
            assert store.load("alice").tracks == {}

    def test_no_changes_no_commit(self, store):
        store.init_user("alice")
        with store.transaction("alice") as txn:
            txn.read_track("push")
        assert store.load("alice").version == 1

    def test_exception_discards_writes(self, store):
        store.init_user("alice")
        with pytest.raises(RuntimeError):
            with store.transaction("alice") as txn:
                txn.write_tracks({"push": _track("push", 5)})
                raise RuntimeError("boom")
        document = store.load("alice")
        assert document.tracks == {}
        assert document.version == 1

    def test_concurrent_commit_detected(self, store):
        store.init_user("alice")
        with pytest.raises(ConcurrentUpdateError) as exc_info:
            with store.transaction("alice") as outer:
                outer.write_tracks({"push": _track("push", 2)})
                with store.transaction("alice") as inner:
                    inner.write_tracks({"pull": _track("pull", 3)})

        assert (exc_info.value.expected, exc_info.value.found) == (1, 2)
        document = store.load("alice")
        assert set(document.tracks) == {"pull"}
        assert document.version == 2

    def test_unknown_user(self, store):
        with pytest.raises(UserNotFoundError):
            with store.transaction("ghost"):
                pass

    def test_corrupt_document_is_persistence_error(self, store, tmp_path):
        store.init_user("alice")
        store.path_for("alice").write_text("{not json", encoding="utf-8")

        with pytest.raises(ValidationError):
            store.load("alice")
        with pytest.raises(PersistenceError):
            with store.transaction("alice"):
                pass

    def test_invalid_stored_track_rejected(self, store):
        store.init_user("alice")
        path = store.path_for("alice")
        data = json.loads(path.read_text(encoding="utf-8"))
        data["tracks"] = {"push": {"current_level": 2, "percent": 140.0}}
        path.write_text(json.dumps(data), encoding="utf-8")

        with pytest.raises(ValidationError):
            store.load("alice")

    def test_no_temp_files_left(self, store, tmp_path):
        store.init_user("alice")
        with store.transaction("alice") as txn:
            txn.write_tracks({"push": _track("push")})
        assert sorted(p.name for p in (tmp_path / "users").iterdir()) == ["alice.json", "alice.lock"]

    def test_invalid_user_id_is_not_found(self, store):
        with pytest.raises(UserNotFoundError):
            with store.transaction("no such/user"):
                pass

    def test_unreadable_document_is_persistence_error(self, store):
        store.base_dir.mkdir(parents=True)
        store.path_for("alice").mkdir()

        with pytest.raises(PersistenceError):
            with store.transaction("alice"):
                pass


class _LateRivalStore(JsonTrackStore):
    """A second writer commits after our load, just before we take the lock."""

    rival_programs: list[str] = []

    def _locked(self, user_id):
        if self.rival_programs:
            program_id = self.rival_programs.pop()
            with JsonTrackStore(self.base_dir).transaction(user_id) as rival:
                rival.write_tracks({program_id: _track(program_id, 3)})
        return super()._locked(user_id)


class _LockCheckingStore(JsonTrackStore):
    """Records whether the lock file is held while the version is read and written."""

    def __init__(self, base_dir):
        super().__init__(base_dir)
        self.held: list[bool] = []

    def _lock_is_held(self, user_id) -> bool:
        with open(self.base_dir / f"{user_id}.lock", "w") as f:
            try:
                fcntl.flock(f, fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError:
                return True
            fcntl.flock(f, fcntl.LOCK_UN)
            return False

    def _stored_version(self, path):
        self.held.append(self._lock_is_held(path.stem))
        return super()._stored_version(path)

    def _write_atomic(self, path, data):
        self.held.append(self._lock_is_held(path.stem))
        super()._write_atomic(path, data)


class TestSaveLocking:
    def test_version_check_and_write_hold_lock(self, tmp_path):
        store = _LockCheckingStore(tmp_path / "users")
        store.init_user("alice")
        with store.transaction("alice") as txn:
            txn.write_tracks({"push": _track("push")})

        assert store.held == [True, True, True, True]
        assert not store._lock_is_held("alice")

    def test_late_commit_is_not_overwritten(self, tmp_path):
        store = _LateRivalStore(tmp_path / "users")
        store.init_user("alice")
        store.rival_programs = ["pull"]

        with pytest.raises(ConcurrentUpdateError):
            with store.transaction("alice") as txn:
                txn.write_tracks({"push": _track("push", 2)})

        document = store.load("alice")
        assert set(document.tracks) == {"pull"}
        assert document.version == 2


class TestUserTransaction:
    def test_savepoint_rollback(self):
        store = MemoryTrackStore()
        store.init_user("alice", active_programs=["push"])
        with store.transaction("alice") as txn:
            txn.write_tracks({"push": _track("push", 2)})
            savepoint = txn.savepoint()

            txn.write_tracks({"pull": _track("pull", 4), "push": _track("push", 9)})
            txn.add_active_program("pull")
            txn.rollback_to(savepoint)

            assert txn.read_track("pull") is None
            assert txn.read_track("push").current_level == 2
            assert txn.active_programs == ["push"]

        assert set(store.load("alice").tracks) == {"push"}

    def test_key_must_match_program(self):
        store = MemoryTrackStore()
        store.init_user("alice")
        with pytest.raises(ValueError):
            with store.transaction("alice") as txn:
                txn.write_tracks({"push": _track("pull")})

    def test_add_active_program_once(self):
        store = MemoryTrackStore()
        store.init_user("alice")
        with store.transaction("alice") as txn:
            assert txn.add_active_program("push")
            assert not txn.add_active_program("push")

    def test_memory_store_copies_documents(self):
        store = MemoryTrackStore()
        store.init_user("alice")
        document = store.load("alice")
        document.active_programs.append("push")
        assert store.load("alice").active_programs == []
