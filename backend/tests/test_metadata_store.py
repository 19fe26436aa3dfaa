"""
Metadata store tests: file store and session store.
"""

import json

from avatar_cache.metadata_store import SESSION_METADATA_KEY, FileMetadataStore, SessionMetadataStore
from avatar_cache.models import CacheMetadata

from conftest import FIXED_NOW, HOUR_MS


# ============================================
# FileMetadataStore
# ============================================

class TestFileMetadataStore:

    def test_load_missing_file_is_empty(self, file_store):
        metadata = file_store.load()

        assert metadata.entries == {}
        assert metadata.last_batch_run == 0

    def test_entry_round_trip(self, file_store):
        file_store.set_entry("alice", FIXED_NOW)

        entry = FileMetadataStore(file_store.avatar_dir).get_entry("alice")
        assert entry.last_updated == FIXED_NOW
        assert entry.location == str(file_store.avatar_dir / "alice.png")

    def test_file_format(self, file_store):
        metadata = CacheMetadata(last_batch_run=FIXED_NOW)
        metadata.record("bob", FIXED_NOW - HOUR_MS, file_store.location_for("bob"))
        file_store.save(metadata)

        data = json.loads(file_store.metadata_file.read_text())
        assert data == {
            "lastRun": FIXED_NOW,
            "avatars": {
                "bob": {"lastUpdated": FIXED_NOW - HOUR_MS, "path": file_store.location_for("bob")},
            },
        }

    def test_corrupt_file_resets(self, file_store):
        file_store.ensure_dir()
        file_store.metadata_file.write_text("{not json")

        assert file_store.load().entries == {}

    def test_wrong_shape_resets(self, file_store):
        file_store.ensure_dir()
        file_store.metadata_file.write_text(json.dumps({"avatars": {"alice": "yesterday"}}))

        assert file_store.load().entries == {}

    def test_save_leaves_no_temp_files(self, file_store):
        file_store.save(CacheMetadata())

        assert [p.name for p in file_store.avatar_dir.iterdir()] == ["metadata.json"]

    def test_last_updated_never_decreases(self, file_store):
        file_store.set_entry("alice", FIXED_NOW)
        entry = file_store.set_entry("alice", FIXED_NOW - HOUR_MS)

        assert entry.last_updated == FIXED_NOW
        assert file_store.get_entry("alice").last_updated == FIXED_NOW


# ============================================
# SessionMetadataStore
# ============================================

class TestSessionMetadataStore:

    def test_empty_storage(self, local_storage):
        store = SessionMetadataStore(local_storage)

        assert store.load().last_client_check == 0
        assert store.get_entry("alice") is None

    def test_round_trip_uses_url_location(self, local_storage):
        store = SessionMetadataStore(local_storage)
        store.set_entry("alice", FIXED_NOW)

        data = json.loads(local_storage[SESSION_METADATA_KEY])
        assert data["avatars"]["alice"] == {"lastUpdated": FIXED_NOW, "path": "/img/avatars/alice.png"}
        assert store.get_entry("alice").last_updated == FIXED_NOW

    def test_malformed_storage_resets(self, local_storage):
        local_storage[SESSION_METADATA_KEY] = "[1, 2"
        store = SessionMetadataStore(local_storage)

        assert store.load().entries == {}

    def test_save_failure_is_swallowed(self):
        class FullStorage(dict):
            def __setitem__(self, key, value):
                raise OSError("quota exceeded")

        store = SessionMetadataStore(FullStorage())
        store.save(CacheMetadata(last_client_check=FIXED_NOW))

        assert store.load().last_client_check == 0

    def test_independent_from_file_store(self, file_store, local_storage):
        file_store.set_entry("alice", FIXED_NOW)

        assert SessionMetadataStore(local_storage).get_entry("alice") is None


# ============================================
# Non-finite timestamps
# ============================================

class TestNonFiniteTimestamps:
    """json decodes NaN and 1e400 to floats that have no int value."""

    def test_file_with_infinite_last_run_resets(self, file_store):
        file_store.ensure_dir()
        file_store.metadata_file.write_text('{"lastRun": 1e400, "avatars": {}}')

        metadata = file_store.load()

        assert metadata.last_batch_run == 0
        assert metadata.entries == {}

    def test_file_with_nan_entry_resets(self, file_store):
        file_store.ensure_dir()
        file_store.metadata_file.write_text('{"lastRun": 0, "avatars": {"alice": {"lastUpdated": NaN}}}')

        assert file_store.load().entries == {}

    def test_session_with_nan_last_check_resets(self, local_storage):
        local_storage[SESSION_METADATA_KEY] = '{"lastCheck": NaN, "avatars": {}}'

        assert SessionMetadataStore(local_storage).load().last_client_check == 0

    def test_session_with_infinite_entry_resets(self, local_storage):
        local_storage[SESSION_METADATA_KEY] = '{"lastCheck": 0, "avatars": {"alice": {"lastUpdated": -1e400}}}'

        assert SessionMetadataStore(local_storage).get_entry("alice") is None
