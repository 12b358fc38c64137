"""
Unit Tests for Device Key-Value Storage
"""

from safecampus.infrastructure.storage.key_value import (
    ACTIVE_SOS_KEY,
    InMemoryKeyValueStorage,
    JsonFileKeyValueStorage,
    sos_token_key,
)


class TestKeyValueStorage:
    """Recovery pointers survive a restart when file-backed."""

    def test_token_key_format(self) -> None:
        assert sos_token_key("abc123") == "sos_token_abc123"

    def test_in_memory_storage(self) -> None:
        storage = InMemoryKeyValueStorage()
        storage.set(ACTIVE_SOS_KEY, "sos-1")
        storage.delete("never-set")

        assert storage.get(ACTIVE_SOS_KEY) == "sos-1"
        storage.delete(ACTIVE_SOS_KEY)
        assert storage.get(ACTIVE_SOS_KEY) is None

    def test_file_storage_persists_across_instances(self, tmp_path) -> None:
        path = tmp_path / "device" / "sos.json"
        first = JsonFileKeyValueStorage(path)
        first.set(ACTIVE_SOS_KEY, "sos-1")
        first.set(sos_token_key("sos-1"), "secret-token")

        reopened = JsonFileKeyValueStorage(path)

        assert reopened.get(ACTIVE_SOS_KEY) == "sos-1"
        assert reopened.get(sos_token_key("sos-1")) == "secret-token"

    def test_file_storage_delete_persists(self, tmp_path) -> None:
        path = tmp_path / "sos.json"
        storage = JsonFileKeyValueStorage(path)
        storage.set(ACTIVE_SOS_KEY, "sos-1")
        storage.delete(ACTIVE_SOS_KEY)

        assert JsonFileKeyValueStorage(path).get(ACTIVE_SOS_KEY) is None

    def test_corrupt_file_starts_empty(self, tmp_path) -> None:
        path = tmp_path / "sos.json"
        path.write_text("{not json", encoding="utf-8")

        storage = JsonFileKeyValueStorage(path)

        assert storage.get(ACTIVE_SOS_KEY) is None
        storage.set(ACTIVE_SOS_KEY, "sos-2")
        assert JsonFileKeyValueStorage(path).get(ACTIVE_SOS_KEY) == "sos-2"
