"""Device local storage port and adapters."""

from safecampus.infrastructure.storage.key_value import (
    ACTIVE_SOS_KEY,
    InMemoryKeyValueStorage,
    JsonFileKeyValueStorage,
    KeyValueStorage,
    sos_token_key,
)

__all__ = [
    "KeyValueStorage",
    "InMemoryKeyValueStorage",
    "JsonFileKeyValueStorage",
    "ACTIVE_SOS_KEY",
    "sos_token_key",
]
