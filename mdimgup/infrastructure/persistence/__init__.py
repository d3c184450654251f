"""
Local persistence for profiles, history and credentials.

- metadata_store: JSON file (or in-memory) key/value store
- secret_store: Fernet-encrypted credential store (or in-memory)
"""

from .metadata_store import InMemoryMetadataStore, JsonFileMetadataStore, create_metadata_store
from .secret_store import (
    FernetSecretStore,
    InMemorySecretStore,
    SecretStoreError,
    create_secret_store,
    load_or_create_key,
)

__all__ = [
    "InMemoryMetadataStore",
    "JsonFileMetadataStore",
    "create_metadata_store",
    "FernetSecretStore",
    "InMemorySecretStore",
    "SecretStoreError",
    "create_secret_store",
    "load_or_create_key",
]
