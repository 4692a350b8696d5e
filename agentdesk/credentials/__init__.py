"""
Per-agent credential storage, kept apart from agent state snapshots.
"""

from .store import (
    CredentialBackend,
    CredentialStore,
    EnvCredentialBackend,
    FileCredentialBackend,
    create_credential_store,
)

__all__ = [
    "CredentialBackend",
    "CredentialStore",
    "EnvCredentialBackend",
    "FileCredentialBackend",
    "create_credential_store",
]
