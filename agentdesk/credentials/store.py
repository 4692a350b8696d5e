"""
Credential Store

Opaque per-agent secret blobs keyed by agent id. The store delegates to
a backend: JSON files on disk, or process environment variables for
hosted deployments where the filesystem is ephemeral.
"""

import os
import re
import json
import logging
import tempfile
from pathlib import Path
from typing import Optional, Dict, Any, Mapping, Protocol

from ..errors import InvalidIdError

logger = logging.getLogger("agentdesk.credentials")

Blob = Dict[str, Any]

# Agent ids double as file names
SAFE_ID = re.compile(r"[A-Za-z0-9_.-]+")


class CredentialBackend(Protocol):
    def save(self, agent_id: str, blob: Blob) -> bool:
        ...

    def load(self, agent_id: str) -> Optional[Blob]:
        ...

    def delete(self, agent_id: str) -> bool:
        ...


def validate_agent_id(agent_id: str) -> str:
    """Reject ids that could escape the storage directory."""
    if not isinstance(agent_id, str) or not SAFE_ID.fullmatch(agent_id) or agent_id in (".", ".."):
        raise InvalidIdError(agent_id)
    return agent_id


def atomic_write_json(path: Path, data: Any) -> None:
    """Write JSON to a temp file beside path, then rename over it."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, default=str)
        os.replace(tmp, path)
    except BaseException:
        try:
            os.unlink(tmp)
        except FileNotFoundError:
            pass
        raise


class FileCredentialBackend:
    """One <agent_id>.json file per agent."""

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, agent_id: str) -> Path:
        return self.directory / f"{validate_agent_id(agent_id)}.json"

    def save(self, agent_id: str, blob: Blob) -> bool:
        atomic_write_json(self._path(agent_id), blob)
        logger.info(f"Saved credentials for agent {agent_id}")
        return True

    def load(self, agent_id: str) -> Optional[Blob]:
        path = self._path(agent_id)
        if not path.exists():
            logger.debug(f"No credentials file found for agent {agent_id}")
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.error(f"Error loading credentials for agent {agent_id}: {e}")
            return None
        return data if isinstance(data, dict) else None

    def delete(self, agent_id: str) -> bool:
        path = self._path(agent_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        logger.info(f"Deleted credentials for agent {agent_id}")
        return True


class EnvCredentialBackend:
    """
    Read Gmail credentials from GMAIL_* environment variables.

    Only agents whose id starts with "gmail" are served from the
    environment; everything else goes to the fallback backend. Writes
    are acknowledged but not persisted since the environment is
    read-only at runtime.
    """

    PREFIX = "gmail"

    def __init__(
        self,
        environ: Optional[Mapping[str, str]] = None,
        fallback: Optional[CredentialBackend] = None,
    ):
        self.environ = environ if environ is not None else os.environ
        self.fallback = fallback

    def _from_env(self) -> Optional[Blob]:
        env = self.environ
        required = ("GMAIL_CLIENT_ID", "GMAIL_CLIENT_SECRET", "GMAIL_REDIRECT_URI")
        if not all(env.get(k) for k in required):
            logger.info("Gmail environment variables not found")
            return None

        blob: Blob = {
            "client_id": env["GMAIL_CLIENT_ID"],
            "client_secret": env["GMAIL_CLIENT_SECRET"],
            "redirect_uri": env["GMAIL_REDIRECT_URI"],
        }
        if env.get("GMAIL_ACCESS_TOKEN"):
            blob["access_token"] = env["GMAIL_ACCESS_TOKEN"]
        if env.get("GMAIL_REFRESH_TOKEN"):
            blob["refresh_token"] = env["GMAIL_REFRESH_TOKEN"]
        if env.get("GMAIL_EXPIRY_DATE"):
            try:
                blob["expiry_date"] = int(env["GMAIL_EXPIRY_DATE"])
            except ValueError:
                logger.warning("Ignoring non-numeric GMAIL_EXPIRY_DATE")
        return blob

    def save(self, agent_id: str, blob: Blob) -> bool:
        logger.info(f"Environment credential backend: not persisting credentials for {agent_id}")
        return True

    def load(self, agent_id: str) -> Optional[Blob]:
        if agent_id.startswith(self.PREFIX):
            blob = self._from_env()
            if blob is not None:
                return blob
        if self.fallback is not None:
            return self.fallback.load(agent_id)
        return None

    def delete(self, agent_id: str) -> bool:
        logger.info(f"Environment credential backend: not deleting credentials for {agent_id}")
        return True


class CredentialStore:
    """Front for a pluggable credential backend."""

    def __init__(self, backend: CredentialBackend):
        self.backend = backend

    def save(self, agent_id: str, blob: Blob) -> bool:
        """Write or overwrite the blob for agent_id."""
        return self.backend.save(agent_id, dict(blob))

    def load(self, agent_id: str) -> Optional[Blob]:
        """The stored blob, or None. Never raises for missing data."""
        return self.backend.load(agent_id)

    def delete(self, agent_id: str) -> bool:
        """Remove the blob; True if something was removed."""
        return self.backend.delete(agent_id)


def create_credential_store(
    backend: str = "file",
    directory: str | Path = "./data/credentials",
    environ: Optional[Mapping[str, str]] = None,
) -> CredentialStore:
    """Build a store for the configured backend name."""
    files = FileCredentialBackend(directory)
    if backend == "env":
        logger.info("Using environment variables for Gmail credentials")
        return CredentialStore(EnvCredentialBackend(environ=environ, fallback=files))
    if backend != "file":
        raise ValueError(f"Unknown credential backend: {backend}")
    return CredentialStore(files)
