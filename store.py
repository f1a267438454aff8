"""Persisted Apple TV identity and pairing credentials.

Credentials are opaque blobs produced by atvremote; they are stored and
handed back, never interpreted.
"""

from pathlib import Path

import structlog
from pydantic import BaseModel, Field, ValidationError

from devices.companion import PROTOCOLS, CompanionIdentity, Credentials

log = structlog.get_logger(__name__)


class StoredState(BaseModel):
    """Contents of the state file."""

    apple_tv_identifier: str = ""
    apple_tv_address: str = ""
    apple_tv_name: str = ""
    credentials: dict[str, str] = Field(default_factory=dict)


class StateStore:
    """JSON file holding what discovery and pairing produced."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def load(self) -> StoredState:
        if not self.path.exists():
            return StoredState()
        try:
            return StoredState.model_validate_json(self.path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            log.warning("Ignoring unreadable state file", path=str(self.path), error=str(e))
            return StoredState()

    def _save(self, state: StoredState) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(state.model_dump_json(indent=2), encoding="utf-8")
        tmp.replace(self.path)

    def store(self, protocol: str, credentials: str) -> None:
        """Persist the credential blob for one protocol."""
        if protocol not in PROTOCOLS:
            raise ValueError(f"Unknown protocol: {protocol}")
        state = self.load()
        state.credentials[protocol] = credentials
        self._save(state)
        log.info(f"Stored {protocol} credentials")

    def save_device(self, identifier: str, address: str, name: str = "") -> None:
        """Remember the Apple TV picked from a scan."""
        state = self.load()
        state.apple_tv_identifier = identifier
        state.apple_tv_address = address
        state.apple_tv_name = name
        self._save(state)
        log.info("Stored Apple TV", name=name, identifier=identifier, address=address)

    def identity(self, fallback: CompanionIdentity | None = None) -> CompanionIdentity:
        state = self.load()
        if state.apple_tv_identifier or state.apple_tv_address:
            return CompanionIdentity(state.apple_tv_identifier, state.apple_tv_address)
        return fallback or CompanionIdentity()

    def credentials(self, fallback: Credentials | None = None) -> Credentials:
        """Stored credentials, per protocol falling back to the given ones."""
        fallback = fallback or Credentials()
        stored = self.load().credentials
        return Credentials(
            **{p: stored.get(p) or fallback.get(p) for p in PROTOCOLS},
        )
