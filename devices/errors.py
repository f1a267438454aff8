"""Exceptions raised by the TV client and the Apple TV helpers."""

from enum import Enum


class VieraError(Exception):
    """Base class for all errors raised by this package."""


class TransportErrorKind(Enum):
    TIMEOUT = "timeout"
    HTTP_STATUS = "http_status"
    CONNECTION = "connection"


class TransportError(VieraError):
    """A SOAP/HTTP request to the TV failed."""

    def __init__(self, kind: TransportErrorKind, message: str, status: int | None = None):
        super().__init__(message)
        self.kind = kind
        self.status = status


class ExecErrorKind(Enum):
    SPAWN_FAILURE = "spawn_failure"
    TIMEOUT = "timeout"
    NON_ZERO_EXIT = "non_zero_exit"


class ExecError(VieraError):
    """An atvremote invocation failed."""

    def __init__(
        self,
        kind: ExecErrorKind,
        message: str,
        output: str = "",
        returncode: int | None = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.output = output
        self.returncode = returncode


class ProvisioningError(VieraError):
    """Every installer fallback failed."""

    def __init__(self, attempts: list[str]):
        super().__init__(
            "Could not install pyatv, tried: " + ", ".join(attempts)
            if attempts
            else "Could not install pyatv, no installer available"
        )
        self.attempts = attempts


class PairingErrorKind(Enum):
    TIMEOUT = "timeout"
    NO_ACTIVE_SESSION = "no_active_session"
    NO_CREDENTIALS = "no_credentials"
    CANCELLED = "cancelled"


class PairingError(VieraError):
    """The pairing session ended without usable credentials."""

    def __init__(self, kind: PairingErrorKind, message: str):
        super().__init__(message)
        self.kind = kind


class AllStrategiesFailed(VieraError):
    """No wake strategy managed to wake the Apple TV."""

    def __init__(self, attempts: int, last_output: str = ""):
        super().__init__(f"All {attempts} wake strategies failed")
        self.attempts = attempts
        self.last_output = last_output
