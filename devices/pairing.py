"""Interactive atvremote pairing.

A pairing session runs `atvremote ... pair` as a long-lived process. The
Apple TV shows a PIN, the user types it in, and atvremote prints the
credentials that later wake commands need. Some protocols pair without a
PIN, in which case the process exits on its own with credentials.

State flow:

    IDLE -> STARTING -> AWAITING_PIN -> FINISHING -> PAIRED
                    \\-> PAIRED (no PIN needed)
    any active state -> FAILED | CANCELLED
"""

import asyncio
import re
from enum import Enum

import structlog

from .atvremote import ControlBinary, terminate, truncate
from .companion import PROTOCOLS, CompanionIdentity
from .errors import PairingError, PairingErrorKind, VieraError

log = structlog.get_logger(__name__)

PAIRING_TIMEOUT = 30.0

DEFAULT_PORTS = {
    "mrp": 49152,
    "airplay": 7000,
    "companion": 49153,
}

PIN_PROMPT_RE = re.compile(r"enter pin|pin code|pin:", re.IGNORECASE)
CREDENTIALS_LINE_RE = re.compile(r"credentials:[ \t]*(\S+)", re.IGNORECASE)
# Colon separated hex with at least one long group, so MAC addresses don't match
HEX_TOKEN_RE = re.compile(r"\b(?=[0-9A-Fa-f:]*[0-9A-Fa-f]{16})[0-9A-Fa-f]+(?::[0-9A-Fa-f]+)+\b")


class PairingState(Enum):
    IDLE = "idle"
    STARTING = "starting"
    AWAITING_PIN = "awaiting_pin"
    FINISHING = "finishing"
    PAIRED = "paired"
    FAILED = "failed"
    CANCELLED = "cancelled"


ACTIVE_STATES = (PairingState.STARTING, PairingState.AWAITING_PIN, PairingState.FINISHING)


def extract_credentials(output: str) -> str | None:
    """Pull the credential string out of atvremote output.

    A "credentials:" labelled line wins over a bare hex token. Among bare
    tokens the last one is taken. The order matters when both appear.
    """
    match = CREDENTIALS_LINE_RE.search(output)
    if match:
        return match.group(1)
    tokens = HEX_TOKEN_RE.findall(output)
    return tokens[-1] if tokens else None


def pair_args(identity: CompanionIdentity, protocol: str) -> list[str]:
    if protocol not in PROTOCOLS:
        raise ValueError(f"Unknown protocol: {protocol}. Available: {list(PROTOCOLS)}")
    return [
        *identity.args(),
        "--protocol",
        protocol,
        "--port",
        str(DEFAULT_PORTS[protocol]),
        "pair",
    ]


class PairingSession:
    """One pairing attempt for one protocol. Owns its atvremote process.

    Only one session per Apple TV should be active; replacing a session is
    up to the caller, which must cancel the old one first.
    """

    def __init__(
        self,
        binary: ControlBinary,
        identity: CompanionIdentity,
        protocol: str,
        *,
        timeout: float = PAIRING_TIMEOUT,
        logger=None,
    ):
        if identity.is_empty:
            raise ValueError("Apple TV identifier or address required")
        self._args = pair_args(identity, protocol)
        self.binary = binary
        self.identity = identity
        self.protocol = protocol
        self.timeout = timeout
        self.log = (logger or log).bind(protocol=protocol)
        self.state = PairingState.IDLE
        self.credentials: str | None = None
        self.returncode: int | None = None
        self._proc: asyncio.subprocess.Process | None = None
        self._output = ""

    @property
    def output(self) -> str:
        """Everything the process printed so far."""
        return self._output

    @property
    def active(self) -> bool:
        return self.state in ACTIVE_STATES

    async def _read_chunk(self, deadline: float) -> bytes:
        remaining = deadline - asyncio.get_running_loop().time()
        if remaining <= 0:
            raise TimeoutError
        return await asyncio.wait_for(self._proc.stdout.read(1024), timeout=remaining)

    async def _wait_exit(self, deadline: float) -> int:
        remaining = max(deadline - asyncio.get_running_loop().time(), 0.1)
        self.returncode = await asyncio.wait_for(self._proc.wait(), timeout=remaining)
        return self.returncode

    async def _release(self) -> None:
        if self._proc is not None:
            await terminate(self._proc)
            self.returncode = self._proc.returncode

    async def _fail(self, kind: PairingErrorKind, message: str) -> PairingError:
        if self.state is not PairingState.CANCELLED:
            self.state = PairingState.FAILED
        await self._release()
        self.log.warning("Pairing failed", reason=kind.value, output=truncate(self._output))
        return PairingError(kind, message)

    def _succeed(self, credentials: str) -> PairingState:
        self.credentials = credentials
        self.state = PairingState.PAIRED
        self.log.info("Pairing successful")
        return self.state

    async def _check_cancelled(self) -> None:
        if self.state is PairingState.CANCELLED:
            await self._release()
            raise PairingError(PairingErrorKind.CANCELLED, "Pairing cancelled")

    async def start(self) -> PairingState:
        """Spawn atvremote and wait for the PIN prompt.

        Returns:
            AWAITING_PIN when a PIN must be entered, PAIRED if the protocol
            paired without one.

        Raises:
            PairingError: On timeout, cancellation, or exit without credentials.
        """
        if self.state is not PairingState.IDLE:
            raise RuntimeError(f"Pairing session already {self.state.value}")

        self.state = PairingState.STARTING
        try:
            try:
                self._proc = await self.binary.spawn(self._args)
            except VieraError:
                if self.state is not PairingState.CANCELLED:
                    self.state = PairingState.FAILED
                raise
            # cancel() may have run while atvremote was being located or installed
            await self._check_cancelled()
            self.log.info("Pairing started")

            deadline = asyncio.get_running_loop().time() + self.timeout
            while True:
                try:
                    chunk = await self._read_chunk(deadline)
                except TimeoutError:
                    raise await self._fail(
                        PairingErrorKind.TIMEOUT, "No PIN prompt from Apple TV (timeout)"
                    ) from None
                await self._check_cancelled()
                if not chunk:
                    break
                self._output += chunk.decode(errors="replace")
                if PIN_PROMPT_RE.search(self._output):
                    self.state = PairingState.AWAITING_PIN
                    self.log.info("PIN prompt shown on Apple TV")
                    return self.state

            # Exited without asking for a PIN
            try:
                returncode = await self._wait_exit(deadline)
            except TimeoutError:
                raise await self._fail(
                    PairingErrorKind.TIMEOUT, "Pairing process did not exit (timeout)"
                ) from None
            await self._check_cancelled()
            credentials = extract_credentials(self._output)
            if credentials:
                return self._succeed(credentials)
            raise await self._fail(
                PairingErrorKind.NO_CREDENTIALS,
                f"atvremote exited with {returncode} without credentials: "
                f"{truncate(self._output, 200)}",
            )
        except asyncio.CancelledError:
            self.state = PairingState.CANCELLED
            await self._release()
            raise

    async def finish(self, pin: str) -> str:
        """Send the PIN and wait for atvremote to print the credentials.

        Returns:
            The credential string.

        Raises:
            PairingError: NO_ACTIVE_SESSION if no PIN is awaited, otherwise
                on timeout, cancellation or missing credentials.
        """
        proc = self._proc
        if self.state is not PairingState.AWAITING_PIN or proc is None or proc.returncode is not None:
            raise PairingError(PairingErrorKind.NO_ACTIVE_SESSION, "No active pairing session")

        self.state = PairingState.FINISHING
        finish_from = len(self._output)
        try:
            try:
                proc.stdin.write(f"{pin}\n".encode())
                await proc.stdin.drain()
                proc.stdin.close()
            except (BrokenPipeError, ConnectionResetError):
                raise await self._fail(
                    PairingErrorKind.NO_ACTIVE_SESSION, "Pairing process is gone"
                ) from None

            deadline = asyncio.get_running_loop().time() + self.timeout
            try:
                while chunk := await self._read_chunk(deadline):
                    self._output += chunk.decode(errors="replace")
                returncode = await self._wait_exit(deadline)
            except TimeoutError:
                raise await self._fail(
                    PairingErrorKind.TIMEOUT, "Apple TV did not confirm the PIN (timeout)"
                ) from None
            await self._check_cancelled()

            credentials = extract_credentials(self._output)
            if not credentials and returncode == 0:
                # Best effort: take whatever atvremote printed
                credentials = self._output[finish_from:].strip()
            if credentials:
                self._succeed(credentials)
                return credentials
            raise await self._fail(
                PairingErrorKind.NO_CREDENTIALS,
                f"atvremote exited with {returncode} without credentials: "
                f"{truncate(self._output[finish_from:], 200)}",
            )
        except asyncio.CancelledError:
            self.state = PairingState.CANCELLED
            await self._release()
            raise

    async def cancel(self) -> None:
        """Stop the session. Safe to call in any state, any number of times."""
        if self.active or self.state is PairingState.IDLE:
            self.state = PairingState.CANCELLED
            self.log.info("Pairing cancelled")
        await self._release()
