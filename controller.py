"""TV controller: turns state writes and messages into device commands.

Owns the polling loop, the power on flow through the Apple TV, and the
single active pairing session.
"""

import asyncio
import contextlib
from dataclasses import asdict, dataclass

import structlog

from config import Config
from devices.atvremote import ControlBinary
from devices.companion import PROTOCOLS, CompanionIdentity, Credentials
from devices.discovery import CandidateDevice, CompanionDiscovery
from devices.errors import PairingError, PairingErrorKind, VieraError
from devices.pairing import PairingSession, PairingState
from devices.viera import VieraClient
from devices.wake import WakeAttemptResult, WakeCascade
from store import StateStore

log = structlog.get_logger(__name__)

# Button name -> NRC key code
REMOTE_KEYS = {
    "channelUp": "NRC_CH_UP-ONOFF",
    "channelDown": "NRC_CH_DOWN-ONOFF",
    "volumeUp": "NRC_VOLUP-ONOFF",
    "volumeDown": "NRC_VOLDOWN-ONOFF",
    "up": "NRC_UP-ONOFF",
    "down": "NRC_DOWN-ONOFF",
    "left": "NRC_LEFT-ONOFF",
    "right": "NRC_RIGHT-ONOFF",
    "ok": "NRC_ENTER-ONOFF",
    "enter": "NRC_ENTER-ONOFF",
    "back": "NRC_RETURN-ONOFF",
    "menu": "NRC_MENU-ONOFF",
    "home": "NRC_MENU-ONOFF",
    "play": "NRC_PLAY-ONOFF",
    "pause": "NRC_PAUSE-ONOFF",
    "stop": "NRC_STOP-ONOFF",
    "rewind": "NRC_REW-ONOFF",
    "forward": "NRC_FF-ONOFF",
    "red": "NRC_RED-ONOFF",
    "green": "NRC_GREEN-ONOFF",
    "yellow": "NRC_YELLOW-ONOFF",
    "blue": "NRC_BLUE-ONOFF",
    "epg": "NRC_EPG-ONOFF",
    "text": "NRC_TEXT-ONOFF",
    "subtitles": "NRC_STTL-ONOFF",
    "info": "NRC_INFO-ONOFF",
    "hdmi1": "NRC_HDMI1-ONOFF",
    "hdmi2": "NRC_HDMI2-ONOFF",
    "hdmi3": "NRC_HDMI3-ONOFF",
    "hdmi4": "NRC_HDMI4-ONOFF",
    "tv": "NRC_TV-ONOFF",
    "lastView": "NRC_R_TUNE-ONOFF",
    **{f"d{i}": f"NRC_D{i}-ONOFF" for i in range(10)},
    "3d": "NRC_3D-ONOFF",
    "apps": "NRC_APPS-ONOFF",
    "mute": "NRC_MUTE-ONOFF",
    "submenu": "NRC_SUBMENU-ONOFF",
    "inputSwitch": "NRC_CHG_INPUT-ONOFF",
    "record": "NRC_REC-ONOFF",
}

INPUT_KEYS = {
    "HDMI1": "NRC_HDMI1-ONOFF",
    "HDMI2": "NRC_HDMI2-ONOFF",
    "HDMI3": "NRC_HDMI3-ONOFF",
    "HDMI4": "NRC_HDMI4-ONOFF",
    "TV": "NRC_TV-ONOFF",
}

POWER_OFF_KEY = "NRC_POWER-ONOFF"
TUNER_KEY = "NRC_TV-ONOFF"


@dataclass
class TVState:
    """Last known TV state as seen by polling and commands."""

    available: bool = False
    power: bool = False
    volume: int | None = None
    mute: bool | None = None

    def to_dict(self) -> dict:
        return asdict(self)


class TVController:
    """Glue between the outside world and the device clients."""

    def __init__(
        self,
        config: Config,
        *,
        client: VieraClient | None = None,
        binary: ControlBinary | None = None,
        store: StateStore | None = None,
        logger=None,
    ):
        self.config = config
        self.log = logger or log
        if client is None and config.tv_ip:
            client = VieraClient(
                config.tv_ip, port=config.tv_port, timeout=config.request_timeout
            )
        self.client = client
        self.binary = binary or ControlBinary(auto_install=config.atvremote_auto_install)
        self.store = store or StateStore(config.state_file)
        self.state = TVState()
        self._poll_task: asyncio.Task[None] | None = None
        self._pairing: PairingSession | None = None
        self._channel_lock = asyncio.Lock()

    def _require_client(self) -> VieraClient:
        if self.client is None:
            raise ValueError("No TV IP address configured")
        return self.client

    # ============= POLLING =============

    async def start(self) -> None:
        """Poll once, then keep polling in the background."""
        if self.client is None:
            self.log.error("No TV IP address configured!")
            return
        self.log.info("Viera controller starting", ip=self.client.host)
        await self.poll_status()
        self._poll_task = asyncio.create_task(self._poll_loop())
        self.log.debug(f"Polling started with interval {self.config.polling_interval}s")

    async def stop(self) -> None:
        if self._poll_task:
            self._poll_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._poll_task
            self._poll_task = None
        await self.cancel_pairing()
        self.state.available = False

    async def _poll_loop(self) -> None:
        while True:
            try:
                await asyncio.sleep(self.config.polling_interval)
                await self.poll_status()
            except asyncio.CancelledError:
                self.log.debug("Polling cancelled")
                break
            except Exception as e:
                self.log.error(f"Polling error: {e}")

    async def poll_status(self) -> TVState:
        """Refresh reachability, and volume and mute if the TV is on.

        Failures are logged at debug level, polling goes on.
        """
        client = self._require_client()
        available = await client.is_available()

        if available != self.state.available:
            self.state.available = available
            self.state.power = available
            self.log.debug(f"TV {'is now reachable' if available else 'is no longer reachable'}")

        if available:
            try:
                volume = await client.get_volume()
                if volume is not None:
                    self.state.volume = volume
            except VieraError as e:
                self.log.debug(f"Could not get volume: {e}")

            try:
                muted = await client.get_mute()
                if muted is not None:
                    self.state.mute = muted
            except VieraError as e:
                self.log.debug(f"Could not get mute state: {e}")

        return self.state

    # ============= COMMANDS =============

    async def press(self, button: str) -> None:
        """Press a named remote button, e.g. "volumeUp" or "hdmi1"."""
        code = REMOTE_KEYS.get(button)
        if not code:
            raise ValueError(f"Unknown button: {button}. Available: {list(REMOTE_KEYS)}")
        self.log.debug(f"Sending key: {code}")
        await self._require_client().send_key(code)

    async def send_key(self, code: str) -> None:
        """Send a raw key, "VOLUP" or "NRC_VOLUP-ONOFF"."""
        await self._require_client().send_key(code)

    async def set_volume(self, level: float) -> int:
        client = self._require_client()
        self.log.debug(f"Setting volume to {level}")
        sent = await client.set_volume(level)
        self.state.volume = sent
        return sent

    async def set_mute(self, mute: bool) -> None:
        client = self._require_client()
        self.log.debug(f"Setting mute to {mute}")
        await client.set_mute(mute)
        self.state.mute = mute

    async def set_channel(self, number: int) -> None:
        if number <= 0:
            raise ValueError(f"Invalid channel: {number}")
        client = self._require_client()
        # Overlapping digit sequences would interleave on the TV
        async with self._channel_lock:
            self.log.info(f"Switching to channel {number}")
            await client.send_channel_number(number)

    async def set_input(self, name: str) -> None:
        code = INPUT_KEYS.get(str(name).upper())
        if not code:
            raise ValueError(f"Unknown input: {name}. Available: {list(INPUT_KEYS)}")
        self.log.info(f"Switching input to {name}")
        await self._require_client().send_key(code)

    def apple_tv(self) -> tuple[CompanionIdentity, Credentials] | None:
        """Identity and credentials for waking, None if not set up."""
        identity = self.store.identity(self.config.apple_tv_identity)
        if identity.is_empty:
            return None
        credentials = self.store.credentials(self.config.apple_tv_credentials)
        if not credentials.can_wake:
            self.log.warning("Apple TV not paired yet. Pair it first.")
            return None
        return identity, credentials

    async def power(self, on: bool) -> WakeAttemptResult | None:
        """Turn the TV on (through the Apple TV) or off.

        Returns:
            The successful wake attempt when powering on, else None.

        Raises:
            ValueError: If powering on needs an Apple TV that is not set up.
            AllStrategiesFailed: If the Apple TV could not be woken.
        """
        client = self._require_client()
        if not on:
            self.log.info("Sending power off command")
            await client.send_key(POWER_OFF_KEY)
            self.state.power = False
            return None

        if not self.config.use_apple_tv:
            self.log.warning("Power on not possible: Apple TV not enabled. Set USE_APPLE_TV.")
            raise ValueError("Power on not possible: Apple TV not enabled. Set USE_APPLE_TV.")
        apple_tv = self.apple_tv()
        if apple_tv is None:
            self.log.warning("Power on not possible: Apple TV not configured.")
            raise ValueError("Power on not possible: Apple TV not configured or not paired.")

        self.log.info("Powering on TV via Apple TV HDMI-CEC...")
        cascade = WakeCascade(self.binary, timeout=self.config.atvremote_timeout)
        attempt = await cascade.wake(*apple_tv)

        # Give CEC time to bring the TV up before switching to the tuner
        await asyncio.sleep(self.config.tuner_key_delay)
        try:
            await client.send_key(TUNER_KEY)
        except VieraError as e:
            self.log.warning(f"Could not switch to TV tuner: {e}")
        self.state.power = True
        return attempt

    # ============= MESSAGES =============

    async def test_connection(self, ip: str | None = None) -> tuple[bool, str]:
        """Check whether a TV answers, for the settings page."""
        ip = ip or self.config.tv_ip
        if not ip:
            return False, "No IP address entered"
        client = VieraClient(ip, port=self.config.tv_port, timeout=self.config.request_timeout)
        if await client.is_available():
            return True, f"OK - TV reachable ({ip})"
        return False, "Not reachable - is the TV on and TV Remote App enabled?"

    async def scan_apple_tv(self, address: str | None = None) -> list[CandidateDevice]:
        """Scan for Apple TVs and remember the first one found."""
        discovery = CompanionDiscovery(self.binary)
        devices = await discovery.scan(address)
        if devices:
            dev = devices[0]
            self.store.save_device(dev.identifier, dev.address, dev.name)
        return devices

    async def cancel_pairing(self) -> None:
        if self._pairing is not None:
            await self._pairing.cancel()
            self._pairing = None

    async def start_pairing(self, protocol: str = "airplay") -> PairingState:
        """Start pairing one protocol, replacing any running session.

        Returns:
            AWAITING_PIN if the Apple TV shows a PIN, PAIRED if no PIN was needed.
        """
        if protocol not in PROTOCOLS:
            raise ValueError(f"Unknown protocol: {protocol}. Available: {list(PROTOCOLS)}")
        identity = self.store.identity(self.config.apple_tv_identity)
        if identity.is_empty:
            raise ValueError("Scan for an Apple TV first")

        await self.cancel_pairing()
        session = PairingSession(
            self.binary, identity, protocol, timeout=self.config.pairing_timeout
        )
        self._pairing = session
        try:
            state = await session.start()
        except Exception:
            if self._pairing is session:
                self._pairing = None
            raise

        if state is PairingState.PAIRED:
            self.store.store(protocol, session.credentials)
            self._pairing = None
        return state

    async def submit_pin(self, pin: str) -> str:
        """Finish the running pairing session with the PIN shown on the Apple TV.

        Returns:
            The protocol that was paired.
        """
        session = self._pairing
        if session is None:
            raise PairingError(
                PairingErrorKind.NO_ACTIVE_SESSION, "No active pairing process. Start pairing first!"
            )
        try:
            credentials = await session.finish(str(pin))
        finally:
            if self._pairing is session:
                self._pairing = None
        self.store.store(session.protocol, credentials)
        return session.protocol
