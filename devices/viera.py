"""Panasonic Viera TV controller using the SOAP remote control API."""

import asyncio
import math
import re

import httpx
import structlog

from .soap import PORT, TIMEOUT, SoapCommand, send_soap

log = structlog.get_logger(__name__)

URN_REMOTE = "urn:panasonic-com:service:p00NetworkControl:1"
URN_RENDER = "urn:schemas-upnp-org:service:RenderingControl:1"

REMOTE_PATH = "/nrc/control_0"
RENDER_PATH = "/dmr/control_0"
STATUS_PATH = "/nrc/ddd.xml"

MASTER_CHANNEL = "<InstanceID>0</InstanceID><Channel>Master</Channel>"

_VOLUME_RE = re.compile(r"<CurrentVolume>(\d+)</CurrentVolume>")
_MUTE_RE = re.compile(r"<CurrentMute>(\d+)</CurrentMute>")


def key_token(code: str) -> str:
    """Return the NRC key event token for a key name.

    "VOLUP" and "NRC_VOLUP-ONOFF" both map to "NRC_VOLUP-ONOFF".
    """
    return code if code.startswith("NRC_") else f"NRC_{code}-ONOFF"


class VieraClient:
    """Controller for a single Panasonic Viera TV."""

    DIGIT_DELAY = 0.3  # Seconds between digit presses

    def __init__(
        self,
        host: str,
        *,
        port: int = PORT,
        timeout: float = TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
        logger=None,
    ):
        self._host = host
        self._port = port
        self.timeout = timeout
        self._transport = transport
        self.log = logger or log.bind(host=host)

    @property
    def host(self) -> str:
        return self._host

    @property
    def port(self) -> int:
        return self._port

    async def _request(self, path: str, urn: str, action: str, body: str) -> str:
        command = SoapCommand(path=path, urn=urn, action=action, body=body)
        return await send_soap(
            self._host,
            command,
            port=self._port,
            timeout=self.timeout,
            transport=self._transport,
        )

    async def send_key(self, code: str) -> None:
        """Press a remote control key."""
        token = key_token(code)
        await self._request(
            REMOTE_PATH, URN_REMOTE, "X_SendKey", f"<X_KeyEvent>{token}</X_KeyEvent>"
        )

    async def get_volume(self) -> int | None:
        """Get volume level (0-100), None if the TV did not report one."""
        response = await self._request(RENDER_PATH, URN_RENDER, "GetVolume", MASTER_CHANNEL)
        match = _VOLUME_RE.search(response)
        return int(match.group(1)) if match else None

    async def set_volume(self, level: float) -> int:
        """Set volume, rounded half-up and clamped to 0-100. Returns the level sent."""
        if not math.isfinite(level):
            raise ValueError(f"Invalid volume: {level}")
        level = max(0, min(100, math.floor(level + 0.5)))
        await self._request(
            RENDER_PATH,
            URN_RENDER,
            "SetVolume",
            f"{MASTER_CHANNEL}<DesiredVolume>{level}</DesiredVolume>",
        )
        return level

    async def get_mute(self) -> bool | None:
        """Get mute state, None if the TV did not report one."""
        response = await self._request(RENDER_PATH, URN_RENDER, "GetMute", MASTER_CHANNEL)
        match = _MUTE_RE.search(response)
        return match.group(1) == "1" if match else None

    async def set_mute(self, enable: bool) -> None:
        await self._request(
            RENDER_PATH,
            URN_RENDER,
            "SetMute",
            f"{MASTER_CHANNEL}<DesiredMute>{1 if enable else 0}</DesiredMute>",
        )

    async def is_available(self) -> bool:
        """Check if the TV answers on its control port.

        Never raises: timeouts, refused connections and non-200 answers
        all count as unreachable.
        """
        url = f"http://{self._host}:{self._port}{STATUS_PATH}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(url)
        except (httpx.HTTPError, OSError) as e:
            self.log.debug("TV not reachable", error=str(e) or type(e).__name__)
            return False
        return response.status_code == 200

    async def send_channel_number(self, number: int) -> None:
        """Enter a channel number digit by digit.

        Presses are strictly sequential with DIGIT_DELAY between them,
        otherwise the TV drops digits.
        """
        if number < 0:
            raise ValueError(f"Channel number must not be negative: {number}")
        digits = str(int(number))
        for i, digit in enumerate(digits):
            if i:
                await asyncio.sleep(self.DIGIT_DELAY)
            await self.send_key(f"NRC_D{digit}-ONOFF")
        self.log.debug("Channel number sent", channel=digits)
