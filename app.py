"""Viera Pilot - FastAPI application for Panasonic Viera TVs."""

from functools import lru_cache
from typing import Any

import structlog
from fastapi import FastAPI
from pydantic import BaseModel, Field

from config import get_config
from controller import INPUT_KEYS, REMOTE_KEYS, TVController
from devices.errors import VieraError
from devices.pairing import PairingState
from logging_config import setup_logging

# Configure structured logging
setup_logging()
log = structlog.get_logger(__name__)


# =============================================================================
# Request / Response Models
# =============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(description="Health status")


class CommandResponse(BaseModel):
    """Generic command response."""

    ok: bool = Field(description="Whether the command succeeded")
    error: str | None = Field(default=None, description="Error message if failed")


class MessageResponse(BaseModel):
    """Response for settings page actions."""

    ok: bool = Field(description="Whether the action succeeded")
    message: str = Field(description="Human-readable result")


class StateResponse(BaseModel):
    """Last polled TV state."""

    available: bool = Field(description="TV answers on its control port")
    power: bool = Field(description="Assumed power state")
    volume: int | None = Field(default=None, description="Volume 0-100")
    mute: bool | None = Field(default=None, description="Mute state")


class AppleTVDevice(BaseModel):
    name: str
    identifier: str
    address: str


class ScanResponse(BaseModel):
    """Apple TV scan result."""

    ok: bool
    message: str
    devices: list[AppleTVDevice] = Field(default_factory=list)


class KeyCommand(BaseModel):
    button: str | None = None
    key: str | None = None


class PowerCommand(BaseModel):
    on: bool


class VolumeCommand(BaseModel):
    level: float


class MuteCommand(BaseModel):
    mute: bool


class ChannelCommand(BaseModel):
    number: int


class InputCommand(BaseModel):
    input: str


class ConnectionTest(BaseModel):
    ip: str | None = None


class ScanRequest(BaseModel):
    address: str | None = None


class PairingRequest(BaseModel):
    protocol: str = "airplay"


class PinRequest(BaseModel):
    pin: str | None = None


@lru_cache
def get_controller() -> TVController:
    return TVController(get_config())


app = FastAPI(title="Viera Pilot")


@app.on_event("startup")
async def startup_event() -> None:
    """Validate configuration and start polling the TV."""
    config = get_config()
    config.log_config_status()
    await get_controller().start()


@app.on_event("shutdown")
async def shutdown_event() -> None:
    await get_controller().stop()


async def _run(action: str, coro: Any, **fields: Any) -> CommandResponse:
    """Await a controller command and turn failures into a CommandResponse."""
    try:
        await coro
    except (VieraError, ValueError) as e:
        log.error(f"Error handling {action}: {e}", **fields)
        return CommandResponse(ok=False, error=str(e))
    log.info(f"Remote {action}", **fields)
    return CommandResponse(ok=True)


@app.get("/api/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(status="ok")


@app.get("/api/state", response_model=StateResponse)
async def state() -> StateResponse:
    return StateResponse(**get_controller().state.to_dict())


@app.get("/api/remote/keys")
async def remote_keys() -> dict[str, list[str]]:
    """Known button and input names."""
    return {"buttons": list(REMOTE_KEYS), "inputs": list(INPUT_KEYS)}


# =============================================================================
# Remote Control API
# =============================================================================


@app.post("/api/remote/key", response_model=CommandResponse)
async def remote_key(cmd: KeyCommand) -> CommandResponse:
    """Press a named button ("volumeUp") or send a raw key ("VOLUP")."""
    controller = get_controller()
    if cmd.button:
        return await _run("key", controller.press(cmd.button), button=cmd.button)
    if cmd.key:
        return await _run("key", controller.send_key(cmd.key), key=cmd.key)
    return CommandResponse(ok=False, error="Button or key required")


@app.post("/api/remote/power", response_model=CommandResponse)
async def remote_power(cmd: PowerCommand) -> CommandResponse:
    """Power on through the Apple TV, power off through the TV itself."""
    return await _run("power", get_controller().power(cmd.on), on=cmd.on)


@app.post("/api/remote/volume", response_model=CommandResponse)
async def remote_volume(cmd: VolumeCommand) -> CommandResponse:
    return await _run("volume", get_controller().set_volume(cmd.level), level=cmd.level)


@app.post("/api/remote/mute", response_model=CommandResponse)
async def remote_mute(cmd: MuteCommand) -> CommandResponse:
    return await _run("mute", get_controller().set_mute(cmd.mute), mute=cmd.mute)


@app.post("/api/remote/channel", response_model=CommandResponse)
async def remote_channel(cmd: ChannelCommand) -> CommandResponse:
    return await _run("channel", get_controller().set_channel(cmd.number), number=cmd.number)


@app.post("/api/remote/input", response_model=CommandResponse)
async def remote_input(cmd: InputCommand) -> CommandResponse:
    return await _run("input", get_controller().set_input(cmd.input), input=cmd.input)


# =============================================================================
# Settings Actions
# =============================================================================


@app.post("/api/settings/test_connection", response_model=MessageResponse)
async def test_connection(req: ConnectionTest) -> MessageResponse:
    ok, message = await get_controller().test_connection(req.ip)
    return MessageResponse(ok=ok, message=message)


@app.post("/api/appletv/scan", response_model=ScanResponse)
async def appletv_scan(req: ScanRequest) -> ScanResponse:
    """Scan for Apple TVs; the first one found is remembered."""
    try:
        devices = await get_controller().scan_apple_tv(req.address)
    except VieraError as e:
        return ScanResponse(ok=False, message=f"Scan failed: {e}")

    if not devices:
        return ScanResponse(ok=False, message="No Apple TV found")
    found = ", ".join(f"{d.name} ({d.address})" for d in devices)
    return ScanResponse(
        ok=True,
        message=f"Found: {found}",
        devices=[AppleTVDevice(name=d.name, identifier=d.identifier, address=d.address) for d in devices],
    )


@app.post("/api/appletv/pair", response_model=MessageResponse)
async def appletv_pair(req: PairingRequest) -> MessageResponse:
    """Start pairing. The Apple TV shows a PIN unless the protocol needs none."""
    try:
        pairing_state = await get_controller().start_pairing(req.protocol)
    except (VieraError, ValueError) as e:
        return MessageResponse(ok=False, message=f"Pairing failed: {e}")

    if pairing_state is PairingState.PAIRED:
        return MessageResponse(ok=True, message="Pairing successful (no PIN needed)!")
    return MessageResponse(
        ok=True, message="PIN is shown on the Apple TV. Please enter and submit it."
    )


@app.post("/api/appletv/pin", response_model=MessageResponse)
async def appletv_pin(req: PinRequest) -> MessageResponse:
    if not req.pin:
        return MessageResponse(ok=False, message="No PIN entered")
    try:
        protocol = await get_controller().submit_pin(req.pin)
    except VieraError as e:
        return MessageResponse(ok=False, message=f"PIN failed: {e}")
    return MessageResponse(ok=True, message=f"{protocol} pairing successful! Credentials saved.")


@app.post("/api/appletv/pair/cancel", response_model=CommandResponse)
async def appletv_pair_cancel() -> CommandResponse:
    return await _run("cancel_pairing", get_controller().cancel_pairing())


if __name__ == "__main__":
    import uvicorn

    print("Starting Viera Pilot at http://localhost:5001")
    uvicorn.run(app, host="0.0.0.0", port=5001)
