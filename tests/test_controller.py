"""Tests for the TV controller."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from conftest import FakeRunBinary, ScriptBinary

from config import Config
from controller import REMOTE_KEYS, TVController
from devices.errors import (
    AllStrategiesFailed,
    ExecError,
    ExecErrorKind,
    PairingError,
    PairingErrorKind,
    TransportError,
    TransportErrorKind,
)
from devices.pairing import PairingState
from store import StateStore

SCAN_OUTPUT = """\
       Name: Living Room
    Address: 192.168.1.20
Identifiers:
 - AA:BB:CC:DD:EE:FF
"""


@pytest.fixture
def client():
    client = MagicMock()
    client.host = "192.168.1.50"
    client.is_available = AsyncMock(return_value=True)
    client.get_volume = AsyncMock(return_value=30)
    client.get_mute = AsyncMock(return_value=False)
    client.send_key = AsyncMock()
    client.set_volume = AsyncMock(return_value=42)
    client.set_mute = AsyncMock()
    client.send_channel_number = AsyncMock()
    return client


@pytest.fixture
def store(tmp_path):
    return StateStore(tmp_path / "state.json")


def make_controller(client, store, binary=None, **config) -> TVController:
    config.setdefault("tv_ip", "192.168.1.50")
    config.setdefault("tuner_key_delay", 0)
    return TVController(
        Config(_env_file=None, **config),
        client=client,
        binary=binary or FakeRunBinary([]),
        store=store,
    )


def test_remote_keys_include_digits():
    assert REMOTE_KEYS["d0"] == "NRC_D0-ONOFF"
    assert REMOTE_KEYS["d9"] == "NRC_D9-ONOFF"
    assert REMOTE_KEYS["volumeUp"] == "NRC_VOLUP-ONOFF"


def test_no_tv_ip_means_no_client(store):
    controller = TVController(Config(_env_file=None, tv_ip=""), store=store)
    assert controller.client is None


# =============================================================================
# Polling
# =============================================================================


@pytest.mark.asyncio
async def test_poll_status_reachable(client, store):
    controller = make_controller(client, store)
    state = await controller.poll_status()

    assert state.available is True
    assert state.power is True
    assert state.volume == 30
    assert state.mute is False


@pytest.mark.asyncio
async def test_poll_status_unreachable_skips_volume(client, store):
    client.is_available.return_value = False
    controller = make_controller(client, store)

    state = await controller.poll_status()

    assert state.available is False
    client.get_volume.assert_not_called()


@pytest.mark.asyncio
async def test_poll_status_tolerates_errors(client, store):
    client.get_volume.side_effect = TransportError(TransportErrorKind.TIMEOUT, "timed out")
    controller = make_controller(client, store)

    state = await controller.poll_status()

    assert state.volume is None
    assert state.mute is False


@pytest.mark.asyncio
async def test_start_and_stop(client, store):
    controller = make_controller(client, store, polling_interval=60)
    await controller.start()
    assert controller._poll_task is not None

    await controller.stop()

    assert controller._poll_task is None
    assert controller.state.available is False


# =============================================================================
# Commands
# =============================================================================


@pytest.mark.asyncio
async def test_press_button(client, store):
    await make_controller(client, store).press("volumeUp")
    client.send_key.assert_awaited_once_with("NRC_VOLUP-ONOFF")


@pytest.mark.asyncio
async def test_press_unknown_button(client, store):
    with pytest.raises(ValueError, match="Unknown button"):
        await make_controller(client, store).press("selfDestruct")


@pytest.mark.asyncio
async def test_set_input_case_insensitive(client, store):
    await make_controller(client, store).set_input("hdmi2")
    client.send_key.assert_awaited_once_with("NRC_HDMI2-ONOFF")


@pytest.mark.asyncio
async def test_set_input_unknown(client, store):
    with pytest.raises(ValueError, match="Unknown input"):
        await make_controller(client, store).set_input("VGA")


@pytest.mark.asyncio
async def test_set_volume_records_sent_level(client, store):
    controller = make_controller(client, store)
    assert await controller.set_volume(41.7) == 42
    assert controller.state.volume == 42


@pytest.mark.asyncio
async def test_set_channel(client, store):
    await make_controller(client, store).set_channel(101)
    client.send_channel_number.assert_awaited_once_with(101)


@pytest.mark.asyncio
async def test_set_channel_rejects_zero(client, store):
    with pytest.raises(ValueError):
        await make_controller(client, store).set_channel(0)


@pytest.mark.asyncio
async def test_command_without_tv_ip(store):
    controller = TVController(Config(_env_file=None, tv_ip=""), store=store)
    with pytest.raises(ValueError, match="No TV IP"):
        await controller.set_mute(True)


# =============================================================================
# Power
# =============================================================================


@pytest.mark.asyncio
async def test_power_off(client, store):
    controller = make_controller(client, store)
    await controller.power(False)

    client.send_key.assert_awaited_once_with("NRC_POWER-ONOFF")
    assert controller.state.power is False


@pytest.mark.asyncio
async def test_power_on_without_apple_tv(client, store):
    binary = FakeRunBinary([])
    with pytest.raises(ValueError, match="not enabled"):
        await make_controller(client, store, binary).power(True)
    client.send_key.assert_not_called()
    assert binary.calls == []


@pytest.mark.asyncio
async def test_power_on_unpaired(client, store):
    binary = FakeRunBinary([])
    controller = make_controller(
        client, store, binary, use_apple_tv=True, apple_tv_identifier="AA:BB:CC:DD:EE:FF"
    )
    with pytest.raises(ValueError, match="not configured"):
        await controller.power(True)
    client.send_key.assert_not_called()
    assert binary.calls == []
    assert controller.state.power is False


@pytest.mark.asyncio
async def test_power_on_wakes_apple_tv_then_switches_to_tuner(client, store):
    binary = FakeRunBinary(["ok"])
    store.store("companion", "companion-blob")
    controller = make_controller(
        client, store, binary, use_apple_tv=True, apple_tv_identifier="AA:BB:CC:DD:EE:FF"
    )

    attempt = await controller.power(True)

    assert attempt.label == "companion turn_on"
    assert "companion-blob" in binary.calls[0]
    client.send_key.assert_awaited_once_with("NRC_TV-ONOFF")
    assert controller.state.power is True


@pytest.mark.asyncio
async def test_power_on_all_strategies_fail(client, store):
    fail = ExecError(ExecErrorKind.NON_ZERO_EXIT, "exit 1")
    binary = FakeRunBinary([fail, fail, fail, fail])
    controller = make_controller(
        client,
        store,
        binary,
        use_apple_tv=True,
        apple_tv_address="192.168.1.20",
        apple_tv_companion_credentials="c",
        apple_tv_airplay_credentials="a",
    )

    with pytest.raises(AllStrategiesFailed):
        await controller.power(True)
    client.send_key.assert_not_called()


# =============================================================================
# Messages
# =============================================================================


@pytest.mark.asyncio
async def test_test_connection_without_ip(client, store):
    ok, message = await make_controller(client, store, tv_ip="").test_connection()
    assert ok is False
    assert "No IP" in message


@pytest.mark.asyncio
async def test_scan_apple_tv_stores_first_device(client, store):
    binary = FakeRunBinary([SCAN_OUTPUT])
    devices = await make_controller(client, store, binary).scan_apple_tv()

    assert len(devices) == 1
    assert store.load().apple_tv_identifier == "AA:BB:CC:DD:EE:FF"
    assert store.load().apple_tv_name == "Living Room"


@pytest.mark.asyncio
async def test_start_pairing_requires_scan(client, store):
    with pytest.raises(ValueError, match="Scan"):
        await make_controller(client, store).start_pairing("airplay")


@pytest.mark.asyncio
async def test_pairing_flow_stores_credentials(client, store, pin_binary):
    store.save_device("AA:BB:CC:DD:EE:FF", "192.168.1.20")
    controller = make_controller(client, store, pin_binary)

    assert await controller.start_pairing("companion") is PairingState.AWAITING_PIN
    assert await controller.submit_pin("1234") == "companion"

    assert store.credentials().companion == "deadbeef01"
    assert controller._pairing is None


@pytest.mark.asyncio
async def test_pairing_without_pin_stores_credentials(client, store):
    store.save_device("AA:BB:CC:DD:EE:FF", "")
    binary = ScriptBinary("print('Credentials: feed01')")
    controller = make_controller(client, store, binary)

    assert await controller.start_pairing("mrp") is PairingState.PAIRED
    assert store.credentials().mrp == "feed01"


@pytest.mark.asyncio
async def test_new_pairing_cancels_old_session(client, store, pin_binary):
    store.save_device("AA:BB:CC:DD:EE:FF", "")
    controller = make_controller(client, store, pin_binary)

    await controller.start_pairing("airplay")
    first = controller._pairing
    await controller.start_pairing("companion")

    assert first.state is PairingState.CANCELLED
    assert controller._pairing is not first
    await controller.stop()
    assert controller._pairing is None


@pytest.mark.asyncio
async def test_submit_pin_without_session(client, store):
    with pytest.raises(PairingError) as exc:
        await make_controller(client, store).submit_pin("1234")
    assert exc.value.kind is PairingErrorKind.NO_ACTIVE_SESSION
