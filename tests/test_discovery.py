"""Tests for Apple TV discovery."""

import pytest
from conftest import FakeRunBinary

from devices.discovery import CandidateDevice, CompanionDiscovery, parse_scan_output, scan_args
from devices.errors import ExecError, ExecErrorKind

SCAN_OUTPUT = """\
Scan Results
========================================
       Name: Living Room
   Model/SW: Apple TV 4K (gen 2), tvOS 17.1
    Address: 192.168.1.20
        MAC: AA:BB:CC:DD:EE:FF
 Deep Sleep: False
Identifiers:
 - AA:BB:CC:DD:EE:FF
 - XYZ123
Services:
 - Protocol: Companion, Port: 49153, Credentials: None, Requires Password: False
 - Protocol: AirPlay, Port: 7000, Credentials: None, Requires Password: False

       Name: Bedroom
   Model/SW: Apple TV HD, tvOS 16.6
    Address: 192.168.1.21
        MAC: 11:22:33:44:55:66
Identifiers:
 - 6D797FD3-3538-427E-A47B-A32FC6CF3A69
"""


def test_parse_prefers_mac_identifier():
    text = "Name: Living Room\nIdentifiers:\n  - XYZ123\n  - AA:BB:CC:DD:EE:FF\n\nName: Other\n"
    devices = parse_scan_output(text)
    assert devices[0] == CandidateDevice(
        name="Living Room", identifier="AA:BB:CC:DD:EE:FF", address=""
    )


def test_parse_two_blocks():
    text = "Name: Living Room\nIdentifiers:\n  - AA:BB:CC:DD:EE:FF\n  - XYZ123\n\nAddress: 10.0.0.9\n"
    devices = parse_scan_output(text)

    assert len(devices) == 2
    assert devices[0].identifier == "AA:BB:CC:DD:EE:FF"
    assert devices[1].address == "10.0.0.9"


def test_parse_full_scan_output():
    devices = parse_scan_output(SCAN_OUTPUT)

    assert devices == [
        CandidateDevice(name="Living Room", identifier="AA:BB:CC:DD:EE:FF", address="192.168.1.20"),
        CandidateDevice(
            name="Bedroom",
            identifier="6D797FD3-3538-427E-A47B-A32FC6CF3A69",
            address="192.168.1.21",
        ),
    ]


def test_parse_service_lines_are_not_identifiers():
    devices = parse_scan_output(SCAN_OUTPUT)
    assert all("Protocol" not in d.identifier for d in devices)


def test_parse_falls_back_to_mac_field():
    devices = parse_scan_output("Name: Kitchen\nAddress: 10.0.0.3\nMAC: 11:22:33:44:55:66\n")
    assert devices[0].identifier == "11:22:33:44:55:66"


def test_parse_drops_blocks_without_name_or_identifier():
    assert parse_scan_output("Scan Results\n=====\nDeep Sleep: True\n") == []


def test_parse_empty_output():
    assert parse_scan_output("") == []


def test_scan_args():
    assert scan_args() == ["scan"]
    assert scan_args("192.168.1.20") == ["--scan-hosts", "192.168.1.20", "scan"]


@pytest.mark.asyncio
async def test_scan_runs_atvremote():
    binary = FakeRunBinary([SCAN_OUTPUT])
    devices = await CompanionDiscovery(binary).scan("192.168.1.20")

    assert binary.calls == [["--scan-hosts", "192.168.1.20", "scan"]]
    assert [d.name for d in devices] == ["Living Room", "Bedroom"]


@pytest.mark.asyncio
async def test_scan_failure_propagates():
    binary = FakeRunBinary([ExecError(ExecErrorKind.TIMEOUT, "timed out")])
    with pytest.raises(ExecError):
        await CompanionDiscovery(binary).scan()
