"""Apple TV discovery via `atvremote scan`."""

import re
from dataclasses import dataclass

import structlog

from .atvremote import ControlBinary

log = structlog.get_logger(__name__)

SCAN_TIMEOUT = 30.0

MAC_RE = re.compile(r"^[0-9A-Fa-f]{2}(?::[0-9A-Fa-f]{2}){5}$")
SEPARATOR_RE = re.compile(r"^\s*(?:[=\-]{3,})\s*$")


@dataclass
class CandidateDevice:
    """An Apple TV found by a scan."""

    name: str
    identifier: str
    address: str


def scan_args(address: str | None = None) -> list[str]:
    """Directed scan when an address is given, broadcast otherwise.

    Directed scans work where multicast does not, e.g. in Docker
    containers without host networking.
    """
    if address:
        return ["--scan-hosts", address, "scan"]
    return ["scan"]


def _split_blocks(text: str) -> list[list[str]]:
    blocks: list[list[str]] = []
    current: list[str] = []
    for line in text.splitlines():
        if not line.strip() or SEPARATOR_RE.match(line):
            if current:
                blocks.append(current)
                current = []
            continue
        current.append(line)
    if current:
        blocks.append(current)
    return blocks


def _pick_identifier(identifiers: list[str], mac: str) -> str:
    for identifier in identifiers:
        if MAC_RE.match(identifier):
            return identifier
    if identifiers:
        return identifiers[0]
    return mac


def _parse_block(lines: list[str]) -> CandidateDevice | None:
    name = address = mac = ""
    identifiers: list[str] = []
    in_identifiers = False

    for raw in lines:
        line = raw.strip()
        if line.startswith("- ") or line == "-":
            if in_identifiers:
                identifiers.append(line[1:].strip())
            continue
        in_identifiers = False
        if line.startswith("Name:"):
            name = line[len("Name:") :].strip()
        elif line.startswith("Address:"):
            address = line[len("Address:") :].strip()
        elif line.startswith("MAC:"):
            mac = line[len("MAC:") :].strip()
        elif line.startswith("Identifiers:"):
            in_identifiers = True

    identifier = _pick_identifier([i for i in identifiers if i], mac)
    if not name and not identifier and not address:
        return None
    return CandidateDevice(name=name, identifier=identifier, address=address)


def parse_scan_output(text: str) -> list[CandidateDevice]:
    """Parse `atvremote scan` output into candidate devices.

    The output is a series of blocks separated by blank lines or a rule
    of "=" characters, each with labelled fields:

               Name: Living Room
           Address: 10.0.0.10
               MAC: AA:BB:CC:DD:EE:FF
        Identifiers:
         - AA:BB:CC:DD:EE:FF
         - 6D797FD3-3538-427E-A47B-A32FC6CF3A69

    A MAC formatted identifier is preferred, then the first identifier,
    then the MAC field.
    """
    devices = []
    for block in _split_blocks(text):
        device = _parse_block(block)
        if device:
            devices.append(device)
    return devices


class CompanionDiscovery:
    """Finds Apple TVs on the network."""

    def __init__(self, binary: ControlBinary, *, timeout: float = SCAN_TIMEOUT, logger=None):
        self.binary = binary
        self.timeout = timeout
        self.log = logger or log

    async def scan(self, address: str | None = None) -> list[CandidateDevice]:
        """Scan for Apple TVs, optionally only at one address.

        Raises:
            ExecError: If atvremote fails or times out.
        """
        self.log.info("Scanning for Apple TVs", address=address or "broadcast")
        result = await self.binary.run(scan_args(address), timeout=self.timeout)
        devices = parse_scan_output(result.stdout)
        for device in devices:
            self.log.info(
                "Discovered Apple TV",
                name=device.name,
                identifier=device.identifier,
                address=device.address,
            )
        self.log.info(f"Scan complete: {len(devices)} Apple TVs found")
        return devices
