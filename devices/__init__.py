"""Panasonic Viera TV control and Apple TV wake helpers."""

from .atvremote import ControlBinary, ProcessResult
from .companion import PROTOCOLS, CompanionIdentity, Credentials
from .discovery import CandidateDevice, CompanionDiscovery, parse_scan_output
from .pairing import PairingSession, PairingState
from .viera import VieraClient
from .wake import WAKE_STRATEGIES, WakeAttemptResult, WakeCascade

__all__ = [
    "PROTOCOLS",
    "WAKE_STRATEGIES",
    "CandidateDevice",
    "CompanionDiscovery",
    "CompanionIdentity",
    "ControlBinary",
    "Credentials",
    "PairingSession",
    "PairingState",
    "ProcessResult",
    "VieraClient",
    "WakeAttemptResult",
    "WakeCascade",
    "parse_scan_output",
]
