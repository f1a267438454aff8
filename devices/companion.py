"""Apple TV identity and pairing credentials."""

from dataclasses import dataclass

PROTOCOLS = ("mrp", "airplay", "companion")


@dataclass(frozen=True)
class CompanionIdentity:
    """How to find the Apple TV: pyatv identifier and/or IP address."""

    identifier: str = ""
    address: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.identifier and not self.address

    def args(self) -> list[str]:
        """atvremote arguments selecting this device."""
        args = []
        if self.identifier:
            args += ["--id", self.identifier]
        if self.address:
            args += ["--address", self.address]
        return args


@dataclass(frozen=True)
class Credentials:
    """Opaque per-protocol credential blobs produced by pairing.

    The blobs are passed through to atvremote untouched.
    """

    mrp: str = ""
    airplay: str = ""
    companion: str = ""

    def get(self, protocol: str) -> str:
        if protocol not in PROTOCOLS:
            raise ValueError(f"Unknown protocol: {protocol}")
        return getattr(self, protocol)

    @property
    def can_wake(self) -> bool:
        return bool(self.airplay or self.companion)

    def args(self, protocols: tuple[str, ...] = PROTOCOLS) -> list[str]:
        """Credential arguments for the given protocols, empty ones omitted."""
        args = []
        for protocol in protocols:
            blob = self.get(protocol)
            if blob:
                args += [f"--{protocol}-credentials", blob]
        return args
