"""Waking the Apple TV so that HDMI-CEC turns the TV on."""

from dataclasses import dataclass

import structlog

from .atvremote import ControlBinary, truncate
from .companion import CompanionIdentity, Credentials
from .errors import AllStrategiesFailed, ExecError

log = structlog.get_logger(__name__)

WAKE_TIMEOUT = 20.0
TV_APP = "com.apple.TVWatchList"


@dataclass(frozen=True)
class WakeStrategy:
    """One atvremote command that may wake the Apple TV."""

    label: str
    command: str
    credential_protocols: tuple[str, ...]
    required: str | None = None  # Protocol whose credentials must be present


@dataclass(frozen=True)
class WakeAttemptResult:
    label: str
    succeeded: bool
    raw_output: str = ""


# Strongest signal first. Launching an app or holding home only wakes the
# box as a side effect, so they come last.
WAKE_STRATEGIES = (
    WakeStrategy("companion turn_on", "turn_on", ("companion",), required="companion"),
    WakeStrategy("airplay turn_on", "turn_on", ("mrp", "airplay")),
    WakeStrategy("launch TV app", f"launch_app={TV_APP}", ("companion",), required="companion"),
    WakeStrategy("home_hold", "home_hold", ("mrp", "airplay")),
)


def build_args(
    strategy: WakeStrategy, identity: CompanionIdentity, credentials: Credentials
) -> list[str]:
    """Build the atvremote argument list for one strategy."""
    return [
        *identity.args(),
        *credentials.args(strategy.credential_protocols),
        strategy.command,
    ]


class WakeCascade:
    """Tries each wake strategy in order until one succeeds."""

    def __init__(
        self,
        binary: ControlBinary,
        *,
        strategies: tuple[WakeStrategy, ...] = WAKE_STRATEGIES,
        timeout: float = WAKE_TIMEOUT,
        logger=None,
    ):
        self.binary = binary
        self.strategies = strategies
        self.timeout = timeout
        self.log = logger or log
        self.attempts: list[WakeAttemptResult] = []

    async def _attempt(
        self, strategy: WakeStrategy, identity: CompanionIdentity, credentials: Credentials
    ) -> WakeAttemptResult:
        if strategy.required and not credentials.get(strategy.required):
            return WakeAttemptResult(
                strategy.label, False, f"no {strategy.required} credentials"
            )
        try:
            result = await self.binary.run(
                build_args(strategy, identity, credentials), timeout=self.timeout
            )
        except ExecError as e:
            return WakeAttemptResult(strategy.label, False, e.output or str(e))
        return WakeAttemptResult(strategy.label, True, truncate(result.stdout))

    async def wake(
        self, identity: CompanionIdentity, credentials: Credentials
    ) -> WakeAttemptResult:
        """Wake the Apple TV.

        Returns:
            The attempt that succeeded.

        Raises:
            AllStrategiesFailed: If no strategy succeeded.
        """
        if identity.is_empty:
            raise ValueError("Apple TV identifier or address required")

        self.attempts = []
        for strategy in self.strategies:
            attempt = await self._attempt(strategy, identity, credentials)
            self.attempts.append(attempt)
            if attempt.succeeded:
                self.log.info("Apple TV wake sent", strategy=attempt.label)
                return attempt
            self.log.warning(
                "Wake strategy failed, trying next",
                strategy=attempt.label,
                output=attempt.raw_output,
            )

        last_output = self.attempts[-1].raw_output if self.attempts else ""
        raise AllStrategiesFailed(len(self.attempts), last_output)
