"""Shared fakes for atvremote."""

import asyncio
import sys

import pytest

from devices.atvremote import ControlBinary, ProcessResult


class ScriptBinary(ControlBinary):
    """Runs a Python snippet in place of atvremote for interactive sessions."""

    def __init__(self, script: str):
        super().__init__(search_dirs=[], installers=[])
        self.script = script
        self.spawned_args: list[str] | None = None

    async def spawn(self, args: list[str]) -> asyncio.subprocess.Process:
        self.spawned_args = args
        return await asyncio.create_subprocess_exec(
            sys.executable,
            "-u",
            "-c",
            self.script,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )


class FakeRunBinary(ControlBinary):
    """Returns canned results for one-shot runs, in call order.

    An outcome is either stdout text or an exception to raise.
    """

    def __init__(self, outcomes: list[str | Exception]):
        super().__init__(search_dirs=[], installers=[])
        self.outcomes = list(outcomes)
        self.calls: list[list[str]] = []

    async def run(self, args: list[str], timeout: float) -> ProcessResult:
        self.calls.append(args)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return ProcessResult(stdout=outcome, stderr="")


PIN_SCRIPT = """
import sys
sys.stdout.write("Enter PIN: ")
sys.stdout.flush()
pin = sys.stdin.readline().strip()
print("Got " + pin)
print("Credentials: deadbeef01")
"""


@pytest.fixture
def pin_binary() -> ScriptBinary:
    return ScriptBinary(PIN_SCRIPT)


class SlowScriptBinary(ScriptBinary):
    """A ScriptBinary whose spawn first stalls, like a binary being installed."""

    def __init__(self, script: str, delay: float):
        super().__init__(script)
        self.delay = delay
        self.proc: asyncio.subprocess.Process | None = None

    async def spawn(self, args: list[str]) -> asyncio.subprocess.Process:
        await asyncio.sleep(self.delay)
        self.proc = await super().spawn(args)
        return self.proc
