"""Locating, installing and running the pyatv `atvremote` tool."""

import asyncio
import contextlib
import os
import shutil
import sys
from dataclasses import dataclass
from pathlib import Path

import structlog

from .errors import ExecError, ExecErrorKind, ProvisioningError

log = structlog.get_logger(__name__)

SEARCH_DIRS = [
    "/usr/local/bin",
    "/usr/bin",
    "/home/iobroker/.local/bin",
    "/root/.local/bin",
    "/opt/iobroker/.local/bin",
    "/snap/bin",
]

# Tried in order until one succeeds
INSTALLERS = [
    ("pipx", ["pipx", "install", "pyatv"]),
    ("pip", [sys.executable, "-m", "pip", "install", "--user", "pyatv"]),
    ("pip3", ["pip3", "install", "--user", "pyatv"]),
]

INSTALL_TIMEOUT = 300.0
OUTPUT_LIMIT = 500


@dataclass(frozen=True)
class ProcessResult:
    """Captured output of a finished process."""

    stdout: str
    stderr: str
    returncode: int = 0


def truncate(text: str, limit: int = OUTPUT_LIMIT) -> str:
    text = text.strip()
    return text if len(text) <= limit else text[:limit] + "..."


def _redact(args: list[str]) -> str:
    # Credentials are long, don't spill them into logs
    return " ".join(a if len(a) <= 20 else a[:20] + "..." for a in args)


async def terminate(proc: asyncio.subprocess.Process, grace: float = 2.0) -> None:
    """Stop a process, escalating to SIGKILL. A no-op on exited processes."""
    if proc.returncode is not None:
        return
    with contextlib.suppress(ProcessLookupError):
        proc.terminate()
    try:
        await asyncio.wait_for(proc.wait(), timeout=grace)
    except TimeoutError:
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
        await proc.wait()


class ControlBinary:
    """Owns the location of the atvremote binary and runs it.

    The resolved path is cached per instance, so one controller never
    searches the filesystem twice.
    """

    def __init__(
        self,
        name: str = "atvremote",
        *,
        search_dirs: list[str] | None = None,
        home_root: str = "/home",
        installers: list[tuple[str, list[str]]] | None = None,
        auto_install: bool = True,
        logger=None,
    ):
        self.name = name
        self.search_dirs = list(SEARCH_DIRS if search_dirs is None else search_dirs)
        self.home_root = Path(home_root)
        self.installers = list(INSTALLERS if installers is None else installers)
        self.auto_install = auto_install
        self.log = logger or log
        self._path: str | None = None

    @property
    def path(self) -> str | None:
        return self._path

    def _candidates(self) -> list[Path]:
        candidates = [Path(d) / self.name for d in self.search_dirs]
        with contextlib.suppress(OSError):
            for user_dir in sorted(self.home_root.iterdir()):
                candidates.append(user_dir / ".local" / "bin" / self.name)
        return candidates

    def locate(self) -> str | None:
        """Find the binary, first executable match wins."""
        for candidate in self._candidates():
            if candidate.is_file() and os.access(candidate, os.X_OK):
                return str(candidate)
        return shutil.which(self.name)

    async def provision(self) -> str:
        """Install pyatv with the first installer that works.

        Raises:
            ProvisioningError: Naming every method that was tried.
        """
        attempted = []
        for label, cmd in self.installers:
            attempted.append(label)
            self.log.info("Installing pyatv", method=label)
            try:
                proc = await asyncio.create_subprocess_exec(
                    *cmd, stdout=asyncio.subprocess.PIPE, stderr=asyncio.subprocess.STDOUT
                )
            except OSError as e:
                self.log.warning("Installer not available", method=label, error=str(e))
                continue
            try:
                stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=INSTALL_TIMEOUT)
            except TimeoutError:
                await terminate(proc)
                self.log.warning("Installer timed out", method=label)
                continue
            if proc.returncode != 0:
                self.log.warning(
                    "Installer failed",
                    method=label,
                    returncode=proc.returncode,
                    output=truncate(stdout.decode(errors="replace")),
                )
                continue
            path = self.locate()
            if path:
                self.log.info("pyatv installed", method=label, path=path)
                self._path = path
                return path
            self.log.warning("Installer succeeded but binary not found", method=label)
        raise ProvisioningError(attempted)

    async def ensure(self) -> str:
        """Return the binary path, installing pyatv if needed."""
        if self._path is None:
            self._path = self.locate()
        if self._path is None:
            if not self.auto_install:
                raise ExecError(ExecErrorKind.SPAWN_FAILURE, f"{self.name} not found")
            self.log.warning("atvremote not found, trying to install pyatv")
            self._path = await self.provision()
        return self._path

    async def _exec(self, args: list[str], **kwargs) -> asyncio.subprocess.Process:
        path = await self.ensure()
        self.log.debug("Executing", cmd=f"{path} {_redact(args)}")
        return await asyncio.create_subprocess_exec(path, *args, **kwargs)

    async def _spawn_with_retry(self, args: list[str], **kwargs) -> asyncio.subprocess.Process:
        try:
            return await self._exec(args, **kwargs)
        except OSError as e:
            # Binary vanished or is broken: reinstall once, then give up
            self.log.warning("Could not start atvremote", error=str(e))
            self._path = None
            if not self.auto_install:
                raise ExecError(
                    ExecErrorKind.SPAWN_FAILURE, f"Could not start {self.name}: {e}"
                ) from e
            self._path = await self.provision()
            try:
                return await self._exec(args, **kwargs)
            except OSError as e2:
                raise ExecError(
                    ExecErrorKind.SPAWN_FAILURE, f"Could not start {self.name}: {e2}"
                ) from e2

    async def run(self, args: list[str], timeout: float) -> ProcessResult:
        """Run atvremote once and capture its output.

        Args:
            args: Command line arguments (without the binary)
            timeout: Seconds before the process is killed

        Raises:
            ExecError: On spawn failure, timeout or non-zero exit.
            ProvisioningError: If the binary is missing and cannot be installed.
        """
        proc = await self._spawn_with_retry(
            args, stdout=asyncio.subprocess.PIPE, stderr=asyncio.subprocess.PIPE
        )
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except TimeoutError:
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            await proc.wait()
            raise ExecError(
                ExecErrorKind.TIMEOUT, f"{self.name} timed out after {timeout:g}s"
            ) from None

        result = ProcessResult(
            stdout=stdout.decode(errors="replace"),
            stderr=stderr.decode(errors="replace"),
            returncode=proc.returncode or 0,
        )
        if proc.returncode != 0:
            output = truncate(result.stderr or result.stdout)
            raise ExecError(
                ExecErrorKind.NON_ZERO_EXIT,
                f"{self.name} exited with {proc.returncode}" + (f": {output}" if output else ""),
                output=output,
                returncode=proc.returncode,
            )
        return result

    async def spawn(self, args: list[str]) -> asyncio.subprocess.Process:
        """Start a long-lived interactive process.

        stdin is a pipe, stderr is merged into stdout.
        """
        return await self._spawn_with_retry(
            args,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )

