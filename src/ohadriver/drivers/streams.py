"""
Process and stream sources for the runner.

The runner never touches subprocess directly: it asks a spawner for a
SpawnedProcess and reads from its StreamSources. Tests swap in fakes.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import sys
from dataclasses import dataclass
from typing import BinaryIO, Callable, Protocol

logger = logging.getLogger(__name__)

CHUNK_SIZE = 65536


class StreamSource(Protocol):
    """Read side of one output stream."""

    def read_available(self) -> bytes:
        """Return whatever bytes are ready now, without blocking."""
        ...

    def read_rest(self) -> bytes:
        """Block until end of stream and return everything left."""
        ...

    def close(self) -> None:
        ...


class ProcessHandle(Protocol):
    """The subset of subprocess.Popen the runner relies on."""
    pid: int
    returncode: int | None

    def poll(self) -> int | None: ...

    def wait(self, timeout: float | None = None) -> int: ...

    def terminate(self) -> None: ...

    def kill(self) -> None: ...


@dataclass
class SpawnedProcess:
    process: ProcessHandle
    stdout: StreamSource
    stderr: StreamSource


Spawner = Callable[[str], SpawnedProcess]


class PipeStream:
    """
    Non-blocking reader over a pipe file object.
    """

    def __init__(self, pipe: BinaryIO, chunk_size: int = CHUNK_SIZE):
        self._pipe = pipe
        self._fd = pipe.fileno()
        self._chunk_size = chunk_size
        self._eof = False
        os.set_blocking(self._fd, False)

    @property
    def closed(self) -> bool:
        return self._pipe.closed

    def read_available(self) -> bytes:
        if self._eof or self._pipe.closed:
            return b""

        chunks = []
        while True:
            try:
                data = os.read(self._fd, self._chunk_size)
            except BlockingIOError:
                break
            if not data:
                self._eof = True
                break
            chunks.append(data)
        return b"".join(chunks)

    def read_rest(self) -> bytes:
        if self._eof or self._pipe.closed:
            return b""

        # Only called once the writer is gone, so this terminates
        os.set_blocking(self._fd, True)
        chunks = []
        while True:
            data = os.read(self._fd, self._chunk_size)
            if not data:
                break
            chunks.append(data)
        self._eof = True
        return b"".join(chunks)

    def close(self):
        if not self._pipe.closed:
            self._pipe.close()


def split_command(command: str, platform: str | None = None) -> list[str] | str:
    """
    Turn a quoted command string into what Popen expects.

    POSIX strings are split with shell rules; Windows strings are handed
    to CreateProcess untouched.
    """
    platform = platform or sys.platform
    if platform.startswith("win"):
        return command
    return shlex.split(command)


def popen_spawner(command: str) -> SpawnedProcess:
    """
    Start ``command`` with all three standard streams on pipes.

    Raises:
        OSError: If the process cannot be created
        ValueError: If the command cannot be split
    """
    args = split_command(command)
    process = subprocess.Popen(
        args,
        stdin=subprocess.PIPE,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
    )
    # Nothing is ever written to the load generator
    process.stdin.close()

    try:
        stdout = PipeStream(process.stdout)
        stderr = PipeStream(process.stderr)
    except Exception as e:
        # Nothing else holds the child yet, so reap it here
        process.kill()
        process.wait()
        process.stdout.close()
        process.stderr.close()
        raise OSError(f"Could not set up output pipes for pid {process.pid}: {e}") from e

    logger.debug(f"Spawned pid {process.pid}: {command}")
    return SpawnedProcess(process=process, stdout=stdout, stderr=stderr)
