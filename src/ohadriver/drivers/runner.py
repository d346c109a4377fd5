"""
Cooperative process runner.

Runs one external command at a time without a background thread. The
host's event loop calls poll() (or is_running()) on a fixed cadence; every
callback fires synchronously inside that call.

    IDLE -> STARTING -> RUNNING -> COMPLETED | CANCELLED | TIMED_OUT

Terminal states keep the frozen output and exit code around for
inspection; the runner is ready for a new start() straight away.
"""

from __future__ import annotations

import codecs
import logging
import time
from dataclasses import dataclass, field
from typing import Callable

from ohadriver.core.errors import ErrorKind, ErrorRecord, OhaDriverError
from ohadriver.drivers.base import (
    CANCELLED_EXIT_CODE,
    TIMEOUT_EXIT_CODE,
    ExecutionResult,
    RunState,
)
from ohadriver.drivers.streams import (
    ProcessHandle,
    Spawner,
    StreamSource,
    popen_spawner,
)
from ohadriver.errors.classifier import ErrorClassifier, process_timeout

logger = logging.getLogger(__name__)

OutputCallback = Callable[[str], None]
CompletionCallback = Callable[[int, "ErrorRecord | None"], None]

STDOUT = "stdout"
STDERR = "stderr"


@dataclass
class RunnerConfig:
    """Configuration for the process runner."""

    # Seconds to wait after a graceful termination request before killing
    grace_period: float = 0.1

    # Seconds between polls in the blocking helpers (wait, run_sync)
    poll_interval: float = 0.1

    # Encoding of the process output
    encoding: str = "utf-8"


@dataclass
class ExecutionHandle:
    """
    Everything that belongs to one live run.

    Owned by exactly one ProcessRunner; dropped once the process has been
    reaped and its pipes closed.
    """
    command: str
    process: ProcessHandle
    stdout: StreamSource
    stderr: StreamSource
    started_at: float
    timeout: float = 0  # 0 = unbounded
    on_output: OutputCallback | None = None
    on_error: OutputCallback | None = None
    on_completion: CompletionCallback | None = None
    encoding: str = "utf-8"
    state: RunState = RunState.STARTING
    buffer: list[str] = field(default_factory=list)
    exit_code: int | None = None
    error: ErrorRecord | None = None
    notified: bool = False
    _decoders: dict = field(init=False, repr=False)

    def __post_init__(self):
        factory = codecs.getincrementaldecoder(self.encoding)
        self._decoders = {
            STDOUT: factory(errors="replace"),
            STDERR: factory(errors="replace"),
        }

    @property
    def is_running(self) -> bool:
        return self.state is RunState.RUNNING

    @property
    def output(self) -> str:
        return "".join(self.buffer)

    def is_timed_out(self, now: float) -> bool:
        return self.timeout > 0 and now - self.started_at >= self.timeout

    def decode(self, stream: str, data: bytes, final: bool = False) -> str:
        return self._decoders[stream].decode(data, final)


class ProcessRunner:
    """
    Starts, observes, cancels and times out a single external process.

    Output arrives through ``on_output`` (stdout) and ``on_error``
    (stderr; folded into ``on_output`` when no error handler is given) in
    chunks of arbitrary size. ``on_completion(exit_code, error)`` fires
    exactly once per run: with the real exit code, TIMEOUT_EXIT_CODE or
    CANCELLED_EXIT_CODE. ``error`` is the classified ErrorRecord for a
    failed or timed out run, None otherwise.
    """

    def __init__(
        self,
        config: RunnerConfig | None = None,
        classifier: ErrorClassifier | None = None,
        spawner: Spawner | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Args:
            config: Runner configuration
            classifier: Classifies non-zero exits
            spawner: Creates the process and its stream sources
            clock: Monotonic clock in seconds
            sleep: Used for the termination grace period and blocking waits
        """
        self.config = config or RunnerConfig()
        self.classifier = classifier or ErrorClassifier()
        self.spawner = spawner or popen_spawner
        self._clock = clock
        self._sleep = sleep

        self._handle: ExecutionHandle | None = None
        self._state = RunState.IDLE
        self._output = ""
        self._exit_code: int | None = None
        self._last_error: ErrorRecord | None = None
        self._command = ""
        self._started_at: float | None = None
        self._finished_at: float | None = None

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> RunState:
        return self._handle.state if self._handle else self._state

    @property
    def output(self) -> str:
        """Output accumulated so far (frozen once the run has ended)."""
        return self._handle.output if self._handle else self._output

    @property
    def exit_code(self) -> int | None:
        return self._exit_code

    @property
    def last_error(self) -> ErrorRecord | None:
        return self._last_error

    @property
    def command(self) -> str:
        return self._command

    @property
    def pid(self) -> int | None:
        return self._handle.process.pid if self._handle else None

    @property
    def elapsed(self) -> float:
        if self._started_at is None:
            return 0.0
        end = self._finished_at if self._finished_at is not None else self._clock()
        return end - self._started_at

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(
        self,
        command: str,
        on_output: OutputCallback | None = None,
        on_error: OutputCallback | None = None,
        on_completion: CompletionCallback | None = None,
        timeout: float = 0,
    ) -> bool:
        """
        Start a run.

        Args:
            command: Quoted command line
            on_output: Receives stdout chunks
            on_error: Receives stderr chunks
            on_completion: Receives (exit_code, error) once the run ends
            timeout: Seconds before the run is timed out (0 = unbounded)

        Returns:
            True once the process is running

        Raises:
            OhaDriverError: ALREADY_RUNNING, INVALID_ARGUMENTS or
                PROCESS_START_FAILED
        """
        if self._handle is not None:
            raise OhaDriverError.of(
                ErrorKind.ALREADY_RUNNING,
                "A test is already running. Stop the current test before starting a new one.",
                "Wait for the current test to finish or stop it first",
                command=command,
            )

        invalid = self.classifier.validate_command(command)
        if invalid is not None:
            raise OhaDriverError(invalid)

        self._state = RunState.STARTING
        self._output = ""
        self._exit_code = None
        self._last_error = None
        self._command = command
        self._finished_at = None

        try:
            spawned = self.spawner(command)
        except (OSError, ValueError) as e:
            self._state = RunState.IDLE
            logger.error(f"Failed to start process: {e}")
            raise OhaDriverError.of(
                ErrorKind.PROCESS_START_FAILED,
                f"Failed to start process: {e}",
                "Check if oha is properly installed and accessible",
                command=command,
                os_error=str(e),
            ) from e

        self._started_at = self._clock()
        self._handle = ExecutionHandle(
            command=command,
            process=spawned.process,
            stdout=spawned.stdout,
            stderr=spawned.stderr,
            started_at=self._started_at,
            timeout=timeout or 0,
            on_output=on_output,
            on_error=on_error,
            on_completion=on_completion,
            encoding=self.config.encoding,
            state=RunState.RUNNING,
        )

        logger.info(f"Started pid {spawned.process.pid} (timeout={timeout or 'none'})")
        return True

    def poll(self) -> RunState:
        """
        Advance the run without blocking.

        Reads whatever output is ready, detects timeout and process exit,
        and fires the matching callbacks.

        Returns:
            The state after this step
        """
        handle = self._handle
        if handle is None:
            return self._state

        if handle.is_timed_out(self._clock()):
            self._time_out(handle)
            return self.state

        for stream, source in ((STDOUT, handle.stdout), (STDERR, handle.stderr)):
            # A callback may have stopped the run
            if not handle.is_running:
                break
            self._dispatch(handle, stream, source.read_available())

        if handle.is_running:
            exit_code = handle.process.poll()
            if exit_code is not None:
                self._complete(handle, exit_code)

        return self.state

    def is_running(self) -> bool:
        """
        Whether the run is still going.

        Shares poll()'s timeout and exit detection, so it may end the run
        (and fire callbacks) as a side effect.
        """
        return self.poll() is RunState.RUNNING

    def stop(self) -> bool:
        """
        Cancel the current run.

        Requests graceful termination, escalates to a kill after the grace
        period, then reaps the process and closes its pipes.

        Returns:
            True (also when nothing was running)
        """
        handle = self._handle
        if handle is None or not handle.is_running:
            return True

        logger.info(f"Stopping pid {handle.process.pid}")
        handle.state = RunState.CANCELLED
        handle.exit_code = CANCELLED_EXIT_CODE

        try:
            self._terminate(handle.process)
            self._drain(handle)
        finally:
            self._release(handle)
        self._notify(handle)
        return True

    def wait(self, timeout: float = 0) -> bool:
        """
        Block until the run ends, polling on the configured cadence.

        Args:
            timeout: Maximum seconds to wait (0 = no limit)

        Returns:
            True if the run ended, False if the wait timed out
        """
        started = self._clock()
        while self.poll() is RunState.RUNNING:
            if timeout > 0 and self._clock() - started >= timeout:
                return False
            self._sleep(self.config.poll_interval)
        return True

    def run_sync(self, command: str, timeout: float = 0) -> ExecutionResult:
        """
        Run a command to the end and return its result.

        Raises:
            OhaDriverError: If the run cannot be started
        """
        self.start(command, timeout=timeout)
        self.wait()
        return ExecutionResult(
            state=self.state,
            exit_code=self._exit_code,
            output=self._output,
            duration_ms=self.elapsed * 1000,
            error=self._last_error,
        )

    def close(self):
        """Stop any live run."""
        self.stop()

    def __enter__(self) -> "ProcessRunner":
        return self

    def __exit__(self, *exc_info):
        self.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _dispatch(self, handle: ExecutionHandle, stream: str, data: bytes, final: bool = False):
        """Append decoded output to the buffer and hand it to the caller."""
        text = handle.decode(stream, data, final)
        if not text:
            return

        handle.buffer.append(text)

        if stream == STDOUT:
            callback = handle.on_output
        else:
            callback = handle.on_error or handle.on_output

        if callback is not None:
            callback(text)

    def _drain(self, handle: ExecutionHandle):
        # Only called once the process is gone, so both pipes reach end of stream
        for stream, source in ((STDOUT, handle.stdout), (STDERR, handle.stderr)):
            self._dispatch(handle, stream, source.read_rest())
            self._dispatch(handle, stream, b"", final=True)

    def _complete(self, handle: ExecutionHandle, exit_code: int):
        handle.exit_code = exit_code
        try:
            self._drain(handle)
        finally:
            if handle.state is RunState.RUNNING:
                handle.state = RunState.COMPLETED
                if exit_code != 0:
                    handle.error = self.classifier.classify(exit_code, handle.output, handle.command)
                self._release(handle)

        if handle.state is RunState.COMPLETED:
            logger.info(f"Process {handle.process.pid} exited with code {exit_code}")
            self._notify(handle)

    def _time_out(self, handle: ExecutionHandle):
        logger.warning(f"Process {handle.process.pid} timed out after {handle.timeout:g}s")

        handle.state = RunState.TIMED_OUT
        handle.exit_code = TIMEOUT_EXIT_CODE
        handle.error = process_timeout(handle.timeout, handle.command)

        try:
            self._terminate(handle.process)
            self._drain(handle)
        finally:
            self._release(handle)
        self._notify(handle)

    def _terminate(self, process: ProcessHandle):
        if process.poll() is None:
            try:
                process.terminate()
            except ProcessLookupError:
                pass

            if process.poll() is None:
                self._sleep(self.config.grace_period)
                if process.poll() is None:
                    logger.warning(f"Process {process.pid} ignored termination, killing it")
                    process.kill()

        process.wait()

    def _release(self, handle: ExecutionHandle):
        """Close pipes and drop the handle, freezing its results."""
        for source in (handle.stdout, handle.stderr):
            try:
                source.close()
            except OSError as e:
                logger.debug(f"Error closing pipe: {e}")

        if handle.process.poll() is None:
            handle.process.wait()

        if self._handle is handle:
            self._handle = None
        self._state = handle.state
        self._output = handle.output
        self._exit_code = handle.exit_code
        self._last_error = handle.error
        self._finished_at = self._clock()

    def _notify(self, handle: ExecutionHandle):
        if handle.notified:
            return
        handle.notified = True
        if handle.on_completion is not None:
            handle.on_completion(handle.exit_code, handle.error)
