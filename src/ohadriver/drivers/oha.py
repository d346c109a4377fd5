"""
oha-specific load test driver.

Wires the pieces together: the command builder turns a specification into
a command line, the runner executes it, and the finished output is handed
to the report parser (clean exit) or the error classifier (failure).
"""

from __future__ import annotations

import logging
import os
import subprocess
import time
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from ohadriver.command.builder import CommandBuilder
from ohadriver.command.locator import BinaryLocator, default_locator
from ohadriver.core.errors import ErrorKind, ErrorRecord
from ohadriver.core.specification import TestSpecification
from ohadriver.drivers.base import Driver, ExecutionResult, RunState
from ohadriver.drivers.runner import OutputCallback, ProcessRunner, RunnerConfig
from ohadriver.errors.classifier import (
    ErrorClassifier,
    binary_not_found,
    executable_permission_suggestion,
)
from ohadriver.report.models import ParsedMetrics
from ohadriver.report.parser import ReportParser

logger = logging.getLogger(__name__)


@dataclass
class OhaDriverConfig:
    """Configuration for the oha driver."""

    # Path or command name of the oha binary (None = ./bin/oha, then PATH)
    binary: Path | str | None = None

    # Seconds allowed beyond the test duration before the run is timed out
    timeout_margin: float = 30.0

    # Seconds between SIGTERM and SIGKILL when stopping
    grace_period: float = 0.1

    # Seconds between polls in blocking helpers
    poll_interval: float = 0.1

    # Quoting convention (sys.platform style, None = current platform)
    platform: str | None = None

    # Default test from the config file, if any
    test: TestSpecification | None = None

    # Timeout for `oha --version`
    version_timeout: float = 10.0

    @classmethod
    def from_config_file(cls, path: Path | str) -> "OhaDriverConfig":
        """Load driver settings from a TOML config file."""
        path = Path(path)
        with open(path, "rb") as f:
            data = tomllib.load(f)

        test = None
        if "test" in data:
            test = TestSpecification.from_dict(data["test"])

        binary = data.get("binary")
        if binary is not None and not Path(binary).is_absolute() and os.sep in str(binary):
            # Relative paths are relative to the config file
            binary = path.parent / binary

        return cls(
            binary=binary,
            timeout_margin=data.get("timeout_margin", 30.0),
            grace_period=data.get("grace_period", 0.1),
            poll_interval=data.get("poll_interval", 0.1),
            platform=data.get("platform"),
            test=test,
        )


@dataclass
class RunOutcome:
    """What the caller gets once a run is over."""
    exit_code: int
    output: str
    metrics: ParsedMetrics | None = None
    error: ErrorRecord | None = None
    valid_report: bool = False
    metadata: dict = field(default_factory=dict)

    @property
    def is_success(self) -> bool:
        return self.error is None and self.metrics is not None


ResultCallback = Callable[[RunOutcome], None]


class OhaDriver(Driver):
    """
    Driver for the oha HTTP load generator.

    Non-blocking use (a GUI or other host loop):

        driver.start(spec, on_output=show_chunk, on_result=show_result)
        # every 100 ms:
        driver.poll()

    Blocking use:

        result = driver.execute(spec)
    """

    def __init__(
        self,
        config: OhaDriverConfig | None = None,
        locator: BinaryLocator | None = None,
        runner: ProcessRunner | None = None,
        parser: ReportParser | None = None,
        classifier: ErrorClassifier | None = None,
    ):
        self.config = config or OhaDriverConfig()
        self.locator = locator or default_locator(self.config.binary)
        self.classifier = classifier or ErrorClassifier()
        self.parser = parser or ReportParser()
        self.builder = CommandBuilder(locator=self.locator, platform=self.config.platform)
        self.runner = runner or ProcessRunner(
            config=RunnerConfig(
                grace_period=self.config.grace_period,
                poll_interval=self.config.poll_interval,
            ),
            classifier=self.classifier,
        )
        self.last_outcome: RunOutcome | None = None

    @classmethod
    def from_config_file(cls, path: Path | str) -> "OhaDriver":
        return cls(OhaDriverConfig.from_config_file(path))

    def start(
        self,
        spec: TestSpecification,
        on_output: OutputCallback | None = None,
        on_result: ResultCallback | None = None,
        on_error: OutputCallback | None = None,
    ) -> str:
        """
        Start a load test without blocking.

        Returns:
            The command line that was started

        Raises:
            OhaDriverError: Invalid or unsafe specification, missing binary,
                a run already in progress, or a failed spawn
        """
        command = self.builder.build(spec)
        self.last_outcome = None

        def on_completion(exit_code: int, error: ErrorRecord | None):
            outcome = self._outcome(exit_code, error)
            self.last_outcome = outcome
            if on_result is not None:
                on_result(outcome)

        self.runner.start(
            command,
            on_output=on_output,
            on_error=on_error,
            on_completion=on_completion,
            timeout=spec.duration + self.config.timeout_margin,
        )
        logger.info(f"Load test started: {spec.method} {spec.url} c={spec.concurrency} z={spec.duration}s")
        return command

    def poll(self) -> RunState:
        return self.runner.poll()

    def is_running(self) -> bool:
        return self.runner.is_running()

    def stop(self) -> bool:
        return self.runner.stop()

    def wait(self, timeout: float = 0) -> bool:
        return self.runner.wait(timeout)

    def execute(self, spec: TestSpecification) -> ExecutionResult:
        start_time = time.time()
        command = self.start(spec)
        self.runner.wait()

        outcome = self.last_outcome
        return ExecutionResult(
            state=self.runner.state,
            exit_code=outcome.exit_code,
            output=outcome.output,
            duration_ms=(time.time() - start_time) * 1000,
            metrics=outcome.metrics,
            error=outcome.error,
            metadata={"command": command, "valid_report": outcome.valid_report},
        )

    def classify_result(self, exit_code: int, output: str, command: str = "") -> ErrorRecord:
        return self.classifier.classify(exit_code, output, command)

    def parse(self, output: str) -> ParsedMetrics:
        return self.parser.parse(output)

    def _outcome(self, exit_code: int, error: ErrorRecord | None) -> RunOutcome:
        output = self.runner.output
        valid = self.parser.is_valid_report(output)

        if self.runner.state is RunState.CANCELLED:
            error = ErrorRecord(
                kind=ErrorKind.INTERRUPTED,
                message="Test was stopped before it finished",
                suggestion="Run the test again to get complete results",
                details={"exit_code": exit_code, "command": self.runner.command},
            )

        if error is not None:
            # oha prints its summary when interrupted, keep what there is
            metrics = self.parser.parse(output) if valid else None
            logger.info(f"Load test failed: {error.kind.value}: {error.message}")
            return RunOutcome(exit_code, output, metrics=metrics, error=error, valid_report=valid)

        if not valid:
            logger.warning("Process output does not look like an oha report")

        metrics = self.parser.parse(output)
        logger.info(
            f"Load test finished: {metrics.requests_per_second:.2f} req/s, "
            f"{metrics.total_requests} requests, {metrics.success_rate:.2f}% success"
        )
        return RunOutcome(exit_code, output, metrics=metrics, valid_report=valid)

    def check_binary(self) -> dict:
        """
        Check that the oha binary can be found and executed.

        Returns:
            dict with "available", "path", "version" and "error" (ErrorRecord or None)
        """
        info = {"available": False, "path": None, "version": None, "error": None}

        path = self.locator()
        if not path:
            info["error"] = binary_not_found()
            return info
        info["path"] = path

        if not os.access(path, os.X_OK):
            info["error"] = ErrorRecord(
                kind=ErrorKind.BINARY_NOT_EXECUTABLE,
                message=f"oha binary found but not executable: {path}",
                suggestion=executable_permission_suggestion(path),
                details={"path": path},
            )
            return info

        try:
            proc = subprocess.run(
                [path, "--version"],
                capture_output=True,
                text=True,
                timeout=self.config.version_timeout,
            )
        except subprocess.TimeoutExpired:
            info["error"] = ErrorRecord(
                kind=ErrorKind.PROCESS_TIMEOUT,
                message=f"oha --version did not answer within {self.config.version_timeout:g} seconds",
                suggestion="Try reinstalling oha or check if it's corrupted",
                details={"path": path},
            )
            return info
        except OSError as e:
            info["error"] = ErrorRecord(
                kind=ErrorKind.PROCESS_START_FAILED,
                message="oha binary found but failed to execute",
                suggestion="Try reinstalling oha or check if it's corrupted",
                details={"path": path, "os_error": str(e)},
            )
            return info

        if proc.returncode != 0:
            info["error"] = self.classify_result(proc.returncode, proc.stdout + proc.stderr, f"{path} --version")
            return info

        info["available"] = True
        info["version"] = proc.stdout.strip()
        return info
