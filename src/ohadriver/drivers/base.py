"""
Base class for load test drivers.

Drivers are responsible for:
- Running a load test described by a TestSpecification
- Turning the finished report into metrics
- Classifying failed runs
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum, auto

from ohadriver.core.errors import ErrorRecord
from ohadriver.core.specification import TestSpecification
from ohadriver.report.models import ParsedMetrics

# Exit codes reported when the process did not exit on its own
TIMEOUT_EXIT_CODE = -1
CANCELLED_EXIT_CODE = -2


class RunState(Enum):
    """Lifecycle of one execution."""
    IDLE = auto()
    STARTING = auto()
    RUNNING = auto()
    COMPLETED = auto()   # Process exited on its own
    CANCELLED = auto()   # Stopped by the caller
    TIMED_OUT = auto()   # Ran past its timeout

    @property
    def is_terminal(self) -> bool:
        return self in (RunState.COMPLETED, RunState.CANCELLED, RunState.TIMED_OUT)


@dataclass
class ExecutionResult:
    """Result of executing a load test to the end."""
    state: RunState
    exit_code: int
    output: str = ""
    duration_ms: float = 0
    metrics: ParsedMetrics | None = None
    error: ErrorRecord | None = None
    metadata: dict = field(default_factory=dict)

    @property
    def is_success(self) -> bool:
        return self.state is RunState.COMPLETED and self.exit_code == 0 and self.error is None


class Driver(ABC):
    """
    Abstract base for load test drivers.

    Subclasses implement tool-specific execution and result classification.
    """

    @abstractmethod
    def execute(self, spec: TestSpecification) -> ExecutionResult:
        """
        Run a load test to completion.

        Args:
            spec: What to test

        Returns:
            ExecutionResult with metrics or a classified error
        """
        ...

    @abstractmethod
    def classify_result(self, exit_code: int, output: str, command: str = "") -> ErrorRecord:
        """
        Classify a finished run.

        Args:
            exit_code: Process exit code
            output: Accumulated process output
            command: Command that was run

        Returns:
            ErrorRecord (kind SUCCESS for a clean exit)
        """
        ...
