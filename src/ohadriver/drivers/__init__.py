"""
Load test execution drivers.
"""

from ohadriver.drivers.base import (
    Driver,
    RunState,
    ExecutionResult,
    TIMEOUT_EXIT_CODE,
    CANCELLED_EXIT_CODE,
)
from ohadriver.drivers.runner import (
    ProcessRunner,
    RunnerConfig,
    ExecutionHandle,
)
from ohadriver.drivers.streams import (
    PipeStream,
    SpawnedProcess,
    popen_spawner,
)
from ohadriver.drivers.oha import (
    OhaDriver,
    OhaDriverConfig,
    RunOutcome,
)

__all__ = [
    "Driver",
    "RunState",
    "ExecutionResult",
    "TIMEOUT_EXIT_CODE",
    "CANCELLED_EXIT_CODE",
    "ProcessRunner",
    "RunnerConfig",
    "ExecutionHandle",
    "PipeStream",
    "SpawnedProcess",
    "popen_spawner",
    "OhaDriver",
    "OhaDriverConfig",
    "RunOutcome",
]
