"""Shared fixtures and fakes."""

import sys

import pytest

from ohadriver.command import quote_argument
from ohadriver.drivers import ProcessRunner, RunnerConfig, SpawnedProcess


class FakeStream:
    """Stream source fed by the test, one chunk per read_available()."""

    def __init__(self):
        self.pending: list[bytes] = []
        self.closed = False

    def feed(self, data: bytes):
        self.pending.append(data)

    def read_available(self) -> bytes:
        if self.closed or not self.pending:
            return b""
        return self.pending.pop(0)

    def read_rest(self) -> bytes:
        if self.closed:
            return b""
        data = b"".join(self.pending)
        self.pending.clear()
        return data

    def close(self):
        self.closed = True


class FakeProcess:
    """Popen stand-in whose exit is controlled by the test."""

    def __init__(self, pid: int = 4242, ignore_terminate: bool = False):
        self.pid = pid
        self.returncode = None
        self.ignore_terminate = ignore_terminate
        self.terminated = False
        self.killed = False
        self.waited = False

    def exit(self, code: int):
        self.returncode = code

    def poll(self):
        return self.returncode

    def wait(self, timeout=None):
        self.waited = True
        return self.returncode

    def terminate(self):
        self.terminated = True
        if not self.ignore_terminate:
            self.returncode = -15

    def kill(self):
        self.killed = True
        self.returncode = -9


class FakeClock:
    def __init__(self, now: float = 100.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeSpawner:
    """
    Records commands and hands out a fresh fake process each time.

    With ``exit_code`` set, each process has already written ``output``
    and exited by the time it is handed out.
    """

    def __init__(self, ignore_terminate: bool = False, output: bytes = b"", exit_code: int | None = None):
        self.ignore_terminate = ignore_terminate
        self.output = output
        self.exit_code = exit_code
        self.commands: list[str] = []
        self.spawned: list[SpawnedProcess] = []

    def __call__(self, command: str) -> SpawnedProcess:
        self.commands.append(command)
        spawned = SpawnedProcess(
            process=FakeProcess(pid=4242 + len(self.spawned), ignore_terminate=self.ignore_terminate),
            stdout=FakeStream(),
            stderr=FakeStream(),
        )
        if self.output:
            spawned.stdout.feed(self.output)
        if self.exit_code is not None:
            spawned.process.exit(self.exit_code)
        self.spawned.append(spawned)
        return spawned

    @property
    def last(self) -> SpawnedProcess:
        return self.spawned[-1]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleeps() -> list[float]:
    """Sleeps requested by the runner (they advance the fake clock)."""
    return []


@pytest.fixture
def spawner() -> FakeSpawner:
    return FakeSpawner()


@pytest.fixture
def make_runner(clock: FakeClock, sleeps: list[float]):
    """Build a ProcessRunner on the fake clock around a given spawner."""
    def sleep(seconds: float):
        sleeps.append(seconds)
        clock.advance(seconds)

    def make(spawner) -> ProcessRunner:
        return ProcessRunner(
            config=RunnerConfig(grace_period=0.1, poll_interval=0.1),
            spawner=spawner,
            clock=clock,
            sleep=sleep,
        )

    return make


@pytest.fixture
def runner(make_runner, spawner: FakeSpawner) -> ProcessRunner:
    return make_runner(spawner)


def python_command(code: str) -> str:
    """Quoted command line running ``code`` with the current interpreter."""
    return f"{quote_argument(sys.executable)} -c {quote_argument(code)}"


OHA_REPORT = """\
Summary:
  Success rate:\t95.50%
  Total:\t10.0012 secs
  Slowest:\t0.0401 secs
  Fastest:\t0.0003 secs
  Average:\t0.0015 secs
  Requests/sec:\t299.01

  Total data:\t1.56 MiB
  Size/request:\t50 B
  Size/sec:\t159.33 KiB

Response time histogram:
  0.000 [1]     |
  0.003 [823]   |■■■■■■■■■■■■■■■■■■■■■■■■■■■■■■■■
  0.005 [176]   |■■■■■■■

Response time distribution:
  10.00% in 0.0007 secs
  25.00% in 0.0009 secs
  50.00% in 0.0012 secs
  75.00% in 0.0016 secs
  90.00% in 0.0022 secs
  95.00% in 0.0028 secs
  99.00% in 0.0065 secs
  99.90% in 0.0226 secs

Details (average, fastest, slowest):
  DNS+dialup:\t0.0019 secs, 0.0014 secs, 0.0025 secs
  DNS-lookup:\t0.0000 secs, 0.0000 secs, 0.0001 secs

Status code distribution:
  [200] 950 responses
  [500] 50 responses
"""


@pytest.fixture
def oha_report() -> str:
    return OHA_REPORT
