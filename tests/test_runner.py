import pytest

from ohadriver.core import ErrorKind, OhaDriverError
from ohadriver.drivers import CANCELLED_EXIT_CODE, TIMEOUT_EXIT_CODE, RunState

from conftest import FakeSpawner


class Recorder:
    """Collects everything the runner reports."""

    def __init__(self):
        self.output: list[str] = []
        self.errors: list[str] = []
        self.completions: list[tuple] = []

    def on_output(self, chunk: str):
        self.output.append(chunk)

    def on_error(self, chunk: str):
        self.errors.append(chunk)

    def on_completion(self, exit_code, error):
        self.completions.append((exit_code, error))

    def callbacks(self) -> dict:
        return {
            "on_output": self.on_output,
            "on_error": self.on_error,
            "on_completion": self.on_completion,
        }


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


def test_idle_runner(runner):
    assert runner.state is RunState.IDLE
    assert runner.poll() is RunState.IDLE
    assert not runner.is_running()
    assert runner.pid is None
    assert runner.exit_code is None


def test_start(runner, spawner):
    assert runner.start("oha http://x.test/") is True
    assert runner.state is RunState.RUNNING
    assert spawner.commands == ["oha http://x.test/"]
    assert runner.pid == spawner.last.process.pid
    assert runner.command == "oha http://x.test/"


def test_output_is_delivered_per_stream(runner, spawner, recorder):
    runner.start("oha", **recorder.callbacks())
    spawner.last.stdout.feed(b"Summary:\n")
    spawner.last.stderr.feed(b"warning\n")

    assert runner.poll() is RunState.RUNNING
    assert recorder.output == ["Summary:\n"]
    assert recorder.errors == ["warning\n"]
    assert runner.output == "Summary:\nwarning\n"


def test_stderr_folded_into_output(runner, spawner):
    chunks = []
    runner.start("oha", on_output=chunks.append)
    spawner.last.stderr.feed(b"oops\n")
    runner.poll()
    assert chunks == ["oops\n"]


def test_split_multibyte_characters(runner, spawner, recorder):
    runner.start("oha", **recorder.callbacks())
    spawner.last.stdout.feed(b"\xc3")
    runner.poll()
    spawner.last.stdout.feed(b"\xa9t\xc3\xa9")
    runner.poll()
    assert recorder.output == ["été"]


def test_invalid_bytes_are_replaced(runner, spawner):
    chunks = []
    runner.start("oha", on_output=chunks.append)
    spawner.last.stdout.feed(b"ok \xff\n")
    runner.poll()
    assert chunks == ["ok �\n"]


def test_completion(runner, spawner, recorder):
    runner.start("oha", **recorder.callbacks())
    spawned = spawner.last
    spawned.stdout.feed(b"Requests/sec: 10\n")
    spawned.process.exit(0)

    assert runner.poll() is RunState.COMPLETED
    assert recorder.output == ["Requests/sec: 10\n"]
    assert recorder.completions == [(0, None)]
    assert runner.exit_code == 0
    assert runner.last_error is None
    assert runner.output == "Requests/sec: 10\n"

    # Resources are released and nothing fires twice
    assert spawned.stdout.closed and spawned.stderr.closed
    assert runner.pid is None
    assert runner.poll() is RunState.COMPLETED
    assert recorder.completions == [(0, None)]


def test_output_written_just_before_exit_is_not_lost(runner, spawner, recorder):
    runner.start("oha", **recorder.callbacks())
    spawner.last.process.exit(0)
    spawner.last.stdout.feed(b"first\n")
    spawner.last.stdout.feed(b"second\n")
    runner.poll()
    assert "".join(recorder.output) == "first\nsecond\n"


def test_failed_run_is_classified(runner, spawner, recorder):
    runner.start("oha -c 0", **recorder.callbacks())
    spawner.last.stderr.feed(b"error: invalid value '0' for '-c'\n")
    spawner.last.process.exit(2)

    assert runner.poll() is RunState.COMPLETED
    [(exit_code, error)] = recorder.completions
    assert exit_code == 2
    assert error.kind is ErrorKind.INVALID_ARGUMENTS
    assert error.details["command"] == "oha -c 0"
    assert runner.last_error is error


def test_already_running_leaves_first_run_alone(runner, spawner, recorder):
    runner.start("oha first", **recorder.callbacks())
    first = spawner.last

    with pytest.raises(OhaDriverError) as exc:
        runner.start("oha second")
    assert exc.value.kind is ErrorKind.ALREADY_RUNNING

    assert spawner.commands == ["oha first"]
    assert runner.state is RunState.RUNNING
    assert runner.command == "oha first"
    assert not first.process.terminated

    first.stdout.feed(b"still here\n")
    runner.poll()
    assert recorder.output == ["still here\n"]


def test_restart_after_completion(runner, spawner):
    runner.start("oha one")
    spawner.last.process.exit(0)
    runner.poll()

    runner.start("oha two")
    assert runner.state is RunState.RUNNING
    assert runner.exit_code is None
    assert len(spawner.spawned) == 2


def test_stop_when_idle(runner, spawner):
    assert runner.stop() is True
    assert runner.state is RunState.IDLE
    assert spawner.spawned == []


def test_stop(runner, spawner, recorder, sleeps):
    runner.start("oha", **recorder.callbacks())
    spawned = spawner.last
    spawned.stdout.feed(b"partial\n")

    assert runner.stop() is True
    assert runner.state is RunState.CANCELLED
    assert runner.exit_code == CANCELLED_EXIT_CODE
    assert recorder.completions == [(CANCELLED_EXIT_CODE, None)]
    assert recorder.output == ["partial\n"]

    assert spawned.process.terminated
    assert not spawned.process.killed
    assert spawned.process.waited
    assert spawned.stdout.closed and spawned.stderr.closed
    assert sleeps == []

    # Stopping again is a no-op
    assert runner.stop() is True
    assert len(recorder.completions) == 1


def test_stop_escalates_to_kill(make_runner, recorder, sleeps):
    spawner = FakeSpawner(ignore_terminate=True)
    runner = make_runner(spawner)
    runner.start("oha", **recorder.callbacks())

    runner.stop()
    process = spawner.last.process
    assert process.terminated
    assert process.killed
    assert sleeps == [0.1]
    assert recorder.completions == [(CANCELLED_EXIT_CODE, None)]


def test_stop_from_output_callback(runner, spawner):
    """A callback may cancel the run it is being called from."""
    completions = []

    def on_output(chunk):
        runner.stop()

    runner.start("oha", on_output=on_output, on_completion=lambda *args: completions.append(args))
    spawner.last.stdout.feed(b"enough\n")
    spawner.last.stderr.feed(b"late\n")

    assert runner.poll() is RunState.CANCELLED
    assert completions == [(CANCELLED_EXIT_CODE, None)]
    assert runner.pid is None


def test_timeout(runner, spawner, recorder, clock):
    runner.start("oha -z 5s", timeout=10, **recorder.callbacks())
    spawned = spawner.last

    clock.advance(9.9)
    assert runner.poll() is RunState.RUNNING

    clock.advance(0.1)
    assert runner.poll() is RunState.TIMED_OUT

    [(exit_code, error)] = recorder.completions
    assert exit_code == TIMEOUT_EXIT_CODE
    assert error.kind is ErrorKind.PROCESS_TIMEOUT
    assert error.details["timeout_seconds"] == 10
    assert runner.last_error is error

    # No orphaned process or open pipe
    assert spawned.process.terminated
    assert spawned.process.returncode is not None
    assert spawned.process.waited
    assert spawned.stdout.closed and spawned.stderr.closed
    assert runner.pid is None

    runner.poll()
    assert not runner.is_running()
    assert len(recorder.completions) == 1


def test_is_running_detects_timeout(runner, clock):
    runner.start("oha", timeout=1)
    assert runner.is_running()
    clock.advance(1)
    assert not runner.is_running()
    assert runner.state is RunState.TIMED_OUT


def test_no_timeout_by_default(runner, clock):
    runner.start("oha")
    clock.advance(10_000)
    assert runner.poll() is RunState.RUNNING


def test_wait_until_timeout(runner, clock):
    runner.start("oha", timeout=5)
    assert runner.wait() is True
    assert runner.state is RunState.TIMED_OUT
    assert runner.elapsed >= 5


def test_wait_gives_up(runner):
    runner.start("oha")
    assert runner.wait(timeout=1) is False
    assert runner.state is RunState.RUNNING


def test_run_sync(make_runner):
    runner = make_runner(FakeSpawner(output=b"Requests/sec: 5\n", exit_code=0))
    result = runner.run_sync("oha")
    assert result.state is RunState.COMPLETED
    assert result.exit_code == 0
    assert result.output == "Requests/sec: 5\n"
    assert result.error is None
    assert result.is_success


def test_empty_command_is_rejected(runner, spawner):
    with pytest.raises(OhaDriverError) as exc:
        runner.start("  ")
    assert exc.value.kind is ErrorKind.INVALID_ARGUMENTS
    assert spawner.spawned == []


def test_spawn_failure(make_runner):
    def spawner(command):
        raise FileNotFoundError(2, "No such file or directory", "oha")

    runner = make_runner(spawner)
    with pytest.raises(OhaDriverError) as exc:
        runner.start("oha http://x.test/")
    assert exc.value.kind is ErrorKind.PROCESS_START_FAILED
    assert runner.state is RunState.IDLE


def test_context_manager_stops_run(runner, spawner):
    with runner:
        runner.start("oha")
    assert spawner.last.process.terminated
    assert runner.state is RunState.CANCELLED
