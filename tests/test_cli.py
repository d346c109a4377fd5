import sys
from unittest.mock import patch

from click.testing import CliRunner

from ohadriver import __version__
from ohadriver.cli.main import main
from ohadriver.drivers import OhaDriver

from conftest import OHA_REPORT, FakeSpawner


def test_version():
    result = CliRunner().invoke(main, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_parse(tmp_path):
    report = tmp_path / "report.txt"
    report.write_text(OHA_REPORT, encoding="utf-8")

    result = CliRunner().invoke(main, ["parse", str(report)])
    assert result.exit_code == 0
    assert "Requests/sec:     299.01" in result.output
    assert "Total requests:   1000" in result.output
    assert "Failed requests:  50" in result.output
    assert "Success rate:     95.50%" in result.output
    assert "p50_ms" not in result.output


def test_parse_with_details(tmp_path):
    report = tmp_path / "report.txt"
    report.write_text(OHA_REPORT, encoding="utf-8")

    result = CliRunner().invoke(main, ["parse", "--details", str(report)])
    assert result.exit_code == 0
    assert "p50_ms:" in result.output
    assert "data_transferred: 1.56 MiB" in result.output


def test_parse_missing_file(tmp_path):
    result = CliRunner().invoke(main, ["parse", str(tmp_path / "missing.txt")])
    assert result.exit_code == 2


def test_check_missing_binary(tmp_path):
    result = CliRunner().invoke(main, ["check", "--binary", str(tmp_path / "missing-oha")])
    assert result.exit_code == 1


def test_run_rejects_invalid_specification():
    result = CliRunner().invoke(main, ["run", "http://x.test/", "-c", "0", "--binary", "/nonexistent/oha"])
    assert result.exit_code == 1


def test_run_rejects_malformed_header():
    result = CliRunner().invoke(main, ["run", "http://x.test/", "-H", "no-colon"])
    assert result.exit_code == 2
    assert "Name: value" in result.output


def test_check_found():
    info = {"available": True, "path": "/usr/bin/oha", "version": "oha 1.4.5", "error": None}
    with patch.object(OhaDriver, "check_binary", return_value=info):
        result = CliRunner().invoke(main, ["check"])
    assert result.exit_code == 0


def test_run_prints_metrics():
    spawner = FakeSpawner(output=OHA_REPORT.encode(), exit_code=0)
    with patch("ohadriver.drivers.runner.popen_spawner", spawner):
        result = CliRunner().invoke(main, [
            "run", "http://localhost:8080/",
            "-c", "4", "-z", "1", "-t", "1",
            "-H", "Accept: text/plain",
            "--binary", sys.executable,
            "--details",
        ])

    assert result.exit_code == 0
    [command] = spawner.commands
    assert "-c 4 -z 1s -t 1s -m GET --no-tui -H 'Accept: text/plain'" in command
    assert "Status code distribution:" in result.output
    assert "Total requests:   1000" in result.output
    assert "p99_ms:" in result.output


def test_run_reports_failure():
    spawner = FakeSpawner(output=b"Error: Connection refused (os error 111)\n", exit_code=1)
    with patch("ohadriver.drivers.runner.popen_spawner", spawner):
        result = CliRunner().invoke(main, [
            "run", "http://localhost:8080/", "-z", "1", "-t", "1", "--binary", sys.executable,
        ])
    assert result.exit_code == 1
    assert "Total requests" not in result.output
