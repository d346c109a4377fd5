"""
Main CLI entry point.
"""

import click
import logging

from ohadriver import __version__


def _setup_logging(verbose):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )


def _echo_metrics(metrics, details):
    click.echo("")
    click.echo(f"Requests/sec:     {metrics.requests_per_second:.2f}")
    click.echo(f"Total requests:   {metrics.total_requests}")
    click.echo(f"Failed requests:  {metrics.failed_requests}")
    click.echo(f"Success rate:     {metrics.success_rate:.2f}%")
    if details and metrics.details is not None:
        for name, value in metrics.details.as_dict().items():
            click.echo(f"{name + ':':<18}{value}")


@click.group()
@click.version_option(version=__version__)
def main():
    """ohadriver: run oha load tests and report structured metrics."""
    pass


@main.command()
@click.argument("url", required=False)
@click.option("--concurrency", "-c", type=int, help="Concurrent connections")
@click.option("--duration", "-z", type=int, help="Test duration in seconds")
@click.option("--timeout", "-t", type=int, help="Per-request timeout in seconds")
@click.option("--method", "-m", help="HTTP method")
@click.option("--header", "-H", "headers", multiple=True, help="Request header 'Name: value' (repeatable)")
@click.option("--body", "-d", help="Request body")
@click.option("--binary", type=click.Path(), help="Path to the oha binary")
@click.option("--config", "config_file", type=click.Path(exists=True), help="Driver config file (TOML)")
@click.option("--details", is_flag=True, help="Show latency and transfer statistics")
@click.option("--quiet", "-q", is_flag=True, help="Do not echo oha output while running")
@click.option("-v", "--verbose", is_flag=True, help="Verbose output")
def run(url, concurrency, duration, timeout, method, headers, body, binary,
        config_file, details, quiet, verbose):
    """Run a load test against URL."""
    from dataclasses import replace

    from ohadriver.core import OhaDriverError, TestSpecification
    from ohadriver.drivers import OhaDriver, OhaDriverConfig

    _setup_logging(verbose)
    logger = logging.getLogger(__name__)

    config = OhaDriverConfig.from_config_file(config_file) if config_file else OhaDriverConfig()
    if binary:
        config.binary = binary

    # Command line values override the [test] table of the config file
    base = config.test or TestSpecification(url=url or "")
    overrides = {
        "url": url,
        "concurrency": concurrency,
        "duration": duration,
        "timeout": timeout,
        "method": method,
        "body": body,
    }
    spec = replace(base, **{k: v for k, v in overrides.items() if v is not None})

    if headers:
        parsed = dict(spec.headers)
        for header in headers:
            name, sep, value = header.partition(":")
            if not sep:
                raise click.BadParameter(f"expected 'Name: value', got {header!r}", param_hint="--header")
            parsed[name.strip()] = value.strip()
        spec = replace(spec, headers=parsed)

    driver = OhaDriver(config)
    echo = None if quiet else (lambda chunk: click.echo(chunk, nl=False))

    try:
        driver.start(spec, on_output=echo, on_error=echo)
    except OhaDriverError as e:
        logger.error(e.record.display())
        raise SystemExit(1)

    try:
        driver.wait()
    except KeyboardInterrupt:
        logger.info("Interrupted, stopping load test")
        driver.stop()

    outcome = driver.last_outcome
    if outcome.metrics is not None:
        _echo_metrics(outcome.metrics, details)

    if outcome.error is not None:
        logger.error(outcome.error.display())
        raise SystemExit(1)

    if not outcome.valid_report:
        logger.warning("Output did not look like an oha report; metrics may be incomplete")


@main.command()
@click.argument("report", type=click.Path(exists=True))
@click.option("--details", is_flag=True, help="Show latency and transfer statistics")
@click.option("--encoding", default="utf-8", help="Report file encoding")
@click.option("-v", "--verbose", is_flag=True, help="Verbose output")
def parse(report, details, encoding, verbose):
    """Parse a saved oha report."""
    from pathlib import Path

    from ohadriver.report import ReportParser

    _setup_logging(verbose)
    logger = logging.getLogger(__name__)

    text = Path(report).read_text(encoding=encoding, errors="replace")
    parser = ReportParser()

    if not parser.is_valid_report(text):
        logger.warning(f"{report} does not look like an oha report")

    _echo_metrics(parser.parse(text), details)

    for message in parser.extract_errors(text):
        logger.warning(f"Reported error: {message}")


@main.command()
@click.option("--binary", type=click.Path(), help="Path to the oha binary")
@click.option("-v", "--verbose", is_flag=True, help="Verbose output")
def check(binary, verbose):
    """Check that the oha binary is available."""
    from ohadriver.drivers import OhaDriver, OhaDriverConfig

    _setup_logging(verbose)
    logger = logging.getLogger(__name__)

    info = OhaDriver(OhaDriverConfig(binary=binary)).check_binary()
    if not info["available"]:
        logger.error(info["error"].display())
        raise SystemExit(1)

    logger.info(f"Found {info['version']} at {info['path']}")


if __name__ == "__main__":
    main()
