"""Test log level filtering and the file sink format."""

import re

import pytest

from uefirunner.core.log import (
    ConsoleSink,
    FileSink,
    LevelFilteringExporter,
    LogfireSink,
    setup_logger,
)


def file_logger(log_root, level):
    log_file = log_root / f"{level}.log"
    logger = setup_logger(
        log_root=log_root,
        run_name="test",
        console=ConsoleSink(enabled=False),
        file=FileSink(enabled=True, level=level, path=str(log_file)),
        logfire=LogfireSink(enabled=False),
    )
    return logger, log_file


def emit_all(logger):
    logger.spew("SPEW message")
    logger.trace("TRACE message")
    logger.debug("DEBUG message")
    logger.info("INFO message")
    logger.warn("WARN message")
    logger.error("ERROR message")
    logger.close()


@pytest.mark.parametrize(
    "level,included,excluded",
    [
        ("spew", ["SPEW", "TRACE", "DEBUG", "INFO"], []),
        ("trace", ["TRACE", "DEBUG", "INFO"], ["SPEW"]),
        ("debug", ["DEBUG", "INFO", "WARN"], ["SPEW", "TRACE"]),
        ("info", ["INFO", "WARN", "ERROR"], ["SPEW", "TRACE", "DEBUG"]),
        ("error", ["ERROR"], ["SPEW", "TRACE", "DEBUG", "INFO", "WARN"]),
    ],
)
def test_file_sink_level(tmp_path, level, included, excluded):
    """A file sink keeps its level and everything above it."""
    logger, log_file = file_logger(tmp_path, level)
    emit_all(logger)

    content = log_file.read_text()
    for name in included:
        assert f"{name} message" in content
    for name in excluded:
        assert f"{name} message" not in content


def test_file_sink_format(tmp_path):
    """Lines carry timestamp, level, message and keyword attributes."""
    logger, log_file = file_logger(tmp_path, "info")
    logger.info("Built {path}", path="/tmp/app.efi", sha256="abc")
    logger.close()

    line = log_file.read_text().splitlines()[0]
    assert re.match(
        r"^\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2} info  Built /tmp/app.efi",
        line,
    )
    assert "sha256='abc'" in line


def test_default_file_path(tmp_path):
    """Without a path the log lands under log_root/run_name."""
    logger = setup_logger(
        log_root=tmp_path,
        run_name="my-crate",
        console=ConsoleSink(enabled=False),
        file=FileSink(enabled=True),
    )
    logger.info("hello")
    logger.close()

    assert "hello" in (tmp_path / "my-crate" / "uefirunner.log").read_text()


def test_level_cascades_to_sinks(tmp_path):
    """Sinks without their own level inherit the logger level."""
    logger = setup_logger(
        log_root=tmp_path,
        run_name="test",
        level="warn",
        console=ConsoleSink(enabled=False),
    )
    assert logger.file.level == "warn"
    assert logger.console.level == "warn"
    logger.close()


def test_level_ordering():
    """spew < trace < debug < info < warn < error < fatal."""
    thresholds = LevelFilteringExporter._level_thresholds
    ordered = ["spew", "trace", "debug", "info", "warn", "error", "fatal"]
    values = [thresholds[name] for name in ordered]
    assert values == sorted(values)
    assert len(set(values)) == len(values)


@pytest.mark.parametrize(
    "name", ["spew", "trace", "debug", "info", "warn", "error", "fatal"]
)
def test_level_name_round_trip(name):
    number = LevelFilteringExporter._level_thresholds[name]
    assert LevelFilteringExporter.level_name(number) == name
