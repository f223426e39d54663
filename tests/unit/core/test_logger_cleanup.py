"""Closing configuration closes the logger and its sinks."""

from uefirunner.core.base import BaseConfig
from uefirunner.core.log import (
    ConsoleSink,
    FileSink,
    LogfireSink,
    setup_logger,
)


def test_logger_close_closes_file(tmp_path):
    logger = setup_logger(
        log_root=tmp_path,
        run_name="test",
        console=ConsoleSink(enabled=False),
        file=FileSink(enabled=True, path=str(tmp_path / "run.log")),
        logfire=LogfireSink(enabled=False),
    )
    handle = logger.file._file
    assert handle is not None and not handle.closed

    logger.close()

    assert handle.closed


def test_setup_closes_previous_logger(tmp_path):
    first = setup_logger(
        log_root=tmp_path,
        run_name="first",
        console=ConsoleSink(enabled=False),
        file=FileSink(enabled=True, path=str(tmp_path / "first.log")),
    )
    handle = first.file._file

    second = setup_logger(
        log_root=tmp_path,
        run_name="second",
        console=ConsoleSink(enabled=False),
    )

    assert handle.closed
    second.close()


class Child(BaseConfig):
    closed: bool = False

    def close(self):
        self.closed = True


class Failing(BaseConfig):
    def close(self):
        raise RuntimeError("boom")


class Parent(BaseConfig):
    failing: Failing
    child: Child


def test_close_cascade_survives_failing_child(capsys):
    """One child failing to close does not stop the others."""
    parent = Parent(failing=Failing(), child=Child())

    with parent:
        pass

    assert parent.child.closed
    assert "Error closing failing: boom" in capsys.readouterr().err
