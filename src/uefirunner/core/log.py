"""logfire-backed logging with console, file and cloud sinks.

Modules import the module-level `logger`; it does nothing until
setup_logger() installs a configured Logger (Config does this once the
settings have loaded).
"""

from __future__ import annotations

import contextlib
from abc import abstractmethod
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from opentelemetry.proto.logs.v1 import logs_pb2
from opentelemetry.sdk.trace import ReadableSpan
from opentelemetry.sdk.trace.export import SpanExporter, SpanExportResult
from pydantic import Field, PrivateAttr, model_validator

from uefirunner.core.base import BaseConfig

# Level names, most verbose first, with their OpenTelemetry severity.
# spew sits below trace and is used for raw toolchain and guest output.
LEVELS: dict[str, int] = {
    "spew": logs_pb2.SEVERITY_NUMBER_TRACE,
    "trace": logs_pb2.SEVERITY_NUMBER_TRACE3,
    "debug": logs_pb2.SEVERITY_NUMBER_DEBUG,
    "info": logs_pb2.SEVERITY_NUMBER_INFO,
    "warn": logs_pb2.SEVERITY_NUMBER_WARN,
    "error": logs_pb2.SEVERITY_NUMBER_ERROR,
    "fatal": logs_pb2.SEVERITY_NUMBER_FATAL,
}

# Span attributes that are logfire/OpenTelemetry bookkeeping rather than
# values passed by the caller.
_INTERNAL_PREFIXES = (
    "code.", "logfire.", "otel.", "process.", "service.", "telemetry.",
)

_current_logger: Logger | None = None


def severity(level: str | None) -> int:
    """Severity number for a level name; unknown names mean info."""
    return LEVELS.get((level or "info").lower(), LEVELS["info"])


def level_name(number: int) -> str:
    """Most severe level name whose severity does not exceed number."""
    name = "spew"
    for candidate, threshold in LEVELS.items():
        if number >= threshold:
            name = candidate
    return name


class _LoggerProxy:
    def __getattr__(self, name):
        if _current_logger is not None:
            return getattr(_current_logger, name)
        if name == "span":
            return lambda *args, **kwargs: contextlib.nullcontext()
        return lambda *args, **kwargs: None

    def __enter__(self):
        if _current_logger is None:
            return self
        return _current_logger.__enter__()

    def __exit__(self, *args):
        if _current_logger is None:
            return False
        return _current_logger.__exit__(*args)


logger = _LoggerProxy()


class LevelFilteringExporter(SpanExporter):
    """Forward only spans at or above min_level to the wrapped exporter."""

    _level_thresholds = LEVELS

    def __init__(self, exporter: SpanExporter, min_level: str | None):
        self._exporter = exporter
        self._min_severity = severity(min_level)

    @classmethod
    def level_name(cls, level_num: int) -> str:
        return level_name(level_num)

    def export(self, spans: list[ReadableSpan]) -> SpanExportResult:
        kept = [
            span for span in spans
            if (span.attributes or {}).get(
                "logfire.level_num", LEVELS["info"]
            ) >= self._min_severity
        ]
        if not kept:
            return SpanExportResult.SUCCESS
        return self._exporter.export(kept)

    def shutdown(self) -> None:
        self._exporter.shutdown()

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        return self._exporter.force_flush(timeout_millis)


class Sink(BaseConfig):
    """One log destination with its own level and line format."""

    enabled: bool = Field(default=True, description="Enable this sink")
    level: str | None = Field(
        default=None,
        description=(
            "Minimum level; inherits Logger.level when unset. "
            "One of: " + ", ".join(LEVELS)
        ),
    )
    escape_special_characters: bool = Field(
        default=False,
        description="Write newlines and tabs in messages as \\n and \\t",
    )
    format_template: str | None = Field(
        default="{timestamp:%Y-%m-%d %H:%M:%S} {level:<5} {message}",
        description=(
            "str.format template over timestamp, level, message, "
            "location and function; None writes each span as JSON"
        ),
    )

    _processor: Any = PrivateAttr(default=None)

    def render(self, span: ReadableSpan) -> str:
        """One log line for span, caller attributes appended."""
        if not self.format_template:
            return span.to_json() + "\n"

        attrs = dict(span.attributes or {})
        message = attrs.get("logfire.msg", span.name)
        if self.escape_special_characters:
            message = (
                message.replace("\\", "\\\\").replace("\n", "\\n")
                .replace("\r", "\\r").replace("\t", "\\t")
            )
        filepath = attrs.get("code.filepath", "")
        fields = {
            "timestamp": datetime.fromtimestamp(
                span.start_time / 1e9, tz=UTC
            ),
            "level": level_name(
                attrs.get("logfire.level_num", LEVELS["info"])
            ),
            "message": message,
            "location": (
                f"{filepath}:{attrs.get('code.lineno', '')}"
                if filepath else ""
            ),
            "function": attrs.get("code.function", ""),
        }
        try:
            line = self.format_template.format(**fields)
        except KeyError as e:
            return f"ERROR: Invalid template field {e}\n"

        extra = sorted(
            (key, value) for key, value in attrs.items()
            if not key.startswith(_INTERNAL_PREFIXES)
        )
        if extra:
            line += " │ " + " ".join(f"{k}={v!r}" for k, v in extra)
        return line + "\n"

    @abstractmethod
    def create_processor(self, log_root: Path, run_name: str):
        """Span processor feeding this sink, or None if logfire
        handles the sink itself."""

    def close(self):
        if self._processor is not None:
            with contextlib.suppress(Exception):
                self._processor.shutdown()


class ConsoleSink(Sink):
    """Terminal output, rendered by logfire."""

    verbose: bool = Field(
        default=False, description="Show span attributes on the console"
    )
    colors: str = Field(
        default="auto", description="Color mode: auto, always, never"
    )

    def create_processor(self, log_root: Path, run_name: str):
        return None

    def options(self):
        from logfire import ConsoleOptions

        # logfire has no level below trace.
        level = self.level if self.level != "spew" else "trace"
        return ConsoleOptions(
            min_log_level=level,
            verbose=self.verbose,
            colors=self.colors,
            include_timestamps=True,
        )


class FileSink(Sink):
    """Plain text log file, one line per log call."""

    enabled: bool = Field(default=False, description="Enable file logging")
    path: str = Field(
        default="{log_root}/{run_name}/uefirunner.log",
        description="Log file path; {log_root} and {run_name} expand",
    )

    _file: Any = PrivateAttr(default=None)

    def create_processor(self, log_root: Path, run_name: str):
        from opentelemetry.sdk.trace.export import (
            BatchSpanProcessor,
            ConsoleSpanExporter,
        )

        log_path = Path(self.path.format(log_root=log_root, run_name=run_name))
        log_path.parent.mkdir(parents=True, exist_ok=True)
        # Line buffered so a CI job killed mid-run still leaves its log.
        self._file = open(  # noqa: SIM115
            log_path, "a", buffering=1, encoding="utf-8"
        )
        exporter = ConsoleSpanExporter(out=self._file, formatter=self.render)
        return BatchSpanProcessor(LevelFilteringExporter(exporter, self.level))

    def close(self):
        super().close()
        if self._file is not None and not self._file.closed:
            with contextlib.suppress(OSError):
                self._file.close()


class LogfireSink(Sink):
    """logfire.dev cloud telemetry."""

    enabled: bool = Field(
        default=False, description="Send telemetry to logfire.dev"
    )
    token: str | None = Field(
        default=None, description="API token (or LOGFIRE_TOKEN)"
    )

    def create_processor(self, log_root: Path, run_name: str):
        return None


class Logger(BaseConfig):
    """Logger configuration plus the logging calls themselves.

    Closing the logger closes its sinks.
    """

    level: str = Field(
        default="info",
        description="Level for sinks without their own; one of: "
        + ", ".join(LEVELS),
    )
    console: ConsoleSink = Field(default_factory=ConsoleSink)
    file: FileSink = Field(default_factory=FileSink)
    logfire: LogfireSink = Field(default_factory=LogfireSink)

    @model_validator(mode="after")
    def _inherit_level(self) -> Logger:
        for sink in (self.console, self.file):
            if sink.level is None:
                sink.level = self.level
        return self

    def setup(self, log_root: Path, run_name: str):
        """Create sink processors and (re)configure logfire."""
        import logfire

        for sink in (self.console, self.file, self.logfire):
            if sink.enabled:
                sink._processor = sink.create_processor(log_root, run_name)

        processors = [
            sink._processor for sink in (self.file,)
            if sink.enabled and sink._processor is not None
        ]
        logfire.configure(
            service_name="uefirunner",
            send_to_logfire=self.logfire.enabled,
            token=self.logfire.token if self.logfire.enabled else None,
            console=self.console.options() if self.console.enabled else False,
            additional_span_processors=processors or None,
        )

    def log(self, level: str, msg: str, **kwargs):
        """Log msg (a logfire template over kwargs) at a named level."""
        import logfire

        logfire.log(severity(level), msg, attributes=kwargs or None)

    def spew(self, msg: str, **kwargs):
        self.log("spew", msg, **kwargs)

    def trace(self, msg: str, **kwargs):
        self.log("trace", msg, **kwargs)

    def debug(self, msg: str, **kwargs):
        self.log("debug", msg, **kwargs)

    def info(self, msg: str, **kwargs):
        self.log("info", msg, **kwargs)

    def warn(self, msg: str, **kwargs):
        self.log("warn", msg, **kwargs)

    warning = warn

    def error(self, msg: str, **kwargs):
        self.log("error", msg, **kwargs)

    def span(self, msg: str, **kwargs):
        """Context manager timing one pipeline stage."""
        import logfire

        return logfire.span(msg, **kwargs)

    def __getattr__(self, name):
        import logfire

        return getattr(logfire, name)


def setup_logger(
    log_root: Path,
    run_name: str,
    level: str = "info",
    console: ConsoleSink | None = None,
    file: FileSink | None = None,
    logfire: LogfireSink | None = None,
) -> Logger:
    """Install a new module-level Logger, closing the previous one.

    Args:
        log_root: Root directory for log files
        run_name: Subdirectory name for this run's log file
        level: Level for sinks that do not set their own
        console: Console sink (defaults when None)
        file: File sink (defaults when None)
        logfire: logfire.dev sink (defaults when None)

    Returns:
        The installed Logger
    """
    global _current_logger

    if _current_logger is not None:
        _current_logger.close()

    _current_logger = Logger(
        level=level,
        console=console or ConsoleSink(),
        file=file or FileSink(),
        logfire=logfire or LogfireSink(),
    )
    _current_logger.setup(log_root, run_name)
    return _current_logger
