"""Logging setup and start-up banner shared by the client and the server."""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass, field

OTLP_ENDPOINT_ENV = "OTEL_EXPORTER_OTLP_ENDPOINT"
LOG_FILTER_ENV = "RENGARDE_LOG"
TIMESTAMP_WIDTH = 19

_LOG_FORMAT = "%(asctime)s %(levelname)s [thread %(thread)d] %(message)s"


@dataclass
class TracingConfig:
    """Settings for the process-wide logging setup."""

    endpoint: str | None = None
    log_level: int = logging.DEBUG
    default_directive: int = logging.INFO

    @classmethod
    def from_env(cls) -> "TracingConfig":
        """Build the default configuration, taking the endpoint from the environment."""
        return cls(endpoint=os.environ.get(OTLP_ENDPOINT_ENV))


@dataclass
class Guard:
    """Keeps the logging setup alive; closing it undoes what init installed."""

    logger: logging.Logger
    handler: logging.Handler
    previous_level: int
    endpoint: str | None = None
    closed: bool = field(default=False, init=False)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.logger.removeHandler(self.handler)
        self.handler.flush()
        self.handler.close()
        self.logger.setLevel(self.previous_level)

    def __enter__(self) -> "Guard":
        return self

    def __exit__(self, *args) -> None:
        self.close()


def format_header(
    official_build: bool,
    pkg_name: str,
    pkg_version: str,
    git_describe: str,
    git_dirty: str,
    build_timestamp: str,
    target_triple: str,
    runtime: str,
) -> str:
    """Return the one-line banner naming the build."""
    if official_build:
        version = pkg_version
    else:
        if len(build_timestamp) < TIMESTAMP_WIDTH:
            raise ValueError(
                f"build timestamp {build_timestamp!r} is shorter than {TIMESTAMP_WIDTH} characters"
            )
        dirty = "* (dirty)" if git_dirty == "true" else ""
        version = (
            f"{git_describe}{dirty} built at {build_timestamp[:TIMESTAMP_WIDTH]} "
            f"for {target_triple} - UNOFFICIAL BUILD"
        )
    return f"rengarde-{pkg_name} ({runtime}) ver. {version}"


def print_header(
    official_build: bool,
    pkg_name: str,
    pkg_version: str,
    git_describe: str,
    git_dirty: str,
    build_timestamp: str,
    target_triple: str,
    runtime: str,
) -> None:
    """Print the start-up banner to standard output."""
    print(
        format_header(
            official_build,
            pkg_name,
            pkg_version,
            git_describe,
            git_dirty,
            build_timestamp,
            target_triple,
            runtime,
        )
    )


def _filter_level(default: int) -> int:
    raw = os.environ.get(LOG_FILTER_ENV, "").strip()
    if not raw:
        return default
    level = logging.getLevelName(raw.upper())
    return level if isinstance(level, int) else default


def init(config: TracingConfig | None = None) -> Guard:
    """Install a stderr log handler on the root logger and return its guard."""
    config = config if config is not None else TracingConfig.from_env()
    root = logging.getLogger()
    previous = root.level
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    root.addHandler(handler)
    root.setLevel(max(config.log_level, _filter_level(config.default_directive)))
    return Guard(logger=root, handler=handler, previous_level=previous, endpoint=config.endpoint)