"""structlog on top of stdlib logging.

Events from structlog loggers and records from plain stdlib loggers (asyncpg,
tenacity) go through one root handler whose ``ProcessorFormatter`` renders
both, so driver warnings come out as JSON in a JSON deployment, carry the
bound context, and have credentials masked like our own events.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterable
from functools import lru_cache
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING, Literal, Protocol, cast

import structlog
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from structlog.processors import CallsiteParameter

if TYPE_CHECKING:
    from structlog.types import EventDict, Processor, WrappedLogger

type BoundLogger = structlog.stdlib.BoundLogger
type LogLevel = Literal["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG", "NOTSET"]

REDACTED = "**********"


class LoggingConfig(BaseSettings):
    """Logging settings, read from ``LOG_*`` variables."""

    model_config = SettingsConfigDict(env_file=".env", env_prefix="LOG_", extra="ignore", frozen=True)

    level: LogLevel = Field(default="INFO")
    json_output: bool = Field(default=False)
    service_name: str = Field(default="taskdb")
    file_path: str | None = Field(default=None)
    max_bytes: int = Field(default=50_000_000, ge=1024)
    backup_count: int = Field(default=10, ge=0)
    library_log_levels: dict[str, LogLevel] = Field(default_factory=lambda: {"asyncpg": "WARNING"})
    redact_keys: frozenset[str] = Field(default=frozenset({"password", "dsn"}))


class RedactKeys:
    """Processor masking the values of credential-bearing keys."""

    def __init__(self, keys: Iterable[str]) -> None:
        self._keys = frozenset(keys)

    def __call__(self, _logger: WrappedLogger, _method_name: str, event_dict: EventDict) -> EventDict:
        for key in self._keys & event_dict.keys():
            event_dict[key] = REDACTED
        return event_dict


class FormatterStrategy(Protocol):
    def timestamper(self) -> Processor: ...

    def renderers(self) -> list[Processor]: ...


class JsonFormatterStrategy:
    def timestamper(self) -> Processor:
        return structlog.processors.TimeStamper(fmt="iso", utc=True)

    def renderers(self) -> list[Processor]:
        return [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]


class ConsoleFormatterStrategy:
    def timestamper(self) -> Processor:
        return structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S", utc=False)

    def renderers(self) -> list[Processor]:
        return [structlog.dev.ConsoleRenderer()]


class OutputStrategy(Protocol):
    def create_handler(self, config: LoggingConfig) -> logging.Handler: ...


class FileOutputStrategy:
    def create_handler(self, config: LoggingConfig) -> logging.Handler:
        if not config.file_path:
            raise ValueError("file_path required for FileOutputStrategy")

        log_path = Path(config.file_path)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        return RotatingFileHandler(
            filename=log_path,
            maxBytes=config.max_bytes,
            backupCount=config.backup_count,
            encoding="utf-8",
        )


class StreamOutputStrategy:
    def create_handler(self, config: LoggingConfig) -> logging.Handler:
        return logging.StreamHandler(sys.stderr)


def build_pre_chain(config: LoggingConfig, formatter: FormatterStrategy) -> list[Processor]:
    """Processors applied to every event before rendering, whatever logger emitted it."""
    return [
        structlog.contextvars.merge_contextvars,
        RedactKeys(config.redact_keys),
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.CallsiteParameterAdder(
            parameters=[CallsiteParameter.FILENAME, CallsiteParameter.LINENO, CallsiteParameter.MODULE]
        ),
        formatter.timestamper(),
        structlog.processors.UnicodeDecoder(),
    ]


class LoggerFactory:
    @staticmethod
    def create(config: LoggingConfig) -> BoundLogger:
        formatter: FormatterStrategy = JsonFormatterStrategy() if config.json_output else ConsoleFormatterStrategy()
        pre_chain = build_pre_chain(config, formatter)

        structlog.configure(
            processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
            wrapper_class=structlog.stdlib.BoundLogger,
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )

        output: OutputStrategy = FileOutputStrategy() if config.file_path else StreamOutputStrategy()
        handler = output.create_handler(config)
        handler.setLevel(config.level)
        handler.setFormatter(
            structlog.stdlib.ProcessorFormatter(
                foreign_pre_chain=pre_chain,
                processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, *formatter.renderers()],
            )
        )

        root = logging.getLogger()
        root.handlers = [handler]
        root.setLevel(config.level)

        for lib_name, lib_level in config.library_log_levels.items():
            logging.getLogger(lib_name).setLevel(lib_level)

        structlog.contextvars.bind_contextvars(service=config.service_name)

        return cast(BoundLogger, structlog.get_logger())


@lru_cache(maxsize=1)
def _get_default_config() -> LoggingConfig:
    return LoggingConfig()


def configure_logging(config: LoggingConfig | None = None) -> None:
    LoggerFactory.create(config if config is not None else _get_default_config())


def get_logger(name: str | None = None) -> BoundLogger:
    return cast(BoundLogger, structlog.get_logger(name))


def bind_context(**kwargs: str | float | bool | None) -> None:
    structlog.contextvars.bind_contextvars(**kwargs)
