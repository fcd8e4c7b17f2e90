"""Progress events emitted while a deployment runs."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Literal, Protocol

import structlog

if TYPE_CHECKING:
    from mcp.server.fastmcp import Context

Level = Literal["debug", "info", "warning", "error"]


@dataclass
class ProgressEvent:
    """A leveled progress message."""

    level: Level
    message: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_notification(self) -> dict[str, Any]:
        """Convert to ``notifications/message`` params."""
        return {"level": self.level, "data": self.message}


class ProgressSink(Protocol):
    """Receives progress events from the pipeline."""

    async def emit(self, event: ProgressEvent) -> None: ...


class NullSink:
    """Drops every event."""

    async def emit(self, event: ProgressEvent) -> None:
        return None


class RecordingSink:
    """Keeps every event in memory."""

    def __init__(self):
        self.events: list[ProgressEvent] = []

    async def emit(self, event: ProgressEvent) -> None:
        self.events.append(event)

    @property
    def messages(self) -> list[str]:
        return [e.message for e in self.events]

    def at_level(self, level: Level) -> list[ProgressEvent]:
        return [e for e in self.events if e.level == level]


class ContextSink:
    """Forwards events to the MCP client as log notifications."""

    def __init__(self, ctx: "Context"):
        self.ctx = ctx

    async def emit(self, event: ProgressEvent) -> None:
        await self.ctx.log(event.level, event.message)


class ProgressReporter:
    """Mirrors progress messages to the structured log and a sink."""

    def __init__(
        self,
        sink: ProgressSink | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ):
        self.sink = sink or NullSink()
        self.logger = logger or structlog.get_logger("progress")

    async def report(self, level: Level, message: str, **context: Any) -> None:
        """Log ``message`` and emit it to the sink."""
        getattr(self.logger, level)(message, **context)
        await self.sink.emit(ProgressEvent(level=level, message=message))

    async def debug(self, message: str, **context: Any) -> None:
        await self.report("debug", message, **context)

    async def info(self, message: str, **context: Any) -> None:
        await self.report("info", message, **context)

    async def warning(self, message: str, **context: Any) -> None:
        await self.report("warning", message, **context)

    async def error(self, message: str, **context: Any) -> None:
        await self.report("error", message, **context)
