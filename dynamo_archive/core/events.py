from asyncio import iscoroutinefunction
from collections import defaultdict
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Awaitable, Callable

from loguru import logger

from dynamo_archive.log.sensitive import sensitive_log_filter


class TransferSignal(StrEnum):
    START = "start"
    PROGRESS = "progress"
    WARNING = "warning"
    ERROR = "error"
    FINISH = "finish"


@dataclass
class TransferEvent:
    signal: TransferSignal
    table: str
    phase: str | None = None
    message: str = ""
    data: dict[str, Any] = field(default_factory=dict)
    error: BaseException | None = None


EventListener = Callable[[TransferEvent], None | Awaitable[None]]


class TransferEvents:
    """Observer registry owned by an orchestrator.

    Collaborators subscribe to the fixed set of signals, either through
    `subscribe` or the decorator helpers; the orchestrator is the only emitter.
    Listeners may be plain functions or coroutine functions.

    Usage:
        events = TransferEvents()

        @events.on_progress
        def show(event: TransferEvent) -> None:
            print(event.message)
    """

    def __init__(self) -> None:
        self._listeners: dict[TransferSignal, list[EventListener]] = defaultdict(list)

    def subscribe(
        self, signal: TransferSignal | str, listener: EventListener
    ) -> EventListener:
        signal = TransferSignal(signal)
        logger.debug(f"Registering {listener} as a {signal} listener")
        self._listeners[signal].append(listener)
        return listener

    def subscribe_all(self, listener: EventListener) -> EventListener:
        for signal in TransferSignal:
            self.subscribe(signal, listener)
        return listener

    def on_start(self, listener: EventListener) -> EventListener:
        return self.subscribe(TransferSignal.START, listener)

    def on_progress(self, listener: EventListener) -> EventListener:
        return self.subscribe(TransferSignal.PROGRESS, listener)

    def on_warning(self, listener: EventListener) -> EventListener:
        return self.subscribe(TransferSignal.WARNING, listener)

    def on_error(self, listener: EventListener) -> EventListener:
        return self.subscribe(TransferSignal.ERROR, listener)

    def on_finish(self, listener: EventListener) -> EventListener:
        return self.subscribe(TransferSignal.FINISH, listener)

    async def emit(
        self,
        signal: TransferSignal,
        table: str,
        message: str = "",
        *,
        phase: str | None = None,
        error: BaseException | None = None,
        **data: Any,
    ) -> None:
        event = TransferEvent(
            signal=signal,
            table=table,
            phase=phase,
            message=message,
            data=data,
            error=error,
        )
        for listener in self._listeners[signal]:
            try:
                if iscoroutinefunction(listener):
                    await listener(event)
                else:
                    listener(event)
            except Exception as e:
                logger.error(f"Listener {listener} failed on {signal} event: {e}")


class LoggingObserver:
    """Writes every transfer event to the log, with its data bound as masked extras."""

    _LEVELS = {
        TransferSignal.START: "INFO",
        TransferSignal.PROGRESS: "DEBUG",
        TransferSignal.WARNING: "WARNING",
        TransferSignal.ERROR: "ERROR",
        TransferSignal.FINISH: "INFO",
    }

    def __call__(self, event: TransferEvent) -> None:
        phase = f" [{event.phase}]" if event.phase else ""
        data = dict(event.data)
        if event.error is not None:
            data["error"] = event.error
        data = sensitive_log_filter.mask_object(data, full_hide=True)
        logger.bind(table=event.table, **data).log(
            self._LEVELS[event.signal], f"{event.table}{phase}: {event.message}"
        )

    def attach(self, events: TransferEvents) -> None:
        events.subscribe_all(self)
