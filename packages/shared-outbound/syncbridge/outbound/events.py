"""Publish/subscribe dispatcher used to trigger synchronization.

Listeners may be plain functions or coroutine functions. Two dispatch modes
are available:

- ``await bus.emit(event, payload)`` runs listeners one at a time in
  registration order, awaiting each before starting the next.
- ``bus.emit_detached(event, payload)`` calls listeners synchronously and
  schedules any awaitable results as tasks. Their faults are escalated on a
  later loop iteration; the returned DetachedDispatch can be joined or
  dropped.

What happens to a listener fault depends on the bus FaultMode. Every fault is
recorded regardless of mode and can be read back with get_last_fault().
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

Listener = Callable[[Any], Any]


class FaultMode(str, Enum):
    """How listener faults are surfaced."""

    IMMEDIATE = "immediate"  # Re-raise to the dispatch caller
    DELAYED = "delayed"  # Escalate to the loop exception handler on the next tick
    SILENT = "silent"  # Record only


@dataclass(frozen=True)
class EventFault:
    """A fault raised by one listener."""

    event: str
    handler_index: int
    error: BaseException
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class EventContext:
    """Event supplied by the hosting process, dispatched once by start()."""

    event_name: str
    payload: Any = None


_last_fault: EventFault | None = None


def get_last_fault() -> EventFault | None:
    """Most recent listener fault recorded by any bus in this process."""
    return _last_fault


def reset_last_fault() -> None:
    global _last_fault
    _last_fault = None


class DetachedDispatch:
    """Handle for the tasks scheduled by EventBus.emit_detached().

    Dropping the handle leaves the tasks running; their faults still go
    through the bus fault mode.
    """

    def __init__(self, event: str, tasks: list[asyncio.Future[Any]]):
        self.event = event
        self.tasks = tasks

    @property
    def done(self) -> bool:
        return all(task.done() for task in self.tasks)

    async def join(self) -> list[BaseException]:
        """Wait for every scheduled task and return the faults they raised."""
        if not self.tasks:
            return []
        results = await asyncio.gather(*self.tasks, return_exceptions=True)
        return [result for result in results if isinstance(result, BaseException)]


class EventBus:
    """Ordered publish/subscribe dispatcher.

    Example:
        bus = EventBus(fault_mode=FaultMode.SILENT)
        bus.on("Contact.afterCreate", sync_contact).on("Contact.afterCreate", audit)
        await bus.emit("Contact.afterCreate", {"id": "c-1"})
    """

    def __init__(
        self,
        fault_mode: FaultMode = FaultMode.IMMEDIATE,
        context: EventContext | None = None,
    ):
        self.fault_mode = FaultMode(fault_mode)
        self.context = context
        self.last_fault: EventFault | None = None
        self._listeners: dict[str, list[Listener]] = {}
        self._started = False
        self._emitted = 0

    @property
    def current_event_name(self) -> str | None:
        return self.context.event_name if self.context else None

    def set_fault_mode(self, mode: FaultMode | str) -> EventBus:
        self.fault_mode = FaultMode(mode)
        return self

    def on(self, event: str, handler: Listener) -> EventBus:
        """Append a listener for an event."""
        if not callable(handler):
            raise TypeError(f"Listener for '{event}' must be callable")
        self._listeners.setdefault(event, []).append(handler)
        return self

    def off(self, event: str, handler: Listener) -> EventBus:
        """Remove the first listener registered for an event that is handler."""
        listeners = self._listeners.get(event, [])
        for index, registered in enumerate(listeners):
            if registered is handler:
                del listeners[index]
                break
        if not listeners:
            self._listeners.pop(event, None)
        return self

    def clear(self) -> EventBus:
        self._listeners.clear()
        return self

    def has_listeners(self, event: str) -> bool:
        return bool(self._listeners.get(event))

    def events(self) -> list[str]:
        """Event names that currently have listeners."""
        return list(self._listeners)

    def stats(self) -> dict[str, Any]:
        return {
            "events": len(self._listeners),
            "listeners": sum(len(listeners) for listeners in self._listeners.values()),
            "by_event": {event: len(listeners) for event, listeners in self._listeners.items()},
            "emitted": self._emitted,
            "fault_mode": self.fault_mode.value,
        }

    async def emit(self, event: str, payload: Any = None) -> bool:
        """Dispatch an event, awaiting each listener in registration order.

        Returns:
            True if the event had listeners.

        Raises:
            Exception: In IMMEDIATE mode, the first listener fault. Remaining
                listeners do not run.
        """
        listeners = list(self._listeners.get(event, []))
        self._emitted += 1
        for index, listener in enumerate(listeners):
            try:
                result = listener(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                self._report(EventFault(event, index, e))
        return bool(listeners)

    def emit_detached(self, event: str, payload: Any = None) -> DetachedDispatch:
        """Dispatch an event without awaiting asynchronous listeners.

        Must be called from a running event loop. Synchronous faults are
        handled inline; faults of scheduled tasks are escalated when the
        task completes.

        Raises:
            RuntimeError: If no event loop is running.
            Exception: In IMMEDIATE mode, a synchronous listener fault.
        """
        asyncio.get_running_loop()
        listeners = list(self._listeners.get(event, []))
        self._emitted += 1
        tasks: list[asyncio.Future[Any]] = []
        for index, listener in enumerate(listeners):
            try:
                result = listener(payload)
            except Exception as e:
                self._report(EventFault(event, index, e))
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                task.add_done_callback(self._deferred_fault_callback(event, index))
                tasks.append(task)
        return DetachedDispatch(event, tasks)

    async def start(self) -> bool:
        """Dispatch the context event once.

        Subsequent calls, including calls made by listeners of that event,
        do nothing.

        Returns:
            True if this call performed the dispatch.
        """
        if self._started or self.context is None:
            return False
        self._started = True
        logger.debug(f"Auto-dispatching context event '{self.context.event_name}'")
        await self.emit(self.context.event_name, self.context.payload)
        return True

    def _deferred_fault_callback(
        self, event: str, index: int
    ) -> Callable[[asyncio.Future[Any]], None]:
        def callback(task: asyncio.Future[Any]) -> None:
            if task.cancelled():
                return
            error = task.exception()
            if error is not None:
                self._report(EventFault(event, index, error), deferred=True)

        return callback

    def _report(self, fault: EventFault, deferred: bool = False) -> None:
        global _last_fault
        _last_fault = fault
        self.last_fault = fault
        logger.error(
            f"Listener {fault.handler_index} for '{fault.event}' failed: "
            f"{fault.error.__class__.__name__}: {fault.error}"
        )

        if self.fault_mode == FaultMode.SILENT:
            return
        if self.fault_mode == FaultMode.IMMEDIATE and not deferred:
            raise fault.error
        self._escalate_later(fault)

    def _escalate_later(self, fault: EventFault) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        loop.call_soon(_escalate, loop, fault)


def _escalate(loop: asyncio.AbstractEventLoop, fault: EventFault) -> None:
    loop.call_exception_handler(
        {
            "message": f"Unhandled fault in listener {fault.handler_index} for '{fault.event}'",
            "exception": fault.error,
            "event": fault.event,
        }
    )

