"""
Event router mapping event names to handler functions.

Handlers are isolated from each other: one handler raising never prevents
the others registered for the same event from running, and never escapes
dispatch().
"""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from ci_common.errors import HandlerError
from ci_common.models import Event, Project

logger = logging.getLogger(__name__)

Handler = Callable[[Event, Project], Awaitable[Any] | Any]


def _handler_name(handler: Handler) -> str:
    return getattr(handler, "__qualname__", None) or repr(handler)


class EventRouter:
    """
    Registry of event handlers owned by an explicit router instance.

    Construct one per process (or per test) and inject it where events
    arrive; there is no process-wide registry.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = {}

    def register(self, event_name: str, handler: Handler) -> None:
        """
        Associate a handler with an event name.

        Args:
            event_name: Event name, e.g. "check_suite:requested"
            handler: Callable taking (event, project); may be a coroutine function
        """
        self._handlers.setdefault(event_name, []).append(handler)
        logger.debug(f"Registered handler {_handler_name(handler)} for {event_name}")

    def on(self, event_name: str) -> Callable[[Handler], Handler]:
        """Decorator form of register()."""

        def decorator(handler: Handler) -> Handler:
            self.register(event_name, handler)
            return handler

        return decorator

    def handlers(self, event_name: str) -> list[Handler]:
        """Return the handlers registered for an event name."""
        return list(self._handlers.get(event_name, []))

    def event_names(self) -> list[str]:
        return sorted(self._handlers)

    async def dispatch(self, event: Event, project: Project) -> list[HandlerError]:
        """
        Invoke every handler registered for event.name with (event, project).

        Args:
            event: Incoming event
            project: Project the event was delivered for

        Returns:
            One HandlerError per handler that raised; empty when all succeeded
            or when no handler is registered
        """
        handlers = self.handlers(event.name)
        if not handlers:
            logger.debug(f"No handlers registered for {event.name}")
            return []

        logger.info(
            f"Dispatching {event.name} for project {project.id} "
            f"to {len(handlers)} handler(s)"
        )
        results = await asyncio.gather(
            *(self._invoke(handler, event, project) for handler in handlers)
        )
        return [error for error in results if error is not None]

    async def _invoke(
        self, handler: Handler, event: Event, project: Project
    ) -> HandlerError | None:
        name = _handler_name(handler)
        try:
            result = handler(event, project)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Handler {name} failed for {event.name}: {e}", exc_info=True)
            return HandlerError(event.name, name, e)
        return None
