"""
Unit tests for EventRouter.

Covers registration, dispatch to every handler, and per-handler failure
isolation.
"""

import pytest

from ci_common.errors import HandlerError
from ci_common.models import Event
from ci_controller.router import EventRouter


class TestEventRouter:
    """Test suite for EventRouter class."""

    @pytest.mark.asyncio
    async def test_dispatch_invokes_every_handler_once(self, project):
        """Test that every handler for the event name is called once with (event, project)."""
        router = EventRouter()
        calls = []
        router.register("exec", lambda e, p: calls.append(("first", e, p)))
        router.register("exec", lambda e, p: calls.append(("second", e, p)))
        event = Event(name="exec", payload=b"{}")

        errors = await router.dispatch(event, project)

        assert errors == []
        assert sorted(name for name, _, _ in calls) == ["first", "second"]
        assert all(e is event and p is project for _, e, p in calls)

    @pytest.mark.asyncio
    async def test_dispatch_supports_coroutine_handlers(self, project):
        """Test that handlers registered with on() may be coroutine functions."""
        router = EventRouter()
        seen = []

        @router.on("check_suite:requested")
        async def handler(event, proj):
            seen.append(event.name)

        await router.dispatch(Event(name="check_suite:requested"), project)

        assert seen == ["check_suite:requested"]

    @pytest.mark.asyncio
    async def test_unregistered_event_is_noop(self, project):
        """Test that an event without handlers is silently ignored."""
        router = EventRouter()
        called = []
        router.register("exec", lambda e, p: called.append(e))

        errors = await router.dispatch(Event(name="unknown"), project)

        assert errors == []
        assert called == []

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_block_others(self, project):
        """Test that a raising handler is reported and the others still run."""
        router = EventRouter()
        ran = []

        def broken(event, proj):
            raise RuntimeError("boom")

        router.register("Microsoft.Storage.BlobCreated", broken)
        router.register("Microsoft.Storage.BlobCreated", lambda e, p: ran.append(e))

        errors = await router.dispatch(
            Event(name="Microsoft.Storage.BlobCreated"), project
        )

        assert len(ran) == 1
        assert len(errors) == 1
        assert isinstance(errors[0], HandlerError)
        assert errors[0].event_name == "Microsoft.Storage.BlobCreated"
        assert isinstance(errors[0].original, RuntimeError)

    @pytest.mark.asyncio
    async def test_failing_async_handler_is_isolated(self, project):
        """Test that a raising coroutine handler never escapes dispatch()."""
        router = EventRouter()
        ran = []

        async def broken(event, proj):
            raise ValueError("bad payload")

        router.register("exec", broken)
        router.register("exec", lambda e, p: ran.append(True))

        errors = await router.dispatch(Event(name="exec"), project)

        assert ran == [True]
        assert "bad payload" in str(errors[0])

    def test_handlers_returns_copy(self):
        """Test that handlers() cannot be used to alter the registry."""
        router = EventRouter()
        router.register("exec", print)

        handlers = router.handlers("exec")
        handlers.clear()

        assert router.handlers("exec") == [print]
        assert router.event_names() == ["exec"]
