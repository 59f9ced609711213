# tests/test_dispatcher.py
"""Tests for the in-process event dispatcher"""
import logging

import pytest

from tgstage.transport.dispatcher import EventDispatcher, command


class TestSubscriptions:
    def test_subscribe_assigns_random_group(self):
        events = EventDispatcher()
        sub = events.subscribe(lambda u: None)
        assert len(sub.group) == 8
        assert sub.group.isalnum()
        assert len(events) == 1

    def test_ids_are_numbered_per_dispatcher(self):
        first, second = EventDispatcher(), EventDispatcher()
        a1 = first.subscribe(lambda u: None)
        a2 = first.subscribe(lambda u: None)
        b1 = second.subscribe(lambda u: None)
        assert (a1.id, a2.id) == (1, 2)
        assert b1.id == 1

    def test_unsubscribe(self):
        events = EventDispatcher()
        sub = events.subscribe(lambda u: None, group="g")
        assert events.unsubscribe(sub) is True
        assert events.unsubscribe(sub) is False
        assert len(events) == 0

    def test_unsubscribe_group(self):
        events = EventDispatcher()
        events.subscribe(lambda u: None, group="a")
        events.subscribe(lambda u: None, group="a")
        events.subscribe(lambda u: None, group="b")
        assert events.unsubscribe_group("a") == 2
        assert events.groups() == ["b"]


class TestDispatch:
    @pytest.mark.asyncio
    async def test_delivers_in_subscription_order(self, make_update):
        events = EventDispatcher()
        calls = []
        events.subscribe(lambda u: calls.append("sync"))

        async def async_handler(update):
            calls.append("async")

        events.subscribe(async_handler)
        handled = await events.dispatch(make_update())

        assert handled == 2
        assert calls == ["sync", "async"]

    @pytest.mark.asyncio
    async def test_predicate_filters(self, make_update):
        events = EventDispatcher()
        calls = []
        events.subscribe(calls.append, predicate=command("start"))

        await events.dispatch(make_update("hello"))
        start = make_update("/start")
        await events.dispatch(start)

        assert calls == [start]

    @pytest.mark.asyncio
    async def test_subscriber_added_mid_dispatch_gets_same_update(self, make_update):
        events = EventDispatcher()
        late = []

        def first(update):
            events.subscribe(late.append)

        events.subscribe(first, group="first")
        update = make_update()
        handled = await events.dispatch(update)

        assert late == [update]
        assert handled == 2

    @pytest.mark.asyncio
    async def test_subscriber_removed_mid_dispatch_is_skipped(self, make_update):
        events = EventDispatcher()
        calls = []
        second = None

        def first(update):
            events.unsubscribe(second)

        events.subscribe(first)
        second = events.subscribe(calls.append)
        await events.dispatch(make_update())

        assert calls == []

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_stop_others(self, make_update, caplog):
        events = EventDispatcher()
        calls = []

        def broken(update):
            raise ValueError("bad handler")

        events.subscribe(broken, group="broken")
        events.subscribe(calls.append)

        with caplog.at_level(logging.ERROR, logger="tgstage.transport.dispatcher"):
            await events.dispatch(make_update())

        assert len(calls) == 1
        assert any("group=broken" in r.getMessage() for r in caplog.records)


class TestCommandPredicate:
    @pytest.mark.parametrize("text,expected", [
        ("/start", True),
        ("/start@MyBot", True),
        ("/start payload", True),
        ("start", False),
        ("/stop", False),
        ("/starter", False),
    ])
    def test_matches(self, make_update, text, expected):
        assert command("start")(make_update(text)) is expected

    def test_leading_slash_optional(self, make_update):
        assert command("/help")(make_update("/help"))

    def test_no_text(self, make_update):
        assert not command("start")(make_update(None))
