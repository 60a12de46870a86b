"""
Tests for the message bus, the console channel and the bus-driven dispatch loop.
"""

import asyncio
import io

import pytest
from rich.console import Console

from relaybot.bus.events import Audience, CommandKind, Reply
from relaybot.bus.queue import MessageBus
from relaybot.channels.console import ConsoleChannel, parse_command
from relaybot.config.schema import ConsoleConfig
from relaybot.dispatch.dispatcher import CommandDispatcher


@pytest.mark.parametrize("line,expected", [
    ("hello there", (CommandKind.CHAT, "hello there")),
    ("/chat  hi ", (CommandKind.CHAT, "hi")),
    ("/chat", (CommandKind.CHAT, None)),
    ("/reset", (CommandKind.RESET, None)),
    ("/PRIVATE", (CommandKind.PRIVATE, None)),
    ("/public", (CommandKind.PUBLIC, None)),
    ("/personality pirate", (CommandKind.PERSONALITY, "pirate")),
    ("/help", (CommandKind.HELP, None)),
    ("/dance now", (CommandKind.HELP, None)),
])
def test_parse_command(line, expected):
    assert parse_command(line) == expected


class TestMessageBus:

    async def test_routes_replies_by_channel(self, key):
        bus = MessageBus()
        received = []

        async def on_reply(reply):
            received.append(reply)

        bus.subscribe_outbound("console", on_reply)
        runner = asyncio.create_task(bus.dispatch_outbound())

        await bus.publish_outbound(Reply(key=key, content="to console", channel="console"))
        await bus.publish_outbound(Reply(key=key, content="nowhere", channel="other"))
        await asyncio.sleep(0.05)

        bus.stop()
        await runner
        assert [r.content for r in received] == ["to console"]

    async def test_subscriber_errors_do_not_stop_dispatch(self, key):
        bus = MessageBus()
        received = []

        async def broken(reply):
            raise RuntimeError("boom")

        async def on_reply(reply):
            received.append(reply)

        bus.subscribe_outbound("console", broken)
        bus.subscribe_outbound("console", on_reply)
        runner = asyncio.create_task(bus.dispatch_outbound())

        await bus.publish_outbound(Reply(key=key, content="a", channel="console"))
        await bus.publish_outbound(Reply(key=key, content="b", channel="console"))
        await asyncio.sleep(0.05)

        bus.stop()
        await runner
        assert [r.content for r in received] == ["a", "b"]


@pytest.fixture
async def console_setup(store, client, personas):
    """Bus + dispatcher loop + console channel, torn down after the test."""
    bus = MessageBus()
    dispatcher = CommandDispatcher(store, client, personas=personas, bus=bus)
    output = io.StringIO()
    channel = ConsoleChannel(
        ConsoleConfig(user_id="alice", channel_id="room"),
        bus,
        console=Console(file=output, force_terminal=False, width=100),
        render_markdown=False,
    )
    await channel.start()
    tasks = [asyncio.create_task(dispatcher.run()), asyncio.create_task(bus.dispatch_outbound())]

    yield channel, dispatcher, output

    dispatcher.stop()
    bus.stop()
    await channel.stop()
    await asyncio.gather(*tasks)


class TestConsoleChannel:

    async def test_chat_round_trip(self, console_setup, store):
        channel, _, output = console_setup

        reply = await asyncio.wait_for(channel.submit("hello"), timeout=5)

        assert reply.ok
        assert reply.content == "echo: hello"
        assert reply.channel == "console"
        conversation = next(iter(store.keys()))
        assert (conversation.user_id, conversation.channel_id) == ("alice", "room")
        assert "echo: hello" in output.getvalue()
        assert "(only you)" not in output.getvalue()

    async def test_chat_reply_shows_usage_footer(self, console_setup):
        channel, _, output = console_setup

        await asyncio.wait_for(channel.submit("hello"), timeout=5)
        await asyncio.wait_for(channel.submit("again"), timeout=5)

        assert "fake · 5 tokens · 2 chats, 10 tokens this session" in output.getvalue()

    async def test_command_acknowledgements_have_no_footer(self, console_setup):
        channel, _, output = console_setup

        await asyncio.wait_for(channel.submit("/reset"), timeout=5)

        assert "this session" not in output.getvalue()

    async def test_private_replies_are_tagged(self, console_setup):
        channel, _, output = console_setup

        await asyncio.wait_for(channel.submit("/private"), timeout=5)
        reply = await asyncio.wait_for(channel.submit("secret"), timeout=5)

        assert reply.audience is Audience.ISSUER
        assert "(only you)" in output.getvalue()

    async def test_errors_are_reported(self, console_setup):
        channel, _, output = console_setup

        reply = await asyncio.wait_for(channel.submit("/personality wizard"), timeout=5)

        assert not reply.ok
        assert reply.error == "input"
        assert "Unknown personality" in output.getvalue()

    async def test_denied_user_publishes_nothing(self, client):
        bus = MessageBus()
        channel = ConsoleChannel(
            ConsoleConfig(user_id="mallory", allow_from=["alice"]),
            bus,
            console=Console(file=io.StringIO()),
        )

        assert await channel.submit("hi") is None
        assert bus.inbound_size == 0
        assert client.calls == []


class TestDispatcherLoop:

    async def test_run_requires_bus(self, dispatcher):
        with pytest.raises(RuntimeError):
            await dispatcher.run()

    async def test_internal_errors_become_replies(self, store, client, personas, key, make_command):
        bus = MessageBus()
        dispatcher = CommandDispatcher(store, client, personas=personas, bus=bus)

        def explode(turns):
            raise ValueError("bad state")

        client.reply_fn = explode
        runner = asyncio.create_task(dispatcher.run())

        await bus.publish_inbound(make_command(key, "chat", "hi"))
        reply = await asyncio.wait_for(bus.consume_outbound(), timeout=5)

        dispatcher.stop()
        await runner
        assert not reply.ok
        assert reply.error == "internal"
        assert "bad state" in reply.content
        assert reply.audience is Audience.ISSUER
