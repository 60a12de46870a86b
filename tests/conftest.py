"""
Pytest configuration and fixtures.
"""
import asyncio
from typing import Callable, Sequence

import pytest

from relaybot.bus.events import CommandKind, InboundCommand
from relaybot.dispatch.dispatcher import CommandDispatcher
from relaybot.dispatch.personas import Persona, PersonaRegistry
from relaybot.errors import UpstreamError
from relaybot.providers.base import ChatClient, Completion
from relaybot.session.manager import ConversationKey, SessionStore, Turn
from relaybot.session.window import ContextWindow


class FakeChatClient(ChatClient):
    """
    Scripted ChatClient.

    Replies "echo: <last user text>" unless a failure is queued. Per-user gates
    let a test hold a call open until it releases the gate.
    """

    def __init__(self):
        self.calls: list[dict] = []
        self.failures: list[UpstreamError] = []
        self.gates: dict[str, asyncio.Event] = {}
        self.started: dict[str, asyncio.Event] = {}
        self.reply_fn: Callable[[Sequence[Turn]], str] = lambda turns: f"echo: {turns[-1].text}"

    def gate(self, user: str) -> asyncio.Event:
        self.gates[user] = asyncio.Event()
        self.started[user] = asyncio.Event()
        return self.gates[user]

    async def complete(self, turns, system_prompt=None, user=None):
        self.calls.append({"turns": list(turns), "system_prompt": system_prompt, "user": user})
        if user in self.started:
            self.started[user].set()
        if user in self.gates:
            await self.gates[user].wait()
        if self.failures:
            raise self.failures.pop(0)
        return Completion(
            text=self.reply_fn(turns),
            usage={"prompt_tokens": 3, "completion_tokens": 2, "total_tokens": 5},
            model="fake",
        )

    def get_default_model(self) -> str:
        return "fake"


@pytest.fixture
def key():
    return ConversationKey(user_id="u1", channel_id="c1")


@pytest.fixture
def other_key():
    return ConversationKey(user_id="u2", channel_id="c1")


@pytest.fixture
def client():
    return FakeChatClient()


@pytest.fixture
def store():
    return SessionStore()


@pytest.fixture
def personas():
    return PersonaRegistry([
        Persona(name="default", prompt="You are a helpful assistant."),
        Persona(name="Pirate", prompt="Talk like a pirate."),
    ])


@pytest.fixture
def dispatcher(store, client, personas):
    return CommandDispatcher(
        store=store,
        client=client,
        window=ContextWindow(max_turns=20, max_turn_chars=4000),
        personas=personas,
    )


@pytest.fixture
def make_command():
    """Build an InboundCommand for tests."""
    def _make(key, kind, text=None, channel="test"):
        return InboundCommand(key=key, kind=CommandKind(kind), text=text, channel=channel)
    return _make
