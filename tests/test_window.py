"""
Unit tests for ContextWindow.
"""

import pytest

from relaybot.session.manager import Role, Session
from relaybot.session.window import ContextWindow


def _history(key, n, text="msg"):
    session = Session(key=key)
    for i in range(n):
        session.append_turn(Role.USER if i % 2 == 0 else Role.ASSISTANT, f"{text}{i}")
    return session.history


class TestContextWindow:

    def test_empty_history(self):
        assert ContextWindow().select([]) == []

    def test_short_history_is_returned_whole(self, key):
        history = _history(key, 3)
        assert ContextWindow(max_turns=5).select(history) == history

    def test_returns_exactly_most_recent_turns_in_order(self, key):
        history = _history(key, 30)
        selected = ContextWindow(max_turns=7).select(history)
        assert len(selected) == 7
        assert selected == history[-7:]
        assert [t.sequence for t in selected] == list(range(23, 30))

    def test_never_exceeds_max_turns(self, key):
        window = ContextWindow(max_turns=4)
        for n in range(0, 12):
            assert len(window.select(_history(key, n))) <= 4

    def test_long_latest_turn_keeps_tail(self, key):
        session = Session(key=key)
        session.append_turn(Role.USER, "a" * 50 + "TAIL")
        selected = ContextWindow(max_turn_chars=10).select(session.history)

        assert len(selected) == 1
        assert selected[0].text == "aaaaaaTAIL"
        assert selected[0].sequence == 0
        # the stored turn is untouched
        assert len(session.history[0].text) == 54

    def test_oversized_older_turn_is_truncated_too(self, key):
        session = Session(key=key)
        session.append_turn(Role.USER, "x" * 100_000 + "END")
        session.append_turn(Role.ASSISTANT, "ok")
        session.append_turn(Role.USER, "next")

        selected = ContextWindow(max_turns=20, max_turn_chars=4000).select(session.history)

        assert [len(t.text) for t in selected] == [4000, 2, 4]
        assert selected[0].text.endswith("END")
        assert [t.sequence for t in selected] == [0, 1, 2]
        assert len(session.history[0].text) == 100_003

    def test_total_budget_drops_oldest_but_keeps_latest(self, key):
        session = Session(key=key)
        session.append_turn(Role.USER, "x" * 10)
        session.append_turn(Role.ASSISTANT, "y" * 10)
        session.append_turn(Role.USER, "z" * 10)

        selected = ContextWindow(max_total_chars=20).select(session.history)
        assert [t.sequence for t in selected] == [1, 2]

        selected = ContextWindow(max_total_chars=5, max_turn_chars=8).select(session.history)
        assert [t.text for t in selected] == ["z" * 8]

    def test_build_messages_with_system_prompt(self, key):
        history = _history(key, 2)
        messages = ContextWindow.build_messages(history, "Be nice.")
        assert messages == [
            {"role": "system", "content": "Be nice."},
            {"role": "user", "content": "msg0"},
            {"role": "assistant", "content": "msg1"},
        ]

    def test_build_messages_without_system_prompt(self, key):
        assert ContextWindow.build_messages(_history(key, 1)) == [{"role": "user", "content": "msg0"}]

    @pytest.mark.parametrize("kwargs", [{"max_turns": 0}, {"max_turn_chars": 0}, {"max_total_chars": 0}])
    def test_rejects_invalid_bounds(self, kwargs):
        with pytest.raises(ValueError):
            ContextWindow(**kwargs)
