"""
Unit tests for configuration loading and saving.
"""

import json

import pytest
from pydantic import ValidationError

from relaybot.config.loader import (
    camel_to_snake,
    convert_keys,
    convert_to_camel,
    load_config,
    save_config,
    snake_to_camel,
)
from relaybot.config.schema import Config, PersonaConfig, SessionConfig


class TestKeyConversion:

    @pytest.mark.parametrize("camel,snake", [
        ("maxTurns", "max_turns"),
        ("apiBase", "api_base"),
        ("lockTimeout", "lock_timeout"),
        ("model", "model"),
    ])
    def test_camel_snake(self, camel, snake):
        assert camel_to_snake(camel) == snake
        assert snake_to_camel(snake) == camel

    def test_nested_conversion(self):
        data = {"session": {"maxTurns": 5}, "personas": [{"name": "a", "prompt": "b"}]}
        assert convert_keys(data) == {"session": {"max_turns": 5}, "personas": [{"name": "a", "prompt": "b"}]}
        assert convert_to_camel(convert_keys(data)) == data


class TestLoadSave:

    def test_missing_file_gives_defaults(self, tmp_path):
        config = load_config(tmp_path / "missing.json")
        assert config.session.max_turns == 20
        assert config.session.max_turn_chars == 4000
        assert config.session.lock_timeout == 30.0
        assert config.session.idle_timeout is None
        assert config.provider.model == "openai/gpt-3.5-turbo"
        assert config.provider.max_tokens == 300
        assert config.provider.temperature == 0.5
        assert [p.name for p in config.personas] == ["default"]

    def test_round_trip(self, tmp_path):
        path = tmp_path / "config.json"
        config = Config()
        config.session.max_turns = 8
        config.session.idle_timeout = 600
        config.provider.api_key = "sk-test"
        config.personas.append(PersonaConfig(name="Pirate", prompt="Talk like a pirate."))

        save_config(config, path)

        raw = json.loads(path.read_text())
        assert raw["session"]["maxTurns"] == 8
        assert raw["provider"]["apiKey"] == "sk-test"
        assert raw["defaultPersona"] == "default"

        loaded = load_config(path)
        assert loaded.session.max_turns == 8
        assert loaded.session.idle_timeout == 600
        assert loaded.provider.api_key == "sk-test"
        assert [p.name for p in loaded.persona_list()] == ["default", "Pirate"]

    def test_camel_case_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({
            "session": {"maxTurns": 4, "maxTotalChars": 1000},
            "channels": {"console": {"userId": "alice", "allowFrom": ["alice"]}},
        }))

        config = load_config(path)

        assert config.session.max_turns == 4
        assert config.session.max_total_chars == 1000
        assert config.channels.console.user_id == "alice"
        assert config.channels.console.allow_from == ["alice"]

    def test_broken_json_falls_back_to_defaults(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{not json")
        assert load_config(path).session.max_turns == 20

    def test_invalid_values_fall_back_to_defaults(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"session": {"maxTurns": 0}}))
        assert load_config(path).session.max_turns == 20


class TestValidation:

    def test_session_bounds(self):
        with pytest.raises(ValidationError):
            SessionConfig(max_turns=0)
        with pytest.raises(ValidationError):
            SessionConfig(lock_timeout=-1)

    def test_lock_timeout_can_be_disabled(self):
        assert SessionConfig(lock_timeout=None).lock_timeout is None
