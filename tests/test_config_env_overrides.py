"""Tests for REQGRAPH_* environment overrides in config."""
from __future__ import annotations


class TestTryParseEnvValue:
    """_try_parse_env_value turns environment strings into typed values."""

    def test_json_list_parsed(self):
        """JSON array string is parsed into a Python list."""
        from reqgraph.config import _try_parse_env_value

        assert _try_parse_env_value('["a", "b"]') == ["a", "b"]

    def test_json_object_parsed(self):
        from reqgraph.config import _try_parse_env_value

        assert _try_parse_env_value('{"key": "value"}') == {"key": "value"}

    def test_booleans_parsed(self):
        """'true'/'false' (case-insensitive) become booleans."""
        from reqgraph.config import _try_parse_env_value

        assert _try_parse_env_value("true") is True
        assert _try_parse_env_value("TRUE") is True
        assert _try_parse_env_value("False") is False

    def test_integer_parsed(self):
        from reqgraph.config import _try_parse_env_value

        assert _try_parse_env_value("42") == 42
        assert _try_parse_env_value("-3") == -3

    def test_plain_string_passthrough(self):
        from reqgraph.config import _try_parse_env_value

        assert _try_parse_env_value("sqlite://facts.db") == "sqlite://facts.db"
        assert _try_parse_env_value("-") == "-"

    def test_malformed_json_returns_string(self):
        """Malformed JSON starting with [ or { falls back to the raw string."""
        from reqgraph.config import _try_parse_env_value

        assert _try_parse_env_value("[not valid json") == "[not valid json"


class TestApplyEnvOverrides:
    """apply_env_overrides maps REQGRAPH_SECTION_KEY onto config[section][key]."""

    def test_database_url(self, monkeypatch):
        from reqgraph.config import apply_env_overrides

        monkeypatch.setenv("REQGRAPH_DATABASE_URL", "sqlite://env.db")
        config = apply_env_overrides({"database": {"url": "sqlite://reqgraph.db"}})
        assert config["database"]["url"] == "sqlite://env.db"

    def test_key_with_underscores(self, monkeypatch):
        """Only the first underscore separates section from key."""
        from reqgraph.config import apply_env_overrides

        monkeypatch.setenv("REQGRAPH_HIERARCHY_DERIVE_FROM_ID", "false")
        config = apply_env_overrides({"hierarchy": {"derive_from_id": True}})
        assert config["hierarchy"]["derive_from_id"] is False

    def test_missing_section_created(self, monkeypatch):
        from reqgraph.config import apply_env_overrides

        monkeypatch.setenv("REQGRAPH_VALIDATION_FAIL_ON_UNRELATED", "true")
        config = apply_env_overrides({})
        assert config["validation"]["fail_on_unrelated"] is True

    def test_variable_without_key_ignored(self, monkeypatch):
        from reqgraph.config import apply_env_overrides

        monkeypatch.setenv("REQGRAPH_DATABASE", "x")
        assert apply_env_overrides({"database": {"url": "u"}}) == {"database": {"url": "u"}}

    def test_load_config_applies_environment(self, monkeypatch, tmp_path):
        """Environment wins over the config file."""
        from reqgraph.config import load_config

        config_file = tmp_path / ".reqgraph.toml"
        config_file.write_text('[report]\nformat = "json"\n')
        monkeypatch.setenv("REQGRAPH_REPORT_FORMAT", "html")

        assert load_config(config_file)["report"]["format"] == "html"
        assert load_config(config_file, apply_env=False)["report"]["format"] == "json"
