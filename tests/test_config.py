"""
Tests for configuration loading, resolution and runtime settings.
"""

from pathlib import Path

import pytest

from integrator.config.loader import Config, _merge_dict, load_config
from integrator.config.resolver import resolve_config
from integrator.config.settings import (
    DEFAULT_FORMATS,
    DEFAULT_STATE_DB,
    Settings,
    _as_bool,
    parse_formats,
    parse_subject_file,
)
from integrator.exceptions import ConfigurationError

REQUIRED = {"hie_url": "http://hie.test/query", "ingest_url": ":3001/collection/patients", "ee": "123", "now": True}


class TestConfig:
    """Tests for Config class."""

    def test_dot_notation(self):
        cfg = Config({"hie": {"url": "http://hie.test"}})
        assert cfg.get("hie.url") == "http://hie.test"

    def test_dot_notation_missing_returns_default(self):
        cfg = Config({"sync": {"ee": "1"}})
        assert cfg.get("sync.formats.first", "fallback") == "fallback"
        assert cfg.get("schedule.cron") is None

    def test_contains(self):
        cfg = Config({"sync": {"ee": "1"}})
        assert "sync" in cfg
        assert "sync.ee" in cfg
        assert "sync.ee_file" not in cfg

    def test_getitem(self):
        cfg = Config({"sync": {"ee": "1"}, "name": "prod"})
        assert cfg["name"] == "prod"
        assert isinstance(cfg["sync"], Config)
        assert cfg["sync.ee"] == "1"
        with pytest.raises(KeyError):
            cfg["missing"]

    def test_validate_sections_must_be_mappings(self):
        with pytest.raises(ConfigurationError, match="'hie' must be a mapping"):
            Config({"hie": "http://hie.test"}).validate()

    def test_validate_valid(self):
        Config({"hie": {"url": "x"}, "logging": {"level": "DEBUG"}}).validate()


class TestLoadConfig:
    """Tests for load_config."""

    def test_missing_default_file_gives_empty_config(self, tmp_path):
        assert load_config(tmp_path).data == {}

    def test_load_basic_config(self, tmp_path):
        (tmp_path / "config.yaml").write_text("hie:\n  url: http://hie.test/query\n")
        assert load_config(tmp_path).get("hie.url") == "http://hie.test/query"

    def test_explicit_missing_file_raises(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_config(tmp_path, config_file=tmp_path / "nope.yaml")

    def test_explicit_file(self, tmp_path):
        path = tmp_path / "other.yaml"
        path.write_text("sync:\n  ee: '42'\n")
        assert load_config(tmp_path, config_file=path).get("sync.ee") == "42"

    def test_env_overlay(self, tmp_path):
        (tmp_path / "config.yaml").write_text("hie:\n  url: http://dev\n  timeout: 30\n")
        (tmp_path / "config.prod.yaml").write_text("hie:\n  url: http://prod\n")
        cfg = load_config(tmp_path, env="prod")
        assert cfg.get("hie.url") == "http://prod"
        assert cfg.get("hie.timeout") == 30

    def test_invalid_yaml_raises(self, tmp_path):
        (tmp_path / "config.yaml").write_text("hie: [unclosed\n")
        with pytest.raises(ConfigurationError, match="config.yaml"):
            load_config(tmp_path)

    def test_non_mapping_raises(self, tmp_path):
        (tmp_path / "config.yaml").write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError, match="mapping"):
            load_config(tmp_path)

    def test_env_var_substitution(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TEST_HIE_PASSWORD", "s3cret")
        (tmp_path / "config.yaml").write_text("hie:\n  password: ${TEST_HIE_PASSWORD}\n")
        assert load_config(tmp_path).get("hie.password") == "s3cret"

    def test_env_placeholder_substitution(self, tmp_path):
        (tmp_path / "config.yaml").write_text("sync:\n  state_db: data/{env}.duckdb\n")
        assert load_config(tmp_path, env="staging").get("sync.state_db") == "data/staging.duckdb"


class TestResolver:
    def test_unknown_variable_left_as_written(self, monkeypatch):
        monkeypatch.delenv("NOT_SET_ANYWHERE", raising=False)
        assert resolve_config({"a": "${NOT_SET_ANYWHERE}"}) == {"a": "${NOT_SET_ANYWHERE}"}

    def test_lists_and_scalars(self, monkeypatch):
        monkeypatch.setenv("FMT", "XML^HL7^231^CCD^C32")
        resolved = resolve_config({"formats": ["${FMT}", "other"], "n": 3})
        assert resolved == {"formats": ["XML^HL7^231^CCD^C32", "other"], "n": 3}


class TestMergeDict:
    def test_nested_merge(self):
        base = {"hie": {"url": "a", "timeout": 1}}
        _merge_dict(base, {"hie": {"url": "b"}})
        assert base == {"hie": {"url": "b", "timeout": 1}}

    def test_replace_non_dict_with_dict(self):
        base = {"sync": "x"}
        _merge_dict(base, {"sync": {"ee": "1"}})
        assert base == {"sync": {"ee": "1"}}


class TestSettings:
    def test_defaults(self):
        settings = Settings.resolve(dict(REQUIRED))
        assert settings.formats == list(DEFAULT_FORMATS)
        assert settings.state_db == DEFAULT_STATE_DB
        assert settings.subjects == ["123"]
        assert settings.max_concurrency == 1
        assert settings.copy_dir is None
        assert settings.ingest_url == "http://localhost:3001/collection/patients"

    def test_overrides_beat_config(self):
        config = Config({"hie": {"url": "http://from-config"}, "sync": {"ee": "999"}})
        settings = Settings.resolve(dict(REQUIRED), config)
        assert settings.hie_url == "http://hie.test/query"
        assert settings.subjects == ["123"]

    def test_config_fills_unset_overrides(self):
        config = Config(
            {
                "hie": {"url": "http://hie.test", "user": "svc", "password": "pw", "timeout": 30},
                "ingest": {"url": "http://ingest.test"},
                "sync": {"ee": "7", "formats": ["A", "B"], "state_db": "s.duckdb", "max_concurrency": 4},
                "schedule": {"cron": "0 0 20 * * *", "timezone": "UTC"},
            }
        )
        settings = Settings.resolve({"hie_url": None, "ee": "", "now": False}, config)
        assert settings.hie_url == "http://hie.test"
        assert settings.hie_user == "svc"
        assert settings.timeout == 30.0
        assert settings.formats == ["A", "B"]
        assert settings.state_db == "s.duckdb"
        assert settings.max_concurrency == 4
        assert settings.cron == "0 0 20 * * *"
        assert settings.timezone == "UTC"
        assert settings.now is False

    @pytest.mark.parametrize(
        "missing,message",
        [
            ("hie_url", "HIE URL"),
            ("ingest_url", "Ingest URL"),
            ("ee", "EE or EE File"),
        ],
    )
    def test_required_settings(self, missing, message):
        overrides = dict(REQUIRED)
        overrides[missing] = None
        with pytest.raises(ConfigurationError, match=message):
            Settings.resolve(overrides)

    def test_needs_cron_or_now(self):
        overrides = dict(REQUIRED, now=False)
        with pytest.raises(ConfigurationError, match="Cron and/or the now flag"):
            Settings.resolve(overrides)

    def test_now_from_config(self):
        settings = Settings.resolve(dict(REQUIRED, now=False), Config({"schedule": {"now": "yes"}}))
        assert settings.now is True

    def test_rejects_zero_concurrency(self):
        with pytest.raises(ConfigurationError, match="max_concurrency"):
            Settings.resolve(dict(REQUIRED, max_concurrency=0))

    def test_subjects_from_file(self, tmp_path):
        ee_file = tmp_path / "subjects.txt"
        ee_file.write_text("111\n\n# retired\n222\n  333  \n")
        settings = Settings.resolve(dict(REQUIRED, ee=None, ee_file=str(ee_file)))
        assert settings.subjects == ["111", "222", "333"]

    def test_single_ee_wins_over_file(self, tmp_path):
        ee_file = tmp_path / "subjects.txt"
        ee_file.write_text("111\n")
        settings = Settings.resolve(dict(REQUIRED, ee_file=str(ee_file)))
        assert settings.subjects == ["123"]

    def test_empty_subject_file(self, tmp_path):
        ee_file = tmp_path / "subjects.txt"
        ee_file.write_text("# nobody yet\n")
        with pytest.raises(ConfigurationError, match="No EE numbers"):
            Settings.resolve(dict(REQUIRED, ee=None, ee_file=str(ee_file)))

    def test_formats_from_comma_string(self):
        settings = Settings.resolve(dict(REQUIRED, formats="A, B,,C"))
        assert settings.formats == ["A", "B", "C"]


class TestHelpers:
    def test_parse_formats_rejects_empty(self):
        with pytest.raises(ConfigurationError):
            parse_formats(" , ")

    def test_parse_subject_file_missing(self, tmp_path):
        with pytest.raises(ConfigurationError, match="ee file"):
            parse_subject_file(Path(tmp_path / "missing.txt"))

    @pytest.mark.parametrize("value,expected", [(True, True), ("on", True), ("1", True), ("no", False), ("", False)])
    def test_as_bool(self, value, expected):
        assert _as_bool(value) is expected

    def test_as_bool_invalid(self):
        with pytest.raises(ConfigurationError, match="not a valid value"):
            _as_bool("maybe")
