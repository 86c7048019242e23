"""
Tests for the YAML settings loader and the process-wide accessor.
"""

from decimal import Decimal

import pytest

import settlement_config
from settlement_config import (
    DEFAULT_CONFIG_PATH,
    ENV_VAR,
    get_active_config,
    load_config,
    reset_active_config,
)
from settlement_config.loader import compute_checksum, load_yaml_file, parse_config


@pytest.fixture(autouse=True)
def _fresh_active_config():
    reset_active_config()
    yield
    reset_active_config()


class TestDefaults:

    def test_packaged_defaults_load(self):
        config = load_config(DEFAULT_CONFIG_PATH)

        assert config.config_id == "default"
        assert config.version == 1
        assert config.database.url == "sqlite://"
        assert config.cache.breakdown_ttl_seconds == 300.0
        assert config.matching.amount_tolerance == Decimal("0.01")
        assert config.matching.payment_keywords == ()
        assert config.batch.chunk_size == 20
        assert len(config.checksum) == 64

    def test_missing_sections_fall_back_to_defaults(self):
        config = parse_config({"config_id": "bare"})

        assert config.config_id == "bare"
        assert config.fees.app_fee == Decimal("0")
        assert config.matching.min_name_length == 3

    def test_checksum_is_order_independent(self):
        assert compute_checksum({"a": 1, "b": 2}) == compute_checksum({"b": 2, "a": 1})
        assert compute_checksum({"a": 1}) != compute_checksum({"a": 2})


class TestValidation:

    def test_unknown_section_rejected(self):
        with pytest.raises(ValueError, match="unknown configuration sections"):
            parse_config({"reporting": {}})

    def test_unknown_key_rejected(self):
        with pytest.raises(ValueError, match="unknown keys"):
            parse_config({"cache": {"ttl": 10}})

    @pytest.mark.parametrize("rate", [-1, 101, "abc"])
    def test_fee_rate_out_of_range(self, rate):
        with pytest.raises(ValueError):
            parse_config({"fees": {"app_fee": rate}})

    def test_negative_tolerance_rejected(self):
        with pytest.raises(ValueError):
            parse_config({"matching": {"amount_tolerance": "-0.5"}})

    def test_keywords_uppercased(self):
        config = parse_config({"matching": {"payment_keywords": ["pix ", "Zelle"]}})

        assert config.matching.payment_keywords == ("PIX", "ZELLE")
        assert config.matching.as_context_kwargs()["payment_keywords"] == ("PIX", "ZELLE")

    @pytest.mark.parametrize(
        "section",
        [
            {"batch": {"chunk_size": 0}},
            {"database": {"echo": "yes"}},
            {"database": {"url": ""}},
            {"cache": {"breakdown_ttl_seconds": -1}},
            {"matching": {"min_name_length": True}},
        ],
    )
    def test_malformed_values_rejected(self, section):
        with pytest.raises(ValueError):
            parse_config(section)

    def test_top_level_must_be_mapping(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("- just\n- a list\n")

        with pytest.raises(ValueError, match="mapping"):
            load_yaml_file(path)

    def test_empty_file_is_all_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")

        assert load_config(path).batch.chunk_size == 20


class TestActiveConfig:

    def test_env_var_selects_file(self, tmp_path, monkeypatch):
        path = tmp_path / "club.yaml"
        path.write_text("config_id: club\nversion: 3\nfees:\n  app_fee: 7.5\n")
        monkeypatch.setenv(ENV_VAR, str(path))

        config = get_active_config()

        assert config.config_id == "club"
        assert config.version == 3
        assert config.fees.as_mapping()["app_fee"] == Decimal("7.5")

    def test_loaded_once_until_reset(self, monkeypatch):
        monkeypatch.delenv(ENV_VAR, raising=False)

        first = get_active_config()

        assert get_active_config() is first
        reset_active_config()
        assert get_active_config() is not first

    def test_explicit_path_bypasses_cache(self, tmp_path, monkeypatch):
        monkeypatch.delenv(ENV_VAR, raising=False)
        path = tmp_path / "other.yaml"
        path.write_text("config_id: other\n")
        cached = get_active_config()

        assert get_active_config(path).config_id == "other"
        assert settlement_config._active is cached

    def test_missing_file_propagates(self, tmp_path, monkeypatch):
        monkeypatch.setenv(ENV_VAR, str(tmp_path / "nope.yaml"))

        with pytest.raises(FileNotFoundError):
            get_active_config()

    def test_trace_emitted_on_load(self, captured_logs, monkeypatch):
        monkeypatch.delenv(ENV_VAR, raising=False)

        config = get_active_config()

        traces = [r for r in captured_logs() if r["message"] == "SETTLEMENT_CONFIG_TRACE"]
        assert len(traces) == 1
        assert traces[0]["config_id"] == "default"
        assert traces[0]["checksum"] == config.checksum
