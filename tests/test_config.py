"""Tests for configuration loading."""

import json
from pathlib import Path

import pytest

from chunkvault.config import (
    DEFAULT_CHUNK_SIZE, DEFAULT_MAX_ARTIFACT_SIZE, Config, MiB, load_config,
)
from chunkvault.errors import ConfigurationError


class TestConfigDefaults:
    """Tests for default values and validation."""

    def test_defaults(self):
        config = Config().validate()

        assert config.max_artifact_size == DEFAULT_MAX_ARTIFACT_SIZE == 100 * MiB
        assert config.chunk_size == DEFAULT_CHUNK_SIZE == 10 * MiB
        assert config.compression_level == 19
        assert config.cache_policy == "lru"
        assert config.public_key is None

    def test_directories(self, tmp_path):
        config = Config(data_dir=tmp_path)

        assert config.artifacts_dir == tmp_path / "artifacts"
        assert config.manifests_dir == tmp_path / "manifests"

    @pytest.mark.parametrize("overrides", [
        {"chunk_size": 11, "max_artifact_size": 10},
        {"chunk_size": 0},
        {"max_artifact_size": -5},
        {"compression_level": 0},
        {"compression_level": 23},
        {"max_workers": 0},
        {"cache_policy": "fifo"},
        {"cache_max_bytes": -1},
    ])
    def test_invalid_values(self, overrides):
        with pytest.raises(ConfigurationError):
            Config(**overrides).validate()


class TestConfigSources:
    """Tests for environment and file loading."""

    def test_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("CHUNKVAULT_DATA_DIR", str(tmp_path))
        monkeypatch.setenv("CHUNKVAULT_MAX_ARTIFACT_SIZE", "2048")
        monkeypatch.setenv("CHUNKVAULT_CHUNK_SIZE", "1024")
        monkeypatch.setenv("CHUNKVAULT_CACHE_POLICY", "UNBOUNDED")
        monkeypatch.setenv("CHUNKVAULT_PUBLIC_KEY", "cvpub1example")

        config = Config.from_env()

        assert config.data_dir == tmp_path
        assert config.max_artifact_size == 2048
        assert config.chunk_size == 1024
        assert config.cache_policy == "unbounded"
        assert config.public_key == "cvpub1example"
        assert config.private_key is None

    def test_from_env_bad_integer(self, monkeypatch):
        monkeypatch.setenv("CHUNKVAULT_CHUNK_SIZE", "ten megabytes")

        with pytest.raises(ConfigurationError, match="CHUNKVAULT_CHUNK_SIZE"):
            Config.from_env()

    def test_from_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"chunk_size": 4096, "max_workers": 8,
                                    "data_dir": "/srv/vault"}))

        config = Config.from_file(path)

        assert config.chunk_size == 4096
        assert config.max_workers == 8
        assert config.data_dir == Path("/srv/vault")

    def test_from_missing_file(self, tmp_path):
        assert Config.from_file(tmp_path / "absent.json") == Config()

    def test_from_invalid_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{not json")

        with pytest.raises(ConfigurationError):
            Config.from_file(path)

    @pytest.mark.parametrize("field", ["compression_level", "max_workers", "cache_max_bytes"])
    def test_string_tuning_value_in_file(self, tmp_path, field):
        """Quoted numbers in the JSON file are a configuration error, not a TypeError."""
        path = tmp_path / "config.json"
        path.write_text(json.dumps({field: "4"}))

        config = Config.from_file(path)

        with pytest.raises(ConfigurationError, match=field):
            config.validate()

    def test_string_tuning_value_via_load_config(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"compression_level": "19", "max_workers": "4"}))

        with pytest.raises(ConfigurationError):
            load_config(path)

    def test_save_omits_keys(self, tmp_path):
        path = tmp_path / "config.json"
        Config(chunk_size=4096, public_key="cvpub1x", private_key="cvsec1x").save(path)

        data = json.loads(path.read_text())

        assert data["chunk_size"] == 4096
        assert "public_key" not in data
        assert "private_key" not in data

    def test_load_config_env_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"chunk_size": 4096, "max_workers": 8}))
        monkeypatch.setenv("CHUNKVAULT_MAX_WORKERS", "2")
        monkeypatch.setenv("CHUNKVAULT_PRIVATE_KEY", "cvsec1example")

        config = load_config(path)

        assert config.chunk_size == 4096
        assert config.max_workers == 2
        assert config.private_key == "cvsec1example"

    def test_load_config_validates(self, monkeypatch):
        monkeypatch.setenv("CHUNKVAULT_CHUNK_SIZE", str(200 * MiB))

        with pytest.raises(ConfigurationError):
            load_config()
