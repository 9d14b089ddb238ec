"""
Unit tests for ServerConfig.
"""

import pytest

from assetserver.config import ServerConfig


class TestValidate:

    def test_valid_config(self, config):
        config.validate()

        assert config.root.is_dir()
        assert config.root.is_absolute()

    def test_missing_root(self, tmp_path):
        config = ServerConfig(root_dir=str(tmp_path / "nope"))

        with pytest.raises(ValueError, match="Root directory"):
            config.validate()

    def test_root_is_a_file(self, tmp_path):
        path = tmp_path / "file.txt"
        path.write_text("x")

        with pytest.raises(ValueError):
            ServerConfig(root_dir=str(path)).validate()

    @pytest.mark.parametrize("overrides", [
        {"port": 70000},
        {"port": -1},
        {"min_workers": 0},
        {"min_workers": 8, "max_workers": 4},
        {"chunk_size": 0},
        {"timeout": 0},
        {"allowed_methods": ()},
        {"cache_ttl": -1},
        {"log_format": "xml"},
    ])
    def test_invalid_values(self, root_dir, overrides):
        config = ServerConfig(root_dir=str(root_dir), **overrides)

        with pytest.raises(ValueError):
            config.validate()

    def test_port_zero_allowed(self, root_dir):
        ServerConfig(root_dir=str(root_dir), port=0).validate()


class TestFromEnv:

    def test_defaults(self, monkeypatch):
        for name in ("ASSET_HOST", "ASSET_PORT", "ASSET_ROOT", "ASSET_CACHE"):
            monkeypatch.delenv(name, raising=False)

        config = ServerConfig.from_env()

        assert config.host == "127.0.0.1"
        assert config.port == 8000
        assert config.root_dir == "public"
        assert config.cache_enabled is False

    def test_overrides(self, monkeypatch, root_dir):
        monkeypatch.setenv("ASSET_PORT", "9100")
        monkeypatch.setenv("ASSET_ROOT", str(root_dir))
        monkeypatch.setenv("ASSET_CACHE", "yes")
        monkeypatch.setenv("ASSET_CACHE_TTL", "2.5")
        monkeypatch.setenv("ASSET_LOG_FORMAT", "json")

        config = ServerConfig.from_env()

        assert config.port == 9100
        assert config.root_dir == str(root_dir)
        assert config.cache_enabled is True
        assert config.cache_ttl == 2.5
        assert config.log_format == "json"

    def test_malformed_number(self, monkeypatch):
        monkeypatch.setenv("ASSET_PORT", "eighty")

        with pytest.raises(ValueError):
            ServerConfig.from_env()

    @pytest.mark.parametrize("workers", ["1", "2", "3"])
    def test_small_worker_count_is_valid(self, monkeypatch, root_dir, workers):
        monkeypatch.setenv("ASSET_ROOT", str(root_dir))
        monkeypatch.setenv("ASSET_WORKERS", workers)

        config = ServerConfig.from_env()
        config.validate()

        assert config.max_workers == int(workers)
        assert config.min_workers == int(workers)

    def test_large_worker_count_keeps_default_minimum(self, monkeypatch):
        monkeypatch.setenv("ASSET_WORKERS", "64")

        config = ServerConfig.from_env()

        assert config.max_workers == 64
        assert config.min_workers == ServerConfig().min_workers
