from __future__ import annotations

from pathlib import Path

import pytest

from volttest.core.config import ConfigManager, clear_all_caches, get_cached_config
from volttest.core.config.cache import is_cached
from volttest.core.config.domains import LoggingConfig, RegistryConfig, ServerConfig
from volttest.core.config.domains.registry import DEFAULT_LOCK_FILENAME
from volttest.core.exceptions import ConfigError


def _write_project_config(root: Path, name: str, text: str) -> None:
    cfg_dir = root / ".volttest" / "config"
    cfg_dir.mkdir(parents=True, exist_ok=True)
    (cfg_dir / name).write_text(text, encoding="utf-8")


class TestLayering:
    def test_bundled_defaults(self, tmp_path):
        cfg = ConfigManager(tmp_path).load_config()
        assert cfg["server"]["port"] == 8000
        assert cfg["server"]["ports"]["scan_window"] == 100
        assert cfg["registry"]["worker_window"] == 10
        assert cfg["registry"]["lock"]["cross_process"] is False
        assert cfg["logging"]["level"] == "INFO"

    def test_project_config_overrides_defaults(self, tmp_path):
        _write_project_config(tmp_path, "server.yaml", "server:\n  port: 9100\n  php_binary: php8.3\n")
        cfg = ConfigManager(tmp_path).load_config()
        assert cfg["server"]["port"] == 9100
        assert cfg["server"]["php_binary"] == "php8.3"
        assert cfg["server"]["host"] == "127.0.0.1"

    def test_project_files_merge_alphabetically(self, tmp_path):
        _write_project_config(tmp_path, "a.yaml", "server:\n  port: 9100\n")
        _write_project_config(tmp_path, "b.yml", "server:\n  port: 9200\n")
        assert ConfigManager(tmp_path).load_config()["server"]["port"] == 9200

    def test_list_append_marker(self, tmp_path):
        _write_project_config(tmp_path, "server.yaml", "server:\n  command: ['+', '{entrypoint}']\n")
        command = ConfigManager(tmp_path).load_config()["server"]["command"]
        assert command[0] == "{php_binary}"
        assert command[-1] == "{entrypoint}"

    def test_env_overrides_win_and_are_coerced(self, tmp_path, monkeypatch):
        _write_project_config(tmp_path, "server.yaml", "server:\n  port: 9100\n")
        monkeypatch.setenv("VOLTTEST_SERVER__PORT", "9300")
        monkeypatch.setenv("VOLTTEST_REGISTRY__LOCK__CROSS_PROCESS", "true")
        monkeypatch.setenv("VOLTTEST_SERVER__PROBE_TIMEOUT_SECONDS", "0.25")
        cfg = ConfigManager(tmp_path).load_config()
        assert cfg["server"]["port"] == 9300
        assert cfg["registry"]["lock"]["cross_process"] is True
        assert cfg["server"]["probe_timeout_seconds"] == 0.25

    def test_plain_toggles_are_not_config(self, tmp_path, monkeypatch):
        monkeypatch.setenv("VOLTTEST_DEBUG", "1")
        monkeypatch.setenv("VOLTTEST_BASE_URL", "http://example.test")
        cfg = ConfigManager(tmp_path).load_config()
        assert "debug" not in cfg
        assert "base_url" not in cfg

    def test_empty_env_segment_is_rejected(self, tmp_path, monkeypatch):
        monkeypatch.setenv("VOLTTEST_SERVER____PORT", "1")
        with pytest.raises(ConfigError):
            ConfigManager(tmp_path).load_config()


class TestValidation:
    def test_invalid_yaml_fails_closed(self, tmp_path):
        _write_project_config(tmp_path, "server.yaml", "server: [unclosed\n")
        with pytest.raises(ConfigError) as excinfo:
            ConfigManager(tmp_path).load_config()
        assert "server.yaml" in str(excinfo.value)

    def test_non_mapping_file_is_rejected(self, tmp_path):
        _write_project_config(tmp_path, "server.yaml", "- just\n- a list\n")
        with pytest.raises(ConfigError):
            ConfigManager(tmp_path).load_config()

    def test_schema_violation_names_location(self, tmp_path, monkeypatch):
        monkeypatch.setenv("VOLTTEST_SERVER__PORT", "not-a-port")
        with pytest.raises(ConfigError) as excinfo:
            ConfigManager(tmp_path).load_config()
        assert excinfo.value.context["path"] == "server.port"
        assert isinstance(excinfo.value, ValueError)

    def test_unknown_server_key_is_rejected(self, tmp_path):
        _write_project_config(tmp_path, "server.yaml", "server:\n  prot: 1\n")
        with pytest.raises(ConfigError):
            ConfigManager(tmp_path).load_config()

    def test_validation_can_be_skipped(self, tmp_path):
        _write_project_config(tmp_path, "server.yaml", "server:\n  prot: 1\n")
        cfg = ConfigManager(tmp_path).load_config(validate=False)
        assert cfg["server"]["prot"] == 1


class TestCache:
    def test_same_inputs_share_one_dict(self, tmp_path):
        first = get_cached_config(tmp_path)
        assert get_cached_config(tmp_path) is first
        assert is_cached(tmp_path)
        clear_all_caches()
        assert not is_cached(tmp_path)

    def test_project_edits_invalidate(self, tmp_path):
        assert get_cached_config(tmp_path)["server"]["port"] == 8000
        _write_project_config(tmp_path, "server.yaml", "server:\n  port: 9400\n")
        assert get_cached_config(tmp_path)["server"]["port"] == 9400

    def test_env_changes_invalidate(self, tmp_path, monkeypatch):
        assert get_cached_config(tmp_path)["server"]["port"] == 8000
        monkeypatch.setenv("VOLTTEST_SERVER__PORT", "9500")
        assert get_cached_config(tmp_path)["server"]["port"] == 9500


class TestDomainConfigs:
    def test_server_config(self, tmp_path):
        _write_project_config(tmp_path, "server.yaml", "server:\n  host: 0.0.0.0\n  port: 9001\n")
        cfg = ServerConfig(repo_root=tmp_path)
        assert cfg.host == "0.0.0.0"
        assert cfg.port == 9001
        assert cfg.settings.layout.public_dir == "public"
        assert cfg.repo_root == tmp_path.resolve()

    def test_registry_config_defaults(self, tmp_path):
        cfg = RegistryConfig(repo_root=tmp_path)
        assert cfg.base_port == 8000
        assert cfg.worker_window == 10
        assert cfg.fallback_window == 1000
        assert cfg.cross_process_lock is False
        assert cfg.lock_path.name == DEFAULT_LOCK_FILENAME
        assert cfg.lock_timeout_seconds == 30.0

    def test_registry_lock_path_override(self, tmp_path):
        _write_project_config(
            tmp_path,
            "registry.yaml",
            f"registry:\n  lock:\n    cross_process: true\n    path: {tmp_path / 'reg.lock'}\n",
        )
        cfg = RegistryConfig(repo_root=tmp_path)
        assert cfg.cross_process_lock is True
        assert cfg.lock_path == tmp_path / "reg.lock"

    def test_logging_config(self, tmp_path):
        _write_project_config(tmp_path, "logging.yaml", "logging:\n  level: DEBUG\n")
        assert LoggingConfig(repo_root=tmp_path).level == "DEBUG"
