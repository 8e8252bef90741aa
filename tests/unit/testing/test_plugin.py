"""Tests for the pytest plugin helpers (servers are REAL processes)."""
from __future__ import annotations

import pytest

from helpers.apps import fast_settings, status_server_command
from helpers.sockets import HOST, free_port
from volttest.core.exceptions import HealthCheckTimeout
from volttest.core.server import ServerRegistry
from volttest.testing import plugin


@pytest.fixture
def registry():
    reg = ServerRegistry(config=None)
    yield reg
    reg.stop_all()


@pytest.mark.slow
@pytest.mark.requires_network
def test_start_managed_server_starts_and_registers(registry, app_root, monkeypatch, capsys):
    monkeypatch.setenv("VOLTTEST_BASE_PATH", str(app_root))
    monkeypatch.setenv("VOLTTEST_DEBUG", "1")
    registered = []
    monkeypatch.setattr("volttest.core.server.registry.atexit.register", registered.append)

    manager, key = plugin.start_managed_server(
        "tests/test_checkout.py::TestCheckout",
        None,
        registry=registry,
        host=HOST,
        preferred_port=free_port(),
        settings=fast_settings(),
    )

    assert manager.is_running()
    assert registry.get(key) is manager
    assert registered == [registry.stop_all]
    assert f"Server started for tests/test_checkout.py::TestCheckout at {manager.get_url()}" in capsys.readouterr().err

    again, same_key = plugin.start_managed_server(
        "tests/test_checkout.py::TestCheckout", None, registry=registry, host=HOST, settings=fast_settings()
    )
    assert again is manager
    assert same_key == key

    assert registry.stop(key)
    assert not manager.is_running()


def test_start_failure_is_wrapped(registry, tmp_path, monkeypatch):
    monkeypatch.setenv("VOLTTEST_BASE_PATH", str(tmp_path))
    with pytest.raises(RuntimeError) as excinfo:
        plugin.start_managed_server("tests::TestBroken", None, registry=registry)
    assert "Failed to start test server for tests::TestBroken" in str(excinfo.value)
    assert excinfo.value.__cause__ is not None
    assert len(registry) == 0


@pytest.mark.slow
@pytest.mark.requires_network
def test_failed_health_check_stops_and_unregisters_server(registry, app_root, monkeypatch):
    monkeypatch.setenv("VOLTTEST_BASE_PATH", str(app_root))
    created = []
    get_or_create = registry.get_or_create

    def tracking_get_or_create(*args, **kwargs):
        manager = get_or_create(*args, **kwargs)
        created.append(manager)
        return manager

    monkeypatch.setattr(registry, "get_or_create", tracking_get_or_create)

    with pytest.raises(RuntimeError) as excinfo:
        plugin.start_managed_server(
            "tests::TestUnhealthy",
            None,
            registry=registry,
            host=HOST,
            preferred_port=free_port(),
            settings=fast_settings(status_server_command(app_root, 500), startup_timeout_seconds=1.0),
        )

    assert isinstance(excinfo.value.__cause__, HealthCheckTimeout)
    assert len(created) == 1
    assert not created[0].is_running()
    stats = registry.get_stats()
    assert stats["active_servers"] == 0
    assert stats["total_servers"] == 0


@pytest.mark.slow
@pytest.mark.requires_network
def test_debug_toggle_writes_lifecycle_lines_to_stderr(registry, app_root, monkeypatch, capsys):
    monkeypatch.setenv("VOLTTEST_BASE_PATH", str(app_root))
    monkeypatch.setenv("VOLTTEST_DEBUG_FOR_SERVER_MANAGEMENT", "1")

    manager, _ = plugin.start_managed_server(
        "tests::TestDebug", None, registry=registry, host=HOST, preferred_port=free_port(), settings=fast_settings()
    )

    assert manager.debug is True
    err = capsys.readouterr().err
    assert "Starting server with command" in err
    assert f"Working directory: {app_root.resolve()}" in err


class TestUnmanaged:
    """Without VOLTTEST_ENABLE_SERVER_MANAGEMENT the fixtures fall back to the base URL."""

    def test_no_server_by_default(self, volttest_server):
        assert volttest_server is None

    def test_base_url_fallback(self, volttest_base_url):
        assert volttest_base_url == "http://localhost:8000"

    def test_client_config(self, volttest_client_config):
        assert volttest_client_config == {
            "base_url": "http://localhost:8000",
            "save_reports": False,
            "http_debug": False,
        }

    def test_stats_fixture(self, volttest_server_stats):
        assert volttest_server_stats["total_servers"] == 0
