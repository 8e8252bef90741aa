import logging
import os
import sys
from pathlib import Path

import pytest

# Keep the repository free of Python bytecode and __pycache__ artifacts during tests.
sys.dont_write_bytecode = True

TESTS_ROOT = Path(__file__).resolve().parent
REPO_ROOT = TESTS_ROOT.parent
SRC_ROOT = REPO_ROOT / "src"

# Make src/ importable as 'volttest' and tests/ importable for 'helpers'
for p in (SRC_ROOT, TESTS_ROOT):
    if str(p) not in sys.path:
        sys.path.insert(0, str(p))


from helpers.apps import make_app
from helpers.cache_utils import reset_volttest_state

# Toggles and overrides that change behaviour when present in a developer shell.
_LEAK_PRONE_ENV_PREFIX = "VOLTTEST_"


def pytest_configure(config: pytest.Config) -> None:
    # An installed distribution registers the plugin through its pytest11 entry point.
    manager = config.pluginmanager
    if not (manager.has_plugin("volttest") or manager.has_plugin("volttest.testing.plugin")):
        manager.import_plugin("volttest.testing.plugin")


@pytest.fixture(autouse=True)
def _isolate_volttest_state(monkeypatch: pytest.MonkeyPatch):
    """Fresh caches, registry and logging plus a clean VOLTTEST_* environment."""
    for key in list(os.environ):
        if key.startswith(_LEAK_PRONE_ENV_PREFIX):
            monkeypatch.delenv(key, raising=False)
    reset_volttest_state()
    yield
    reset_volttest_state()


@pytest.fixture
def app_root(tmp_path: Path) -> Path:
    """A minimal valid application root (bootstrap, public/, index.php)."""
    return make_app(tmp_path / "app")


@pytest.fixture
def volttest_caplog(caplog: pytest.LogCaptureFixture) -> pytest.LogCaptureFixture:
    caplog.set_level(logging.DEBUG, logger="volttest")
    return caplog
