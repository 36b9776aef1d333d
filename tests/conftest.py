from collections.abc import Mapping
import os
from pathlib import Path
import sys

from _pytest.monkeypatch import MonkeyPatch
import pytest

pytest_plugins = [
    "tests._plugins.pytest_ruthless",
]


# Ensure repo root is importable as a package root (for `pare_mcp.*`).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from pare_mcp.config import ResolvedConfig, resolve_config  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def _session_env(tmp_path_factory: pytest.TempPathFactory) -> None:
    """
    Session-level hermetic env that does not depend on the function-scoped
    `monkeypatch` fixture (avoids ScopeMismatch).
    """
    home = tmp_path_factory.mktemp("home")
    mp = MonkeyPatch()
    mp.setenv("HOME", str(home))
    mp.setenv("PYTHONHASHSEED", "0")
    try:
        yield
    finally:
        mp.undo()


@pytest.fixture(autouse=True)
def hermetic_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """
    Autouse: each test runs in its own tmp cwd with no PARE_* settings leaking
    in from the developer's shell.
    """
    monkeypatch.chdir(tmp_path)
    for key in list(os.environ):
        if key.startswith("PARE_"):
            monkeypatch.delenv(key)
    return tmp_path


@pytest.fixture
def make_config():
    """Resolve a config from an explicit env mapping (HOME taken from the session)."""

    def _make(env: Mapping[str, str] | None = None, servers=("process",)) -> ResolvedConfig:
        snapshot = {"HOME": os.environ["HOME"]}
        snapshot.update(env or {})
        return resolve_config(snapshot, servers)

    return _make
