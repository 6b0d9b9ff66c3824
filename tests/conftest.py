import os
import sys
import tempfile
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

# The app module loads its config at import time; keep that away from the
# repository's configs/ directory.
_SESSION_DIR = Path(tempfile.mkdtemp(prefix="chatgate-tests-"))
for _key in list(os.environ):
    if _key.startswith("CHATGATE_"):
        del os.environ[_key]
os.environ["CHATGATE_CONFIG_FILE"] = str(_SESSION_DIR / "chatgate.toml")
os.environ["CHATGATE_LOG_DIR"] = str(_SESSION_DIR / "logs")


@pytest.fixture(autouse=True)
def clear_chatgate_env(monkeypatch):
    keep = {"CHATGATE_CONFIG_FILE", "CHATGATE_LOG_DIR"}
    for key in list(os.environ.keys()):
        if key.startswith("CHATGATE_") and key not in keep:
            monkeypatch.delenv(key, raising=False)
    yield


@pytest.fixture
def isolated_config(tmp_path, monkeypatch):
    """Point the config loader at a fresh file under ``tmp_path``."""

    config_path = tmp_path / "chatgate.toml"
    monkeypatch.setenv("CHATGATE_CONFIG_FILE", str(config_path))
    return config_path
