import logging
import os

import pytest

_ENV_PREFIXES = ("DEEPVIZ_", "GEMINI_")


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path, monkeypatch):
    """Sin variables del usuario, XDG apuntando a tmp y cwd sin .env."""
    for name in list(os.environ):
        if name.startswith(_ENV_PREFIXES):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg-config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "xdg-data"))
    monkeypatch.chdir(tmp_path)
    yield


@pytest.fixture(autouse=True)
def _reset_logger():
    yield
    lg = logging.getLogger("deepviz")
    for h in list(lg.handlers):
        lg.removeHandler(h)
        h.close()
    lg.setLevel(logging.NOTSET)
    lg.propagate = True
