import os

import pytest

from typetest import config as config_module


class FakeClock:
    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep tests away from the user's config file, env and log file."""
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_FILE", tmp_path / "missing-config.yaml")
    for name in list(os.environ):
        if name.startswith(config_module.ENV_PREFIX):
            monkeypatch.delenv(name)
    monkeypatch.setenv("TYPETEST_LOG_FILE", str(tmp_path / "typetest.log"))
