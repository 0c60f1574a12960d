"""Shared fixtures: every test starts from the bundled settings.yaml."""

import logging

import pytest

from config import ConfigurationManager, ENV_OVERRIDES
from ap_assist.utils.logger import LOGGER_NAMESPACE
from fakes import SleepRecorder


@pytest.fixture(autouse=True)
def fresh_config(monkeypatch):
    for name in ENV_OVERRIDES:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr("config.load_dotenv", lambda *args, **kwargs: False)
    ConfigurationManager.reset()
    yield
    ConfigurationManager.reset()


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    app_logger = logging.getLogger(LOGGER_NAMESPACE)
    for handler in list(app_logger.handlers):
        app_logger.removeHandler(handler)
        handler.close()
    app_logger.propagate = True
    app_logger.setLevel(logging.NOTSET)


@pytest.fixture
def sleep_recorder():
    return SleepRecorder()
