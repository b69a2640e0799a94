import logging
import re

import pytest

from watch_core.models import WatchConfig


@pytest.fixture
def logger():
    return logging.getLogger('test')


@pytest.fixture
def make_config():
    def _make(pattern=r'^latest$', interval=30.0, **kwargs):
        return WatchConfig(repository='repo', tag_pattern=re.compile(pattern), interval=interval, **kwargs)
    return _make


@pytest.fixture(autouse=True)
def no_metrics_server(monkeypatch):
    monkeypatch.delenv('METRICS_PORT', raising=False)
