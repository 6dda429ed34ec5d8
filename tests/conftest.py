"""
Shared fixtures: a recording gateway that stands in for GeoServer.
"""

import logging
from logging.handlers import RotatingFileHandler

import pytest

from gs_utils import GeoServerConfig


BASE_URL = "http://gs.example.org:8080/geoserver"


class RecordingGateway:
    """
    Records every call as (method, url, body).

    Calls whose URL contains one of `fail_on` report failure (None),
    everything else succeeds with an empty body like GeoServer's 201.
    """

    def __init__(self, fail_on=()):
        self.calls = []
        self.fail_on = tuple(fail_on)

    def post_xml(self, url, xml):
        return self._send("POST", url, xml)

    def put_xml(self, url, xml):
        return self._send("PUT", url, xml)

    def _send(self, method, url, xml):
        self.calls.append((method, url, xml))
        if any(part in url for part in self.fail_on):
            return None
        return ""

    @property
    def urls(self):
        return [url for _, url, _ in self.calls]


@pytest.fixture
def config():
    return GeoServerConfig(base_url=BASE_URL, username="admin", password="secret")


@pytest.fixture
def gateway():
    return RecordingGateway()


@pytest.fixture
def restore_root_handlers():
    """Drop file handlers added to the root logger during a test."""
    root = logging.getLogger()
    before = list(root.handlers)
    level = root.level
    yield
    for h in list(root.handlers):
        if h not in before:
            root.removeHandler(h)
            if isinstance(h, RotatingFileHandler):
                h.close()
    root.setLevel(level)
