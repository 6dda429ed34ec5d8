from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional, Tuple

import requests


DEFAULT_GEOSERVER_URL = "http://localhost:8080/geoserver"
DEFAULT_AUTH = ("admin", "geoserver")
DEFAULT_TIMEOUT = 30.0

# GeoServer answers a successful configuration call with one of these
SUCCESS_CODES = (200, 201, 202)

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class GeoServerConfig:
    """
    Connection settings shared by every manager: REST endpoint and basic credentials.
    """
    base_url: str
    username: str
    password: str
    timeout: float = DEFAULT_TIMEOUT

    def __post_init__(self) -> None:
        if not self.base_url:
            raise ValueError("GeoServer base URL is required")
        object.__setattr__(self, "base_url", self.base_url.rstrip("/"))

    @classmethod
    def from_env(cls) -> "GeoServerConfig":
        """
        Build a config from GEOSERVER_URL / GEOSERVER_USER / GEOSERVER_PASSWORD / GEOSERVER_TIMEOUT.
        Missing values fall back to a stock local GeoServer.
        """
        timeout = os.getenv("GEOSERVER_TIMEOUT")
        return cls(
            base_url=os.getenv("GEOSERVER_URL") or DEFAULT_GEOSERVER_URL,
            username=os.getenv("GEOSERVER_USER") or DEFAULT_AUTH[0],
            password=os.getenv("GEOSERVER_PASSWORD") or DEFAULT_AUTH[1],
            timeout=float(timeout) if timeout else DEFAULT_TIMEOUT,
        )

    @property
    def auth(self) -> Tuple[str, str]:
        return (self.username, self.password)

    def rest_url(self, *parts: str) -> str:
        """
        Join path parts under {base}/rest/. Parts are used verbatim (no quoting),
        so the same inputs always produce the same URL.
        """
        return f"{self.base_url}/rest/" + "/".join(parts)


class RestGateway:
    """
    Sends XML bodies to the GeoServer REST API.

    A call returns the response text when GeoServer accepts it (an empty body
    still counts) and None otherwise. Nothing is retried here.
    """

    def __init__(self, config: GeoServerConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.session = session or requests.Session()
        self.session.auth = config.auth

    def post_xml(self, url: str, xml: str) -> Optional[str]:
        return self.send("POST", url, xml)

    def put_xml(self, url: str, xml: str) -> Optional[str]:
        return self.send("PUT", url, xml)

    def send(self, method: str, url: str, xml: str) -> Optional[str]:
        try:
            r = self.session.request(
                method,
                url,
                headers={"Content-Type": "text/xml"},
                data=xml.encode("utf-8"),
                timeout=self.config.timeout,
            )
        except requests.RequestException as e:
            log.warning("%s %s failed: %s", method, url, e)
            return None

        if r.status_code not in SUCCESS_CODES:
            # 409 Conflict is what an already existing store/resource looks like
            log.warning("%s %s returned %s %s", method, url, r.status_code, r.text)
            return None
        return r.text or ""
