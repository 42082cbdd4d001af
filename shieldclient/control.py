"""REST control-plane client for the WiFi shield."""

import threading
from typing import Optional

import requests

from .common import DEFAULT_CONTROL_TIMEOUT, SHIELD_HTTP_PORT, log
from .errors import ControlError, ControlTimeoutError, NotConnectedError


class ControlChannel:
    """
    Issues GET/POST/DELETE requests against the shield's REST surface.
    One request is in flight at a time.
    """

    def __init__(self, ip_address: Optional[str] = None,
                 timeout: float = DEFAULT_CONTROL_TIMEOUT,
                 port: int = SHIELD_HTTP_PORT,
                 session: Optional[requests.Session] = None):
        self.ip_address = ip_address
        self.timeout    = timeout
        self.port       = port
        self._http      = session or requests.Session()
        self._lock      = threading.Lock()

    @property
    def base_url(self) -> str:
        if not self.ip_address:
            raise NotConnectedError("ip address is not set, call connect with the shield's ip address")
        if self.port == SHIELD_HTTP_PORT:
            return f"http://{self.ip_address}"
        return f"http://{self.ip_address}:{self.port}"

    def get(self, path: str) -> str:
        return self._request("GET", path)

    def post(self, path: str, payload: dict) -> str:
        return self._request("POST", path, payload)

    def delete(self, path: str) -> str:
        return self._request("DELETE", path)

    def close(self):
        self._http.close()

    def _request(self, method: str, path: str, payload: Optional[dict] = None) -> str:
        url = f"{self.base_url}{path}"
        with self._lock:
            log.debug(f"TX: {method} {url} {payload if payload is not None else ''}".rstrip())
            try:
                response = self._http.request(method, url, json=payload, timeout=self.timeout)
            except requests.exceptions.Timeout as e:
                raise ControlTimeoutError(f"No response to {method} {path} within {self.timeout}s") from e
            except requests.exceptions.ConnectionError as e:
                raise ControlTimeoutError(f"Shield at {self.ip_address} unreachable: {e}") from e

        body = response.text
        log.debug(f"RX: {response.status_code} {body!r}")
        if not 200 <= response.status_code < 300:
            raise ControlError(response.status_code, body, path)
        return body
