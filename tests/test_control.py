"""
Control channel tests against a fake requests session.
"""

import pytest
import requests

from shieldclient.control import ControlChannel
from shieldclient.errors import ControlError, ControlTimeoutError, NotConnectedError


class FakeResponse:
    def __init__(self, status_code=200, text=""):
        self.status_code = status_code
        self.text = text


class FakeHTTP:
    def __init__(self, response=None, exc=None):
        self.response = response or FakeResponse()
        self.exc = exc
        self.requests = []
        self.closed = False

    def request(self, method, url, json=None, timeout=None):
        self.requests.append((method, url, json, timeout))
        if self.exc is not None:
            raise self.exc
        return self.response

    def close(self):
        self.closed = True


class TestControlChannel:
    """Request/response mapping."""

    def test_get_returns_body(self):
        http = FakeHTTP(FakeResponse(200, '{"board_connected": true}'))
        control = ControlChannel("10.0.1.3", timeout=2.0, session=http)

        assert control.get("/board") == '{"board_connected": true}'
        assert http.requests == [("GET", "http://10.0.1.3/board", None, 2.0)]

    def test_post_sends_json(self):
        http = FakeHTTP(FakeResponse(200, "Success"))
        control = ControlChannel("10.0.1.3", session=http)

        control.post("/command", {"command": "b"})

        method, url, payload, _ = http.requests[0]
        assert (method, url, payload) == ("POST", "http://10.0.1.3/command", {"command": "b"})

    def test_delete(self):
        http = FakeHTTP(FakeResponse(200, "ok"))
        control = ControlChannel("10.0.1.3", session=http)

        assert control.delete("/wifi") == "ok"
        assert http.requests[0][0] == "DELETE"

    def test_non_2xx_raises_control_error(self):
        http = FakeHTTP(FakeResponse(502, "board not responding"))
        control = ControlChannel("10.0.1.3", session=http)

        with pytest.raises(ControlError) as excinfo:
            control.get("/board")

        assert excinfo.value.status_code == 502
        assert excinfo.value.body == "board not responding"

    def test_timeout_raises_control_timeout(self):
        control = ControlChannel("10.0.1.3", session=FakeHTTP(exc=requests.exceptions.ReadTimeout()))

        with pytest.raises(ControlTimeoutError):
            control.get("/all")

    def test_unreachable_raises_control_timeout(self):
        control = ControlChannel("10.0.1.3", session=FakeHTTP(exc=requests.exceptions.ConnectionError()))

        with pytest.raises(TimeoutError):
            control.get("/all")

    def test_no_ip_address(self):
        control = ControlChannel(session=FakeHTTP())

        with pytest.raises(NotConnectedError):
            control.get("/board")

    def test_custom_port(self):
        http = FakeHTTP()
        control = ControlChannel("10.0.1.3", port=8080, session=http)
        control.get("/all")

        assert http.requests[0][1] == "http://10.0.1.3:8080/all"

    def test_close(self):
        http = FakeHTTP()
        ControlChannel("10.0.1.3", session=http).close()

        assert http.closed
