"""Exceptions raised by the shield client."""

from typing import Optional


class ShieldError(RuntimeError):
    """Base class for every error raised by this package."""


class ControlError(ShieldError):
    """The shield answered a control request with a non-2xx status."""

    def __init__(self, status_code: int, body: str = "", path: Optional[str] = None):
        self.status_code = status_code
        self.body = body
        self.path = path
        detail = body.strip()
        target = f" {path}" if path else ""
        if detail:
            super().__init__(f"Shield rejected request{target}: HTTP {status_code} -> {detail}")
        else:
            super().__init__(f"Shield rejected request{target}: HTTP {status_code}")


class ControlTimeoutError(ShieldError, TimeoutError):
    """No terminal response arrived from the shield in time."""


class DiscoveryTimeoutError(ShieldError, TimeoutError):
    """No acceptable shield was found within the search budget."""


class NoBoardError(ShieldError):
    """The shield is reachable but no sensor board is attached to it."""


class AlreadyStreamingError(ShieldError):
    pass


class NotStreamingError(ShieldError):
    pass


class NotConnectedError(ShieldError):
    pass


class AlreadySearchingError(ShieldError):
    pass
