"""Error taxonomy shared by providers and services"""
from typing import Optional


class ZoneKeeperError(Exception):
    """Base class for all zonekeeper errors"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ZoneKeeperError):
    """Input failed shape or content rules; never reaches a backend"""


class ConfigurationError(ZoneKeeperError):
    """Unknown provider type, missing credentials or similar setup problem"""


class NotFoundError(ZoneKeeperError):
    """Identifier does not resolve locally or remotely"""


class RemoteApiError(ZoneKeeperError):
    """Backend rejected the request"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

    def __str__(self):
        if self.status_code:
            return f"[{self.status_code}] {self.message}"
        return self.message


class AuthenticationError(RemoteApiError):
    """Backend refused our credentials"""


class RateLimitError(RemoteApiError):
    """Backend throttled us; retry_after is the server's hint in seconds"""

    def __init__(self, message: str, retry_after: int = 60, status_code: int = 429):
        super().__init__(message, status_code=status_code)
        self.retry_after = retry_after


class TransientNetworkError(RemoteApiError):
    """Connection reset, timeout or DNS failure talking to the backend"""


class TunnelError(ZoneKeeperError):
    """SSH tunnel to the backend could not be established"""

    def __init__(self, message: str, host: Optional[str] = None, service: Optional[str] = None):
        super().__init__(message)
        self.host = host
        self.service = service


class DivergenceWarning(ZoneKeeperError):
    """Remote write succeeded but the local commit did not.

    Not raised; attached to operation results and healed by reconciliation.
    """

    def __init__(self, message: str, remote_payload: Optional[dict] = None):
        super().__init__(message)
        self.remote_payload = remote_payload or {}


class UnsupportedOperationError(ZoneKeeperError):
    """Backend has no equivalent for the requested operation"""
