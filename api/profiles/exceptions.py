from __future__ import annotations

from enum import Enum
from typing import Dict, Optional


class ProfileStatsError(Exception):
    """Base class for every classified failure raised by the stats pipeline."""

    code = "error"
    status_code = 500

    def __init__(self, message: str, **details: object):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, object] = {
            key: value for key, value in details.items() if value is not None
        }

    @property
    def retry_after(self) -> Optional[float]:
        value = self.details.get("retry_after")
        return float(value) if isinstance(value, (int, float)) else None

    def to_dict(self) -> Dict[str, object]:
        payload: Dict[str, object] = {"code": self.code, "error": self.message}
        if self.details:
            payload["details"] = dict(self.details)
        return payload


class UnsupportedPlatformError(ProfileStatsError, ValueError):
    """Raised when a reference does not belong to a supported platform."""

    code = "unsupported_platform"
    status_code = 400


class InvalidReferenceError(ProfileStatsError, ValueError):
    """Raised when a profile reference is malformed or has no username."""

    code = "invalid_reference"
    status_code = 400


class InvalidInputError(ProfileStatsError, ValueError):
    """Raised when the normalizer is handed a record without username or data."""

    code = "invalid_input"
    status_code = 400


class SourceErrorKind(str, Enum):
    BLOCKED = "blocked"
    NOT_FOUND = "not_found"
    TIMEOUT = "timeout"
    NETWORK = "network"
    PARSE = "parse"
    SERVER = "server"
    RATE_LIMITED = "rate_limited"
    UNAUTHORIZED = "unauthorized"


_SOURCE_STATUS_CODES: Dict[SourceErrorKind, int] = {
    SourceErrorKind.BLOCKED: 502,
    SourceErrorKind.NOT_FOUND: 404,
    SourceErrorKind.TIMEOUT: 504,
    SourceErrorKind.NETWORK: 502,
    SourceErrorKind.PARSE: 502,
    SourceErrorKind.SERVER: 502,
    SourceErrorKind.RATE_LIMITED: 503,
    SourceErrorKind.UNAUTHORIZED: 502,
}


class SourceError(ProfileStatsError):
    """Failure reported by a source adapter, tagged with its ``kind``."""

    def __init__(
        self,
        kind: SourceErrorKind,
        message: str,
        *,
        platform: Optional[str] = None,
        status: Optional[int] = None,
        **details: object,
    ):
        super().__init__(message, platform=platform, status=status, **details)
        self.kind = kind
        self.platform = platform
        self.status = status

    @property
    def code(self) -> str:  # type: ignore[override]
        return f"source_{self.kind.value}"

    @property
    def status_code(self) -> int:  # type: ignore[override]
        return _SOURCE_STATUS_CODES.get(self.kind, 502)

    @classmethod
    def from_status(
        cls, status: int, platform: str, url: Optional[str] = None
    ) -> "SourceError":
        """Classify a non-2xx HTTP status returned by an upstream source."""

        if status == 404:
            kind = SourceErrorKind.NOT_FOUND
        elif status == 429:
            kind = SourceErrorKind.RATE_LIMITED
        elif status == 401:
            kind = SourceErrorKind.UNAUTHORIZED
        elif status == 403:
            kind = SourceErrorKind.BLOCKED
        elif status == 408:
            kind = SourceErrorKind.TIMEOUT
        elif status >= 500:
            kind = SourceErrorKind.SERVER
        else:
            kind = SourceErrorKind.PARSE
        return cls(
            kind,
            f"{platform} responded with HTTP {status}",
            platform=platform,
            status=status,
            url=url,
        )


class CircuitOpenError(ProfileStatsError):
    code = "circuit_open"
    status_code = 503


class QueueFullError(ProfileStatsError):
    code = "queue_full"
    status_code = 503


class PoolExhaustedError(ProfileStatsError):
    code = "pool_exhausted"
    status_code = 503


class RateLimitedError(ProfileStatsError):
    code = "rate_limited"
    status_code = 429


class BandwidthExceededError(ProfileStatsError):
    code = "bandwidth_exceeded"
    status_code = 429


__all__ = [
    "BandwidthExceededError",
    "CircuitOpenError",
    "InvalidInputError",
    "InvalidReferenceError",
    "PoolExhaustedError",
    "ProfileStatsError",
    "QueueFullError",
    "RateLimitedError",
    "SourceError",
    "SourceErrorKind",
    "UnsupportedPlatformError",
]
