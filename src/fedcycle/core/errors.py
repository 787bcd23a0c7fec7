"""Error taxonomy for a federated learning cycle.

Every failure that ends a cycle is a subclass of FedCycleError so the Job
can route it to the error callback in one place.
"""

from enum import Enum
from typing import Optional


class FedCycleError(Exception):
    """Base class for all cycle failures"""


class PreconditionReason(Enum):
    """Why the device refused to start a cycle"""
    NOT_CHARGING = "not_charging"
    NOT_WIFI = "not_wifi"


class PreconditionFailure(FedCycleError):
    """Device preconditions not met. No network call was attempted."""

    def __init__(self, reason: PreconditionReason):
        self.reason = reason
        if reason is PreconditionReason.NOT_CHARGING:
            message = "User requested that device should be charging when executing."
        else:
            message = "Device not on wifi"
        super().__init__(message)


class TransportFailure(FedCycleError):
    """Bad endpoint, connection error, non-2xx status or undecodable body"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class ProtocolFailure(FedCycleError):
    """Coordinator answered, but refused the request.

    Attributes:
        reason: Server supplied reason
        retry_after: Seconds the coordinator asked us to wait before a new
            cycle, if it said so
    """

    def __init__(self, reason: str, retry_after: Optional[float] = None):
        self.reason = reason
        self.retry_after = retry_after
        message = reason
        if retry_after is not None:
            message = f"{reason} (retry after {retry_after}s)"
        super().__init__(message)


class DecodeFailure(FedCycleError):
    """Downloaded artifact bytes could not be decoded"""

    def __init__(self, kind: str, message: str):
        self.kind = kind
        super().__init__(f"Failed to decode {kind}: {message}")


class JobStateError(FedCycleError):
    """Job used out of order (second start, report without ids, ...)"""
