"""Transport capability interface.

Both transports present the same protocol steps to the Job. Nothing
outside the communication package branches on the transport kind.
"""

from abc import ABC, abstractmethod
from typing import Optional

from fedcycle.core.types import (
    ArtifactKind,
    CycleRequest,
    CycleResponse,
    FederatedReport,
)


class Transport(ABC):
    """Abstract base class for coordinator transports"""

    #: Short name used in logs
    kind: str = "abstract"

    @abstractmethod
    async def authenticate(self, auth_token: Optional[str] = None) -> str:
        """Authenticate the device.

        Args:
            auth_token: Optional token issued by the coordinator

        Returns:
            Worker id assigned by the coordinator
        """

    @abstractmethod
    async def negotiate_cycle(self, request: CycleRequest) -> CycleResponse:
        """Ask to join a cycle.

        Returns:
            CycleAccepted or CycleRejected
        """

    @abstractmethod
    async def report_result(self, report: FederatedReport) -> None:
        """Send the diff of a finished cycle"""

    async def close(self) -> None:
        """Release connections held by the transport"""


class ArtifactSource(ABC):
    """Anything that can fetch raw plan/model bytes for an accepted cycle"""

    @abstractmethod
    async def fetch_artifact(
        self,
        kind: ArtifactKind,
        artifact_id: int,
        worker_id: str,
        request_key: str
    ) -> bytes:
        """Fetch raw artifact bytes"""
