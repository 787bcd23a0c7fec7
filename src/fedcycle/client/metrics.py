"""Connection metrics reported in the cycle request.

Measuring throughput is the host's job; the cycle only needs the triple.
"""

from typing import Protocol, runtime_checkable

from fedcycle.core.types import (
    DEFAULT_DOWNLOAD_SPEED,
    DEFAULT_PING,
    DEFAULT_UPLOAD_SPEED,
    ConnectionMetrics,
)


@runtime_checkable
class ConnectionMetricsProbe(Protocol):
    """Measures ping and throughput against the coordinator"""

    async def measure(self, worker_id: str) -> ConnectionMetrics:
        ...


class StaticMetricsProbe:
    """Probe returning fixed metrics"""

    def __init__(
        self,
        ping: str = DEFAULT_PING,
        upload_speed: float = DEFAULT_UPLOAD_SPEED,
        download_speed: float = DEFAULT_DOWNLOAD_SPEED
    ):
        self.metrics = ConnectionMetrics(
            ping=str(ping),
            upload_speed=float(upload_speed),
            download_speed=float(download_speed)
        )

    async def measure(self, worker_id: str) -> ConnectionMetrics:
        return self.metrics
