"""Cycle negotiation step."""

import logging
from typing import Optional

from fedcycle.communication.transport import Transport
from fedcycle.core.errors import ProtocolFailure
from fedcycle.core.types import (
    ConnectionMetrics,
    CycleAccepted,
    CycleRejected,
    CycleRequest,
)


class CycleNegotiator:
    """Asks the coordinator to admit this worker to a cycle.

    No retry is attempted: a rejection is returned to the caller, who owns
    any backoff policy.
    """

    def __init__(self, transport: Transport, logger: Optional[logging.Logger] = None):
        self.transport = transport
        self.logger = logger or logging.getLogger("cycle")

    async def negotiate(
        self,
        worker_id: str,
        model_name: str,
        version: str,
        metrics: ConnectionMetrics
    ) -> CycleAccepted:
        """Send a cycle request and interpret the response.

        Args:
            worker_id: Worker id from authentication
            model_name: Name of the hosted model
            version: Version of the hosted model
            metrics: Connection metrics, sent as strings

        Returns:
            The accepted cycle

        Raises:
            ProtocolFailure: The coordinator rejected the worker
            TransportFailure: Transport level failure
        """
        request = CycleRequest(
            worker_id=worker_id,
            model=model_name,
            version=version,
            metrics=metrics
        )
        response = await self.transport.negotiate_cycle(request)

        if isinstance(response, CycleRejected):
            self.logger.info(
                f"Cycle rejected for {model_name}:{version}: {response.reason} "
                f"(retry after {response.retry_after})"
            )
            raise ProtocolFailure(response.reason, retry_after=response.retry_after)

        self.logger.info(
            f"Cycle accepted: model_id={response.model_id}, plan_id={response.plan_id}"
        )
        return response
