"""Reporting the diff of a finished cycle."""

import logging
from typing import Optional

from fedcycle.communication.transport import Transport
from fedcycle.core.errors import JobStateError
from fedcycle.core.types import FederatedReport


class DiffReporter:
    """Sends a FederatedReport through the active transport"""

    def __init__(self, transport: Transport, logger: Optional[logging.Logger] = None):
        self.transport = transport
        self.logger = logger or logging.getLogger("reporter")

    async def report(
        self,
        worker_id: Optional[str],
        request_key: Optional[str],
        diff: bytes
    ) -> FederatedReport:
        """Send the diff.

        Args:
            worker_id: Worker id of the cycle
            request_key: Request key of the cycle
            diff: Serialized training result

        Returns:
            The report that was sent

        Raises:
            JobStateError: worker id or request key missing; nothing is sent
            TransportFailure: The report could not be delivered
        """
        if not worker_id or not request_key:
            raise JobStateError(
                "Cannot report a diff before worker id and request key are set"
            )

        report = FederatedReport(
            worker_id=worker_id,
            request_key=request_key,
            diff=bytes(diff)
        )
        await self.transport.report_result(report)
        self.logger.info(f"Reported {len(report.diff)} byte diff for worker {worker_id}")
        return report
