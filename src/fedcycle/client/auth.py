"""Authentication step of a cycle."""

import logging
from typing import Optional

from fedcycle.communication.transport import Transport


class AuthNegotiator:
    """Runs the authentication exchange and returns the worker id"""

    def __init__(self, transport: Transport, logger: Optional[logging.Logger] = None):
        self.transport = transport
        self.logger = logger or logging.getLogger("auth")

    async def authenticate(self, auth_token: Optional[str] = None) -> str:
        """Authenticate with the coordinator.

        Args:
            auth_token: Optional coordinator issued token

        Returns:
            Worker id

        Raises:
            TransportFailure: Transport level failure
            ProtocolFailure: Coordinator refused the device
        """
        worker_id = await self.transport.authenticate(auth_token)
        self.logger.info(f"Authenticated as worker {worker_id} over {self.transport.kind}")
        return worker_id
