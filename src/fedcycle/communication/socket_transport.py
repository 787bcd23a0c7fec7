"""Duplex transport over a signalling channel.

Outbound steps are "send, then await the matching typed reply on the
shared inbound stream". Only one cycle may be in flight per channel; the
caller is responsible for not running two Jobs on the same channel at once.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from fedcycle.communication.channel import SignallingChannel
from fedcycle.communication.message import (
    RESPONSE_TYPES,
    Message,
    create_auth_request_msg,
    create_cycle_request_msg,
    create_model_report_msg,
)
from fedcycle.communication.transport import Transport
from fedcycle.core.errors import ProtocolFailure, TransportFailure
from fedcycle.core.types import (
    CycleRequest,
    CycleResponse,
    FederatedReport,
    parse_cycle_response,
)


class SignallingTransport(Transport):
    """Coordinator transport over one persistent signalling channel"""

    kind = "socket"

    def __init__(
        self,
        channel: SignallingChannel,
        timeout: float = 30.0,
        logger: Optional[logging.Logger] = None
    ):
        """Initialize signalling transport.

        Args:
            channel: Connected signalling channel, shared by all steps
            timeout: Seconds to wait for each reply
            logger: Logger instance
        """
        self.channel = channel
        self.timeout = timeout
        self.logger = logger or logging.getLogger("signalling_transport")

    async def _exchange(self, request: Message) -> Dict[str, Any]:
        """Send ``request`` and wait for its reply.

        The subscription is opened before sending so a fast reply is not
        missed. Messages of other types, and replies to other requests,
        are ignored.
        """
        expected = RESPONSE_TYPES[request.msg_type]
        subscription = self.channel.subscribe(
            lambda m: m.msg_type == expected and m.answers(request.msg_id)
        )
        with subscription:
            try:
                await self.channel.send(request)
            except ConnectionError as e:
                raise TransportFailure(f"Could not send {request.msg_type.value}: {e}") from e

            try:
                reply = await subscription.get(timeout=self.timeout)
            except asyncio.TimeoutError as e:
                raise TransportFailure(
                    f"No {expected.value} within {self.timeout}s"
                ) from e

        self.logger.debug(f"Got {reply.msg_type.value} for {request.msg_id}")
        return reply.data

    async def authenticate(self, auth_token: Optional[str] = None) -> str:
        data = await self._exchange(create_auth_request_msg(auth_token))

        if data.get('error'):
            raise ProtocolFailure(str(data['error']))
        worker_id = data.get('worker_id')
        if not worker_id:
            raise ProtocolFailure("Authentication Error Unknown Response")
        return str(worker_id)

    async def negotiate_cycle(self, request: CycleRequest) -> CycleResponse:
        data = await self._exchange(create_cycle_request_msg(request))
        return parse_cycle_response(data)

    async def report_result(self, report: FederatedReport) -> None:
        try:
            await self.channel.send(create_model_report_msg(report))
        except ConnectionError as e:
            raise TransportFailure(f"Could not send model report: {e}") from e

    async def close(self) -> None:
        await self.channel.close()
