"""Message types and structures for the signalling channel.

Defines the typed messages exchanged with the coordinator over a persistent
duplex connection.
"""

from enum import Enum
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
import time
import json
import uuid

from fedcycle.core.types import CycleRequest, FederatedReport


class MessageType(Enum):
    """Types of messages on the signalling channel"""

    # Device -> Coordinator messages
    AUTH_REQUEST = "federated/authenticate"
    CYCLE_REQUEST = "federated/cycle-request"
    MODEL_REPORT = "federated/report"

    # Coordinator -> Device messages
    AUTH_REQUEST_RESPONSE = "federated/authenticate-response"
    CYCLE_REQUEST_RESPONSE = "federated/cycle-request-response"


# Response type expected for each request type
RESPONSE_TYPES: Dict[MessageType, MessageType] = {
    MessageType.AUTH_REQUEST: MessageType.AUTH_REQUEST_RESPONSE,
    MessageType.CYCLE_REQUEST: MessageType.CYCLE_REQUEST_RESPONSE,
}


@dataclass
class Message:
    """Signalling message.

    Attributes:
        msg_type: Type of the message
        data: Message payload
        msg_id: Unique message identifier
        in_reply_to: msg_id of the request this message answers, if any
        timestamp: Message creation timestamp
    """

    msg_type: MessageType
    data: Dict[str, Any] = field(default_factory=dict)
    msg_id: str = field(default="")
    in_reply_to: Optional[str] = None
    timestamp: float = field(default_factory=time.time)

    def __post_init__(self):
        """Generate message ID if not provided"""
        if not self.msg_id:
            self.msg_id = uuid.uuid4().hex

    def answers(self, request_id: str) -> bool:
        """Whether this message may be the reply to ``request_id``.

        Uncorrelated messages are matched by type alone.
        """
        return self.in_reply_to is None or self.in_reply_to == request_id

    def to_dict(self) -> Dict[str, Any]:
        """Convert message to dictionary for serialization"""
        data = {
            'type': self.msg_type.value,
            'data': self.data,
            'msg_id': self.msg_id,
            'timestamp': self.timestamp
        }
        if self.in_reply_to is not None:
            data['in_reply_to'] = self.in_reply_to
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Message':
        """Create message from dictionary"""
        return cls(
            msg_type=MessageType(data['type']),
            data=data.get('data') or {},
            msg_id=data.get('msg_id', ''),
            in_reply_to=data.get('in_reply_to'),
            timestamp=data.get('timestamp', time.time())
        )

    def to_json(self) -> str:
        """Serialize message to JSON string"""
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, json_str: str) -> 'Message':
        """Deserialize message from JSON string"""
        return cls.from_dict(json.loads(json_str))


# Convenience factory functions for common message types

def create_auth_request_msg(auth_token: Optional[str] = None) -> Message:
    """Create an authentication request"""
    data = {}
    if auth_token is not None:
        data['auth_token'] = auth_token
    return Message(msg_type=MessageType.AUTH_REQUEST, data=data)


def create_cycle_request_msg(request: CycleRequest) -> Message:
    """Create a cycle request"""
    return Message(msg_type=MessageType.CYCLE_REQUEST, data=request.to_dict())


def create_model_report_msg(report: FederatedReport) -> Message:
    """Create a model report carrying the diff"""
    return Message(msg_type=MessageType.MODEL_REPORT, data=report.to_dict())


def create_response_msg(
    request: Message,
    data: Dict[str, Any]
) -> Message:
    """Create the coordinator's reply to ``request``"""
    return Message(
        msg_type=RESPONSE_TYPES[request.msg_type],
        data=data,
        in_reply_to=request.msg_id
    )
