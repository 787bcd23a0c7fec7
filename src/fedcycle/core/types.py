"""Domain types exchanged between the cycle components.

Request and response payloads follow the coordinator's snake_case JSON
field names so that ``to_dict`` output can be posted as-is.
"""

import base64
import os
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Union

from fedcycle.core.errors import TransportFailure

logger = logging.getLogger(__name__)

# Coordinator hyperparameters, passed through untouched
ClientConfig = Dict[str, Any]


# Reported when the host does not measure the connection
DEFAULT_PING = "8"
DEFAULT_UPLOAD_SPEED = 23.0
DEFAULT_DOWNLOAD_SPEED = 46.0


class JobState(Enum):
    """States of a single cycle attempt"""
    IDLE = "idle"
    GATING_PRECONDITIONS = "gating_preconditions"
    AUTHENTICATING = "authenticating"
    MEASURING_CONNECTION = "measuring_connection"
    NEGOTIATING_CYCLE = "negotiating_cycle"
    FETCHING_ARTIFACTS = "fetching_artifacts"
    READY = "ready"
    REPORTING = "reporting"
    DONE = "done"
    ERROR = "error"


class ArtifactKind(Enum):
    """Artifacts that can be fetched for an accepted cycle"""
    MODEL = "model"
    PLAN = "plan"


@dataclass(frozen=True)
class ConnectionMetrics:
    """Network quality reported to the coordinator.

    Attributes:
        ping: Round trip latency, already rendered as the coordinator expects
        upload_speed: Upload throughput
        download_speed: Download throughput
    """
    ping: str
    upload_speed: float
    download_speed: float

    def to_request_fields(self) -> Dict[str, str]:
        return {
            'ping': str(self.ping),
            'download': str(self.download_speed),
            'upload': str(self.upload_speed),
        }


@dataclass(frozen=True)
class CycleRequest:
    """Body of a cycle request"""
    worker_id: str
    model: str
    version: str
    metrics: ConnectionMetrics

    def to_dict(self) -> Dict[str, str]:
        data = {
            'worker_id': self.worker_id,
            'model': self.model,
            'version': self.version,
        }
        data.update(self.metrics.to_request_fields())
        return data


@dataclass(frozen=True)
class CycleAccepted:
    """The device was admitted to a cycle"""
    request_key: str
    model_id: int
    plan_id: int
    client_config: ClientConfig = field(default_factory=dict)
    model: Optional[str] = None
    version: Optional[str] = None


@dataclass(frozen=True)
class CycleRejected:
    """The device was not admitted to a cycle"""
    reason: str
    retry_after: Optional[float] = None


CycleResponse = Union[CycleAccepted, CycleRejected]


def parse_cycle_response(data: Any) -> CycleResponse:
    """Build a CycleResponse from a decoded coordinator payload.

    Args:
        data: Decoded JSON object

    Returns:
        CycleAccepted when status is "accepted", CycleRejected when it is
        "rejected"

    Raises:
        TransportFailure: If the payload matches neither variant
    """
    if not isinstance(data, dict):
        raise TransportFailure(f"Malformed cycle response: {data!r}")

    status = data.get('status')
    if status == 'accepted':
        plans = data.get('plans') or {}
        plan_id = data.get('plan_id')
        if plan_id is None:
            plan_id = plans.get('training_plan')
        try:
            return CycleAccepted(
                request_key=data['request_key'],
                model_id=int(data['model_id']),
                plan_id=int(plan_id),
                client_config=data.get('client_config') or {},
                model=data.get('model'),
                version=data.get('version'),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise TransportFailure(f"Malformed accepted cycle response: {e}") from e

    if status == 'rejected':
        timeout = data.get('timeout')
        try:
            retry_after = float(timeout) if timeout is not None else None
        except (TypeError, ValueError):
            retry_after = None
        return CycleRejected(
            reason=data.get('error') or 'rejected',
            retry_after=retry_after,
        )

    if 'error' in data:
        return CycleRejected(reason=str(data['error']))

    raise TransportFailure(f"Unknown cycle response status: {status!r}")


@dataclass(frozen=True)
class FederatedReport:
    """Terminal message of a cycle"""
    worker_id: str
    request_key: str
    diff: bytes

    def to_dict(self) -> Dict[str, str]:
        return {
            'worker_id': self.worker_id,
            'request_key': self.request_key,
            'diff': base64.b64encode(self.diff).decode('ascii'),
        }


@dataclass
class PlanArtifact:
    """Decoded training plan and the file it was loaded from.

    The file is only needed while the execution engine loads the plan;
    ``cleanup`` removes it.
    """
    module: Any
    path: str

    def cleanup(self) -> None:
        try:
            os.remove(self.path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove plan file {self.path}: {e}")


@dataclass
class ModelArtifact:
    """Decoded model parameters"""
    params: Any
    num_bytes: int = 0


@dataclass
class TrainingPlan:
    """Plan and model of one cycle, delivered together"""
    plan: PlanArtifact
    model: ModelArtifact
