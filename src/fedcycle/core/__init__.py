"""Domain types and errors shared by the transports and the Job"""

from fedcycle.core.errors import (
    FedCycleError,
    PreconditionReason,
    PreconditionFailure,
    TransportFailure,
    ProtocolFailure,
    DecodeFailure,
    JobStateError,
)
from fedcycle.core.types import (
    ArtifactKind,
    ClientConfig,
    ConnectionMetrics,
    CycleAccepted,
    CycleRejected,
    CycleRequest,
    CycleResponse,
    FederatedReport,
    JobState,
    ModelArtifact,
    PlanArtifact,
    TrainingPlan,
    parse_cycle_response,
)

__all__ = [
    # Errors
    'FedCycleError',
    'PreconditionReason',
    'PreconditionFailure',
    'TransportFailure',
    'ProtocolFailure',
    'DecodeFailure',
    'JobStateError',
    # Types
    'ArtifactKind',
    'ClientConfig',
    'ConnectionMetrics',
    'CycleAccepted',
    'CycleRejected',
    'CycleRequest',
    'CycleResponse',
    'FederatedReport',
    'JobState',
    'ModelArtifact',
    'PlanArtifact',
    'TrainingPlan',
    'parse_cycle_response',
]
