"""Client package for federated learning cycles.

Provides:
- Client: Creates jobs against one coordinator
- Job: Drives one cycle from preconditions to report
- ConnectionGate: Charging / Wi-Fi preconditions
- AuthNegotiator, CycleNegotiator: Negotiation steps
- ArtifactDownloader: Concurrent plan and model retrieval
- DiffReporter: Sends the training result
"""

from fedcycle.client.gate import (
    ConnectionGate,
    DeviceMonitor,
    NetworkInterface,
    StaticDeviceMonitor,
)
from fedcycle.client.metrics import ConnectionMetricsProbe, StaticMetricsProbe
from fedcycle.client.auth import AuthNegotiator
from fedcycle.client.cycle import CycleNegotiator
from fedcycle.client.downloader import ArtifactDownloader
from fedcycle.client.reporter import DiffReporter
from fedcycle.client.job import Job
from fedcycle.client.client import Client

__all__ = [
    'Client',
    'Job',
    'ConnectionGate',
    'DeviceMonitor',
    'NetworkInterface',
    'StaticDeviceMonitor',
    'ConnectionMetricsProbe',
    'StaticMetricsProbe',
    'AuthNegotiator',
    'CycleNegotiator',
    'ArtifactDownloader',
    'DiffReporter',
]
