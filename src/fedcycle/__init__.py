"""fedcycle: device-side client for federated learning cycles.

This package negotiates participation in a training cycle with a
coordinator, retrieves the plan and model for that cycle, hands them to an
external execution engine and reports the resulting diff.

Main modules:
- client: Client, Job and the cycle steps
- communication: HTTP and signalling channel transports
- core: Domain types and errors
- config: Settings and logging setup
- utils: Diff serialization
"""

__version__ = "0.1.0"

from fedcycle.client import Client, Job
from fedcycle.core import JobState, FedCycleError

__all__ = ['Client', 'Job', 'JobState', 'FedCycleError']
