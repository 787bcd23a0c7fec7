"""Job: one federated learning cycle attempt.

Drives the cycle through its states:

    IDLE -> GATING_PRECONDITIONS -> AUTHENTICATING -> MEASURING_CONNECTION
         -> NEGOTIATING_CYCLE -> FETCHING_ARTIFACTS -> READY -> REPORTING -> DONE

ERROR is reachable from every non-terminal state. Each failure ends the
cycle and fires the error callback exactly once; the ready callback fires
only once both artifacts are decoded.

A Job is single-use. ``start()`` may be called once; a second call raises
JobStateError. There is no way to cancel a started cycle.
"""

import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from fedcycle.client.auth import AuthNegotiator
from fedcycle.client.cycle import CycleNegotiator
from fedcycle.client.downloader import ArtifactDownloader
from fedcycle.client.gate import ConnectionGate
from fedcycle.client.reporter import DiffReporter
from fedcycle.communication.transport import Transport
from fedcycle.core.errors import FedCycleError, JobStateError, TransportFailure
from fedcycle.core.types import ClientConfig, JobState, TrainingPlan
from fedcycle.utils.serialization import DiffLike, serialize_diff

ReportFn = Callable[[DiffLike], Awaitable[bool]]
ReadyCallback = Callable[[TrainingPlan, ClientConfig, ReportFn], Any]
ErrorCallback = Callable[[FedCycleError], Any]

_TRANSITIONS: Dict[JobState, Set[JobState]] = {
    JobState.IDLE: {JobState.GATING_PRECONDITIONS},
    JobState.GATING_PRECONDITIONS: {JobState.AUTHENTICATING, JobState.ERROR},
    JobState.AUTHENTICATING: {JobState.MEASURING_CONNECTION, JobState.ERROR},
    JobState.MEASURING_CONNECTION: {JobState.NEGOTIATING_CYCLE, JobState.ERROR},
    JobState.NEGOTIATING_CYCLE: {JobState.FETCHING_ARTIFACTS, JobState.ERROR},
    JobState.FETCHING_ARTIFACTS: {JobState.READY, JobState.ERROR},
    JobState.READY: {JobState.REPORTING, JobState.ERROR},
    JobState.REPORTING: {JobState.DONE, JobState.ERROR},
    JobState.DONE: set(),
    JobState.ERROR: set(),
}


async def _invoke(callback: Optional[Callable], *args) -> None:
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


async def _host_step(description: str, step: Awaitable[Any]) -> Any:
    """Await a step backed by a host-provided collaborator.

    Anything the collaborator raises that is not a FedCycleError becomes a
    TransportFailure so the cycle still ends through the error callback.
    """
    try:
        return await step
    except FedCycleError:
        raise
    except Exception as e:
        raise TransportFailure(f"{description} failed: {e}") from e


class Job:
    """One cycle of federated learning for a hosted model.

    Created by ``Client.new_job``; shares the Client's transport.

    Usage:
        job = client.new_job("mnist", "1.0")

        @job.on_ready
        async def train(plan, client_config, report):
            diff = run_training(plan, client_config)
            await report(diff)

        @job.on_error
        def failed(error):
            log.warning("cycle failed: %s", error)

        await job.start()
    """

    def __init__(
        self,
        client,
        model_name: str,
        version: str,
        downloader: Optional[ArtifactDownloader] = None,
        logger: Optional[logging.Logger] = None
    ):
        """Initialize job.

        Args:
            client: Client owning the transport and device collaborators
            model_name: Name of the hosted model
            version: Version of the hosted model
            downloader: Artifact downloader override
            logger: Logger instance
        """
        self._client = client
        self.model_name = model_name
        self.version = version
        self.logger = logger or logging.getLogger(f"job_{model_name}")

        self._state = JobState.IDLE
        self._worker_id: Optional[str] = None
        self._request_key: Optional[str] = None

        self.client_config: Optional[ClientConfig] = None
        self.training_plan: Optional[TrainingPlan] = None
        self.error: Optional[FedCycleError] = None

        self._on_ready: Optional[ReadyCallback] = None
        self._on_error: Optional[ErrorCallback] = None

        transport = client.transport
        self.gate = ConnectionGate(client.device_monitor, self.logger)
        self.authenticator = AuthNegotiator(transport, self.logger)
        self.metrics_probe = client.metrics_probe
        self.negotiator = CycleNegotiator(transport, self.logger)
        self.downloader = downloader or ArtifactDownloader(
            client.artifact_source,
            plan_dir=client.settings.plan_dir,
            logger=self.logger
        )
        self.reporter = DiffReporter(transport, self.logger)

    @property
    def transport(self) -> Transport:
        """The Client's transport. Never replaced during a cycle."""
        return self._client.transport

    @property
    def state(self) -> JobState:
        return self._state

    @property
    def worker_id(self) -> Optional[str]:
        return self._worker_id

    @property
    def request_key(self) -> Optional[str]:
        return self._request_key

    def on_ready(self, callback: ReadyCallback) -> ReadyCallback:
        """Set the callback receiving (plan, client_config, report)"""
        self._on_ready = callback
        return callback

    def on_error(self, callback: ErrorCallback) -> ErrorCallback:
        """Set the callback receiving the error that ended the cycle"""
        self._on_error = callback
        return callback

    def _transition(self, new_state: JobState) -> None:
        if new_state not in _TRANSITIONS[self._state]:
            raise JobStateError(
                f"Illegal transition {self._state.value} -> {new_state.value}"
            )
        self.logger.debug(f"{self._state.value} -> {new_state.value}")
        self._state = new_state

    def _assign_worker_id(self, worker_id: str) -> None:
        if self._worker_id is not None:
            raise JobStateError("Worker id already assigned")
        self._worker_id = worker_id

    def _assign_request_key(self, request_key: str) -> None:
        if self._request_key is not None:
            raise JobStateError("Request key already assigned")
        self._request_key = request_key

    async def start(
        self,
        require_charging: Optional[bool] = None,
        require_wifi: Optional[bool] = None
    ) -> None:
        """Run the cycle up to READY or ERROR.

        Args:
            require_charging: Only run while charging (default from settings)
            require_wifi: Only run on Wi-Fi (default from settings)

        Raises:
            JobStateError: If the job was already started
        """
        if self._state is not JobState.IDLE:
            raise JobStateError(
                f"Job for {self.model_name}:{self.version} already started "
                f"(state {self._state.value})"
            )

        settings = self._client.settings
        if require_charging is None:
            require_charging = settings.require_charging
        if require_wifi is None:
            require_wifi = settings.require_wifi

        try:
            self._transition(JobState.GATING_PRECONDITIONS)
            await _host_step(
                "Device monitor", self.gate.check(require_charging, require_wifi)
            )

            self._transition(JobState.AUTHENTICATING)
            self._assign_worker_id(
                await self.authenticator.authenticate(self._client.auth_token)
            )

            self._transition(JobState.MEASURING_CONNECTION)
            metrics = await _host_step(
                "Connection metrics probe", self.metrics_probe.measure(self._worker_id)
            )

            self._transition(JobState.NEGOTIATING_CYCLE)
            cycle = await self.negotiator.negotiate(
                self._worker_id, self.model_name, self.version, metrics
            )
            self._assign_request_key(cycle.request_key)
            self.client_config = cycle.client_config

            self._transition(JobState.FETCHING_ARTIFACTS)
            self.training_plan = await self.downloader.download(cycle, self._worker_id)
        except FedCycleError as e:
            await self._fail(e)
            return

        self._transition(JobState.READY)
        self.logger.info(f"Cycle ready for {self.model_name}:{self.version}")
        report = self._bind_report(self._worker_id, self._request_key)
        await _invoke(self._on_ready, self.training_plan, self.client_config, report)

    def _bind_report(self, worker_id: str, request_key: str) -> ReportFn:
        async def report(diff: DiffLike) -> bool:
            return await self._report(worker_id, request_key, diff)
        return report

    async def report_diff(self, diff: DiffLike) -> bool:
        """Report a diff using the ids negotiated by this job.

        Raises:
            JobStateError: If the job is not READY
        """
        return await self._report(self._worker_id, self._request_key, diff)

    async def _report(
        self,
        worker_id: Optional[str],
        request_key: Optional[str],
        diff: DiffLike
    ) -> bool:
        if self._state is not JobState.READY:
            raise JobStateError(f"Cannot report in state {self._state.value}")

        payload = serialize_diff(diff)
        self._transition(JobState.REPORTING)
        try:
            await self.reporter.report(worker_id, request_key, payload)
        except FedCycleError as e:
            await self._fail(e)
            return False

        self._transition(JobState.DONE)
        self._release_artifacts()
        return True

    async def _fail(self, error: FedCycleError) -> None:
        self.logger.error(
            f"Cycle for {self.model_name}:{self.version} failed in "
            f"{self._state.value}: {error}"
        )
        self._transition(JobState.ERROR)
        self.error = error
        self._release_artifacts()
        await _invoke(self._on_error, error)

    def _release_artifacts(self) -> None:
        if self.training_plan is not None:
            self.training_plan.plan.cleanup()
