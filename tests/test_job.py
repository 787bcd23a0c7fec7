"""Tests for the Job state machine and DiffReporter.

Tests cover:
- Preconditions short-circuit with zero network calls
- Error callback fires exactly once, ready never after a failure
- Single-use start and report ordering
- End-to-end cycles over HTTP and over the signalling channel
"""

import base64
import os

import pytest
import torch

from fedcycle.client import Client, NetworkInterface, StaticDeviceMonitor
from fedcycle.client.reporter import DiffReporter
from fedcycle.communication.channel import InMemorySignallingChannel
from fedcycle.communication.message import MessageType
from fedcycle.config import ClientSettings
from fedcycle.core.errors import (
    DecodeFailure,
    JobStateError,
    PreconditionFailure,
    PreconditionReason,
    ProtocolFailure,
    TransportFailure,
)
from fedcycle.core.types import JobState, TrainingPlan

from fakes import FakeResponse, FakeSession, coordinator_session, signalling_responder

BASE_URL = "http://coord.example:9000"


class Recorder:
    """Collects callback invocations"""

    def __init__(self):
        self.ready = []
        self.errors = []

    def on_ready(self, plan, client_config, report):
        self.ready.append((plan, client_config, report))

    def on_error(self, error):
        self.errors.append(error)


def make_job(session, charging=True, interface=NetworkInterface.WIFI, auth_token=None):
    client = Client.from_url(
        BASE_URL,
        auth_token=auth_token,
        session=session,
        device_monitor=StaticDeviceMonitor(charging=charging, interface=interface)
    )
    job = client.new_job("mnist", "1.0")
    recorder = Recorder()
    job.on_ready(recorder.on_ready)
    job.on_error(recorder.on_error)
    return client, job, recorder


class TestPreconditions:
    """Tests for precondition gating"""

    @pytest.mark.asyncio
    async def test_not_charging(self):
        """Not charging fails with zero network calls"""
        session = coordinator_session()
        _, job, recorder = make_job(session, charging=False)

        await job.start(require_charging=True, require_wifi=False)

        assert session.calls == []
        assert job.state is JobState.ERROR
        assert len(recorder.errors) == 1
        assert isinstance(recorder.errors[0], PreconditionFailure)
        assert recorder.errors[0].reason is PreconditionReason.NOT_CHARGING
        assert recorder.ready == []

    @pytest.mark.asyncio
    async def test_not_on_wifi(self):
        """Cellular interface fails with zero network calls"""
        session = coordinator_session()
        _, job, recorder = make_job(session, interface=NetworkInterface.CELLULAR)

        await job.start(require_charging=True, require_wifi=True)

        assert session.calls == []
        assert recorder.errors[0].reason is PreconditionReason.NOT_WIFI
        assert recorder.ready == []

    @pytest.mark.asyncio
    async def test_requirements_unset(self):
        """No requirement means no gating even off wifi and battery"""
        session = coordinator_session()
        _, job, recorder = make_job(session, charging=False, interface=NetworkInterface.NONE)

        await job.start(require_charging=False, require_wifi=False)

        assert job.state is JobState.READY
        assert recorder.errors == []
        recorder.ready[0][0].plan.cleanup()

    @pytest.mark.asyncio
    async def test_defaults_from_settings(self):
        """Unspecified requirements come from the client settings"""
        session = coordinator_session()
        _, job, recorder = make_job(session, charging=False)

        await job.start()

        assert isinstance(recorder.errors[0], PreconditionFailure)
        assert session.calls == []


class TestFailures:
    """Tests for failure propagation"""

    @pytest.mark.asyncio
    async def test_auth_failure(self):
        session = coordinator_session()
        session.routes['federated/authenticate'] = FakeResponse(status_code=401)
        _, job, recorder = make_job(session)

        await job.start()

        assert job.state is JobState.ERROR
        assert job.worker_id is None
        assert isinstance(recorder.errors[0], TransportFailure)
        assert session.calls_to('federated/cycle-request') == []

    @pytest.mark.asyncio
    async def test_cycle_rejected(self):
        """Coordinator rejection carries retry timing to the error callback"""
        session = coordinator_session(cycle={'status': 'rejected', 'timeout': 120})
        _, job, recorder = make_job(session)

        await job.start()

        [error] = recorder.errors
        assert isinstance(error, ProtocolFailure)
        assert error.retry_after == 120.0
        assert job.request_key is None
        assert session.calls_to('federated/get-model') == []
        assert session.calls_to('federated/get-plan') == []

    @pytest.mark.asyncio
    async def test_model_fetch_failure(self):
        """Ready never fires when one artifact fails; error fires once"""
        session = coordinator_session()
        session.routes['federated/get-model'] = FakeResponse(status_code=404)
        _, job, recorder = make_job(session)

        await job.start()

        assert recorder.ready == []
        assert len(recorder.errors) == 1
        assert isinstance(recorder.errors[0], TransportFailure)
        assert job.state is JobState.ERROR

    @pytest.mark.asyncio
    async def test_plan_decode_failure(self):
        session = coordinator_session(plan_bytes=b'not torchscript')
        _, job, recorder = make_job(session)

        await job.start()

        assert recorder.ready == []
        assert len(recorder.errors) == 1
        assert isinstance(recorder.errors[0], DecodeFailure)

    @pytest.mark.asyncio
    async def test_metrics_probe_raises(self):
        """A probe failing with a non-cycle error still ends the job in ERROR"""
        class BrokenProbe:
            async def measure(self, worker_id):
                raise ConnectionError("speed test unreachable")

        session = coordinator_session()
        client = Client.from_url(BASE_URL, session=session, metrics_probe=BrokenProbe())
        job = client.new_job("mnist", "1.0")
        errors = []
        job.on_error(errors.append)

        await job.start()

        assert job.state is JobState.ERROR
        assert len(errors) == 1
        assert isinstance(errors[0], TransportFailure)
        assert isinstance(errors[0].__cause__, ConnectionError)
        assert session.calls_to('federated/cycle-request') == []

    @pytest.mark.asyncio
    async def test_device_monitor_raises(self):
        class BrokenMonitor:
            def is_charging(self):
                raise RuntimeError("battery service down")

            async def network_interface(self):
                return NetworkInterface.WIFI

        session = coordinator_session()
        client = Client.from_url(BASE_URL, session=session, device_monitor=BrokenMonitor())
        job = client.new_job("mnist", "1.0")
        errors = []
        job.on_error(errors.append)

        await job.start()

        assert job.state is JobState.ERROR
        assert len(errors) == 1
        assert isinstance(errors[0], TransportFailure)
        assert session.calls == []

    @pytest.mark.asyncio
    async def test_unwritable_plan_dir(self, tmp_path):
        """Failing to write the plan file ends the job in ERROR"""
        settings = ClientSettings(url=BASE_URL, plan_dir=str(tmp_path / "missing"))
        client = Client.from_url(BASE_URL, session=coordinator_session(), settings=settings)
        job = client.new_job("mnist", "1.0")
        recorder = Recorder()
        job.on_ready(recorder.on_ready)
        job.on_error(recorder.on_error)

        await job.start()

        assert job.state is JobState.ERROR
        assert recorder.ready == []
        assert len(recorder.errors) == 1
        assert isinstance(recorder.errors[0], DecodeFailure)
        assert recorder.errors[0].kind == 'plan'

    @pytest.mark.asyncio
    async def test_start_twice(self):
        """A job runs one cycle only"""
        _, job, recorder = make_job(coordinator_session())
        await job.start()

        with pytest.raises(JobStateError):
            await job.start()
        assert len(recorder.ready) == 1
        recorder.ready[0][0].plan.cleanup()

    @pytest.mark.asyncio
    async def test_start_twice_after_error(self):
        _, job, recorder = make_job(coordinator_session(), charging=False)
        await job.start()

        with pytest.raises(JobStateError):
            await job.start()
        assert len(recorder.errors) == 1


class TestReporting:
    """Tests for reporting the diff"""

    @pytest.mark.asyncio
    async def test_report_before_ready(self):
        """Reporting before the cycle is ready sends nothing"""
        session = coordinator_session()
        _, job, _ = make_job(session)

        with pytest.raises(JobStateError):
            await job.report_diff(b'diff')
        assert session.calls == []

    @pytest.mark.asyncio
    async def test_reporter_requires_ids(self):
        """DiffReporter never sends a report with missing ids"""
        session = coordinator_session()
        client, _, _ = make_job(session)
        reporter = DiffReporter(client.transport)

        with pytest.raises(JobStateError):
            await reporter.report(None, 'rk1', b'diff')
        with pytest.raises(JobStateError):
            await reporter.report('w1', None, b'diff')
        assert session.calls == []

    @pytest.mark.asyncio
    async def test_report_only_once(self):
        _, job, recorder = make_job(coordinator_session())
        await job.start()
        _, _, report = recorder.ready[0]

        assert await report(b'diff') is True
        with pytest.raises(JobStateError):
            await report(b'diff')

    @pytest.mark.asyncio
    async def test_report_failure_escalated(self):
        """A failed report moves the job to ERROR and fires the error callback"""
        session = coordinator_session()
        session.routes['federated/report'] = FakeResponse(status_code=503)
        _, job, recorder = make_job(session)
        await job.start()
        plan, _, report = recorder.ready[0]

        assert await report(b'diff') is False
        assert job.state is JobState.ERROR
        assert len(recorder.errors) == 1
        assert isinstance(recorder.errors[0], TransportFailure)
        assert not os.path.exists(plan.plan.path)

    @pytest.mark.asyncio
    async def test_report_tensors(self):
        """Tensor diffs are serialized before sending"""
        session = coordinator_session()
        _, job, recorder = make_job(session)
        await job.start()

        await recorder.ready[0][2]([torch.ones(2)])

        body = session.calls_to('federated/report')[0][2]['json']
        assert len(base64.b64decode(body['diff'])) > 0


class TestEndToEnd:
    """Full cycles"""

    @pytest.mark.asyncio
    async def test_http_cycle(self):
        """mnist 1.0 against http://coord.example:9000 without token"""
        session = coordinator_session()
        client = Client.from_url(
            BASE_URL,
            session=session,
            device_monitor=StaticDeviceMonitor(charging=False, interface=NetworkInterface.WIFI)
        )
        job = client.new_job("mnist", "1.0")
        assert job.transport is client.transport

        states = []
        errors = []

        @job.on_ready
        async def train(plan, client_config, report):
            states.append(job.state)
            assert isinstance(plan, TrainingPlan)
            assert os.path.exists(plan.plan.path)
            assert torch.equal(plan.plan.module(torch.ones(3)), torch.full((3,), 2.0))
            assert torch.equal(plan.model.params['fc.bias'], torch.zeros(2))
            assert client_config == {'lr': 0.01, 'batch_size': 64}
            assert await report(b'trained-diff') is True
            states.append(job.state)
            assert not os.path.exists(plan.plan.path)

        job.on_error(errors.append)

        await job.start(require_charging=False, require_wifi=True)

        assert errors == []
        assert states == [JobState.READY, JobState.DONE]
        assert job.worker_id == 'w1'
        assert job.request_key == 'rk1'

        auth_call = session.calls_to('federated/authenticate')[0]
        assert 'json' not in auth_call[2]

        cycle_body = session.calls_to('federated/cycle-request')[0][2]['json']
        assert cycle_body == {
            'worker_id': 'w1', 'model': 'mnist', 'version': '1.0',
            'ping': '8', 'download': '46.0', 'upload': '23.0',
        }

        assert session.calls_to('federated/get-model')[0][2]['params'] == {
            'worker_id': 'w1', 'model_id': '1', 'request_key': 'rk1'
        }
        assert session.calls_to('federated/get-plan')[0][2]['params']['plan_id'] == '2'

        report_body = session.calls_to('federated/report')[0][2]['json']
        assert report_body['worker_id'] == 'w1'
        assert report_body['request_key'] == 'rk1'
        assert base64.b64decode(report_body['diff']) == b'trained-diff'

    @pytest.mark.asyncio
    async def test_socket_cycle(self):
        """Negotiation over the channel, artifacts over HTTP, report over the channel"""
        channel = InMemorySignallingChannel(responder=signalling_responder(worker_id='w9'))
        session = coordinator_session()
        client = Client.from_url(
            "ws://coord.example:9000",
            auth_token="token",
            channel=channel,
            session=session,
        )
        job = client.new_job("mnist", "1.0")
        recorder = Recorder()
        job.on_ready(recorder.on_ready)
        job.on_error(recorder.on_error)

        await job.start()

        assert recorder.errors == []
        assert job.worker_id == 'w9'
        assert channel.sent_of_type(MessageType.AUTH_REQUEST)[0].data == {'auth_token': 'token'}
        assert session.calls_to('federated/authenticate') == []
        model_call = session.calls_to('federated/get-model')[0]
        assert model_call[1] == "http://coord.example:9000/federated/get-model"
        assert model_call[2]['params']['worker_id'] == 'w9'

        await recorder.ready[0][2](b'diff')

        [report] = channel.sent_of_type(MessageType.MODEL_REPORT)
        assert report.data['worker_id'] == 'w9'
        assert report.data['request_key'] == 'rk1'
        assert job.state is JobState.DONE

    @pytest.mark.asyncio
    async def test_socket_auth_rejected(self):
        channel = InMemorySignallingChannel(responder=signalling_responder(auth_error="denied"))
        session = FakeSession()
        client = Client.from_url("ws://coord.example:9000", channel=channel, session=session)
        job = client.new_job("mnist", "1.0")
        errors = []
        job.on_error(errors.append)

        await job.start()

        assert isinstance(errors[0], ProtocolFailure)
        assert channel.sent_of_type(MessageType.CYCLE_REQUEST) == []
        assert session.calls == []
