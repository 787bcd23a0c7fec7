"""Test doubles for the coordinator and the artifacts it serves."""

import io
from urllib.parse import urlparse

import torch
import torch.nn as nn

from fedcycle.communication.message import MessageType, create_response_msg


class DoublePlan(nn.Module):
    """Tiny TorchScript-able plan"""

    def forward(self, x):
        return x * 2


def make_plan_bytes() -> bytes:
    buffer = io.BytesIO()
    torch.jit.save(torch.jit.script(DoublePlan()), buffer)
    return buffer.getvalue()


def make_model_bytes() -> bytes:
    buffer = io.BytesIO()
    torch.save({'fc.weight': torch.ones(2, 3), 'fc.bias': torch.zeros(2)}, buffer)
    return buffer.getvalue()


def accepted_cycle(model_id=1, plan_id=2, request_key="rk1", client_config=None):
    return {
        'status': 'accepted',
        'request_key': request_key,
        'model_id': model_id,
        'plans': {'training_plan': plan_id},
        'client_config': client_config or {'lr': 0.01, 'batch_size': 64},
        'model': 'mnist',
        'version': '1.0',
    }


class FakeResponse:
    """Subset of requests.Response used by HTTPTransport"""

    def __init__(self, status_code=200, json_data=None, content=b"", text=""):
        self.status_code = status_code
        self._json = json_data
        self.content = content
        self.text = text or (str(json_data) if json_data is not None else "")

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self._json is None:
            raise ValueError("No JSON object could be decoded")
        return self._json


class FakeSession:
    """Routes requests by URL path.

    A route is a FakeResponse, an exception to raise, or a callable
    ``(method, url, **kwargs) -> FakeResponse``.
    """

    def __init__(self, routes=None):
        self.routes = routes or {}
        self.calls = []
        self.closed = False

    def request(self, method, url, timeout=None, **kwargs):
        self.calls.append((method, url, kwargs))
        path = urlparse(url).path.lstrip('/')
        route = self.routes[path]
        if isinstance(route, Exception):
            raise route
        if callable(route):
            return route(method, url, **kwargs)
        return route

    def calls_to(self, path):
        return [c for c in self.calls if urlparse(c[1]).path.lstrip('/') == path]

    def close(self):
        self.closed = True


def coordinator_session(model_bytes=None, plan_bytes=None, cycle=None, worker_id="w1"):
    """Session answering every step of a successful cycle"""
    return FakeSession({
        'federated/authenticate': FakeResponse(json_data={'status': 'success', 'worker_id': worker_id}),
        'federated/cycle-request': FakeResponse(json_data=cycle or accepted_cycle()),
        'federated/get-model': FakeResponse(content=model_bytes if model_bytes is not None else make_model_bytes()),
        'federated/get-plan': FakeResponse(content=plan_bytes if plan_bytes is not None else make_plan_bytes()),
        'federated/report': FakeResponse(json_data={'status': 'success'}),
    })


def signalling_responder(worker_id="w1", cycle=None, auth_error=None):
    """Responder for InMemorySignallingChannel playing the coordinator"""

    def respond(message):
        if message.msg_type == MessageType.AUTH_REQUEST:
            if auth_error:
                return [create_response_msg(message, {'error': auth_error})]
            return [create_response_msg(message, {'worker_id': worker_id})]
        if message.msg_type == MessageType.CYCLE_REQUEST:
            return [create_response_msg(message, cycle or accepted_cycle())]
        return []

    return respond


class FakeArtifactSource:
    """ArtifactSource serving fixed bytes or raising per kind"""

    def __init__(self, model=None, plan=None):
        self.model = model if model is not None else make_model_bytes()
        self.plan = plan if plan is not None else make_plan_bytes()
        self.calls = []

    async def fetch_artifact(self, kind, artifact_id, worker_id, request_key):
        self.calls.append((kind, artifact_id, worker_id, request_key))
        value = self.model if kind.value == 'model' else self.plan
        if isinstance(value, Exception):
            raise value
        return value
