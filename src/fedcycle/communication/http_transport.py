"""Request/response transport over HTTP.

Each protocol step is an independent call to a fixed path under the
coordinator's base URL:

- POST federated/authenticate - JSON {auth_token}
- POST federated/cycle-request - JSON {worker_id, model, version, ping, download, upload}
- GET  federated/get-model - query worker_id, model_id, request_key
- GET  federated/get-plan - query worker_id, plan_id, request_key, receive_operations_as
- POST federated/report - JSON {worker_id, request_key, diff}

Failures are surfaced as TransportFailure and never retried here.
"""

import asyncio
import logging
from typing import Any, Dict, Optional
from urllib.parse import urljoin, urlparse

import requests

from fedcycle.communication.transport import ArtifactSource, Transport
from fedcycle.core.errors import TransportFailure
from fedcycle.core.types import (
    ArtifactKind,
    CycleRequest,
    CycleResponse,
    FederatedReport,
    parse_cycle_response,
)

AUTHENTICATE_PATH = "federated/authenticate"
CYCLE_REQUEST_PATH = "federated/cycle-request"
GET_MODEL_PATH = "federated/get-model"
GET_PLAN_PATH = "federated/get-plan"
REPORT_PATH = "federated/report"

# The execution engine loads plans as TorchScript
PLAN_OPERATIONS_FORMAT = "torchscript"


def normalize_base_url(url: str, schemes=("http", "https")) -> str:
    """Validate a coordinator URL and give it a trailing slash.

    Raises:
        TransportFailure: If the URL has an unsupported scheme or no host
    """
    parsed = urlparse(url)
    if parsed.scheme not in schemes or not parsed.netloc:
        raise TransportFailure(f"Bad endpoint: {url!r}")
    if not url.endswith('/'):
        url = url + '/'
    return url


class HTTPTransport(Transport, ArtifactSource):
    """Coordinator transport using one HTTP request per protocol step.

    Blocking ``requests`` calls are run in a worker thread so the event
    loop keeps serving the concurrent artifact downloads.
    """

    kind = "http"

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
        logger: Optional[logging.Logger] = None
    ):
        """Initialize HTTP transport.

        Args:
            base_url: Coordinator base URL (http or https)
            timeout: Per-request timeout in seconds
            session: Session to send requests with; one is created if omitted
            logger: Logger instance
        """
        self.base_url = normalize_base_url(base_url)
        self.timeout = timeout
        self.session = session or requests.Session()
        self.logger = logger or logging.getLogger("http_transport")

    def url_for(self, path: str) -> str:
        return urljoin(self.base_url, path)

    async def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = self.url_for(path)
        try:
            response = await asyncio.to_thread(
                self.session.request, method, url, timeout=self.timeout, **kwargs
            )
        except requests.RequestException as e:
            raise TransportFailure(f"{method} {url} failed: {e}") from e

        if not response.ok:
            raise TransportFailure(
                f"{method} {url} returned HTTP {response.status_code}",
                status_code=response.status_code
            )
        return response

    def _decode_json(self, response: requests.Response) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError as e:
            raise TransportFailure(f"Undecodable response body: {e}") from e
        if not isinstance(data, dict):
            raise TransportFailure(f"Expected a JSON object, got {type(data).__name__}")
        return data

    async def authenticate(self, auth_token: Optional[str] = None) -> str:
        kwargs = {}
        if auth_token is not None:
            kwargs['json'] = {'auth_token': auth_token}

        response = await self._request('POST', AUTHENTICATE_PATH, **kwargs)
        data = self._decode_json(response)

        if 'error' in data:
            raise TransportFailure(f"Authentication failed: {data['error']}")
        worker_id = data.get('worker_id')
        if not worker_id:
            raise TransportFailure("Authentication response carries no worker_id")
        return str(worker_id)

    async def negotiate_cycle(self, request: CycleRequest) -> CycleResponse:
        response = await self._request(
            'POST',
            CYCLE_REQUEST_PATH,
            json=request.to_dict(),
            headers={'Accept': 'application/json'}
        )
        return parse_cycle_response(self._decode_json(response))

    async def fetch_artifact(
        self,
        kind: ArtifactKind,
        artifact_id: int,
        worker_id: str,
        request_key: str
    ) -> bytes:
        if kind is ArtifactKind.MODEL:
            path = GET_MODEL_PATH
            params = {
                'worker_id': worker_id,
                'model_id': str(artifact_id),
                'request_key': request_key,
            }
        else:
            path = GET_PLAN_PATH
            params = {
                'worker_id': worker_id,
                'plan_id': str(artifact_id),
                'request_key': request_key,
                'receive_operations_as': PLAN_OPERATIONS_FORMAT,
            }

        response = await self._request('GET', path, params=params)
        self.logger.debug(f"Fetched {kind.value} {artifact_id}: {len(response.content)} bytes")
        return response.content

    async def report_result(self, report: FederatedReport) -> None:
        response = await self._request(
            'POST',
            REPORT_PATH,
            json=report.to_dict(),
            headers={'Accept': 'application/json'}
        )
        self.logger.info(f"Model report response: {response.text}")

    async def close(self) -> None:
        self.session.close()
