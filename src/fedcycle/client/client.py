"""Client: entry point that creates Jobs against one coordinator.

The Client owns the transport and the device collaborators. Jobs share
them and keep no reference of their own to anything but the Client.
"""

import logging
from typing import Optional
from urllib.parse import urlparse

import requests

from fedcycle.client.downloader import ArtifactDownloader
from fedcycle.client.gate import DeviceMonitor, StaticDeviceMonitor
from fedcycle.client.job import Job
from fedcycle.client.metrics import ConnectionMetricsProbe, StaticMetricsProbe
from fedcycle.communication.channel import SignallingChannel
from fedcycle.communication.http_transport import HTTPTransport
from fedcycle.communication.socket_transport import SignallingTransport
from fedcycle.communication.transport import ArtifactSource, Transport
from fedcycle.config.logger import LoggerSetup
from fedcycle.config.manager import ClientSettings

HTTP_SCHEMES = ('http', 'https')
# Artifacts of a socket coordinator are served over plain HTTP(S)
SOCKET_SCHEMES = {'ws': 'http', 'wss': 'https'}


class Client:
    """Federated learning client bound to one coordinator.

    Usage:
        client = Client.from_url("http://coord.example:9000")
        job = client.new_job("mnist", "1.0")
        job.on_ready(train)
        job.on_error(handle_error)
        await job.start()
    """

    def __init__(
        self,
        url: str,
        transport: Transport,
        artifact_source: ArtifactSource,
        auth_token: Optional[str] = None,
        device_monitor: Optional[DeviceMonitor] = None,
        metrics_probe: Optional[ConnectionMetricsProbe] = None,
        settings: Optional[ClientSettings] = None,
        logger_setup: Optional[LoggerSetup] = None
    ):
        """Initialize client.

        Args:
            url: Coordinator URL
            transport: Transport used for every protocol step
            artifact_source: Where plan and model bytes are fetched from
            auth_token: Optional authentication token
            device_monitor: Battery/network sensing (always ready if None)
            metrics_probe: Connection metrics probe (settings values if None)
            settings: Client settings
            logger_setup: Provides the client and job loggers (plain
                named loggers if None)
        """
        self._url = url
        self._transport = transport
        self._artifact_source = artifact_source
        self._auth_token = auth_token
        self.settings = settings or ClientSettings(url=url, auth_token=auth_token)
        self.device_monitor = device_monitor or StaticDeviceMonitor()
        self.metrics_probe = metrics_probe or StaticMetricsProbe(
            ping=self.settings.ping,
            upload_speed=self.settings.upload_speed,
            download_speed=self.settings.download_speed
        )
        self.logger_setup = logger_setup
        if logger_setup is not None:
            self.logger = logger_setup.get_logger("fedcycle_client")
        else:
            self.logger = logging.getLogger("fedcycle_client")

    @classmethod
    def from_url(
        cls,
        url: str,
        auth_token: Optional[str] = None,
        channel: Optional[SignallingChannel] = None,
        session: Optional[requests.Session] = None,
        device_monitor: Optional[DeviceMonitor] = None,
        metrics_probe: Optional[ConnectionMetricsProbe] = None,
        settings: Optional[ClientSettings] = None,
        logger_setup: Optional[LoggerSetup] = None
    ) -> "Client":
        """
        Create a client, choosing the transport from the URL scheme.

        Args:
            url: ``http(s)://`` for request/response, ``ws(s)://`` for the
                signalling channel.
            auth_token: Optional authentication token.
            channel: Connected signalling channel, required for ws(s) URLs.
            session: requests session for HTTP calls.
            device_monitor: Battery/network sensing.
            metrics_probe: Connection metrics probe.
            settings: Client settings (timeouts, defaults).
            logger_setup: Logger factory for client, transports and jobs.

        Returns:
            Client instance.

        Raises:
            ValueError: Unsupported scheme, or ws(s) URL without a channel.
        """
        settings = settings or ClientSettings(url=url, auth_token=auth_token)
        if auth_token is None:
            auth_token = settings.auth_token

        def transport_logger(kind: str) -> Optional[logging.Logger]:
            if logger_setup is None:
                return None
            return logger_setup.get_transport_logger(kind)

        parsed = urlparse(url)
        if parsed.scheme in HTTP_SCHEMES:
            transport = HTTPTransport(
                url,
                timeout=settings.request_timeout,
                session=session,
                logger=transport_logger(HTTPTransport.kind)
            )
            artifact_source = transport
        elif parsed.scheme in SOCKET_SCHEMES:
            if channel is None:
                raise ValueError(f"A signalling channel is required for {url}")
            transport = SignallingTransport(
                channel,
                timeout=settings.message_timeout,
                logger=transport_logger(SignallingTransport.kind)
            )
            artifact_url = parsed._replace(scheme=SOCKET_SCHEMES[parsed.scheme]).geturl()
            artifact_source = HTTPTransport(
                artifact_url,
                timeout=settings.request_timeout,
                session=session,
                logger=transport_logger(HTTPTransport.kind)
            )
        else:
            raise ValueError(f"Unsupported coordinator URL scheme: {parsed.scheme!r}")

        return cls(
            url,
            transport,
            artifact_source,
            auth_token=auth_token,
            device_monitor=device_monitor,
            metrics_probe=metrics_probe,
            settings=settings,
            logger_setup=logger_setup
        )

    @classmethod
    def from_config(
        cls,
        config_path: str,
        channel: Optional[SignallingChannel] = None,
        session: Optional[requests.Session] = None,
        device_monitor: Optional[DeviceMonitor] = None,
        metrics_probe: Optional[ConnectionMetricsProbe] = None,
        log_dir: Optional[str] = None
    ) -> "Client":
        """Create a client from a YAML settings file, logging at its ``log_level``"""
        settings = ClientSettings.from_yaml(config_path)
        return cls.from_url(
            settings.url,
            channel=channel,
            session=session,
            device_monitor=device_monitor,
            metrics_probe=metrics_probe,
            settings=settings,
            logger_setup=LoggerSetup.from_level_name(settings.log_level, log_dir=log_dir)
        )

    @property
    def url(self) -> str:
        return self._url

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def artifact_source(self) -> ArtifactSource:
        return self._artifact_source

    @property
    def auth_token(self) -> Optional[str]:
        return self._auth_token

    def new_job(
        self,
        model_name: str,
        version: str,
        downloader: Optional[ArtifactDownloader] = None,
        logger: Optional[logging.Logger] = None
    ) -> Job:
        """Create a job for one cycle of ``model_name``:``version``"""
        self.logger.debug(f"New job for {model_name}:{version} via {self._transport.kind}")
        if logger is None and self.logger_setup is not None:
            logger = self.logger_setup.get_job_logger(model_name, version)
        return Job(self, model_name, version, downloader=downloader, logger=logger)

    async def close(self) -> None:
        """Close the transport (and the artifact source if separate)"""
        await self._transport.close()
        if self._artifact_source is not self._transport:
            await self._artifact_source.close()
