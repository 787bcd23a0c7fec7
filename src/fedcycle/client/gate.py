"""Device preconditions checked before any network activity."""

import logging
from enum import Enum
from typing import Optional, Protocol, runtime_checkable

from fedcycle.core.errors import PreconditionFailure, PreconditionReason


class NetworkInterface(Enum):
    """Kind of the active network interface"""
    WIFI = "wifi"
    CELLULAR = "cellular"
    WIRED = "wired"
    OTHER = "other"
    NONE = "none"


@runtime_checkable
class DeviceMonitor(Protocol):
    """Battery and network sensing provided by the host platform"""

    def is_charging(self) -> bool:
        ...

    async def network_interface(self) -> NetworkInterface:
        ...


class StaticDeviceMonitor:
    """Device monitor reporting fixed values.

    Used on hosts without battery/radio sensing and in tests.
    """

    def __init__(self, charging: bool = True, interface: NetworkInterface = NetworkInterface.WIFI):
        self.charging = charging
        self.interface = interface

    def is_charging(self) -> bool:
        return self.charging

    async def network_interface(self) -> NetworkInterface:
        return self.interface


class ConnectionGate:
    """Evaluates charging and Wi-Fi requirements"""

    def __init__(self, monitor: DeviceMonitor, logger: Optional[logging.Logger] = None):
        self.monitor = monitor
        self.logger = logger or logging.getLogger("connection_gate")

    async def check(self, require_charging: bool, require_wifi: bool) -> None:
        """Check device preconditions.

        The charging check happens synchronously; the Wi-Fi check is the
        only suspension point.

        Raises:
            PreconditionFailure: NOT_CHARGING or NOT_WIFI
        """
        if require_charging and not self.monitor.is_charging():
            raise PreconditionFailure(PreconditionReason.NOT_CHARGING)

        if require_wifi:
            interface = await self.monitor.network_interface()
            if interface is not NetworkInterface.WIFI:
                self.logger.info(f"Active interface is {interface.value}, wifi required")
                raise PreconditionFailure(PreconditionReason.NOT_WIFI)
