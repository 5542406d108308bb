"""
Custom Exception Classes for the NUT monitor

Hierarchical exception structure for error handling across the poller.
"""


class NutMonitorError(Exception):
    """Base exception for all NUT monitor errors"""

    def __init__(self, message: str, recoverable: bool = True):
        self.message = message
        self.recoverable = recoverable
        super().__init__(message)


class ConfigError(NutMonitorError):
    """Configuration-related errors"""

    def __init__(self, message: str, recoverable: bool = True):
        super().__init__(f"Config Error: {message}", recoverable)


class DeviceError(NutMonitorError):
    """UPS device errors"""

    def __init__(
        self,
        message: str,
        device_id: str | None = None,
        device_name: str | None = None,
        recoverable: bool = True,
    ):
        self.device_id = device_id
        self.device_name = device_name
        super().__init__(message, recoverable)


class NutConnectionError(DeviceError):
    """Socket/transport failure talking to the NUT server"""

    def __init__(
        self,
        message: str,
        device_name: str | None = None,
        host: str | None = None,
        port: int | None = None,
    ):
        self.host = host
        self.port = port
        super().__init__(message, device_name=device_name, recoverable=True)


class AuthError(DeviceError):
    """NUT server rejected the configured credentials"""

    def __init__(self, message: str, username: str | None = None):
        self.username = username
        super().__init__(message, recoverable=True)


class ProtocolError(DeviceError):
    """Malformed or unexpected NUT server response"""

    def __init__(
        self,
        message: str,
        device_name: str | None = None,
        response: str | None = None,
    ):
        self.response = response
        super().__init__(message, device_name=device_name, recoverable=True)


class CapabilityWriteError(DeviceError):
    """Host rejected a capability value write"""

    def __init__(
        self,
        message: str,
        device_id: str | None = None,
        capability: str | None = None,
        value=None,
    ):
        self.capability = capability
        self.value = value
        super().__init__(message, device_id=device_id, recoverable=True)
