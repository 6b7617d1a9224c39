"""
Error types shared by the hub's discovery, polling and relay code.
"""


class SoundTouchHubError(Exception):
    """Base class for hub errors."""


class NoDeviceSelected(SoundTouchHubError):
    """No speaker is selected, so there is nothing to talk to."""

    def __init__(self, message: str = "No device selected"):
        super().__init__(message)


class DiscoveryError(SoundTouchHubError):
    """The mDNS subsystem could not be started or could not browse."""


class DeviceQueryError(SoundTouchHubError):
    """A request against the selected speaker failed."""

    def __init__(self, hostname: str, operation: str):
        self.hostname = hostname
        self.operation = operation
        super().__init__(f"Failed to {operation} on {hostname}")


class MalformedInput(SoundTouchHubError):
    """A client sent a value that cannot be used."""

    def __init__(self, field: str, value, reason: str = ""):
        self.field = field
        self.value = value
        message = f"Invalid {field}: {value!r}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class ConfigError(SoundTouchHubError):
    """Configuration value is missing or has the wrong type."""
