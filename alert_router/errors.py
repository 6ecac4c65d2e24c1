"""Exception types shared across the router"""


class ConfigError(ValueError):
    """Invalid routing configuration. Raised at load time, never per alert."""


class InvalidAlertError(ValueError):
    """Inbound alert event that cannot be accepted"""


class DeliveryError(Exception):
    """Notification could not be delivered to an integration"""

    def __init__(self, message: str, retryable: bool = True):
        super().__init__(message)
        self.retryable = retryable
