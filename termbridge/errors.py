"""Exception hierarchy for the bridge."""


class BridgeError(Exception):
    """Base class for bridge errors."""
    pass


class DecodeError(BridgeError):
    """A structured call payload was malformed or failed validation."""

    def __init__(self, name: str, reason: str):
        super().__init__(f"{name}: {reason}")
        self.name = name
        self.reason = reason


class ServiceError(BridgeError):
    """The model service call failed or its stream dropped."""
    pass


class ConfigError(BridgeError):
    """Configuration could not be loaded."""
    pass


__all__ = ["BridgeError", "ConfigError", "DecodeError", "ServiceError"]
