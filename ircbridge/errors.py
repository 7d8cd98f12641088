"""Bridge exception hierarchy."""


class BridgeError(Exception):
    """Base class for all bridge errors."""
    pass

class ConfigurationError(BridgeError):
    """Missing or malformed configuration, fatal at startup."""
    pass

class TransportError(BridgeError):
    """A network transport failed to deliver or lost its connection."""
    pass
