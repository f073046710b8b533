"""
Exceptions raised by the integration services.
"""


class IntegrationError(Exception):
    """Base class for integration errors"""
    pass


class NotConfiguredError(IntegrationError):
    """Raised by connect() when neither Kodi nor TVHeadend is configured"""
    pass


class NotConnectedError(IntegrationError):
    """Raised when a command needs Kodi but Kodi is not online"""
    pass


class InvalidCommandParam(IntegrationError):
    """Raised when a command parameter cannot be interpreted"""
    pass
