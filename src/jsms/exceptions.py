"""
Custom exceptions for the messaging system.
"""


class MessagingError(Exception):
    """Base exception for messaging errors."""
    pass


class DestinationNotFoundError(MessagingError):
    """Raised when a destination was never declared on the connection."""
    pass


class DestinationClosedError(MessagingError):
    """Raised when sending to or receiving from a closed destination."""
    pass


class InvalidHandlerError(MessagingError, TypeError):
    """Raised when a message handler is not callable."""
    pass
