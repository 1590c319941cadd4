"""
Message dataclass for the messaging system.
"""
from dataclasses import dataclass, field
from typing import Any, Optional
import time
import uuid


@dataclass(frozen=True)
class Message:
    """
    An immutable message addressed to a destination.

    Attributes:
        id: Unique message identifier (UUID)
        destination_name: Name of the destination the message is sent to
        body: Message payload (defaults to an empty dict)
        timestamp: Creation timestamp (Unix time)
        correlation_id: Optional token used to route a response back
        expiration_time: Absolute Unix time after which the message must not
            be delivered, or None if it never expires
    """
    id: str
    destination_name: str
    body: Any = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)
    correlation_id: Optional[str] = None
    expiration_time: Optional[float] = None

    def __post_init__(self):
        if not self.destination_name:
            raise ValueError("Destination name cannot be empty")

    @staticmethod
    def create(destination_name: str, body: Any = None,
               expires_in_ms: Optional[float] = None,
               correlation_id: Optional[str] = None) -> 'Message':
        """
        Create a new message with auto-generated ID and timestamp.

        Args:
            destination_name: Destination (queue) name
            body: Message payload, an empty dict when None
            expires_in_ms: Optional time to live in milliseconds
            correlation_id: Optional correlation token

        Returns:
            New Message instance
        """
        now = time.time()
        expiration_time = None
        if expires_in_ms is not None:
            expiration_time = now + expires_in_ms / 1000.0

        return Message(
            id=str(uuid.uuid4()),
            destination_name=destination_name,
            body={} if body is None else body,
            timestamp=now,
            correlation_id=correlation_id,
            expiration_time=expiration_time,
        )

    def is_expired(self, now: Optional[float] = None) -> bool:
        """Check whether the message is past its expiration time."""
        if self.expiration_time is None:
            return False
        if now is None:
            now = time.time()
        return now >= self.expiration_time

