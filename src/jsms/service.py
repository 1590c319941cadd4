"""
MessageService - facade over connections for name-based messaging.

Queues are declared on a connection through the service; afterwards send()
and receive() only need the queue name.
"""
import logging
import threading
from typing import Any, Dict, List, Optional

from .config import Settings, settings as default_settings
from .connection import Connection
from .deferred import Deferred, MessageHandler, Receipt
from .destination import Queue
from .exceptions import DestinationNotFoundError
from .message import Message

logger = logging.getLogger(__name__)


class MessageService:
    """
    Name-based send/receive over one or more connections.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self._settings = settings or default_settings
        self._connections: Dict[str, Connection] = {}
        self._lock = threading.RLock()

    @staticmethod
    def create_message(destination_name: str, body: Any = None,
                       expires_in_ms: Optional[float] = None,
                       correlation_id: Optional[str] = None) -> Message:
        """Create a message, with an empty dict body when none is given."""
        return Message.create(destination_name, body, expires_in_ms, correlation_id)

    def create_queue(self, connection: Connection, name: str) -> Queue:
        """
        Declare a queue on a connection and route the name to it.
        """
        queue = connection.create_queue(name)
        with self._lock:
            self._connections[name] = connection
        return queue

    def send(self, destination_name: str, body: Any = None,
             expires_in_ms: Optional[float] = None,
             correlation_id: Optional[str] = None) -> Deferred:
        """
        Send a message to a declared queue.

        Args:
            destination_name: Queue name
            body: Message payload, an empty dict when None
            expires_in_ms: Time to live, defaults to settings.DEFAULT_TTL_MS
            correlation_id: Optional correlation token

        Returns:
            Deferred settled with the receiver's response

        Raises:
            DestinationNotFoundError: If the queue was never declared
        """
        connection = self._connection_for(destination_name)
        if expires_in_ms is None:
            expires_in_ms = self._settings.DEFAULT_TTL_MS

        message = self.create_message(destination_name, body, expires_in_ms, correlation_id)
        producer = connection.get_producer(destination_name)
        return producer.send(message)

    def receive(self, destination_name: str,
                handler: Optional[MessageHandler] = None) -> Receipt:
        """
        Receive the next message from a declared queue.

        Args:
            destination_name: Queue name
            handler: Optional `handler(message, respond)` attached before delivery

        Raises:
            DestinationNotFoundError: If the queue was never declared
        """
        connection = self._connection_for(destination_name)
        return connection.get_consumer(destination_name).receive(handler)

    def get_queue_stats(self, destination_name: str) -> Dict[str, Any]:
        """Get statistics for a specific queue."""
        connection = self._connection_for(destination_name)
        return connection.metrics.get_queue_stats(destination_name)

    def list_queues(self) -> List[str]:
        with self._lock:
            return list(self._connections.keys())

    def close(self) -> None:
        """Close every connection that declared a queue through this service."""
        with self._lock:
            connections = []
            for connection in self._connections.values():
                if connection not in connections:
                    connections.append(connection)
            self._connections.clear()

        for connection in connections:
            connection.close()
        logger.debug(f"Message service closed {len(connections)} connection(s)")

    def _connection_for(self, destination_name: str) -> Connection:
        with self._lock:
            connection = self._connections.get(destination_name)
        if connection is None:
            raise DestinationNotFoundError(f"Destination '{destination_name}' was not declared")
        return connection
