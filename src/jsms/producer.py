"""
Message producers.
"""
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from .deferred import Deferred
from .destination import Queue
from .exceptions import DestinationClosedError
from .message import Message

if TYPE_CHECKING:
    from .connection import Connection

logger = logging.getLogger(__name__)


class MessageProducer(ABC):
    """
    Sending end of a destination within a connection.
    """

    def __init__(self, connection: 'Connection', destination: Queue):
        self.connection = connection
        self.destination = destination

    @abstractmethod
    def send(self, message: Message) -> Deferred:
        """
        Send a message.

        Returns:
            Deferred settled with the receiver's response, or rejected with
            the error its handler raised
        """
        pass


class QueueSender(MessageProducer):
    """
    In-process producer. Dispatches straight to a waiting receiver and
    buffers on the queue otherwise.
    """

    def send(self, message: Message) -> Deferred:
        if message.destination_name != self.destination.name:
            raise ValueError(f"Message for '{message.destination_name}' sent to "
                             f"queue '{self.destination.name}'")

        reply = Deferred()
        metrics = self.connection.metrics
        metrics.increment_sent(self.destination.name)

        consumer = self.connection.get_consumer(self.destination)
        if not consumer.on_message(message, reply):
            # A receipt settled by its owner meanwhile refuses delivery; match again
            receipt = self.destination.enqueue(message, reply)
            while receipt is not None and not receipt.deliver(message, reply):
                receipt = self.destination.enqueue(message, reply)

        reply.add_done_callback(self._record_outcome)
        return reply

    def _record_outcome(self, reply: Deferred) -> None:
        if reply.rejected() and not isinstance(reply.error, DestinationClosedError):
            self.connection.metrics.increment_failed(self.destination.name)
