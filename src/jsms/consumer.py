"""
Message consumers.
"""
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional

from .deferred import Deferred, MessageHandler, Receipt
from .destination import Queue
from .message import Message

if TYPE_CHECKING:
    from .connection import Connection


class MessageConsumer(ABC):
    """
    Receiving end of a destination within a connection.
    """

    def __init__(self, connection: 'Connection', destination: Queue):
        self.connection = connection
        self.destination = destination

    @abstractmethod
    def receive(self, handler: Optional[MessageHandler] = None) -> Receipt:
        """
        Return a receipt for the next (or an already pending) message.

        A handler given here is attached before any delivery, so its result
        or error always reaches the producer.
        """
        pass

    @abstractmethod
    def on_message(self, message: Message, reply: Deferred) -> bool:
        """
        Delivery hook called by producers.

        Returns:
            True if the message was handed to a receiver, False if the caller
            must buffer it
        """
        pass


class QueueReceiver(MessageConsumer):
    """
    In-process consumer backed by the queue's waiter buffer.
    """

    def receive(self, handler: Optional[MessageHandler] = None) -> Receipt:
        receipt = Receipt()
        if handler is not None:
            receipt.handle(handler)
        pending = self.destination.register_waiter(receipt)
        if pending is not None:
            receipt.deliver(pending.message, pending.reply)
        return receipt

    def on_message(self, message: Message, reply: Deferred) -> bool:
        while True:
            receipt = self.destination.pop_waiter()
            if receipt is None:
                return False
            if receipt.deliver(message, reply):
                return True
