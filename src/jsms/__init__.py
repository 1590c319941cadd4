"""
In-process point-to-point messaging with a JMS-style API.
"""

from .message import Message
from .deferred import Deferred, DeferredState, Receipt
from .destination import Destination, Queue
from .producer import MessageProducer, QueueSender
from .consumer import MessageConsumer, QueueReceiver
from .connection import Connection, InProcessConnection
from .metrics import MetricsCollector
from .service import MessageService
from .exceptions import (
    MessagingError,
    DestinationNotFoundError,
    DestinationClosedError,
    InvalidHandlerError,
)

__all__ = [
    'Message',
    'Deferred',
    'DeferredState',
    'Receipt',
    'Destination',
    'Queue',
    'MessageProducer',
    'QueueSender',
    'MessageConsumer',
    'QueueReceiver',
    'Connection',
    'InProcessConnection',
    'MetricsCollector',
    'MessageService',
    'MessagingError',
    'DestinationNotFoundError',
    'DestinationClosedError',
    'InvalidHandlerError',
]
