"""
Connections: per-connection registries of destinations and their endpoints.
"""
import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, List, NamedTuple, Optional, Union

from .consumer import MessageConsumer, QueueReceiver
from .destination import Queue
from .exceptions import DestinationClosedError, DestinationNotFoundError
from .metrics import MetricsCollector
from .producer import MessageProducer, QueueSender

logger = logging.getLogger(__name__)


class Registration(NamedTuple):
    """A declared destination and its single producer and consumer."""
    destination: Queue
    producer: MessageProducer
    consumer: MessageConsumer


class Connection(ABC):
    """
    Owns the destination -> (producer, consumer) registry.

    Subclasses decide which producer and consumer implementations serve a
    declared queue.
    """

    def __init__(self, metrics: Optional[MetricsCollector] = None):
        self._registry: Dict[str, Registration] = {}
        self._metrics = metrics or MetricsCollector()
        self._lock = threading.RLock()
        self._closed = False

    @property
    def metrics(self) -> MetricsCollector:
        return self._metrics

    @property
    def closed(self) -> bool:
        return self._closed

    @abstractmethod
    def _create_producer(self, queue: Queue) -> MessageProducer:
        pass

    @abstractmethod
    def _create_consumer(self, queue: Queue) -> MessageConsumer:
        pass

    def create_queue(self, name: str) -> Queue:
        """
        Declare a queue. Repeated calls with the same name return the same
        queue; a queue that was closed is replaced by a fresh one.
        """
        if not name:
            raise ValueError("Queue name cannot be empty")

        with self._lock:
            if self._closed:
                raise DestinationClosedError("Connection is closed")

            registration = self._registry.get(name)
            if registration is not None and not registration.destination.closed:
                return registration.destination

            queue = Queue(name, metrics=self._metrics)
            self._registry[name] = Registration(
                destination=queue,
                producer=self._create_producer(queue),
                consumer=self._create_consumer(queue),
            )
            logger.info(f"Declared queue '{name}' on {type(self).__name__}")
            return queue

    def get_destination(self, destination: Union[Queue, str]) -> Queue:
        return self._lookup(destination).destination

    def get_producer(self, destination: Union[Queue, str]) -> MessageProducer:
        return self._lookup(destination).producer

    def get_consumer(self, destination: Union[Queue, str]) -> MessageConsumer:
        return self._lookup(destination).consumer

    def has_destination(self, name: str) -> bool:
        return name in self._registry

    def list_destinations(self) -> List[str]:
        with self._lock:
            return list(self._registry.keys())

    def _lookup(self, destination: Union[Queue, str]) -> Registration:
        name = destination if isinstance(destination, str) else destination.name
        registration = self._registry.get(name)
        if registration is None:
            raise DestinationNotFoundError(f"Destination '{name}' was not declared")
        if not isinstance(destination, str) and registration.destination is not destination:
            # A queue object replaced by a later create_queue() for the same name
            raise DestinationClosedError(f"Destination '{name}' is closed")
        return registration

    def close(self) -> None:
        """Close every declared destination. Safe to call more than once."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            registrations = list(self._registry.values())
            self._registry.clear()

        for registration in registrations:
            registration.destination.close()


class InProcessConnection(Connection):
    """
    Connection whose producers dispatch directly to in-process consumers.
    """

    def _create_producer(self, queue: Queue) -> MessageProducer:
        return QueueSender(self, queue)

    def _create_consumer(self, queue: Queue) -> MessageConsumer:
        return QueueReceiver(self, queue)
