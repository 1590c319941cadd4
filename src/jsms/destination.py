"""
Destinations and the point-to-point queue matching engine.

A Queue buffers exactly one side of an exchange at a time: either messages
waiting for a receiver, or receivers (Receipts) waiting for a message. Every
enqueue/register_waiter call first tries to match against the opposite
buffer and only buffers when nothing matches, so both buffers are never
non-empty together. Both buffers are FIFO.

Expiration is checked lazily when a receiver scans the message buffer.
Expired messages are dropped at that point; a message nobody tries to
receive stays buffered past its expiration until the queue is closed.
"""
import logging
import threading
import time
from collections import deque
from typing import Callable, Deque, List, NamedTuple, Optional

from .deferred import Deferred, Receipt
from .exceptions import DestinationClosedError
from .message import Message
from .metrics import MetricsCollector

logger = logging.getLogger(__name__)


class PendingMessage(NamedTuple):
    """A buffered message and the deferred its producer awaits."""
    message: Message
    reply: Deferred


class Destination:
    """
    Named in-memory channel owned by a connection.
    """

    def __init__(self, name: str, metrics: Optional[MetricsCollector] = None):
        if not name:
            raise ValueError("Destination name cannot be empty")
        self.name = name
        self._metrics = metrics or MetricsCollector()
        self._closed = False
        self._lock = threading.RLock()

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        with self._lock:
            self._closed = True

    def _ensure_open(self) -> None:
        if self._closed:
            raise DestinationClosedError(f"Destination '{self.name}' is closed")

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<{type(self).__name__} '{self.name}' {state}>"


class Queue(Destination):
    """
    Point-to-point queue: each message is handed to exactly one receiver.
    """

    def __init__(self, name: str, metrics: Optional[MetricsCollector] = None,
                 clock: Callable[[], float] = time.time):
        super().__init__(name, metrics)
        self._pending_messages: Deque[PendingMessage] = deque()
        self._pending_waiters: Deque[Receipt] = deque()
        self._clock = clock

    @property
    def depth(self) -> int:
        """Number of buffered messages."""
        return len(self._pending_messages)

    @property
    def waiting(self) -> int:
        """Number of buffered receivers."""
        return len(self._pending_waiters)

    def enqueue(self, message: Message, reply: Deferred) -> Optional[Receipt]:
        """
        Match a message against the oldest waiting receiver or buffer it.

        Returns:
            The matched Receipt (the caller delivers to it), or None if the
            message was buffered

        Raises:
            DestinationClosedError: If the queue is closed
        """
        with self._lock:
            self._ensure_open()
            receipt = self._take_waiter()
            if receipt is not None:
                self._metrics.increment_delivered(self.name)
                self._update_gauges()
                return receipt

            self._pending_messages.append(PendingMessage(message, reply))
            self._metrics.increment_buffered(self.name)
            self._update_gauges()
            logger.debug(f"Buffered message {message.id} on queue '{self.name}'")
            return None

    def register_waiter(self, receipt: Receipt) -> Optional[PendingMessage]:
        """
        Match a receiver against the oldest live message or buffer it.

        Expired messages found at the head of the buffer are discarded.

        Returns:
            The matched PendingMessage (the caller delivers it), or None if
            the receipt was buffered

        Raises:
            DestinationClosedError: If the queue is closed
        """
        with self._lock:
            self._ensure_open()
            now = self._clock()
            expired = 0
            matched = None
            while self._pending_messages:
                pending = self._pending_messages.popleft()
                if pending.message.is_expired(now):
                    expired += 1
                    logger.debug(f"Dropped expired message {pending.message.id} "
                                 f"from queue '{self.name}'")
                    continue
                matched = pending
                break

            if expired:
                self._metrics.increment_expired(self.name, expired)
            if matched is not None:
                self._metrics.increment_delivered(self.name)
            else:
                self._pending_waiters.append(receipt)
            self._update_gauges()
            return matched

    def pop_waiter(self) -> Optional[Receipt]:
        """
        Take the oldest waiting receiver, if any.

        Raises:
            DestinationClosedError: If the queue is closed
        """
        with self._lock:
            self._ensure_open()
            receipt = self._take_waiter()
            if receipt is not None:
                self._metrics.increment_delivered(self.name)
            self._update_gauges()
            return receipt

    def close(self) -> None:
        """
        Close the queue. Safe to call more than once.

        Buffered producers and receivers are rejected with
        DestinationClosedError; no matching happens afterwards.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
            messages: List[PendingMessage] = list(self._pending_messages)
            waiters: List[Receipt] = list(self._pending_waiters)
            self._pending_messages.clear()
            self._pending_waiters.clear()
            self._update_gauges()

        for pending in messages:
            pending.reply.reject(DestinationClosedError(f"Queue '{self.name}' was closed"))
        for receipt in waiters:
            receipt.reject(DestinationClosedError(f"Queue '{self.name}' was closed"))

        logger.info(f"Closed queue '{self.name}' ({len(messages)} messages, "
                    f"{len(waiters)} receivers discarded)")

    def _take_waiter(self) -> Optional[Receipt]:
        # Receipts settled by their owner (an abandoned receive) are skipped
        while self._pending_waiters:
            receipt = self._pending_waiters.popleft()
            if not receipt.done():
                return receipt
        return None

    def _update_gauges(self) -> None:
        self._metrics.set_queue_depth(self.name, len(self._pending_messages))
        self._metrics.set_waiting(self.name, len(self._pending_waiters))
