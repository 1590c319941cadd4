"""
Deferred results for the messaging system.

A Deferred is a single-settlement handle: exactly one of resolve() or reject()
takes effect, later calls are no-ops. Any number of parties may await it or
register callbacks, and all of them observe the same outcome.

Callbacks run synchronously on the thread that settles the deferred. Awaiting
requires a running event loop; creating or settling a deferred does not.
"""
import asyncio
import inspect
import logging
import threading
from enum import Enum
from typing import Any, Callable, Generic, List, Optional, TypeVar

from .exceptions import InvalidHandlerError
from .message import Message

logger = logging.getLogger(__name__)

T = TypeVar('T')

RespondFunction = Callable[[Any], bool]
MessageHandler = Callable[[Message, RespondFunction], Any]


class DeferredState(Enum):
    """Settlement states of a deferred result."""
    PENDING = "pending"
    RESOLVED = "resolved"
    REJECTED = "rejected"


class Deferred(Generic[T]):
    """
    Promise-like handle for an asynchronous outcome.
    """

    def __init__(self):
        self._state = DeferredState.PENDING
        self._value: Optional[T] = None
        self._error: Optional[BaseException] = None
        self._callbacks: List[Callable[['Deferred'], None]] = []
        self._lock = threading.Lock()

    @classmethod
    def resolved_with(cls, value: Any) -> 'Deferred':
        """Create an already resolved deferred."""
        deferred = cls()
        deferred.resolve(value)
        return deferred

    @classmethod
    def rejected_with(cls, error: BaseException) -> 'Deferred':
        """Create an already rejected deferred."""
        deferred = cls()
        deferred.reject(error)
        return deferred

    # === State ===

    @property
    def state(self) -> DeferredState:
        return self._state

    @property
    def value(self) -> Optional[T]:
        """Resolved value, None while pending or when rejected."""
        return self._value

    @property
    def error(self) -> Optional[BaseException]:
        """Rejection error, None while pending or when resolved."""
        return self._error

    @property
    def promise(self) -> 'Deferred':
        """Awaitable view of this deferred."""
        return self

    def done(self) -> bool:
        return self._state is not DeferredState.PENDING

    def resolved(self) -> bool:
        return self._state is DeferredState.RESOLVED

    def rejected(self) -> bool:
        return self._state is DeferredState.REJECTED

    def result(self) -> T:
        """
        Return the resolved value or raise the rejection error.

        Raises:
            asyncio.InvalidStateError: If the deferred is still pending
        """
        if self._state is DeferredState.PENDING:
            raise asyncio.InvalidStateError("Deferred result is still pending")
        if self._state is DeferredState.REJECTED:
            raise self._error
        return self._value

    # === Settlement ===

    def resolve(self, value: Any = None) -> bool:
        """
        Resolve with a value.

        Returns:
            True if this call settled the deferred, False if it was already settled
        """
        return self._settle(DeferredState.RESOLVED, value, None)

    def reject(self, error: BaseException) -> bool:
        """
        Reject with an error.

        Returns:
            True if this call settled the deferred, False if it was already settled
        """
        if not isinstance(error, BaseException):
            raise TypeError(f"Rejection error must be an exception, got {type(error)}")
        return self._settle(DeferredState.REJECTED, None, error)

    def _settle(self, state: DeferredState, value: Any,
                error: Optional[BaseException]) -> bool:
        with self._lock:
            if self._state is not DeferredState.PENDING:
                return False
            self._state = state
            self._value = value
            self._error = error
            callbacks, self._callbacks = self._callbacks, []

        for callback in callbacks:
            self._run_callback(callback)
        return True

    # === Observation ===

    def add_done_callback(self, callback: Callable[['Deferred'], None]) -> None:
        """Call `callback(self)` on settlement, or right away if already settled."""
        with self._lock:
            if self._state is DeferredState.PENDING:
                self._callbacks.append(callback)
                return
        self._run_callback(callback)

    def _run_callback(self, callback: Callable[['Deferred'], None]) -> None:
        try:
            callback(self)
        except Exception as e:
            logger.error(f"Error in deferred callback {callback!r}: {e}")

    def then(self, on_resolved: Optional[Callable[[Any], Any]] = None,
             on_rejected: Optional[Callable[[BaseException], Any]] = None) -> 'Deferred':
        """
        Chain callbacks onto this deferred.

        Returns:
            A new deferred settled with the callback's return value, or
            rejected with the exception it raised
        """
        chained = Deferred()

        def propagate(source: 'Deferred') -> None:
            try:
                if source.resolved():
                    if on_resolved is None:
                        chained.resolve(source.value)
                        return
                    result = on_resolved(source.value)
                elif on_rejected is not None:
                    result = on_rejected(source.error)
                else:
                    chained.reject(source.error)
                    return
            except Exception as e:
                chained.reject(e)
                return
            chained.resolve(result)

        self.add_done_callback(propagate)
        return chained

    def __await__(self):
        if self._state is DeferredState.PENDING:
            loop = asyncio.get_running_loop()
            future = loop.create_future()

            def wake(_: 'Deferred') -> None:
                if not loop.is_closed():
                    loop.call_soon_threadsafe(_set_done, future)

            self.add_done_callback(wake)
            yield from future.__await__()
        return self.result()

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self._state.value}>"


def _set_done(future: asyncio.Future) -> None:
    if not future.done():
        future.set_result(None)


class Receipt(Deferred[Message]):
    """
    Consumer side of a point-to-point exchange.

    Returned by MessageConsumer.receive(). It resolves with the delivered
    message and links it to the producer's reply deferred. Handlers
    registered with handle() answer the producer:

    - a non-None return value resolves the reply with that value
    - calling `respond(value)` resolves the reply with `value`
    - returning None without responding resolves the reply with the message
    - raising rejects the reply with the raised exception

    The first settlement of the reply wins.
    """

    def __init__(self):
        super().__init__()
        self._handlers: List[MessageHandler] = []
        self._message: Optional[Message] = None
        self._reply: Optional[Deferred] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def reply(self) -> Optional[Deferred]:
        """The producer's deferred, once a message was delivered."""
        return self._reply

    def handle(self, handler: MessageHandler) -> 'Receipt':
        """
        Register a handler called as `handler(message, respond)`.

        Runs immediately if a message was already delivered.
        """
        if handler is None or not callable(handler):
            raise InvalidHandlerError(f"Handler must be callable, got {type(handler)}")

        with self._lock:
            self._handlers.append(handler)
            delivered = self._reply is not None

        if delivered:
            self._run_handler(handler)
        return self

    def deliver(self, message: Message, reply: Deferred) -> bool:
        """
        Hand a message and its producer's reply deferred to this receipt.

        Returns:
            False if the receipt already received a message
        """
        with self._lock:
            if self._reply is not None or self._state is not DeferredState.PENDING:
                return False
            self._message = message
            self._reply = reply
            handlers = list(self._handlers)

        self.resolve(message)

        if handlers:
            for handler in handlers:
                self._run_handler(handler)
        else:
            self._answer_when_unhandled()
        return True

    def _run_handler(self, handler: MessageHandler) -> None:
        message, reply = self._message, self._reply
        try:
            result = handler(message, reply.resolve)
        except Exception as e:
            logger.error(f"Handler for '{message.destination_name}' failed: {e}")
            reply.reject(e)
            return

        if inspect.isawaitable(result):
            self._await_handler(result, message, reply)
        else:
            reply.resolve(message if result is None else result)

    def _await_handler(self, awaitable: Any, message: Message, reply: Deferred) -> None:
        async def run() -> None:
            try:
                result = await awaitable
            except Exception as e:
                logger.error(f"Async handler for '{message.destination_name}' failed: {e}")
                reply.reject(e)
                return
            reply.resolve(message if result is None else result)

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            asyncio.run(run())
        else:
            self._task = loop.create_task(run())

    def _answer_when_unhandled(self) -> None:
        # A handler attached right after receive() returns gets one loop turn to answer
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._answer_with_message()
        else:
            loop.call_soon(self._answer_with_message)

    def _answer_with_message(self) -> None:
        with self._lock:
            handled = bool(self._handlers)
        if not handled:
            self._reply.resolve(self._message)
