"""
Unit tests for the Queue matching engine.

Tests cover:
- Match-or-buffer decisions on both sides
- FIFO ordering of messages and receivers
- Lazy expiration on receive
- Closing a queue
- Concurrent producers and consumers
"""
import threading
import time
import unittest
from concurrent.futures import ThreadPoolExecutor

from jsms.connection import InProcessConnection
from jsms.deferred import Deferred, Receipt
from jsms.destination import Queue
from jsms.exceptions import DestinationClosedError
from jsms.message import Message
from jsms.metrics import MetricsCollector

QUEUE_NAME = "/some/queue"


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestQueueMatching(unittest.TestCase):
    """Test suite for Queue match-or-buffer decisions"""

    def setUp(self):
        self.metrics = MetricsCollector()
        self.clock = FakeClock()
        self.queue = Queue(QUEUE_NAME, metrics=self.metrics, clock=self.clock)

    def _message(self, body=None, expiration_time=None):
        return Message(id=f"msg-{body}", destination_name=QUEUE_NAME,
                       body=body if body is not None else {},
                       expiration_time=expiration_time)

    def test_empty_queue_name(self):
        """Test creating a queue with an empty name"""
        with self.assertRaises(ValueError):
            Queue("")

    def test_enqueue_without_waiters_buffers(self):
        """Test that enqueue buffers the message when nobody waits"""
        reply = Deferred()
        self.assertIsNone(self.queue.enqueue(self._message(1), reply))
        self.assertEqual(self.queue.depth, 1)
        self.assertEqual(self.queue.waiting, 0)
        self.assertFalse(reply.done())

    def test_register_waiter_without_messages_buffers(self):
        """Test that a receiver is buffered when no message is pending"""
        receipt = Receipt()
        self.assertIsNone(self.queue.register_waiter(receipt))
        self.assertEqual(self.queue.waiting, 1)
        self.assertEqual(self.queue.depth, 0)

    def test_enqueue_matches_waiting_receipt(self):
        """Test that enqueue hands back the waiting receipt"""
        receipt = Receipt()
        self.queue.register_waiter(receipt)

        matched = self.queue.enqueue(self._message(1), Deferred())

        self.assertIs(matched, receipt)
        self.assertEqual(self.queue.waiting, 0)
        self.assertEqual(self.queue.depth, 0)

    def test_register_waiter_matches_buffered_message(self):
        """Test that a receiver takes the buffered message"""
        message, reply = self._message(1), Deferred()
        self.queue.enqueue(message, reply)

        pending = self.queue.register_waiter(Receipt())

        self.assertIs(pending.message, message)
        self.assertIs(pending.reply, reply)
        self.assertEqual(self.queue.depth, 0)
        self.assertEqual(self.queue.waiting, 0)

    def test_buffers_never_both_non_empty(self):
        """Test that messages and receivers are never buffered together"""
        operations = "rrsrsssrrsrrss"
        for op in operations:
            if op == "s":
                self.queue.enqueue(self._message(op), Deferred())
            else:
                self.queue.register_waiter(Receipt())
            self.assertFalse(self.queue.depth and self.queue.waiting)

    def test_messages_matched_in_send_order(self):
        """Test that buffered messages are matched in send order"""
        for i in range(1, 4):
            self.queue.enqueue(self._message(i), Deferred())

        bodies = [self.queue.register_waiter(Receipt()).message.body for _ in range(3)]
        self.assertEqual(bodies, [1, 2, 3])

    def test_waiters_matched_in_registration_order(self):
        """Test that receivers are matched in registration order"""
        receipts = [Receipt() for _ in range(3)]
        for receipt in receipts:
            self.queue.register_waiter(receipt)

        matched = [self.queue.enqueue(self._message(i), Deferred()) for i in range(3)]
        self.assertEqual(matched, receipts)

    def test_settled_waiters_are_skipped(self):
        """Test that receipts settled by their owner are skipped"""
        abandoned, live = Receipt(), Receipt()
        self.queue.register_waiter(abandoned)
        self.queue.register_waiter(live)
        abandoned.reject(RuntimeError("gave up"))

        self.assertIs(self.queue.enqueue(self._message(1), Deferred()), live)
        self.assertEqual(self.queue.waiting, 0)

    def test_message_buffered_when_only_settled_waiters_remain(self):
        """Test that a message is buffered when only settled receipts wait"""
        abandoned = Receipt()
        self.queue.register_waiter(abandoned)
        abandoned.reject(RuntimeError("gave up"))

        self.assertIsNone(self.queue.pop_waiter())
        self.assertIsNone(self.queue.enqueue(self._message(1), Deferred()))
        self.assertEqual(self.queue.depth, 1)
        self.assertEqual(self.queue.waiting, 0)

    def test_pop_waiter(self):
        """Test taking the oldest waiting receiver"""
        self.assertIsNone(self.queue.pop_waiter())
        receipt = Receipt()
        self.queue.register_waiter(receipt)
        self.assertIs(self.queue.pop_waiter(), receipt)
        self.assertEqual(self.queue.waiting, 0)


class TestQueueExpiration(unittest.TestCase):
    """Test suite for lazy expiration on receive"""

    def setUp(self):
        self.metrics = MetricsCollector()
        self.clock = FakeClock(now=1000.0)
        self.queue = Queue(QUEUE_NAME, metrics=self.metrics, clock=self.clock)

    def test_live_message_is_delivered_before_expiration(self):
        """Test that a message is delivered before it expires"""
        message = Message(id="m", destination_name=QUEUE_NAME, expiration_time=1000.1)
        self.queue.enqueue(message, Deferred())

        pending = self.queue.register_waiter(Receipt())
        self.assertIs(pending.message, message)

    def test_expired_message_is_not_delivered(self):
        """Test that an expired message is dropped silently"""
        reply = Deferred()
        message = Message(id="m", destination_name=QUEUE_NAME, expiration_time=1000.1)
        self.queue.enqueue(message, reply)
        self.clock.now = 1000.15

        receipt = Receipt()
        self.assertIsNone(self.queue.register_waiter(receipt))
        self.assertEqual(self.queue.depth, 0)
        self.assertEqual(self.queue.waiting, 1)
        # Dropped silently: the producer is not told
        self.assertFalse(reply.done())
        self.assertEqual(self.metrics.get_queue_stats(QUEUE_NAME)['expired'], 1)

    def test_expired_messages_skipped_until_live_one(self):
        """Test that expired messages at the head are skipped"""
        expired = [Message(id=f"old-{i}", destination_name=QUEUE_NAME, expiration_time=999.0)
                   for i in range(2)]
        live = Message(id="live", destination_name=QUEUE_NAME)
        for message in expired + [live]:
            self.queue.enqueue(message, Deferred())

        pending = self.queue.register_waiter(Receipt())

        self.assertIs(pending.message, live)
        self.assertEqual(self.metrics.get_queue_stats(QUEUE_NAME)['expired'], 2)

    def test_expired_message_stays_buffered_until_scanned(self):
        """Test that expiry is only checked when receiving"""
        message = Message(id="m", destination_name=QUEUE_NAME, expiration_time=999.0)
        self.queue.enqueue(message, Deferred())
        self.assertEqual(self.queue.depth, 1)


class TestQueueClose(unittest.TestCase):
    """Test suite for closing a queue"""

    def setUp(self):
        self.queue = Queue(QUEUE_NAME)

    def test_close_rejects_buffered_replies(self):
        """Test that close rejects buffered producers"""
        reply = Deferred()
        self.queue.enqueue(Message.create(QUEUE_NAME), reply)

        self.queue.close()

        self.assertTrue(self.queue.closed)
        self.assertIsInstance(reply.error, DestinationClosedError)
        self.assertEqual(self.queue.depth, 0)

    def test_close_rejects_waiting_receipts(self):
        """Test that close rejects waiting receivers"""
        receipt = Receipt()
        self.queue.register_waiter(receipt)

        self.queue.close()

        self.assertIsInstance(receipt.error, DestinationClosedError)
        self.assertEqual(self.queue.waiting, 0)

    def test_close_leaves_settled_deferreds_alone(self):
        """Test that close does not touch settled deferreds"""
        receipt = Receipt()
        self.queue.register_waiter(receipt)
        matched = self.queue.enqueue(Message.create(QUEUE_NAME), Deferred())
        matched.deliver(Message.create(QUEUE_NAME, {"a": 1}), Deferred())

        self.queue.close()
        self.assertEqual(receipt.value.body, {"a": 1})

    def test_close_twice(self):
        """Test that close can be called more than once"""
        self.queue.close()
        self.queue.close()
        self.assertTrue(self.queue.closed)

    def test_no_matching_after_close(self):
        """Test that a closed queue refuses further matching"""
        self.queue.close()
        with self.assertRaises(DestinationClosedError):
            self.queue.enqueue(Message.create(QUEUE_NAME), Deferred())
        with self.assertRaises(DestinationClosedError):
            self.queue.register_waiter(Receipt())
        with self.assertRaises(DestinationClosedError):
            self.queue.pop_waiter()


class TestQueueConcurrency(unittest.TestCase):
    """Test suite for producers and consumers on separate threads"""

    def test_each_message_delivered_exactly_once(self):
        """Test that concurrent sends and receives deliver each message once"""
        connection = InProcessConnection()
        queue = connection.create_queue(QUEUE_NAME)
        producer = connection.get_producer(queue)
        consumer = connection.get_consumer(queue)
        count = 200
        receipts = []
        lock = threading.Lock()

        def produce():
            for i in range(count):
                producer.send(Message.create(QUEUE_NAME, i))

        def consume():
            for _ in range(count):
                receipt = consumer.receive()
                with lock:
                    receipts.append(receipt)

        with ThreadPoolExecutor(max_workers=2) as executor:
            futures = [executor.submit(produce), executor.submit(consume)]
            for future in futures:
                future.result()

        deadline = time.time() + 1.0
        while not all(r.done() for r in receipts) and time.time() < deadline:
            time.sleep(0.01)

        bodies = [receipt.value.body for receipt in receipts]
        self.assertEqual(sorted(bodies), list(range(count)))
        self.assertEqual(bodies, list(range(count)))
        self.assertEqual(queue.depth, 0)
        self.assertEqual(queue.waiting, 0)
        connection.close()


if __name__ == '__main__':
    unittest.main()
