"""Test package for the jsms messaging system.

test_message.py: Message dataclass and factory
test_deferred.py: Deferred and Receipt settlement rules
test_queue.py: Queue matching engine, ordering and expiration
test_connection.py: Connection registry and in-process endpoints
test_message_service.py: MessageService facade end-to-end scenarios
test_extension.py: Custom producers/consumers through a fake connection
test_metrics.py: MetricsCollector
test_config.py: Settings and logging configuration

Run all tests:
    pytest tests/messaging
"""
