"""
Pytest fixtures for messaging tests.
"""
import pytest

from jsms.config import Settings
from jsms.connection import InProcessConnection
from jsms.service import MessageService

QUEUE_NAME = "/some/queue"


@pytest.fixture
def connection():
    """An in-process connection, closed after the test."""
    connection = InProcessConnection()
    yield connection
    connection.close()


@pytest.fixture
def message_service():
    """A message service with default settings, closed after the test."""
    service = MessageService(settings=Settings())
    yield service
    service.close()


@pytest.fixture
def queue(message_service, connection):
    """The standard test queue declared through the message service."""
    return message_service.create_queue(connection, QUEUE_NAME)
