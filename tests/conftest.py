"""
Pytest configuration and fixtures.

This file provides pytest-specific configuration and fixtures.
For standard test utilities, see tests/__init__.py
"""

import pytest

from core.interfaces import User
from notification.channels import DeliveryChannel
from storage.memory import (
    InMemoryAppLifecycle,
    InMemoryDocumentStore,
    InMemoryIdentitySource,
    InMemoryKeyValueStore,
    ManualScheduler,
)
from tests.mocks.engine_mocks import FakeClock, RecordingListener


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "redis: marks tests as requiring a live Redis (deselect with '-m \"not redis\"')"
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def kv_store():
    return InMemoryKeyValueStore()


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def channel(scheduler):
    return DeliveryChannel(scheduler)


@pytest.fixture
def recorder(channel):
    listener = RecordingListener()
    channel.subscribe(listener)
    return listener


@pytest.fixture
def user():
    return User(id="u1", email="u1@campus.edu", display_name="Uma")


@pytest.fixture
def identity():
    return InMemoryIdentitySource()


@pytest.fixture
def lifecycle():
    return InMemoryAppLifecycle()
