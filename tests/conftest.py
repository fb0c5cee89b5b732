"""Shared fixtures: a ListenerService wired to an in-process fake listener."""

import pytest

from oscbridge.config import ListenerConfig, ServerConfig, default_virtual_addresses
from oscbridge.service import ListenerService
from oscbridge.transformer import Sample


class FakeListener:
    """Stands in for OSCListener; tests push samples with send()."""

    instances = []

    def __init__(self, config, on_sample, stats=None):
        self.config = config
        self.on_sample = on_sample
        self.stats = stats
        self.started = False
        self.closed = False
        FakeListener.instances.append(self)

    def start(self):
        self.started = True

    def close(self):
        self.closed = True

    def send(self, address, args, timestamp=1000):
        self.on_sample(Sample.create(address, args, timestamp))


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def fake_listener_factory():
    FakeListener.instances = []
    return FakeListener


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def server_config():
    listener = ListenerConfig(virtual_addresses=default_virtual_addresses())
    return ServerConfig(session_ttl_s=60, listener=listener)


@pytest.fixture
def service(server_config, fake_listener_factory, clock):
    service = ListenerService(server_config, listener_factory=fake_listener_factory, clock=clock)
    yield service
    service.shutdown()


@pytest.fixture
def current_listener(fake_listener_factory):
    """Most recently created fake listener."""
    def _current():
        return fake_listener_factory.instances[-1]
    return _current
