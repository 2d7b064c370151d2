"""
Pytest Configuration and Shared Fixtures

Unit tests drive the producer through an in-memory stand-in for
confluent_kafka.Producer: it records every produce() call and serves
delivery callbacks from poll()/flush() the way librdkafka does.

Integration tests use testcontainers to run a real Kafka broker; they are
skipped when Docker is not available.

FIXTURE SCOPES:
- session: Kafka container (started once)
- function: configs, fake clients, clean environment
"""

import itertools
from collections import defaultdict
from typing import Callable, Dict, Generator, List, Optional, Set

import pytest
from confluent_kafka import KafkaError

from src.verifiable_producer.config import ProducerConfig

# Environment variables ProducerConfig would pick up
CONFIG_ENV_VARS = (
    "TOPIC",
    "BROKER_LIST",
    "MAX_MESSAGES",
    "THROUGHPUT",
    "ACKS",
    "CLOSE_TIMEOUT",
    "CLIENT_ID",
    "LOG_LEVEL",
    "LOG_FORMAT",
)


# ==============================================================================
# FAKE KAFKA CLIENT
# ==============================================================================


class FakeMessage:
    """Mimics confluent_kafka.Message accessors."""

    def __init__(self, topic, partition, offset, key, value):
        self._topic = topic
        self._partition = partition
        self._offset = offset
        self._key = key
        self._value = value

    def topic(self):
        return self._topic

    def partition(self):
        return self._partition

    def offset(self):
        return self._offset

    def key(self):
        return self._key

    def value(self):
        return self._value


class FakeProducerClient:
    """
    In-memory producer with the confluent_kafka.Producer interface.

    Args:
        num_partitions: Messages are spread round-robin over this many partitions
        produce_error: Raised from every produce() call (synchronous failure)
        delivery_error: Passed to every delivery callback (asynchronous failure)
        failing_values: Values (str) whose delivery fails with delivery_error
            or a default timeout error; others succeed
        hold_deliveries: Never deliver; flush() reports everything as remaining
        queue_capacity: produce() raises BufferError while this many messages
            await delivery; only poll()/flush() free slots
        stalled_polls: Number of initial poll() calls that deliver nothing
        on_produce: Hook called with the number of accepted messages
    """

    def __init__(
        self,
        num_partitions: int = 3,
        produce_error: Optional[Exception] = None,
        delivery_error: Optional[KafkaError] = None,
        failing_values: Optional[Set[str]] = None,
        hold_deliveries: bool = False,
        queue_capacity: Optional[int] = None,
        stalled_polls: int = 0,
        on_produce: Optional[Callable[[int], None]] = None,
    ):
        self.num_partitions = num_partitions
        self.produce_error = produce_error
        self.delivery_error = delivery_error
        self.failing_values = failing_values or set()
        self.hold_deliveries = hold_deliveries
        self.queue_capacity = queue_capacity
        self.stalled_polls = stalled_polls
        self.on_produce = on_produce

        self.produced: List[FakeMessage] = []
        self.produce_attempts = 0
        self.poll_calls = 0
        self.poll_timeouts: List[Optional[float]] = []
        self.flush_calls: List[Optional[float]] = []
        self._pending = []
        self._offsets: Dict[int, itertools.count] = defaultdict(itertools.count)

    def produce(self, topic, key=None, value=None, on_delivery=None):
        self.produce_attempts += 1
        if self.produce_error is not None:
            raise self.produce_error
        if self.queue_capacity is not None and len(self._pending) >= self.queue_capacity:
            raise BufferError("Local: Queue full")

        partition = len(self.produced) % self.num_partitions
        msg = FakeMessage(topic, partition, next(self._offsets[partition]), key, value)
        self.produced.append(msg)

        err = self.delivery_error
        if value is not None and value.decode("utf-8") in self.failing_values:
            err = err or KafkaError(KafkaError._MSG_TIMED_OUT, "Local: Message timed out")
        self._pending.append((on_delivery, err, msg))

        if self.on_produce is not None:
            self.on_produce(len(self.produced))

    def poll(self, timeout=None):
        self.poll_calls += 1
        self.poll_timeouts.append(timeout)
        if self.hold_deliveries:
            return 0
        if self.stalled_polls > 0:
            self.stalled_polls -= 1
            return 0
        return self._deliver()

    def flush(self, timeout=None):
        self.flush_calls.append(timeout)
        if self.hold_deliveries:
            return len(self._pending)
        self._deliver()
        return 0

    def _deliver(self):
        pending, self._pending = self._pending, []
        for callback, err, msg in pending:
            if callback is not None:
                callback(err, msg)
        return len(pending)


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


# ==============================================================================
# ENVIRONMENT
# ==============================================================================


@pytest.fixture(autouse=True)
def clean_config_env(monkeypatch):
    """Keep host environment variables out of ProducerConfig."""
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


# ==============================================================================
# CONFIG / CLIENT FIXTURES
# ==============================================================================


@pytest.fixture
def make_config() -> Callable[..., ProducerConfig]:
    """Factory for ProducerConfig with test defaults."""

    def _make(**overrides) -> ProducerConfig:
        values = {
            "topic": "test-topic",
            "broker_list": "localhost:9092",
            "max_messages": 5,
            "throughput": -1,
            "close_timeout": 3,
        }
        values.update(overrides)
        return ProducerConfig(**values)

    return _make


@pytest.fixture
def producer_config(make_config) -> ProducerConfig:
    return make_config()


@pytest.fixture
def make_client() -> Callable[..., FakeProducerClient]:
    return FakeProducerClient


@pytest.fixture
def fake_client() -> FakeProducerClient:
    return FakeProducerClient()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock(now=1_000.0)


# ==============================================================================
# KAFKA FIXTURES
# ==============================================================================


@pytest.fixture(scope="session")
def kafka_container() -> Generator:
    """
    Provides Kafka testcontainer for the entire test session.

    Skips dependent tests when testcontainers or Docker is unavailable.
    """
    kafka_module = pytest.importorskip("testcontainers.kafka")

    container = kafka_module.KafkaContainer()
    try:
        container.start()
    except Exception as e:
        pytest.skip(f"Kafka container unavailable: {e}")

    try:
        yield container
    finally:
        container.stop()


@pytest.fixture
def bootstrap_servers(kafka_container) -> str:
    return kafka_container.get_bootstrap_server()


# ==============================================================================
# TEST ENVIRONMENT CONFIGURATION
# ==============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test (requires containers)"
    )
    config.addinivalue_line("markers", "slow: mark test as slow (takes more than 5 seconds)")
    config.addinivalue_line("markers", "unit: mark test as unit test (no external dependencies)")
