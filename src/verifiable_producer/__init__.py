"""
Verifiable Producer - Package Initialization

A Kafka producer for system tests. It produces increasing integers to a
topic and prints one JSON line per send outcome on stdout, plus a final
tool_data summary, so an external harness can check exactly which messages
were acknowledged.

PACKAGE STRUCTURE:
- config.py: Frozen run configuration (pydantic-settings)
- throttler.py: Pacing of the send loop to a target throughput
- events.py: Status event layouts and the serialized line printer
- producer.py: Send loop, delivery callbacks, flush and summary
- errors.py: Package exceptions
- main.py: Command-line entry point and signal handling

STATUS LINES (stdout):
    {"class": "...", "name": "producer_send_success", "time_ms": ..., "topic": "test",
     "partition": 0, "offset": 41, "key": null, "value": "41"}
    {"class": "...", "name": "producer_send_error", "time_ms": ..., "topic": "test",
     "exception": "cimpl.KafkaException", "message": "Local: Message timed out",
     "key": null, "value": "42"}
    {"class": "...", "name": "tool_data", "sent": 100, "acked": 99,
     "target_throughput": -1, "avg_throughput": 1234.5}

Diagnostic logs go to stderr.
"""

__version__ = "1.0.0"

from src.verifiable_producer.config import ProducerConfig, load_config
from src.verifiable_producer.errors import ProducerInitError, VerifiableProducerError
from src.verifiable_producer.producer import DriverState, SendCounters, VerifiableProducer
from src.verifiable_producer.throttler import ThroughputThrottler

__all__ = [
    "VerifiableProducer",
    "DriverState",
    "SendCounters",
    "ThroughputThrottler",
    "ProducerConfig",
    "load_config",
    "VerifiableProducerError",
    "ProducerInitError",
]
