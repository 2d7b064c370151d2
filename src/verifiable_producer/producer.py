"""
Verifiable Producer

Produces increasing integers ("0", "1", "2", ...) to a topic and prints one
JSON status line per send outcome, making externally visible which messages
were acknowledged and which were not.

LIFECYCLE:
    INIT -> RUNNING -> STOPPING -> TERMINATED

- INIT: configuration parsed, Kafka client being constructed
- RUNNING: client constructed, send loop may run
- STOPPING: loop has exited (budget exhausted or stop requested), flush pending
- TERMINATED: flush finished or timed out, summary printed

DELIVERY REPORTING:
- Synchronous failures (produce() raising, e.g. a serialization error) are
  reported immediately as producer_send_error
- A full local queue (BufferError) first serves delivery reports with a
  bounded poll() and retries once; only a second BufferError is reported
- Asynchronous outcomes arrive through the delivery callback, served by
  poll() and flush(): success -> producer_send_success, failure ->
  producer_send_error
- Only successful deliveries count as acked

Retries are disabled in the client config, so a broker-side failure shows up
as exactly one error line rather than being retried silently.
"""

import enum
import functools
import itertools
import threading
from typing import IO, Any, Callable, Dict, Optional, Tuple

from confluent_kafka import KafkaError, KafkaException, Producer

from src.shared.logger import setup_logger
from src.verifiable_producer.config import ProducerConfig
from src.verifiable_producer.errors import ProducerInitError
from src.verifiable_producer.events import (
    StatusPrinter,
    error_event,
    success_event,
    summary_event,
)
from src.verifiable_producer.throttler import ThroughputThrottler, monotonic_ms

SERVICE_NAME = "verifiable-producer"

# Seconds to wait for delivery reports when the local queue is full
QUEUE_FULL_POLL_S = 1.0


class DriverState(str, enum.Enum):
    INIT = "INIT"
    RUNNING = "RUNNING"
    STOPPING = "STOPPING"
    TERMINATED = "TERMINATED"


class SendCounters:
    """
    Send/ack counters shared by the send loop and delivery callbacks.

    Both counters change only through the increment methods, each of which
    holds the lock for the read-modify-write.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._sent = 0
        self._acked = 0

    def record_sent(self) -> int:
        with self._lock:
            self._sent += 1
            return self._sent

    def record_acked(self) -> int:
        with self._lock:
            self._acked += 1
            return self._acked

    @property
    def sent(self) -> int:
        with self._lock:
            return self._sent

    @property
    def acked(self) -> int:
        with self._lock:
            return self._acked

    def snapshot(self) -> Tuple[int, int]:
        """(sent, acked) read under one lock acquisition."""
        with self._lock:
            return self._sent, self._acked


class VerifiableProducer:
    """
    Kafka producer that reports every send outcome on stdout.

    Attributes:
        config: Frozen run configuration
        topic: Destination topic
        client: confluent_kafka.Producer (or any object with the same
            produce/poll/flush interface)
        stop_event: Cancellation token; once set the send loop exits
        counters: Sent/acked counters
        printer: Serialized JSON line writer for status events
    """

    def __init__(
        self,
        config: ProducerConfig,
        client: Optional[Any] = None,
        stop_event: Optional[threading.Event] = None,
        out: Optional[IO[str]] = None,
        clock: Callable[[], float] = monotonic_ms,
    ):
        """
        Initialize the producer.

        Args:
            config: Run configuration
            client: Pre-built producer client; when omitted a
                confluent_kafka.Producer is created from the configuration
            stop_event: Cancellation token shared with the signal handler
            out: Stream for status lines (default: sys.stdout)
            clock: Millisecond clock used for pacing and the summary

        Raises:
            ProducerInitError: If the Kafka client rejects the configuration
        """
        self.config = config
        self.topic = config.topic
        self.stop_event = stop_event if stop_event is not None else threading.Event()
        self.counters = SendCounters()
        self.printer = StatusPrinter(out)
        self.clock = clock

        self.logger = setup_logger(
            name=__name__,
            service_name=SERVICE_NAME,
            log_level=config.log_level,
            log_format=config.log_format,
        )

        self.state = DriverState.INIT
        self._start_ms: Optional[float] = None
        self._close_lock = threading.Lock()
        self._closed = False
        self._remaining: Optional[int] = None
        self._shutdown_lock = threading.Lock()

        if client is None:
            kafka_config = config.get_kafka_config()
            try:
                client = Producer(kafka_config)
            except (KafkaException, ValueError, TypeError) as e:
                self.logger.error(
                    "Failed to initialize Kafka producer",
                    exc_info=True,
                    extra={"bootstrap_servers": config.broker_list, "error": str(e)},
                )
                raise ProducerInitError(f"Failed to initialize Kafka producer: {e}") from e

            self.logger.info(
                "Kafka producer initialized",
                extra={
                    "bootstrap_servers": config.broker_list,
                    "topic": self.topic,
                    "acks": kafka_config["acks"],
                    "client_id": config.client_id,
                },
            )

        self.client = client
        self.state = DriverState.RUNNING

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    def send(self, key: Optional[str], value: str) -> bool:
        """
        Produce one message to the configured topic.

        The attempt is counted before dispatch, whether or not the client
        accepts it.

        Args:
            key: Message key (None for no key)
            value: Message value

        Returns:
            True if the client accepted the message for asynchronous delivery,
            False if it was rejected (an error line has been printed) or the
            producer is already stopping
        """
        if self.state is not DriverState.RUNNING:
            self.logger.warning(
                "Send rejected, producer is not running",
                extra={"state": self.state.value, "value": value},
            )
            return False

        self.counters.record_sent()
        try:
            try:
                self._produce(key, value)
            except BufferError:
                # Local queue full: serve delivery reports to free space, then retry once
                self.logger.warning(
                    "Producer queue full, polling before retry",
                    extra={"value": value, "poll_timeout": QUEUE_FULL_POLL_S},
                )
                self.client.poll(QUEUE_FULL_POLL_S)
                self._produce(key, value)
        except Exception as e:
            self.logger.debug(
                "Send rejected by client",
                extra={"error": str(e), "error_type": type(e).__name__, "value": value},
            )
            self.printer.emit(error_event(type(self), self.topic, e, key, value))
            self.client.poll(0)
            return False

        # Serve delivery callbacks for earlier messages (non-blocking)
        self.client.poll(0)
        return True

    def _produce(self, key: Optional[str], value: Optional[str]) -> None:
        self.client.produce(
            self.topic,
            key=key.encode("utf-8") if key is not None else None,
            value=value.encode("utf-8") if value is not None else None,
            on_delivery=functools.partial(self._on_delivery, key, value),
        )

    def _on_delivery(
        self,
        key: Optional[str],
        value: Optional[str],
        err: Optional[KafkaError],
        msg: Any,
    ) -> None:
        """
        Delivery report for a single message.

        Called once per accepted message from poll() or flush(); must not block.
        """
        if err is None:
            self.counters.record_acked()
            self.printer.emit(
                success_event(type(self), self.topic, msg.partition(), msg.offset(), key, value)
            )
            return

        self.logger.debug(
            "Message delivery failed",
            extra={"error": err.str(), "error_code": err.code(), "value": value},
        )
        self.printer.emit(
            error_event(type(self), self.topic, KafkaException(err), key, value, message=err.str())
        )

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    def run(self) -> int:
        """
        Produce messages until the budget is exhausted or a stop is requested.

        Values are the loop index as a decimal string, sent without a key.
        The stop token is checked before every send, so a stop request is
        honoured within one iteration.

        Returns:
            Number of loop iterations that called send()
        """
        self._start_ms = self.clock()
        throttler = ThroughputThrottler(
            self.config.throughput,
            self._start_ms,
            wakeup=self.stop_event,
            clock=self.clock,
        )

        self.logger.info(
            "Starting send loop",
            extra={
                "topic": self.topic,
                "max_messages": "infinite" if self.config.infinite else self.config.max_messages,
                "throughput": self.config.throughput if throttler.enabled else "unthrottled",
            },
        )

        if self.config.infinite:
            indices = itertools.count()
        else:
            indices = iter(range(self.config.max_messages))

        iterations = 0
        for i in indices:
            if self.stop_event.is_set():
                self.logger.info("Stop requested, leaving send loop", extra={"iterations": iterations})
                break

            send_start_ms = self.clock()
            self.send(None, str(i))
            iterations += 1

            if throttler.should_throttle(i, send_start_ms):
                throttler.throttle()

        if self.state is DriverState.RUNNING:
            self.state = DriverState.STOPPING
        return iterations

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    def close(self, timeout: Optional[float] = None) -> Optional[int]:
        """
        Flush buffered and in-flight messages.

        Blocks up to ``timeout`` seconds (default: config.close_timeout).
        Messages still undelivered at the deadline are abandoned: they stay
        counted as sent and never produce a success line. Only the first call
        flushes; later calls return the first result.

        Returns:
            Number of messages left undelivered, or None if the flush failed
        """
        with self._close_lock:
            if self._closed:
                return self._remaining

            timeout = self.config.close_timeout if timeout is None else timeout
            self.logger.info("Flushing producer", extra={"timeout": timeout})

            try:
                remaining = self.client.flush(timeout=timeout)
            except KafkaException as e:
                self.logger.error("Error flushing producer", exc_info=True, extra={"error": str(e)})
                remaining = None
            else:
                if remaining:
                    self.logger.warning(
                        "Producer flush timed out, abandoning undelivered messages",
                        extra={"remaining_messages": remaining, "timeout": timeout},
                    )
                else:
                    self.logger.info("All messages flushed")

            self._closed = True
            self._remaining = remaining
            return remaining

    def avg_throughput(self, stop_ms: float, acked: Optional[int] = None) -> float:
        """Acknowledged messages per second since the loop started."""
        start_ms = self._start_ms if self._start_ms is not None else stop_ms
        elapsed_ms = stop_ms - start_ms
        if elapsed_ms <= 0:
            return 0.0
        if acked is None:
            acked = self.counters.acked
        return 1000.0 * acked / elapsed_ms

    def shutdown(self) -> Optional[Dict[str, Any]]:
        """
        Stop producing, flush, and print the tool_data summary.

        Safe to call more than once (e.g. after the loop finished and again
        from a signal path): only the first call flushes and prints.

        Returns:
            The summary event, or None if shutdown already happened
        """
        with self._shutdown_lock:
            if self.state is DriverState.TERMINATED:
                return None

            self.stop_event.set()
            self.state = DriverState.STOPPING
            self.close()

            stop_ms = self.clock()
            sent, acked = self.counters.snapshot()
            summary = summary_event(
                type(self),
                sent=sent,
                acked=acked,
                target_throughput=self.config.throughput,
                avg_throughput=self.avg_throughput(stop_ms, acked),
            )
            self.printer.emit(summary)
            self.state = DriverState.TERMINATED

        self.logger.info(
            "Producer shutdown complete",
            extra={
                "sent": sent,
                "acked": acked,
                "unacknowledged": sent - acked,
                "avg_throughput": round(summary["avg_throughput"], 2),
            },
        )
        return summary
