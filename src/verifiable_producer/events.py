"""
Status Events

Every event the producer reports is printed to stdout as one JSON object on
one line. External harnesses rely on this: any stdout line that parses as
JSON and carries one of the names below is a status event.

EVENT LAYOUT:
- producer_send_success: class, name, time_ms, topic, partition, offset, key, value
- producer_send_error:   class, name, time_ms, topic, exception, message, key, value
- tool_data:             class, name, sent, acked, target_throughput, avg_throughput
"""

import json
import sys
import threading
import time
from typing import IO, Any, Dict, Optional

SEND_SUCCESS = "producer_send_success"
SEND_ERROR = "producer_send_error"
TOOL_DATA = "tool_data"

EVENT_NAMES = (SEND_SUCCESS, SEND_ERROR, TOOL_DATA)


def now_ms() -> int:
    """Wall-clock epoch milliseconds."""
    return int(time.time() * 1000)


def qualified_name(cls: type) -> str:
    """Dotted module + class name; builtins are reported bare (e.g. BufferError)."""
    if cls.__module__ == "builtins":
        return cls.__qualname__
    return f"{cls.__module__}.{cls.__qualname__}"


def success_event(
    source: type,
    topic: str,
    partition: int,
    offset: int,
    key: Optional[str],
    value: Optional[str],
    time_ms: Optional[int] = None,
) -> Dict[str, Any]:
    return {
        "class": qualified_name(source),
        "name": SEND_SUCCESS,
        "time_ms": now_ms() if time_ms is None else time_ms,
        "topic": topic,
        "partition": partition,
        "offset": offset,
        "key": key,
        "value": value,
    }


def error_event(
    source: type,
    topic: str,
    exception: BaseException,
    key: Optional[str],
    value: Optional[str],
    message: Optional[str] = None,
    time_ms: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Build a producer_send_error event.

    Args:
        source: Class reporting the event
        topic: Destination topic of the failed message
        exception: The failure; its class name goes in the "exception" field
        key: Message key
        value: Message value
        message: Error text (default: str(exception), or None when empty)
        time_ms: Event time (default: now)
    """
    if message is None:
        message = str(exception) or None

    return {
        "class": qualified_name(source),
        "name": SEND_ERROR,
        "time_ms": now_ms() if time_ms is None else time_ms,
        "exception": qualified_name(type(exception)),
        "message": message,
        "topic": topic,
        "key": key,
        "value": value,
    }


def summary_event(
    source: type,
    sent: int,
    acked: int,
    target_throughput: int,
    avg_throughput: float,
) -> Dict[str, Any]:
    return {
        "class": qualified_name(source),
        "name": TOOL_DATA,
        "sent": sent,
        "acked": acked,
        "target_throughput": target_throughput,
        "avg_throughput": avg_throughput,
    }


class StatusPrinter:
    """
    Writes status events as JSON lines.

    A single lock covers serialization-to-stream and flush, so lines from
    the send loop, delivery callbacks and the summary never interleave.
    """

    def __init__(self, out: Optional[IO[str]] = None):
        self._out = out
        self._lock = threading.Lock()

    @property
    def stream(self) -> IO[str]:
        return self._out if self._out is not None else sys.stdout

    def emit(self, event: Dict[str, Any]) -> None:
        line = json.dumps(event)
        with self._lock:
            stream = self.stream
            stream.write(line + "\n")
            stream.flush()
