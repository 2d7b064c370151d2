"""
Verifiable Producer - Main Entry Point

Command-line tool for system tests: produces increasing integers to a topic
and prints JSON metadata to stdout for every send, so a test harness can see
exactly which messages were acked and which were not.

RUN MODES:
- Bounded: --max-messages N produces N messages, flushes, prints the summary
- Unbounded: --max-messages -1 (default) produces until SIGTERM/SIGINT
- Throttled: --throughput N paces the loop to roughly N messages/second

SHUTDOWN:
The signal handler only sets the stop token. The send loop notices it before
the next send, then the main thread flushes (bounded by --close-timeout) and
prints the tool_data summary line.

EXIT CODES:
- 0: help shown (no arguments), or run finished and summary printed
- 1: invalid arguments, invalid configuration, or the Kafka client could not
     be created

USAGE:
    verifiable-producer --topic test --broker-list localhost:9092 --max-messages 100
    python -m src.verifiable_producer.main --topic test --broker-list kafka:9092 --throughput 50
"""

import argparse
import signal
import sys
import threading
from typing import Any, Callable, Dict, Optional, Sequence

from pydantic import ValidationError

from src.shared.logger import setup_logger
from src.verifiable_producer.config import (
    VALID_ACKS,
    VALID_LOG_FORMATS,
    VALID_LOG_LEVELS,
    ProducerConfig,
    load_config,
)
from src.verifiable_producer.errors import ProducerInitError
from src.verifiable_producer.producer import SERVICE_NAME, VerifiableProducer

HANDLED_SIGNALS = (signal.SIGTERM, signal.SIGINT)


# ==============================================================================
# SIGNAL HANDLING
# ==============================================================================


def make_signal_handler(stop_event: threading.Event, logger) -> Callable:
    """
    Build a handler that requests a graceful stop.

    Repeated signals are harmless: the token is simply set again.
    """

    def handler(signum, frame):
        if not stop_event.is_set():
            logger.info(
                "Shutdown signal received, stopping producer",
                extra={"signal": signal.Signals(signum).name},
            )
        stop_event.set()

    return handler


def install_signal_handlers(stop_event: threading.Event, logger) -> Dict[int, Any]:
    """Register the stop handler; returns the previous handlers for restoring."""
    handler = make_signal_handler(stop_event, logger)
    previous = {}
    for signum in HANDLED_SIGNALS:
        previous[signum] = signal.signal(signum, handler)
    return previous


def restore_signal_handlers(previous: Dict[int, Any]) -> None:
    for signum, handler in previous.items():
        signal.signal(signum, handler)


# ==============================================================================
# RUN
# ==============================================================================


def run_producer(
    config: ProducerConfig,
    client: Optional[Any] = None,
    stop_event: Optional[threading.Event] = None,
    install_signals: bool = True,
) -> int:
    """
    Run the verifiable producer to completion.

    Args:
        config: Run configuration
        client: Optional pre-built producer client (default: confluent_kafka.Producer)
        stop_event: Cancellation token (default: a new threading.Event)
        install_signals: Register SIGTERM/SIGINT handlers for the run
            (only possible from the main thread)

    Returns:
        Exit code (0 = summary printed, 1 = client construction failed)
    """
    logger = setup_logger(
        name=__name__,
        service_name=SERVICE_NAME,
        log_level=config.log_level,
        log_format=config.log_format,
    )
    logger.debug(config.display_config())

    stop_event = stop_event if stop_event is not None else threading.Event()

    try:
        producer = VerifiableProducer(config, client=client, stop_event=stop_event)
    except ProducerInitError as e:
        logger.error("Cannot start producer", extra={"error": str(e)})
        return 1

    previous: Dict[int, Any] = {}
    try:
        if install_signals:
            previous = install_signal_handlers(stop_event, logger)
        producer.run()
    finally:
        producer.shutdown()
        restore_signal_handlers(previous)

    return 0


# ==============================================================================
# CLI ARGUMENT PARSING
# ==============================================================================


class ArgumentParser(argparse.ArgumentParser):
    """argparse parser whose usage errors exit with status 1."""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def build_parser() -> ArgumentParser:
    parser = ArgumentParser(
        prog="verifiable-producer",
        description=(
            "This tool produces increasing integers to the specified topic and prints "
            'JSON metadata to stdout on each "send" request, making externally visible '
            "which messages have been acked and which have not."
        ),
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--topic",
        required=True,
        metavar="TOPIC",
        help="Produce messages to this topic.",
    )

    parser.add_argument(
        "--broker-list",
        required=True,
        metavar="HOST1:PORT1[,HOST2:PORT2[...]]",
        dest="broker_list",
        help="Comma-separated list of Kafka brokers in the form HOST1:PORT1,HOST2:PORT2,...",
    )

    parser.add_argument(
        "--max-messages",
        type=int,
        default=-1,
        metavar="MAX-MESSAGES",
        dest="max_messages",
        help="Produce this many messages. If -1, produce messages until the process is killed externally.",
    )

    parser.add_argument(
        "--throughput",
        type=int,
        default=-1,
        metavar="THROUGHPUT",
        help="If set > 0, throttle maximum message throughput to *approximately* THROUGHPUT messages/sec.",
    )

    parser.add_argument(
        "--acks",
        type=int,
        default=-1,
        choices=VALID_ACKS,
        metavar="ACKS",
        help="Acks required on each produced message: 0 (none), 1 (leader) or -1 (all replicas).",
    )

    parser.add_argument(
        "--close-timeout",
        type=int,
        default=10,
        metavar="CLOSE-TIMEOUT",
        dest="close_timeout",
        help="When stopping, wait at most this many seconds for unsent messages to flush.",
    )

    # Diagnostics (stderr only)
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=VALID_LOG_LEVELS,
        help="Diagnostic logging level. Unset means the LOG_LEVEL env var, else INFO.",
    )

    parser.add_argument(
        "--log-format",
        choices=VALID_LOG_FORMATS,
        help="Diagnostic log format. Unset means the LOG_FORMAT env var, else json.",
    )

    return parser


def config_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """Translate parsed flags into ProducerConfig keyword arguments."""
    overrides: Dict[str, Any] = {
        "topic": args.topic,
        "broker_list": args.broker_list,
        "max_messages": args.max_messages,
        "throughput": args.throughput,
        "acks": args.acks,
        "close_timeout": args.close_timeout,
    }
    # Unset logging flags fall back to the environment
    if args.log_level:
        overrides["log_level"] = args.log_level
    if args.log_format:
        overrides["log_format"] = args.log_format
    return overrides


# ==============================================================================
# MAIN ENTRY POINT
# ==============================================================================


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Main entry point.

    Args:
        argv: Command-line arguments (default: sys.argv[1:])

    Returns:
        Exit code (0 = success, 1 = error)
    """
    argv = list(sys.argv[1:] if argv is None else argv)
    parser = build_parser()

    if not argv:
        parser.print_help()
        return 0

    args = parser.parse_args(argv)

    try:
        config = load_config(**config_overrides(args))
    except ValidationError as e:
        parser.error(f"invalid configuration: {e}")

    return run_producer(config)


if __name__ == "__main__":
    sys.exit(main())
