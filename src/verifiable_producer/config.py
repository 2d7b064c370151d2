"""
Verifiable Producer Configuration

Builds the immutable run configuration once at startup. Command-line flags
are passed in as explicit values; logging knobs may also come from the
environment (or a .env file) the same way the other services are configured.

CONFIGURATION SOURCES (priority order):
1. Explicit values (command-line flags)
2. Environment variables
3. .env file (loaded by python-dotenv)
4. Default values

The resulting ProducerConfig is frozen: nothing may change it once the send
loop has started.
"""

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
VALID_LOG_FORMATS = ("json", "text")
VALID_ACKS = (0, 1, -1)


class ProducerConfig(BaseSettings):
    """
    Run configuration with validation.

    Attributes:
        topic: Topic that every message is produced to
        broker_list: Comma-separated HOST:PORT list used as bootstrap servers
        max_messages: Number of messages to produce (negative = until stopped)
        throughput: Target messages/second (negative or 0 = unthrottled)
        acks: Acknowledgment mode (0=none, 1=leader, -1=all replicas)
        close_timeout: Seconds to wait for in-flight messages when stopping
        client_id: Client identifier visible in broker logs
        log_level: Diagnostic logging level
        log_format: Diagnostic log format (json or text)

    Example:
        >>> config = ProducerConfig(topic="test", broker_list="localhost:9092")
        >>> config.max_messages
        -1
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # === DESTINATION ===
    topic: str = Field(
        min_length=1,
        description="Topic to produce messages to",
        json_schema_extra={"example": "verifiable-test"},
    )

    broker_list: str = Field(
        min_length=1,
        description="Comma-separated list of brokers in the form HOST1:PORT1,HOST2:PORT2",
        json_schema_extra={"example": "broker1:9092,broker2:9092"},
    )

    # === WORKLOAD ===
    max_messages: int = Field(
        default=-1,
        description="Produce this many messages; negative = until the process is stopped",
    )

    throughput: int = Field(
        default=-1,
        description="Throttle to approximately this many messages/sec; negative = unthrottled",
    )

    # === DELIVERY ===
    acks: int = Field(
        default=-1,
        ge=-1,
        le=1,
        description="Acks required on each produced message (0, 1 or -1)",
    )

    close_timeout: int = Field(
        default=10,
        ge=0,
        description="Seconds to wait for unsent messages to flush when stopping",
    )

    client_id: str = Field(
        default="verifiable-producer",
        min_length=1,
        description="Producer client identifier",
    )

    # === LOGGING ===
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    log_format: str = Field(
        default="json",
        description="Diagnostic log format (json or text)",
    )

    @field_validator("broker_list")
    @classmethod
    def _normalize_broker_list(cls, value: str) -> str:
        brokers = [broker.strip() for broker in value.split(",")]
        if not all(brokers):
            raise ValueError("broker list contains an empty entry")
        return ",".join(brokers)

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in VALID_LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(VALID_LOG_LEVELS)}")
        return level

    @field_validator("log_format")
    @classmethod
    def _check_log_format(cls, value: str) -> str:
        fmt = value.lower()
        if fmt not in VALID_LOG_FORMATS:
            raise ValueError(f"log_format must be one of {', '.join(VALID_LOG_FORMATS)}")
        return fmt

    @property
    def infinite(self) -> bool:
        """True when the send loop has no message budget."""
        return self.max_messages < 0

    def get_kafka_config(self) -> dict:
        """
        Get the confluent_kafka.Producer configuration dictionary.

        Retries are fixed at zero so every failure surfaces as a
        producer_send_error line instead of being retried internally.

        Returns:
            Dictionary of Kafka producer configuration
        """
        return {
            "bootstrap.servers": self.broker_list,
            "client.id": self.client_id,
            "acks": str(self.acks),
            "retries": 0,
        }

    def display_config(self) -> str:
        """Human-readable configuration summary for the startup log."""
        return f"""
Verifiable Producer Configuration
=================================
Kafka:
  Brokers: {self.broker_list}
  Topic: {self.topic}
  Client ID: {self.client_id}
  Acks: {self.acks}

Workload:
  Max Messages: {self.max_messages} {'(infinite)' if self.infinite else ''}
  Throughput: {self.throughput} msg/s {'(unthrottled)' if self.throughput <= 0 else ''}
  Close Timeout: {self.close_timeout}s

Logging:
  Level: {self.log_level}
  Format: {self.log_format}
"""


def load_config(**overrides) -> ProducerConfig:
    """
    Load and validate the run configuration.

    Args:
        **overrides: Explicit values (e.g. parsed command-line flags); these
            take priority over environment variables

    Returns:
        Validated ProducerConfig instance

    Raises:
        ValidationError: If configuration is invalid
    """
    return ProducerConfig(**overrides)
