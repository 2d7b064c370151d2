"""Exceptions raised by the verifiable producer."""


class VerifiableProducerError(Exception):
    """Base class for verifiable producer errors."""


class ProducerInitError(VerifiableProducerError):
    """The underlying Kafka client could not be constructed (bad configuration)."""
