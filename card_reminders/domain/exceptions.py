"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class ConfigurationError(DomainException):
    """A required client or credential is missing; the run cannot start"""

    pass


class DataStoreError(DomainException):
    """Relational store read or write failed or timed out"""

    pass


class PushGatewayError(DomainException):
    """Multicast send failed as a whole or timed out"""

    pass
