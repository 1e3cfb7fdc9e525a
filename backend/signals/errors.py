"""Exception types raised by the signals pipeline."""


class SignalsError(Exception):
    """Base class for pipeline errors."""


class SchemaConfigurationError(SignalsError):
    """A contract schema could not be located or references an unsupported URI."""
