"""
exceptions.py
~~~~~~~~~~~~~

Exception hierarchy for the 3-layer network package.
"""


class NetworkError(Exception):
    """Base class for all errors raised by this package."""


class ConfigurationError(NetworkError, ValueError):
    """Raised for an invalid network shape or configuration value,
    e.g. a zero-sized layer or a non-positive learning rate.
    """


class InputSizeError(NetworkError, ValueError):
    """Raised when an input vector does not match the input layer size."""


class InvalidLabelError(NetworkError, ValueError):
    """Raised when a target label is outside [0, output node count)."""


class DatasetError(NetworkError):
    """Raised when an MNIST file is missing, truncated or malformed."""
