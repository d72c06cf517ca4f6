"""
errors.py
~~~~~~~~~

Exceptions raised by the network engine and the archive codec.
"""


class NetworkError(Exception):
    """Base class for all ffnet errors."""


class InvalidDataSize(NetworkError, ValueError):
    """Input, expected output or training set does not fit the network."""


class DimensionMismatch(NetworkError, ValueError):
    """Matrix operands have incompatible shapes."""


class FormatError(NetworkError, ValueError):
    """A saved network archive is malformed or inconsistent."""
