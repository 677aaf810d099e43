"""Exception classes for foundation utilities.

This module provides exception classes used by foundation components.
"""


class FoundationError(Exception):
    """Base exception class for foundation-related errors."""


class BrokenCircuitError(FoundationError):
    """Exception raised when a call is short-circuited by an open circuit.

    The circuit breaker raises this instead of contacting an upstream that
    recently failed. It is an internal signal: the fallback layer absorbs it
    without logging, since the failure was already logged when the circuit
    opened.
    """
