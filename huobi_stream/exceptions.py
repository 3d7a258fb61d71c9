"""Errors raised by the streaming client."""


class HuobiStreamError(Exception):
    """Base class for client errors."""


class ContractViolation(HuobiStreamError, ValueError):
    """A public call was made with arguments it cannot accept.

    Raised before any socket is created, so a failed call leaves no trace.
    """


class FrameDecodeError(HuobiStreamError):
    """An inbound frame could not be inflated or parsed as JSON."""
