"""
Error types raised by the inspection pipeline.
"""
from typing import Optional


class InspectionError(Exception):
    """Base class for all terminal inspection failures."""

    stage = "inspect"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def diagnostic(self) -> str:
        """Single-line diagnostic naming the failed stage."""
        return f"{self.stage} failed: {self.message}"


class InvalidIdentity(InspectionError):
    """The supplied name cannot be asserted as a handshake identity."""

    stage = "resolve"

    def __init__(self, identity: str, reason: str):
        super().__init__(f"invalid identity name {identity!r}: {reason}")
        self.identity = identity
        self.reason = reason


class InvalidAddress(InspectionError):
    """The address override cannot be dialed."""

    stage = "resolve"

    def __init__(self, address: str, reason: str):
        super().__init__(f"invalid address {address!r}: {reason}")
        self.address = address
        self.reason = reason


class InvalidPort(InspectionError, ValueError):
    """The port is not a TCP port number."""

    stage = "resolve"

    def __init__(self, port, reason: str = "port must be an integer between 1 and 65535"):
        super().__init__(f"invalid port {port!r}: {reason}")
        self.port = port
        self.reason = reason


class NetworkError(InspectionError):
    """Transport-level failure while dialing or waiting on the peer."""

    stage = "connect"

    def __init__(self, address: str, reason: str):
        super().__init__(f"{address}: {reason}")
        self.address = address
        self.reason = reason


class Cancelled(InspectionError):
    """The dial or handshake was cancelled by the caller."""

    stage = "connect"

    def __init__(self, address: str):
        super().__init__(f"{address}: cancelled")
        self.address = address


class TlsError(InspectionError):
    """The handshake failed: trust, identity mismatch or protocol error."""

    stage = "handshake"

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class NoCertificates(InspectionError):
    """The handshake succeeded but the peer presented no certificates."""

    stage = "chain"

    def __init__(self, message: str = "peer presented an empty certificate chain"):
        super().__init__(message)


class MalformedCertificate(Exception):
    """A chain entry is not a well-formed DER certificate."""

    def __init__(self, index: int, reason: Optional[str] = None):
        message = f"certificate #{index} is malformed"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.index = index
        self.reason = reason

    def __eq__(self, other):
        if not isinstance(other, MalformedCertificate):
            return NotImplemented
        return self.index == other.index and self.reason == other.reason

    def __hash__(self):
        return hash((self.index, self.reason))
