"""
Connection resolver: separates the dial address from the handshake identity.
"""
import ipaddress
import re
from typing import Optional

from ..models.inspection import ConnectionTarget
from ..security.errors import InvalidAddress, InvalidIdentity, InvalidPort

MAX_DNS_NAME_LENGTH = 253
MAX_LABEL_LENGTH = 63

_LABEL_RE = re.compile(r'^[A-Za-z0-9_]([A-Za-z0-9_-]*[A-Za-z0-9_])?$')


def validate_identity(identity: str) -> str:
    """
    Check that a name can be asserted as a handshake identity.

    Accepts IPv4/IPv6 literals and syntactically valid DNS names. Whether the
    name resolves is irrelevant here.

    Raises:
        InvalidIdentity: If the name is not acceptable
    """
    if not isinstance(identity, str) or not identity:
        raise InvalidIdentity(identity if isinstance(identity, str) else repr(identity),
                              "name is empty")

    try:
        ipaddress.ip_address(identity)
        return identity
    except ValueError:
        pass

    if not identity.isascii():
        raise InvalidIdentity(identity, "name must be ASCII")

    name = identity[:-1] if identity.endswith(".") else identity
    if not name:
        raise InvalidIdentity(identity, "name is empty")

    if len(name) > MAX_DNS_NAME_LENGTH:
        raise InvalidIdentity(identity, f"name exceeds {MAX_DNS_NAME_LENGTH} characters")

    for label in name.split("."):
        if not label:
            raise InvalidIdentity(identity, "name contains an empty label")
        if len(label) > MAX_LABEL_LENGTH:
            raise InvalidIdentity(identity, f"label {label!r} exceeds {MAX_LABEL_LENGTH} characters")
        if not _LABEL_RE.match(label):
            raise InvalidIdentity(identity, f"label {label!r} contains invalid characters")

    return identity


def validate_port(port: int) -> int:
    if isinstance(port, bool) or not isinstance(port, int) or not (1 <= port <= 65535):
        raise InvalidPort(port)
    return port


def resolve(identity_input: str, address_override: Optional[str] = None,
            port: int = 443) -> ConnectionTarget:
    """
    Produce the dial address and the asserted identity for one inspection.

    The override only changes where the connection goes, never the identity
    checked during the handshake.

    Args:
        identity_input: Name to assert (SNI) and validate against
        address_override: Optional host or IP to dial instead of identity_input
        port: TCP port to dial

    Returns:
        ConnectionTarget

    Raises:
        InvalidIdentity: If identity_input cannot be used as a handshake identity
        InvalidAddress: If address_override is blank or contains whitespace
        InvalidPort: If port is out of range
    """
    identity_name = validate_identity(identity_input)
    validate_port(port)

    if address_override is None:
        return ConnectionTarget(dial_address=(identity_name, port), identity_name=identity_name)

    if not address_override.strip():
        raise InvalidAddress(address_override, "address is empty")
    if any(ch.isspace() for ch in address_override):
        raise InvalidAddress(address_override, "address contains whitespace")

    return ConnectionTarget(dial_address=(address_override, port), identity_name=identity_name)
