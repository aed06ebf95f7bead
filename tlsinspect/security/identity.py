"""
Matching of the asserted identity against the leaf certificate.

Chain trust is decided by OpenSSL during the handshake. This module only
answers whether the leaf was issued for the name or address we asserted,
using subjectAltName entries the way current TLS clients do: the subject
common name is never consulted.
"""
import ipaddress
import logging
from typing import List

from cryptography import x509

from .errors import TlsError

logger = logging.getLogger(__name__)


def _normalize(name: str) -> str:
    # A single trailing dot marks an absolute name; certificates never carry it.
    return (name[:-1] if name.endswith(".") else name).lower()


def _dns_matches(pattern: str, name: str) -> bool:
    """
    Match one dNSName entry against a hostname.

    A wildcard counts only as the whole leftmost label and stands for exactly
    one label. Patterns directly on a single-label suffix (``*.test``) never
    match.
    """
    pattern = _normalize(pattern)
    if pattern == name:
        return True

    pattern_labels = pattern.split(".")
    name_labels = name.split(".")
    if pattern_labels[0] != "*" or len(pattern_labels) < 3:
        return False
    if "*" in pattern[1:] or len(name_labels) != len(pattern_labels):
        return False
    return name_labels[0] != "" and name_labels[1:] == pattern_labels[1:]


def _subject_alt_names(leaf: x509.Certificate) -> x509.SubjectAlternativeName:
    try:
        return leaf.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
    except x509.ExtensionNotFound:
        raise TlsError("certificate has no subjectAltName extension")
    except ValueError as e:
        raise TlsError(f"certificate subjectAltName could not be parsed: {e}") from e


def presented_identities(leaf: x509.Certificate) -> List[str]:
    """DNS names and IP addresses the leaf is valid for, in certificate order."""
    san = _subject_alt_names(leaf)
    identities = list(san.get_values_for_type(x509.DNSName))
    identities.extend(str(ip) for ip in san.get_values_for_type(x509.IPAddress))
    return identities


def verify_identity(identity_name: str, leaf: x509.Certificate) -> None:
    """
    Check that the leaf certificate was issued for identity_name.

    Args:
        identity_name: DNS name or IP literal asserted in the handshake
        leaf: Entity certificate presented by the peer

    Raises:
        TlsError: If no subjectAltName entry matches
    """
    san = _subject_alt_names(leaf)

    try:
        address = ipaddress.ip_address(identity_name)
    except ValueError:
        address = None

    if address is not None:
        # IP identities match iPAddress entries only, never a dNSName spelling.
        if address in san.get_values_for_type(x509.IPAddress):
            return
    else:
        name = _normalize(identity_name)
        if any(_dns_matches(pattern, name) for pattern in san.get_values_for_type(x509.DNSName)):
            return

    presented = ", ".join(presented_identities(leaf)) or "none"
    logger.debug(f"Identity {identity_name} not in leaf SANs: {presented}")
    raise TlsError(
        f"certificate verify failed: hostname mismatch, certificate is not valid for "
        f"{identity_name!r} (valid for: {presented})"
    )
