"""
Security package: trust anchors, identity matching and error types.
"""
from .errors import (
    InspectionError, InvalidIdentity, InvalidAddress, InvalidPort, NetworkError, Cancelled,
    TlsError, NoCertificates, MalformedCertificate
)
from .trust_anchors import TrustAnchor, TrustAnchorSet, load_trust_anchors
from .identity import verify_identity, presented_identities

__all__ = [
    'InspectionError',
    'InvalidIdentity',
    'InvalidAddress',
    'InvalidPort',
    'NetworkError',
    'Cancelled',
    'TlsError',
    'NoCertificates',
    'MalformedCertificate',
    'TrustAnchor',
    'TrustAnchorSet',
    'load_trust_anchors',
    'verify_identity',
    'presented_identities'
]
