"""
Models package for the TLS inspector.
"""

from .config import Config, ConfigValidationError, ConfigValidationResult
from .inspection import (
    LEAF, INTERMEDIATE, ConnectionTarget, SessionInfo, TrustStatus,
    CertificateChain, CertificateRecord, DecodeResult, InspectionResult
)

__all__ = [
    'Config',
    'ConfigValidationError',
    'ConfigValidationResult',
    'LEAF',
    'INTERMEDIATE',
    'ConnectionTarget',
    'SessionInfo',
    'TrustStatus',
    'CertificateChain',
    'CertificateRecord',
    'DecodeResult',
    'InspectionResult'
]
