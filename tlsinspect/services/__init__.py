"""
Services package for the TLS inspector.
"""

from .config_service import ConfigService
from .resolver_service import resolve
from .handshake_service import HandshakeService
from .decoder_service import decode
from .inspection_service import InspectionService, InspectionRequest
from .report_service import ReportService

__all__ = [
    'ConfigService',
    'resolve',
    'HandshakeService',
    'decode',
    'InspectionService',
    'InspectionRequest',
    'ReportService'
]
