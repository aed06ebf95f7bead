"""
TLS certificate chain inspector.
"""

__version__ = "0.1.0"
