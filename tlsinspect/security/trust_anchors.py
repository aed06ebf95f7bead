"""
Trust anchor provider backed by the certifi root bundle.
"""
import logging
import re
import warnings
from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache
from typing import Iterable, List, Tuple

import certifi
from cryptography import x509
from cryptography.utils import CryptographyDeprecationWarning

logger = logging.getLogger(__name__)

_PEM_CERTIFICATE_RE = re.compile(
    r"-----BEGIN CERTIFICATE-----.*?-----END CERTIFICATE-----", re.DOTALL
)


@dataclass(frozen=True)
class TrustAnchor:
    """A root certificate authority used as the root of validation."""
    subject: str
    public_key_algorithm: str
    not_before: datetime
    not_after: datetime
    certificate: x509.Certificate

    @classmethod
    def from_certificate(cls, certificate: x509.Certificate) -> 'TrustAnchor':
        return cls(
            subject=certificate.subject.rfc4514_string(),
            public_key_algorithm=certificate.public_key_algorithm_oid.dotted_string,
            not_before=certificate.not_valid_before_utc,
            not_after=certificate.not_valid_after_utc,
            certificate=certificate
        )


@dataclass(frozen=True)
class TrustAnchorSet:
    """Immutable, non-empty set of root certificates shared read-only by all handshakes."""
    anchors: Tuple[TrustAnchor, ...]
    source: str = "custom"
    version: str = ""

    def __post_init__(self):
        if not self.anchors:
            raise ValueError("TrustAnchorSet requires at least one trust anchor")

    @classmethod
    def from_certificates(cls, certificates: Iterable[x509.Certificate],
                          source: str = "custom", version: str = "") -> 'TrustAnchorSet':
        """Build a set from already-parsed certificates."""
        anchors = tuple(TrustAnchor.from_certificate(cert) for cert in certificates)
        return cls(anchors=anchors, source=source, version=version)

    @property
    def certificates(self) -> Tuple[x509.Certificate, ...]:
        return tuple(anchor.certificate for anchor in self.anchors)

    def __len__(self) -> int:
        return len(self.anchors)

    def __iter__(self):
        return iter(self.anchors)


def parse_pem_bundle(pem_text: str) -> List[x509.Certificate]:
    """
    Parse a concatenated PEM bundle one certificate at a time.

    A block that cryptography rejects is skipped and logged, so one bad root
    cannot take the whole bundle down. Deprecation warnings raised for
    lenient parses (e.g. a non-positive serial) are logged instead of being
    written to stderr.
    """
    certificates = []
    for index, block in enumerate(_PEM_CERTIFICATE_RE.findall(pem_text)):
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always", CryptographyDeprecationWarning)
            try:
                certificate = x509.load_pem_x509_certificate(block.encode("ascii"))
            except ValueError as e:
                logger.info(f"Skipping bundle entry #{index}: {e}")
                continue

        for warning in caught:
            logger.debug(f"Bundle entry #{index} ({certificate.subject.rfc4514_string()}): {warning.message}")
        certificates.append(certificate)

    return certificates


@lru_cache(maxsize=1)
def load_trust_anchors() -> TrustAnchorSet:
    """
    Load the Mozilla root bundle shipped with certifi.

    The bundle is installed with the program and versioned with the certifi
    release; it is parsed once per process.

    Returns:
        TrustAnchorSet with every root in the bundle
    """
    certificates = parse_pem_bundle(certifi.contents())
    anchors = TrustAnchorSet.from_certificates(
        certificates, source="certifi", version=certifi.__version__
    )
    logger.debug(f"Loaded {len(anchors)} trust anchors from certifi {certifi.__version__}")
    return anchors
