"""
Data models for a single inspection: target, chain, decoded records.
"""
import ipaddress
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple

from ..security.errors import InspectionError, MalformedCertificate, NoCertificates

LEAF = "Leaf"
INTERMEDIATE = "Intermediate"


@dataclass(frozen=True)
class ConnectionTarget:
    """Where to dial and which identity to assert, kept as two separate fields."""
    dial_address: Tuple[str, int]
    identity_name: str

    @property
    def dial_host(self) -> str:
        return self.dial_address[0]

    @property
    def dial_port(self) -> int:
        return self.dial_address[1]

    @property
    def is_override(self) -> bool:
        """True when the dial host differs from the asserted identity."""
        return self.dial_host != self.identity_name

    @property
    def identity_is_ip(self) -> bool:
        try:
            ipaddress.ip_address(self.identity_name)
        except ValueError:
            return False
        return True

    @property
    def socket_host(self) -> str:
        """Dial host without the brackets of a bracketed IPv6 literal."""
        host = self.dial_host
        if host.startswith("[") and host.endswith("]"):
            return host[1:-1]
        return host

    def format_dial_address(self) -> str:
        host = self.socket_host
        if ":" in host:
            host = f"[{host}]"
        return f"{host}:{self.dial_port}"


@dataclass(frozen=True)
class SessionInfo:
    """Details of the negotiated session."""
    peer_address: Optional[str] = None
    tls_version: Optional[str] = None
    cipher: Optional[str] = None


@dataclass(frozen=True)
class TrustStatus:
    """Outcome of verifying the presented chain against the trust anchors."""
    trusted: bool
    reason: Optional[str] = None

    def describe(self) -> str:
        if self.trusted:
            return "trusted"
        return f"NOT TRUSTED: {self.reason}" if self.reason else "NOT TRUSTED"


@dataclass(frozen=True)
class CertificateChain:
    """Raw DER certificates in the order the peer presented them (index 0 = leaf)."""
    certificates: Tuple[bytes, ...]
    session: SessionInfo = field(default_factory=SessionInfo)
    trust: TrustStatus = field(default_factory=lambda: TrustStatus(trusted=True))

    def __post_init__(self):
        certificates = tuple(bytes(cert) for cert in self.certificates)
        if not certificates:
            raise NoCertificates()
        object.__setattr__(self, 'certificates', certificates)

    def __len__(self) -> int:
        return len(self.certificates)

    def __iter__(self):
        return iter(self.certificates)

    def __getitem__(self, index):
        return self.certificates[index]

    @property
    def leaf(self) -> bytes:
        return self.certificates[0]

    @property
    def intermediates(self) -> Tuple[bytes, ...]:
        return self.certificates[1:]


@dataclass(frozen=True)
class CertificateRecord:
    """Display-ready view of one chain entry."""
    index: int
    label: str
    subject: str
    issuer: str
    valid_from: datetime
    valid_to: datetime
    serial: str
    public_key_algorithm: str
    public_key_algorithm_name: Optional[str] = None
    signature_algorithm: Optional[str] = None
    fingerprint_sha256: Optional[str] = None
    subject_alt_names: Tuple[str, ...] = ()

    @property
    def is_leaf(self) -> bool:
        return self.label == LEAF

    def to_dict(self) -> dict:
        return {
            'index': self.index,
            'label': self.label,
            'subject': self.subject,
            'issuer': self.issuer,
            'valid_from': self.valid_from.isoformat(),
            'valid_to': self.valid_to.isoformat(),
            'serial': self.serial,
            'public_key_algorithm': self.public_key_algorithm,
            'public_key_algorithm_name': self.public_key_algorithm_name,
            'signature_algorithm': self.signature_algorithm,
            'fingerprint_sha256': self.fingerprint_sha256,
            'subject_alt_names': list(self.subject_alt_names),
        }


@dataclass
class DecodeResult:
    """Records for every decodable entry plus one error per malformed entry."""
    records: List[CertificateRecord] = field(default_factory=list)
    errors: List[MalformedCertificate] = field(default_factory=list)

    def has_errors(self) -> bool:
        return len(self.errors) > 0

    def __len__(self) -> int:
        return len(self.records) + len(self.errors)


@dataclass
class InspectionResult:
    """Outcome of one resolve -> connect -> decode pipeline."""
    identity_input: str
    target: Optional[ConnectionTarget] = None
    chain: Optional[CertificateChain] = None
    decoded: Optional[DecodeResult] = None
    error: Optional[InspectionError] = None

    @property
    def success(self) -> bool:
        if self.error is not None or self.chain is None:
            return False
        return self.chain.trust.trusted

    @property
    def exit_code(self) -> int:
        return 0 if self.success else 1

    def to_dict(self) -> dict:
        data = {
            'identity': self.identity_input,
            'dial_address': self.target.format_dial_address() if self.target else None,
            'identity_name': self.target.identity_name if self.target else None,
            'success': self.success,
        }
        if self.chain is not None:
            data['session'] = {
                'peer_address': self.chain.session.peer_address,
                'tls_version': self.chain.session.tls_version,
                'cipher': self.chain.session.cipher,
            }
            data['trust'] = {
                'trusted': self.chain.trust.trusted,
                'reason': self.chain.trust.reason,
            }
        if self.decoded is not None:
            data['certificates'] = [record.to_dict() for record in self.decoded.records]
            data['malformed'] = [
                {'index': error.index, 'reason': error.reason}
                for error in self.decoded.errors
            ]
        if self.error is not None:
            data['error'] = {
                'type': type(self.error).__name__,
                'stage': self.error.stage,
                'message': self.error.message,
            }
        return data
