"""
Report rendering for inspection results.
"""
import json
import sys
from typing import List, Optional, Sequence, TextIO

from ..models.inspection import (
    CertificateChain, CertificateRecord, ConnectionTarget, DecodeResult, InspectionResult
)
from ..security.errors import InspectionError, MalformedCertificate

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S UTC"


class ReportService:
    """Writes the textual or JSON report for one or more inspections."""

    def __init__(self, stream: Optional[TextIO] = None, verbose: bool = False,
                 show_trust: bool = False, error_stream: Optional[TextIO] = None):
        self.stream = stream if stream is not None else sys.stdout
        self.error_stream = error_stream
        self.verbose = verbose
        self.show_trust = show_trust

    def _write(self, line: str = "") -> None:
        self.stream.write(line + "\n")
        self.stream.flush()

    def separator(self) -> None:
        self._write()

    def render_header(self, target: ConnectionTarget) -> None:
        """Print where we dial and what we assert, before any network I/O."""
        self._write(f"Targeting: {target.format_dial_address()}")
        self._write(f"SNI Host:  {target.identity_name}")

    def render_tcp_connected(self, peer: str) -> None:
        """Printed between the dial and the handshake."""
        self._write(f"TCP Connection established to {peer}")

    def render_session(self, chain: CertificateChain) -> None:
        session = chain.session
        details = ", ".join(part for part in (session.tls_version, session.cipher) if part)
        peer = session.peer_address or "unknown peer"
        self._write(f"Connected:  {peer} ({details})" if details else f"Connected:  {peer}")
        if self.show_trust or not chain.trust.trusted:
            self._write(f"Trust:      {chain.trust.describe()}")

    def format_record(self, record: CertificateRecord) -> List[str]:
        algorithm = record.public_key_algorithm
        if record.public_key_algorithm_name:
            algorithm = f"{algorithm} ({record.public_key_algorithm_name})"

        lines = [
            f"[{record.label}] {record.subject}",
            f"   Issuer:    {record.issuer}",
            f"   Valid from: {record.valid_from.strftime(TIMESTAMP_FORMAT)}",
            f"   Valid to:   {record.valid_to.strftime(TIMESTAMP_FORMAT)}",
            f"   Serial:    {record.serial}",
            f"   Algorithm: {algorithm}",
        ]
        if self.verbose:
            lines.append(f"   Signature: {record.signature_algorithm}")
            lines.append(f"   SHA-256:   {record.fingerprint_sha256}")
            if record.subject_alt_names:
                lines.append(f"   SANs:      {', '.join(record.subject_alt_names)}")
        return lines

    @staticmethod
    def format_malformed(error: MalformedCertificate) -> str:
        return f"[Malformed #{error.index}] {error.reason or 'not a valid DER certificate'}"

    def render_decoded(self, decoded: DecodeResult) -> None:
        """Print records and per-entry errors interleaved in chain order."""
        entries = [(record.index, self.format_record(record)) for record in decoded.records]
        entries += [(error.index, [self.format_malformed(error)]) for error in decoded.errors]
        for _, lines in sorted(entries, key=lambda entry: entry[0]):
            for line in lines:
                self._write(line)

    def render_error(self, error: InspectionError) -> None:
        """Single-line diagnostic naming the failed stage."""
        out = self.error_stream if self.error_stream is not None else sys.stderr
        out.write(f"Error: {error.diagnostic()}\n")
        out.flush()

    def render_result(self, result: InspectionResult, include_header: bool = True) -> None:
        """Print everything known about one inspection, in pipeline order."""
        if include_header and result.target is not None:
            self.render_header(result.target)
        if result.chain is not None:
            self.render_session(result.chain)
        if result.decoded is not None:
            self.render_decoded(result.decoded)
        if result.error is not None:
            self.render_error(result.error)

    def render_json(self, results: Sequence[InspectionResult]) -> None:
        self._write(json.dumps([result.to_dict() for result in results], indent=2, default=str))
