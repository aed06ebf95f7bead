"""
Handshake service: dials a target, performs the TLS handshake and captures
the certificate chain presented by the peer.
"""
import logging
import select
import socket
import threading
import time
from typing import Callable, List, Optional, Tuple

from cryptography import x509
from OpenSSL import SSL, crypto

from ..models.config import VERIFICATION_MODES
from ..models.inspection import CertificateChain, ConnectionTarget, SessionInfo, TrustStatus
from ..security.errors import Cancelled, NetworkError, NoCertificates, TlsError
from ..security.identity import verify_identity
from ..security.trust_anchors import TrustAnchorSet

# Upper bound on a single select() wait so cancellation is noticed promptly.
POLL_INTERVAL_SECONDS = 0.1

# Common X509_V_ERR_* codes reported through the verify callback.
VERIFY_ERRORS = {
    2: "unable to get issuer certificate",
    7: "certificate signature failure",
    9: "certificate is not yet valid",
    10: "certificate has expired",
    18: "self-signed certificate",
    19: "self-signed certificate in certificate chain",
    20: "unable to get local issuer certificate",
    21: "unable to verify the first certificate",
    24: "invalid CA certificate",
    26: "unsupported certificate purpose",
}


class HandshakeService:
    """Performs one client handshake per call against an explicit trust anchor set."""

    def __init__(self, anchors: TrustAnchorSet, timeout: float = 10.0,
                 verification_mode: str = "strict"):
        """
        Initialize the handshake service.

        Args:
            anchors: Sole trust source for every handshake
            timeout: Seconds allowed for the dial and for the handshake
            verification_mode: "strict" fails untrusted peers, "report" records the
                verification outcome on the returned chain instead
        """
        if verification_mode not in VERIFICATION_MODES:
            raise ValueError(f"Unknown verification mode: {verification_mode}")
        if timeout <= 0:
            raise ValueError("timeout must be positive")

        self.anchors = anchors
        self.timeout = timeout
        self.verification_mode = verification_mode
        self.logger = logging.getLogger(__name__)

    @property
    def strict(self) -> bool:
        return self.verification_mode == "strict"

    def connect(self, target: ConnectionTarget,
                cancel_event: Optional[threading.Event] = None,
                on_connected: Optional[Callable[[str], None]] = None) -> CertificateChain:
        """
        Dial the target and return the chain the peer presented.

        Args:
            target: Resolved dial address and identity name
            cancel_event: Optional event; once set, the attempt is abandoned
            on_connected: Called with the peer address once TCP is up, before
                the handshake starts

        Returns:
            CertificateChain in the order the peer sent it

        Raises:
            NetworkError: If the dial fails or the handshake times out
            TlsError: If the handshake fails or, in strict mode, the chain is
                untrusted or does not match the identity
            NoCertificates: If the peer presented no certificates
            Cancelled: If cancel_event was set before the attempt completed
        """
        address = target.format_dial_address()
        self._check_cancelled(cancel_event, address)

        sock = self._dial(target, address)
        try:
            peer_address = self._format_peer(sock)
            if on_connected is not None:
                on_connected(peer_address or address)
            self._check_cancelled(cancel_event, address)

            # The handshake gets its own budget, separate from the dial.
            deadline = time.monotonic() + self.timeout
            connection, verify_errors = self._handshake(sock, target, address, deadline, cancel_event)

            certificates = self._read_chain(connection)
            trust = self._verify(target, certificates, verify_errors)
            session = SessionInfo(
                peer_address=peer_address,
                tls_version=connection.get_protocol_version_name(),
                cipher=connection.get_cipher_name()
            )

            self.logger.info(
                f"Handshake with {address} as {target.identity_name} complete: "
                f"{len(certificates)} certificate(s), {session.tls_version}"
            )
            return CertificateChain(certificates=tuple(certificates), session=session, trust=trust)
        finally:
            sock.close()

    def _dial(self, target: ConnectionTarget, address: str) -> socket.socket:
        """Open the TCP connection."""
        self.logger.info(f"Connecting to {address}")
        try:
            return socket.create_connection((target.socket_host, target.dial_port), timeout=self.timeout)
        except socket.gaierror as e:
            raise NetworkError(address, f"name resolution failed: {e.strerror or e}") from e
        except socket.timeout as e:
            raise NetworkError(address, "connection timed out") from e
        except OSError as e:
            raise NetworkError(address, e.strerror or str(e)) from e

    def _build_context(self, verify_errors: List[Tuple[int, int, str]]) -> SSL.Context:
        """Create a client context trusting only the configured anchors."""
        context = SSL.Context(SSL.TLS_CLIENT_METHOD)
        context.set_min_proto_version(SSL.TLS1_2_VERSION)

        store = context.get_cert_store()
        for certificate in self.anchors.certificates:
            store.add_cert(crypto.X509.from_cryptography(certificate))

        strict = self.strict

        def verify_callback(conn, cert, errnum, depth, ok):
            if not ok:
                verify_errors.append((errnum, depth, cert.to_cryptography().subject.rfc4514_string()))
            return bool(ok) if strict else True

        context.set_verify(SSL.VERIFY_PEER, verify_callback)
        return context

    def _handshake(self, sock: socket.socket, target: ConnectionTarget, address: str,
                   deadline: float, cancel_event: Optional[threading.Event]):
        """Drive the client handshake without blocking past the deadline."""
        verify_errors: List[Tuple[int, int, str]] = []
        connection = SSL.Connection(self._build_context(verify_errors), sock)

        # SNI carries DNS names only; IP literals are never sent.
        if not target.identity_is_ip:
            connection.set_tlsext_host_name(target.identity_name.rstrip(".").encode('ascii'))

        sock.setblocking(False)
        connection.set_connect_state()

        while True:
            self._check_cancelled(cancel_event, address)
            try:
                connection.do_handshake()
                return connection, verify_errors
            except SSL.WantReadError:
                wait_for_read = True
            except SSL.WantWriteError:
                wait_for_read = False
            except SSL.Error as e:
                reason = self._describe_failure(e, verify_errors)
                self.logger.info(f"Handshake with {address} failed: {reason}")
                raise TlsError(reason) from e

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise NetworkError(address, "timed out during TLS handshake")

            wait = min(remaining, POLL_INTERVAL_SECONDS)
            if wait_for_read:
                select.select([sock], [], [], wait)
            else:
                select.select([], [sock], [], wait)

    def _read_chain(self, connection: SSL.Connection) -> List[bytes]:
        """Return the peer's certificates as DER, exactly as presented."""
        peer_chain = connection.get_peer_cert_chain()
        if not peer_chain:
            raise NoCertificates()
        return [crypto.dump_certificate(crypto.FILETYPE_ASN1, cert) for cert in peer_chain]

    def _verify(self, target: ConnectionTarget, certificates: List[bytes],
                verify_errors: List[Tuple[int, int, str]]) -> TrustStatus:
        """
        Combine OpenSSL's chain verdict with the identity check on the leaf.

        Strict handshakes never get here with verify errors, the callback has
        already failed them. Only the leaf is parsed; later entries are left
        for the decoder to report.
        """
        if verify_errors:
            reason = f"certificate verify failed: {self._describe_verify_error(verify_errors[0])}"
            return TrustStatus(trusted=False, reason=reason)

        try:
            try:
                leaf = x509.load_der_x509_certificate(certificates[0])
            except ValueError as e:
                raise TlsError(f"leaf certificate could not be parsed: {e}") from e
            verify_identity(target.identity_name, leaf)
        except TlsError as e:
            if self.strict:
                self.logger.info(f"Rejecting chain for {target.identity_name}: {e.reason}")
                raise
            return TrustStatus(trusted=False, reason=e.reason)

        return TrustStatus(trusted=True)

    def _describe_failure(self, error: SSL.Error, verify_errors: List[Tuple[int, int, str]]) -> str:
        if verify_errors:
            return f"certificate verify failed: {self._describe_verify_error(verify_errors[0])}"
        if isinstance(error, SSL.SysCallError):
            return "connection closed by peer during handshake"
        # pyOpenSSL reports a list of (library, function, reason) tuples.
        queue = error.args[0] if error.args and isinstance(error.args[0], list) else []
        details = [str(entry[-1]) for entry in queue if isinstance(entry, tuple) and entry]
        if details:
            return "; ".join(details)
        return str(error) or type(error).__name__

    @staticmethod
    def _describe_verify_error(entry: Tuple[int, int, str]) -> str:
        errnum, depth, subject = entry
        message = VERIFY_ERRORS.get(errnum, f"verify error {errnum}")
        return f"{message} at depth {depth} [{subject}]"

    @staticmethod
    def _format_peer(sock: socket.socket) -> Optional[str]:
        try:
            peer = sock.getpeername()
        except OSError:
            return None
        host, port = peer[0], peer[1]
        return f"[{host}]:{port}" if ":" in host else f"{host}:{port}"

    @staticmethod
    def _check_cancelled(cancel_event: Optional[threading.Event], address: str) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise Cancelled(address)
