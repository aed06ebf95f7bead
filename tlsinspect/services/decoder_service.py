"""
Certificate field decoder: turns raw DER chain entries into display records.
"""
import logging
from typing import Iterable, Optional, Tuple

from cryptography import x509
from cryptography.hazmat.primitives import hashes

from ..models.inspection import INTERMEDIATE, LEAF, CertificateRecord, DecodeResult
from ..security.errors import MalformedCertificate

logger = logging.getLogger(__name__)

# Errors cryptography raises for input it cannot decode.
_DECODE_ERRORS = (ValueError, x509.DuplicateExtension, x509.UnsupportedGeneralNameType)


def format_serial(serial_number: int) -> str:
    """
    Render a serial as the colon-separated hex of its DER INTEGER content.

    Leading zero octets that DER requires for positive values with the high
    bit set are kept, so the output matches the bytes on the wire.
    """
    if serial_number >= 0:
        length = (serial_number.bit_length() + 8) // 8
    else:
        length = ((-serial_number - 1).bit_length() + 8) // 8
    raw = serial_number.to_bytes(length, 'big', signed=True)
    return ":".join(f"{octet:02x}" for octet in raw)


# Display names for the key and signature algorithms seen on the public web.
_ALGORITHM_NAMES = {
    "1.2.840.113549.1.1.1": "rsaEncryption",
    "1.2.840.113549.1.1.10": "RSASSA-PSS",
    "1.2.840.10045.2.1": "ecPublicKey",
    "1.2.840.10040.4.1": "dsaEncryption",
    "1.3.101.110": "X25519",
    "1.3.101.111": "X448",
    "1.3.101.112": "Ed25519",
    "1.3.101.113": "Ed448",
    "1.2.840.113549.1.1.4": "md5WithRSAEncryption",
    "1.2.840.113549.1.1.5": "sha1WithRSAEncryption",
    "1.2.840.113549.1.1.14": "sha224WithRSAEncryption",
    "1.2.840.113549.1.1.11": "sha256WithRSAEncryption",
    "1.2.840.113549.1.1.12": "sha384WithRSAEncryption",
    "1.2.840.113549.1.1.13": "sha512WithRSAEncryption",
    "1.2.840.10045.4.1": "ecdsa-with-SHA1",
    "1.2.840.10045.4.3.1": "ecdsa-with-SHA224",
    "1.2.840.10045.4.3.2": "ecdsa-with-SHA256",
    "1.2.840.10045.4.3.3": "ecdsa-with-SHA384",
    "1.2.840.10045.4.3.4": "ecdsa-with-SHA512",
    "1.2.840.10040.4.3": "dsa-with-sha1",
    "2.16.840.1.101.3.4.3.2": "dsa-with-sha256",
}


def _oid_name(oid: x509.ObjectIdentifier) -> Optional[str]:
    return _ALGORITHM_NAMES.get(oid.dotted_string)


def _subject_alt_names(certificate: x509.Certificate) -> Tuple[str, ...]:
    try:
        extension = certificate.extensions.get_extension_for_class(x509.SubjectAlternativeName)
    except x509.ExtensionNotFound:
        return ()

    names = []
    for name in extension.value:
        if isinstance(name, x509.DNSName):
            names.append(f"DNS:{name.value}")
        elif isinstance(name, x509.IPAddress):
            names.append(f"IP:{name.value}")
        elif isinstance(name, x509.RFC822Name):
            names.append(f"email:{name.value}")
        elif isinstance(name, x509.UniformResourceIdentifier):
            names.append(f"URI:{name.value}")
    return tuple(names)


def decode_certificate(index: int, der: bytes) -> CertificateRecord:
    """
    Decode one DER certificate.

    Raises:
        MalformedCertificate: If the bytes are not a well-formed certificate
    """
    try:
        certificate = x509.load_der_x509_certificate(der)
        algorithm_oid = certificate.public_key_algorithm_oid
        return CertificateRecord(
            index=index,
            label=LEAF if index == 0 else INTERMEDIATE,
            subject=certificate.subject.rfc4514_string(),
            issuer=certificate.issuer.rfc4514_string(),
            valid_from=certificate.not_valid_before_utc,
            valid_to=certificate.not_valid_after_utc,
            serial=format_serial(certificate.serial_number),
            public_key_algorithm=algorithm_oid.dotted_string,
            public_key_algorithm_name=_oid_name(algorithm_oid),
            signature_algorithm=(
                _oid_name(certificate.signature_algorithm_oid)
                or certificate.signature_algorithm_oid.dotted_string
            ),
            fingerprint_sha256=certificate.fingerprint(hashes.SHA256()).hex(":"),
            subject_alt_names=_subject_alt_names(certificate)
        )
    except _DECODE_ERRORS as e:
        raise MalformedCertificate(index, str(e)) from e


def decode(chain: Iterable[bytes]) -> DecodeResult:
    """
    Decode every entry of a chain, in order.

    A malformed entry is recorded as an error and decoding carries on with
    the next one. The input is never modified.

    Args:
        chain: CertificateChain or any sequence of DER byte strings

    Returns:
        DecodeResult with one record per decodable entry and one
        MalformedCertificate per entry that is not
    """
    result = DecodeResult()
    for index, der in enumerate(chain):
        try:
            result.records.append(decode_certificate(index, der))
        except MalformedCertificate as e:
            logger.info(f"Skipping malformed chain entry: {e}")
            result.errors.append(e)
    return result
