"""TLS probe - certificate details plus a strict chain-of-trust handshake.

Two independent sub-checks that always both run:
  1. A lenient handshake (no verification) to read the leaf certificate,
     so we can still report on self-signed or expired certs.
  2. A strict handshake with the default trust store, purely to find out
     whether a real client would accept the chain.
"""

import asyncio
import logging
import ssl
from datetime import datetime
from typing import Dict, Any, Optional

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.x509.oid import NameOID, SignatureAlgorithmOID

from expira.util.types import ProbeResult, TransportErrorKind
from expira.util.time import now_utc, duration_ms, days_until
from expira.checker.probes.errors import classify_network_error, error_details

logger = logging.getLogger(__name__)

# OpenSSL long names for the usual certificate signature algorithms
SIGNATURE_ALGORITHMS = {
    SignatureAlgorithmOID.RSA_WITH_SHA1: 'sha1WithRSAEncryption',
    SignatureAlgorithmOID.RSA_WITH_SHA256: 'sha256WithRSAEncryption',
    SignatureAlgorithmOID.RSA_WITH_SHA384: 'sha384WithRSAEncryption',
    SignatureAlgorithmOID.RSA_WITH_SHA512: 'sha512WithRSAEncryption',
    SignatureAlgorithmOID.RSASSA_PSS: 'rsassaPss',
    SignatureAlgorithmOID.ECDSA_WITH_SHA256: 'ecdsa-with-SHA256',
    SignatureAlgorithmOID.ECDSA_WITH_SHA384: 'ecdsa-with-SHA384',
    SignatureAlgorithmOID.ECDSA_WITH_SHA512: 'ecdsa-with-SHA512',
    SignatureAlgorithmOID.ED25519: 'ED25519',
    SignatureAlgorithmOID.ED448: 'ED448',
}


def _name_summary(name: x509.Name) -> str:
    """CN if present, else O, else the full RFC 4514 string."""
    for oid in (NameOID.COMMON_NAME, NameOID.ORGANIZATION_NAME):
        attrs = name.get_attributes_for_oid(oid)
        if attrs:
            return str(attrs[0].value)
    return name.rfc4514_string()


def signature_algorithm(cert: x509.Certificate) -> str:
    """Name of the signature algorithm, or its dotted OID when unknown."""
    oid = cert.signature_algorithm_oid
    return SIGNATURE_ALGORITHMS.get(oid, oid.dotted_string)


def parse_certificate(der: bytes, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Extract the fields we report from a DER-encoded certificate."""
    cert = x509.load_der_x509_certificate(der)
    not_after = cert.not_valid_after_utc
    return {
        'issuer': _name_summary(cert.issuer),
        'subject': _name_summary(cert.subject),
        'valid_from': cert.not_valid_before_utc.isoformat(),
        'valid_to': not_after.isoformat(),
        'serial_number': format(cert.serial_number, 'X'),
        'fingerprint': cert.fingerprint(hashes.SHA256()).hex(':').upper(),
        'algorithm': signature_algorithm(cert),
        'days_until_expiry': days_until(not_after, now),
    }


class TLSProbe:
    """Async TLS inspection for a single host."""

    def __init__(self, timeout: float = 10.0):
        """Initialize TLS probe with handshake timeout."""
        self.timeout = timeout

    async def _handshake(self, hostname: str, port: int, context: ssl.SSLContext) -> Optional[bytes]:
        """Open a TLS connection and return the peer certificate as DER."""
        reader, writer = await asyncio.wait_for(
            asyncio.open_connection(hostname, port, ssl=context, server_hostname=hostname),
            timeout=self.timeout
        )
        try:
            ssl_obj = writer.get_extra_info('ssl_object')
            return ssl_obj.getpeercert(binary_form=True) if ssl_obj else None
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except (ssl.SSLError, OSError):
                pass

    async def fetch_certificate(self, hostname: str, port: int = 443,
                                now: Optional[datetime] = None) -> Dict[str, Any]:
        """Lenient handshake: read the certificate whatever its state.

        Returns {'cert': {...}} or {'cert': None, 'cert_error': '...'}.
        """
        context = ssl.create_default_context()
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE

        try:
            der = await self._handshake(hostname, port, context)
        except asyncio.TimeoutError:
            logger.debug(f"TLS certificate fetch timeout for {hostname}:{port}")
            return {'cert': None, 'cert_error': "TLS timeout"}
        except (ssl.SSLError, OSError) as e:
            logger.debug(f"TLS certificate fetch failed for {hostname}:{port}: {e}")
            return {'cert': None, 'cert_error': f"TLS error: {e}"}

        if not der:
            return {'cert': None, 'cert_error': "No peer certificate"}

        try:
            return {'cert': parse_certificate(der, now)}
        except ValueError as e:
            logger.warning(f"Could not parse certificate for {hostname}:{port}: {e}")
            return {'cert': None, 'cert_error': f"Certificate parse error: {e}"}

    async def strict_handshake(self, hostname: str, port: int = 443) -> Dict[str, Any]:
        """Verified handshake: does the default trust store accept this chain?

        Returns {'verified': True} or {'verified': False, 'error_kind', 'error', 'error_details'}.
        """
        context = ssl.create_default_context()
        try:
            await self._handshake(hostname, port, context)
            return {'verified': True}
        except asyncio.TimeoutError as e:
            logger.debug(f"Strict TLS handshake timeout for {hostname}:{port}")
            failure, kind = e, TransportErrorKind.TIMEOUT
        except (ssl.SSLError, OSError) as e:
            failure, kind = e, classify_network_error(e)
            logger.debug(f"Strict TLS handshake failed for {hostname}:{port}: {kind.value} {e}")
        return {
            'verified': False,
            'error_kind': kind,
            'error': str(failure) or type(failure).__name__,
            'error_details': error_details(failure, kind, hostname=hostname),
        }

    async def inspect(self, hostname: str, port: int = 443,
                      now: Optional[datetime] = None) -> ProbeResult:
        """Run both sub-checks concurrently; neither short-circuits the other.

        Returns ProbeResult with:
          - success=True only if a certificate was read and the chain verified
          - data={'cert': {...}|None, 'cert_error'?, 'strict': {...}}
          - error_kind from the strict handshake, if it failed
        """
        start = now_utc()

        cert_data, strict = await asyncio.gather(
            self.fetch_certificate(hostname, port, now),
            self.strict_handshake(hostname, port)
        )

        data = dict(cert_data)
        data['strict'] = strict
        success = cert_data.get('cert') is not None and strict['verified']

        return ProbeResult(
            target=f"{hostname}:{port}",
            probe_type='tls',
            success=success,
            data=data,
            error=None if strict['verified'] else strict['error'],
            error_kind=strict.get('error_kind'),
            duration_ms=duration_ms(start),
            started_at=start,
            timestamp=now_utc()
        )
