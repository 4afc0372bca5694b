"""Network error classification.

Every exception that escapes an HTTP request or TLS handshake is mapped
here, once, to a TransportErrorKind. Nothing downstream looks at
exception types or message strings again.
"""

import asyncio
import errno
import socket
import ssl
from typing import Any, Dict, Optional

from expira.util.types import TransportErrorKind

# OpenSSL X509_V_ERR_* verify codes
X509_V_ERR_CERT_SIGNATURE_FAILURE = 7
X509_V_ERR_CERT_HAS_EXPIRED = 10
X509_V_ERR_UNABLE_TO_GET_ISSUER_CERT_LOCALLY = 20
X509_V_ERR_UNABLE_TO_VERIFY_LEAF_SIGNATURE = 21

_VERIFY_CODES = {
    X509_V_ERR_CERT_HAS_EXPIRED: TransportErrorKind.CERT_EXPIRED,
    X509_V_ERR_UNABLE_TO_GET_ISSUER_CERT_LOCALLY: TransportErrorKind.CERT_UNVERIFIED,
    X509_V_ERR_UNABLE_TO_VERIFY_LEAF_SIGNATURE: TransportErrorKind.CERT_UNVERIFIED,
    X509_V_ERR_CERT_SIGNATURE_FAILURE: TransportErrorKind.CERT_SIGNATURE_FAILURE,
}


def _classify_cert_error(error: ssl.SSLCertVerificationError) -> TransportErrorKind:
    kind = _VERIFY_CODES.get(getattr(error, 'verify_code', None))
    if kind:
        return kind
    text = f"{getattr(error, 'verify_message', '') or ''} {error}".lower()
    if "certificate has expired" in text:
        return TransportErrorKind.CERT_EXPIRED
    return TransportErrorKind.TLS_ERROR


def _root_error(exc: BaseException) -> BaseException:
    """Unwrap aiohttp connector errors to the underlying OS/SSL error."""
    cert_error = getattr(exc, 'certificate_error', None)
    if isinstance(cert_error, BaseException):
        return cert_error
    os_error = getattr(exc, 'os_error', None)
    if isinstance(os_error, BaseException):
        return os_error
    return exc


def classify_network_error(exc: BaseException) -> TransportErrorKind:
    """Map an exception from a network operation to its error kind."""
    if isinstance(exc, asyncio.TimeoutError):
        return TransportErrorKind.TIMEOUT

    root = _root_error(exc)

    if isinstance(root, asyncio.TimeoutError):
        return TransportErrorKind.TIMEOUT
    if isinstance(root, ssl.SSLCertVerificationError):
        return _classify_cert_error(root)
    if isinstance(root, ssl.SSLError):
        return TransportErrorKind.TLS_ERROR
    if isinstance(root, socket.gaierror):
        return TransportErrorKind.NAME_NOT_RESOLVED
    if isinstance(root, ConnectionRefusedError):
        return TransportErrorKind.CONNECTION_REFUSED
    if isinstance(root, OSError):
        if root.errno == errno.ECONNREFUSED or "connection refused" in str(root).lower():
            return TransportErrorKind.CONNECTION_REFUSED
    return TransportErrorKind.NETWORK_ERROR


def error_details(exc: BaseException, kind: TransportErrorKind, hostname: Optional[str] = None) -> Dict[str, Any]:
    """Small JSON-able description of a network failure."""
    details = {
        'name': type(exc).__name__,
        'code': kind.value,
        'message': str(exc) or type(exc).__name__,
    }
    if hostname:
        details['hostname'] = hostname
    return details
