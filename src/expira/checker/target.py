"""Target normalization - turn a raw product URL into something we can probe.

This is the one fatal precondition of a check: if we can't get a
hostname out of the URL, no other stage has anything to work with.
"""

import ipaddress
import logging
import re
from dataclasses import dataclass
from urllib.parse import urlsplit, urlunsplit

logger = logging.getLogger(__name__)

SUPPORTED_SCHEMES = ('http', 'https')
DEFAULT_PORTS = {'http': 80, 'https': 443}

_HOSTNAME_RE = re.compile(r"^(?=.{1,253}$)[a-z0-9_](?:[a-z0-9_-]{0,62})(?:\.[a-z0-9_](?:[a-z0-9_-]{0,62}))*\.?$")
_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")


class InvalidTargetError(ValueError):
    """Raised when a product URL has no usable hostname."""


@dataclass(frozen=True)
class Target:
    url: str
    scheme: str
    hostname: str
    port: int
    path: str

    @property
    def is_https(self) -> bool:
        return self.scheme == 'https'


def _to_ascii(hostname: str) -> str:
    """Punycode internationalized names; ASCII names pass through."""
    if hostname.isascii():
        return hostname
    try:
        return hostname.encode('idna').decode('ascii')
    except UnicodeError:
        logger.debug(f"Punycode conversion failed for {hostname}")
        return hostname


def _valid_host(hostname: str) -> bool:
    try:
        ipaddress.ip_address(hostname)
        return True
    except ValueError:
        return bool(_HOSTNAME_RE.match(hostname))


def normalize_target(raw_url: str) -> Target:
    """Normalize a raw URL or bare hostname into a Target.

    Bare hosts get an https:// prefix. Only http and https are accepted.
    Raises InvalidTargetError for anything we can't parse a hostname from.
    """
    candidate = (raw_url or "").strip()
    if not candidate:
        raise InvalidTargetError("Invalid URL: empty")

    if not _SCHEME_RE.match(candidate):
        candidate = f"https://{candidate}"

    try:
        parts = urlsplit(candidate)
        port = parts.port
    except ValueError as e:
        raise InvalidTargetError(f"Invalid URL: {raw_url} ({e})") from e

    scheme = parts.scheme.lower()
    if scheme not in SUPPORTED_SCHEMES:
        raise InvalidTargetError(f"Invalid URL: unsupported scheme '{parts.scheme}'")

    raw_host = parts.hostname or ""
    hostname = _to_ascii(raw_host).lower()
    if not hostname or not _valid_host(hostname):
        raise InvalidTargetError(f"Invalid URL: {raw_url}")

    netloc = parts.netloc
    if not raw_host.isascii():
        userinfo = netloc.rpartition('@')[0]
        netloc = hostname + (f":{port}" if port else "")
        if userinfo:
            netloc = f"{userinfo}@{netloc}"

    path = parts.path or "/"
    url = urlunsplit((scheme, netloc, path, parts.query, ""))

    return Target(
        url=url,
        scheme=scheme,
        hostname=hostname,
        port=port or DEFAULT_PORTS[scheme],
        path=path,
    )
