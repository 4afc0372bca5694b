"""Core data types and enums used across the check engine.

These types make check results explicit and consistent.
No magic strings floating around - every status and error kind has a defined meaning.
"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Dict, Any, Optional
from datetime import datetime


class ProductType(Enum):
    """Kind of monitored product - selects which stages and rules apply."""
    WEBSITE = "website"
    DOMAIN = "domain"
    SSL = "ssl"
    API = "api"


class ProductStatus(Enum):
    """Product-level status, written only from a reduced verdict."""
    ACTIVE = "active"
    WARNING = "warning"
    EXPIRED = "expired"


class CheckStatus(Enum):
    """Check-level status stored on each CheckResult."""
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class Severity(IntEnum):
    """Running severity of a check.

    Ordered: ACTIVE < WARNING < EXPIRED. A verdict only ever moves up.
    """
    ACTIVE = 0
    WARNING = 1
    EXPIRED = 2

    @property
    def product_status(self) -> ProductStatus:
        return _PRODUCT_STATUS[self]

    @property
    def check_status(self) -> CheckStatus:
        return _CHECK_STATUS[self]

    @classmethod
    def from_product_status(cls, status: ProductStatus) -> "Severity":
        for severity, mapped in _PRODUCT_STATUS.items():
            if mapped == status:
                return severity
        raise ValueError(f"Unknown product status: {status}")


_PRODUCT_STATUS = {
    Severity.ACTIVE: ProductStatus.ACTIVE,
    Severity.WARNING: ProductStatus.WARNING,
    Severity.EXPIRED: ProductStatus.EXPIRED,
}

_CHECK_STATUS = {
    Severity.ACTIVE: CheckStatus.SUCCESS,
    Severity.WARNING: CheckStatus.WARNING,
    Severity.EXPIRED: CheckStatus.ERROR,
}


class TransportErrorKind(Enum):
    """Closed set of network failure kinds.

    Produced once at the network boundary (HTTP probe, strict TLS handshake).
    Values double as the errorCode stored on the CheckResult.
    """
    TIMEOUT = "TIMEOUT"
    NAME_NOT_RESOLVED = "ENOTFOUND"
    CONNECTION_REFUSED = "ECONNREFUSED"
    CERT_EXPIRED = "CERT_HAS_EXPIRED"
    CERT_UNVERIFIED = "UNABLE_TO_VERIFY_LEAF_SIGNATURE"
    CERT_SIGNATURE_FAILURE = "CERT_SIGNATURE_FAILURE"
    TLS_ERROR = "TLS_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"


@dataclass
class ProbeResult:
    """Result from a probe (DNS, HTTP, TLS).

    Probes are lower-level than rules - they gather raw data.
    The verdict and rule stages then judge this data.
    """
    target: str
    probe_type: str  # 'dns', 'http', 'tls'
    success: bool
    data: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    error_kind: Optional[TransportErrorKind] = None
    duration_ms: float = 0.0
    started_at: Optional[datetime] = None
    timestamp: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for logging."""
        return {
            'target': self.target,
            'probe_type': self.probe_type,
            'success': self.success,
            'data': {k: v for k, v in self.data.items() if k != 'body'},
            'error': self.error,
            'error_kind': self.error_kind.value if self.error_kind else None,
            'duration_ms': round(self.duration_ms, 2),
            'timestamp': self.timestamp.isoformat() if self.timestamp else None
        }
