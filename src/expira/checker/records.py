"""Records read and produced by a product check.

Product is owned by the persistence layer; the engine only reads it.
CheckResult is created once per check and never mutated afterwards.
Each structured record is Optional on the CheckResult: None means the
stage that produces it did not run or found nothing, which is a valid state.
"""

import re
from dataclasses import dataclass, field, fields, asdict
from datetime import datetime
from typing import Dict, Any, List, Optional

from expira.util.types import ProductType, ProductStatus, CheckStatus


def _compact(data: Dict[str, Any]) -> Dict[str, Any]:
    """Drop None values so stored JSON only carries collected fields."""
    return {k: v for k, v in data.items() if v is not None}


def _snake(key: str) -> str:
    return re.sub(r"(?<!^)([A-Z])", r"_\1", key).lower()


def record_from_dict(cls, data: Optional[Dict[str, Any]]):
    """Rebuild a record from its camelCase dict form.

    Unknown keys (e.g. derived values like totalTime) are ignored.
    """
    if data is None:
        return None
    if hasattr(cls, 'from_dict'):
        return cls.from_dict(data)
    names = {f.name for f in fields(cls)}
    return cls(**{_snake(k): v for k, v in data.items() if _snake(k) in names})


@dataclass
class Product:
    """A user-registered monitored target."""
    id: str
    user_id: str
    name: str
    url: str
    type: ProductType
    custom_fields: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    expires_at: Optional[datetime] = None
    status: ProductStatus = ProductStatus.ACTIVE
    last_checked: Optional[datetime] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'user_id': self.user_id,
            'name': self.name,
            'url': self.url,
            'type': self.type.value,
            'custom_fields': self.custom_fields,
            'expires_at': self.expires_at.isoformat() if self.expires_at else None,
            'status': self.status.value,
            'last_checked': self.last_checked.isoformat() if self.last_checked else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


@dataclass(frozen=True)
class MxRecord:
    exchange: str
    priority: int


@dataclass(frozen=True)
class DnsInfo:
    ipv4: List[str] = field(default_factory=list)
    ipv6: List[str] = field(default_factory=list)
    mx: List[MxRecord] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DnsInfo":
        return cls(
            ipv4=list(data.get('ipv4', [])),
            ipv6=list(data.get('ipv6', [])),
            mx=[MxRecord(m['exchange'], int(m['priority'])) for m in data.get('mx', [])],
            errors=dict(data.get('errors', {})),
        )


@dataclass(frozen=True)
class SslInfo:
    issuer: Optional[str] = None
    subject: Optional[str] = None
    valid_from: Optional[str] = None
    valid_to: Optional[str] = None
    serial_number: Optional[str] = None
    fingerprint: Optional[str] = None
    algorithm: Optional[str] = None
    days_until_expiry: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return _compact({
            'issuer': self.issuer,
            'subject': self.subject,
            'validFrom': self.valid_from,
            'validTo': self.valid_to,
            'serialNumber': self.serial_number,
            'fingerprint': self.fingerprint,
            'algorithm': self.algorithm,
            'daysUntilExpiry': self.days_until_expiry,
        })


@dataclass(frozen=True)
class ContentInfo:
    title: Optional[str] = None
    meta_description: Optional[str] = None
    has_expected_text: Optional[bool] = None
    content_type: Optional[str] = None
    content_length: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return _compact({
            'title': self.title,
            'metaDescription': self.meta_description,
            'hasExpectedText': self.has_expected_text,
            'contentType': self.content_type,
            'contentLength': self.content_length,
        })


@dataclass(frozen=True)
class ApiResponse:
    type: str  # 'json' or 'xml'
    length: int
    raw: str = ""
    keys: Optional[List[str]] = None
    root_element: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _compact({
            'type': self.type,
            'length': self.length,
            'raw': self.raw,
            'keys': self.keys,
            'rootElement': self.root_element,
        })


@dataclass(frozen=True)
class PerformanceMetrics:
    dns_time: float = 0.0
    connect_time: float = 0.0
    ssl_time: float = 0.0
    transfer_time: float = 0.0

    @property
    def total_time(self) -> float:
        return self.dns_time + self.connect_time + self.ssl_time + self.transfer_time

    def to_dict(self) -> Dict[str, Any]:
        return {
            'dnsTime': self.dns_time,
            'connectTime': self.connect_time,
            'sslTime': self.ssl_time,
            'transferTime': self.transfer_time,
            'totalTime': self.total_time,
        }


@dataclass(frozen=True)
class NetworkInfo:
    ip_address: Optional[str] = None
    server: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _compact({'ipAddress': self.ip_address, 'server': self.server})


@dataclass(frozen=True)
class CheckResult:
    """Outcome of one check invocation against one product."""
    product_id: str
    status: CheckStatus
    message: str
    checked_at: datetime
    response_time: Optional[int] = None
    status_code: Optional[int] = None
    error_code: Optional[str] = None
    error_details: Optional[Dict[str, Any]] = None
    http_headers: Optional[Dict[str, str]] = None
    dns_info: Optional[DnsInfo] = None
    ssl_info: Optional[SslInfo] = None
    api_response: Optional[ApiResponse] = None
    content_info: Optional[ContentInfo] = None
    performance: Optional[PerformanceMetrics] = None
    network_info: Optional[NetworkInfo] = None
    id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for JSON output."""
        return {
            'id': self.id,
            'product_id': self.product_id,
            'status': self.status.value,
            'message': self.message,
            'response_time': self.response_time,
            'status_code': self.status_code,
            'error_code': self.error_code,
            'error_details': self.error_details,
            'http_headers': self.http_headers,
            'dns_info': self.dns_info.to_dict() if self.dns_info else None,
            'ssl_info': self.ssl_info.to_dict() if self.ssl_info else None,
            'api_response': self.api_response.to_dict() if self.api_response else None,
            'content_info': self.content_info.to_dict() if self.content_info else None,
            'performance': self.performance.to_dict() if self.performance else None,
            'network_info': self.network_info.to_dict() if self.network_info else None,
            'checked_at': self.checked_at.isoformat(),
        }
