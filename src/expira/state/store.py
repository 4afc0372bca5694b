"""SQLite-backed persistence for products, checks and notifications.

ARCHITECTURE:
- Single SQLite DB (EXPIRA_DB_PATH, default state/expira.db)
- WAL mode so batch checks can read while one writer is active
- Tables: products, checks, notifications
- checks is append-only: a row is inserted once per check and never updated
- Structured check records are stored as JSON columns (camelCase keys)
"""

import json
import logging
import sqlite3
import uuid
from contextlib import contextmanager
from pathlib import Path
from datetime import datetime
from typing import Dict, Any, List, Optional

from expira.util.types import ProductType, ProductStatus, CheckStatus
from expira.util.time import now_utc, parse_timestamp
from expira.checker.records import (
    Product, CheckResult, DnsInfo, SslInfo, ApiResponse, ContentInfo,
    PerformanceMetrics, NetworkInfo, record_from_dict,
)

logger = logging.getLogger(__name__)

# JSON column -> record type
_RECORD_COLUMNS = {
    'dns_info': DnsInfo,
    'ssl_info': SslInfo,
    'api_response': ApiResponse,
    'content_info': ContentInfo,
    'performance': PerformanceMetrics,
    'network_info': NetworkInfo,
}


class ProductNotFoundError(LookupError):
    """No product with the requested id."""

    def __init__(self, product_id: str):
        super().__init__(f"Product not found: {product_id}")
        self.product_id = product_id


def _iso(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt else None


def _dumps(value: Any) -> Optional[str]:
    return json.dumps(value) if value is not None else None


def _loads(value: Optional[str]) -> Any:
    return json.loads(value) if value else None


class ProductStore:
    """Persistence collaborator for the check engine.

    Every public method opens its own connection, so a store can be
    shared between concurrent checks without extra locking.
    """

    def __init__(self, db_path: Path):
        """Initialize store, creating the database and schema if needed."""
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()
        logger.debug(f"Product store initialized: {self.db_path}")

    @contextmanager
    def _get_conn(self, timeout: int = 10):
        """Get a configured database connection, always closed on exit."""
        conn = sqlite3.connect(str(self.db_path), timeout=timeout)
        conn.row_factory = sqlite3.Row

        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        conn.execute(f"PRAGMA busy_timeout={timeout * 1000}")

        try:
            yield conn
        finally:
            conn.close()

    def _init_db(self):
        """Initialize database schema if not exists."""
        with self._get_conn() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS products (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    url TEXT NOT NULL,
                    type TEXT NOT NULL,
                    custom_fields TEXT,
                    expires_at TEXT,
                    status TEXT NOT NULL DEFAULT 'active',
                    last_checked TEXT,
                    created_at TEXT NOT NULL
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS checks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    product_id TEXT NOT NULL,
                    status TEXT NOT NULL,
                    message TEXT NOT NULL,
                    response_time INTEGER,
                    status_code INTEGER,
                    error_code TEXT,
                    error_details TEXT,
                    http_headers TEXT,
                    dns_info TEXT,
                    ssl_info TEXT,
                    api_response TEXT,
                    content_info TEXT,
                    performance TEXT,
                    network_info TEXT,
                    checked_at TEXT NOT NULL,
                    FOREIGN KEY (product_id) REFERENCES products(id)
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_checks_product ON checks(product_id, checked_at)")

            conn.execute("""
                CREATE TABLE IF NOT EXISTS notifications (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    channel TEXT NOT NULL,
                    title TEXT NOT NULL,
                    message TEXT NOT NULL,
                    read INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_notifications_user ON notifications(user_id, created_at)")

            conn.commit()

    # ===== PRODUCTS =====

    def add_product(self, user_id: str, name: str, url: str, product_type: ProductType,
                    custom_fields: Optional[Dict[str, Dict[str, Any]]] = None,
                    expires_at: Optional[datetime] = None,
                    product_id: Optional[str] = None) -> Product:
        """Register a new product. Status starts as active."""
        product = Product(
            id=product_id or uuid.uuid4().hex,
            user_id=user_id,
            name=name,
            url=url,
            type=product_type,
            custom_fields=custom_fields or {},
            expires_at=expires_at,
            status=ProductStatus.ACTIVE,
            created_at=now_utc(),
        )

        with self._get_conn() as conn:
            conn.execute("""
                INSERT INTO products (id, user_id, name, url, type, custom_fields,
                                      expires_at, status, last_checked, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (product.id, product.user_id, product.name, product.url, product.type.value,
                  json.dumps(product.custom_fields), _iso(product.expires_at),
                  product.status.value, None, _iso(product.created_at)))
            conn.commit()

        logger.info(f"Added product {product.id} ({product.type.value}): {product.url}")
        return product

    def get_product(self, product_id: str) -> Product:
        """Load one product. Raises ProductNotFoundError if unknown."""
        with self._get_conn() as conn:
            row = conn.execute("SELECT * FROM products WHERE id = ?", (product_id,)).fetchone()
        if row is None:
            raise ProductNotFoundError(product_id)
        return self._row_to_product(row)

    def list_products(self, user_id: Optional[str] = None) -> List[Product]:
        """All products, oldest first, optionally for one user."""
        with self._get_conn() as conn:
            if user_id:
                cursor = conn.execute(
                    "SELECT * FROM products WHERE user_id = ? ORDER BY created_at", (user_id,))
            else:
                cursor = conn.execute("SELECT * FROM products ORDER BY created_at")
            return [self._row_to_product(row) for row in cursor.fetchall()]

    def products_with_expiry(self) -> List[Product]:
        """Products with an expiry date that are not already expired."""
        with self._get_conn() as conn:
            cursor = conn.execute("""
                SELECT * FROM products
                WHERE expires_at IS NOT NULL
                  AND status IN ('active', 'warning')
                ORDER BY expires_at
            """)
            return [self._row_to_product(row) for row in cursor.fetchall()]

    def update_product_status(self, product_id: str, status: ProductStatus,
                              last_checked: Optional[datetime] = None):
        """Write a verdict-derived status (and last_checked, for checks)."""
        with self._get_conn() as conn:
            if last_checked is not None:
                cursor = conn.execute(
                    "UPDATE products SET status = ?, last_checked = ? WHERE id = ?",
                    (status.value, _iso(last_checked), product_id))
            else:
                cursor = conn.execute(
                    "UPDATE products SET status = ? WHERE id = ?",
                    (status.value, product_id))
            conn.commit()
        if cursor.rowcount == 0:
            raise ProductNotFoundError(product_id)

    def _row_to_product(self, row: sqlite3.Row) -> Product:
        return Product(
            id=row['id'],
            user_id=row['user_id'],
            name=row['name'],
            url=row['url'],
            type=ProductType(row['type']),
            custom_fields=_loads(row['custom_fields']) or {},
            expires_at=parse_timestamp(row['expires_at']),
            status=ProductStatus(row['status']),
            last_checked=parse_timestamp(row['last_checked']),
            created_at=parse_timestamp(row['created_at']),
        )

    # ===== CHECKS =====

    def insert_check(self, check: CheckResult) -> CheckResult:
        """Append one check row. Returns the check with its new id."""
        records = {column: getattr(check, column) for column in _RECORD_COLUMNS}

        with self._get_conn() as conn:
            cursor = conn.execute("""
                INSERT INTO checks (product_id, status, message, response_time, status_code,
                                    error_code, error_details, http_headers, dns_info, ssl_info,
                                    api_response, content_info, performance, network_info, checked_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (check.product_id, check.status.value, check.message, check.response_time,
                  check.status_code, check.error_code, _dumps(check.error_details),
                  _dumps(check.http_headers),
                  *[_dumps(records[c].to_dict()) if records[c] else None for c in _RECORD_COLUMNS],
                  _iso(check.checked_at)))
            conn.commit()
            check_id = cursor.lastrowid

        return self._with_id(check, check_id)

    def list_checks(self, product_id: str, limit: int = 50) -> List[CheckResult]:
        """Most recent checks for a product, newest first."""
        with self._get_conn() as conn:
            cursor = conn.execute("""
                SELECT * FROM checks
                WHERE product_id = ?
                ORDER BY checked_at DESC, id DESC
                LIMIT ?
            """, (product_id, limit))
            return [self._row_to_check(row) for row in cursor.fetchall()]

    def _with_id(self, check: CheckResult, check_id: int) -> CheckResult:
        values = {name: getattr(check, name) for name in check.__dataclass_fields__}
        values['id'] = check_id
        return CheckResult(**values)

    def _row_to_check(self, row: sqlite3.Row) -> CheckResult:
        records = {}
        for column, record_type in _RECORD_COLUMNS.items():
            try:
                records[column] = record_from_dict(record_type, _loads(row[column]))
            except (TypeError, ValueError, KeyError) as e:
                logger.warning(f"Failed to parse {column} for check {row['id']}: {e}")
                records[column] = None

        return CheckResult(
            id=row['id'],
            product_id=row['product_id'],
            status=CheckStatus(row['status']),
            message=row['message'],
            response_time=row['response_time'],
            status_code=row['status_code'],
            error_code=row['error_code'],
            error_details=_loads(row['error_details']),
            http_headers=_loads(row['http_headers']),
            checked_at=parse_timestamp(row['checked_at']),
            **records,
        )

    # ===== NOTIFICATIONS =====

    def add_notification(self, user_id: str, channel: str, title: str, message: str) -> int:
        """Record one dispatched alert in the outbox."""
        with self._get_conn() as conn:
            cursor = conn.execute("""
                INSERT INTO notifications (user_id, channel, title, message, created_at)
                VALUES (?, ?, ?, ?, ?)
            """, (user_id, channel, title, message, _iso(now_utc())))
            conn.commit()
            return cursor.lastrowid

    def list_notifications(self, user_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Outbox rows in insertion order, optionally for one user."""
        with self._get_conn() as conn:
            if user_id:
                cursor = conn.execute(
                    "SELECT * FROM notifications WHERE user_id = ? ORDER BY id", (user_id,))
            else:
                cursor = conn.execute("SELECT * FROM notifications ORDER BY id")
            return [
                {
                    'id': row['id'],
                    'user_id': row['user_id'],
                    'channel': row['channel'],
                    'title': row['title'],
                    'message': row['message'],
                    'read': bool(row['read']),
                    'created_at': row['created_at'],
                }
                for row in cursor.fetchall()
            ]
