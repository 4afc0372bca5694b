"""Configuration for the check engine.

Loads all settings from the environment (optionally seeded from .env)
with production defaults. Nothing is required.
"""

import os
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv


class Config:
    """Configuration for product checks.

    Single source of truth for all config: timeouts, warning windows,
    storage location and batch concurrency.
    """

    def __init__(self, env_file: Optional[Path] = None):
        """Load configuration from .env file (if present) and the environment."""
        env_file = Path(env_file) if env_file else Path.cwd() / ".env"
        if env_file.exists():
            load_dotenv(env_file)

        # ===== STORAGE =====
        self.db_path = Path(os.getenv("EXPIRA_DB_PATH", "state/expira.db"))
        self.history_limit = int(os.getenv("HISTORY_LIMIT", "50"))

        # ===== NETWORK SETTINGS =====
        self.http_timeout = float(os.getenv("HTTP_TIMEOUT", "10.0"))
        self.tls_timeout = float(os.getenv("TLS_TIMEOUT", "10.0"))
        self.dns_timeout = float(os.getenv("DNS_TIMEOUT", "5.0"))
        self.user_agent = os.getenv("USER_AGENT", "expira/1.0")

        # ===== WARNING WINDOWS (days) =====
        self.cert_warning_days = int(os.getenv("CERT_WARNING_DAYS", "30"))
        self.expiry_warning_days = int(os.getenv("EXPIRY_WARNING_DAYS", "30"))
        self.sms_warning_days = int(os.getenv("SMS_WARNING_DAYS", "7"))

        # ===== BATCH CHECKS =====
        self.workers = int(os.getenv("WORKERS", "10"))
        self.rate_limit = float(os.getenv("RATE_LIMIT", "0.0"))

        # ===== LOGGING =====
        self.log_level = os.getenv("LOG_LEVEL", "INFO")
        log_file = os.getenv("LOG_FILE")
        self.log_file = Path(log_file) if log_file else None

    def to_dict(self) -> dict:
        """Convert config to dict for serialization."""
        return {
            'db_path': str(self.db_path),
            'http_timeout': self.http_timeout,
            'tls_timeout': self.tls_timeout,
            'dns_timeout': self.dns_timeout,
            'cert_warning_days': self.cert_warning_days,
            'expiry_warning_days': self.expiry_warning_days,
            'sms_warning_days': self.sms_warning_days,
            'workers': self.workers,
            'rate_limit': self.rate_limit,
            'user_agent': self.user_agent,
            'history_limit': self.history_limit,
            'log_level': self.log_level,
            'log_file': str(self.log_file) if self.log_file else None,
        }

    def __repr__(self) -> str:
        """Human-readable config summary."""
        return (
            f"Config(\n"
            f"  db_path={self.db_path}\n"
            f"  timeouts=http:{self.http_timeout}s tls:{self.tls_timeout}s dns:{self.dns_timeout}s\n"
            f"  warning_days=cert:{self.cert_warning_days} expiry:{self.expiry_warning_days}\n"
            f"  workers={self.workers}\n"
            f")"
        )
