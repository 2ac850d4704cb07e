"""
Blocker Node Configuration
"""

from __future__ import annotations
import json
import logging
import os
from dataclasses import dataclass, field, asdict
from typing import List, Mapping, Optional

from blocker.constants import (
    BATCH_SIZE,
    BATCH_SHRINK_DIVISOR,
    DAEMON_DEFAULT_URL,
    DAEMON_REQUEST_TIMEOUT_SEC,
    POW_TARGET_STANDARD,
    POW_TARGET_TESTING,
    POW_TARGET_SIZE,
    PURGE_LIST_PATH,
    PURGE_LOCK_PATH,
    RETRY_INTERVAL_SEC,
    RETRY_INTERVAL_TESTING_SEC,
    SCAN_BACK_WINDOW_SEC,
    SCAN_INTERVAL_SEC,
    SCAN_INTERVAL_TESTING_SEC,
    SLEEP_ON_ERR_STEP_SEC,
    SLEEP_ON_ERR_STEPS,
    SYNC_INTERVAL_SEC,
    SYNC_INTERVAL_TESTING_SEC,
    SYNC_MAX_PAGES,
    SYNC_PAGE_LIMIT,
)

logger = logging.getLogger(__name__)


def sanitize_portal_url(url: str) -> str:
    """
    Normalize a portal URL: trim whitespace and trailing slashes, force https.

    An empty string stays empty.
    """
    url = url.strip().rstrip("/")
    if not url:
        return ""
    if url.startswith("https://"):
        return url
    if url.startswith("http://"):
        return "https://" + url[len("http://"):]
    return "https://" + url


@dataclass
class DaemonConfig:
    """Enforcement daemon connection."""
    url: str = DAEMON_DEFAULT_URL
    api_password: str = ""
    timeout_sec: float = DAEMON_REQUEST_TIMEOUT_SEC


@dataclass
class StorageConfig:
    """Storage configuration."""
    db_path: str = "./data/blocker.db"


@dataclass
class ScannerConfig:
    """Scan and retry loop tuning. Durations in seconds."""
    batch_size: int = BATCH_SIZE
    shrink_divisor: int = BATCH_SHRINK_DIVISOR
    sleep_between_scans: float = SCAN_INTERVAL_SEC
    sleep_on_err_step: float = SLEEP_ON_ERR_STEP_SEC
    sleep_on_err_steps: int = SLEEP_ON_ERR_STEPS
    retry_interval: float = RETRY_INTERVAL_SEC
    scan_back_window: int = SCAN_BACK_WINDOW_SEC


@dataclass
class SyncConfig:
    """Peer portal synchronization."""
    portal_urls: List[str] = field(default_factory=list)
    interval: float = SYNC_INTERVAL_SEC
    page_limit: int = SYNC_PAGE_LIMIT
    max_pages: int = SYNC_MAX_PAGES

    def __post_init__(self):
        self.portal_urls = [u for u in (sanitize_portal_url(p) for p in self.portal_urls) if u]


@dataclass
class PoWConfig:
    """Proof-of-work admission target (hex, 32 bytes)."""
    target_hex: str = POW_TARGET_STANDARD.hex()

    @property
    def target(self) -> bytes:
        return bytes.fromhex(self.target_hex)


@dataclass
class PurgeConfig:
    """Reverse proxy cache purge list. Disabled unless enabled is set."""
    enabled: bool = False
    list_path: str = PURGE_LIST_PATH
    lock_path: str = PURGE_LOCK_PATH


@dataclass
class LogConfig:
    """Logging configuration."""
    level: str = "INFO"
    file: Optional[str] = None
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    max_size_mb: int = 100
    backup_count: int = 5


@dataclass
class BlockerConfig:
    """
    Complete node configuration.

    All settings for running a blocker node.
    """
    # Identity
    server_uid: str = ""

    # Sub-configurations
    daemon: DaemonConfig = field(default_factory=DaemonConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    scanner: ScannerConfig = field(default_factory=ScannerConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    pow: PoWConfig = field(default_factory=PoWConfig)
    purge: PurgeConfig = field(default_factory=PurgeConfig)
    log: LogConfig = field(default_factory=LogConfig)

    def validate(self) -> List[str]:
        """
        Validate configuration.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        if not self.server_uid:
            errors.append("server_uid cannot be empty")

        if not self.daemon.url:
            errors.append("daemon url cannot be empty")

        if not self.storage.db_path:
            errors.append("db_path cannot be empty")

        # Scanner validation
        if self.scanner.batch_size < 1:
            errors.append("batch_size must be at least 1")
        if self.scanner.shrink_divisor < 2:
            errors.append("shrink_divisor must be at least 2")
        if self.scanner.sleep_on_err_steps < 1:
            errors.append("sleep_on_err_steps must be at least 1")
        if self.scanner.scan_back_window < 0:
            errors.append("scan_back_window cannot be negative")

        # Sync validation
        if self.sync.page_limit < 1:
            errors.append("page_limit must be at least 1")
        if self.sync.max_pages < 1:
            errors.append("max_pages must be at least 1")

        try:
            if len(self.pow.target) != POW_TARGET_SIZE:
                errors.append(f"pow target must be {POW_TARGET_SIZE} bytes")
        except ValueError:
            errors.append("pow target is not valid hex")

        if self.purge.enabled and not (self.purge.list_path and self.purge.lock_path):
            errors.append("purge list and lock paths cannot be empty")

        return errors

    def save(self, path: str) -> None:
        """Save configuration to file."""
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

        logger.info(f"Configuration saved to {path}")

    @classmethod
    def load(cls, path: str) -> BlockerConfig:
        """Load configuration from file."""
        with open(path, 'r') as f:
            data = json.load(f)

        config = cls(server_uid=data.get("server_uid", ""))

        if "daemon" in data:
            config.daemon = DaemonConfig(**data["daemon"])

        if "storage" in data:
            config.storage = StorageConfig(**data["storage"])

        if "scanner" in data:
            config.scanner = ScannerConfig(**data["scanner"])

        if "sync" in data:
            config.sync = SyncConfig(**data["sync"])

        if "pow" in data:
            config.pow = PoWConfig(**data["pow"])

        if "purge" in data:
            config.purge = PurgeConfig(**data["purge"])

        if "log" in data:
            config.log = LogConfig(**data["log"])

        logger.info(f"Configuration loaded from {path}")
        return config

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> BlockerConfig:
        """
        Build configuration from environment variables.

        SERVER_UID, BLOCKER_DAEMON_URL, SIA_API_PASSWORD, BLOCKER_DB_PATH,
        BLOCKER_LOG_LEVEL, BLOCKER_LOG_FILE, BLOCKER_PORTALS_SYNC (comma
        separated), BLOCKER_SYNC_INTERVAL, BLOCKER_RETRY_INTERVAL,
        BLOCKER_NGINX_CACHE_PURGE_LIST, BLOCKER_NGINX_CACHE_PURGE_LOCK. Setting
        either purge variable enables the purge list.
        """
        env = os.environ if environ is None else environ
        config = cls(server_uid=env.get("SERVER_UID", ""))

        config.daemon.url = env.get("BLOCKER_DAEMON_URL", config.daemon.url)
        config.daemon.api_password = env.get("SIA_API_PASSWORD", "")
        config.storage.db_path = env.get("BLOCKER_DB_PATH", config.storage.db_path)
        config.log.level = env.get("BLOCKER_LOG_LEVEL", config.log.level)
        config.log.file = env.get("BLOCKER_LOG_FILE") or None

        portals = env.get("BLOCKER_PORTALS_SYNC", "")
        config.sync = SyncConfig(portal_urls=portals.split(","))

        if "BLOCKER_SYNC_INTERVAL" in env:
            config.sync.interval = float(env["BLOCKER_SYNC_INTERVAL"])
        if "BLOCKER_RETRY_INTERVAL" in env:
            config.scanner.retry_interval = float(env["BLOCKER_RETRY_INTERVAL"])

        purge_list = env.get("BLOCKER_NGINX_CACHE_PURGE_LIST")
        purge_lock = env.get("BLOCKER_NGINX_CACHE_PURGE_LOCK")
        if purge_list or purge_lock:
            config.purge.enabled = True
            config.purge.list_path = purge_list or config.purge.list_path
            config.purge.lock_path = purge_lock or config.purge.lock_path

        return config

    @classmethod
    def default_testing(cls) -> BlockerConfig:
        """Short intervals and an easy proof-of-work target for dev and CI."""
        config = cls(server_uid="blocker-testing")

        config.storage.db_path = "./data-testing/blocker.db"
        config.scanner.sleep_between_scans = SCAN_INTERVAL_TESTING_SEC
        config.scanner.retry_interval = RETRY_INTERVAL_TESTING_SEC
        config.sync.interval = SYNC_INTERVAL_TESTING_SEC
        config.pow.target_hex = POW_TARGET_TESTING.hex()
        config.log.level = "DEBUG"

        return config

    def to_dict(self) -> dict:
        """Export configuration as dictionary."""
        return {
            "server_uid": self.server_uid,
            "daemon": asdict(self.daemon),
            "storage": asdict(self.storage),
            "scanner": asdict(self.scanner),
            "sync": asdict(self.sync),
            "pow": asdict(self.pow),
            "purge": asdict(self.purge),
            "log": asdict(self.log),
        }


def setup_logging(config: LogConfig) -> None:
    """Configure logging based on config."""
    level = getattr(logging, config.level.upper(), logging.INFO)

    handlers = [logging.StreamHandler()]

    if config.file:
        from logging.handlers import RotatingFileHandler
        file_handler = RotatingFileHandler(
            config.file,
            maxBytes=config.max_size_mb * 1024 * 1024,
            backupCount=config.backup_count,
        )
        handlers.append(file_handler)

    logging.basicConfig(
        level=level,
        format=config.format,
        handlers=handlers,
    )
