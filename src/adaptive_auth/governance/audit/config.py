"""Audit layer factories.

Backend selection follows RBA_AUDIT_STORAGE_TYPE ("memory" or "file").
"""

import logging
from typing import Optional

from adaptive_auth.common.config import AuditStorageType, Config, get_config
from adaptive_auth.governance.audit.background_writer import AuditRetryWriter
from adaptive_auth.governance.audit.logger import AuditLogger
from adaptive_auth.governance.audit.store import AuditStore, FileAuditStore, InMemoryAuditStore


logger = logging.getLogger(__name__)


def create_audit_store(
    storage_type: Optional[str] = None,
    config: Optional[Config] = None,
) -> AuditStore:
    """Create the audit store named by configuration.
    
    Args:
        storage_type: "memory" or "file" (default: from environment)
        config: Configuration to read (default: global config)
        
    Returns:
        Configured AuditStore instance
    """
    config = config or get_config()
    storage_type = AuditStorageType(storage_type or config.audit_storage_type)
    
    if storage_type == AuditStorageType.FILE:
        logger.info("Using file audit store", extra={"log_dir": str(config.audit_log_dir)})
        return FileAuditStore(log_dir=config.audit_log_dir)
    return InMemoryAuditStore()


def create_audit_logger(
    storage_type: Optional[str] = None,
    config: Optional[Config] = None,
    max_retries: Optional[int] = None,
    backoff_seconds: Optional[float] = None,
) -> AuditLogger:
    """Create an AuditLogger with a retry writer over the configured store."""
    store = create_audit_store(storage_type=storage_type, config=config)
    writer_kwargs = {}
    if max_retries is not None:
        writer_kwargs["max_retries"] = max_retries
    if backoff_seconds is not None:
        writer_kwargs["backoff_seconds"] = backoff_seconds
    return AuditLogger(store=store, retry_writer=AuditRetryWriter(store, **writer_kwargs))


__all__ = [
    "create_audit_store",
    "create_audit_logger",
]
