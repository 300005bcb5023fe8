"""Audit Logger - append-only record of every risk decision and MFA outcome.

Writes never raise into the caller. A failed write is logged at ERROR and
handed to the retry writer when one is configured.
"""

import logging
from typing import Any, Dict, Iterator, Optional

from adaptive_auth.governance.audit.background_writer import AuditRetryWriter
from adaptive_auth.governance.audit.schemas import AuditEntry, AuditEventType, RiskEvent
from adaptive_auth.governance.audit.store import AuditStore, InMemoryAuditStore


logger = logging.getLogger(__name__)


class AuditLogger:
    """Facade the decision point and the MFA service write through."""
    
    def __init__(
        self,
        store: Optional[AuditStore] = None,
        retry_writer: Optional[AuditRetryWriter] = None,
    ):
        self.store = store if store is not None else InMemoryAuditStore()
        self.retry_writer = retry_writer
    
    def log_risk_event(self, event: RiskEvent) -> Optional[AuditEntry]:
        """Record one risk evaluation."""
        entry = AuditEntry(
            event_type=AuditEventType.RISK_DECISION,
            user_id=event.user_id,
            action=event.action,
            policy_version=event.policy_version,
            risk_event=event,
            metadata={"score": event.score, "decision_source": event.decision_source},
        )
        return self._append(entry)
    
    def log_mfa_event(
        self,
        event_type: AuditEventType,
        user_id: Optional[str],
        outcome: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[AuditEntry]:
        """Record an MFA registration, challenge, verification or lock.
        
        Args:
            event_type: One of the MFA event types
            user_id: Account concerned (None for unbound challenges)
            outcome: Short result string, e.g. ``verified`` or a failure reason
            metadata: Extra context; must not contain secrets
        """
        entry = AuditEntry(
            event_type=event_type,
            user_id=user_id,
            action=outcome,
            metadata=metadata or {},
        )
        return self._append(entry)
    
    def log_login(
        self,
        user_id: str,
        outcome: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[AuditEntry]:
        entry = AuditEntry(
            event_type=AuditEventType.LOGIN,
            user_id=user_id,
            action=outcome,
            metadata=metadata or {},
        )
        return self._append(entry)
    
    def log_system_event(
        self,
        event_description: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[AuditEntry]:
        """Log a system event (startup, policy reload, etc.)"""
        entry = AuditEntry(
            event_type=AuditEventType.SYSTEM_EVENT,
            metadata={"event_description": event_description, **(metadata or {})},
        )
        return self._append(entry)
    
    def _append(self, entry: AuditEntry) -> Optional[AuditEntry]:
        try:
            return self.store.append_entry(entry)
        except Exception as e:
            logger.error(
                "Audit write failed",
                extra={
                    "entry_id": entry.entry_id,
                    "event_type": entry.event_type.value,
                    "error": str(e),
                    "queued_for_retry": self.retry_writer is not None,
                }
            )
            if self.retry_writer is not None:
                self.retry_writer.submit(entry)
            else:
                logger.critical(
                    "Audit entry lost: no retry writer configured",
                    extra={"entry_id": entry.entry_id, "alert": "audit_write_exhausted"}
                )
            return None
    
    def get_entries(
        self,
        event_type: Optional[AuditEventType] = None,
        user_id: Optional[str] = None,
    ) -> Iterator[AuditEntry]:
        return self.store.get_entries(event_type=event_type, user_id=user_id)
    
    def verify_integrity(self) -> bool:
        return self.store.verify_integrity()
