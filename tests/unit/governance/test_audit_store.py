"""Unit tests for the audit stores.

Tests that audit logs are append-only and that any edit or deletion breaks
the hash chain.
"""

import json
import shutil
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

from adaptive_auth.common.exceptions import AuditError
from adaptive_auth.governance.audit import (
    AuditEntry,
    AuditEventType,
    AuditLogIntegrityError,
    AuditLogger,
    FileAuditStore,
    InMemoryAuditStore,
    RiskEvent,
)
from adaptive_auth.governance.audit.store import compute_entry_hash, verify_chain


@pytest.fixture
def temp_log_dir():
    """Create a temporary directory for logs."""
    temp_dir = tempfile.mkdtemp()
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def file_store(temp_log_dir):
    return FileAuditStore(log_dir=temp_log_dir)


def make_entry(user_id: str = "user_123", action: str = "verified") -> AuditEntry:
    return AuditEntry(
        event_type=AuditEventType.MFA_VERIFICATION,
        user_id=user_id,
        action=action,
        metadata={"factor_type": "pin"},
    )


def make_risk_event(score: int = 10) -> RiskEvent:
    return RiskEvent(
        user_id="user_123",
        signals={"user_id": "user_123", "failed_attempts": 1},
        score=score,
        breakdown={"failedAttempts": score},
        action="allow",
        risk_level="low",
        decision_source="threshold",
        policy_version="1.0.0",
    )


class TestHashChain:
    
    def test_first_entry_has_no_previous(self):
        store = InMemoryAuditStore()
        entry = store.append_entry(make_entry())
        assert entry.previous_hash is None
        assert entry.entry_hash is not None
    
    def test_entries_are_linked(self):
        store = InMemoryAuditStore()
        first = store.append_entry(make_entry())
        second = store.append_entry(make_entry(action="proof_invalid"))
        third = store.append_entry(make_entry(user_id="user_456"))
        
        assert second.previous_hash == first.entry_hash
        assert third.previous_hash == second.entry_hash
        assert store.get_last_hash() == third.entry_hash
        assert store.verify_integrity()
    
    def test_hash_covers_content(self):
        entry_dict = make_entry().model_dump(mode="json")
        original = compute_entry_hash(entry_dict)
        entry_dict["action"] = "locked"
        assert compute_entry_hash(entry_dict) != original
    
    def test_hash_ignores_entry_hash_field(self):
        entry_dict = make_entry().model_dump(mode="json")
        original = compute_entry_hash(entry_dict)
        entry_dict["entry_hash"] = "anything"
        assert compute_entry_hash(entry_dict) == original
    
    def test_empty_chain_is_valid(self):
        assert verify_chain([])
        assert InMemoryAuditStore().verify_integrity()


class TestInMemoryAuditStore:
    
    def test_tampered_entry_detected(self):
        store = InMemoryAuditStore()
        for action in ("issued", "verified", "locked"):
            store.append_entry(make_entry(action=action))
        
        tampered = json.loads(store._lines[1])
        tampered["action"] = "issued"
        store._lines[1] = json.dumps(tampered)
        
        with pytest.raises(AuditLogIntegrityError, match="entry 2"):
            store.verify_integrity()
    
    def test_deleted_entry_detected(self):
        store = InMemoryAuditStore()
        for action in ("issued", "verified", "locked"):
            store.append_entry(make_entry(action=action))
        del store._lines[1]
        
        with pytest.raises(AuditLogIntegrityError, match="chain broken"):
            store.verify_integrity()
    
    def test_filters(self):
        store = InMemoryAuditStore()
        store.append_entry(make_entry(user_id="user_123"))
        store.append_entry(make_entry(user_id="user_456"))
        store.append_entry(AuditEntry(event_type=AuditEventType.RISK_DECISION, user_id="user_123"))
        
        assert len(list(store.get_entries(user_id="user_123"))) == 2
        assert len(list(store.get_entries(event_type=AuditEventType.RISK_DECISION))) == 1
        assert len(store) == 3
    
    def test_risk_event_round_trip(self):
        store = InMemoryAuditStore()
        logger = AuditLogger(store=store)
        event = make_risk_event(score=30)
        logger.log_risk_event(event)
        
        stored = next(store.get_entries())
        assert stored.risk_event == event
        assert stored.event_type == AuditEventType.RISK_DECISION
        assert stored.metadata["score"] == 30


class TestFileAuditStore:
    
    def test_creates_log_directory(self, temp_log_dir):
        log_dir = Path(temp_log_dir) / "nested" / "audit"
        FileAuditStore(log_dir=log_dir)
        assert log_dir.is_dir()
    
    def test_append_writes_jsonl(self, file_store):
        file_store.append_entry(make_entry())
        file_store.append_entry(make_entry(action="locked"))
        
        lines = file_store.log_path().read_text().strip().splitlines()
        assert len(lines) == 2
        assert json.loads(lines[1])["action"] == "locked"
        assert file_store.verify_integrity()
    
    def test_chain_continues_across_instances(self, temp_log_dir):
        first_store = FileAuditStore(log_dir=temp_log_dir)
        last = first_store.append_entry(make_entry())
        
        reopened = FileAuditStore(log_dir=temp_log_dir)
        assert reopened.get_last_hash() == last.entry_hash
        entry = reopened.append_entry(make_entry(action="locked"))
        assert entry.previous_hash == last.entry_hash
        assert reopened.verify_integrity()
    
    def test_chain_recovered_without_metadata(self, temp_log_dir):
        store = FileAuditStore(log_dir=temp_log_dir)
        last = store.append_entry(make_entry())
        for meta in Path(temp_log_dir).glob("*.meta"):
            meta.unlink()
        
        assert FileAuditStore(log_dir=temp_log_dir).get_last_hash() == last.entry_hash
    
    def test_tampered_file_detected(self, file_store):
        for action in ("issued", "verified"):
            file_store.append_entry(make_entry(action=action))
        
        path = file_store.log_path()
        lines = path.read_text().splitlines()
        record = json.loads(lines[0])
        record["user_id"] = "attacker"
        lines[0] = json.dumps(record)
        path.write_text("\n".join(lines) + "\n")
        
        with pytest.raises(AuditLogIntegrityError):
            file_store.verify_integrity()
    
    def test_garbage_line_detected(self, file_store):
        file_store.append_entry(make_entry())
        with open(file_store.log_path(), "a") as f:
            f.write("{not json\n")
        
        with pytest.raises(AuditLogIntegrityError, match="Malformed JSON"):
            file_store.verify_integrity()
    
    def test_get_entries_filters(self, file_store):
        file_store.append_entry(make_entry(user_id="user_123"))
        file_store.append_entry(make_entry(user_id="user_456"))
        
        entries = list(file_store.get_entries(user_id="user_456"))
        assert [e.user_id for e in entries] == ["user_456"]
        assert len(file_store.get_log_files()) == 1
    
    def test_write_failure_raises_audit_error(self, file_store):
        with patch("adaptive_auth.governance.audit.store.os.open", side_effect=OSError("disk full")):
            with pytest.raises(AuditError):
                file_store.append_entry(make_entry())
        assert file_store.get_last_hash() is None
