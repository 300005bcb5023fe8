"""MFA secret repositories with optimistic concurrency.

Every record carries a ``version``. ``save`` only succeeds when the stored
version still equals the version the caller read, and the saved record gets
version + 1. A lost race raises ConcurrencyConflict; the caller re-reads and
retries.
"""

import logging
import os
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import ClientError

from adaptive_auth.common.config import Config, get_config
from adaptive_auth.common.exceptions import ConcurrencyConflict
from adaptive_auth.mfa.schemas import FactorType, MFASecretRecord


logger = logging.getLogger(__name__)


class SecretRepository(ABC):
    """Persistence for MFASecretRecord."""
    
    @abstractmethod
    def list_for_user(self, user_id: str) -> List[MFASecretRecord]:
        """All records for a user, active and inactive."""
        pass
    
    @abstractmethod
    def create(self, record: MFASecretRecord) -> MFASecretRecord:
        """Insert a new record.
        
        Raises:
            ConcurrencyConflict: If the secret_id already exists
        """
        pass
    
    @abstractmethod
    def save(self, record: MFASecretRecord) -> MFASecretRecord:
        """Compare-and-swap update.
        
        ``record.version`` must equal the stored version. Returns the stored
        record with its version incremented.
        
        Raises:
            ConcurrencyConflict: If the stored version moved on
        """
        pass
    
    def get_active(self, user_id: str, factor_type: FactorType) -> Optional[MFASecretRecord]:
        """The single active record for (user, factor), if any."""
        active = [
            r for r in self.list_for_user(user_id)
            if r.factor_type == factor_type and r.is_active
        ]
        if not active:
            return None
        # Registration keeps at most one active; newest wins if that ever slips
        return max(active, key=lambda r: r.created_at)


class InMemorySecretRepository(SecretRepository):
    """Thread-safe, process-local repository."""
    
    def __init__(self):
        self._lock = threading.Lock()
        self._records: Dict[str, MFASecretRecord] = {}
    
    def list_for_user(self, user_id: str) -> List[MFASecretRecord]:
        with self._lock:
            return [r for r in self._records.values() if r.user_id == user_id]
    
    def create(self, record: MFASecretRecord) -> MFASecretRecord:
        with self._lock:
            if record.secret_id in self._records:
                raise ConcurrencyConflict(
                    f"Secret {record.secret_id} already exists", key=record.secret_id
                )
            self._records[record.secret_id] = record
            return record
    
    def save(self, record: MFASecretRecord) -> MFASecretRecord:
        with self._lock:
            current = self._records.get(record.secret_id)
            if current is None or current.version != record.version:
                raise ConcurrencyConflict(
                    f"Secret {record.secret_id} was modified concurrently",
                    key=record.secret_id,
                    details={
                        "expected_version": record.version,
                        "actual_version": current.version if current else None,
                    }
                )
            stored = record.model_copy(update={"version": record.version + 1})
            self._records[record.secret_id] = stored
            return stored


class DynamoDBSecretRepository(SecretRepository):
    """DynamoDB-backed repository.
    
    Table layout: partition key ``pk`` = ``USER#{user_id}``, sort key
    ``sk`` = ``MFA#{secret_id}``. Writes are conditional on ``version``.
    """
    
    DEFAULT_REGION = "us-east-1"
    CONDITIONAL_CHECK_FAILED = "ConditionalCheckFailedException"
    
    def __init__(
        self,
        table_name: Optional[str] = None,
        region: Optional[str] = None,
        aws_profile: Optional[str] = None,
    ):
        self.table_name = table_name or os.environ.get("RBA_MFA_SECRET_TABLE")
        if not self.table_name:
            raise ValueError("RBA_MFA_SECRET_TABLE required")
        
        self.region = region or os.environ.get("AWS_DEFAULT_REGION", self.DEFAULT_REGION)
        
        if aws_profile:
            session = boto3.Session(profile_name=aws_profile)
            self.dynamodb = session.resource("dynamodb", region_name=self.region)
        else:
            self.dynamodb = boto3.resource("dynamodb", region_name=self.region)
        
        self.table = self.dynamodb.Table(self.table_name)
        logger.info(f"MFA secret table initialized: {self.table_name} ({self.region})")
    
    @staticmethod
    def _key(user_id: str, secret_id: str) -> Dict[str, str]:
        return {"pk": f"USER#{user_id}", "sk": f"MFA#{secret_id}"}
    
    def _to_item(self, record: MFASecretRecord) -> Dict[str, Any]:
        item = {**self._key(record.user_id, record.secret_id), **record.model_dump(mode="json")}
        # Unset optionals are omitted and read back as None
        return {k: v for k, v in item.items() if v is not None}
    
    @staticmethod
    def _from_item(item: Dict[str, Any]) -> MFASecretRecord:
        data = {k: v for k, v in item.items() if k not in ("pk", "sk")}
        data["failed_attempts"] = int(data.get("failed_attempts", 0))
        data["version"] = int(data.get("version", 0))
        return MFASecretRecord.model_validate(data)
    
    def _is_conflict(self, error: ClientError) -> bool:
        return error.response.get("Error", {}).get("Code") == self.CONDITIONAL_CHECK_FAILED
    
    def list_for_user(self, user_id: str) -> List[MFASecretRecord]:
        try:
            resp = self.table.query(
                KeyConditionExpression="pk = :pk AND begins_with(sk, :prefix)",
                ExpressionAttributeValues={":pk": f"USER#{user_id}", ":prefix": "MFA#"},
                ConsistentRead=True,
            )
        except ClientError as e:
            logger.error(f"list_for_user failed: {e}")
            raise
        return [self._from_item(item) for item in resp.get("Items", [])]
    
    def create(self, record: MFASecretRecord) -> MFASecretRecord:
        try:
            self.table.put_item(
                Item=self._to_item(record),
                ConditionExpression="attribute_not_exists(pk)",
            )
        except ClientError as e:
            if self._is_conflict(e):
                raise ConcurrencyConflict(
                    f"Secret {record.secret_id} already exists", key=record.secret_id
                ) from e
            logger.error(f"create failed: {e}")
            raise
        return record
    
    def save(self, record: MFASecretRecord) -> MFASecretRecord:
        stored = record.model_copy(update={"version": record.version + 1})
        try:
            self.table.put_item(
                Item=self._to_item(stored),
                ConditionExpression="#version = :expected",
                ExpressionAttributeNames={"#version": "version"},
                ExpressionAttributeValues={":expected": record.version},
            )
        except ClientError as e:
            if self._is_conflict(e):
                raise ConcurrencyConflict(
                    f"Secret {record.secret_id} was modified concurrently",
                    key=record.secret_id,
                    details={"expected_version": record.version}
                ) from e
            logger.error(f"save failed: {e}")
            raise
        return stored


def create_secret_repository(config: Optional[Config] = None) -> SecretRepository:
    """DynamoDB when RBA_MFA_SECRET_TABLE is set, in-memory otherwise."""
    config = config or get_config()
    if config.mfa_secret_table:
        return DynamoDBSecretRepository(
            table_name=config.mfa_secret_table,
            region=config.aws_region,
        )
    logger.info("No MFA secret table configured, using in-memory repository")
    return InMemorySecretRepository()
