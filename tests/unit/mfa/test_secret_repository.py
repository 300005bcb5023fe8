"""Unit tests for MFA secret repositories.

DynamoDB calls are mocked at ``boto3.resource``; no AWS access is needed.
"""

import os
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError

from adaptive_auth.common.config import Config
from adaptive_auth.common.exceptions import ConcurrencyConflict
from adaptive_auth.mfa import (
    DynamoDBSecretRepository,
    FactorType,
    InMemorySecretRepository,
    MFASecretRecord,
)
from adaptive_auth.mfa.repository import create_secret_repository


CREATED_AT = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


def make_record(**overrides) -> MFASecretRecord:
    fields = {
        "secret_id": "mfa_0123456789ab",
        "user_id": "user_123",
        "factor_type": FactorType.PIN,
        "commitment": "c" * 64,
        "salt": "5" * 32,
        "created_at": CREATED_AT,
    }
    fields.update(overrides)
    return MFASecretRecord(**fields)


def client_error(code: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": "test"}}, "PutItem")


@pytest.fixture
def mock_table():
    with patch("boto3.resource") as mock_resource:
        table = MagicMock()
        mock_resource.return_value.Table.return_value = table
        yield table


@pytest.fixture
def dynamo_repo(mock_table):
    return DynamoDBSecretRepository(table_name="rba-mfa-secrets", region="us-east-1")


class TestInMemorySecretRepository:
    
    def test_create_and_list(self):
        repo = InMemorySecretRepository()
        repo.create(make_record())
        repo.create(make_record(secret_id="mfa_other", user_id="user_456"))
        
        assert [r.secret_id for r in repo.list_for_user("user_123")] == ["mfa_0123456789ab"]
    
    def test_duplicate_create_rejected(self):
        repo = InMemorySecretRepository()
        repo.create(make_record())
        with pytest.raises(ConcurrencyConflict):
            repo.create(make_record())
    
    def test_save_increments_version(self):
        repo = InMemorySecretRepository()
        created = repo.create(make_record())
        saved = repo.save(created.model_copy(update={"failed_attempts": 1}))
        
        assert saved.version == 1
        assert repo.list_for_user("user_123")[0] == saved
    
    def test_save_unknown_record_rejected(self):
        with pytest.raises(ConcurrencyConflict):
            InMemorySecretRepository().save(make_record())
    
    def test_get_active_skips_inactive(self):
        repo = InMemorySecretRepository()
        repo.create(make_record(is_active=False))
        assert repo.get_active("user_123", FactorType.PIN) is None
        
        repo.create(make_record(secret_id="mfa_new"))
        assert repo.get_active("user_123", FactorType.PIN).secret_id == "mfa_new"
        assert repo.get_active("user_123", FactorType.VOICE) is None


class TestDynamoDBSecretRepositoryInit:
    
    def test_requires_table_name(self, mock_table):
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ValueError, match="RBA_MFA_SECRET_TABLE"):
                DynamoDBSecretRepository()
    
    def test_table_name_from_environment(self, mock_table):
        with patch.dict(os.environ, {"RBA_MFA_SECRET_TABLE": "env-table"}, clear=True):
            repo = DynamoDBSecretRepository()
        assert repo.table_name == "env-table"
        assert repo.region == "us-east-1"
    
    def test_uses_named_profile(self):
        with patch("boto3.Session") as mock_session:
            repo = DynamoDBSecretRepository(table_name="t", aws_profile="security")
        mock_session.assert_called_once_with(profile_name="security")
        mock_session.return_value.resource.assert_called_once_with("dynamodb", region_name=repo.region)


class TestDynamoDBSecretRepository:
    
    def test_create_is_conditional(self, dynamo_repo, mock_table):
        dynamo_repo.create(make_record())
        
        kwargs = mock_table.put_item.call_args.kwargs
        assert kwargs["ConditionExpression"] == "attribute_not_exists(pk)"
        item = kwargs["Item"]
        assert item["pk"] == "USER#user_123"
        assert item["sk"] == "MFA#mfa_0123456789ab"
        assert item["factor_type"] == "pin"
        assert item["version"] == 0
        assert "locked_until" not in item
        assert "last_used" not in item
    
    def test_create_duplicate_is_conflict(self, dynamo_repo, mock_table):
        mock_table.put_item.side_effect = client_error("ConditionalCheckFailedException")
        with pytest.raises(ConcurrencyConflict):
            dynamo_repo.create(make_record())
    
    def test_save_conditions_on_version(self, dynamo_repo, mock_table):
        record = make_record(version=4, failed_attempts=2)
        saved = dynamo_repo.save(record)
        
        kwargs = mock_table.put_item.call_args.kwargs
        assert kwargs["ConditionExpression"] == "#version = :expected"
        assert kwargs["ExpressionAttributeNames"] == {"#version": "version"}
        assert kwargs["ExpressionAttributeValues"] == {":expected": 4}
        assert kwargs["Item"]["version"] == 5
        assert kwargs["Item"]["failed_attempts"] == 2
        assert saved.version == 5
    
    def test_save_conflict(self, dynamo_repo, mock_table):
        mock_table.put_item.side_effect = client_error("ConditionalCheckFailedException")
        with pytest.raises(ConcurrencyConflict) as exc_info:
            dynamo_repo.save(make_record(version=2))
        assert exc_info.value.details["expected_version"] == 2
    
    def test_other_errors_propagate(self, dynamo_repo, mock_table):
        mock_table.put_item.side_effect = client_error("ProvisionedThroughputExceededException")
        with pytest.raises(ClientError):
            dynamo_repo.save(make_record())
    
    def test_list_for_user(self, dynamo_repo, mock_table):
        mock_table.query.return_value = {"Items": [{
            "pk": "USER#user_123",
            "sk": "MFA#mfa_0123456789ab",
            "secret_id": "mfa_0123456789ab",
            "user_id": "user_123",
            "factor_type": "pin",
            "commitment": "c" * 64,
            "salt": "5" * 32,
            "is_active": True,
            "failed_attempts": Decimal("3"),
            "locked_until": "2026-03-01T10:00:00+00:00",
            "created_at": "2026-03-01T09:00:00+00:00",
            "version": Decimal("7"),
        }]}
        
        records = dynamo_repo.list_for_user("user_123")
        
        kwargs = mock_table.query.call_args.kwargs
        assert kwargs["ExpressionAttributeValues"] == {":pk": "USER#user_123", ":prefix": "MFA#"}
        assert kwargs["ConsistentRead"] is True
        assert len(records) == 1
        record = records[0]
        assert record.failed_attempts == 3
        assert record.version == 7
        assert record.factor_type == FactorType.PIN
        assert record.locked_until == datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)
        assert record.last_used is None
    
    def test_list_error_propagates(self, dynamo_repo, mock_table):
        mock_table.query.side_effect = ClientError(
            {"Error": {"Code": "ResourceNotFoundException", "Message": "test"}}, "Query"
        )
        with pytest.raises(ClientError):
            dynamo_repo.list_for_user("user_123")


class TestCreateSecretRepository:
    
    def test_in_memory_without_table(self):
        config = Config(mfa_secret_table=None)
        assert isinstance(create_secret_repository(config), InMemorySecretRepository)
    
    def test_dynamodb_with_table(self, mock_table):
        config = Config(mfa_secret_table="rba-mfa-secrets", aws_region="eu-west-1")
        repo = create_secret_repository(config)
        assert isinstance(repo, DynamoDBSecretRepository)
        assert repo.region == "eu-west-1"
