"""Tests for the error hierarchy and ErrorCollector."""

from alert_operator.errors.collector import (
    ChannelSyncError,
    CollectedErrors,
    ConditionSyncError,
    ConfigurationError,
    CredentialError,
    ErrorCollector,
    ReconcileError,
)
from alert_operator.remote.client import RemoteError, RemoteNotFoundError
from alert_operator.store.resources import ObjectNotFound


class TestErrorCollector:
    def test_empty(self):
        errors = ErrorCollector()
        assert len(errors) == 0
        assert not errors
        assert errors.message() == ""

    def test_none_is_ignored(self):
        errors = ErrorCollector()
        errors.collect(None)
        assert len(errors) == 0

    def test_messages_are_newline_joined(self):
        errors = ErrorCollector()
        errors.collect(RemoteError("create failed"))
        errors.collect(RemoteError("update failed"))
        assert errors.message() == "create failed\nupdate failed"
        assert [str(e) for e in errors] == ["create failed", "update failed"]


class TestCollectedErrors:
    def test_message_and_parts(self):
        errors = ErrorCollector()
        errors.collect(RemoteError("first"))
        errors.collect(RemoteError("second"))
        err = ChannelSyncError(errors)
        assert str(err) == "first\nsecond"
        assert len(err.errors) == 2

    def test_condition_sync_error_carries_conditions(self):
        errors = ErrorCollector()
        errors.collect(RemoteError("boom"))
        err = ConditionSyncError(errors, ["c1", "c2"])
        assert err.conditions == ["c1", "c2"]
        assert isinstance(err, CollectedErrors)


class TestHierarchy:
    def test_everything_is_a_reconcile_error(self):
        assert issubclass(CredentialError, ConfigurationError)
        assert issubclass(ConfigurationError, ReconcileError)
        assert issubclass(RemoteNotFoundError, RemoteError)
        assert issubclass(RemoteError, ReconcileError)
        assert issubclass(ObjectNotFound, ReconcileError)
        assert issubclass(CollectedErrors, ReconcileError)
