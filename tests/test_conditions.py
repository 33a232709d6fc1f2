"""Tests for the Condition Synchronizer."""

import pytest

from alert_operator.errors.collector import ConditionSyncError
from alert_operator.models import (
    AlertsApmCondition,
    AlertsNrqlCondition,
    AlertsPolicy,
    AlertsPolicySpec,
    ApmConditionSpec,
    ApmConditionTerm,
    NrqlConditionSpec,
    NrqlConditionTerm,
    NrqlQuery,
    ObjectMeta,
    PolicyCondition,
    RemotePolicyInput,
)
from alert_operator.reconciler.condition import ConditionReconciler
from alert_operator.remote.client import RemoteError
from alert_operator.remote.memory import InMemoryAlertsClient
from alert_operator.store.resources import ResourceStore
from alert_operator.sync.conditions import ConditionSynchronizer


def _make_nrql(name="NRQL Condition", threshold="5") -> PolicyCondition:
    return PolicyCondition(
        spec=NrqlConditionSpec(
            name=name,
            nrql=NrqlQuery(query="SELECT count(*) FROM Transaction"),
            terms=[NrqlConditionTerm(operator="ABOVE", priority="CRITICAL", threshold=threshold)],
        )
    )


def _make_apm(name="APM Condition") -> PolicyCondition:
    return PolicyCondition(
        spec=ApmConditionSpec(
            name=name,
            metric="apdex",
            entities=["5678"],
            terms=[ApmConditionTerm(threshold="0.7", operator="below")],
        )
    )


def _anonymous(condition: PolicyCondition) -> PolicyCondition:
    return PolicyCondition(spec=condition.spec.model_copy(deep=True))


class TestConditionSynchronizer:
    def setup_method(self):
        self.store = ResourceStore()
        self.client = InMemoryAlertsClient()
        self.sync = ConditionSynchronizer(
            self.store,
            ConditionReconciler(self.store, lambda api_key, region: self.client),
        )

        policy = self.store.create(AlertsPolicy(
            metadata=ObjectMeta(name="my-policy", labels={"team": "payments"}),
            spec=AlertsPolicySpec(name="my-policy", account_id=1234, api_key="NRAK-0123456789ABCDEF"),
        ))
        remote = self.client.create_policy(
            1234, RemotePolicyInput(name="my-policy", incident_preference="PER_POLICY")
        )
        policy.status.policy_id = remote.id
        self.policy = policy
        self.client.reset_calls()

    def _child(self, condition: PolicyCondition):
        return self.store.get(condition.kind, condition.key)

    def test_creates_child_with_generated_name(self):
        result = self.sync.reconcile_conditions(self.policy, [_make_nrql()], [])

        assert len(result) == 1
        condition = result[0]
        assert condition.name.startswith("my-policy-condition-")
        assert condition.namespace == "default"
        assert self.client.call_count("create_nrql_condition") == 1

        child = self._child(condition)
        assert child.metadata.owner_references[0].uid == self.policy.metadata.uid
        assert child.metadata.labels == {"team": "payments"}
        assert child.spec.existing_policy_id == self.policy.status.policy_id
        assert child.spec.api_key == "NRAK-0123456789ABCDEF"
        assert child.spec.account_id == 1234
        assert child.status.condition_id is not None

    def test_desired_list_not_mutated(self):
        desired = [_make_nrql()]
        self.sync.reconcile_conditions(self.policy, desired, [])
        assert not desired[0].has_identity()

    def test_caller_cannot_pin_child_name(self):
        pinned = _make_nrql()
        pinned.name = "my-chosen-name"
        pinned.namespace = "default"

        result = self.sync.reconcile_conditions(self.policy, [pinned], [])

        assert result[0].name.startswith("my-policy-condition-")
        assert not self.store.exists(AlertsNrqlCondition.KIND, pinned.key)

    def test_apm_condition_uses_apm_path(self):
        result = self.sync.reconcile_conditions(self.policy, [_make_apm()], [])
        assert self.client.call_count("create_apm_condition") == 1
        assert self.client.call_count("create_nrql_condition") == 0
        assert self.store.exists(AlertsApmCondition.KIND, result[0].key)

    def test_unchanged_conditions_make_no_calls(self):
        applied = self.sync.reconcile_conditions(self.policy, [_make_nrql(), _make_apm()], [])
        self.client.reset_calls()

        again = self.sync.reconcile_conditions(self.policy, applied, applied)

        assert self.client.call_count() == 0
        assert [c.key for c in again] == [c.key for c in applied]

    def test_resolves_identity_by_name(self):
        applied = self.sync.reconcile_conditions(self.policy, [_make_nrql()], [])
        self.client.reset_calls()

        result = self.sync.reconcile_conditions(self.policy, [_anonymous(applied[0])], applied)

        assert result[0].key == applied[0].key
        assert self.client.call_count() == 0
        assert len(self.store.list(AlertsNrqlCondition.KIND)) == 1

    def test_changed_condition_is_updated(self):
        applied = self.sync.reconcile_conditions(self.policy, [_make_nrql()], [])
        self.client.reset_calls()

        changed = _make_nrql(threshold="10")
        changed.name, changed.namespace = applied[0].name, applied[0].namespace
        result = self.sync.reconcile_conditions(self.policy, [changed], applied)

        assert result[0].key == applied[0].key
        assert self.client.call_count("update_nrql_condition") == 1
        assert self.client.call_count("create_nrql_condition") == 0
        assert self._child(result[0]).spec.terms[0].threshold == "10"

    def test_removed_condition_is_deleted(self):
        applied = self.sync.reconcile_conditions(
            self.policy, [_make_nrql("A"), _make_nrql("B")], []
        )
        removed_id = self._child(applied[1]).status.condition_id
        self.client.reset_calls()

        result = self.sync.reconcile_conditions(self.policy, [applied[0]], applied)

        assert len(result) == 1
        assert self.client.calls_to("delete_nrql_condition") == [(1234, removed_id)]
        assert self.client.call_count("update_nrql_condition") == 0
        assert not self.store.exists(AlertsNrqlCondition.KIND, applied[1].key)
        assert self.store.exists(AlertsNrqlCondition.KIND, applied[0].key)

    def test_empty_desired_deletes_everything(self):
        applied = self.sync.reconcile_conditions(self.policy, [_make_nrql(), _make_apm()], [])

        assert self.sync.reconcile_conditions(self.policy, [], applied) == []
        assert self.store.list(AlertsNrqlCondition.KIND) == []
        assert self.store.list(AlertsApmCondition.KIND) == []
        assert self.client.nrql_conditions == {}
        assert self.client.apm_conditions == {}

    def test_missing_child_is_recreated(self):
        applied = self.sync.reconcile_conditions(self.policy, [_make_nrql()], [])
        child = self._child(applied[0])
        child.metadata.finalizers = []
        self.store.update(child)
        self.store.delete(AlertsNrqlCondition.KIND, applied[0].key)

        result = self.sync.reconcile_conditions(self.policy, applied, applied)

        assert result[0].key != applied[0].key
        assert self.store.exists(AlertsNrqlCondition.KIND, result[0].key)

    def test_type_change_replaces_child(self):
        applied = self.sync.reconcile_conditions(self.policy, [_make_nrql("Latency")], [])
        switched = _make_apm("Latency")
        switched.name, switched.namespace = applied[0].name, applied[0].namespace

        result = self.sync.reconcile_conditions(self.policy, [switched], applied)

        assert result[0].kind == AlertsApmCondition.KIND
        assert self.store.list(AlertsNrqlCondition.KIND) == []
        assert self.client.nrql_conditions == {}
        assert len(self.client.apm_conditions) == 1

    def test_one_failure_does_not_stop_the_rest(self):
        self.client.fail("create_nrql_condition", RemoteError("nrql create failed"))

        with pytest.raises(ConditionSyncError) as excinfo:
            self.sync.reconcile_conditions(self.policy, [_make_nrql(), _make_apm()], [])

        err = excinfo.value
        assert "nrql create failed" in str(err)
        assert len(err.errors) == 1
        # Identities created during the pass are carried on the error
        assert all(c.has_identity() for c in err.conditions)
        assert self.client.call_count("create_apm_condition") == 1

    def test_duplicate_names_are_not_deduplicated(self):
        result = self.sync.reconcile_conditions(
            self.policy, [_make_nrql("Same", "1"), _make_nrql("Same", "2")], []
        )
        assert result[0].key != result[1].key
        assert len(self.store.list(AlertsNrqlCondition.KIND)) == 2

    # --- Ownership ---

    def _make_other_policy_condition(self) -> PolicyCondition:
        other = self.store.create(AlertsPolicy(
            metadata=ObjectMeta(name="other-policy"),
            spec=AlertsPolicySpec(
                name="other-policy", account_id=1234, api_key="NRAK-0123456789ABCDEF"
            ),
        ))
        remote = self.client.create_policy(
            1234, RemotePolicyInput(name="other-policy", incident_preference="PER_POLICY")
        )
        other.status.policy_id = remote.id
        return self.sync.reconcile_conditions(other, [_make_nrql()], [])[0]

    def test_foreign_child_is_not_adopted(self):
        theirs = self._make_other_policy_condition()
        before = self._child(theirs)

        claimed = _make_nrql(threshold="10")
        claimed.namespace = theirs.namespace
        claimed.name = theirs.name
        result = self.sync.reconcile_conditions(self.policy, [claimed], [])

        assert result[0].key != theirs.key
        assert result[0].name.startswith("my-policy-condition-")
        after = self._child(theirs)
        assert after.spec == before.spec
        assert after.status == before.status
        assert len(self.client.nrql_conditions) == 2

    def test_delete_leaves_foreign_child(self):
        theirs = self._make_other_policy_condition()
        self.client.reset_calls()

        self.sync.delete_condition(theirs.kind, theirs.key, owner_uid=self.policy.metadata.uid)

        assert self.store.exists(theirs.kind, theirs.key)
        assert self.client.calls == []

    def test_unexpected_errors_propagate(self):
        self.client.fail("create_nrql_condition", RuntimeError("bug"))
        with pytest.raises(RuntimeError):
            self.sync.reconcile_conditions(self.policy, [_make_nrql()], [])
