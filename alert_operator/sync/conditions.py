"""
Condition Synchronizer converges a policy's child condition objects onto
its declared condition list.

Behavioral Contract:
- Conditions are processed in list order, one at a time.
- A condition without an identity is first matched by name against the
  previously applied list; only then is a new child created.
- New children always get a generated name; a name chosen by the caller is
  never used for the child object.
- Children whose fingerprint matches the declared condition are left alone.
- A child is only adopted or deleted when this policy owns it; an identity
  pointing at another policy's child is dropped and a child of its own is
  resolved or created instead.
- Applied conditions that no declared condition claimed are deleted.
- One failing condition never stops the others. All failures surface at the
  end as a ConditionSyncError that still carries every identity resolved
  during the pass.
"""

import logging
from typing import Dict, List, Optional

from alert_operator.errors.collector import ConditionSyncError, ErrorCollector, ReconcileError
from alert_operator.models.condition import (
    CONDITION_CLASSES,
    AlertsCondition,
    GenericConditionSpec,
    PolicyCondition,
)
from alert_operator.models.policy import AlertsPolicy
from alert_operator.models.resource import ObjectKey, ObjectMeta, OwnerReference
from alert_operator.store.resources import ObjectNotFound, ResourceStore
from alert_operator.sync.fingerprint import fingerprint

logger = logging.getLogger(__name__)


class AppliedEntry:
    """A previously applied condition and whether this pass claimed it."""

    def __init__(self, kind: str, semantic_name: str):
        self.kind = kind
        self.semantic_name = semantic_name
        self.processed = False


def inherit_from_policy(
    spec: GenericConditionSpec, policy: AlertsPolicy
) -> GenericConditionSpec:
    """Copy of a condition spec carrying the fields its policy hands down."""
    return spec.model_copy(
        update={
            "api_key": policy.spec.api_key,
            "api_key_secret": policy.spec.api_key_secret.model_copy(),
            "region": policy.spec.region,
            "account_id": policy.spec.account_id,
            "existing_policy_id": policy.status.policy_id or "",
        },
        deep=True,
    )


def owned_by(child: AlertsCondition, owner_uid: str) -> bool:
    return any(ref.uid == owner_uid for ref in child.metadata.owner_references)


class ConditionSynchronizer:
    """
    Creates, updates and deletes child condition objects for one policy.

    `child_reconciler` is run right after every child write so the remote
    condition follows within the same pass.
    """

    def __init__(self, store: ResourceStore, child_reconciler):
        self.store = store
        self.child_reconciler = child_reconciler

    def reconcile_conditions(
        self,
        policy: AlertsPolicy,
        desired: List[PolicyCondition],
        applied: List[PolicyCondition],
    ) -> List[PolicyCondition]:
        """
        Converge children onto `desired` and return it with identities
        back-filled. `policy.status.policy_id` must already be set.
        """
        conditions = [c.model_copy(deep=True) for c in desired]
        table = self._build_applied_table(applied)
        errors = ErrorCollector()

        for condition in conditions:
            try:
                self._sync_condition(policy, condition, table)
            except ReconcileError as e:
                logger.warning(
                    "policy %s: condition %r failed: %s",
                    policy.metadata.key, condition.spec.name, e,
                )
                errors.collect(e)

        for key, entry in table.items():
            if entry.processed:
                continue
            try:
                self.delete_condition(entry.kind, key, owner_uid=policy.metadata.uid)
            except ReconcileError as e:
                errors.collect(e)

        if errors:
            raise ConditionSyncError(errors, conditions)
        return conditions

    def delete_condition(self, kind: str, key: ObjectKey, owner_uid: Optional[str] = None) -> None:
        """
        Delete a child object and run its teardown. A missing child is fine.
        With `owner_uid`, a child owned by someone else is left alone.
        """
        if owner_uid is not None:
            child = self._fetch_child(kind, key)
            if child is not None and not owned_by(child, owner_uid):
                logger.warning("%s %s is not owned by %s, leaving it", kind, key, owner_uid)
                return
        try:
            self.store.delete(kind, key)
        except ObjectNotFound:
            logger.debug("%s %s already gone", kind, key)
            return
        logger.info("deleting %s %s", kind, key)
        self.child_reconciler.reconcile(kind, key)

    # --- Internals ---

    @staticmethod
    def _build_applied_table(applied: List[PolicyCondition]) -> Dict[ObjectKey, AppliedEntry]:
        table = {}
        for condition in applied:
            if condition.has_identity():
                table[condition.key] = AppliedEntry(condition.kind, condition.spec.name)
        return table

    def _sync_condition(
        self,
        policy: AlertsPolicy,
        condition: PolicyCondition,
        table: Dict[ObjectKey, AppliedEntry],
    ) -> None:
        kind = condition.kind

        child = None
        if condition.has_identity():
            child = self._fetch_owned_child(policy, kind, condition.key)
            if child is None:
                condition.name = ""
                condition.namespace = ""

        if child is None:
            self._resolve_by_name(condition, table)
            if condition.has_identity():
                child = self._fetch_owned_child(policy, kind, condition.key)

        if child is not None:
            entry = table.get(condition.key)
            if entry is not None and entry.kind == kind:
                entry.processed = True
            self._converge_child(policy, condition, child)
            return

        if condition.has_identity():
            logger.warning(
                "policy %s: %s %s is missing, creating a replacement",
                policy.metadata.key, kind, condition.key,
            )
            condition.name = ""
            condition.namespace = ""

        self._create_child(policy, condition)

    @staticmethod
    def _resolve_by_name(
        condition: PolicyCondition, table: Dict[ObjectKey, AppliedEntry]
    ) -> None:
        for key, entry in table.items():
            if entry.processed or entry.kind != condition.kind:
                continue
            if entry.semantic_name == condition.spec.name:
                condition.namespace = key.namespace
                condition.name = key.name
                logger.debug("condition %r resolved to %s", condition.spec.name, key)
                return

    def _fetch_child(self, kind: str, key: ObjectKey) -> Optional[AlertsCondition]:
        try:
            return self.store.get(kind, key)
        except ObjectNotFound:
            return None

    def _fetch_owned_child(
        self, policy: AlertsPolicy, kind: str, key: ObjectKey
    ) -> Optional[AlertsCondition]:
        child = self._fetch_child(kind, key)
        if child is not None and not owned_by(child, policy.metadata.uid):
            logger.warning(
                "policy %s: %s %s belongs to another owner, not adopting it",
                policy.metadata.key, kind, key,
            )
            return None
        return child

    def _converge_child(
        self,
        policy: AlertsPolicy,
        condition: PolicyCondition,
        child: AlertsCondition,
    ) -> None:
        if fingerprint(child.spec) != condition.fingerprint():
            child.spec = inherit_from_policy(condition.spec, policy)
            self.store.update(child)
            logger.info("updated %s %s", child.kind, child.metadata.key)
            self.child_reconciler.reconcile(child.kind, child.metadata.key)
        elif child.spec != child.status.applied_spec:
            # Unchanged, but the child has not converged yet
            self.child_reconciler.reconcile(child.kind, child.metadata.key)

    def _create_child(self, policy: AlertsPolicy, condition: PolicyCondition) -> None:
        cls = CONDITION_CLASSES[condition.spec.type]
        child = cls(
            metadata=ObjectMeta(
                namespace=policy.metadata.namespace,
                generate_name=f"{policy.metadata.name}-condition-",
                labels=dict(policy.metadata.labels),
                owner_references=[
                    OwnerReference(
                        kind=policy.kind,
                        name=policy.metadata.name,
                        uid=policy.metadata.uid,
                    )
                ],
            ),
            spec=inherit_from_policy(condition.spec, policy),
        )
        created = self.store.create(child)
        condition.namespace = created.metadata.namespace
        condition.name = created.metadata.name
        logger.info(
            "policy %s: created %s %s for %r",
            policy.metadata.key, created.kind, created.metadata.key, condition.spec.name,
        )
        self.child_reconciler.reconcile(created.kind, created.metadata.key)
