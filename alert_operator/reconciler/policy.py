"""
Policy Reconciler: the top-level state machine for one alerts policy.

States:
  ABSENT → PENDING_IDENTITY → CONVERGED → DELETING → ABSENT

Behavioral Contract:
- A pass that finds nothing to do makes no remote write.
- The applied baseline only advances after conditions AND channels have
  fully converged; a partial failure leaves it where it was.
- Identities resolved during a failed pass are kept on the desired spec so
  the retry reuses them.
- A missing policy, or a remote "not found" during teardown, is success.
- Every error raised here is retryable; retry timing belongs to the host.
"""

import logging
from typing import Dict, List, Optional

from alert_operator.credentials.resolver import partial_api_key, resolve_credential
from alert_operator.errors.collector import (
    ChannelSyncError,
    ConditionSyncError,
    ErrorCollector,
    ReconcileError,
    TeardownError,
)
from alert_operator.models.condition import PolicyCondition
from alert_operator.models.policy import AlertsPolicy
from alert_operator.models.reconciler import ReconcileResult, ReconcilerConfig
from alert_operator.models.resource import ObjectKey
from alert_operator.reconciler.condition import ConditionReconciler
from alert_operator.remote.client import (
    AlertsClient,
    AlertsClientFactory,
    RemoteError,
    RemoteNotFoundError,
)
from alert_operator.remote.mapping import to_policy_input
from alert_operator.store.resources import ObjectNotFound, ResourceConflict, ResourceStore
from alert_operator.sync.channels import ChannelSynchronizer
from alert_operator.sync.conditions import ConditionSynchronizer

logger = logging.getLogger(__name__)


class PolicyReconciler:
    """
    Converges one AlertsPolicy object onto the remote API.

    Holds no per-pass state, so different policies can be reconciled
    concurrently through the same instance.
    """

    def __init__(
        self,
        store: ResourceStore,
        client_factory: AlertsClientFactory,
        condition_reconciler: ConditionReconciler,
        config: Optional[ReconcilerConfig] = None,
    ):
        self.store = store
        self.client_factory = client_factory
        self.condition_reconciler = condition_reconciler
        self.config = config or ReconcilerConfig()

    def reconcile(self, key: ObjectKey) -> ReconcileResult:
        """Run one pass for the policy at `key`."""
        try:
            policy = self.store.get(AlertsPolicy.KIND, key)
        except ObjectNotFound:
            logger.debug("policy %s not found, nothing to do", key)
            return ReconcileResult()

        api_key = resolve_credential(
            policy.spec.api_key, policy.spec.api_key_secret, self.store
        )
        logger.debug("policy %s: using api key %s", key, partial_api_key(api_key))
        client = self.client_factory(api_key, policy.spec.region)

        finalizer = self.config.policy_finalizer
        if policy.metadata.deletion_requested:
            if policy.metadata.has_finalizer(finalizer):
                self._teardown(client, policy)
            return ReconcileResult()

        if policy.metadata.add_finalizer(finalizer):
            policy = self.store.update(policy)

        applied = policy.status.applied_spec
        if policy.spec.equals(applied):
            logger.debug("policy %s unchanged", key)
            return ReconcileResult()

        policy = self._sync_policy(client, policy)

        synchronizer = ConditionSynchronizer(self.store, self.condition_reconciler)
        try:
            conditions = synchronizer.reconcile_conditions(
                policy,
                policy.spec.conditions,
                applied.conditions if applied else [],
            )
        except ConditionSyncError as e:
            self._keep_identities(policy, e.conditions)
            raise

        try:
            ChannelSynchronizer(client).reconcile_channels(
                policy.status.policy_id,
                policy.spec.channel_ids,
                applied.channel_ids if applied else [],
            )
        except ChannelSyncError:
            self._keep_identities(policy, conditions)
            raise

        policy.spec.conditions = conditions
        policy.status.applied_spec = policy.spec.model_copy(deep=True)
        try:
            self.store.update(policy)
        except ResourceConflict:
            logger.info("policy %s changed during the pass, will retry", key)
            self._merge_identities(key, conditions)
            raise
        logger.info("policy %s converged (remote id %s)", key, policy.status.policy_id)
        return ReconcileResult()

    def _sync_policy(self, client: AlertsClient, policy: AlertsPolicy) -> AlertsPolicy:
        """Create, adopt or update the remote policy and persist its id."""
        spec = policy.spec
        policy_id = policy.status.policy_id
        if not policy_id:
            policy_id = self._find_existing(client, spec.name)

        if policy_id:
            if spec.policy_fields_differ(policy.status.applied_spec):
                client.update_policy(spec.account_id, policy_id, to_policy_input(spec))
                logger.info("policy %s: updated remote policy %s", policy.metadata.key, policy_id)
        else:
            policy_id = client.create_policy(spec.account_id, to_policy_input(spec)).id
            logger.info("policy %s: created remote policy %s", policy.metadata.key, policy_id)

        if policy.status.policy_id != policy_id:
            policy.status.policy_id = policy_id
            policy = self.store.update(policy)
        return policy

    @staticmethod
    def _find_existing(client: AlertsClient, name: str) -> Optional[str]:
        try:
            candidates = client.find_policies_by_name(name)
        except RemoteError as e:
            logger.warning("failed to look up policy %r by name: %s", name, e)
            return None

        for candidate in candidates:
            if candidate.name == name:
                logger.info("adopting existing remote policy %s (%r)", candidate.id, name)
                return candidate.id
        return None

    def _keep_identities(self, policy: AlertsPolicy, conditions: List[PolicyCondition]) -> None:
        """Persist back-filled identities on the desired spec only."""
        policy.spec.conditions = conditions
        try:
            self.store.update(policy)
        except ResourceConflict:
            self._merge_identities(policy.metadata.key, conditions)
        except ObjectNotFound:
            logger.warning("policy %s vanished before identities were saved", policy.metadata.key)

    def _merge_identities(self, key: ObjectKey, conditions: List[PolicyCondition]) -> None:
        """
        Back-fill identities onto a policy that was rewritten during the pass.

        A declared condition without an identity takes the identity this pass
        resolved for a condition of the same kind and name, so the retry
        reuses that child instead of creating another one.
        """
        try:
            fresh = self.store.get(AlertsPolicy.KIND, key)
        except ObjectNotFound:
            return

        claimed = {c.key for c in fresh.spec.conditions if c.has_identity()}
        changed = False
        for condition in fresh.spec.conditions:
            if condition.has_identity():
                continue
            for resolved in conditions:
                if not resolved.has_identity() or resolved.key in claimed:
                    continue
                if resolved.kind == condition.kind and resolved.spec.name == condition.spec.name:
                    condition.namespace = resolved.namespace
                    condition.name = resolved.name
                    claimed.add(resolved.key)
                    changed = True
                    break

        if not changed:
            return
        try:
            self.store.update(fresh)
        except (ResourceConflict, ObjectNotFound) as e:
            logger.warning("policy %s: could not save condition identities: %s", key, e)

    def _teardown(self, client: AlertsClient, policy: AlertsPolicy) -> None:
        key = policy.metadata.key
        policy_id = policy.status.policy_id

        if policy_id:
            synchronizer = ConditionSynchronizer(self.store, self.condition_reconciler)
            errors = ErrorCollector()
            for condition in self._owned_conditions(policy):
                try:
                    synchronizer.delete_condition(
                        condition.kind, condition.key, owner_uid=policy.metadata.uid
                    )
                except ReconcileError as e:
                    errors.collect(e)
            if errors:
                raise TeardownError(errors)

            try:
                client.delete_policy(policy.spec.account_id, policy_id)
                logger.info("policy %s: deleted remote policy %s", key, policy_id)
            except RemoteNotFoundError:
                logger.info("policy %s: remote policy %s already gone", key, policy_id)

        policy.metadata.remove_finalizer(self.config.policy_finalizer)
        self.store.update(policy)

    @staticmethod
    def _owned_conditions(policy: AlertsPolicy) -> List[PolicyCondition]:
        """Applied conditions, plus identities back-filled by a failed pass."""
        found: Dict[ObjectKey, PolicyCondition] = {}
        applied = policy.status.applied_spec
        for condition in (applied.conditions if applied else []) + policy.spec.conditions:
            if condition.has_identity():
                found.setdefault(condition.key, condition)
        return list(found.values())
