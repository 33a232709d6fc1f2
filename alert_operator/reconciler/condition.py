"""
Per-object controller for child conditions.

Each AlertsNrqlCondition / AlertsApmCondition carries one remote condition.
A pass either tears the remote condition down (deletion requested) or
creates/updates it from the object's spec, then records the result in the
object's status.

States:
  ABSENT → PENDING (finalizer added) → CONVERGED → DELETING → ABSENT
"""

import logging
from typing import Optional

from alert_operator.credentials.resolver import partial_api_key, resolve_credential
from alert_operator.errors.collector import ConfigurationError
from alert_operator.models.condition import (
    AlertsCondition,
    ConditionStatus,
    ConditionType,
    GenericConditionSpec,
)
from alert_operator.models.reconciler import ReconcileResult, ReconcilerConfig
from alert_operator.models.remote import RemoteCondition
from alert_operator.models.resource import ObjectKey
from alert_operator.remote.client import (
    AlertsClient,
    AlertsClientFactory,
    RemoteError,
    RemoteNotFoundError,
)
from alert_operator.remote.mapping import to_apm_condition_input, to_nrql_condition_input
from alert_operator.store.resources import ObjectNotFound, ResourceStore

logger = logging.getLogger(__name__)


class ConditionReconciler:
    """Reconciles one child condition object against the remote API."""

    def __init__(
        self,
        store: ResourceStore,
        client_factory: AlertsClientFactory,
        config: Optional[ReconcilerConfig] = None,
    ):
        self.store = store
        self.client_factory = client_factory
        self.config = config or ReconcilerConfig()

    def reconcile(self, kind: str, key: ObjectKey) -> ReconcileResult:
        """Run one pass for the condition object `kind` at `key`."""
        try:
            condition = self.store.get(kind, key)
        except ObjectNotFound:
            logger.debug("%s %s not found, nothing to do", kind, key)
            return ReconcileResult()

        spec = condition.spec
        api_key = resolve_credential(spec.api_key, spec.api_key_secret, self.store)
        logger.debug("%s %s: using api key %s", kind, key, partial_api_key(api_key))
        client = self.client_factory(api_key, spec.region)

        finalizer = self.config.condition_finalizer
        if condition.metadata.deletion_requested:
            if condition.metadata.has_finalizer(finalizer):
                self._teardown(client, condition)
            return ReconcileResult()

        if condition.metadata.add_finalizer(finalizer):
            condition = self.store.update(condition)

        if condition.status.applied_spec is not None and condition.spec == condition.status.applied_spec:
            return ReconcileResult()

        if not spec.existing_policy_id:
            raise ConfigurationError(f"{kind} {key} has no target policy id")

        condition_id = condition.status.condition_id
        if not condition_id:
            condition_id = self._find_existing(client, spec)

        if condition_id:
            remote = self._update_remote(client, spec, condition_id)
            logger.info("%s %s: updated remote condition %s", kind, key, remote.id)
        else:
            remote = self._create_remote(client, spec)
            logger.info("%s %s: created remote condition %s", kind, key, remote.id)

        condition.status = ConditionStatus(applied_spec=spec, condition_id=remote.id)
        self.store.update(condition)
        return ReconcileResult()

    def _teardown(self, client: AlertsClient, condition: AlertsCondition) -> None:
        key = condition.metadata.key
        condition_id = condition.status.condition_id
        if condition_id:
            try:
                self._delete_remote(client, condition.spec, condition_id)
                logger.info("%s %s: deleted remote condition %s", condition.kind, key, condition_id)
            except RemoteNotFoundError:
                logger.info(
                    "%s %s: remote condition %s already gone", condition.kind, key, condition_id
                )

        condition.metadata.remove_finalizer(self.config.condition_finalizer)
        self.store.update(condition)

    def _find_existing(
        self, client: AlertsClient, spec: GenericConditionSpec
    ) -> Optional[str]:
        """Id of a remote condition with the same name under the target policy."""
        try:
            if spec.type == ConditionType.NRQL.value:
                existing = client.list_nrql_conditions(spec.account_id, spec.existing_policy_id)
            else:
                existing = client.list_apm_conditions(spec.existing_policy_id)
        except RemoteError as e:
            logger.warning("failed to list conditions of policy %s: %s", spec.existing_policy_id, e)
            return None

        for remote in existing:
            if remote.name == spec.name:
                logger.info("adopting existing remote condition %s (%r)", remote.id, spec.name)
                return remote.id
        return None

    @staticmethod
    def _create_remote(client: AlertsClient, spec: GenericConditionSpec) -> RemoteCondition:
        if spec.type == ConditionType.NRQL.value:
            return client.create_nrql_condition(
                spec.account_id, spec.existing_policy_id, to_nrql_condition_input(spec)
            )
        return client.create_apm_condition(spec.existing_policy_id, to_apm_condition_input(spec))

    @staticmethod
    def _update_remote(
        client: AlertsClient, spec: GenericConditionSpec, condition_id: str
    ) -> RemoteCondition:
        if spec.type == ConditionType.NRQL.value:
            return client.update_nrql_condition(
                spec.account_id, condition_id, to_nrql_condition_input(spec)
            )
        return client.update_apm_condition(condition_id, to_apm_condition_input(spec))

    @staticmethod
    def _delete_remote(
        client: AlertsClient, spec: GenericConditionSpec, condition_id: str
    ) -> None:
        if spec.type == ConditionType.NRQL.value:
            client.delete_nrql_condition(spec.account_id, condition_id)
        else:
            client.delete_apm_condition(condition_id)
