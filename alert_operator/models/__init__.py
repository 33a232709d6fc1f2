"""Alert operator data models."""

from alert_operator.models.condition import (
    AlertsApmCondition,
    AlertsCondition,
    AlertsNrqlCondition,
    ApiKeySecret,
    ApmConditionSpec,
    ApmConditionTerm,
    ConditionSpec,
    ConditionStatus,
    ConditionType,
    NrqlConditionSpec,
    NrqlConditionTerm,
    NrqlQuery,
    PolicyCondition,
)
from alert_operator.models.policy import (
    AlertsPolicy,
    AlertsPolicySpec,
    AlertsPolicyStatus,
    IncidentPreference,
)
from alert_operator.models.reconciler import (
    BackoffState,
    ReconcileResult,
    ReconcilerConfig,
)
from alert_operator.models.remote import (
    ApmConditionInput,
    NrqlConditionInput,
    RemoteChannel,
    RemoteCondition,
    RemotePolicy,
    RemotePolicyInput,
)
from alert_operator.models.resource import ObjectKey, ObjectMeta, OwnerReference

__all__ = [
    "AlertsApmCondition",
    "AlertsCondition",
    "AlertsNrqlCondition",
    "AlertsPolicy",
    "AlertsPolicySpec",
    "AlertsPolicyStatus",
    "ApiKeySecret",
    "ApmConditionInput",
    "ApmConditionSpec",
    "ApmConditionTerm",
    "BackoffState",
    "ConditionSpec",
    "ConditionStatus",
    "ConditionType",
    "IncidentPreference",
    "NrqlConditionInput",
    "NrqlConditionSpec",
    "NrqlConditionTerm",
    "NrqlQuery",
    "ObjectKey",
    "ObjectMeta",
    "OwnerReference",
    "PolicyCondition",
    "ReconcileResult",
    "ReconcilerConfig",
    "RemoteChannel",
    "RemoteCondition",
    "RemotePolicy",
    "RemotePolicyInput",
]
