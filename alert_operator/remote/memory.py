"""
In-memory Alerts Client.

Keeps policies, conditions and channel links in process. Used as the
default backend of the API app and as the remote side in tests: every call
is recorded, and any method can be made to fail.
"""

from typing import Dict, List, Optional, Set, Tuple

from alert_operator.models.remote import (
    ApmConditionInput,
    NrqlConditionInput,
    RemoteChannel,
    RemoteCondition,
    RemotePolicy,
    RemotePolicyInput,
)
from alert_operator.remote.client import RemoteNotFoundError

WRITE_METHODS = (
    "create_policy",
    "update_policy",
    "delete_policy",
    "create_nrql_condition",
    "update_nrql_condition",
    "delete_nrql_condition",
    "create_apm_condition",
    "update_apm_condition",
    "delete_apm_condition",
    "attach_channels",
    "detach_channel",
)


class InMemoryAlertsClient:
    """A complete AlertsClient backed by dictionaries."""

    def __init__(self, region: str = "US"):
        self.region = region
        self.policies: Dict[str, RemotePolicy] = {}
        self.nrql_conditions: Dict[str, Tuple[RemoteCondition, NrqlConditionInput]] = {}
        self.apm_conditions: Dict[str, Tuple[RemoteCondition, ApmConditionInput]] = {}
        self.channels: Dict[int, RemoteChannel] = {}
        self.policy_channels: Dict[str, Set[int]] = {}
        self.calls: List[Tuple[str, tuple]] = []
        self._failures: Dict[str, Exception] = {}
        self._next_id = 100

    # --- Test hooks ---

    def fail(self, method: str, error: Exception) -> None:
        """Make every call to `method` raise `error` until cleared."""
        self._failures[method] = error

    def clear_failures(self) -> None:
        self._failures.clear()

    def reset_calls(self) -> None:
        self.calls = []

    def call_count(self, *methods: str) -> int:
        wanted = methods or WRITE_METHODS
        return sum(1 for name, _ in self.calls if name in wanted)

    def calls_to(self, method: str) -> List[tuple]:
        return [args for name, args in self.calls if name == method]

    def add_channel(self, name: str, channel_type: str = "email") -> RemoteChannel:
        channel = RemoteChannel(id=self._allocate_id(), name=name, type=channel_type)
        self.channels[channel.id] = channel
        return channel

    def _record(self, method: str, *args) -> None:
        self.calls.append((method, args))
        error = self._failures.get(method)
        if error is not None:
            raise error

    def _allocate_id(self) -> int:
        self._next_id += 1
        return self._next_id

    # --- Policies ---

    def create_policy(self, account_id: int, policy: RemotePolicyInput) -> RemotePolicy:
        self._record("create_policy", account_id, policy)
        created = RemotePolicy(
            id=str(self._allocate_id()),
            name=policy.name,
            incident_preference=policy.incident_preference,
        )
        self.policies[created.id] = created
        self.policy_channels[created.id] = set()
        return created

    def update_policy(
        self, account_id: int, policy_id: str, policy: RemotePolicyInput
    ) -> RemotePolicy:
        self._record("update_policy", account_id, policy_id, policy)
        if policy_id not in self.policies:
            raise RemoteNotFoundError(f"policy {policy_id} not found")
        updated = RemotePolicy(
            id=policy_id,
            name=policy.name,
            incident_preference=policy.incident_preference,
        )
        self.policies[policy_id] = updated
        return updated

    def delete_policy(self, account_id: int, policy_id: str) -> None:
        self._record("delete_policy", account_id, policy_id)
        if self.policies.pop(policy_id, None) is None:
            raise RemoteNotFoundError(f"policy {policy_id} not found")
        self.policy_channels.pop(policy_id, None)
        for store in (self.nrql_conditions, self.apm_conditions):
            for condition_id in [c for c, (rc, _) in store.items() if rc.policy_id == policy_id]:
                del store[condition_id]

    def find_policies_by_name(self, name: str) -> List[RemotePolicy]:
        self._record("find_policies_by_name", name)
        # Substring match, like the remote search; callers compare exactly
        return [p for p in self.policies.values() if name in p.name]

    # --- NRQL conditions ---

    def _require_policy(self, policy_id: str) -> None:
        if policy_id not in self.policies:
            raise RemoteNotFoundError(f"policy {policy_id} not found")

    def create_nrql_condition(
        self, account_id: int, policy_id: str, condition: NrqlConditionInput
    ) -> RemoteCondition:
        self._record("create_nrql_condition", account_id, policy_id, condition)
        self._require_policy(policy_id)
        created = RemoteCondition(
            id=str(self._allocate_id()), policy_id=policy_id, name=condition.name
        )
        self.nrql_conditions[created.id] = (created, condition)
        return created

    def update_nrql_condition(
        self, account_id: int, condition_id: str, condition: NrqlConditionInput
    ) -> RemoteCondition:
        self._record("update_nrql_condition", account_id, condition_id, condition)
        if condition_id not in self.nrql_conditions:
            raise RemoteNotFoundError(f"condition {condition_id} not found")
        existing, _ = self.nrql_conditions[condition_id]
        updated = RemoteCondition(
            id=condition_id, policy_id=existing.policy_id, name=condition.name
        )
        self.nrql_conditions[condition_id] = (updated, condition)
        return updated

    def delete_nrql_condition(self, account_id: int, condition_id: str) -> None:
        self._record("delete_nrql_condition", account_id, condition_id)
        if self.nrql_conditions.pop(condition_id, None) is None:
            raise RemoteNotFoundError(f"condition {condition_id} not found")

    def list_nrql_conditions(self, account_id: int, policy_id: str) -> List[RemoteCondition]:
        self._record("list_nrql_conditions", account_id, policy_id)
        return [rc for rc, _ in self.nrql_conditions.values() if rc.policy_id == policy_id]

    # --- APM conditions ---

    def create_apm_condition(
        self, policy_id: str, condition: ApmConditionInput
    ) -> RemoteCondition:
        self._record("create_apm_condition", policy_id, condition)
        self._require_policy(policy_id)
        created = RemoteCondition(
            id=str(self._allocate_id()), policy_id=policy_id, name=condition.name
        )
        self.apm_conditions[created.id] = (created, condition)
        return created

    def update_apm_condition(
        self, condition_id: str, condition: ApmConditionInput
    ) -> RemoteCondition:
        self._record("update_apm_condition", condition_id, condition)
        if condition_id not in self.apm_conditions:
            raise RemoteNotFoundError(f"condition {condition_id} not found")
        existing, _ = self.apm_conditions[condition_id]
        updated = RemoteCondition(
            id=condition_id, policy_id=existing.policy_id, name=condition.name
        )
        self.apm_conditions[condition_id] = (updated, condition)
        return updated

    def delete_apm_condition(self, condition_id: str) -> None:
        self._record("delete_apm_condition", condition_id)
        if self.apm_conditions.pop(condition_id, None) is None:
            raise RemoteNotFoundError(f"condition {condition_id} not found")

    def list_apm_conditions(self, policy_id: str) -> List[RemoteCondition]:
        self._record("list_apm_conditions", policy_id)
        return [rc for rc, _ in self.apm_conditions.values() if rc.policy_id == policy_id]

    # --- Channels ---

    def attach_channels(self, policy_id: str, channel_ids: List[int]) -> None:
        self._record("attach_channels", policy_id, list(channel_ids))
        self._require_policy(policy_id)
        self.policy_channels.setdefault(policy_id, set()).update(channel_ids)

    def detach_channel(self, policy_id: str, channel_id: int) -> None:
        self._record("detach_channel", policy_id, channel_id)
        linked = self.policy_channels.get(policy_id, set())
        if channel_id not in linked:
            raise RemoteNotFoundError(
                f"channel {channel_id} is not linked to policy {policy_id}"
            )
        linked.discard(channel_id)

    def list_channels(self) -> List[RemoteChannel]:
        self._record("list_channels")
        return list(self.channels.values())

    def linked_channels(self, policy_id: str) -> Optional[Set[int]]:
        return self.policy_channels.get(policy_id)
