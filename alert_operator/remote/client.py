"""
The remote monitoring API, as seen by the reconcilers.

Behavioral Contract:
- Every call is synchronous and may raise RemoteError.
- Deleting or updating an object the remote side does not know raises
  RemoteNotFoundError.
- Ids are assigned by the remote side and are opaque to the operator.
- Timeouts are the implementation's concern.
"""

from typing import Callable, List, Protocol

from alert_operator.errors.collector import ReconcileError
from alert_operator.models.remote import (
    ApmConditionInput,
    NrqlConditionInput,
    RemoteChannel,
    RemoteCondition,
    RemotePolicy,
    RemotePolicyInput,
)


class RemoteError(ReconcileError):
    """A remote API call failed."""
    pass


class RemoteNotFoundError(RemoteError):
    """The remote side has no object with the given id."""
    pass


class AlertsClient(Protocol):
    """Remote operations on policies, conditions and channel links."""

    # Policies
    def create_policy(self, account_id: int, policy: RemotePolicyInput) -> RemotePolicy: ...

    def update_policy(
        self, account_id: int, policy_id: str, policy: RemotePolicyInput
    ) -> RemotePolicy: ...

    def delete_policy(self, account_id: int, policy_id: str) -> None: ...

    def find_policies_by_name(self, name: str) -> List[RemotePolicy]: ...

    # NRQL conditions
    def create_nrql_condition(
        self, account_id: int, policy_id: str, condition: NrqlConditionInput
    ) -> RemoteCondition: ...

    def update_nrql_condition(
        self, account_id: int, condition_id: str, condition: NrqlConditionInput
    ) -> RemoteCondition: ...

    def delete_nrql_condition(self, account_id: int, condition_id: str) -> None: ...

    def list_nrql_conditions(self, account_id: int, policy_id: str) -> List[RemoteCondition]: ...

    # APM conditions
    def create_apm_condition(
        self, policy_id: str, condition: ApmConditionInput
    ) -> RemoteCondition: ...

    def update_apm_condition(
        self, condition_id: str, condition: ApmConditionInput
    ) -> RemoteCondition: ...

    def delete_apm_condition(self, condition_id: str) -> None: ...

    def list_apm_conditions(self, policy_id: str) -> List[RemoteCondition]: ...

    # Channels
    def attach_channels(self, policy_id: str, channel_ids: List[int]) -> None: ...

    def detach_channel(self, policy_id: str, channel_id: int) -> None: ...

    def list_channels(self) -> List[RemoteChannel]: ...


# (api_key, region) -> client bound to those credentials
AlertsClientFactory = Callable[[str, str], AlertsClient]
