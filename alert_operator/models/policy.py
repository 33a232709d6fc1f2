"""The declared desired state of an alerts policy and its observed status."""

from collections import Counter
from enum import Enum
from typing import ClassVar, List, Optional

from pydantic import BaseModel

from alert_operator.models.condition import ApiKeySecret, PolicyCondition
from alert_operator.models.resource import ObjectMeta


class IncidentPreference(str, Enum):
    PER_POLICY = "PER_POLICY"
    PER_CONDITION = "PER_CONDITION"
    PER_CONDITION_AND_TARGET = "PER_CONDITION_AND_TARGET"


class AlertsPolicySpec(BaseModel):
    """Desired state of a policy: its settings, conditions and channels."""

    name: str
    account_id: int = 0
    region: str = "US"
    incident_preference: IncidentPreference = IncidentPreference.PER_POLICY
    api_key: str = ""
    api_key_secret: ApiKeySecret = ApiKeySecret()
    conditions: List[PolicyCondition] = []
    channel_ids: List[int] = []             # Already-resolved channel ids

    def policy_fields_differ(self, other: Optional["AlertsPolicySpec"]) -> bool:
        """True if the fields sent on a remote policy write have changed."""
        if other is None:
            return True
        return (
            self.name != other.name
            or self.incident_preference != other.incident_preference
        )

    def equals(self, other: Optional["AlertsPolicySpec"]) -> bool:
        """
        Semantic equality against a previously applied spec.

        Conditions are compared by fingerprint, so resource identities and
        inherited fields never make two specs unequal. Channel ids are
        compared as sets.
        """
        if other is None:
            return False
        if (
            self.name != other.name
            or self.account_id != other.account_id
            or self.region != other.region
            or self.incident_preference != other.incident_preference
            or self.api_key != other.api_key
            or self.api_key_secret != other.api_key_secret
        ):
            return False
        if set(self.channel_ids) != set(other.channel_ids):
            return False
        if len(self.conditions) != len(other.conditions):
            return False

        ours = Counter(c.fingerprint() for c in self.conditions)
        theirs = Counter(c.fingerprint() for c in other.conditions)
        return ours == theirs


class AlertsPolicyStatus(BaseModel):
    """Observed state: the last fully converged spec and the remote id."""

    applied_spec: Optional[AlertsPolicySpec] = None
    policy_id: Optional[str] = None


class AlertsPolicy(BaseModel):
    """A stored policy object."""

    KIND: ClassVar[str] = "AlertsPolicy"

    metadata: ObjectMeta
    spec: AlertsPolicySpec
    status: AlertsPolicyStatus = AlertsPolicyStatus()

    @property
    def kind(self) -> str:
        return self.KIND
