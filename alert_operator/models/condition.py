"""Alert condition specs for the two condition kinds a policy can own."""

from enum import Enum
from typing import Annotated, ClassVar, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from alert_operator.models.resource import ObjectKey, ObjectMeta


class ConditionType(str, Enum):
    NRQL = "NRQL"   # Query-based condition
    APM = "APM"     # Application metric condition


class ApiKeySecret(BaseModel):
    """Reference to a secret entry holding an API key."""

    name: str = ""
    namespace: str = ""
    key_name: str = ""

    def is_empty(self) -> bool:
        return not (self.name or self.namespace or self.key_name)


class NrqlConditionTerm(BaseModel):
    """One threshold tuple of a NRQL condition."""

    operator: str = "ABOVE"                 # ABOVE | BELOW | EQUALS
    priority: str = "CRITICAL"              # CRITICAL | WARNING
    threshold: str = "0"                    # Kept as text, parsed on mapping
    threshold_duration: int = 60            # Seconds
    threshold_occurrences: str = "ALL"      # ALL | AT_LEAST_ONCE


class ApmConditionTerm(BaseModel):
    """One threshold tuple of an APM metric condition."""

    duration: str = "5"                     # Minutes
    operator: str = "above"
    priority: str = "critical"
    threshold: str = "0"
    time_function: str = "all"              # all | any


class NrqlQuery(BaseModel):
    query: str = ""
    evaluation_offset: int = 3


class NrqlExpiration(BaseModel):
    """How violations are opened or closed when a signal expires."""

    expiration_duration: Optional[int] = None
    close_violations_on_expiration: bool = False
    open_violation_on_expiration: bool = False


class NrqlSignal(BaseModel):
    aggregation_window: Optional[int] = None
    evaluation_offset: Optional[int] = None
    fill_option: Optional[str] = None       # NONE | LAST_VALUE | STATIC
    fill_value: str = ""


class ApmUserDefined(BaseModel):
    metric: str = ""
    value_function: str = ""


class GenericConditionSpec(BaseModel):
    """Fields shared by every condition kind."""

    name: str = ""                          # Name shown in the remote system
    enabled: bool = True
    runbook_url: str = ""

    # Inherited from the parent policy; never part of the condition's identity
    api_key: str = ""
    api_key_secret: ApiKeySecret = ApiKeySecret()
    region: str = ""
    account_id: int = 0
    existing_policy_id: str = ""

    INHERITED_FIELDS: ClassVar[tuple] = (
        "api_key",
        "api_key_secret",
        "region",
        "account_id",
        "existing_policy_id",
    )


class NrqlConditionSpec(GenericConditionSpec):
    type: Literal["NRQL"] = "NRQL"
    terms: List[NrqlConditionTerm] = []
    description: str = ""
    nrql: NrqlQuery = NrqlQuery()
    value_function: Optional[str] = None    # SINGLE_VALUE | SUM
    expected_groups: int = 0
    ignore_overlap: bool = False
    violation_time_limit: str = ""          # e.g. ONE_HOUR
    expiration: NrqlExpiration = NrqlExpiration()
    signal: NrqlSignal = NrqlSignal()


class ApmConditionSpec(GenericConditionSpec):
    type: Literal["APM"] = "APM"
    terms: List[ApmConditionTerm] = []
    metric: str = ""                        # e.g. apdex, error_percentage
    user_defined: ApmUserDefined = ApmUserDefined()
    condition_scope: str = "application"    # application | instance
    entities: List[str] = []
    gc_metric: str = ""
    violation_close_timer: int = 0


ConditionSpec = Annotated[
    Union[NrqlConditionSpec, ApmConditionSpec],
    Field(discriminator="type"),
]


class PolicyCondition(BaseModel):
    """
    A condition as declared inside a policy.

    `name`/`namespace` identify the child condition object that carries this
    condition. They start empty and are back-filled once the child exists;
    callers cannot choose them (new children always get a generated name).
    """

    name: str = ""
    namespace: str = ""
    spec: ConditionSpec

    @property
    def key(self) -> ObjectKey:
        return ObjectKey(self.namespace, self.name)

    @property
    def kind(self) -> str:
        return condition_kind(self.spec)

    def has_identity(self) -> bool:
        return bool(self.name)

    def fingerprint(self) -> int:
        from alert_operator.sync.fingerprint import fingerprint
        return fingerprint(self.spec)


class ConditionStatus(BaseModel):
    """Observed state of a child condition object."""

    applied_spec: Optional[ConditionSpec] = None
    condition_id: Optional[str] = None      # Remote id, once created


class AlertsCondition(BaseModel):
    """Base for the child condition objects a policy owns."""

    KIND: ClassVar[str] = ""

    metadata: ObjectMeta
    status: ConditionStatus = ConditionStatus()

    @property
    def kind(self) -> str:
        return self.KIND


class AlertsNrqlCondition(AlertsCondition):
    KIND: ClassVar[str] = "AlertsNrqlCondition"

    spec: NrqlConditionSpec


class AlertsApmCondition(AlertsCondition):
    KIND: ClassVar[str] = "AlertsApmCondition"

    spec: ApmConditionSpec


CONDITION_CLASSES = {
    ConditionType.NRQL.value: AlertsNrqlCondition,
    ConditionType.APM.value: AlertsApmCondition,
}

CONDITION_KINDS = tuple(cls.KIND for cls in CONDITION_CLASSES.values())


def condition_kind(spec: GenericConditionSpec) -> str:
    """Child object kind that carries a condition spec."""
    return CONDITION_CLASSES[spec.type].KIND
