"""Payloads exchanged with the remote alerting API."""

from typing import List, Optional

from pydantic import BaseModel


class RemotePolicyInput(BaseModel):
    name: str
    incident_preference: str


class RemotePolicy(BaseModel):
    id: str
    name: str
    incident_preference: str


class NrqlTermInput(BaseModel):
    operator: str
    priority: str
    threshold: float
    threshold_duration: int
    threshold_occurrences: str


class NrqlExpirationInput(BaseModel):
    expiration_duration: Optional[int] = None
    close_violations_on_expiration: bool = False
    open_violation_on_expiration: bool = False


class NrqlSignalInput(BaseModel):
    aggregation_window: Optional[int] = None
    evaluation_offset: Optional[int] = None
    fill_option: Optional[str] = None
    fill_value: Optional[float] = None


class NrqlConditionInput(BaseModel):
    name: str
    enabled: bool
    description: str = ""
    runbook_url: str = ""
    query: str
    evaluation_offset: int
    terms: List[NrqlTermInput]
    value_function: Optional[str] = None
    violation_time_limit: Optional[str] = None
    expiration: NrqlExpirationInput = NrqlExpirationInput()
    signal: NrqlSignalInput = NrqlSignalInput()


class ApmTermInput(BaseModel):
    duration: int
    operator: str
    priority: str
    threshold: float
    time_function: str


class ApmConditionInput(BaseModel):
    name: str
    enabled: bool
    type: str = "apm_app_metric"
    runbook_url: str = ""
    metric: str
    condition_scope: str
    entities: List[str] = []
    terms: List[ApmTermInput]
    user_defined_metric: str = ""
    user_defined_value_function: str = ""
    gc_metric: str = ""
    violation_close_timer: Optional[int] = None


class RemoteCondition(BaseModel):
    id: str
    policy_id: str
    name: str


class RemoteChannel(BaseModel):
    id: int
    name: str
    type: str = "email"
