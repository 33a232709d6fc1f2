"""Field-by-field mapping from declared specs to remote API payloads."""

from typing import Optional

from alert_operator.errors.collector import ConfigurationError
from alert_operator.models.condition import ApmConditionSpec, NrqlConditionSpec
from alert_operator.models.policy import AlertsPolicySpec
from alert_operator.models.remote import (
    ApmConditionInput,
    ApmTermInput,
    NrqlConditionInput,
    NrqlExpirationInput,
    NrqlSignalInput,
    NrqlTermInput,
    RemotePolicyInput,
)


def _parse_float(value: str, field: str, condition_name: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(
            f"condition {condition_name!r}: {field} {value!r} is not a number"
        ) from None


def _parse_int(value: str, field: str, condition_name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(
            f"condition {condition_name!r}: {field} {value!r} is not an integer"
        ) from None


def to_policy_input(spec: AlertsPolicySpec) -> RemotePolicyInput:
    return RemotePolicyInput(
        name=spec.name,
        incident_preference=spec.incident_preference.value,
    )


def to_nrql_condition_input(spec: NrqlConditionSpec) -> NrqlConditionInput:
    terms = [
        NrqlTermInput(
            operator=term.operator,
            priority=term.priority,
            threshold=_parse_float(term.threshold, "threshold", spec.name),
            threshold_duration=term.threshold_duration,
            threshold_occurrences=term.threshold_occurrences,
        )
        for term in spec.terms
    ]

    fill_value: Optional[float] = None
    if spec.signal.fill_value:
        fill_value = _parse_float(spec.signal.fill_value, "signal.fill_value", spec.name)

    return NrqlConditionInput(
        name=spec.name,
        enabled=spec.enabled,
        description=spec.description,
        runbook_url=spec.runbook_url,
        query=spec.nrql.query,
        evaluation_offset=spec.nrql.evaluation_offset,
        terms=terms,
        value_function=spec.value_function,
        violation_time_limit=spec.violation_time_limit or None,
        expiration=NrqlExpirationInput(
            expiration_duration=spec.expiration.expiration_duration,
            close_violations_on_expiration=spec.expiration.close_violations_on_expiration,
            open_violation_on_expiration=spec.expiration.open_violation_on_expiration,
        ),
        signal=NrqlSignalInput(
            aggregation_window=spec.signal.aggregation_window,
            evaluation_offset=spec.signal.evaluation_offset,
            fill_option=spec.signal.fill_option,
            fill_value=fill_value,
        ),
    )


def to_apm_condition_input(spec: ApmConditionSpec) -> ApmConditionInput:
    # APM terms carry durations and thresholds as text
    terms = [
        ApmTermInput(
            duration=_parse_int(term.duration, "duration", spec.name),
            operator=term.operator,
            priority=term.priority,
            threshold=_parse_float(term.threshold, "threshold", spec.name),
            time_function=term.time_function,
        )
        for term in spec.terms
    ]

    return ApmConditionInput(
        name=spec.name,
        enabled=spec.enabled,
        runbook_url=spec.runbook_url,
        metric=spec.metric,
        condition_scope=spec.condition_scope,
        entities=list(spec.entities),
        terms=terms,
        user_defined_metric=spec.user_defined.metric,
        user_defined_value_function=spec.user_defined.value_function,
        gc_metric=spec.gc_metric,
        violation_close_timer=spec.violation_close_timer or None,
    )
