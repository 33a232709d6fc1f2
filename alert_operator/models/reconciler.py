"""Reconciler configuration, pass results and retry backoff state."""

import os
from datetime import datetime
from typing import Optional

from pydantic import BaseModel

ENV_PREFIX = "ALERT_OPERATOR_"


class ReconcilerConfig(BaseModel):
    """Configuration for the policy and condition reconcilers."""

    heartbeat_interval_seconds: int = 60
    backoff_base_seconds: float = 5.0
    backoff_max_seconds: float = 300.0
    policy_finalizer: str = "alertspolicies.finalizers.alerts.operator"
    condition_finalizer: str = "alertsconditions.finalizers.alerts.operator"
    default_namespace: str = "default"

    @classmethod
    def from_env(cls) -> "ReconcilerConfig":
        """Build a config from ALERT_OPERATOR_* variables, keeping defaults."""
        values = {}
        for field_name in cls.model_fields:
            raw = os.environ.get(ENV_PREFIX + field_name.upper())
            if raw is not None:
                values[field_name] = raw
        return cls.model_validate(values)


class ReconcileResult(BaseModel):
    """Outcome of one successful reconcile pass."""

    requeue_after_seconds: Optional[float] = None


class BackoffState(BaseModel):
    """Retry schedule for an object whose last pass failed."""

    kind: str
    key: str
    consecutive_failures: int = 0
    last_error: Optional[str] = None
    retry_after: Optional[datetime] = None
