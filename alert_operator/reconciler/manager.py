"""
Manager: the default host for the reconcilers.

Runs level-triggered resyncs: every stored policy, then every child
condition, once per heartbeat. Failed objects are retried with exponential
backoff; objects inside their backoff window are skipped until it expires.

States:
  STOPPED → RUNNING (resync every heartbeat) → STOPPED
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Set, Tuple

from alert_operator.errors.collector import ReconcileError
from alert_operator.models.condition import CONDITION_KINDS
from alert_operator.models.policy import AlertsPolicy
from alert_operator.models.reconciler import BackoffState, ReconcileResult, ReconcilerConfig
from alert_operator.models.resource import ObjectKey
from alert_operator.reconciler.condition import ConditionReconciler
from alert_operator.reconciler.policy import PolicyReconciler
from alert_operator.remote.client import AlertsClientFactory
from alert_operator.store.resources import ResourceStore

logger = logging.getLogger(__name__)


class Manager:
    """Wires the reconcilers to a store and drives them."""

    def __init__(
        self,
        store: ResourceStore,
        client_factory: AlertsClientFactory,
        config: Optional[ReconcilerConfig] = None,
    ):
        self.store = store
        self._config = config or ReconcilerConfig()
        self.condition_reconciler = ConditionReconciler(store, client_factory, self._config)
        self.policy_reconciler = PolicyReconciler(
            store, client_factory, self.condition_reconciler, self._config
        )

        self._backoff: Dict[Tuple[str, str], BackoffState] = {}
        self._running = False
        self._last_resync_at: Optional[datetime] = None

    @property
    def config(self) -> ReconcilerConfig:
        return self._config

    @config.setter
    def config(self, config: ReconcilerConfig) -> None:
        self._config = config
        self.condition_reconciler.config = config
        self.policy_reconciler.config = config

    @property
    def status(self) -> str:
        """Current manager status."""
        return "running" if self._running else "stopped"

    @property
    def last_resync_at(self) -> Optional[datetime]:
        return self._last_resync_at

    @property
    def backoff_states(self) -> List[BackoffState]:
        return list(self._backoff.values())

    def get_backoff(self, kind: str, key: ObjectKey) -> Optional[BackoffState]:
        return self._backoff.get((kind, str(key)))

    def reconcile_policy(
        self, key: ObjectKey, current_time: Optional[datetime] = None
    ) -> dict:
        """Run one policy pass and record its outcome."""
        return self._run(
            AlertsPolicy.KIND, key,
            lambda: self.policy_reconciler.reconcile(key),
            current_time,
        )

    def reconcile_condition(
        self, kind: str, key: ObjectKey, current_time: Optional[datetime] = None
    ) -> dict:
        """Run one child condition pass and record its outcome."""
        return self._run(
            kind, key,
            lambda: self.condition_reconciler.reconcile(kind, key),
            current_time,
        )

    def reconcile_once(self, current_time: Optional[datetime] = None) -> List[dict]:
        """
        Resync every policy, then every child condition.
        Returns one result per object that was not backing off.
        """
        if current_time is None:
            current_time = datetime.utcnow()

        results = []
        seen = set()
        for policy in self.store.list(AlertsPolicy.KIND):
            key = policy.metadata.key
            seen.add((AlertsPolicy.KIND, str(key)))
            if self._is_backing_off(AlertsPolicy.KIND, key, current_time):
                continue
            results.append(self.reconcile_policy(key, current_time))

        for kind in CONDITION_KINDS:
            for condition in self.store.list(kind):
                key = condition.metadata.key
                seen.add((kind, str(key)))
                if self._is_backing_off(kind, key, current_time):
                    continue
                results.append(self.reconcile_condition(kind, key, current_time))

        self._prune_backoff(seen)
        self._last_resync_at = current_time
        return results

    def _prune_backoff(self, seen: Set[Tuple[str, str]]) -> None:
        """Forget backoff state of objects that no longer exist."""
        for gone in set(self._backoff) - seen:
            logger.debug("%s %s is gone, dropping its backoff state", *gone)
            del self._backoff[gone]

    def _run(
        self,
        kind: str,
        key: ObjectKey,
        reconcile: Callable[[], ReconcileResult],
        current_time: Optional[datetime],
    ) -> dict:
        if current_time is None:
            current_time = datetime.utcnow()

        try:
            result = reconcile()
        except ReconcileError as e:
            state = self._record_failure(kind, key, e, current_time)
            logger.warning(
                "%s %s failed (attempt %d), retrying after %s: %s",
                kind, key, state.consecutive_failures, state.retry_after.isoformat(), e,
            )
            return {
                "kind": kind,
                "key": str(key),
                "success": False,
                "error": str(e),
                "consecutive_failures": state.consecutive_failures,
                "retry_after": state.retry_after.isoformat(),
            }

        self._backoff.pop((kind, str(key)), None)
        return {
            "kind": kind,
            "key": str(key),
            "success": True,
            "requeue_after_seconds": result.requeue_after_seconds,
        }

    def _is_backing_off(self, kind: str, key: ObjectKey, current_time: datetime) -> bool:
        state = self._backoff.get((kind, str(key)))
        if not state or not state.retry_after:
            return False
        return current_time < state.retry_after

    def _record_failure(
        self, kind: str, key: ObjectKey, error: Exception, current_time: datetime
    ) -> BackoffState:
        state = self._backoff.get((kind, str(key)))
        if not state:
            state = BackoffState(kind=kind, key=str(key))
            self._backoff[(kind, str(key))] = state

        state.consecutive_failures += 1
        state.last_error = str(error)
        state.retry_after = current_time + timedelta(
            seconds=self.backoff_delay(state.consecutive_failures)
        )
        return state

    def backoff_delay(self, failures: int) -> float:
        """Seconds to wait after `failures` consecutive failures."""
        delay = self._config.backoff_base_seconds * (2 ** max(0, failures - 1))
        return min(delay, self._config.backoff_max_seconds)

    async def run_async(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """Resync every heartbeat until `stop_event` is set."""
        self._running = True
        if stop_event is None:
            stop_event = asyncio.Event()

        try:
            while not stop_event.is_set():
                self.reconcile_once()
                try:
                    await asyncio.wait_for(
                        stop_event.wait(),
                        timeout=self._config.heartbeat_interval_seconds,
                    )
                except asyncio.TimeoutError:
                    continue
        finally:
            self._running = False
