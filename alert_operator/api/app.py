"""
Alert Operator API: FastAPI endpoints.

Exposes the operator's functionality via a REST API for:
- Declaring, inspecting and deleting alerts policies
- Inspecting child condition objects
- Storing API key secrets
- Reconciler control
"""

from typing import Dict, List, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from alert_operator.models.condition import CONDITION_KINDS, ApiKeySecret, PolicyCondition
from alert_operator.models.policy import AlertsPolicy, AlertsPolicySpec, IncidentPreference
from alert_operator.models.reconciler import ReconcilerConfig
from alert_operator.models.resource import ObjectKey, ObjectMeta
from alert_operator.reconciler.manager import Manager
from alert_operator.remote.client import AlertsClientFactory
from alert_operator.remote.memory import InMemoryAlertsClient
from alert_operator.store.resources import ObjectNotFound, ResourceConflict, ResourceStore
from alert_operator.sync.fingerprint import find_duplicate_conditions


# --- Request/Response Models ---

class PolicyRequest(BaseModel):
    account_id: int = 0
    region: str = "US"
    incident_preference: IncidentPreference = IncidentPreference.PER_POLICY
    api_key: str = ""
    api_key_secret: ApiKeySecret = ApiKeySecret()
    conditions: List[PolicyCondition] = []
    channel_ids: List[int] = []
    labels: Dict[str, str] = {}


class SecretRequest(BaseModel):
    data: Dict[str, str]


class ReconcilerTriggerResponse(BaseModel):
    results: list
    pass_count: int


def _policy_document(policy: AlertsPolicy) -> dict:
    return {"kind": policy.kind, **policy.model_dump(mode="json")}


# --- Application Factory ---

def create_app(
    store: Optional[ResourceStore] = None,
    client_factory: Optional[AlertsClientFactory] = None,
    config: Optional[ReconcilerConfig] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    app = FastAPI(
        title="Alert Operator API",
        description="Keeps alerts policies, conditions and channels in sync",
        version="0.1.0",
    )

    rs = store or ResourceStore()
    if client_factory is None:
        shared_client = InMemoryAlertsClient()
        client_factory = lambda api_key, region: shared_client  # noqa: E731
        app.state.remote_client = shared_client

    manager = Manager(rs, client_factory, config or ReconcilerConfig())

    app.state.store = rs
    app.state.manager = manager

    # === POLICIES ===

    @app.put("/namespaces/{namespace}/policies/{name}")
    def put_policy(namespace: str, name: str, req: PolicyRequest):
        """Create a policy or replace its desired spec."""
        duplicates = find_duplicate_conditions(req.conditions)
        if duplicates:
            raise HTTPException(
                422,
                {"message": "Duplicate conditions", "duplicates": [list(d) for d in duplicates]},
            )

        spec = AlertsPolicySpec(
            name=name,
            account_id=req.account_id,
            region=req.region,
            incident_preference=req.incident_preference,
            api_key=req.api_key,
            api_key_secret=req.api_key_secret,
            conditions=req.conditions,
            channel_ids=req.channel_ids,
        )
        key = ObjectKey(namespace, name)

        try:
            policy = rs.get(AlertsPolicy.KIND, key)
        except ObjectNotFound:
            policy = rs.create(AlertsPolicy(
                metadata=ObjectMeta(name=name, namespace=namespace, labels=req.labels),
                spec=spec,
            ))
            return _policy_document(policy)

        if policy.metadata.deletion_requested:
            raise HTTPException(409, "Policy is being deleted")
        policy.spec = spec
        policy.metadata.labels = req.labels
        try:
            return _policy_document(rs.update(policy))
        except ResourceConflict:
            raise HTTPException(409, "Policy changed while it was being replaced, retry")

    @app.get("/namespaces/{namespace}/policies")
    def list_policies(namespace: str):
        """List policies with their status."""
        return [_policy_document(p) for p in rs.list(AlertsPolicy.KIND, namespace)]

    @app.get("/namespaces/{namespace}/policies/{name}")
    def get_policy(namespace: str, name: str):
        """Get a policy's spec, status and metadata."""
        try:
            policy = rs.get(AlertsPolicy.KIND, ObjectKey(namespace, name))
        except ObjectNotFound:
            raise HTTPException(404, "Policy not found")
        return _policy_document(policy)

    @app.delete("/namespaces/{namespace}/policies/{name}")
    def delete_policy(namespace: str, name: str):
        """Request deletion; teardown happens on the next pass."""
        key = ObjectKey(namespace, name)
        try:
            rs.delete(AlertsPolicy.KIND, key)
        except ObjectNotFound:
            raise HTTPException(404, "Policy not found")
        return {"status": "deletion_requested", "key": str(key)}

    @app.post("/namespaces/{namespace}/policies/{name}/reconcile")
    def reconcile_policy(namespace: str, name: str):
        """Run one reconcile pass for a policy."""
        key = ObjectKey(namespace, name)
        if not rs.exists(AlertsPolicy.KIND, key):
            raise HTTPException(404, "Policy not found")
        return manager.reconcile_policy(key)

    # === CONDITIONS ===

    @app.get("/namespaces/{namespace}/conditions")
    def list_conditions(namespace: str):
        """Child condition objects owned by policies in a namespace."""
        return [
            {"kind": c.kind, **c.model_dump(mode="json")}
            for kind in CONDITION_KINDS
            for c in rs.list(kind, namespace)
        ]

    # === SECRETS ===

    @app.put("/namespaces/{namespace}/secrets/{name}")
    def put_secret(namespace: str, name: str, req: SecretRequest):
        """Store an API key secret."""
        rs.put_secret(namespace, name, req.data)
        return {"status": "stored", "key": str(ObjectKey(namespace, name)), "keys": sorted(req.data)}

    # === RECONCILER ===

    @app.get("/reconciler/status")
    def reconciler_status():
        """Current manager status."""
        return {
            "status": manager.status,
            "config": manager.config.model_dump(),
            "tracked_policies": len(rs.list(AlertsPolicy.KIND)),
            "tracked_conditions": sum(len(rs.list(kind)) for kind in CONDITION_KINDS),
            "backing_off": [s.model_dump(mode="json") for s in manager.backoff_states],
            "last_resync_at": (
                manager.last_resync_at.isoformat() if manager.last_resync_at else None
            ),
        }

    @app.post("/reconciler/trigger")
    def trigger_reconciliation():
        """Force a resync of every object."""
        results = manager.reconcile_once()
        return ReconcilerTriggerResponse(
            results=results,
            pass_count=len(results),
        )

    @app.get("/reconciler/config")
    def get_reconciler_config():
        """Current reconciler configuration."""
        return manager.config.model_dump()

    @app.put("/reconciler/config")
    def update_reconciler_config(config: ReconcilerConfig):
        """Update reconciler configuration."""
        manager.config = config
        return config.model_dump()

    return app


# Default application instance
app = create_app(config=ReconcilerConfig.from_env())
