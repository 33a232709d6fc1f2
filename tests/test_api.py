"""Tests for the FastAPI API endpoints."""

import pytest
from fastapi.testclient import TestClient

from alert_operator.api.app import create_app
from alert_operator.models.reconciler import ReconcilerConfig
from alert_operator.remote.memory import InMemoryAlertsClient
from alert_operator.store.resources import ResourceStore

NRQL_CONDITION = {
    "spec": {
        "type": "NRQL",
        "name": "NRQL Condition",
        "nrql": {"query": "SELECT count(*) FROM Transaction"},
        "terms": [{"operator": "ABOVE", "priority": "CRITICAL", "threshold": "5"}],
    }
}


@pytest.fixture
def remote():
    return InMemoryAlertsClient()


@pytest.fixture
def client(remote):
    """Create a test client with fresh components."""
    app = create_app(
        store=ResourceStore(),
        client_factory=lambda api_key, region: remote,
        config=ReconcilerConfig(backoff_base_seconds=0),
    )
    return TestClient(app)


def _put_policy(client, name="my-policy", **overrides):
    body = {
        "account_id": 1234,
        "api_key": "NRAK-0123456789ABCDEF",
        "conditions": [NRQL_CONDITION],
        "channel_ids": [1],
    }
    body.update(overrides)
    return client.put(f"/namespaces/default/policies/{name}", json=body)


class TestPolicyEndpoints:
    def test_create_policy(self, client):
        response = _put_policy(client)
        assert response.status_code == 200
        data = response.json()
        assert data["kind"] == "AlertsPolicy"
        assert data["metadata"]["name"] == "my-policy"
        assert data["spec"]["name"] == "my-policy"
        assert data["status"]["policy_id"] is None

    def test_duplicate_conditions_rejected(self, client):
        response = _put_policy(client, conditions=[NRQL_CONDITION, NRQL_CONDITION])
        assert response.status_code == 422
        assert response.json()["detail"]["duplicates"] == [[0, 1]]

    def test_unknown_condition_type_rejected(self, client):
        response = _put_policy(client, conditions=[{"spec": {"type": "BROWSER", "name": "x"}}])
        assert response.status_code == 422

    def test_list_and_get(self, client):
        _put_policy(client, name="a")
        _put_policy(client, name="b")
        assert [p["metadata"]["name"] for p in client.get("/namespaces/default/policies").json()] == ["a", "b"]
        assert client.get("/namespaces/other/policies").json() == []
        assert client.get("/namespaces/default/policies/a").status_code == 200
        assert client.get("/namespaces/default/policies/zzz").status_code == 404

    def test_reconcile_populates_status(self, client, remote):
        _put_policy(client)

        result = client.post("/namespaces/default/policies/my-policy/reconcile").json()
        assert result["success"] is True

        status = client.get("/namespaces/default/policies/my-policy").json()["status"]
        assert status["policy_id"] in remote.policies
        assert status["applied_spec"]["channel_ids"] == [1]
        assert status["applied_spec"]["conditions"][0]["name"].startswith("my-policy-condition-")

        conditions = client.get("/namespaces/default/conditions").json()
        assert len(conditions) == 1
        assert conditions[0]["kind"] == "AlertsNrqlCondition"
        assert conditions[0]["status"]["condition_id"] in remote.nrql_conditions

    def test_reconcile_failure_reported(self, client):
        _put_policy(client, api_key="")
        result = client.post("/namespaces/default/policies/my-policy/reconcile").json()
        assert result["success"] is False
        assert "api_key" in result["error"]

    def test_reconcile_missing_policy(self, client):
        response = client.post("/namespaces/default/policies/nope/reconcile")
        assert response.status_code == 404

    def test_replace_keeps_status(self, client):
        _put_policy(client)
        client.post("/namespaces/default/policies/my-policy/reconcile")

        data = _put_policy(client, channel_ids=[1, 2]).json()

        assert data["spec"]["channel_ids"] == [1, 2]
        assert data["status"]["policy_id"] is not None

    def test_delete_tears_down(self, client, remote):
        _put_policy(client)
        client.post("/namespaces/default/policies/my-policy/reconcile")

        response = client.delete("/namespaces/default/policies/my-policy")
        assert response.status_code == 200
        assert response.json()["status"] == "deletion_requested"

        # Finalizer holds the object until the next pass
        assert client.get("/namespaces/default/policies/my-policy").status_code == 200
        assert _put_policy(client).status_code == 409

        client.post("/namespaces/default/policies/my-policy/reconcile")
        assert client.get("/namespaces/default/policies/my-policy").status_code == 404
        assert client.get("/namespaces/default/conditions").json() == []
        assert remote.policies == {}

    def test_delete_missing(self, client):
        assert client.delete("/namespaces/default/policies/nope").status_code == 404


class TestSecretEndpoints:
    def test_policy_with_secret_reference(self, client, remote):
        response = client.put(
            "/namespaces/default/secrets/nr-secret",
            json={"data": {"api-key": "NRAK-FROM-SECRET"}},
        )
        assert response.json() == {"status": "stored", "key": "default/nr-secret", "keys": ["api-key"]}

        _put_policy(
            client,
            api_key="",
            api_key_secret={"name": "nr-secret", "namespace": "default", "key_name": "api-key"},
        )
        result = client.post("/namespaces/default/policies/my-policy/reconcile").json()
        assert result["success"] is True
        assert len(remote.policies) == 1


class TestReconcilerEndpoints:
    def test_status(self, client):
        _put_policy(client)
        data = client.get("/reconciler/status").json()
        assert data["status"] == "stopped"
        assert data["tracked_policies"] == 1
        assert data["tracked_conditions"] == 0
        assert data["last_resync_at"] is None

    def test_trigger(self, client):
        _put_policy(client)
        data = client.post("/reconciler/trigger").json()
        assert data["pass_count"] == 2
        assert all(r["success"] for r in data["results"])

    def test_trigger_reports_backoff(self, client):
        _put_policy(client, api_key="")
        client.post("/reconciler/trigger")
        backing_off = client.get("/reconciler/status").json()["backing_off"]
        assert backing_off[0]["key"] == "default/my-policy"
        assert backing_off[0]["consecutive_failures"] == 1

    def test_config_round_trip(self, client):
        config = client.get("/reconciler/config").json()
        config["heartbeat_interval_seconds"] = 5
        response = client.put("/reconciler/config", json=config)
        assert response.status_code == 200
        assert client.get("/reconciler/config").json()["heartbeat_interval_seconds"] == 5


class TestDefaultApp:
    def test_default_factory_shares_one_client(self):
        app = create_app()
        client = TestClient(app)
        _put_policy(client)
        client.post("/namespaces/default/policies/my-policy/reconcile")
        assert len(app.state.remote_client.policies) == 1
