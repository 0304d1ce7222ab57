"""
API Server Tests

Runs the FastAPI app in-process against a dashboard with a fixed clock.
"""

import pytest
from fastapi.testclient import TestClient

from lifeos import LifeDashboard
from lifeos.contracts.events import AuditEventType
from lifeos.api import server

from .fixtures import fixed_clock


@pytest.fixture
def dashboard():
    previous = server.dashboard_instance
    server.dashboard_instance = LifeDashboard(clock=fixed_clock())
    yield server.dashboard_instance
    server.dashboard_instance = previous


@pytest.fixture
def client(dashboard):
    return TestClient(server.app)


class TestHealthAndState:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body['status'] == 'online'
        assert body['snapshots'] == 0

    def test_layer_state(self, client):
        response = client.get("/api/v1/state/alignment")
        assert response.status_code == 200
        assert response.json()['state']['mode'] == 'OVERLOAD'

    def test_unknown_layer(self, client):
        assert client.get("/api/v1/state/weather").status_code == 404

    def test_uninitialized_dashboard(self, dashboard, client):
        server.dashboard_instance = None
        assert client.get("/health").status_code == 503


class TestMilestones:

    def test_create_update_delete(self, client):
        created = client.post("/api/v1/milestones", json={'title': 'Launch', 'completionPct': 20})
        assert created.status_code == 201
        milestone_id = created.json()['id']

        updated = client.patch(f"/api/v1/milestones/{milestone_id}", json={'completionPct': 55})
        assert updated.status_code == 200
        assert updated.json()['completionPct'] == 55
        assert updated.json()['title'] == 'Launch'

        deleted = client.delete(f"/api/v1/milestones/{milestone_id}")
        assert deleted.json() == {'deleted': milestone_id, 'remaining': 0}

    def test_blank_title_rejected(self, client):
        assert client.post("/api/v1/milestones", json={'title': ''}).status_code == 422
        assert client.post("/api/v1/milestones", json={'title': '   '}).status_code == 422

    def test_unknown_milestone(self, client):
        assert client.patch("/api/v1/milestones/missing", json={'title': 'x'}).status_code == 404
        assert client.delete("/api/v1/milestones/missing").status_code == 404
        assert client.post("/api/v1/milestones/missing/commitment").status_code == 404

    def test_unknown_milestone_is_audited(self, dashboard, client):
        client.delete("/api/v1/milestones/ghost")

        errors = dashboard.observability.get_layer_log('store', AuditEventType.ERROR)
        assert [e.entity_id for e in errors] == ['ghost']
        assert errors[0].action == 'unknown_record'

    def test_toggle_commitment(self, client):
        milestone_id = client.post(
            "/api/v1/milestones", json={'title': 'Launch', 'completionPct': 20}
        ).json()['id']

        response = client.post(f"/api/v1/milestones/{milestone_id}/commitment")
        assert response.json() == {'weeklyCommitmentIds': [milestone_id]}

    def test_write_invalidates_layers(self, client):
        before = client.get("/api/v1/state/vision").json()['state']['alignment']['overall']
        client.post("/api/v1/milestones", json={'title': 'Done', 'completionPct': 100})
        after = client.get("/api/v1/state/vision").json()['state']['alignment']['overall']
        assert after > before


class TestVision:

    def test_compute_and_history(self, client):
        computed = client.post("/api/v1/vision/compute")
        assert computed.status_code == 200
        assert computed.json()['metadata']['engineVersion'] == '2.0.0'

        history = client.get("/api/v1/vision/snapshots").json()['snapshots']
        assert len(history) == 1
        assert history[0]['computedAt'] == computed.json()['computedAt']

    def test_insights(self, client):
        client.post("/api/v1/decisions", json={'decision': 'yes'})
        response = client.get("/api/v1/vision/insights", params={'reference_date': '2026-03-12'})
        assert response.json()['decisionCount'] == 1

    def test_insights_for_other_week(self, client):
        client.post("/api/v1/decisions", json={'decision': 'yes'})
        response = client.get("/api/v1/vision/insights", params={'reference_date': '2026-03-16'})
        assert response.json()['decisionCount'] == 0


class TestDecisionsAndChanges:

    def test_log_decision(self, client):
        response = client.post("/api/v1/decisions", json={'decision': 'no', 'note': 'Pass'})
        assert response.status_code == 201
        assert response.json()['alignmentAtDecision'] == 50

    def test_decision_after_compute_records_persisted_drift(self, client):
        computed = client.post("/api/v1/vision/compute").json()
        response = client.post("/api/v1/decisions", json={'decision': 'yes'})
        assert response.json()['driftAtDecision'] == computed['drift']['overall']
        assert response.json()['alignmentAtDecision'] == computed['alignment']['overall']

    def test_invalid_outcome(self, client):
        assert client.post("/api/v1/decisions", json={'decision': 'maybe'}).status_code == 422

    def test_change_feed(self, client):
        client.post("/api/v1/milestones", json={'title': 'Launch'})
        client.post("/api/v1/decisions", json={'decision': 'yes'})

        changes = client.get("/api/v1/changes").json()['changes']
        assert [c['source'] for c in changes] == ['add_milestone', 'log_decision']
