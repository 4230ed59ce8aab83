from datetime import datetime, timedelta, timezone

from app.services.approver_policy import set_approver_policy
from tests.mocks import StaticApproverPolicy


def _create_task(client, headers, assignee, **overrides):
    body = {"title": "Update training matrix", "assigned_to": str(assignee.id)}
    body.update(overrides)
    resp = client.post("/tasks", json=body, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


class TestTaskEndpoints:
    def test_create_and_get(self, client, headers_for, manager, person):
        data = _create_task(client, headers_for(manager), person, priority="urgent")
        assert data["status"] == "pending"
        assert data["priority"] == "urgent"
        assert data["assigned_by"] == str(manager.id)
        resp = client.get(f"/tasks/{data['id']}", headers=headers_for(person))
        assert resp.json()["id"] == data["id"]

    def test_list_by_assignee(self, client, headers_for, manager, person):
        _create_task(client, headers_for(manager), person)
        _create_task(client, headers_for(manager), manager)
        resp = client.get(
            f"/tasks?assigned_to={person.id}", headers=headers_for(person)
        )
        assert resp.json()["count"] == 1

    def test_transition_flow(self, client, headers_for, manager, person):
        data = _create_task(client, headers_for(manager), person)
        url = f"/tasks/{data['id']}/transition"
        resp = client.post(url, json={"status": "in_progress"}, headers=headers_for(person))
        assert resp.status_code == 200
        resp = client.post(url, json={"status": "completed"}, headers=headers_for(person))
        assert resp.json()["completed_at"] is not None

        resp = client.post(url, json={"status": "in_progress"}, headers=headers_for(person))
        assert resp.status_code == 409
        body = resp.json()
        assert body["code"] == "invalid_transition"
        assert body["details"]["current_state"] == "completed"
        assert body["details"]["requested_state"] == "in_progress"

    def test_transition_forbidden(self, client, headers_for, manager, person, other_person):
        data = _create_task(client, headers_for(manager), person)
        resp = client.post(
            f"/tasks/{data['id']}/transition",
            json={"status": "in_progress"},
            headers=headers_for(other_person),
        )
        assert resp.status_code == 403

    def test_submit_for_approval(self, client, headers_for, manager, person):
        set_approver_policy(StaticApproverPolicy(manager))
        data = _create_task(client, headers_for(manager), person)
        client.post(
            f"/tasks/{data['id']}/transition",
            json={"status": "in_progress"},
            headers=headers_for(person),
        )
        resp = client.post(f"/tasks/{data['id']}/submit", headers=headers_for(person))
        assert resp.status_code == 200

        approvals = client.get(
            "/approvals?entity_type=task", headers=headers_for(manager)
        ).json()["items"]
        assert len(approvals) == 1
        client.post(
            f"/approvals/{approvals[0]['id']}/resolve",
            json={"decision": "approved"},
            headers=headers_for(manager),
        )
        task = client.get(f"/tasks/{data['id']}", headers=headers_for(person)).json()
        assert task["status"] == "completed"

    def test_overdue_flag(self, client, headers_for, manager, person):
        due = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()
        data = _create_task(client, headers_for(manager), person, due_date=due)
        assert data["is_overdue"] is True


class TestDashboardEndpoints:
    def test_stats_and_activities(self, client, headers_for, manager, person):
        due = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()
        _create_task(client, headers_for(manager), person, due_date=due)
        resp = client.get("/dashboard/stats", headers=headers_for(person))
        assert resp.status_code == 200
        stats = resp.json()
        assert stats["open_tasks"] == 1
        assert stats["overdue_tasks"] == 1
        assert stats["documents_by_status"]["draft"] == 0

        resp = client.get("/activities", headers=headers_for(person))
        assert [a["action"] for a in resp.json()] == ["created"]

    def test_entity_activities_paginate(self, client, headers_for, manager, person):
        data = _create_task(client, headers_for(manager), person)
        url = f"/tasks/{data['id']}/transition"
        client.post(url, json={"status": "in_progress"}, headers=headers_for(person))
        client.post(url, json={"status": "completed"}, headers=headers_for(person))

        base = f"/activities?entity_type=task&entity_id={data['id']}"
        resp = client.get(base, headers=headers_for(person))
        assert [a["action"] for a in resp.json()] == [
            "created",
            "status_changed",
            "status_changed",
        ]
        resp = client.get(f"{base}&limit=1&offset=1", headers=headers_for(person))
        page = resp.json()
        assert len(page) == 1
        assert page[0]["action"] == "status_changed"

    def test_health_and_metrics(self, client):
        assert client.get("/health").json() == {"status": "ok"}
        resp = client.get("/metrics")
        assert resp.status_code == 200
        assert "review_transitions_total" in resp.text
