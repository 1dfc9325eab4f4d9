"""
tests/test_api_orchestration.py — HTTP surface of the orchestration blueprint.

Covers:
    1. Task CRUD, listing filters and activity log
    2. Lifecycle endpoints and error mapping (400 / 404 / 409 / 422)
    3. Suggestions and assignment
    4. Bulk generation
    5. Timelines, milestones, Gantt and analytics
    6. Health endpoints and request guards

The blueprint runs on the real clock, so timeline dates are built
relative to today.
"""

from datetime import date, timedelta

import pytest

BASE = "/api/v1/orchestration"
FRAMEWORK = "NIST 800-171"


# ═════════════════════════════════════════════════════════════════════════════
# Helpers
# ═════════════════════════════════════════════════════════════════════════════


def _create_task(client, organization_id, **kw):
    payload = {"title": "Enable MFA", "framework": FRAMEWORK, "control_id": "AC-3.13",
               "estimated_hours": 8, "organization_id": organization_id}
    payload.update(kw)
    res = client.post(f"{BASE}/tasks", json=payload)
    assert res.status_code == 201, res.get_json()
    return res.get_json()


def _create_timeline(client, organization_id, start_offset=-30, length=90, **kw):
    start = date.today() + timedelta(days=start_offset)
    payload = {
        "name": "CMMC L2", "framework": FRAMEWORK, "organization_id": organization_id,
        "start_date": start.isoformat(),
        "target_completion": (start + timedelta(days=length)).isoformat(),
        "status": "active",
    }
    payload.update(kw)
    res = client.post(f"{BASE}/timelines", json=payload)
    assert res.status_code == 201, res.get_json()
    return res.get_json()


def _transition(client, task_id, status):
    return client.post(f"{BASE}/tasks/{task_id}/transition", json={"status": status})


# ═════════════════════════════════════════════════════════════════════════════
# 1. Tasks
# ═════════════════════════════════════════════════════════════════════════════


class TestTasksApi:

    def test_create_and_get(self, client, organization_id):
        task = _create_task(client, organization_id)
        assert task["status"] == "draft"
        assert task["dependencies"] == []

        res = client.get(f"{BASE}/tasks/{task['id']}")
        assert res.status_code == 200
        assert res.get_json()["title"] == "Enable MFA"

    def test_create_requires_title(self, client):
        res = client.post(f"{BASE}/tasks", json={"framework": FRAMEWORK})
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

    def test_business_validation_is_422(self, client, organization_id):
        res = client.post(f"{BASE}/tasks", json={"title": "X", "priority": "urgent"})
        assert res.status_code == 422
        body = res.get_json()
        assert body["code"] == "ERR_VALIDATION_RULE"
        assert "priority" in body["details"]

    def test_list_priority_is_422(self, client, organization_id):
        res = client.post(f"{BASE}/tasks", json={"title": "X", "priority": ["high"]})
        assert res.status_code == 422
        assert "priority" in res.get_json()["details"]

    def test_missing_task_is_404(self, client):
        res = client.get(f"{BASE}/tasks/999")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_list_filters(self, client, organization_id):
        _create_task(client, organization_id, priority="high")
        _create_task(client, organization_id, priority="low")
        res = client.get(f"{BASE}/tasks?organization_id={organization_id}&priority=high")
        body = res.get_json()
        assert body["total"] == 1
        assert body["items"][0]["priority"] == "high"

    def test_list_pagination(self, client, organization_id):
        ids = [_create_task(client, organization_id, title=f"T{i}")["id"] for i in range(3)]
        body = client.get(f"{BASE}/tasks?limit=2&offset=1").get_json()
        assert body["total"] == 3
        assert [t["id"] for t in body["items"]] == ids[1:]

    def test_activity_log(self, client, organization_id):
        task = _create_task(client, organization_id)
        _transition(client, task["id"], "in_progress")
        res = client.get(f"{BASE}/tasks/{task['id']}?include=activity")
        kinds = [a["update_type"] for a in res.get_json()["activity"]]
        assert kinds == ["created", "status_change"]


# ═════════════════════════════════════════════════════════════════════════════
# 2. Lifecycle
# ═════════════════════════════════════════════════════════════════════════════


class TestLifecycleApi:

    def test_complete_flow(self, client, organization_id):
        task = _create_task(client, organization_id)
        assert _transition(client, task["id"], "in_progress").status_code == 200
        res = _transition(client, task["id"], "completed")
        body = res.get_json()
        assert body["status"] == "completed"
        assert body["progress"] == 100
        assert body["completed_at"] is not None

    def test_invalid_transition_is_422(self, client, organization_id):
        task = _create_task(client, organization_id)
        res = _transition(client, task["id"], "review")
        assert res.status_code == 422

    def test_transition_requires_status(self, client, organization_id):
        task = _create_task(client, organization_id)
        res = client.post(f"{BASE}/tasks/{task['id']}/transition", json={})
        assert res.status_code == 400

    def test_progress_update(self, client, organization_id):
        task = _create_task(client, organization_id)
        res = client.put(f"{BASE}/tasks/{task['id']}/progress", json={"progress": 60})
        assert res.status_code == 200
        assert res.get_json()["progress"] == 60

        res = client.put(f"{BASE}/tasks/{task['id']}/progress", json={"progress": 150})
        assert res.status_code == 422

    def test_dependency_cycle_is_409(self, client, organization_id):
        a = _create_task(client, organization_id, title="A")
        b = _create_task(client, organization_id, title="B")
        res = client.post(f"{BASE}/tasks/{b['id']}/dependencies", json={"task_id": a["id"]})
        assert res.status_code == 201
        assert res.get_json()["type"] == "blocks"

        res = client.post(f"{BASE}/tasks/{a['id']}/dependencies", json={"task_id": b["id"]})
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFLICT_STATE"

    def test_dependency_requires_integer_id(self, client, organization_id):
        task = _create_task(client, organization_id)
        res = client.post(f"{BASE}/tasks/{task['id']}/dependencies", json={"task_id": True})
        assert res.status_code == 400

    def test_blocked_start_is_422(self, client, organization_id):
        a = _create_task(client, organization_id, title="A")
        b = _create_task(client, organization_id, title="B")
        client.post(f"{BASE}/tasks/{b['id']}/dependencies", json={"task_id": a["id"]})
        res = _transition(client, b["id"], "in_progress")
        assert res.status_code == 422
        assert res.get_json()["details"]["blocking_task_ids"] == [a["id"]]


# ═════════════════════════════════════════════════════════════════════════════
# 3. Assignment
# ═════════════════════════════════════════════════════════════════════════════


class TestAssignmentApi:

    def test_suggestions(self, client, organization_id, directory_users):
        task = _create_task(client, organization_id)
        res = client.get(f"{BASE}/tasks/{task['id']}/suggestions?organization_id={organization_id}")
        assert res.status_code == 200
        body = res.get_json()
        assert body["task_id"] == task["id"]
        assert len(body["suggestions"]) == 2
        assert body["assignment_recommendation"]["recommended_user"] == directory_users[0].id
        assert body["assignment_recommendation"]["confidence"] == "high"

    def test_suggestions_max(self, client, organization_id, directory_users):
        task = _create_task(client, organization_id)
        res = client.get(
            f"{BASE}/tasks/{task['id']}/suggestions?organization_id={organization_id}&max_suggestions=1"
        )
        assert len(res.get_json()["suggestions"]) == 1

    def test_suggestions_reject_non_positive_max(self, client, organization_id):
        task = _create_task(client, organization_id)
        res = client.get(f"{BASE}/tasks/{task['id']}/suggestions?max_suggestions=0")
        assert res.status_code == 400

    def test_suggestions_without_availability(self, client, organization_id, directory_users):
        task = _create_task(client, organization_id)
        res = client.get(
            f"{BASE}/tasks/{task['id']}/suggestions"
            f"?organization_id={organization_id}&consider_availability=false"
        )
        assert res.get_json()["suggestions"][0]["score"] == 80

    def test_assign(self, client, organization_id, directory_users):
        task = _create_task(client, organization_id)
        ben = directory_users[1]
        res = client.post(
            f"{BASE}/tasks/{task['id']}/assign",
            json={"assigned_to": ben.id, "assigned_by": "lead", "organization_id": organization_id},
        )
        assert res.status_code == 200
        body = res.get_json()
        assert body["assigned_to"] == ben.id
        assert body["status"] == "assigned"

    def test_assign_unknown_user_is_404(self, client, organization_id, directory_users):
        task = _create_task(client, organization_id)
        res = client.post(f"{BASE}/tasks/{task['id']}/assign", json={"assigned_to": 999})
        assert res.status_code == 404


# ═════════════════════════════════════════════════════════════════════════════
# 4. Bulk
# ═════════════════════════════════════════════════════════════════════════════


class TestBulkApi:

    def test_bulk_generation(self, client, organization_id):
        payload = {
            "source": "assessment",
            "organization_id": organization_id,
            "taskTemplate": {"framework": FRAMEWORK, "defaultPriority": "high", "dueDateOffsetDays": 14},
            "gaps": [
                {"controlId": "AC-3.1", "gapDescription": "No lockout", "remediationType": "technical"},
                {"controlId": "AC-3.2", "remediationType": "technical"},
            ],
        }
        res = client.post(f"{BASE}/tasks/bulk", json=payload)
        assert res.status_code == 201
        body = res.get_json()
        assert body["tasks_created"] == 1
        assert body["summary"]["high_priority"] == 1
        assert body["rejected"][0]["index"] == 1

        listed = client.get(f"{BASE}/tasks?bulk_operation_id={body['bulk_operation_id']}").get_json()
        assert listed["total"] == 1

    def test_bulk_requires_gap_list(self, client):
        res = client.post(f"{BASE}/tasks/bulk", json={"gaps": "AC-1"})
        assert res.status_code == 400

    def test_bulk_invalid_template_is_422(self, client):
        res = client.post(
            f"{BASE}/tasks/bulk",
            json={"gaps": [], "taskTemplate": {"defaultPriority": "urgent"}},
        )
        assert res.status_code == 422

    def test_bulk_malformed_gap_priority_uses_default(self, client, organization_id):
        payload = {
            "organization_id": organization_id,
            "taskTemplate": {"framework": FRAMEWORK, "defaultPriority": "low"},
            "gaps": [{"controlId": "AC-3.1", "gapDescription": "No lockout",
                      "remediationType": "technical", "priority": ["high"]}],
        }
        res = client.post(f"{BASE}/tasks/bulk", json=payload)
        assert res.status_code == 201
        body = res.get_json()
        assert body["tasks_created"] == 1
        assert body["tasks"][0]["priority"] == "low"


# ═════════════════════════════════════════════════════════════════════════════
# 5. Timelines
# ═════════════════════════════════════════════════════════════════════════════


class TestTimelinesApi:

    def test_create_and_get(self, client, organization_id):
        timeline = _create_timeline(client, organization_id)
        assert timeline["health_score"] == 100
        assert timeline["milestones"] == []

        res = client.get(f"{BASE}/timelines/{timeline['id']}")
        assert res.status_code == 200

    def test_inverted_range_is_422(self, client, organization_id):
        res = client.post(f"{BASE}/timelines", json={
            "name": "Bad", "start_date": "2024-04-01", "target_completion": "2024-01-01",
        })
        assert res.status_code == 422

    def test_overdue_milestone(self, client, organization_id):
        timeline = _create_timeline(client, organization_id)
        past = (date.today() - timedelta(days=5)).isoformat()
        res = client.post(
            f"{BASE}/timelines/{timeline['id']}/milestones",
            json={"name": "Gap assessment", "target_date": past},
        )
        assert res.status_code == 201
        assert res.get_json()["status"] == "delayed"

        body = client.get(f"{BASE}/timelines/{timeline['id']}").get_json()
        assert body["health_score"] < 100

    def test_milestone_requires_target_date(self, client, organization_id):
        timeline = _create_timeline(client, organization_id)
        res = client.post(f"{BASE}/timelines/{timeline['id']}/milestones", json={"name": "Gate"})
        assert res.status_code == 400

    def test_milestone_transition(self, client, organization_id):
        timeline = _create_timeline(client, organization_id)
        future = (date.today() + timedelta(days=10)).isoformat()
        milestone = client.post(
            f"{BASE}/timelines/{timeline['id']}/milestones",
            json={"name": "Gate", "type": "business", "target_date": future},
        ).get_json()

        res = client.post(f"{BASE}/milestones/{milestone['id']}/transition", json={"status": "in_progress"})
        assert res.status_code == 200
        res = client.post(f"{BASE}/milestones/{milestone['id']}/transition", json={"status": "delayed"})
        assert res.status_code == 422

    def test_gantt(self, client, organization_id):
        timeline = _create_timeline(client, organization_id)
        _create_task(client, organization_id)
        res = client.get(f"{BASE}/timelines/{timeline['id']}/gantt?granularity=month")
        assert res.status_code == 200
        body = res.get_json()
        assert body["granularity"] == "month"
        assert len(body["bars"]) == 1
        assert body["today_percent"] is not None

    def test_gantt_bad_granularity(self, client, organization_id):
        timeline = _create_timeline(client, organization_id)
        res = client.get(f"{BASE}/timelines/{timeline['id']}/gantt?granularity=year")
        assert res.status_code == 422
        assert res.get_json()["code"] == "ERR_CONFIGURATION"

    def test_recompute_and_analytics(self, client, organization_id):
        timeline = _create_timeline(client, organization_id)
        task = _create_task(client, organization_id)
        client.put(f"{BASE}/tasks/{task['id']}/progress", json={"progress": 50})

        res = client.post(f"{BASE}/timelines/{timeline['id']}/recompute")
        assert res.get_json()["current_progress"] == 50.0

        body = client.get(f"{BASE}/timelines/{timeline['id']}/analytics").get_json()
        assert body["critical_path"] == [task["id"]]
        assert set(body["analytics"]) >= {"projected_completion", "risk_score", "buffer_days"}

    def test_organization_analytics(self, client, organization_id, directory_users):
        _create_task(client, organization_id)
        res = client.get(f"{BASE}/analytics?organization_id={organization_id}")
        assert res.status_code == 200
        body = res.get_json()
        assert body["task_metrics"]["total_tasks"] == 1
        assert len(body["workload_distribution"]["users"]) == 2

    def test_organization_analytics_period(self, client, organization_id):
        _create_task(client, organization_id)
        res = client.get(f"{BASE}/analytics?organization_id={organization_id}&period=last_7_days")
        assert res.status_code == 200
        body = res.get_json()
        assert body["analytics_period"]["period_type"] == "last_7_days"
        assert body["task_metrics"]["total_tasks"] == 1
        assert "average_completion_time_hours" in body["task_metrics"]
        assert "average_schedule_variance" in body["timeline_metrics"]

    def test_organization_analytics_unknown_period_is_422(self, client, organization_id):
        res = client.get(f"{BASE}/analytics?organization_id={organization_id}&period=last_year")
        assert res.status_code == 422
        assert res.get_json()["code"] == "ERR_VALIDATION_RULE"

    def test_list_timelines(self, client, organization_id):
        first = _create_timeline(client, organization_id)
        second = _create_timeline(client, organization_id, name="ISO rollout", status="draft")

        res = client.get(f"{BASE}/timelines?organization_id={organization_id}")
        assert res.status_code == 200
        body = res.get_json()
        assert body["total"] == 2
        assert [tl["id"] for tl in body["items"]] == [second["id"], first["id"]]

        body = client.get(f"{BASE}/timelines?organization_id={organization_id}&status=draft").get_json()
        assert [tl["id"] for tl in body["items"]] == [second["id"]]

    def test_list_timelines_pagination(self, client, organization_id):
        for i in range(3):
            _create_timeline(client, organization_id, name=f"Plan {i}")
        body = client.get(f"{BASE}/timelines?organization_id={organization_id}&limit=2").get_json()
        assert body["total"] == 3
        assert len(body["items"]) == 2


# ═════════════════════════════════════════════════════════════════════════════
# 6. Health & guards
# ═════════════════════════════════════════════════════════════════════════════


class TestHealthAndGuards:

    def test_health_banner(self, client):
        res = client.get("/api/v1/health")
        assert res.status_code == 200
        assert res.get_json()["status"] == "ok"

    def test_live_check_counts_tables(self, client, directory_users):
        res = client.get("/api/v1/health/live")
        assert res.status_code == 200
        body = res.get_json()
        assert body["status"] == "healthy"
        assert body["checks"]["tables"]["directory_users"]["count"] == 3

    def test_request_id_header(self, client):
        res = client.get("/api/v1/health/ready", headers={"X-Request-ID": "abc123"})
        assert res.headers["X-Request-ID"] == "abc123"
        assert "X-Request-Duration-Ms" in res.headers

    @pytest.mark.parametrize("path", ["/tasks", "/timelines"])
    def test_non_json_body_rejected(self, client, path):
        res = client.post(f"{BASE}{path}", data="title=x", content_type="text/plain")
        assert res.status_code == 415

    def test_unknown_route(self, client):
        res = client.get("/api/v1/nope")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"
