"""Tests for jobs: numbering, role scoping, field restrictions, notes, events, checklists.

Covers:
- JOB-YYYY-NNNN numbering seeded from existing jobs
- Technicians only see and open jobs they are assigned to
- Managers on a team only open that team's jobs
- Field roles limited to a small set of PATCH fields
- Note visibility (internal notes hidden from field staff)
- Lifecycle actions write JobEvents
- Checklist completion stamping
"""

import json

from fireops.extensions import db
from fireops.models.job import ChecklistTemplate, Job, JobAssignment, JobEvent, JobNote
from fireops.models.user import Team
from fireops.services import sequence_service

from conftest import YEAR


class TestJobNumbers:

    def test_sequence_seeds_from_existing_jobs(self, seed_data):
        assert sequence_service.next_number("JOB") == f"JOB-{YEAR}-0002"
        assert sequence_service.next_number("JOB") == f"JOB-{YEAR}-0003"

    def test_sequences_are_independent(self, seed_data):
        assert sequence_service.next_number("INV") == f"INV-{YEAR}-0001"
        assert sequence_service.next_number("QT") == f"QT-{YEAR}-003"

    def test_new_year_starts_at_one(self, seed_data):
        assert sequence_service.next_number("JOB", year=YEAR + 1) == f"JOB-{YEAR + 1}-0001"

    def test_create_job(self, client, seed_data, login):
        login("manager")
        resp = client.post("/api/jobs", json={
            "customer_name": "Corner Store",
            "site_address": "12 Main St",
            "job_type": "service",
        })
        assert resp.status_code == 201
        data = json.loads(resp.data)["data"]
        assert data["job_number"] == f"JOB-{YEAR}-0002"
        assert data["status"] == "pending"
        assert data["site_state"] == "TX"

    def test_create_job_missing_fields(self, client, seed_data, login):
        login("admin")
        resp = client.post("/api/jobs", json={"customer_name": "Corner Store"})
        assert resp.status_code == 400
        assert json.loads(resp.data)["error"] == (
            "customer_name, site_address and job_type are required"
        )


class TestJobAccess:
    """Field roles are scoped to their assignments."""

    def test_assigned_technician_can_view(self, client, seed_data, login):
        login("technician")
        resp = client.get(f"/api/jobs/{seed_data['job_id']}")
        assert resp.status_code == 200
        data = json.loads(resp.data)["data"]
        assert data["job_number"] == f"JOB-{YEAR}-0001"
        assert data["assignments"][0]["user_id"] == seed_data["tech_id"]

    def test_unassigned_technician_gets_403(self, client, seed_data, login):
        login("other_tech")
        resp = client.get(f"/api/jobs/{seed_data['job_id']}")
        assert resp.status_code == 403
        assert json.loads(resp.data)["error"] == "Not assigned to this job"

    def test_technician_list_is_scoped(self, client, seed_data, login):
        db.session.add(Job(
            job_number=f"JOB-{YEAR}-0099",
            customer_name="Someone Else",
            site_address="1 Elsewhere Rd",
            job_type="service",
        ))
        db.session.commit()

        login("technician")
        resp = client.get("/api/jobs")
        numbers = [j["job_number"] for j in json.loads(resp.data)["data"]]
        assert numbers == [f"JOB-{YEAR}-0001"]

    def test_admin_sees_all_jobs(self, client, seed_data, login):
        db.session.add(Job(
            job_number=f"JOB-{YEAR}-0099",
            customer_name="Someone Else",
            site_address="1 Elsewhere Rd",
            job_type="service",
        ))
        db.session.commit()

        login("admin")
        resp = client.get("/api/jobs")
        assert len(json.loads(resp.data)["data"]) == 2

    def test_manager_limited_to_own_team(self, client, seed_data, login):
        other_team = Team(name="South Team")
        db.session.add(other_team)
        db.session.flush()
        job = Job(
            job_number=f"JOB-{YEAR}-0099",
            customer_name="Someone Else",
            site_address="1 Elsewhere Rd",
            job_type="service",
            team_id=other_team.id,
        )
        db.session.add(job)
        db.session.commit()

        login("manager")
        resp = client.get(f"/api/jobs/{job.id}")
        assert resp.status_code == 403
        assert json.loads(resp.data)["error"] == "Job belongs to another team"
        resp = client.patch(f"/api/jobs/{job.id}", json={"notes": "x"})
        assert resp.status_code == 403
        assert client.get(f"/api/jobs/{seed_data['job_id']}").status_code == 200

    def test_manager_created_job_joins_their_team(self, client, seed_data, login):
        login("manager")
        resp = client.post("/api/jobs", json={
            "customer_name": "Corner Store",
            "site_address": "12 Main St",
            "job_type": "service",
        })
        data = json.loads(resp.data)["data"]
        assert data["team_id"] == seed_data["team_id"]
        assert client.get(f"/api/jobs/{data['id']}").status_code == 200

    def test_missing_job_404(self, client, seed_data, login):
        login("admin")
        resp = client.get("/api/jobs/not-a-job")
        assert resp.status_code == 404

    def test_unauthenticated_401(self, client, seed_data):
        resp = client.get(f"/api/jobs/{seed_data['job_id']}")
        assert resp.status_code == 401
        assert json.loads(resp.data)["success"] is False


class TestJobUpdates:
    """PATCH /api/jobs/<id>"""

    def test_technician_may_update_status_and_notes(self, client, seed_data, login):
        login("technician")
        resp = client.patch(f"/api/jobs/{seed_data['job_id']}", json={
            "status": "in_progress",
            "notes": "Arrived on site",
        })
        assert resp.status_code == 200
        job = db.session.get(Job, seed_data["job_id"])
        assert job.status == "in_progress"

        event = JobEvent.query.filter_by(job_id=job.id, event_type="status_changed").one()
        assert event.payload == {"from": "scheduled", "to": "in_progress"}

    def test_technician_cannot_update_office_fields(self, client, seed_data, login):
        login("technician")
        resp = client.patch(f"/api/jobs/{seed_data['job_id']}", json={
            "status": "completed",
            "total_amount": 1,
            "customer_name": "Hacked",
        })
        assert resp.status_code == 403
        assert json.loads(resp.data)["error"] == (
            "Not allowed to update: customer_name, total_amount"
        )
        job = db.session.get(Job, seed_data["job_id"])
        assert job.status == "scheduled"

    def test_technician_cannot_assign_users(self, client, seed_data, login):
        login("technician")
        resp = client.patch(f"/api/jobs/{seed_data['job_id']}", json={
            "action": "assign_user",
            "user_id": seed_data["other_tech_id"],
        })
        assert resp.status_code == 403

    def test_invalid_status(self, client, seed_data, login):
        login("admin")
        resp = client.patch(f"/api/jobs/{seed_data['job_id']}", json={"status": "done-ish"})
        assert resp.status_code == 400

    def test_start_and_complete(self, client, seed_data, login):
        login("technician")
        client.patch(f"/api/jobs/{seed_data['job_id']}", json={"action": "start"})
        resp = client.patch(f"/api/jobs/{seed_data['job_id']}", json={
            "action": "complete",
            "completion_notes": "All devices tested",
        })
        assert resp.status_code == 200

        job = db.session.get(Job, seed_data["job_id"])
        assert job.status == "completed"
        assert job.actual_start_time is not None
        assert job.completed_at is not None
        assert job.completion_notes == "All devices tested"

    def test_acknowledge_assignment(self, client, seed_data, login):
        login("technician")
        resp = client.patch(f"/api/jobs/{seed_data['job_id']}", json={"action": "acknowledge"})
        assert resp.status_code == 200
        assignment = JobAssignment.query.filter_by(user_id=seed_data["tech_id"]).one()
        assert assignment.acknowledged_at is not None

    def test_manager_assigns_user(self, client, seed_data, login):
        login("manager")
        resp = client.post(f"/api/jobs/{seed_data['job_id']}/assignments", json={
            "user_id": seed_data["other_tech_id"],
        })
        assert resp.status_code == 201

        dup = client.post(f"/api/jobs/{seed_data['job_id']}/assignments", json={
            "user_id": seed_data["other_tech_id"],
        })
        assert dup.status_code == 400

    def test_unknown_action(self, client, seed_data, login):
        login("admin")
        resp = client.patch(f"/api/jobs/{seed_data['job_id']}", json={"action": "teleport"})
        assert resp.status_code == 400


class TestJobNotes:

    def test_field_notes_visibility(self, client, seed_data, login):
        db.session.add_all([
            JobNote(job_id=seed_data["job_id"], content="Margin is thin", visibility="internal"),
            JobNote(job_id=seed_data["job_id"], content="Gate code 1234", visibility="tech"),
            JobNote(job_id=seed_data["job_id"], content="See you Monday", visibility="customer"),
        ])
        db.session.commit()

        login("technician")
        resp = client.get(f"/api/jobs/{seed_data['job_id']}/notes")
        contents = {n["content"] for n in json.loads(resp.data)["data"]}
        assert contents == {"Gate code 1234", "See you Monday"}

        login("admin")
        resp = client.get(f"/api/jobs/{seed_data['job_id']}/notes")
        assert len(json.loads(resp.data)["data"]) == 3

    def test_technician_internal_note_becomes_tech(self, client, seed_data, login):
        login("technician")
        resp = client.post(f"/api/jobs/{seed_data['job_id']}/notes", json={
            "content": "Panel needs a battery",
            "visibility": "internal",
        })
        assert resp.status_code == 201
        assert json.loads(resp.data)["data"]["visibility"] == "tech"

    def test_note_logs_event_preview(self, client, seed_data, login):
        login("admin")
        client.post(f"/api/jobs/{seed_data['job_id']}/notes", json={"content": "x" * 150})
        event = JobEvent.query.filter_by(event_type="note_added").one()
        assert len(event.payload["preview"]) == 100

    def test_empty_note_rejected(self, client, seed_data, login):
        login("admin")
        resp = client.post(f"/api/jobs/{seed_data['job_id']}/notes", json={"content": "  "})
        assert resp.status_code == 400


class TestJobEvents:

    def test_events_newest_first(self, client, seed_data, login):
        login("admin")
        client.post(f"/api/jobs/{seed_data['job_id']}/events", json={"event_type": "called_customer"})
        client.post(f"/api/jobs/{seed_data['job_id']}/events", json={
            "event_type": "parts_ordered",
            "payload": {"po": "PO-7"},
        })

        resp = client.get(f"/api/jobs/{seed_data['job_id']}/events")
        events = json.loads(resp.data)["data"]
        assert [e["event_type"] for e in events] == ["parts_ordered", "called_customer"]
        assert events[0]["payload"] == {"po": "PO-7"}

    def test_event_payload_must_be_object(self, client, seed_data, login):
        login("admin")
        resp = client.post(f"/api/jobs/{seed_data['job_id']}/events", json={
            "event_type": "x",
            "payload": ["not", "a", "dict"],
        })
        assert resp.status_code == 400


class TestChecklists:

    def test_template_checklist_completion(self, client, seed_data, login):
        template = ChecklistTemplate(
            name="Alarm Install",
            job_type="installation",
            items=[{"label": "Test panel"}, {"label": "Test devices"}],
        )
        db.session.add(template)
        db.session.commit()

        login("admin")
        resp = client.post(f"/api/jobs/{seed_data['job_id']}/checklists", json={
            "template_id": template.id,
        })
        assert resp.status_code == 201
        checklist = json.loads(resp.data)["data"]
        assert [i["status"] for i in checklist["items"]] == ["pending", "pending"]

        login("technician")
        items = [dict(i, status="pass") for i in checklist["items"]]
        resp = client.patch(
            f"/api/jobs/{seed_data['job_id']}/checklists/{checklist['id']}",
            json={"items": items},
        )
        assert resp.status_code == 200
        data = json.loads(resp.data)["data"]
        assert data["completed_at"] is not None
        assert data["completed_by"] == seed_data["tech_id"]
        assert JobEvent.query.filter_by(event_type="checklist_completed").count() == 1

    def test_invalid_item_status(self, client, seed_data, login):
        login("admin")
        resp = client.post(f"/api/jobs/{seed_data['job_id']}/checklists", json={
            "name": "Quick check",
            "items": ["Look at panel"],
        })
        checklist = json.loads(resp.data)["data"]

        resp = client.patch(
            f"/api/jobs/{seed_data['job_id']}/checklists/{checklist['id']}",
            json={"items": [dict(checklist["items"][0], status="maybe")]},
        )
        assert resp.status_code == 400

    def test_technician_cannot_add_checklist(self, client, seed_data, login):
        login("technician")
        resp = client.post(f"/api/jobs/{seed_data['job_id']}/checklists", json={
            "name": "Quick check",
            "items": ["Look at panel"],
        })
        assert resp.status_code == 403
