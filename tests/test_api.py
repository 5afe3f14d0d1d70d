import logging

import httpx
import pytest

from hirepipe.api import deps
from hirepipe.main import app
from hirepipe.models import Job


@pytest.fixture()
async def client(session_factory):
    async def _session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[deps.get_db_session] = _session
    app.dependency_overrides[deps.get_session_factory] = lambda: session_factory
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client
    app.dependency_overrides.clear()


async def _add(client, seeded, candidate_index=0, stage="Applied"):
    response = await client.post(
        f"/jobs/{seeded.job.job_id}/applications",
        json={
            "candidate_id": seeded.candidates[candidate_index].candidate_id,
            "stage_id": seeded.stages[stage].stage_id,
        },
        headers={"X-User-Id": "recruiter-1"},
    )
    assert response.status_code == 201
    return response.json()["application"]["application_id"]


async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.headers["X-Request-ID"]


async def test_request_id_is_echoed_and_logged(client, caplog):
    caplog.set_level(logging.INFO, logger="hirepipe.request")

    response = await client.get("/health", headers={"X-Request-ID": "req-123"})

    assert response.headers["X-Request-ID"] == "req-123"
    records = [record for record in caplog.records if record.name == "hirepipe.request"]
    assert records[-1].request_id == "req-123"
    assert records[-1].path == "/health"
    assert records[-1].status_code == 200


async def test_stage_list_insert_reorder_delete(client, seeded):
    job_id = seeded.job.job_id

    created = await client.post(f"/jobs/{job_id}/stages", json={"name": "Take Home", "position": 2})
    assert created.status_code == 201
    stage_id = created.json()["stage_id"]

    reordered = await client.patch(f"/stages/{stage_id}/position", json={"new_position": 0})
    assert reordered.status_code == 200
    assert [stage["name"] for stage in reordered.json()][:3] == ["Take Home", "Queue", "Applied"]

    deleted = await client.delete(f"/stages/{stage_id}")
    assert deleted.status_code == 204

    listed = await client.get(f"/jobs/{job_id}/stages")
    assert [stage["position"] for stage in listed.json()] == list(range(len(seeded.stages)))


async def test_insert_out_of_range_returns_error_payload(client, seeded):
    response = await client.post(f"/jobs/{seeded.job.job_id}/stages", json={"name": "Late", "position": 99})

    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "validation_error"
    assert "position" in error["details"]


async def test_unknown_job_returns_404(client):
    response = await client.get("/jobs/9999/stages")

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "not_found"


async def test_seed_defaults_twice_conflicts(client, seeded):
    response = await client.post(f"/jobs/{seeded.job.job_id}/stages/defaults")

    assert response.status_code == 409


async def test_move_records_history_and_activity(client, seeded):
    application_id = await _add(client, seeded)

    rejected = await client.post(
        f"/applications/{application_id}/move",
        json={"target_stage_id": seeded.stages["Rejected"].stage_id},
    )
    assert rejected.status_code == 400
    assert "comment" in rejected.json()["error"]["details"]

    moved = await client.post(
        f"/applications/{application_id}/move",
        json={"target_stage_id": seeded.stages["Rejected"].stage_id, "comment": "Not a fit"},
        headers={"X-User-Id": "recruiter-1"},
    )
    assert moved.status_code == 200
    body = moved.json()
    assert body["changed"] is True
    assert body["from_stage_name"] == "Applied"
    assert body["current_stage"]["name"] == "Rejected"

    history = (await client.get(f"/applications/{application_id}/history")).json()
    assert [entry["stage_name"] for entry in history] == ["Applied", "Rejected"]
    assert history[0]["duration_hours"] >= 0
    assert history[1]["moved_by"] == "recruiter-1"

    activities = (await client.get(f"/applications/{application_id}/activities")).json()
    assert [activity["activity_type"] for activity in activities] == ["added_to_job", "stage_change"]
    assert activities[1]["meta_json"]["comment"] == "Not a fit"


async def test_available_stages(client, seeded):
    application_id = await _add(client, seeded)

    response = await client.get(f"/applications/{application_id}/available-stages")

    assert response.status_code == 200
    assert "Applied" not in [stage["name"] for stage in response.json()]


async def test_bulk_move_partial_failure(client, seeded):
    ids = [await _add(client, seeded, candidate_index=index) for index in range(3)]

    response = await client.post(
        "/applications/bulk-move",
        json={"application_ids": [ids[0], 9999, ids[2]], "target_stage_id": seeded.stages["Offer"].stage_id},
    )

    assert response.status_code == 207
    body = response.json()
    assert body["success"] is False
    assert body["moved_count"] == 2
    assert body["failed_count"] == 1
    assert body["failures"][0]["application_id"] == 9999
    assert body["failures"][0]["error_code"] == "not_found"


async def test_bulk_move_full_success_and_full_failure_return_200(client, seeded):
    ids = [await _add(client, seeded, candidate_index=index) for index in range(2)]
    offer_id = seeded.stages["Offer"].stage_id

    moved = await client.post("/applications/bulk-move", json={"application_ids": ids, "target_stage_id": offer_id})
    missing = await client.post(
        "/applications/bulk-move", json={"application_ids": [9998, 9999], "target_stage_id": offer_id}
    )

    assert moved.status_code == 200
    assert moved.json()["success"] is True
    assert missing.status_code == 200
    assert missing.json()["failed_count"] == 2


async def test_sla_config_and_evaluation(client, seeded):
    company_id = seeded.company.company_id
    application_id = await _add(client, seeded, stage="Interview")

    saved = await client.put(
        f"/companies/{company_id}/sla-configs",
        json={"configs": [{"stage_name": "Interview", "threshold_days": 7}]},
    )
    assert saved.status_code == 200
    assert saved.json()[0]["threshold_days"] == 7

    evaluation = await client.get(f"/applications/{application_id}/sla")
    assert evaluation.status_code == 200
    assert evaluation.json()["status"] == "on_track"
    assert evaluation.json()["threshold_days"] == 7

    breaches = await client.get(f"/companies/{company_id}/sla-breaches")
    assert breaches.json() == []

    removed = await client.delete(f"/companies/{company_id}/sla-configs/interview")
    assert removed.status_code == 204
    assert (await client.get(f"/companies/{company_id}/sla-configs")).json() == []


async def test_invalid_sla_threshold(client, seeded):
    response = await client.put(
        f"/companies/{seeded.company.company_id}/sla-configs",
        json={"configs": [{"stage_name": "Offer", "threshold_days": 0}]},
    )

    assert response.status_code == 400
    assert "threshold_days" in response.json()["error"]["details"]


async def test_stage_template_lifecycle(client, seeded):
    company_id = seeded.company.company_id
    headers = {"X-User-Id": "admin-1"}

    imported = await client.post(
        "/stage-templates/import-from-job",
        json={"job_id": seeded.job.job_id, "name": "Backend funnel"},
        headers=headers,
    )
    assert imported.status_code == 201
    template = imported.json()
    assert template["created_by"] == "admin-1"
    assert template["stages"][0]["name"] == "Queue"

    listed = await client.get(f"/companies/{company_id}/stage-templates", headers=headers)
    assert [item["template_id"] for item in listed.json()] == [template["template_id"]]
    assert (await client.get(f"/companies/{company_id}/stage-templates")).json() == []

    layouts = await client.get(f"/companies/{company_id}/stage-templates/from-jobs")
    assert layouts.json()[0]["job_id"] == seeded.job.job_id

    duplicate = await client.post(
        f"/companies/{company_id}/stage-templates",
        json={"name": "Backend funnel", "stages": [{"name": "Applied"}]},
    )
    assert duplicate.status_code == 400

    renamed = await client.put(f"/stage-templates/{template['template_id']}", json={"is_public": True})
    assert renamed.json()["is_public"] is True

    removed = await client.delete(f"/stage-templates/{template['template_id']}")
    assert removed.status_code == 204
    assert (await client.get(f"/stage-templates/{template['template_id']}")).status_code == 404


async def test_apply_stage_template_to_new_job(client, db_session, seeded):
    company_id = seeded.company.company_id
    created = await client.post(
        f"/companies/{company_id}/stage-templates",
        json={
            "name": "Lean",
            "stages": [{"name": "Applied"}, {"name": "Interview", "sub_stages": [{"name": "Onsite"}]}],
        },
    )
    job = Job(company_id=company_id, title="Designer")
    db_session.add(job)
    await db_session.commit()

    applied = await client.post(
        f"/jobs/{job.job_id}/stages/from-template", json={"template_id": created.json()["template_id"]}
    )
    again = await client.post(
        f"/jobs/{job.job_id}/stages/from-template", json={"template_id": created.json()["template_id"]}
    )

    assert applied.status_code == 201
    assert [(stage["name"], stage["position"]) for stage in applied.json()] == [
        ("Applied", 0),
        ("Interview", 1),
        ("Onsite", 2),
    ]
    assert applied.json()[2]["parent_id"] == applied.json()[1]["stage_id"]
    assert again.status_code == 409


async def test_sla_defaults_can_be_replaced(client):
    initial = await client.get("/sla-defaults")
    assert {item["stage_name"] for item in initial.json()} >= {"Applied", "Offer"}

    saved = await client.put("/sla-defaults", json={"defaults": [{"stage_name": "Offer", "threshold_days": 2}]})
    assert saved.status_code == 200

    assert (await client.get("/sla-defaults")).json() == [{"stage_name": "Offer", "threshold_days": 2}]
    invalid = await client.put("/sla-defaults", json={"defaults": [{"stage_name": "Offer", "threshold_days": 0}]})
    assert invalid.status_code == 400
